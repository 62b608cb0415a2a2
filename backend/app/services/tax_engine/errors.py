"""Exceptions raised by the tax engine."""


class TaxValidationError(ValueError):
    """Malformed input to a tax calculation."""


class TaxConfigurationError(ValueError):
    """A tax rate (or its tiers) is not usable as configured."""


class TaxDependencyError(RuntimeError):
    """Rate, jurisdiction or USF data could not be read in time."""


class TaxRateNotFoundError(LookupError):
    """No tax rate with the given id exists for the organization."""


class TaxBackupNotFoundError(LookupError):
    """No tax rate backup with the given batch id exists for the organization."""
