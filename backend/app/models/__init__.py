from app.models.api_key import ApiKey
from app.models.customer import Customer
from app.models.organization import Organization
from app.models.tax_category import TaxCategory
from app.models.tax_exemption import ExemptionStatus, ExemptionType, TaxExemption
from app.models.tax_exemption_usage import TaxExemptionUsage
from app.models.tax_jurisdiction import JurisdictionType, TaxJurisdiction
from app.models.tax_rate import CalculationMethod, RateType, TaxRate
from app.models.tax_rate_backup import TaxRateBackup
from app.models.tax_rate_history import TaxRateHistory
from app.models.usf_rate import UsfRate

__all__ = [
    "ApiKey",
    "CalculationMethod",
    "Customer",
    "ExemptionStatus",
    "ExemptionType",
    "JurisdictionType",
    "Organization",
    "RateType",
    "TaxCategory",
    "TaxExemption",
    "TaxExemptionUsage",
    "TaxJurisdiction",
    "TaxRate",
    "TaxRateBackup",
    "TaxRateHistory",
    "UsfRate",
]
