"""Optional-feature flags for the tax engine."""

from dataclasses import dataclass

from sqlalchemy import inspect
from sqlalchemy.engine import Connection, Engine

from app.core.config import Settings
from app.models.tax_exemption import TaxExemption
from app.models.tax_exemption_usage import TaxExemptionUsage


@dataclass(frozen=True)
class TaxCapabilities:
    exemptions: bool = True
    exemption_usage: bool = True

    @classmethod
    def from_settings(cls, config: Settings) -> "TaxCapabilities":
        enabled = config.TAX_EXEMPTIONS_ENABLED
        return cls(exemptions=enabled, exemption_usage=enabled)

    @classmethod
    def probe(cls, bind: Engine | Connection, config: Settings | None = None) -> "TaxCapabilities":
        """Inspect the schema once; a missing table disables its feature."""
        inspector = inspect(bind)
        exemptions = inspector.has_table(TaxExemption.__tablename__)
        usage = exemptions and inspector.has_table(TaxExemptionUsage.__tablename__)
        if config is not None and not config.TAX_EXEMPTIONS_ENABLED:
            exemptions = usage = False
        return cls(exemptions=exemptions, exemption_usage=usage)
