from app.repositories.api_key_repository import ApiKeyRepository
from app.repositories.customer_repository import CustomerRepository
from app.repositories.organization_repository import OrganizationRepository
from app.repositories.tax_category_repository import TaxCategoryRepository
from app.repositories.tax_exemption_repository import TaxExemptionRepository
from app.repositories.tax_exemption_usage_repository import TaxExemptionUsageRepository
from app.repositories.tax_jurisdiction_repository import TaxJurisdictionRepository
from app.repositories.tax_rate_backup_repository import TaxRateBackupRepository
from app.repositories.tax_rate_history_repository import TaxRateHistoryRepository
from app.repositories.tax_rate_repository import TaxRateRepository
from app.repositories.usf_rate_repository import UsfRateRepository

__all__ = [
    "ApiKeyRepository",
    "CustomerRepository",
    "OrganizationRepository",
    "TaxCategoryRepository",
    "TaxExemptionRepository",
    "TaxExemptionUsageRepository",
    "TaxJurisdictionRepository",
    "TaxRateBackupRepository",
    "TaxRateHistoryRepository",
    "TaxRateRepository",
    "UsfRateRepository",
]
