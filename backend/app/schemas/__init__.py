from app.schemas.customer import CustomerCreate, CustomerResponse
from app.schemas.tax_calculation import (
    TaxCalculationRequest,
    TaxCalculationResponse,
)
from app.schemas.tax_category import TaxCategoryCreate, TaxCategoryResponse
from app.schemas.tax_exemption import TaxExemptionCreate, TaxExemptionResponse
from app.schemas.tax_jurisdiction import TaxJurisdictionCreate, TaxJurisdictionResponse
from app.schemas.tax_rate import TaxRateCreate, TaxRateResponse, TaxRateUpdate
from app.schemas.usf_rate import UsfRateCreate, UsfRateResponse

__all__ = [
    "CustomerCreate",
    "CustomerResponse",
    "TaxCalculationRequest",
    "TaxCalculationResponse",
    "TaxCategoryCreate",
    "TaxCategoryResponse",
    "TaxExemptionCreate",
    "TaxExemptionResponse",
    "TaxJurisdictionCreate",
    "TaxJurisdictionResponse",
    "TaxRateCreate",
    "TaxRateResponse",
    "TaxRateUpdate",
    "UsfRateCreate",
    "UsfRateResponse",
]
