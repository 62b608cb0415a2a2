"""VoIP tax calculation and tax catalog API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.orm import Session

from app.core.auth import get_current_organization
from app.core.cache import CalculationCache, get_tax_cache
from app.core.capabilities import TaxCapabilities
from app.core.database import get_db
from app.models.tax_category import TaxCategory
from app.models.tax_exemption import TaxExemption
from app.models.tax_exemption_usage import TaxExemptionUsage
from app.models.tax_jurisdiction import TaxJurisdiction
from app.models.tax_rate import TaxRate
from app.models.tax_rate_backup import TaxRateBackup
from app.models.tax_rate_history import TaxRateHistory
from app.models.usf_rate import UsfRate
from app.repositories.tax_category_repository import TaxCategoryRepository
from app.repositories.tax_exemption_repository import TaxExemptionRepository
from app.repositories.tax_exemption_usage_repository import TaxExemptionUsageRepository
from app.repositories.tax_jurisdiction_repository import TaxJurisdictionRepository
from app.repositories.tax_rate_backup_repository import TaxRateBackupRepository
from app.repositories.tax_rate_repository import TaxRateRepository
from app.repositories.usf_rate_repository import UsfRateRepository
from app.schemas.tax_calculation import (
    SERVICE_TYPES,
    ClearCacheResponse,
    ServiceTypeResponse,
    TaxCalculationRequest,
    TaxCalculationResponse,
)
from app.schemas.tax_category import TaxCategoryCreate, TaxCategoryResponse
from app.schemas.tax_exemption import (
    TaxExemptionCreate,
    TaxExemptionResponse,
    TaxExemptionUsageResponse,
)
from app.schemas.tax_jurisdiction import TaxJurisdictionCreate, TaxJurisdictionResponse
from app.schemas.tax_rate import (
    BulkImportRequest,
    BulkImportResult,
    ExpireRateRequest,
    InitializeDefaultsResult,
    RestoreResult,
    ScheduleRateChangeRequest,
    TaxRateBackupResponse,
    TaxRateCreate,
    TaxRateHistoryResponse,
    TaxRateResponse,
    TaxRateUpdate,
)
from app.schemas.usf_rate import UsfRateCreate, UsfRateResponse
from app.services.tax_engine.errors import (
    TaxBackupNotFoundError,
    TaxConfigurationError,
    TaxDependencyError,
    TaxRateNotFoundError,
    TaxValidationError,
)
from app.services.tax_engine.federal import UsfRateProvider
from app.services.tax_rate_management_service import TaxRateManagementService
from app.services.tax_service import TaxCalculationService

router = APIRouter()


def get_calculation_service(
    request: Request,
    db: Session = Depends(get_db),
    cache: CalculationCache | None = Depends(get_tax_cache),
) -> TaxCalculationService:
    state = request.app.state
    usf_provider: UsfRateProvider | None = getattr(state, "usf_provider", None)
    capabilities: TaxCapabilities | None = getattr(state, "tax_capabilities", None)
    return TaxCalculationService(
        db, cache=cache, usf_provider=usf_provider, capabilities=capabilities
    )


def get_management_service(
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
    cache: CalculationCache | None = Depends(get_tax_cache),
) -> TaxRateManagementService:
    return TaxRateManagementService(db, organization_id, cache=cache)


# Calculation


@router.post(
    "/calculate",
    response_model=TaxCalculationResponse,
    summary="Calculate VoIP taxes",
    responses={
        401: {"description": "Unauthorized"},
        422: {"description": "Validation error"},
        503: {"description": "Tax data unavailable and no fallback rate configured"},
    },
)
async def calculate_tax(
    data: TaxCalculationRequest,
    organization_id: UUID = Depends(get_current_organization),
    service: TaxCalculationService = Depends(get_calculation_service),
) -> TaxCalculationResponse:
    """Calculate federal, state and local taxes for a service charge."""
    address = data.service_address.model_dump(exclude_none=True) if data.service_address else None
    try:
        result = service.calculate_tax(
            organization_id,
            data.amount,
            data.service_type,
            service_address=address,
            customer_id=data.customer_id,
            calculation_date=data.calculation_date,
            line_count=data.line_count,
            minutes=data.minutes,
            quantity=data.quantity,
        )
    except TaxValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from None
    except TaxDependencyError as e:
        raise HTTPException(status_code=503, detail=str(e)) from None
    return TaxCalculationResponse.from_result(result)


@router.get(
    "/service_types",
    response_model=list[ServiceTypeResponse],
    summary="List service types",
)
async def list_service_types() -> list[ServiceTypeResponse]:
    return [ServiceTypeResponse(value=value, label=label) for value, label in SERVICE_TYPES.items()]


@router.post(
    "/cache/clear",
    response_model=ClearCacheResponse,
    summary="Clear cached tax calculations",
    responses={401: {"description": "Unauthorized"}},
)
async def clear_cache(
    organization_id: UUID = Depends(get_current_organization),
    service: TaxCalculationService = Depends(get_calculation_service),
) -> ClearCacheResponse:
    """Drop the organization's cached calculations and memoized USF rates."""
    return ClearCacheResponse(cleared=service.clear_cache(organization_id))


# Jurisdictions and categories


@router.get(
    "/jurisdictions",
    response_model=list[TaxJurisdictionResponse],
    summary="List tax jurisdictions",
    responses={401: {"description": "Unauthorized"}},
)
async def list_jurisdictions(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    jurisdiction_type: str | None = Query(default=None),
    order_by: str | None = Query(default=None),
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> list[TaxJurisdiction]:
    repo = TaxJurisdictionRepository(db)
    return repo.get_all(
        organization_id,
        skip=skip,
        limit=limit,
        jurisdiction_type=jurisdiction_type,
        order_by=order_by,
    )


@router.post(
    "/jurisdictions",
    response_model=TaxJurisdictionResponse,
    status_code=201,
    summary="Create tax jurisdiction",
    responses={
        401: {"description": "Unauthorized"},
        409: {"description": "Jurisdiction with this code already exists"},
        422: {"description": "Validation error"},
    },
)
async def create_jurisdiction(
    data: TaxJurisdictionCreate,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
    service: TaxRateManagementService = Depends(get_management_service),
) -> TaxJurisdiction:
    if data.code and TaxJurisdictionRepository(db).get_by_code(data.code, organization_id):
        raise HTTPException(status_code=409, detail="Jurisdiction with this code already exists")
    return service.create_jurisdiction(data)


@router.get(
    "/categories",
    response_model=list[TaxCategoryResponse],
    summary="List tax categories",
    responses={401: {"description": "Unauthorized"}},
)
async def list_categories(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    order_by: str | None = Query(default=None),
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> list[TaxCategory]:
    return TaxCategoryRepository(db).get_all(
        organization_id, skip=skip, limit=limit, order_by=order_by
    )


@router.post(
    "/categories",
    response_model=TaxCategoryResponse,
    status_code=201,
    summary="Create tax category",
    responses={
        401: {"description": "Unauthorized"},
        409: {"description": "Category with this code already exists"},
        422: {"description": "Validation error"},
    },
)
async def create_category(
    data: TaxCategoryCreate,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
    service: TaxRateManagementService = Depends(get_management_service),
) -> TaxCategory:
    if data.code and TaxCategoryRepository(db).get_by_code(data.code, organization_id):
        raise HTTPException(status_code=409, detail="Category with this code already exists")
    return service.create_category(data)


# Rates


@router.get(
    "/rates",
    response_model=list[TaxRateResponse],
    summary="List tax rates",
    responses={401: {"description": "Unauthorized"}},
)
async def list_rates(
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    jurisdiction_id: UUID | None = Query(default=None),
    category_id: UUID | None = Query(default=None),
    tax_type: str | None = Query(default=None),
    is_active: bool | None = Query(default=None),
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> list[TaxRate]:
    repo = TaxRateRepository(db)
    response.headers["X-Total-Count"] = str(repo.count(organization_id))
    return repo.get_all(
        organization_id,
        skip=skip,
        limit=limit,
        jurisdiction_id=jurisdiction_id,
        category_id=category_id,
        tax_type=tax_type,
        is_active=is_active,
    )


@router.post(
    "/rates",
    response_model=TaxRateResponse,
    status_code=201,
    summary="Create tax rate",
    responses={
        401: {"description": "Unauthorized"},
        422: {"description": "Validation error"},
    },
)
async def create_rate(
    data: TaxRateCreate,
    changed_by: str | None = Query(default=None, max_length=255),
    service: TaxRateManagementService = Depends(get_management_service),
) -> TaxRate:
    try:
        return service.create_or_update_tax_rate(data, changed_by=changed_by, reason="Rate created")
    except TaxConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from None


@router.get(
    "/rates/export",
    summary="Export tax rate catalog",
    responses={401: {"description": "Unauthorized"}},
)
async def export_rates(
    jurisdiction_id: UUID | None = Query(default=None),
    category_id: UUID | None = Query(default=None),
    tax_type: str | None = Query(default=None),
    is_active: bool | None = Query(default=None),
    service: TaxRateManagementService = Depends(get_management_service),
) -> list[dict]:  # type: ignore[type-arg]
    return service.export_tax_rates(
        jurisdiction_id=jurisdiction_id,
        category_id=category_id,
        tax_type=tax_type,
        is_active=is_active,
    )


@router.post(
    "/rates/import",
    response_model=BulkImportResult,
    summary="Bulk import tax rates",
    responses={401: {"description": "Unauthorized"}},
)
async def import_rates(
    data: BulkImportRequest,
    changed_by: str | None = Query(default=None, max_length=255),
    service: TaxRateManagementService = Depends(get_management_service),
) -> BulkImportResult:
    return service.bulk_import_tax_rates(data.rates, changed_by=changed_by, source=data.source)


@router.post(
    "/rates/initialize",
    response_model=InitializeDefaultsResult,
    summary="Initialize default tax catalog",
    responses={401: {"description": "Unauthorized"}},
)
async def initialize_rates(
    service: TaxRateManagementService = Depends(get_management_service),
) -> InitializeDefaultsResult:
    """Create the federal jurisdiction, default categories and a USF version."""
    return service.initialize_default_rates()


@router.get(
    "/rates/backups",
    response_model=list[TaxRateBackupResponse],
    summary="List tax rate backups",
    responses={401: {"description": "Unauthorized"}},
)
async def list_backups(
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> list[TaxRateBackup]:
    return TaxRateBackupRepository(db).get_all(organization_id)


@router.post(
    "/rates/backups",
    response_model=TaxRateBackupResponse,
    status_code=201,
    summary="Back up the tax rate catalog",
    responses={401: {"description": "Unauthorized"}},
)
async def create_backup(
    service: TaxRateManagementService = Depends(get_management_service),
) -> TaxRateBackup:
    return service.create_backup()


@router.post(
    "/rates/backups/{batch_id}/restore",
    response_model=RestoreResult,
    summary="Restore tax rates from a backup",
    responses={
        401: {"description": "Unauthorized"},
        404: {"description": "Backup not found"},
    },
)
async def restore_backup(
    batch_id: str,
    changed_by: str | None = Query(default=None, max_length=255),
    service: TaxRateManagementService = Depends(get_management_service),
) -> RestoreResult:
    try:
        return service.restore_from_backup(batch_id, changed_by=changed_by)
    except TaxBackupNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None


@router.post(
    "/rates/sync/{source}",
    response_model=BulkImportResult,
    summary="Synchronize tax rates from a source",
    responses={
        401: {"description": "Unauthorized"},
        422: {"description": "Unknown or unconfigured source"},
    },
)
async def sync_rates(
    source: str,
    changed_by: str | None = Query(default=None, max_length=255),
    service: TaxRateManagementService = Depends(get_management_service),
) -> BulkImportResult:
    try:
        return service.sync_from_source(source, changed_by=changed_by)
    except TaxConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from None


@router.get(
    "/rates/{rate_id}",
    response_model=TaxRateResponse,
    summary="Get tax rate",
    responses={
        401: {"description": "Unauthorized"},
        404: {"description": "Tax rate not found"},
    },
)
async def get_rate(
    rate_id: UUID,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> TaxRate:
    rate = TaxRateRepository(db).get_by_id(rate_id, organization_id)
    if not rate:
        raise HTTPException(status_code=404, detail="Tax rate not found")
    return rate


@router.put(
    "/rates/{rate_id}",
    response_model=TaxRateResponse,
    summary="Update tax rate",
    responses={
        401: {"description": "Unauthorized"},
        404: {"description": "Tax rate not found"},
        422: {"description": "Validation error"},
    },
)
async def update_rate(
    rate_id: UUID,
    data: TaxRateUpdate,
    changed_by: str | None = Query(default=None, max_length=255),
    reason: str = Query(default="Manual update", max_length=255),
    service: TaxRateManagementService = Depends(get_management_service),
) -> TaxRate:
    try:
        return service.create_or_update_tax_rate(
            data, rate_id=rate_id, changed_by=changed_by, reason=reason
        )
    except TaxRateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None
    except TaxConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from None


@router.get(
    "/rates/{rate_id}/history",
    response_model=list[TaxRateHistoryResponse],
    summary="Get tax rate change history",
    responses={
        401: {"description": "Unauthorized"},
        404: {"description": "Tax rate not found"},
    },
)
async def get_rate_history(
    rate_id: UUID,
    limit: int = Query(default=50, ge=1, le=500),
    service: TaxRateManagementService = Depends(get_management_service),
) -> list[TaxRateHistory]:
    try:
        return service.get_tax_rate_history(rate_id, limit=limit)
    except TaxRateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None


@router.post(
    "/rates/{rate_id}/schedule",
    response_model=TaxRateResponse,
    summary="Schedule a tax rate change",
    responses={
        401: {"description": "Unauthorized"},
        404: {"description": "Tax rate not found"},
        422: {"description": "Validation error"},
    },
)
async def schedule_rate_change(
    rate_id: UUID,
    data: ScheduleRateChangeRequest,
    changed_by: str | None = Query(default=None, max_length=255),
    service: TaxRateManagementService = Depends(get_management_service),
) -> TaxRate:
    try:
        return service.schedule_rate_change(
            rate_id, data.effective_date, data.changes, changed_by=changed_by
        )
    except TaxRateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None
    except (TaxValidationError, TaxConfigurationError) as e:
        raise HTTPException(status_code=422, detail=str(e)) from None


@router.post(
    "/rates/{rate_id}/expire",
    response_model=TaxRateResponse,
    summary="Expire a tax rate",
    responses={
        401: {"description": "Unauthorized"},
        404: {"description": "Tax rate not found"},
        422: {"description": "Validation error"},
    },
)
async def expire_rate(
    rate_id: UUID,
    data: ExpireRateRequest,
    changed_by: str | None = Query(default=None, max_length=255),
    service: TaxRateManagementService = Depends(get_management_service),
) -> TaxRate:
    try:
        return service.expire_tax_rate(rate_id, data.expiry_date, changed_by=changed_by)
    except TaxRateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None
    except TaxConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from None


# Exemptions


@router.get(
    "/exemptions",
    response_model=list[TaxExemptionResponse],
    summary="List tax exemptions",
    responses={401: {"description": "Unauthorized"}},
)
async def list_exemptions(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    customer_id: UUID | None = Query(default=None),
    status: str | None = Query(default=None),
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> list[TaxExemption]:
    return TaxExemptionRepository(db).get_all(
        organization_id, skip=skip, limit=limit, customer_id=customer_id, status=status
    )


@router.post(
    "/exemptions",
    response_model=TaxExemptionResponse,
    status_code=201,
    summary="Create tax exemption",
    responses={
        401: {"description": "Unauthorized"},
        422: {"description": "Validation error"},
    },
)
async def create_exemption(
    data: TaxExemptionCreate,
    service: TaxRateManagementService = Depends(get_management_service),
) -> TaxExemption:
    try:
        return service.create_exemption(data)
    except TaxConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from None


@router.get(
    "/exemptions/{exemption_id}/usage",
    response_model=list[TaxExemptionUsageResponse],
    summary="List exemption usage",
    responses={
        401: {"description": "Unauthorized"},
        404: {"description": "Tax exemption not found"},
    },
)
async def list_exemption_usage(
    exemption_id: UUID,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> list[TaxExemptionUsage]:
    if not TaxExemptionRepository(db).get_by_id(exemption_id, organization_id):
        raise HTTPException(status_code=404, detail="Tax exemption not found")
    return TaxExemptionUsageRepository(db).get_by_exemption(exemption_id, skip=skip, limit=limit)


# USF versions


@router.get(
    "/usf_rates",
    response_model=list[UsfRateResponse],
    summary="List USF contribution factors",
    responses={401: {"description": "Unauthorized"}},
)
async def list_usf_rates(
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> list[UsfRate]:
    return UsfRateRepository(db).get_all(organization_id)


@router.post(
    "/usf_rates",
    response_model=UsfRateResponse,
    status_code=201,
    summary="Create USF contribution factor version",
    responses={
        401: {"description": "Unauthorized"},
        422: {"description": "Validation error"},
    },
)
async def create_usf_rate(
    data: UsfRateCreate,
    request: Request,
    organization_id: UUID = Depends(get_current_organization),
    service: TaxRateManagementService = Depends(get_management_service),
) -> UsfRate:
    usf_rate = service.create_usf_rate(data)
    usf_provider: UsfRateProvider | None = getattr(request.app.state, "usf_provider", None)
    if usf_provider is not None:
        usf_provider.clear(organization_id)
    return usf_rate
