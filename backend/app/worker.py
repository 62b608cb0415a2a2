import logging
from typing import Any

from arq import cron

from app.core import database
from app.core.cache import build_calculation_cache
from app.core.capabilities import TaxCapabilities
from app.core.config import settings
from app.repositories.organization_repository import OrganizationRepository
from app.services.tax_engine.errors import TaxConfigurationError
from app.services.tax_rate_management_service import TaxRateManagementService
from app.services.tax_rate_sources import validate_rate_sources
from app.tasks import redis_settings

logger = logging.getLogger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    """Validate configured rate sources and build the shared calculation cache."""
    validate_rate_sources(settings.tax_rate_sources)
    ctx["tax_cache"] = build_calculation_cache(settings)
    ctx["tax_capabilities"] = TaxCapabilities.probe(database.engine, settings)
    logger.info("Tax worker started: capabilities=%s", ctx["tax_capabilities"])


async def sync_tax_rates_task(ctx: dict[str, Any]) -> int:
    """Background task: import rates from every configured source for every organization.

    Runs daily. A failing source is logged and skipped.

    Returns:
        Number of rates created or updated.
    """
    sources = settings.tax_rate_sources
    if not sources:
        return 0

    db = database.SessionLocal()
    try:
        total = 0
        for organization in OrganizationRepository(db).get_all():
            service = TaxRateManagementService(
                db,
                organization.id,  # type: ignore[arg-type]
                cache=ctx.get("tax_cache"),
            )
            for source in sources:
                try:
                    result = service.sync_from_source(source, changed_by="system")
                except TaxConfigurationError:
                    logger.exception(
                        "Tax rate source %s failed for organization %s", source, organization.id
                    )
                    continue
                total += result.created + result.updated
        if total > 0:
            logger.info("Synchronized %d tax rates", total)
        return total
    finally:
        db.close()


async def deactivate_expired_tax_rates_task(ctx: dict[str, Any]) -> int:
    """Background task: deactivate rates whose expiry date has passed.

    Runs daily.
    """
    db = database.SessionLocal()
    try:
        count = 0
        for organization in OrganizationRepository(db).get_all():
            service = TaxRateManagementService(
                db,
                organization.id,  # type: ignore[arg-type]
                cache=ctx.get("tax_cache"),
            )
            count += service.deactivate_expired_rates()
        if count > 0:
            logger.info("Deactivated %d expired tax rates", count)
        return count
    finally:
        db.close()


class WorkerSettings:
    functions = [
        sync_tax_rates_task,
        deactivate_expired_tax_rates_task,
    ]
    cron_jobs = [
        cron(sync_tax_rates_task, hour=2, minute=0),  # daily at 02:00
        cron(deactivate_expired_tax_rates_task, hour=0, minute=5),  # daily after midnight
    ]
    on_startup = startup
    redis_settings = redis_settings
