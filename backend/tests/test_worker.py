"""Tests for worker background tasks and cron job registration."""

from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from app.core.cache import InMemoryCalculationCache
from app.core.config import settings
from app.core.database import get_db
from app.repositories.tax_category_repository import TaxCategoryRepository
from app.repositories.tax_jurisdiction_repository import TaxJurisdictionRepository
from app.repositories.tax_rate_repository import TaxRateRepository
from app.schemas.tax_category import TaxCategoryCreate
from app.schemas.tax_jurisdiction import TaxJurisdictionCreate
from app.schemas.tax_rate import BulkImportResult, TaxRateCreate
from app.services.tax_engine.errors import TaxConfigurationError
from app.worker import (
    WorkerSettings,
    deactivate_expired_tax_rates_task,
    startup,
    sync_tax_rates_task,
)
from tests.conftest import DEFAULT_ORG_ID


@pytest.fixture
def db_session():
    """Create a database session for testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


def _create_rate(db_session, expiry_date, is_active=True):
    jurisdiction = TaxJurisdictionRepository(db_session).create(
        TaxJurisdictionCreate(jurisdiction_type="state", name="Ohio", state_code="OH"),
        DEFAULT_ORG_ID,
    )
    category = TaxCategoryRepository(db_session).create(
        TaxCategoryCreate(name="Local", code="local", service_types=["local"]), DEFAULT_ORG_ID
    )
    data = TaxRateCreate(
        tax_jurisdiction_id=jurisdiction.id,
        tax_category_id=category.id,
        tax_type="state_sales_tax",
        tax_name="Ohio Sales Tax",
        rate_type="percentage",
        percentage_rate=Decimal("5.75"),
        effective_date=date(2024, 1, 1),
        expiry_date=expiry_date,
        is_active=is_active,
    )
    return TaxRateRepository(db_session).create(data.to_model_values(), DEFAULT_ORG_ID)


class TestSyncTaxRatesTask:
    """Tests for the sync_tax_rates_task worker function."""

    @pytest.mark.asyncio
    async def test_returns_zero_without_sources(self):
        with (
            patch.object(settings, "TAX_RATE_SOURCES", ""),
            patch("app.worker.TaxRateManagementService") as mock_cls,
        ):
            result = await sync_tax_rates_task({})

        assert result == 0
        mock_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_syncs_each_source(self, db_session):
        """Created and updated counts are summed across sources."""
        mock_service = MagicMock()
        mock_service.sync_from_source.return_value = BulkImportResult(
            batch_id="json_file-1", created=2, updated=1
        )

        with (
            patch.object(settings, "TAX_RATE_SOURCES", "json_file"),
            patch("app.worker.TaxRateManagementService", return_value=mock_service) as mock_cls,
        ):
            result = await sync_tax_rates_task({"tax_cache": None})

        assert result == 3
        mock_service.sync_from_source.assert_called_once_with("json_file", changed_by="system")
        assert mock_cls.call_args[0][1] == DEFAULT_ORG_ID

    @pytest.mark.asyncio
    async def test_unconfigured_source_is_skipped(self, db_session):
        mock_service = MagicMock()
        mock_service.sync_from_source.side_effect = [
            TaxConfigurationError("TAX_EXTERNAL_API_URL is not configured"),
            BulkImportResult(batch_id="json_file-1", created=4),
        ]

        with (
            patch.object(settings, "TAX_RATE_SOURCES", "external_api,json_file"),
            patch("app.worker.TaxRateManagementService", return_value=mock_service),
        ):
            result = await sync_tax_rates_task({})

        assert result == 4
        assert mock_service.sync_from_source.call_count == 2

    @pytest.mark.asyncio
    async def test_passes_worker_cache_to_service(self, db_session):
        cache = InMemoryCalculationCache()
        mock_service = MagicMock()
        mock_service.sync_from_source.return_value = BulkImportResult(batch_id="b")

        with (
            patch.object(settings, "TAX_RATE_SOURCES", "json_file"),
            patch("app.worker.TaxRateManagementService", return_value=mock_service) as mock_cls,
        ):
            await sync_tax_rates_task({"tax_cache": cache})

        assert mock_cls.call_args.kwargs["cache"] is cache


class TestDeactivateExpiredTaxRatesTask:
    """Tests for the deactivate_expired_tax_rates_task worker function."""

    @pytest.mark.asyncio
    async def test_deactivates_expired_rates(self, db_session):
        rate = _create_rate(db_session, expiry_date=date.today() - timedelta(days=1))

        result = await deactivate_expired_tax_rates_task({})

        assert result == 1
        db_session.expire_all()
        assert TaxRateRepository(db_session).get_by_id(rate.id).is_active is False

    @pytest.mark.asyncio
    async def test_leaves_current_rates(self, db_session):
        rate = _create_rate(db_session, expiry_date=date.today() + timedelta(days=30))

        result = await deactivate_expired_tax_rates_task({})

        assert result == 0
        db_session.expire_all()
        assert TaxRateRepository(db_session).get_by_id(rate.id).is_active is True

    @pytest.mark.asyncio
    async def test_invalidates_cache(self, db_session):
        _create_rate(db_session, expiry_date=date.today() - timedelta(days=1))
        cache = MagicMock()

        await deactivate_expired_tax_rates_task({"tax_cache": cache})

        cache.invalidate.assert_called_once_with(DEFAULT_ORG_ID)


class TestStartup:
    @pytest.mark.asyncio
    async def test_builds_cache_and_capabilities(self):
        ctx: dict = {}
        with patch.object(settings, "TAX_CACHE_BACKEND", "memory"):
            await startup(ctx)

        assert isinstance(ctx["tax_cache"], InMemoryCalculationCache)
        assert ctx["tax_capabilities"].exemptions is True

    @pytest.mark.asyncio
    async def test_rejects_unknown_rate_source(self):
        with (
            patch.object(settings, "TAX_RATE_SOURCES", "carrier_pigeon"),
            pytest.raises(TaxConfigurationError, match="carrier_pigeon"),
        ):
            await startup({})


class TestWorkerSettings:
    """Tests for WorkerSettings configuration."""

    def test_functions_registered(self):
        func_names = [f.__name__ for f in WorkerSettings.functions]
        assert func_names == ["sync_tax_rates_task", "deactivate_expired_tax_rates_task"]

    def test_sync_cron_runs_daily(self):
        job = next(
            j for j in WorkerSettings.cron_jobs if j.coroutine.__name__ == "sync_tax_rates_task"
        )
        assert job.hour == 2
        assert job.minute == 0

    def test_deactivate_cron_runs_after_midnight(self):
        job = next(
            j
            for j in WorkerSettings.cron_jobs
            if j.coroutine.__name__ == "deactivate_expired_tax_rates_task"
        )
        assert job.hour == 0
        assert job.minute == 5

    def test_startup_hook(self):
        assert WorkerSettings.on_startup is startup

    def test_redis_settings_configured(self):
        """Test that redis settings are properly configured."""
        from app.tasks import redis_settings

        assert WorkerSettings.redis_settings is redis_settings
