"""Tests for TaxRateManagementService."""

import json
import uuid
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import httpx
import pytest

from app.core.cache import InMemoryCalculationCache, make_cache_key
from app.core.config import settings
from app.core.database import get_db
from app.models.tax_category import TaxCategory
from app.models.tax_jurisdiction import TaxJurisdiction
from app.models.tax_rate import TaxRate
from app.models.tax_rate_history import TaxRateHistory
from app.models.usf_rate import UsfRate
from app.repositories.customer_repository import CustomerRepository
from app.repositories.tax_rate_backup_repository import TaxRateBackupRepository
from app.schemas.customer import CustomerCreate
from app.schemas.tax_category import TaxCategoryCreate
from app.schemas.tax_exemption import TaxExemptionCreate
from app.schemas.tax_jurisdiction import TaxJurisdictionCreate
from app.schemas.tax_rate import TaxRateCreate, TaxRateUpdate
from app.schemas.usf_rate import UsfRateCreate
from app.services.tax_engine.errors import (
    TaxBackupNotFoundError,
    TaxConfigurationError,
    TaxRateNotFoundError,
    TaxValidationError,
)
from app.services.tax_engine.types import TaxCalculationResult
from app.services.tax_rate_management_service import TaxRateManagementService, snapshot_rate
from app.services.tax_rate_sources import (
    fetch_external_api,
    get_rate_source,
    load_json_file,
    validate_rate_sources,
)
from tests.conftest import DEFAULT_ORG_ID


@pytest.fixture
def db_session():
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def cache():
    return InMemoryCalculationCache()


@pytest.fixture
def service(db_session, cache):
    return TaxRateManagementService(db_session, DEFAULT_ORG_ID, cache=cache)


@pytest.fixture
def texas(service):
    return service.create_jurisdiction(
        TaxJurisdictionCreate(jurisdiction_type="state", name="Texas", code="TX", state_code="TX")
    )


@pytest.fixture
def voice(service):
    return service.create_category(
        TaxCategoryCreate(name="Voice", code="voice", service_types=["voip_fixed"])
    )


def _rate_data(jurisdiction, category, **overrides):
    values = {
        "tax_jurisdiction_id": jurisdiction.id,
        "tax_category_id": category.id,
        "tax_type": "state_sales_tax",
        "tax_name": "Texas Sales Tax",
        "rate_type": "percentage",
        "percentage_rate": Decimal("6.25"),
        "effective_date": date(2024, 1, 1),
    }
    values.update(overrides)
    return values


@pytest.fixture
def rate(service, texas, voice):
    return service.create_or_update_tax_rate(
        TaxRateCreate(**_rate_data(texas, voice)), changed_by="admin@example.com"
    )


def _seed_cache(cache):
    key = make_cache_key(
        DEFAULT_ORG_ID,
        Decimal("100"),
        "voip_fixed",
        None,
        None,
        date(2026, 1, 1),
        1,
        Decimal("0"),
        Decimal("1"),
    )
    cache.put(
        key,
        TaxCalculationResult(
            base_amount=Decimal("100"), service_type="voip_fixed", calculation_date=date(2026, 1, 1)
        ),
    )


class TestCreateOrUpdate:
    def test_create_writes_history(self, db_session, rate):
        assert rate.id is not None
        assert rate.percentage_rate == Decimal("6.25")
        history = db_session.query(TaxRateHistory).filter_by(tax_rate_id=rate.id).all()
        assert len(history) == 1
        assert history[0].old_values == {}
        assert Decimal(history[0].new_values["percentage_rate"]) == Decimal("6.25")
        assert history[0].changed_by == "admin@example.com"
        assert history[0].source == "manual"

    def test_update_records_old_and_new_values(self, service, rate):
        updated = service.create_or_update_tax_rate(
            TaxRateUpdate(percentage_rate=Decimal("6.5")),
            rate_id=rate.id,
            changed_by="admin@example.com",
            reason="Legislative change",
        )
        assert updated.percentage_rate == Decimal("6.5")

        history = service.get_tax_rate_history(rate.id)
        assert len(history) == 2
        change = next(h for h in history if h.old_values)
        assert Decimal(change.old_values["percentage_rate"]) == Decimal("6.25")
        assert Decimal(change.new_values["percentage_rate"]) == Decimal("6.5")
        assert change.change_reason == "Legislative change"

    def test_update_invalidates_cache(self, service, cache, rate):
        _seed_cache(cache)
        service.create_or_update_tax_rate(
            TaxRateUpdate(percentage_rate=Decimal("7")), rate_id=rate.id
        )
        assert len(cache) == 0

    def test_update_unknown_rate(self, service):
        with pytest.raises(TaxRateNotFoundError):
            service.create_or_update_tax_rate(TaxRateUpdate(priority=1), rate_id=uuid.uuid4())

    def test_update_that_breaks_rate_is_rejected(self, db_session, service, rate):
        with pytest.raises(TaxConfigurationError, match="fixed_amount"):
            service.create_or_update_tax_rate(TaxRateUpdate(rate_type="fixed"), rate_id=rate.id)
        db_session.refresh(rate)
        assert rate.rate_type == "percentage"

    def test_create_with_unknown_jurisdiction(self, service, voice):
        data = TaxRateCreate(
            **_rate_data(TaxJurisdiction(id=uuid.uuid4()), voice)
        )
        with pytest.raises(TaxConfigurationError, match="jurisdiction"):
            service.create_or_update_tax_rate(data)

    def test_create_requires_full_payload(self, service):
        with pytest.raises(TaxConfigurationError, match="required field"):
            service.create_or_update_tax_rate(TaxRateUpdate(priority=5))


class TestSchemaValidation:
    def test_percentage_rate_required(self, texas, voice):
        with pytest.raises(ValueError, match="percentage_rate is required"):
            TaxRateCreate(**_rate_data(texas, voice, percentage_rate=None))

    def test_tiers_validated(self, texas, voice):
        with pytest.raises(ValueError, match="contiguous"):
            TaxRateCreate(
                **_rate_data(
                    texas,
                    voice,
                    rate_type="tiered",
                    tiers=[
                        {"min": 0, "max": 100, "rate": 5},
                        {"min": 200, "max": None, "rate": 3},
                    ],
                )
            )

    def test_expiry_before_effective(self, texas, voice):
        with pytest.raises(ValueError, match="expiry_date"):
            TaxRateCreate(**_rate_data(texas, voice, expiry_date=date(2023, 1, 1)))


class TestScheduleRateChange:
    def test_past_date_rejected(self, service, rate):
        with pytest.raises(TaxValidationError, match="past"):
            service.schedule_rate_change(
                rate.id,
                date.today() - timedelta(days=1),
                TaxRateUpdate(percentage_rate=Decimal("7")),
            )

    def test_today_updates_in_place(self, db_session, service, rate):
        result = service.schedule_rate_change(
            rate.id, date.today(), TaxRateUpdate(percentage_rate=Decimal("7"))
        )
        assert result.id == rate.id
        assert result.percentage_rate == Decimal("7")
        assert db_session.query(TaxRate).count() == 1

    def test_future_date_creates_new_version(self, db_session, service, rate):
        effective = date.today() + timedelta(days=30)
        new_rate = service.schedule_rate_change(
            rate.id, effective, TaxRateUpdate(percentage_rate=Decimal("7")), changed_by="ops"
        )

        assert new_rate.id != rate.id
        assert new_rate.effective_date == effective
        assert new_rate.percentage_rate == Decimal("7")
        assert new_rate.tax_name == rate.tax_name

        db_session.refresh(rate)
        assert rate.expiry_date == effective - timedelta(days=1)
        assert rate.percentage_rate == Decimal("6.25")

        sources = {h.source for h in db_session.query(TaxRateHistory).all()}
        assert "schedule" in sources


class TestExpiry:
    def test_expire_in_future_keeps_active(self, service, rate):
        expiry = date.today() + timedelta(days=10)
        expired = service.expire_tax_rate(rate.id, expiry)
        assert expired.expiry_date == expiry
        assert expired.is_active is True

    def test_expire_in_past_deactivates(self, service, rate):
        expired = service.expire_tax_rate(rate.id, date(2024, 6, 30))
        assert expired.is_active is False

    def test_deactivate_expired_rates(self, db_session, service, texas, voice, rate):
        stale = service.create_or_update_tax_rate(
            TaxRateCreate(
                **_rate_data(
                    texas,
                    voice,
                    tax_name="Old Surcharge",
                    effective_date=date(2020, 1, 1),
                    expiry_date=date(2021, 1, 1),
                )
            )
        )
        assert service.deactivate_expired_rates() == 1
        db_session.refresh(stale)
        db_session.refresh(rate)
        assert stale.is_active is False
        assert rate.is_active is True
        assert service.deactivate_expired_rates() == 0


class TestBulkImport:
    def test_creates_updates_and_reports_errors(self, db_session, service, texas, voice, rate):
        result = service.bulk_import_tax_rates(
            [
                # same natural key as the existing rate
                _rate_data(texas, voice, percentage_rate="6.30"),
                {
                    "jurisdiction_code": "TX",
                    "category_code": "voice",
                    "tax_type": "e911_fee",
                    "tax_name": "Texas 911 Fee",
                    "rate_type": "per_line",
                    "fixed_amount": "0.50",
                    "effective_date": "2024-01-01",
                },
                {"tax_name": "Missing everything"},
                {
                    "jurisdiction_code": "ZZ",
                    "category_code": "voice",
                    "tax_type": "x",
                    "tax_name": "Unknown",
                    "rate_type": "percentage",
                    "percentage_rate": "1",
                    "effective_date": "2024-01-01",
                },
            ],
            changed_by="importer",
        )

        assert result.created == 1
        assert result.updated == 1
        assert [e.index for e in result.errors] == [2, 3]
        assert "Unknown jurisdiction code ZZ" in result.errors[1].error
        db_session.refresh(rate)
        assert rate.percentage_rate == Decimal("6.30")
        batch = db_session.query(TaxRateHistory).filter_by(batch_id=result.batch_id).all()
        assert len(batch) == 2

    def test_non_object_record_reported_by_index(self, service, texas, voice):
        result = service.bulk_import_tax_rates(
            ["not a rate", _rate_data(texas, voice), ["TX", "voice"], None]
        )
        assert result.created == 1
        assert [e.index for e in result.errors] == [0, 2, 3]
        assert "must be an object, got str" in result.errors[0].error

    def test_reimport_is_an_update(self, service, texas, voice):
        records = [_rate_data(texas, voice)]
        first = service.bulk_import_tax_rates(records)
        second = service.bulk_import_tax_rates(records)
        assert (first.created, first.updated) == (1, 0)
        assert (second.created, second.updated) == (0, 1)


class TestExport:
    def test_export_includes_codes(self, service, rate):
        exported = service.export_tax_rates()
        assert len(exported) == 1
        row = exported[0]
        assert row["id"] == str(rate.id)
        assert row["jurisdiction_code"] == "TX"
        assert row["category_code"] == "voice"
        assert row["jurisdiction_name"] == "Texas"
        json.dumps(exported)

    def test_export_can_be_reimported(self, service, rate):
        result = service.bulk_import_tax_rates(service.export_tax_rates())
        assert (result.created, result.updated, result.errors) == (0, 1, [])


class TestBackupRestore:
    def test_backup_and_restore(self, db_session, service, rate):
        backup = service.create_backup()
        assert backup.rates_count == 1
        assert backup.rates[0]["id"] == str(rate.id)

        service.create_or_update_tax_rate(
            TaxRateUpdate(percentage_rate=Decimal("9")), rate_id=rate.id
        )
        result = service.restore_from_backup(backup.batch_id, changed_by="ops")

        assert result.deactivated == 1
        assert result.restored == 1
        assert result.errors == []
        active = db_session.query(TaxRate).filter(TaxRate.is_active.is_(True)).all()
        assert len(active) == 1
        assert active[0].id != rate.id
        assert active[0].percentage_rate == Decimal("6.25")

    def test_restore_unknown_backup(self, service):
        with pytest.raises(TaxBackupNotFoundError):
            service.restore_from_backup("backup_missing")

    def test_backup_is_organization_scoped(self, db_session, service, rate):
        backup = service.create_backup("backup_fixed_id")
        repo = TaxRateBackupRepository(db_session)
        assert repo.get_by_batch_id("backup_fixed_id", DEFAULT_ORG_ID).id == backup.id
        assert repo.get_by_batch_id("backup_fixed_id", uuid.uuid4()) is None


class TestInitializeDefaults:
    def test_creates_catalog(self, db_session, service):
        result = service.initialize_default_rates()

        federal = db_session.query(TaxJurisdiction).filter_by(code="US-FED").one()
        assert result.jurisdiction_id == federal.id
        assert federal.jurisdiction_type == "federal"
        assert result.categories_created == 7
        data = db_session.query(TaxCategory).filter_by(code="data").one()
        assert data.is_taxable is False
        assert result.usf_rate_created is True

        usf = db_session.query(UsfRate).one()
        today = date.today()
        quarter = (today.month - 1) // 3 + 1
        assert usf.rate == settings.USF_DEFAULT_RATE
        assert usf.effective_date == date(today.year, 3 * quarter - 2, 1)
        assert usf.quarter_label == f"{today.year}-Q{quarter}"
        # Excise tax and USF come from the built-in federal catalog.
        assert db_session.query(TaxRate).count() == 0

    def test_is_idempotent(self, db_session, service):
        service.initialize_default_rates()
        again = service.initialize_default_rates()
        assert again.categories_created == 0
        assert again.usf_rate_created is False
        assert db_session.query(TaxJurisdiction).count() == 1


class TestSyncFromSource:
    def test_unknown_source(self, service):
        with pytest.raises(TaxConfigurationError, match="Unknown tax rate source"):
            service.sync_from_source("carrier_pigeon")

    def test_unconfigured_source(self, service):
        with (
            patch.object(settings, "TAX_EXTERNAL_API_URL", ""),
            pytest.raises(TaxConfigurationError, match="TAX_EXTERNAL_API_URL"),
        ):
            service.sync_from_source("external_api")

    def test_sync_backs_up_then_imports(self, db_session, service, texas, voice, rate):
        payload = [_rate_data(texas, voice, tax_name="Texas 911 Fee", tax_type="e911_fee")]
        payload[0]["tax_jurisdiction_id"] = str(texas.id)
        payload[0]["tax_category_id"] = str(voice.id)
        with patch(
            "app.services.tax_rate_management_service.get_rate_source",
            return_value=MagicMock(return_value=payload),
        ):
            result = service.sync_from_source("external_api", changed_by="system")

        assert result.created == 1
        assert result.batch_id.startswith("external_api_")
        backup = TaxRateBackupRepository(db_session).get_by_batch_id(
            result.batch_id, DEFAULT_ORG_ID
        )
        assert backup is not None
        assert backup.rates_count == 1

    def test_http_failure_is_reported(self, service):
        failing = MagicMock(side_effect=httpx.ConnectError("connection refused"))
        with patch(
            "app.services.tax_rate_management_service.get_rate_source", return_value=failing
        ):
            result = service.sync_from_source("external_api")
        assert result.created == 0
        assert result.errors[0].index == -1
        assert "connection refused" in result.errors[0].error

    def test_non_json_response_raises_configuration_error(self, db_session, service, rate):
        url = "https://rates.example.com/v1/rates"
        client = MagicMock()
        client.get.return_value = httpx.Response(
            200, text="<html>maintenance</html>", request=httpx.Request("GET", url)
        )
        with (
            patch.object(settings, "TAX_EXTERNAL_API_URL", url),
            patch("app.services.tax_rate_sources.httpx.Client") as client_cls,
            pytest.raises(TaxConfigurationError, match="invalid JSON"),
        ):
            client_cls.return_value.__enter__.return_value = client
            service.sync_from_source("external_api")
        assert TaxRateBackupRepository(db_session).get_all(DEFAULT_ORG_ID) == []

    def test_empty_source(self, service):
        with patch(
            "app.services.tax_rate_management_service.get_rate_source",
            return_value=MagicMock(return_value=[]),
        ):
            result = service.sync_from_source("json_file")
        assert (result.created, result.updated, result.errors) == (0, 0, [])


class TestRateSources:
    def test_registry(self):
        assert get_rate_source("external_api") is fetch_external_api
        assert get_rate_source("json_file") is load_json_file
        assert validate_rate_sources(["json_file"]) == ["json_file"]
        with pytest.raises(TaxConfigurationError, match="ftp"):
            validate_rate_sources(["json_file", "ftp"])

    def test_fetch_external_api(self):
        config = settings.model_copy(
            update={
                "TAX_EXTERNAL_API_URL": "https://rates.example.com/v1/rates",
                "TAX_EXTERNAL_API_KEY": "secret",
            }
        )
        response = MagicMock()
        response.json.return_value = {"data": [{"tax_name": "A"}]}
        client = MagicMock()
        client.get.return_value = response
        with patch("app.services.tax_rate_sources.httpx.Client") as client_cls:
            client_cls.return_value.__enter__.return_value = client
            rates = fetch_external_api(config, DEFAULT_ORG_ID)

        assert rates == [{"tax_name": "A"}]
        _, kwargs = client.get.call_args
        assert kwargs["headers"]["Authorization"] == "Bearer secret"
        assert kwargs["params"]["organization_id"] == str(DEFAULT_ORG_ID)
        response.raise_for_status.assert_called_once()

    def test_fetch_external_api_invalid_json(self):
        url = "https://rates.example.com/v1/rates"
        config = settings.model_copy(update={"TAX_EXTERNAL_API_URL": url})
        client = MagicMock()
        client.get.return_value = httpx.Response(
            200, text="<html>maintenance</html>", request=httpx.Request("GET", url)
        )
        with (
            patch("app.services.tax_rate_sources.httpx.Client") as client_cls,
            pytest.raises(TaxConfigurationError, match="invalid JSON"),
        ):
            client_cls.return_value.__enter__.return_value = client
            fetch_external_api(config, DEFAULT_ORG_ID)

    def test_load_json_file(self, tmp_path):
        path = tmp_path / "rates.json"
        path.write_text(json.dumps({"rates": [{"tax_name": "B"}]}), encoding="utf-8")
        config = settings.model_copy(update={"TAX_RATE_IMPORT_PATH": str(path)})
        assert load_json_file(config, DEFAULT_ORG_ID) == [{"tax_name": "B"}]

    def test_load_json_file_unreadable(self, tmp_path):
        path = tmp_path / "rates.json"
        path.write_text("not json", encoding="utf-8")
        config = settings.model_copy(update={"TAX_RATE_IMPORT_PATH": str(path)})
        with pytest.raises(TaxConfigurationError, match="Cannot read"):
            load_json_file(config, DEFAULT_ORG_ID)


class TestOtherCatalogEntities:
    def test_create_exemption_requires_customer(self, service):
        with pytest.raises(TaxConfigurationError, match="Customer"):
            service.create_exemption(
                TaxExemptionCreate(
                    customer_id=uuid.uuid4(), exemption_name="Ghost", is_blanket_exemption=True
                )
            )

    def test_create_exemption(self, db_session, service, texas):
        customer = CustomerRepository(db_session).create(
            CustomerCreate(external_id="exempt-1", name="Exempt"), DEFAULT_ORG_ID
        )
        exemption = service.create_exemption(
            TaxExemptionCreate(
                customer_id=customer.id,
                tax_jurisdiction_id=texas.id,
                exemption_name="Texas resale",
                applicable_tax_types=["state_sales_tax"],
                exemption_conditions=[{"type": "minimum_amount", "value": "50"}],
            )
        )
        assert exemption.exemption_conditions == [
            {"type": "minimum_amount", "operator": ">=", "value": "50"}
        ]

    def test_scoped_exemption_needs_jurisdiction(self):
        with pytest.raises(ValueError, match="tax_jurisdiction_id is required"):
            TaxExemptionCreate(
                customer_id=uuid.uuid4(),
                exemption_name="Scoped",
                applicable_tax_types=["state_sales_tax"],
            )

    def test_create_usf_rate_invalidates_cache(self, service, cache):
        _seed_cache(cache)
        usf = service.create_usf_rate(
            UsfRateCreate(rate=Decimal("36.6"), effective_date=date(2026, 4, 1))
        )
        assert usf.rate == Decimal("36.6")
        assert len(cache) == 0


def test_snapshot_is_json_safe(rate):
    snapshot = snapshot_rate(rate)
    json.dumps(snapshot)
    assert snapshot["effective_date"] == "2024-01-01"
    assert snapshot["tax_jurisdiction_id"] == str(rate.tax_jurisdiction_id)
