"""Tests for TaxCalculationService."""

import uuid
from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from app.core.cache import InMemoryCalculationCache
from app.core.capabilities import TaxCapabilities
from app.core.config import settings
from app.core.database import get_db
from app.models.tax_exemption_usage import TaxExemptionUsage
from app.repositories.customer_repository import CustomerRepository
from app.repositories.tax_category_repository import TaxCategoryRepository
from app.repositories.tax_exemption_repository import TaxExemptionRepository
from app.repositories.tax_jurisdiction_repository import TaxJurisdictionRepository
from app.repositories.tax_rate_repository import TaxRateRepository
from app.repositories.usf_rate_repository import UsfRateRepository
from app.schemas.customer import CustomerCreate
from app.schemas.tax_category import TaxCategoryCreate
from app.schemas.tax_exemption import TaxExemptionCreate
from app.schemas.tax_jurisdiction import TaxJurisdictionCreate
from app.schemas.tax_rate import TaxRateCreate
from app.schemas.usf_rate import UsfRateCreate
from app.services.tax_engine.errors import TaxDependencyError, TaxValidationError
from app.services.tax_engine.federal import UsfRateProvider
from app.services.tax_service import TaxCalculationService
from tests.conftest import DEFAULT_ORG_ID

CA_ADDRESS = {"line1": "200 N Spring St", "city": "Los Angeles", "state": "CA", "zip": "90012"}


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
def tax_service(db_session):
    return TaxCalculationService(db_session)


@pytest.fixture
def federal(db_session):
    return TaxJurisdictionRepository(db_session).create(
        TaxJurisdictionCreate(
            jurisdiction_type="federal", name="United States Federal", code="US-FED", priority=1
        ),
        DEFAULT_ORG_ID,
    )


@pytest.fixture
def california(db_session):
    return TaxJurisdictionRepository(db_session).create(
        TaxJurisdictionCreate(jurisdiction_type="state", name="California", state_code="CA"),
        DEFAULT_ORG_ID,
    )


@pytest.fixture
def los_angeles(db_session):
    return TaxJurisdictionRepository(db_session).create(
        TaxJurisdictionCreate(
            jurisdiction_type="city", name="Los Angeles", city_name="Los Angeles"
        ),
        DEFAULT_ORG_ID,
    )


@pytest.fixture
def categories(db_session):
    repo = TaxCategoryRepository(db_session)
    return {
        "voice": repo.create(
            TaxCategoryCreate(
                name="Voice",
                code="voice",
                service_types=[
                    "local",
                    "long_distance",
                    "international",
                    "voip_fixed",
                    "voip_nomadic",
                ],
                priority=10,
            ),
            DEFAULT_ORG_ID,
        ),
        "data": repo.create(
            TaxCategoryCreate(
                name="Data Services",
                code="data",
                service_types=["data"],
                is_taxable=False,
                priority=20,
            ),
            DEFAULT_ORG_ID,
        ),
        "equipment": repo.create(
            TaxCategoryCreate(
                name="Equipment", code="equipment", service_types=["equipment"], priority=30
            ),
            DEFAULT_ORG_ID,
        ),
    }


@pytest.fixture
def customer(db_session):
    return CustomerRepository(db_session).create(
        CustomerCreate(external_id=f"voip_cust_{uuid.uuid4()}", name="Acme Telecom"),
        DEFAULT_ORG_ID,
    )


def _create_rate(db_session, jurisdiction, category, **overrides):
    values = {
        "tax_jurisdiction_id": jurisdiction.id,
        "tax_category_id": category.id,
        "tax_type": "state_sales_tax",
        "tax_name": "Sales Tax",
        "rate_type": "percentage",
        "percentage_rate": Decimal("5"),
        "effective_date": date(2020, 1, 1),
    }
    values.update(overrides)
    return TaxRateRepository(db_session).create(
        TaxRateCreate(**values).to_model_values(), DEFAULT_ORG_ID
    )


def _create_exemption(db_session, customer, **overrides):
    values = {
        "customer_id": customer.id,
        "exemption_name": "Reseller Certificate",
        "is_blanket_exemption": True,
    }
    values.update(overrides)
    return TaxExemptionRepository(db_session).create(TaxExemptionCreate(**values), DEFAULT_ORG_ID)


class TestFederalTaxes:
    def test_federal_only_without_address(self, tax_service, federal, categories):
        result = tax_service.calculate_tax(DEFAULT_ORG_ID, Decimal("100"), "voip_fixed")

        assert [line.tax_type for line in result.federal_taxes] == [
            "federal_excise_tax",
            "universal_service_fund",
        ]
        fet, usf = result.federal_taxes
        assert fet.tax_amount == Decimal("3.0000")
        assert fet.tax_code == "FET"
        assert fet.authority == "Internal Revenue Service"
        assert usf.tax_amount == Decimal("33.4000")
        assert usf.jurisdiction_id == federal.id
        assert result.state_taxes == ()
        assert result.local_taxes == ()
        assert result.total_tax_amount == Decimal("36.40")
        assert result.final_amount == Decimal("136.40")
        assert result.effective_tax_rate == Decimal("36.4000")
        assert [j.id for j in result.jurisdictions] == [federal.id]
        assert result.tax_category == "Voice"

    def test_excise_tax_threshold_is_strict(self, tax_service, federal, categories):
        at_threshold = tax_service.calculate_tax(DEFAULT_ORG_ID, "0.20", "voip_fixed")
        assert "federal_excise_tax" not in [line.tax_type for line in at_threshold.federal_taxes]

        above = tax_service.calculate_tax(DEFAULT_ORG_ID, "0.21", "voip_fixed")
        fet = next(line for line in above.federal_taxes if line.tax_type == "federal_excise_tax")
        assert fet.tax_amount == Decimal("0.0063")
        # 0.0063 + 0.0701 rounds once, at the end
        assert above.total_tax_amount == Decimal("0.08")

    def test_international_pays_usf_but_not_excise(self, tax_service, federal, categories):
        result = tax_service.calculate_tax(DEFAULT_ORG_ID, 100, "international")
        assert [line.tax_type for line in result.federal_taxes] == ["universal_service_fund"]

    def test_usf_version_from_database(self, db_session, tax_service, federal, categories):
        UsfRateRepository(db_session).create(
            UsfRateCreate(rate=Decimal("30"), effective_date=date(2026, 1, 1)), DEFAULT_ORG_ID
        )
        result = tax_service.calculate_tax(
            DEFAULT_ORG_ID, 100, "voip_fixed", calculation_date=date(2026, 2, 1)
        )
        usf = result.federal_taxes[1]
        assert usf.rate_value == Decimal("30")
        assert usf.tax_amount == Decimal("30.0000")

    def test_usf_default_before_first_version(self, db_session, tax_service, federal, categories):
        UsfRateRepository(db_session).create(
            UsfRateCreate(rate=Decimal("30"), effective_date=date(2026, 1, 1)), DEFAULT_ORG_ID
        )
        result = tax_service.calculate_tax(
            DEFAULT_ORG_ID, 100, "voip_fixed", calculation_date=date(2025, 12, 31)
        )
        assert result.federal_taxes[1].rate_value == settings.USF_DEFAULT_RATE

    def test_usf_version_starting_mid_quarter(
        self, db_session, tax_service, federal, categories
    ):
        repo = UsfRateRepository(db_session)
        repo.create(
            UsfRateCreate(rate=Decimal("30"), effective_date=date(2026, 10, 1)), DEFAULT_ORG_ID
        )
        repo.create(
            UsfRateCreate(rate=Decimal("40"), effective_date=date(2026, 10, 15)), DEFAULT_ORG_ID
        )
        before = tax_service.calculate_tax(
            DEFAULT_ORG_ID, 100, "voip_fixed", calculation_date=date(2026, 10, 10)
        )
        after = tax_service.calculate_tax(
            DEFAULT_ORG_ID, 100, "voip_fixed", calculation_date=date(2026, 10, 20)
        )
        assert before.federal_taxes[1].tax_amount == Decimal("30.0000")
        assert after.federal_taxes[1].tax_amount == Decimal("40.0000")

    def test_usf_memo_expires(self, db_session, federal, categories):
        service = TaxCalculationService(db_session, usf_provider=UsfRateProvider(ttl=0))
        first = service.calculate_tax(
            DEFAULT_ORG_ID, 100, "voip_fixed", calculation_date=date(2026, 11, 1)
        )
        UsfRateRepository(db_session).create(
            UsfRateCreate(rate=Decimal("30"), effective_date=date(2026, 10, 1)), DEFAULT_ORG_ID
        )
        second = service.calculate_tax(
            DEFAULT_ORG_ID, 100, "voip_fixed", calculation_date=date(2026, 11, 1)
        )
        assert first.federal_taxes[1].rate_value == settings.USF_DEFAULT_RATE
        assert second.federal_taxes[1].rate_value == Decimal("30")

    def test_usf_memo_reused_within_ttl(self, db_session, federal, categories):
        provider = UsfRateProvider()
        with patch.object(
            UsfRateRepository, "get_effective", return_value=None
        ) as get_effective:
            provider.rate_for(db_session, DEFAULT_ORG_ID, date(2026, 11, 1))
            provider.rate_for(db_session, DEFAULT_ORG_ID, date(2026, 11, 1))
        assert get_effective.call_count == 1

    def test_federal_database_rates_skip_catalog_types(
        self, db_session, tax_service, federal, categories
    ):
        _create_rate(
            db_session,
            federal,
            categories["voice"],
            tax_type="federal_excise_tax",
            tax_name="Duplicate Excise",
            percentage_rate=Decimal("3"),
        )
        _create_rate(
            db_session,
            federal,
            categories["voice"],
            tax_type="trs_fee",
            tax_name="TRS Fund",
            percentage_rate=Decimal("1"),
        )
        result = tax_service.calculate_tax(DEFAULT_ORG_ID, 100, "voip_fixed")
        assert [line.tax_name for line in result.federal_taxes] == [
            "Federal Excise Tax",
            "Universal Service Fund",
            "TRS Fund",
        ]
        assert result.total_tax_amount == Decimal("37.40")


class TestLayeredTaxes:
    def test_state_and_city_lines(
        self, db_session, tax_service, federal, california, los_angeles, categories
    ):
        _create_rate(db_session, california, categories["equipment"])
        _create_rate(
            db_session,
            los_angeles,
            categories["equipment"],
            tax_type="city_utility_tax",
            tax_name="Utility Users Tax",
        )

        result = tax_service.calculate_tax(
            DEFAULT_ORG_ID, Decimal("200"), "equipment", service_address=CA_ADDRESS
        )

        assert result.federal_taxes == ()
        assert [line.tax_amount for line in result.state_taxes] == [Decimal("10.0000")]
        assert [line.tax_amount for line in result.local_taxes] == [Decimal("10.0000")]
        assert result.local_taxes[0].jurisdiction_type == "city"
        assert result.total_tax_amount == Decimal("20.00")
        assert [j.name for j in result.jurisdictions] == [
            "United States Federal",
            "California",
            "Los Angeles",
        ]

    def test_partial_state_exemption(
        self, db_session, tax_service, federal, california, los_angeles, categories, customer
    ):
        _create_rate(db_session, california, categories["equipment"])
        _create_rate(
            db_session,
            los_angeles,
            categories["equipment"],
            tax_type="city_utility_tax",
            tax_name="Utility Users Tax",
        )
        exemption = _create_exemption(
            db_session,
            customer,
            is_blanket_exemption=False,
            tax_jurisdiction_id=california.id,
            applicable_tax_types=["state_sales_tax"],
            exemption_percentage=Decimal("50"),
        )

        result = tax_service.calculate_tax(
            DEFAULT_ORG_ID,
            Decimal("200"),
            "equipment",
            service_address=CA_ADDRESS,
            customer_id=customer.id,
        )

        state_line = result.state_taxes[0]
        assert state_line.computed_tax_amount == Decimal("10.0000")
        assert state_line.tax_amount == Decimal("5.0000")
        assert state_line.exempted_amount == Decimal("5.0000")
        assert result.local_taxes[0].tax_amount == Decimal("10.0000")
        assert result.total_tax_amount == Decimal("15.00")
        assert len(result.exemptions_applied) == 1
        assert result.exemptions_applied[0].exemption_id == exemption.id

    def test_blanket_exemption_applies_everywhere(
        self, db_session, tax_service, federal, california, categories, customer
    ):
        _create_rate(db_session, california, categories["voice"])
        _create_exemption(db_session, customer)

        result = tax_service.calculate_tax(
            DEFAULT_ORG_ID, 100, "voip_fixed", service_address=CA_ADDRESS, customer_id=customer.id
        )

        assert result.total_tax_amount == Decimal("0.00")
        assert len(result.exemptions_applied) == 3
        assert all(line.tax_amount == 0 for line in result.tax_breakdown)

    def test_exemptions_disabled(
        self, db_session, federal, california, categories, customer
    ):
        _create_rate(db_session, california, categories["voice"])
        _create_exemption(db_session, customer)
        service = TaxCalculationService(
            db_session, capabilities=TaxCapabilities(exemptions=False, exemption_usage=False)
        )
        result = service.calculate_tax(
            DEFAULT_ORG_ID, 100, "voip_fixed", service_address=CA_ADDRESS, customer_id=customer.id
        )
        assert result.exemptions_applied == ()
        assert result.total_tax_amount == Decimal("41.40")

    def test_tiered_rate(self, db_session, tax_service, federal, california, categories):
        _create_rate(
            db_session,
            california,
            categories["equipment"],
            rate_type="tiered",
            percentage_rate=None,
            tiers=[
                {"min": "0", "max": "100", "rate": "5"},
                {"min": "100", "max": None, "rate": "2.5"},
            ],
        )
        result = tax_service.calculate_tax(
            DEFAULT_ORG_ID, Decimal("300"), "equipment", service_address=CA_ADDRESS
        )
        assert result.total_tax_amount == Decimal("10.00")

    def test_per_line_and_per_minute_rates(
        self, db_session, tax_service, federal, california, categories
    ):
        _create_rate(
            db_session,
            california,
            categories["equipment"],
            tax_type="e911_fee",
            tax_name="E911 Fee",
            rate_type="per_line",
            percentage_rate=None,
            fixed_amount=Decimal("0.75"),
            priority=10,
        )
        _create_rate(
            db_session,
            california,
            categories["equipment"],
            tax_type="usage_surcharge",
            tax_name="Usage Surcharge",
            rate_type="per_minute",
            percentage_rate=None,
            fixed_amount=Decimal("0.001"),
            priority=20,
        )
        result = tax_service.calculate_tax(
            DEFAULT_ORG_ID,
            50,
            "equipment",
            service_address=CA_ADDRESS,
            line_count=4,
            minutes=1000,
        )
        assert [line.tax_amount for line in result.state_taxes] == [
            Decimal("3.0000"),
            Decimal("1.0000"),
        ]

    def test_service_type_filter_on_rate(
        self, db_session, tax_service, federal, california, categories
    ):
        _create_rate(
            db_session, california, categories["voice"], service_types=["voip_nomadic"]
        )
        fixed = tax_service.calculate_tax(
            DEFAULT_ORG_ID, 100, "voip_fixed", service_address=CA_ADDRESS
        )
        nomadic = tax_service.calculate_tax(
            DEFAULT_ORG_ID, 100, "voip_nomadic", service_address=CA_ADDRESS
        )
        assert fixed.state_taxes == ()
        assert len(nomadic.state_taxes) == 1

    def test_expired_rate_not_applied(
        self, db_session, tax_service, federal, california, categories
    ):
        _create_rate(
            db_session, california, categories["equipment"], expiry_date=date(2021, 1, 1)
        )
        result = tax_service.calculate_tax(
            DEFAULT_ORG_ID, 100, "equipment", service_address=CA_ADDRESS
        )
        assert result.total_tax_amount == Decimal("0.00")

    def test_customer_without_address_is_federal_only(
        self, db_session, tax_service, federal, california, categories
    ):
        customer = CustomerRepository(db_session).create(
            CustomerCreate(
                external_id="ca_customer", name="CA Customer", service_address={"state": "CA"}
            ),
            DEFAULT_ORG_ID,
        )
        _create_rate(db_session, california, categories["equipment"])
        result = tax_service.calculate_tax(
            DEFAULT_ORG_ID, 100, "equipment", customer_id=customer.id
        )
        assert result.state_taxes == ()
        assert result.local_taxes == ()
        assert [j.id for j in result.jurisdictions] == [federal.id]

    def test_misconfigured_rate_reported_in_metadata(
        self, db_session, tax_service, federal, california, categories
    ):
        rate = _create_rate(db_session, california, categories["equipment"])
        TaxRateRepository(db_session).update(rate, {"percentage_rate": None})
        result = tax_service.calculate_tax(
            DEFAULT_ORG_ID, 100, "equipment", service_address=CA_ADDRESS
        )
        assert result.state_taxes == ()
        assert result.metadata["skipped_rates"] == ["Sales Tax"]


class TestUntaxedServices:
    def test_unmatched_service_type(self, tax_service, federal, categories):
        result = tax_service.calculate_tax(DEFAULT_ORG_ID, 100, "fax")
        assert result.total_tax_amount == Decimal("0.00")
        assert result.tax_breakdown == []
        assert result.tax_category is None
        assert [j.id for j in result.jurisdictions] == [federal.id]

    def test_non_taxable_category(self, tax_service, federal, categories):
        result = tax_service.calculate_tax(DEFAULT_ORG_ID, 100, "data")
        assert result.total_tax_amount == Decimal("0.00")
        assert result.tax_category == "Data Services"
        assert result.final_amount == Decimal("100")

    def test_zero_amount(self, tax_service, federal, categories):
        result = tax_service.calculate_tax(DEFAULT_ORG_ID, 0, "voip_fixed")
        assert result.total_tax_amount == Decimal("0.00")
        assert result.effective_tax_rate == Decimal("0")


class TestValidation:
    @pytest.mark.parametrize(
        ("kwargs", "message"),
        [
            ({"amount": -1}, "non-negative"),
            ({"amount": "abc"}, "numeric"),
            ({"amount": "NaN"}, "finite"),
            ({"amount": True}, "numeric"),
            ({"service_type": "  "}, "service_type"),
            ({"line_count": 0}, "line_count"),
            ({"minutes": -5}, "minutes"),
            ({"quantity": -1}, "quantity"),
        ],
    )
    def test_rejects_malformed_input(self, tax_service, kwargs, message):
        params = {"amount": 100, "service_type": "voip_fixed"}
        params.update(kwargs)
        with pytest.raises(TaxValidationError, match=message):
            tax_service.calculate_tax(DEFAULT_ORG_ID, **params)


class TestCaching:
    def test_cache_hit_returns_stored_result(self, db_session, federal, categories):
        cache = InMemoryCalculationCache()
        service = TaxCalculationService(db_session, cache=cache)

        first = service.calculate_tax(DEFAULT_ORG_ID, 100, "voip_fixed")
        with patch.object(service.jurisdiction_resolver, "resolve") as resolve:
            second = service.calculate_tax(DEFAULT_ORG_ID, 100, "voip_fixed")

        assert second == first
        resolve.assert_not_called()
        assert len(cache) == 1

    def test_clear_cache_for_organization(self, db_session, federal, categories):
        cache = InMemoryCalculationCache()
        service = TaxCalculationService(db_session, cache=cache)
        service.calculate_tax(DEFAULT_ORG_ID, 100, "voip_fixed")
        service.calculate_tax(DEFAULT_ORG_ID, 200, "voip_fixed")

        assert service.clear_cache(DEFAULT_ORG_ID) == 2
        assert len(cache) == 0

    def test_clear_cache_without_cache(self, tax_service):
        assert tax_service.clear_cache(DEFAULT_ORG_ID) == 0


class TestFallback:
    def test_dependency_failure_without_fallback_raises(self, tax_service, federal, categories):
        with (
            patch.object(settings, "TAX_FALLBACK_RATE", None),
            patch.object(
                tax_service.jurisdiction_resolver,
                "resolve",
                side_effect=SQLAlchemyError("database is locked"),
            ),
            pytest.raises(TaxDependencyError, match="database is locked"),
        ):
            tax_service.calculate_tax(DEFAULT_ORG_ID, 100, "voip_fixed")

    def test_fallback_rate_used_and_not_cached(self, db_session, federal, categories):
        cache = InMemoryCalculationCache()
        service = TaxCalculationService(db_session, cache=cache)
        with (
            patch.object(settings, "TAX_FALLBACK_RATE", Decimal("5")),
            patch.object(
                service.jurisdiction_resolver,
                "resolve",
                side_effect=SQLAlchemyError("database is locked"),
            ),
        ):
            result = service.calculate_tax(DEFAULT_ORG_ID, 100, "voip_fixed")

        assert result.is_fallback is True
        assert "database is locked" in result.fallback_reason
        assert [line.tax_type for line in result.federal_taxes] == ["estimated_tax"]
        assert result.total_tax_amount == Decimal("5.00")
        assert len(cache) == 0

    def test_session_usable_after_fallback(self, db_session, tax_service, federal, categories):
        error = OperationalError("SELECT", {}, Exception("database is locked"))
        with (
            patch.object(settings, "TAX_FALLBACK_RATE", Decimal("5")),
            patch.object(TaxJurisdictionRepository, "get_active_federal", side_effect=error),
            patch.object(db_session, "rollback", wraps=db_session.rollback) as rollback,
        ):
            result = tax_service.calculate_tax(DEFAULT_ORG_ID, 100, "voip_fixed")

        assert result.is_fallback is True
        rollback.assert_called_once()
        customer = CustomerRepository(db_session).create(
            CustomerCreate(external_id="after_fallback", name="Billed Anyway"), DEFAULT_ORG_ID
        )
        assert CustomerRepository(db_session).get_by_id(customer.id, DEFAULT_ORG_ID) is not None

    def test_usf_lookup_failure_rolls_back(self, db_session, tax_service, federal, categories):
        error = OperationalError("SELECT", {}, Exception("database is locked"))
        with (
            patch.object(settings, "TAX_FALLBACK_RATE", Decimal("5")),
            patch.object(UsfRateRepository, "get_effective", side_effect=error),
            patch.object(db_session, "rollback", wraps=db_session.rollback) as rollback,
        ):
            result = tax_service.calculate_tax(DEFAULT_ORG_ID, 100, "voip_fixed")

        assert result.is_fallback is True
        assert "USF rate lookup failed" in result.fallback_reason
        rollback.assert_called_once()

    def test_timeout_is_a_dependency_failure(self, tax_service, federal, categories):
        with (
            patch.object(settings, "TAX_FALLBACK_RATE", None),
            patch.object(settings, "TAX_CALCULATION_TIMEOUT_SECONDS", -1.0),
            pytest.raises(TaxDependencyError, match="timed out"),
        ):
            tax_service.calculate_tax(DEFAULT_ORG_ID, 100, "voip_fixed")


class TestExemptionUsage:
    @pytest.fixture
    def exempt_result(self, db_session, tax_service, federal, california, categories, customer):
        _create_rate(db_session, california, categories["voice"])
        _create_exemption(db_session, customer)
        return tax_service.calculate_tax(
            DEFAULT_ORG_ID, 100, "voip_fixed", service_address=CA_ADDRESS, customer_id=customer.id
        )

    def test_records_each_applied_exemption(self, db_session, tax_service, customer, exempt_result):
        invoice_id = uuid.uuid4()
        usages = tax_service.record_exemption_usage(
            DEFAULT_ORG_ID, exempt_result, customer_id=customer.id, invoice_id=invoice_id
        )
        assert len(usages) == 3
        assert {u.tax_type for u in usages} == {
            "federal_excise_tax",
            "universal_service_fund",
            "state_sales_tax",
        }
        assert all(u.document_type == "invoice" for u in usages)
        assert all(u.final_tax_amount == 0 for u in usages)

    def test_recording_is_idempotent(self, db_session, tax_service, customer, exempt_result):
        quote_id = uuid.uuid4()
        first = tax_service.record_exemption_usage(
            DEFAULT_ORG_ID, exempt_result, customer_id=customer.id, quote_id=quote_id
        )
        second = tax_service.record_exemption_usage(
            DEFAULT_ORG_ID, exempt_result, customer_id=customer.id, quote_id=quote_id
        )
        assert {u.id for u in first} == {u.id for u in second}
        assert db_session.query(TaxExemptionUsage).count() == 3

    def test_requires_exactly_one_document(self, tax_service, exempt_result):
        with pytest.raises(TaxValidationError, match="Exactly one"):
            tax_service.record_exemption_usage(DEFAULT_ORG_ID, exempt_result)
        with pytest.raises(TaxValidationError, match="Exactly one"):
            tax_service.record_exemption_usage(
                DEFAULT_ORG_ID, exempt_result, invoice_id=uuid.uuid4(), quote_id=uuid.uuid4()
            )

    def test_nothing_recorded_without_exemptions(self, tax_service, federal, categories):
        result = tax_service.calculate_tax(DEFAULT_ORG_ID, 100, "voip_fixed")
        assert tax_service.record_exemption_usage(
            DEFAULT_ORG_ID, result, invoice_id=uuid.uuid4()
        ) == []


class TestCalculationSummary:
    def test_summary_totals(self, tax_service, federal, categories):
        results = [
            tax_service.calculate_tax(DEFAULT_ORG_ID, 100, "voip_fixed"),
            tax_service.calculate_tax(DEFAULT_ORG_ID, 100, "international"),
            tax_service.calculate_tax(DEFAULT_ORG_ID, 100, "data"),
        ]
        summary = tax_service.get_calculation_summary(results)

        assert summary["calculation_count"] == 3
        assert summary["total_base_amount"] == Decimal("300.00")
        assert summary["total_tax_amount"] == Decimal("69.80")
        assert summary["by_level"] == {
            "federal": Decimal("69.80"),
            "state": Decimal("0.00"),
            "local": Decimal("0.00"),
        }
        assert summary["by_tax_type"] == {
            "federal_excise_tax": Decimal("3.00"),
            "universal_service_fund": Decimal("66.80"),
        }
        assert summary["fallback_count"] == 0

    def test_empty_summary(self, tax_service):
        summary = tax_service.get_calculation_summary([])
        assert summary["calculation_count"] == 0
        assert summary["effective_tax_rate"] == Decimal("0")
