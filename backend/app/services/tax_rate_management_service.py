"""Administrative operations on an organization's tax catalog.

Every rate mutation writes a ``TaxRateHistory`` row in the same
transaction and invalidates the organization's cached calculations.
Rates are never deleted, only deactivated or expired.
"""

import logging
import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

import httpx
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.cache import CalculationCache
from app.core.config import settings
from app.models.tax_category import TaxCategory
from app.models.tax_exemption import TaxExemption
from app.models.tax_jurisdiction import JurisdictionType, TaxJurisdiction
from app.models.tax_rate import TaxRate
from app.models.tax_rate_backup import TaxRateBackup
from app.models.tax_rate_history import TaxRateHistory
from app.models.usf_rate import UsfRate
from app.repositories.customer_repository import CustomerRepository
from app.repositories.tax_category_repository import TaxCategoryRepository
from app.repositories.tax_exemption_repository import TaxExemptionRepository
from app.repositories.tax_jurisdiction_repository import TaxJurisdictionRepository
from app.repositories.tax_rate_backup_repository import TaxRateBackupRepository
from app.repositories.tax_rate_history_repository import TaxRateHistoryRepository
from app.repositories.tax_rate_repository import TaxRateRepository
from app.repositories.usf_rate_repository import UsfRateRepository
from app.schemas.tax_calculation import SERVICE_TYPES
from app.schemas.tax_category import TaxCategoryCreate
from app.schemas.tax_exemption import TaxExemptionCreate
from app.schemas.tax_jurisdiction import TaxJurisdictionCreate
from app.schemas.tax_rate import (
    BulkImportError,
    BulkImportResult,
    InitializeDefaultsResult,
    RestoreResult,
    TaxRateCreate,
    TaxRateUpdate,
)
from app.schemas.usf_rate import UsfRateCreate
from app.services.tax_engine.errors import (
    TaxBackupNotFoundError,
    TaxConfigurationError,
    TaxRateNotFoundError,
    TaxValidationError,
)
from app.services.tax_engine.federal import quarter_of
from app.services.tax_rate_sources import get_rate_source

logger = logging.getLogger(__name__)

FEDERAL_JURISDICTION_CODE = "US-FED"

# code -> (service types, taxable)
DEFAULT_CATEGORIES: dict[str, tuple[list[str], bool]] = {
    "local": (["local"], True),
    "long_distance": (["long_distance"], True),
    "international": (["international"], True),
    "voip_fixed": (["voip_fixed"], True),
    "voip_nomadic": (["voip_nomadic"], True),
    "data": (["data"], False),
    "equipment": (["equipment"], True),
}

_SNAPSHOT_FIELDS = (
    "tax_jurisdiction_id",
    "tax_category_id",
    "tax_type",
    "tax_name",
    "description",
    "rate_type",
    "percentage_rate",
    "fixed_amount",
    "minimum_threshold",
    "maximum_amount",
    "calculation_method",
    "authority_name",
    "tax_code",
    "service_types",
    "tiers",
    "effective_date",
    "expiry_date",
    "is_active",
    "priority",
)


def snapshot_rate(rate: TaxRate) -> dict[str, Any]:
    """JSON-safe copy of a rate's configurable fields."""
    data: dict[str, Any] = {"id": str(rate.id)}
    for field in _SNAPSHOT_FIELDS:
        value = getattr(rate, field)
        if isinstance(value, Decimal | UUID):
            value = str(value)
        elif isinstance(value, date):
            value = value.isoformat()
        data[field] = value
    data["metadata"] = rate.metadata_
    return data


def _new_batch_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


def _validation_message(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'rate'}: {err['msg']}" for err in exc.errors()
    )


class TaxRateManagementService:
    def __init__(
        self,
        db: Session,
        organization_id: UUID,
        cache: CalculationCache | None = None,
    ):
        self.db = db
        self.organization_id = organization_id
        self.cache = cache
        self.rate_repo = TaxRateRepository(db)
        self.history_repo = TaxRateHistoryRepository(db)
        self.jurisdiction_repo = TaxJurisdictionRepository(db)
        self.category_repo = TaxCategoryRepository(db)
        self.backup_repo = TaxRateBackupRepository(db)
        self.usf_repo = UsfRateRepository(db)

    # Rates

    def create_or_update_tax_rate(
        self,
        data: TaxRateCreate | TaxRateUpdate,
        rate_id: UUID | None = None,
        changed_by: str | None = None,
        reason: str = "Manual update",
    ) -> TaxRate:
        """Create a rate, or update ``rate_id`` recording old and new values.

        Raises:
            TaxRateNotFoundError: If ``rate_id`` does not exist.
            TaxConfigurationError: If the resulting rate is invalid.
        """
        try:
            if rate_id is not None:
                rate = self._get_rate(rate_id)
                changes = data.model_dump(exclude_unset=True, mode="json")
                rate = self._update(rate, changes, changed_by, reason, "manual")
                logger.info("Tax rate %s updated by %s", rate.id, changed_by)
            else:
                if not isinstance(data, TaxRateCreate):
                    raise TaxConfigurationError("A new tax rate needs every required field")
                rate = self._create(data, changed_by, reason or "Rate created", "manual")
                logger.info("Tax rate %s created by %s", rate.id, changed_by)
            self._commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(rate)
        return rate

    def bulk_import_tax_rates(
        self,
        rates: list[dict[str, Any]],
        changed_by: str | None = None,
        source: str = "import",
        batch_id: str | None = None,
    ) -> BulkImportResult:
        """Upsert many rates keyed by jurisdiction, category, type, name and effective date.

        Invalid records are reported per index and do not stop the import.
        """
        result = BulkImportResult(batch_id=batch_id or _new_batch_id("batch"))
        try:
            for index, raw in enumerate(rates):
                try:
                    data = TaxRateCreate.model_validate(self._resolve_references(raw))
                    self._check_references(data.tax_jurisdiction_id, data.tax_category_id)
                except ValidationError as exc:
                    error = BulkImportError(index=index, error=_validation_message(exc))
                    result.errors.append(error)
                    continue
                except TaxConfigurationError as exc:
                    result.errors.append(BulkImportError(index=index, error=str(exc)))
                    continue

                existing = self.rate_repo.find_existing(
                    self.organization_id,
                    data.tax_jurisdiction_id,
                    data.tax_category_id,
                    data.tax_type,
                    data.tax_name,
                    data.effective_date,
                )
                if existing is not None:
                    self._write(
                        existing,
                        data.to_model_values(),
                        changed_by,
                        "Bulk update",
                        source,
                        result.batch_id,
                    )
                    result.updated += 1
                else:
                    self._create(data, changed_by, "Rate created", source, result.batch_id)
                    result.created += 1
            self._commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Bulk tax rate import %s for organization %s: created=%d updated=%d errors=%d",
            result.batch_id,
            self.organization_id,
            result.created,
            result.updated,
            len(result.errors),
        )
        return result

    def schedule_rate_change(
        self,
        rate_id: UUID,
        effective_date: date,
        changes: TaxRateUpdate,
        changed_by: str | None = None,
    ) -> TaxRate:
        """Apply ``changes`` from ``effective_date`` on.

        Today means an in-place update. A future date creates a new
        effective-dated rate and ends the current one the day before.
        """
        today = date.today()
        if effective_date < today:
            raise TaxValidationError("Effective date cannot be in the past")

        if effective_date == today:
            return self.create_or_update_tax_rate(
                changes, rate_id=rate_id, changed_by=changed_by, reason="Scheduled rate change"
            )

        try:
            current = self._get_rate(rate_id)
            values = snapshot_rate(current)
            values.pop("id")
            values.update(changes.model_dump(exclude_unset=True, mode="json"))
            values["effective_date"] = effective_date.isoformat()
            expiry = values.get("expiry_date")
            if expiry and date.fromisoformat(str(expiry)) < effective_date:
                values["expiry_date"] = None
            data = self._validate(values)

            superseded_on = effective_date - timedelta(days=1)
            if current.expiry_date is None or current.expiry_date > superseded_on:
                self._update(
                    current,
                    {"expiry_date": superseded_on.isoformat()},
                    changed_by,
                    "Superseded by scheduled rate change",
                    "schedule",
                )
            rate = self._create(data, changed_by, "Scheduled rate change", "schedule")
            self._commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(rate)
        return rate

    def expire_tax_rate(
        self, rate_id: UUID, expiry_date: date, changed_by: str | None = None
    ) -> TaxRate:
        rate = self._get_rate(rate_id)
        changes: dict[str, Any] = {"expiry_date": expiry_date.isoformat()}
        if expiry_date < date.today():
            changes["is_active"] = False
        try:
            self._update(rate, changes, changed_by, "Rate expiration", "manual")
            self._commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(rate)
        return rate

    def deactivate_expired_rates(self, as_of: date | None = None) -> int:
        """Deactivate active rates whose expiry date has passed."""
        today = as_of or date.today()
        expired = self.rate_repo.get_expired_active(today, self.organization_id)
        if not expired:
            return 0
        batch_id = _new_batch_id("expire")
        try:
            for rate in expired:
                self._write(
                    rate, {"is_active": False}, None, "Rate expired", "system", batch_id
                )
            self._commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(
            "Deactivated %d expired tax rate(s) for organization %s",
            len(expired),
            self.organization_id,
        )
        return len(expired)

    def get_tax_rate_history(self, rate_id: UUID, limit: int = 50) -> list[TaxRateHistory]:
        self._get_rate(rate_id)
        return self.history_repo.get_by_rate(rate_id, limit)

    def export_tax_rates(
        self,
        jurisdiction_id: UUID | None = None,
        category_id: UUID | None = None,
        tax_type: str | None = None,
        is_active: bool | None = None,
    ) -> list[dict[str, Any]]:
        """Catalog rows with jurisdiction and category codes, in import format."""
        rates = self.rate_repo.get_all_unpaginated(
            self.organization_id, jurisdiction_id, category_id, tax_type, is_active
        )
        jurisdictions: dict[UUID, TaxJurisdiction | None] = {}
        categories: dict[UUID, TaxCategory | None] = {}
        exported = []
        for rate in rates:
            jid, cid = rate.tax_jurisdiction_id, rate.tax_category_id
            if jid not in jurisdictions:
                jurisdictions[jid] = self.jurisdiction_repo.get_by_id(jid)  # type: ignore[arg-type,index]
            if cid not in categories:
                categories[cid] = self.category_repo.get_by_id(cid)  # type: ignore[arg-type,index]
            jurisdiction = jurisdictions[jid]  # type: ignore[index]
            category = categories[cid]  # type: ignore[index]
            row = snapshot_rate(rate)
            row["jurisdiction_name"] = jurisdiction.name if jurisdiction else None
            row["jurisdiction_code"] = jurisdiction.code if jurisdiction else None
            row["category_name"] = category.name if category else None
            row["category_code"] = category.code if category else None
            exported.append(row)
        return exported

    # Backups

    def create_backup(self, batch_id: str | None = None) -> TaxRateBackup:
        current = self.rate_repo.get_all_unpaginated(self.organization_id)
        rates = [snapshot_rate(rate) for rate in current]
        backup = self.backup_repo.create(
            self.organization_id, batch_id or _new_batch_id("backup"), rates
        )
        logger.info(
            "Tax rate backup %s created for organization %s (%d rates)",
            backup.batch_id,
            self.organization_id,
            backup.rates_count,
        )
        return backup

    def restore_from_backup(self, batch_id: str, changed_by: str | None = None) -> RestoreResult:
        """Deactivate the current catalog and recreate the backed-up rates."""
        backup = self.backup_repo.get_by_batch_id(batch_id, self.organization_id)
        if backup is None:
            raise TaxBackupNotFoundError(f"Tax rate backup {batch_id} not found")

        result = RestoreResult(batch_id=_new_batch_id("restore"))
        try:
            for rate in self.rate_repo.get_all_unpaginated(self.organization_id, is_active=True):
                self._write(
                    rate,
                    {"is_active": False},
                    changed_by,
                    f"Replaced by restore of {batch_id}",
                    "restore",
                    result.batch_id,
                )
                result.deactivated += 1

            for index, raw in enumerate(backup.rates or []):
                values = {k: v for k, v in raw.items() if k != "id"}
                try:
                    data = self._validate(values)
                    self._check_references(data.tax_jurisdiction_id, data.tax_category_id)
                except TaxConfigurationError as exc:
                    result.errors.append(BulkImportError(index=index, error=str(exc)))
                    continue
                self._create(
                    data, changed_by, f"Restored from {batch_id}", "restore", result.batch_id
                )
                result.restored += 1
            self._commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Restored %d tax rate(s) from backup %s for organization %s (%d errors)",
            result.restored,
            batch_id,
            self.organization_id,
            len(result.errors),
        )
        return result

    # Defaults and sources

    def initialize_default_rates(self) -> InitializeDefaultsResult:
        """Federal jurisdiction, default categories and an initial USF version.

        Federal Excise Tax and USF are charged by the built-in federal
        catalog, so no federal rate rows are created.
        """
        try:
            federal = self.jurisdiction_repo.get_by_code(
                FEDERAL_JURISDICTION_CODE, self.organization_id
            )
            if federal is None:
                federal = TaxJurisdiction(
                    organization_id=self.organization_id,
                    jurisdiction_type=JurisdictionType.FEDERAL.value,
                    code=FEDERAL_JURISDICTION_CODE,
                    name="United States Federal",
                    authority_name="Federal Communications Commission",
                    is_active=True,
                    priority=1,
                )
                self.db.add(federal)
                self.db.flush()

            categories_created = 0
            defaults = enumerate(DEFAULT_CATEGORIES.items(), 1)
            for priority, (code, (service_types, taxable)) in defaults:
                if self.category_repo.get_by_code(code, self.organization_id) is not None:
                    continue
                self.category_repo.create(
                    TaxCategoryCreate(
                        code=code,
                        name=SERVICE_TYPES[code],
                        service_types=service_types,
                        is_taxable=taxable,
                        priority=priority * 10,
                    ),
                    self.organization_id,
                    commit=False,
                )
                categories_created += 1

            usf_created = False
            if not self.usf_repo.exists(self.organization_id):
                today = date.today()
                quarter = quarter_of(today)
                self.usf_repo.create(
                    UsfRateCreate(
                        rate=settings.USF_DEFAULT_RATE,
                        effective_date=date(today.year, 3 * quarter - 2, 1),
                        quarter_label=f"{today.year}-Q{quarter}",
                    ),
                    self.organization_id,
                    commit=False,
                )
                usf_created = True
            self._commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Default tax catalog initialized for organization %s: categories=%d usf=%s",
            self.organization_id,
            categories_created,
            usf_created,
        )
        return InitializeDefaultsResult(
            jurisdiction_id=federal.id,  # type: ignore[arg-type]
            categories_created=categories_created,
            usf_rate_created=usf_created,
        )

    def sync_from_source(self, source: str, changed_by: str | None = None) -> BulkImportResult:
        """Import the catalog published by ``source``, backing up the current one first.

        Raises:
            TaxConfigurationError: If the source is unknown or not configured.
        """
        fetch = get_rate_source(source)
        batch_id = _new_batch_id(source)
        try:
            rates = fetch(settings, self.organization_id)
        except httpx.HTTPError as exc:
            logger.exception(
                "Tax rate sync from %s failed for organization %s", source, self.organization_id
            )
            return BulkImportResult(
                batch_id=batch_id, errors=[BulkImportError(index=-1, error=str(exc))]
            )

        if not rates:
            logger.warning("No tax rates received from %s", source)
            return BulkImportResult(batch_id=batch_id)

        self.create_backup(batch_id)
        return self.bulk_import_tax_rates(rates, changed_by, source=source, batch_id=batch_id)

    # Other catalog entities

    def create_jurisdiction(self, data: TaxJurisdictionCreate) -> TaxJurisdiction:
        jurisdiction = self.jurisdiction_repo.create(data, self.organization_id)
        self._invalidate()
        return jurisdiction

    def create_category(self, data: TaxCategoryCreate) -> TaxCategory:
        category = self.category_repo.create(data, self.organization_id)
        self._invalidate()
        return category

    def create_exemption(self, data: TaxExemptionCreate) -> TaxExemption:
        if CustomerRepository(self.db).get_by_id(data.customer_id, self.organization_id) is None:
            raise TaxConfigurationError(f"Customer {data.customer_id} not found")
        if data.tax_jurisdiction_id is not None and (
            self.jurisdiction_repo.get_by_id(data.tax_jurisdiction_id, self.organization_id) is None
        ):
            raise TaxConfigurationError(f"Tax jurisdiction {data.tax_jurisdiction_id} not found")
        exemption = TaxExemptionRepository(self.db).create(data, self.organization_id)
        self._invalidate()
        return exemption

    def create_usf_rate(self, data: UsfRateCreate) -> UsfRate:
        usf_rate = self.usf_repo.create(data, self.organization_id)
        self._invalidate()
        return usf_rate

    # Internals

    def _get_rate(self, rate_id: UUID) -> TaxRate:
        rate = self.rate_repo.get_by_id(rate_id, self.organization_id)
        if rate is None:
            raise TaxRateNotFoundError(f"Tax rate {rate_id} not found")
        return rate

    def _validate(self, values: dict[str, Any]) -> TaxRateCreate:
        try:
            return TaxRateCreate.model_validate(values)
        except ValidationError as exc:
            raise TaxConfigurationError(_validation_message(exc)) from exc

    def _check_references(self, jurisdiction_id: UUID, category_id: UUID) -> None:
        if self.jurisdiction_repo.get_by_id(jurisdiction_id, self.organization_id) is None:
            raise TaxConfigurationError(f"Tax jurisdiction {jurisdiction_id} not found")
        if self.category_repo.get_by_id(category_id, self.organization_id) is None:
            raise TaxConfigurationError(f"Tax category {category_id} not found")

    def _resolve_references(self, raw: dict[str, Any]) -> dict[str, Any]:
        """Accept ``jurisdiction_code``/``category_code`` in place of ids."""
        if not isinstance(raw, dict):
            raise TaxConfigurationError(f"Rate record must be an object, got {type(raw).__name__}")
        values = dict(raw)
        if not values.get("tax_jurisdiction_id") and values.get("jurisdiction_code"):
            jurisdiction = self.jurisdiction_repo.get_by_code(
                values["jurisdiction_code"], self.organization_id
            )
            if jurisdiction is None:
                msg = f"Unknown jurisdiction code {values['jurisdiction_code']}"
                raise TaxConfigurationError(msg)
            values["tax_jurisdiction_id"] = jurisdiction.id
        if not values.get("tax_category_id") and values.get("category_code"):
            category = self.category_repo.get_by_code(values["category_code"], self.organization_id)
            if category is None:
                raise TaxConfigurationError(f"Unknown category code {values['category_code']}")
            values["tax_category_id"] = category.id
        return values

    def _create(
        self,
        data: TaxRateCreate,
        changed_by: str | None,
        reason: str,
        source: str,
        batch_id: str | None = None,
    ) -> TaxRate:
        self._check_references(data.tax_jurisdiction_id, data.tax_category_id)
        rate = self.rate_repo.create(data.to_model_values(), self.organization_id, commit=False)
        self.history_repo.create(
            organization_id=self.organization_id,
            tax_rate_id=rate.id,  # type: ignore[arg-type]
            old_values={},
            new_values=snapshot_rate(rate),
            change_reason=reason,
            changed_by=changed_by,
            source=source,
            batch_id=batch_id,
            commit=False,
        )
        return rate

    def _update(
        self,
        rate: TaxRate,
        changes: dict[str, Any],
        changed_by: str | None,
        reason: str,
        source: str,
        batch_id: str | None = None,
    ) -> TaxRate:
        """Validate the merged rate, then write it."""
        merged = snapshot_rate(rate)
        merged.pop("id")
        merged.update(changes)
        data = self._validate(merged)
        return self._write(rate, data.to_model_values(), changed_by, reason, source, batch_id)

    def _write(
        self,
        rate: TaxRate,
        values: dict[str, Any],
        changed_by: str | None,
        reason: str,
        source: str,
        batch_id: str | None = None,
    ) -> TaxRate:
        old_values = snapshot_rate(rate)
        self.rate_repo.update(rate, values, commit=False)
        self.history_repo.create(
            organization_id=self.organization_id,
            tax_rate_id=rate.id,  # type: ignore[arg-type]
            old_values=old_values,
            new_values=snapshot_rate(rate),
            change_reason=reason,
            changed_by=changed_by,
            source=source,
            batch_id=batch_id,
            commit=False,
        )
        return rate

    def _commit(self) -> None:
        self.db.commit()
        self._invalidate()

    def _invalidate(self) -> None:
        if self.cache is not None:
            self.cache.invalidate(self.organization_id)
