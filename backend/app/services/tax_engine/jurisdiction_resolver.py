"""Service address to taxing jurisdictions."""

from collections.abc import Mapping
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.tax_jurisdiction import JURISDICTION_TYPE_ORDER, JurisdictionType, TaxJurisdiction
from app.repositories.tax_jurisdiction_repository import TaxJurisdictionRepository

ADDRESS_KEYS = ("line1", "city", "state", "zip", "county", "country")


def normalize_address(address: Mapping[str, Any] | None) -> dict[str, str]:
    """Trimmed, non-empty address fields; ``zip_code`` is accepted for ``zip``."""
    if not address:
        return {}
    raw = dict(address)
    if not raw.get("zip") and raw.get("zip_code"):
        raw["zip"] = raw["zip_code"]
    if not raw.get("line1") and raw.get("address"):
        raw["line1"] = raw["address"]

    normalized: dict[str, str] = {}
    for key in ADDRESS_KEYS:
        value = raw.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if not text:
            continue
        if key == "state":
            text = text.upper()
        elif key == "zip":
            text = text[:5]
        elif key != "line1":
            text = text.lower()
        normalized[key] = text
    return normalized


def _sort_key(jurisdiction: TaxJurisdiction) -> tuple[int, int, str]:
    return (
        JURISDICTION_TYPE_ORDER.get(
            str(jurisdiction.jurisdiction_type), len(JURISDICTION_TYPE_ORDER)
        ),
        int(jurisdiction.priority or 0),
        str(jurisdiction.name).lower(),
    )


class JurisdictionResolver:
    def __init__(self, db: Session):
        self.repo = TaxJurisdictionRepository(db)

    def resolve(
        self, organization_id: UUID, address: Mapping[str, Any] | None = None
    ) -> list[TaxJurisdiction]:
        """Active jurisdictions matching the address, broadest first.

        Federal jurisdictions are always included. An address with no usable
        fields resolves to federal only.
        """
        normalized = normalize_address(address)
        if not any(normalized.get(key) for key in ("state", "county", "city", "zip")):
            return sorted(self.repo.get_active_federal(organization_id), key=_sort_key)

        matched = [
            jurisdiction
            for jurisdiction in self.repo.get_active(organization_id)
            if jurisdiction.jurisdiction_type == JurisdictionType.FEDERAL.value
            or self._matches(jurisdiction, normalized)
        ]
        return sorted(matched, key=_sort_key)

    @staticmethod
    def _matches(jurisdiction: TaxJurisdiction, address: dict[str, str]) -> bool:
        state = address.get("state")
        if state and jurisdiction.state_code and str(jurisdiction.state_code).upper() == state:
            return True
        county = address.get("county")
        if county and jurisdiction.county_name and str(jurisdiction.county_name).lower() == county:
            return True
        city = address.get("city")
        if city and jurisdiction.city_name and str(jurisdiction.city_name).lower() == city:
            return True
        zip_code = address.get("zip")
        if zip_code and jurisdiction.zip_codes:
            return zip_code in {str(z).strip()[:5] for z in jurisdiction.zip_codes}
        return False
