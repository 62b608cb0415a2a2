"""Taxing authority with geographic matching rules."""

from enum import Enum

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, func

from app.core.database import Base
from app.models.shared import DEFAULT_ORGANIZATION_ID, UUIDType, generate_uuid


class JurisdictionType(str, Enum):
    FEDERAL = "federal"
    STATE = "state"
    COUNTY = "county"
    CITY = "city"
    MUNICIPALITY = "municipality"
    SPECIAL_DISTRICT = "special_district"
    LOCAL = "local"


# Broad to specific; city and municipality share a rank.
JURISDICTION_TYPE_ORDER: dict[str, int] = {
    JurisdictionType.FEDERAL.value: 0,
    JurisdictionType.STATE.value: 1,
    JurisdictionType.COUNTY.value: 2,
    JurisdictionType.CITY.value: 3,
    JurisdictionType.MUNICIPALITY.value: 3,
    JurisdictionType.SPECIAL_DISTRICT.value: 4,
    JurisdictionType.LOCAL.value: 5,
}

LOCAL_JURISDICTION_TYPES = frozenset(
    {
        JurisdictionType.COUNTY.value,
        JurisdictionType.CITY.value,
        JurisdictionType.MUNICIPALITY.value,
        JurisdictionType.SPECIAL_DISTRICT.value,
        JurisdictionType.LOCAL.value,
    }
)


class TaxJurisdiction(Base):
    __tablename__ = "tax_jurisdictions"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    organization_id = Column(
        UUIDType,
        ForeignKey("organizations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_ORGANIZATION_ID,
    )
    jurisdiction_type = Column(String(30), nullable=False, index=True)
    code = Column(String(50), nullable=True)
    name = Column(String(255), nullable=False)
    authority_name = Column(String(255), nullable=True)
    state_code = Column(String(2), nullable=True, index=True)
    county_name = Column(String(255), nullable=True)
    city_name = Column(String(255), nullable=True)
    zip_codes = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    priority = Column(Integer, nullable=False, default=100)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
