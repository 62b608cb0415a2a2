"""Sources a tax rate catalog can be synchronized from.

Each source is a plain function returning raw rate records in the same
layout ``bulk_import_tax_rates`` accepts. ``RATE_SOURCES`` is the only
registry; names outside it are rejected by ``validate_rate_sources``.
"""

import json
import logging
from collections.abc import Callable, Iterable
from datetime import date
from pathlib import Path
from typing import Any
from uuid import UUID

import httpx

from app.core.config import Settings
from app.services.tax_engine.errors import TaxConfigurationError

logger = logging.getLogger(__name__)

RateSourceFn = Callable[[Settings, UUID], list[dict[str, Any]]]


def fetch_external_api(config: Settings, organization_id: UUID) -> list[dict[str, Any]]:
    """Pull the current catalog from the configured rate provider API."""
    if not config.TAX_EXTERNAL_API_URL:
        raise TaxConfigurationError("TAX_EXTERNAL_API_URL is not configured")

    headers = {"Accept": "application/json"}
    if config.TAX_EXTERNAL_API_KEY:
        headers["Authorization"] = f"Bearer {config.TAX_EXTERNAL_API_KEY}"

    with httpx.Client(timeout=config.TAX_EXTERNAL_API_TIMEOUT_SECONDS) as client:
        resp = client.get(
            config.TAX_EXTERNAL_API_URL,
            headers=headers,
            params={
                "organization_id": str(organization_id),
                "effective_date": date.today().isoformat(),
            },
        )
        resp.raise_for_status()

    try:
        payload = resp.json()
    except ValueError as exc:
        raise TaxConfigurationError(f"External rate API returned invalid JSON: {exc}") from exc
    rates = payload.get("data", []) if isinstance(payload, dict) else payload
    if not isinstance(rates, list):
        raise TaxConfigurationError("External rate API returned an unexpected payload")
    return rates


def load_json_file(config: Settings, organization_id: UUID) -> list[dict[str, Any]]:
    """Read rates from ``TAX_RATE_IMPORT_PATH``: a list, or ``{"rates": [...]}``."""
    if not config.TAX_RATE_IMPORT_PATH:
        raise TaxConfigurationError("TAX_RATE_IMPORT_PATH is not configured")

    path = Path(config.TAX_RATE_IMPORT_PATH)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise TaxConfigurationError(f"Cannot read tax rate file {path}: {exc}") from exc

    rates = payload.get("rates", []) if isinstance(payload, dict) else payload
    if not isinstance(rates, list):
        raise TaxConfigurationError(f"Tax rate file {path} does not contain a list of rates")
    return rates


RATE_SOURCES: dict[str, RateSourceFn] = {
    "external_api": fetch_external_api,
    "json_file": load_json_file,
}


def get_rate_source(name: str) -> RateSourceFn:
    try:
        return RATE_SOURCES[name]
    except KeyError:
        raise TaxConfigurationError(f"Unknown tax rate source: {name}") from None


def validate_rate_sources(names: Iterable[str]) -> list[str]:
    """Fail fast on any unknown source name; returns the names unchanged."""
    names = list(names)
    unknown = [name for name in names if name not in RATE_SOURCES]
    if unknown:
        msg = f"Unknown tax rate source(s): {', '.join(unknown)}"
        raise TaxConfigurationError(msg)
    return names
