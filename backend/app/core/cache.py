"""Calculation result caches for the tax engine."""

import hashlib
import json
import logging
import time
from collections.abc import Mapping
from datetime import date
from decimal import Decimal
from threading import Lock
from typing import Any, Protocol
from uuid import UUID

import redis
from fastapi import Request

from app.core.config import Settings
from app.services.tax_engine.jurisdiction_resolver import normalize_address
from app.services.tax_engine.types import TaxCalculationResult

logger = logging.getLogger(__name__)

KEY_PREFIX = "tax_calc"


def make_cache_key(
    organization_id: UUID,
    amount: Decimal,
    service_type: str,
    address: Mapping[str, Any] | None,
    customer_id: UUID | None,
    calculation_date: date,
    line_count: int,
    minutes: Decimal,
    quantity: Decimal,
) -> str:
    """Deterministic key; the organization stays readable for invalidation."""
    payload = json.dumps(
        {
            "organization": str(organization_id),
            "amount": str(amount.normalize()),
            "service_type": service_type,
            "address": normalize_address(address),
            "customer": str(customer_id) if customer_id else None,
            "date": calculation_date.isoformat(),
            "line_count": line_count,
            "minutes": str(Decimal(minutes).normalize()),
            "quantity": str(Decimal(quantity).normalize()),
        },
        sort_keys=True,
    )
    digest = hashlib.sha256(payload.encode()).hexdigest()
    return f"{KEY_PREFIX}:{organization_id}:{digest}"


class CalculationCache(Protocol):
    def get(self, key: str) -> TaxCalculationResult | None: ...

    def put(self, key: str, result: TaxCalculationResult, ttl: int | None = None) -> None: ...

    def invalidate(self, organization_id: UUID) -> int: ...

    def clear(self) -> None: ...


class InMemoryCalculationCache:
    """Process-local cache with per-entry TTL (monotonic clock)."""

    def __init__(self, default_ttl: int = 3600):
        self.default_ttl = default_ttl
        self._entries: dict[str, tuple[float, TaxCalculationResult]] = {}
        self._lock = Lock()

    def get(self, key: str) -> TaxCalculationResult | None:
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, result = entry
            if expires_at <= now:
                del self._entries[key]
                return None
            return result

    def put(self, key: str, result: TaxCalculationResult, ttl: int | None = None) -> None:
        expires_at = time.monotonic() + (self.default_ttl if ttl is None else ttl)
        with self._lock:
            self._entries[key] = (expires_at, result)

    def invalidate(self, organization_id: UUID) -> int:
        prefix = f"{KEY_PREFIX}:{organization_id}:"
        with self._lock:
            stale = [key for key in self._entries if key.startswith(prefix)]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisCalculationCache:
    """Shared cache storing results as JSON.

    Redis failures are logged and treated as cache misses.
    """

    def __init__(self, client: redis.Redis, default_ttl: int = 3600):
        self.client = client
        self.default_ttl = default_ttl

    @classmethod
    def from_url(cls, url: str, default_ttl: int = 3600) -> "RedisCalculationCache":
        client = redis.Redis.from_url(url, decode_responses=True, socket_connect_timeout=5)
        return cls(client, default_ttl)

    def get(self, key: str) -> TaxCalculationResult | None:
        try:
            payload = self.client.get(key)
        except redis.RedisError as exc:
            logger.warning("Tax cache read failed for %s: %s", key, exc)
            return None
        if payload is None:
            return None
        try:
            return TaxCalculationResult.from_dict(json.loads(payload))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Discarding unreadable tax cache entry %s: %s", key, exc)
            return None

    def put(self, key: str, result: TaxCalculationResult, ttl: int | None = None) -> None:
        try:
            self.client.set(
                key,
                json.dumps(result.to_dict()),
                ex=self.default_ttl if ttl is None else ttl,
            )
        except redis.RedisError as exc:
            logger.warning("Tax cache write failed for %s: %s", key, exc)

    def invalidate(self, organization_id: UUID) -> int:
        removed = 0
        try:
            for key in self.client.scan_iter(match=f"{KEY_PREFIX}:{organization_id}:*", count=500):
                removed += int(self.client.delete(key))
        except redis.RedisError as exc:
            logger.warning("Tax cache invalidation failed for %s: %s", organization_id, exc)
        return removed

    def clear(self) -> None:
        try:
            for key in self.client.scan_iter(match=f"{KEY_PREFIX}:*", count=500):
                self.client.delete(key)
        except redis.RedisError as exc:
            logger.warning("Tax cache clear failed: %s", exc)


def build_calculation_cache(config: Settings) -> CalculationCache | None:
    """Cache backend named by ``TAX_CACHE_BACKEND``; ``none`` disables caching."""
    backend = config.TAX_CACHE_BACKEND.lower()
    if backend == "none":
        return None
    if backend == "memory":
        return InMemoryCalculationCache(config.TAX_CACHE_TTL_SECONDS)
    if backend == "redis":
        return RedisCalculationCache.from_url(config.REDIS_URL, config.TAX_CACHE_TTL_SECONDS)
    raise ValueError(f"Unknown TAX_CACHE_BACKEND: {config.TAX_CACHE_BACKEND}")


def get_tax_cache(request: Request) -> CalculationCache | None:
    """FastAPI dependency returning the process-wide cache."""
    return getattr(request.app.state, "tax_cache", None)
