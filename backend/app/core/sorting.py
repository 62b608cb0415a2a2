"""Ordering for catalog list queries."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import asc, desc
from sqlalchemy.orm import Query

from app.core.database import Base

CATALOG_DEFAULT_ORDER = (("priority", "asc"), ("name", "asc"))


def parse_order_by(order_by: str | None, model: type[Base]) -> list[tuple[str, str]]:
    """Parse ``"field:direction,field2"`` into (column, direction) pairs.

    Unknown columns are dropped; a missing or invalid direction means ``asc``.
    """
    keys: list[tuple[str, str]] = []
    if not order_by:
        return keys
    for part in order_by.split(","):
        field, _, direction = part.strip().partition(":")
        if not field or not hasattr(model, field):
            continue
        keys.append((field, direction if direction in ("asc", "desc") else "asc"))
    return keys


def apply_order_by(
    query: Query,  # type: ignore[type-arg]
    model: type[Base],
    order_by: str | None,
    default: Sequence[tuple[str, str]] = CATALOG_DEFAULT_ORDER,
) -> Query:  # type: ignore[type-arg]
    """Order ``query`` by the requested keys, then by ``default`` and ``id`` as tie-breakers."""
    keys = parse_order_by(order_by, model)
    requested = {field for field, _ in keys}
    keys.extend((field, direction) for field, direction in default if field not in requested)
    if "id" not in requested:
        keys.append(("id", "asc"))

    for field, direction in keys:
        order_func = asc if direction == "asc" else desc
        query = query.order_by(order_func(getattr(model, field)))
    return query
