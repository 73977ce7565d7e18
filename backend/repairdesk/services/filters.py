# Overview: In-memory list filters applied to fetched rows.

from __future__ import annotations

from datetime import date, datetime
from typing import Callable, Iterable

from .aggregation import STOCK_IN, STOCK_LOW, STOCK_OUT, stock_status, as_datetime


# Dotted paths reach into nested projections ("product.name").
PRODUCT_SEARCH_FIELDS = ("name", "sku", "description")
INVENTORY_SEARCH_FIELDS = ("product.name", "product.sku")
CUSTOMER_SEARCH_FIELDS = ("name", "email", "phone", "company")
USER_SEARCH_FIELDS = ("full_name", "email", "staff_id")
SALE_SEARCH_FIELDS = ("invoice_number", "customer.name", "sales_person.full_name")
SERVICE_REQUEST_SEARCH_FIELDS = ("title", "description", "request_number", "device_type", "device_brand")

STOCK_FILTERS = {
    "all": None,
    "low": STOCK_LOW,
    "out": STOCK_OUT,
    "in": STOCK_IN,
}


def _lookup(row: dict, path: str):
    value = row
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def matches_search(row: dict, query: str | None, fields: Iterable[str]) -> bool:
    """Case-insensitive substring match against any of the fields. Empty query matches everything."""
    needle = (query or "").strip().lower()
    if not needle:
        return True
    for field in fields:
        value = _lookup(row, field)
        if value is not None and needle in str(value).lower():
            return True
    return False


def _as_date(value) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = as_datetime(value)
    return parsed.date() if parsed else None


def in_date_range(value, start=None, end=None) -> bool:
    """Inclusive on both ends, compared by calendar day."""
    if start is None and end is None:
        return True
    day = _as_date(value)
    if day is None:
        return False
    start_day = _as_date(start)
    end_day = _as_date(end)
    if start_day and day < start_day:
        return False
    if end_day and day > end_day:
        return False
    return True


def filter_rows(
    rows: Iterable[dict],
    *,
    search: str | None = None,
    search_fields: Iterable[str] = (),
    equals: dict | None = None,
    date_field: str | None = None,
    start=None,
    end=None,
    predicate: Callable[[dict], bool] | None = None,
) -> list[dict]:
    """
    AND-combine every supplied predicate.

    equals values of None are ignored, so callers can pass raw query params.
    """
    fields = tuple(search_fields)
    active_equals = {k: v for k, v in (equals or {}).items() if v is not None and v != "all"}

    result = []
    for row in rows:
        if not matches_search(row, search, fields):
            continue
        if any(_lookup(row, k) != v for k, v in active_equals.items()):
            continue
        if date_field and not in_date_range(_lookup(row, date_field), start, end):
            continue
        if predicate and not predicate(row):
            continue
        result.append(row)
    return result


def filter_by_stock(rows: Iterable[dict], mode: str | None) -> list[dict]:
    """mode is one of all/low/out/in; rows carry quantity and reorder_level."""
    mode = (mode or "all").lower()
    if mode not in STOCK_FILTERS:
        raise ValueError(f"stock filter must be one of: {', '.join(STOCK_FILTERS)}")
    wanted = STOCK_FILTERS[mode]
    if wanted is None:
        return list(rows)
    return [r for r in rows if stock_status(r.get("quantity"), r.get("reorder_level")) == wanted]
