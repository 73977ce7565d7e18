from __future__ import annotations
from datetime import datetime
from repairdesk.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

# 10000 bps == 100%
MAX_RATE_BPS = 10_000


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


class NotFoundError(LookupError):
    """404-level missing row."""


class PermissionDeniedError(Exception):
    """403-level role check failure."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - min_lengths: per-field minimum length after stripping
    - max_lengths: per-field maximum length tighter than the column length
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    min_lengths: dict[str, int] | None = None
    max_lengths: dict[str, int] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if "e" in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if "." in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"true", "1", "yes"}:
                return True
            if lowered in {"false", "0", "no", ""}:
                return False
            raise ValidationError(f"{col.key} must be a boolean")
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    min_lengths = policy.min_lengths or {}
    max_lengths = policy.max_lengths or {}
    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(val, str):
            limit = max_lengths.get(k) or (col.type.length if isinstance(col.type, String) else None)
            if limit and len(val) > limit:
                raise ValidationError(f"{k} exceeds max length {limit}")
            if k in min_lengths and len(val) < min_lengths[k]:
                raise ValidationError(f"{k} must be at least {min_lengths[k]} characters")

        patch[k] = val

    return patch


def require_choice(patch: dict, field: str, choices: Iterable[str]) -> None:
    """Reject a value outside the allowed enum set (None passes; nullability is checked elsewhere)."""
    value = patch.get(field)
    if value is None:
        return
    allowed = tuple(choices)
    if value not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(allowed)}")


def _check_cents(patch: dict, field: str) -> None:
    value = patch.get(field)
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{field} must be >= 0")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")


def _check_bps(patch: dict, field: str) -> None:
    value = patch.get(field)
    if value is None:
        return
    if value < 0 or value > MAX_RATE_BPS:
        raise ValidationError(f"{field} must be between 0 and {MAX_RATE_BPS}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _check_cents(patch, "cost_price_cents")
    _check_cents(patch, "selling_price_cents")
    _check_bps(patch, "commission_rate_bps")


def enforce_rules_inventory(patch: dict) -> None:
    if patch.get("quantity") is not None and patch["quantity"] < 0:
        raise ValidationError("quantity must be >= 0")
    if patch.get("reorder_level") is not None and patch["reorder_level"] < 0:
        raise ValidationError("reorder_level must be >= 0")


def enforce_rules_sale(patch: dict) -> None:
    for field in ("subtotal_cents", "tax_cents", "discount_cents", "total_amount_cents"):
        _check_cents(patch, field)


def enforce_rules_sale_item(patch: dict) -> None:
    if patch.get("quantity") is None or patch["quantity"] <= 0:
        raise ValidationError("quantity must be > 0")
    _check_cents(patch, "unit_price_cents")
    _check_cents(patch, "total_price_cents")
    _check_bps(patch, "discount_bps")
    _check_bps(patch, "commission_rate_bps")


def enforce_rules_service_request(patch: dict) -> None:
    _check_cents(patch, "estimated_cost_cents")
    _check_cents(patch, "final_cost_cents")


def enforce_rules_branch(patch: dict) -> None:
    _check_cents(patch, "commission_cutoff_cents")
    _check_bps(patch, "commission_bps")
