# Overview: Query-string parsing shared by the route modules.

from __future__ import annotations

from datetime import datetime

from flask import request

from ..time_utils import parse_iso_datetime
from ..validation import ValidationError


def arg_bool(*names: str) -> bool | None:
    """First present of names as a bool; None when absent or 'all'."""
    for name in names:
        raw = request.args.get(name)
        if raw is None or raw == "":
            continue
        lowered = raw.strip().lower()
        if lowered == "all":
            return None
        if lowered in {"true", "1", "yes"}:
            return True
        if lowered in {"false", "0", "no"}:
            return False
        raise ValidationError(f"{name} must be true or false")
    return None


def arg_datetime(*names: str) -> datetime | None:
    for name in names:
        raw = request.args.get(name)
        if not raw:
            continue
        try:
            return parse_iso_datetime(raw)
        except ValueError:
            raise ValidationError(f"{name} must be an ISO-8601 date")
    return None


def arg_int(*names: str) -> int | None:
    for name in names:
        raw = request.args.get(name)
        if raw is None or raw == "" or raw == "all":
            continue
        try:
            return int(raw)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    return None


def arg_str(*names: str) -> str | None:
    for name in names:
        raw = request.args.get(name)
        if raw:
            return raw
    return None


def json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload
