# backend/repairdesk/services/users_service.py
"""
Employee administration.

Users are never deleted: toggle_user_status flips is_active instead, and
inactive users are rejected by the request identity decorator. Passwords
are optional (sign-in lives upstream) but when given they are checked for
strength and stored as a bcrypt hash.
"""
from __future__ import annotations

import re

import bcrypt
from flask import current_app

from ..extensions import db, query_cache
from ..models import User, Branch, USER_ROLES
from ..validation import ConflictError, NotFoundError, ValidationError
from .filters import USER_SEARCH_FIELDS, filter_rows

USER_MUTABLE_FIELDS = {
    "full_name", "email", "staff_id", "role", "contact_number",
    "address", "profile_image_url", "branch_id", "is_active",
}

# sales, commissions and tickets embed the user summary
CACHE_PREFIXES = (
    "users",
    "technicians",
    "sales-persons",
    "sales",
    "commissions",
    "commission-stats",
    "customers",
    "service-requests",
    "service-request-updates",
    "reports",
)


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12 (validated first)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def _get_user_or_404(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def _check_unique(patch: dict, exclude_id: int | None = None) -> None:
    for field, label in (("email", "Email"), ("staff_id", "Staff ID")):
        if field not in patch:
            continue
        query = db.session.query(User).filter(getattr(User, field) == patch[field])
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first():
            raise ConflictError(f"{label} already exists")


def _check_branch(patch: dict) -> None:
    branch_id = patch.get("branch_id")
    if branch_id is not None and not db.session.get(Branch, branch_id):
        raise ValidationError("Branch not found")


def _check_role(patch: dict) -> None:
    if "role" in patch and patch["role"] not in USER_ROLES:
        raise ValidationError("Invalid role. Must be 'admin', 'sales', or 'technician'")


def list_users(*, role: str | None = None, is_active: bool | None = None, search: str | None = None) -> list[dict]:
    def _load():
        rows = db.session.query(User).order_by(User.full_name.asc(), User.id.asc()).all()
        return [u.to_dict() for u in rows]

    rows = query_cache.get_or_load(("users", "all"), _load)
    return filter_rows(
        rows,
        search=search,
        search_fields=USER_SEARCH_FIELDS,
        equals={"role": role, "is_active": is_active},
    )


def get_user(user_id: int) -> dict:
    return query_cache.get_or_load(("users", "detail", user_id), lambda: _get_user_or_404(user_id).to_dict())


def create_user(*, patch: dict, password: str | None = None) -> dict:
    _check_role(patch)
    _check_unique(patch)
    _check_branch(patch)

    user = User(**patch)
    if password:
        user.password_hash = hash_password(password)

    db.session.add(user)
    db.session.commit()
    query_cache.invalidate(*CACHE_PREFIXES)
    current_app.logger.info("Created user %s (%s)", user.email, user.role)
    return user.to_dict()


def update_user(user_id: int, *, patch: dict, password: str | None = None) -> dict:
    user = _get_user_or_404(user_id)
    _check_role(patch)
    _check_unique(patch, exclude_id=user.id)
    _check_branch(patch)

    for k, v in patch.items():
        if k in USER_MUTABLE_FIELDS:
            setattr(user, k, v)
    if password:
        user.password_hash = hash_password(password)

    db.session.commit()
    query_cache.invalidate(*CACHE_PREFIXES)
    return user.to_dict()


def toggle_user_status(user_id: int, *, is_active: bool | None = None) -> dict:
    """Set is_active explicitly, or flip it when no value is given."""
    user = _get_user_or_404(user_id)
    current = user.is_active if user.is_active is not None else True
    user.is_active = (not current) if is_active is None else bool(is_active)
    db.session.commit()
    query_cache.invalidate(*CACHE_PREFIXES)
    current_app.logger.info("User %s is_active=%s", user.id, user.is_active)
    return user.to_dict()


def list_sales_persons() -> list[dict]:
    def _load():
        rows = (
            db.session.query(User)
            .filter(User.role == "sales", User.is_active.is_(True))
            .order_by(User.full_name.asc())
            .all()
        )
        return [u.to_dict() for u in rows]

    return query_cache.get_or_load(("sales-persons",), _load)


def list_technicians() -> list[dict]:
    """Active technicians; admins can take repair work too."""
    def _load():
        rows = (
            db.session.query(User)
            .filter(User.role.in_(("technician", "admin")), User.is_active.is_(True))
            .order_by(User.full_name.asc())
            .all()
        )
        return [u.to_dict() for u in rows]

    return query_cache.get_or_load(("technicians",), _load)
