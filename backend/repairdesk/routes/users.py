# Overview: Employee administration routes.

from flask import Blueprint, g

from ..decorators import require_role, require_user
from ..models import User
from ..services import users_service
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from .params import arg_bool, arg_str, json_body

USER_POLICY = ModelValidationPolicy(
    writable_fields={
        "full_name", "email", "staff_id", "role", "contact_number",
        "address", "profile_image_url", "branch_id", "is_active",
    },
    required_on_create={"full_name", "email", "staff_id", "role"},
    min_lengths={"full_name": 2},
)

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _split_password(payload: dict) -> tuple[dict, str | None]:
    payload = dict(payload)
    password = payload.pop("password", None)
    if password is not None and not isinstance(password, str):
        raise ValidationError("password must be a string")
    return payload, password


@users_bp.get("")
@require_user
@require_role("admin")
def list_users():
    """
    Query params:
    - role: admin | sales | technician
    - is_active: true | false
    - search: matches name, email or staff id
    """
    rows = users_service.list_users(
        role=arg_str("role"),
        is_active=arg_bool("is_active", "isActive"),
        search=arg_str("search", "q"),
    )
    return {"data": rows}


@users_bp.get("/sales-persons")
@require_user
def list_sales_persons():
    return {"data": users_service.list_sales_persons()}


@users_bp.get("/technicians")
@require_user
def list_technicians():
    return {"data": users_service.list_technicians()}


@users_bp.get("/me")
@require_user
def current_user():
    return {"data": g.current_user.to_dict()}


@users_bp.get("/<int:user_id>")
@require_user
def get_user(user_id: int):
    if g.current_user.role != "admin" and g.current_user.id != user_id:
        return {"error": "Permission denied"}, 403
    return {"data": users_service.get_user(user_id)}


@users_bp.post("")
@require_user
@require_role("admin")
def create_user():
    payload, password = _split_password(json_body())
    patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=False)
    created = users_service.create_user(patch=patch, password=password)
    return {"data": created}, 201


@users_bp.put("/<int:user_id>")
@require_user
def update_user(user_id: int):
    """Admins edit anyone; everyone else may only edit their own profile details."""
    actor = g.current_user
    payload, password = _split_password(json_body())
    if actor.role != "admin":
        if actor.id != user_id:
            return {"error": "Permission denied"}, 403
        restricted = {"role", "is_active", "staff_id", "branch_id"} & set(payload)
        if restricted:
            return {"error": f"Field not allowed: {sorted(restricted)[0]}"}, 403

    patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=True)
    updated = users_service.update_user(user_id, patch=patch, password=password)
    return {"data": updated}


@users_bp.post("/<int:user_id>/toggle-status")
@require_user
@require_role("admin")
def toggle_status(user_id: int):
    payload = json_body()
    is_active = payload.get("is_active")
    if is_active is not None and not isinstance(is_active, bool):
        return {"error": "is_active must be a boolean"}, 400
    if user_id == g.current_user.id and is_active is not True:
        return {"error": "You cannot deactivate your own account"}, 400
    return {"data": users_service.toggle_user_status(user_id, is_active=is_active)}
