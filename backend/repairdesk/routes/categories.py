# Overview: Product category routes.

from flask import Blueprint

from ..decorators import require_role, require_user
from ..models import ProductCategory
from ..services import categories_service
from ..validation import ModelValidationPolicy, validate_payload
from .params import json_body

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
@require_user
def list_categories():
    return {"data": categories_service.list_categories()}


@categories_bp.get("/<int:category_id>")
@require_user
def get_category(category_id: int):
    return {"data": categories_service.get_category(category_id)}


@categories_bp.post("")
@require_user
@require_role("admin")
def create_category():
    patch = validate_payload(model=ProductCategory, payload=json_body(), policy=CATEGORY_POLICY, partial=False)
    return {"data": categories_service.create_category(patch=patch)}, 201


@categories_bp.put("/<int:category_id>")
@require_user
@require_role("admin")
def update_category(category_id: int):
    patch = validate_payload(model=ProductCategory, payload=json_body(), policy=CATEGORY_POLICY, partial=True)
    return {"data": categories_service.update_category(category_id, patch=patch)}


@categories_bp.delete("/<int:category_id>")
@require_user
@require_role("admin")
def delete_category(category_id: int):
    categories_service.delete_category(category_id)
    return {"ok": True}
