# Overview: Flask API routes for products; parses input and returns JSON responses.

# backend/repairdesk/routes/products.py
"""
Product management routes.

All routes need an identified user. Reads are open to every role;
writes are admin only. DELETE is a soft delete.
"""
from flask import Blueprint, g

from ..decorators import require_role, require_user
from ..models import Product
from ..services import products_service
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from .params import arg_bool, arg_int, arg_str, json_body

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "category_id", "cost_price_cents",
        "selling_price_cents", "commission_rate_bps", "image_url", "is_active",
    },
    required_on_create={"sku", "name"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_user
def list_products():
    """
    Query params:
    - category_id: int
    - is_active: true | false
    - search: matches name, sku or description
    """
    rows = products_service.list_products(
        category_id=arg_int("category_id", "categoryId"),
        is_active=arg_bool("is_active", "isActive"),
        search=arg_str("search", "q"),
    )
    return {"data": rows}


@products_bp.get("/with-inventory")
@require_user
def list_products_with_inventory():
    return {"data": products_service.list_products_with_inventory()}


@products_bp.get("/<int:product_id>")
@require_user
def get_product(product_id: int):
    return {"data": products_service.get_product(product_id)}


@products_bp.post("")
@require_user
@require_role("admin")
def create_product_route():
    patch = validate_payload(model=Product, payload=json_body(), policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)
    created = products_service.create_product(patch=patch, created_by_id=g.current_user.id)
    return {"data": created}, 201


@products_bp.put("/<int:product_id>")
@require_user
@require_role("admin")
def update_product_route(product_id: int):
    patch = validate_payload(model=Product, payload=json_body(), policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)
    return {"data": products_service.update_product(product_id, patch=patch)}


@products_bp.delete("/<int:product_id>")
@require_user
@require_role("admin")
def delete_product_route(product_id: int):
    if not products_service.delete_product(product_id):
        return {"error": "Product not found"}, 404
    return {"ok": True}, 200
