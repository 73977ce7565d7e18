# Overview: Inventory routes; stock levels per product.

from flask import Blueprint

from ..decorators import require_role, require_user
from ..models import Inventory
from ..services import inventory_service
from ..validation import ModelValidationPolicy, ValidationError, enforce_rules_inventory, validate_payload
from .params import arg_bool, arg_int, arg_str, json_body

INVENTORY_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity", "reorder_level", "last_restock_date"},
    required_on_create={"product_id"},
)
INVENTORY_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"quantity", "reorder_level", "last_restock_date"},
)

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_user
def list_inventory():
    """
    Query params:
    - product_id: int
    - low_stock: true -> at or under reorder level
    - out_of_stock: true -> nothing on hand
    - stock: all | low | out | in
    - search: product name or sku
    """
    rows = inventory_service.list_inventory(
        product_id=arg_int("product_id", "productId"),
        low_stock=bool(arg_bool("low_stock", "lowStock")),
        out_of_stock=bool(arg_bool("out_of_stock", "outOfStock")),
        stock_filter=arg_str("stock"),
        search=arg_str("search", "q"),
    )
    return {"data": rows}


@inventory_bp.get("/<int:inventory_id>")
@require_user
def get_inventory(inventory_id: int):
    return {"data": inventory_service.get_inventory(inventory_id)}


@inventory_bp.get("/product/<int:product_id>")
@require_user
def get_inventory_by_product(product_id: int):
    return {"data": inventory_service.get_inventory_by_product(product_id)}


@inventory_bp.post("")
@require_user
@require_role("admin")
def create_inventory():
    patch = validate_payload(model=Inventory, payload=json_body(), policy=INVENTORY_POLICY, partial=False)
    enforce_rules_inventory(patch)
    return {"data": inventory_service.create_inventory(patch=patch)}, 201


@inventory_bp.put("/<int:inventory_id>")
@require_user
@require_role("admin")
def update_inventory(inventory_id: int):
    patch = validate_payload(model=Inventory, payload=json_body(), policy=INVENTORY_UPDATE_POLICY, partial=True)
    enforce_rules_inventory(patch)
    return {"data": inventory_service.update_inventory(inventory_id, patch=patch)}


@inventory_bp.post("/<int:inventory_id>/stock")
@require_user
@require_role("admin")
def update_stock(inventory_id: int):
    """Body: {"quantity": int, "mode": "set" | "add" | "subtract"}"""
    payload = json_body()
    quantity = payload.get("quantity")
    if quantity is None:
        raise ValidationError("quantity is required")
    updated = inventory_service.update_stock(
        inventory_id,
        quantity=quantity,
        mode=payload.get("mode", "set"),
    )
    return {"data": updated}


@inventory_bp.delete("/<int:inventory_id>")
@require_user
@require_role("admin")
def delete_inventory(inventory_id: int):
    inventory_service.delete_inventory(inventory_id)
    return {"ok": True}
