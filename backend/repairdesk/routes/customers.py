# Overview: Customer routes.

from flask import Blueprint, g

from ..decorators import require_role, require_user
from ..models import Customer
from ..services import customers_service
from ..validation import ModelValidationPolicy, validate_payload
from .params import arg_str, json_body

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "address", "company"},
    required_on_create={"name"},
    min_lengths={"name": 2},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_user
def list_customers():
    return {"data": customers_service.list_customers(search=arg_str("search", "q"))}


@customers_bp.get("/<int:customer_id>")
@require_user
def get_customer(customer_id: int):
    return {"data": customers_service.get_customer(customer_id)}


@customers_bp.post("")
@require_user
@require_role("admin", "sales")
def create_customer():
    patch = validate_payload(model=Customer, payload=json_body(), policy=CUSTOMER_POLICY, partial=False)
    created = customers_service.create_customer(patch=patch, created_by_id=g.current_user.id)
    return {"data": created}, 201


@customers_bp.put("/<int:customer_id>")
@require_user
@require_role("admin", "sales")
def update_customer(customer_id: int):
    patch = validate_payload(model=Customer, payload=json_body(), policy=CUSTOMER_POLICY, partial=True)
    return {"data": customers_service.update_customer(customer_id, patch=patch)}


@customers_bp.delete("/<int:customer_id>")
@require_user
@require_role("admin")
def delete_customer(customer_id: int):
    customers_service.delete_customer(customer_id)
    return {"ok": True}
