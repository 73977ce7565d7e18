# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/repairdesk/routes/sales.py
"""
Sales routes.

POST /api/sales takes {"sale": {...}, "items": [{...}, ...]} and writes the
sale, its items, stock decrements and the commission in one transaction.
Item-level validation failures come back as 400 with per-item details.
"""
from flask import Blueprint, g

from ..decorators import require_role, require_user
from ..services import sales_service
from ..services.sales_service import SaleError
from ..validation import ValidationError
from .params import arg_datetime, arg_int, arg_str, json_body

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_user
def list_sales():
    """
    Query params (camelCase or snake_case):
    - startDate / endDate: ISO-8601, inclusive
    - customerId, salesPersonId: int
    - status: payment status
    - search: invoice number, customer or sales person name
    """
    rows = sales_service.list_sales(
        start_date=arg_datetime("startDate", "start_date"),
        end_date=arg_datetime("endDate", "end_date"),
        customer_id=arg_int("customerId", "customer_id"),
        sales_person_id=arg_int("salesPersonId", "sales_person_id"),
        status=arg_str("status"),
        search=arg_str("search", "q"),
    )
    return {"data": rows}


@sales_bp.get("/next-invoice-number")
@require_user
def next_invoice_number():
    return {"data": {"invoice_number": sales_service.generate_invoice_number()}}


@sales_bp.get("/<int:sale_id>")
@require_user
def get_sale(sale_id: int):
    return {"data": sales_service.get_sale(sale_id)}


@sales_bp.post("")
@require_user
@require_role("admin", "sales")
def create_sale():
    payload = json_body()
    sale = payload.get("sale")
    items = payload.get("items", payload.get("saleItems"))
    if not isinstance(sale, dict):
        raise ValidationError("sale is required")
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one sale item is required")

    try:
        created = sales_service.create_sale(sale=sale, items=items, actor=g.current_user)
    except SaleError as e:
        return {"error": str(e), "details": e.details}, 400
    return {"data": created}, 201


@sales_bp.put("/<int:sale_id>")
@require_user
@require_role("admin", "sales")
def update_sale(sale_id: int):
    return {"data": sales_service.update_sale(sale_id, patch=json_body())}


@sales_bp.delete("/<int:sale_id>")
@require_user
@require_role("admin")
def delete_sale(sale_id: int):
    sales_service.delete_sale(sale_id)
    return {"ok": True}
