# Overview: Sales documents with items, stock and commission side effects.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db, query_cache
from ..models import Customer, Product, Sale, SaleItem, User, Commission
from ..query_cache import freeze
from ..time_utils import end_of_day, utcnow
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    enforce_rules_sale,
    enforce_rules_sale_item,
    require_choice,
    validate_payload,
)
from ..models.sales import PAYMENT_METHODS, PAYMENT_STATUSES
from .commission_service import compute_commission_cents
from .document_service import INVOICE_PREFIX, next_document_number, peek_document_number
from .filters import SALE_SEARCH_FIELDS, filter_rows
from .inventory_service import adjust_product_stock

SALE_POLICY = ModelValidationPolicy(
    writable_fields={
        "invoice_number", "customer_id", "sales_person_id", "sale_date",
        "subtotal_cents", "tax_cents", "discount_cents", "total_amount_cents",
        "payment_status", "payment_method", "notes",
    },
)

SALE_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "product_id", "quantity", "unit_price_cents", "discount_bps",
        "commission_rate_bps", "total_price_cents",
    },
    required_on_create={"product_id", "quantity"},
)

SALES_PERSON_ROLES = ("sales", "admin")

SALE_MUTABLE_FIELDS = {"customer_id", "sale_date", "payment_status", "payment_method", "notes"}

CACHE_PREFIXES = (
    "sales",
    "commissions",
    "commission-stats",
    "inventory",
    "products",
    "products-with-inventory",
    "customers",
    "reports",
)


class SaleError(Exception):
    """Raised when a sale cannot be written; carries per-item details for the client."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _get_sale_or_404(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale not found")
    return sale


def _discounted_total(quantity: int, unit_price_cents: int, discount_bps: int) -> int:
    gross = quantity * unit_price_cents
    return gross - (gross * discount_bps + 5000) // 10000


def list_sales(
    *,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    customer_id: int | None = None,
    sales_person_id: int | None = None,
    status: str | None = None,
    search: str | None = None,
    include_items: bool = False,
) -> list[dict]:
    """
    Sales newest first. Date bounds are inclusive; a bare end date
    covers that whole day.
    """
    if status is not None:
        require_choice({"status": status}, "status", PAYMENT_STATUSES)

    filters = {
        "start_date": start_date,
        "end_date": end_date,
        "customer_id": customer_id,
        "sales_person_id": sales_person_id,
        "status": status,
        "include_items": include_items,
    }

    def _load():
        query = db.session.query(Sale)
        if start_date:
            query = query.filter(Sale.sale_date >= start_date)
        if end_date:
            bound = end_date
            if bound.hour == 0 and bound.minute == 0 and bound.second == 0 and bound.microsecond == 0:
                bound = end_of_day(bound.date())
            query = query.filter(Sale.sale_date <= bound)
        if customer_id is not None:
            query = query.filter(Sale.customer_id == customer_id)
        if sales_person_id is not None:
            query = query.filter(Sale.sales_person_id == sales_person_id)
        if status:
            query = query.filter(Sale.payment_status == status)
        rows = query.order_by(Sale.sale_date.desc(), Sale.id.desc()).all()
        return [s.to_dict(include_items=include_items) for s in rows]

    rows = query_cache.get_or_load(("sales", "list", freeze(filters)), _load)
    return filter_rows(rows, search=search, search_fields=SALE_SEARCH_FIELDS)


def get_sale(sale_id: int) -> dict:
    """Sale with customer, sales person, items (each with its product) and commission."""
    def _load():
        sale = _get_sale_or_404(sale_id)
        data = sale.to_dict(include_items=True)
        data["commission"] = sale.commission.to_dict() if sale.commission else None
        return data

    return query_cache.get_or_load(("sales", "detail", sale_id), _load)


def generate_invoice_number(when: datetime | None = None) -> str:
    """Preview of the next invoice number for the day (not reserved)."""
    return peek_document_number(prefix=INVOICE_PREFIX, when=when)


def _build_items(raw_items: list) -> tuple[list[SaleItem], dict]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("At least one sale item is required")

    items: list[SaleItem] = []
    errors: dict = {}
    for index, raw in enumerate(raw_items):
        try:
            patch = validate_payload(model=SaleItem, payload=raw, policy=SALE_ITEM_POLICY, partial=False)
            product = db.session.get(Product, patch["product_id"])
            if not product:
                raise ValidationError(f"Product {patch['product_id']} not found")
            if not product.is_active:
                raise ValidationError(f"Product {product.sku} is not active")

            patch.setdefault("unit_price_cents", product.selling_price_cents)
            if patch.get("commission_rate_bps") is None:
                patch["commission_rate_bps"] = product.commission_rate_bps or 0
            if patch.get("discount_bps") is None:
                patch["discount_bps"] = 0
            enforce_rules_sale_item(patch)
            if patch["unit_price_cents"] <= 0:
                raise ValidationError("unit_price_cents must be > 0")
            if patch.get("total_price_cents") is None:
                patch["total_price_cents"] = _discounted_total(
                    patch["quantity"], patch["unit_price_cents"], patch["discount_bps"]
                )
        except ValidationError as e:
            errors[index] = str(e)
            continue
        items.append(SaleItem(**patch))

    return items, errors


def create_sale(*, sale: dict, items: list, actor: User) -> dict:
    """
    Write a sale, its items, the stock decrements and the commission record
    in one transaction. Any failure rolls the whole sale back.

    The commission is quantity * unit price * rate summed over items
    (discounts do not reduce it) and is only recorded when positive.
    """
    patch = validate_payload(model=Sale, payload=sale, policy=SALE_POLICY, partial=False)
    enforce_rules_sale(patch)
    require_choice(patch, "payment_status", PAYMENT_STATUSES)
    require_choice(patch, "payment_method", PAYMENT_METHODS)

    if patch.get("sales_person_id") is None:
        patch["sales_person_id"] = actor.id
    if actor.role != "admin" and patch["sales_person_id"] != actor.id:
        raise PermissionDeniedError("Sales can only be recorded under your own name")
    person = db.session.get(User, patch["sales_person_id"])
    if not person or not person.is_active or person.role not in SALES_PERSON_ROLES:
        raise ValidationError("Sales person not found")
    if patch.get("customer_id") is not None and not db.session.get(Customer, patch["customer_id"]):
        raise ValidationError("Customer not found")

    sale_items, item_errors = _build_items(items)
    if item_errors:
        raise SaleError("Invalid sale items", details={"items": item_errors})

    subtotal = sum(i.total_price_cents for i in sale_items)
    if patch.get("subtotal_cents") is None:
        patch["subtotal_cents"] = subtotal
    patch.setdefault("tax_cents", 0)
    patch.setdefault("discount_cents", 0)
    if patch.get("total_amount_cents") is None:
        patch["total_amount_cents"] = patch["subtotal_cents"] + (patch["tax_cents"] or 0) - (patch["discount_cents"] or 0)
    if patch["total_amount_cents"] <= 0:
        raise ValidationError("total_amount_cents must be > 0")

    record = Sale(**patch)
    if record.sale_date is None:
        record.sale_date = utcnow()

    try:
        if not record.invoice_number:
            record.invoice_number = next_document_number(prefix=INVOICE_PREFIX, when=record.sale_date)
        elif db.session.query(Sale.id).filter_by(invoice_number=record.invoice_number).first():
            raise ConflictError("Invoice number already exists")

        record.items = sale_items
        for item in sale_items:
            adjust_product_stock(item.product_id, -item.quantity)

        commission_cents = compute_commission_cents(sale_items)
        if commission_cents > 0:
            record.commission = Commission(
                sales_person_id=record.sales_person_id,
                commission_amount_cents=commission_cents,
                is_paid=False,
            )

        db.session.add(record)
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        if "invoice_number" in str(e.orig):
            raise ConflictError("Invoice number already exists")
        raise
    except Exception:
        db.session.rollback()
        raise

    query_cache.invalidate(*CACHE_PREFIXES)
    current_app.logger.info(
        "Sale %s created by user %s (total=%s, commission=%s)",
        record.invoice_number, actor.id, record.total_amount_cents, commission_cents,
    )
    return get_sale(record.id)


def update_sale(sale_id: int, *, patch: dict) -> dict:
    sale = _get_sale_or_404(sale_id)
    unknown = set(patch) - SALE_MUTABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")
    clean = validate_payload(model=Sale, payload=patch, policy=SALE_POLICY, partial=True)
    require_choice(clean, "payment_status", PAYMENT_STATUSES)
    require_choice(clean, "payment_method", PAYMENT_METHODS)
    if clean.get("customer_id") is not None and not db.session.get(Customer, clean["customer_id"]):
        raise ValidationError("Customer not found")

    for k, v in clean.items():
        setattr(sale, k, v)
    db.session.commit()
    query_cache.invalidate(*CACHE_PREFIXES)
    return get_sale(sale.id)


def delete_sale(sale_id: int) -> None:
    """Remove the sale with its items and commission; sold stock goes back on hand."""
    sale = _get_sale_or_404(sale_id)
    try:
        for item in sale.items:
            adjust_product_stock(item.product_id, item.quantity)
        db.session.delete(sale)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    query_cache.invalidate(*CACHE_PREFIXES)
    current_app.logger.info("Sale %s deleted", sale_id)
