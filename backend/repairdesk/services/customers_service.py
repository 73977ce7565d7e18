# Overview: Customer records and their purchase/service history.

from __future__ import annotations

from ..extensions import db, query_cache
from ..models import Customer, Sale, ServiceRequest
from ..validation import ConflictError, NotFoundError
from .filters import CUSTOMER_SEARCH_FIELDS, filter_rows

CUSTOMER_MUTABLE_FIELDS = {"name", "email", "phone", "address", "company"}


def _get_customer_or_404(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def list_customers(*, search: str | None = None) -> list[dict]:
    def _load():
        rows = db.session.query(Customer).order_by(Customer.name.asc(), Customer.id.asc()).all()
        return [c.to_dict() for c in rows]

    rows = query_cache.get_or_load(("customers", "all"), _load)
    return filter_rows(rows, search=search, search_fields=CUSTOMER_SEARCH_FIELDS)


def get_customer(customer_id: int) -> dict:
    """Customer with recent sales and service requests plus lifetime totals."""
    def _load():
        customer = _get_customer_or_404(customer_id)
        sales = (
            db.session.query(Sale)
            .filter(Sale.customer_id == customer.id)
            .order_by(Sale.sale_date.desc(), Sale.id.desc())
            .all()
        )
        requests = (
            db.session.query(ServiceRequest)
            .filter(ServiceRequest.customer_id == customer.id)
            .order_by(ServiceRequest.created_at.desc(), ServiceRequest.id.desc())
            .all()
        )
        data = customer.to_dict()
        data["sales"] = [s.to_dict() for s in sales]
        data["service_requests"] = [r.to_dict() for r in requests]
        data["purchase_count"] = len(sales)
        data["total_spent_cents"] = sum(
            s.total_amount_cents or 0 for s in sales if s.payment_status == "paid"
        )
        data["service_request_count"] = len(requests)
        return data

    return query_cache.get_or_load(("customers", "detail", customer_id), _load)


def create_customer(*, patch: dict, created_by_id: int | None = None) -> dict:
    customer = Customer(**patch)
    customer.created_by_id = created_by_id
    db.session.add(customer)
    db.session.commit()
    query_cache.invalidate("customers")
    return customer.to_dict()


def update_customer(customer_id: int, *, patch: dict) -> dict:
    customer = _get_customer_or_404(customer_id)
    for k, v in patch.items():
        if k in CUSTOMER_MUTABLE_FIELDS:
            setattr(customer, k, v)
    db.session.commit()
    # sales and tickets embed the customer summary
    query_cache.invalidate("customers", "sales", "service-requests", "reports")
    return customer.to_dict()


def delete_customer(customer_id: int) -> None:
    customer = _get_customer_or_404(customer_id)
    if db.session.query(Sale.id).filter(Sale.customer_id == customer.id).first():
        raise ConflictError("Cannot delete customer with sales history")
    if db.session.query(ServiceRequest.id).filter(ServiceRequest.customer_id == customer.id).first():
        raise ConflictError("Cannot delete customer with service requests")
    db.session.delete(customer)
    db.session.commit()
    query_cache.invalidate("customers")
