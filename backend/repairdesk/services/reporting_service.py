# Overview: Report payloads composed from service reads, list filters and aggregation helpers.

from __future__ import annotations

from datetime import datetime, timedelta

from ..extensions import db
from ..models import Customer, Product, Sale, ServiceRequest, User
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow
from . import aggregation
from .commission_service import commission_stats
from .inventory_service import list_inventory
from .sales_service import list_sales
from .service_request_service import list_service_requests
from .users_service import list_technicians

ANALYTICS_WINDOWS = (7, 30, 90)


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ReportError("start and end must be ISO-8601 dates")
    if start_dt and end_dt and start_dt > end_dt:
        raise ReportError("start must be before end")
    return start_dt, end_dt


def _paid_sales(start: str | None, end: str | None) -> tuple[list[dict], datetime | None, datetime | None]:
    start_dt, end_dt = _parse_range(start, end)
    rows = list_sales(start_date=start_dt, end_date=end_dt, status="paid", include_items=True)
    return rows, start_dt, end_dt


def _range_meta(start_dt: datetime | None, end_dt: datetime | None) -> dict:
    return {"start": to_utc_z(start_dt), "end": to_utc_z(end_dt)}


def sales_performance(*, start: str | None = None, end: str | None = None, now: datetime | None = None) -> dict:
    """Paid-sales overview, top five sales people, and the trailing 30-day trend."""
    now = now or utcnow()
    rows, start_dt, end_dt = _paid_sales(start, end)
    trend_rows, _, _ = _paid_sales(to_utc_z(now - timedelta(days=30)), None)
    return {
        **_range_meta(start_dt, end_dt),
        **aggregation.sales_overview(rows),
        "top_performers": aggregation.top_performers(rows, limit=5),
        "trend": aggregation.daily_trend(trend_rows, now=now, days=30),
    }


def product_performance(*, start: str | None = None, end: str | None = None) -> dict:
    rows, start_dt, end_dt = _paid_sales(start, end)
    items = [item for sale in rows for item in sale.get("items") or []]
    return {
        **_range_meta(start_dt, end_dt),
        "top_products": aggregation.product_performance(items, limit=10),
        "categories": aggregation.category_performance(items),
        "low_stock": aggregation.low_stock(list_inventory()),
    }


def customer_report(*, start: str | None = None, end: str | None = None) -> dict:
    rows, start_dt, end_dt = _paid_sales(start, end)
    with_customer = [r for r in rows if r.get("customer_id") is not None]
    return {
        **_range_meta(start_dt, end_dt),
        "customer_count": db.session.query(Customer).count(),
        "active_customers": len({r["customer_id"] for r in with_customer}),
        "top_customers": aggregation.top_customers(with_customer, limit=10),
    }


def time_based_analytics(*, start: str | None = None, end: str | None = None) -> dict:
    rows, start_dt, end_dt = _paid_sales(start, end)
    return {
        **_range_meta(start_dt, end_dt),
        "daily": aggregation.group_by_date(rows),
        "monthly": aggregation.group_by_month(rows),
        "hourly": aggregation.group_by_hour(rows),
        "day_of_week": aggregation.group_by_day_of_week(rows),
    }


def service_analytics(*, days: int = 30, now: datetime | None = None) -> dict:
    if days not in ANALYTICS_WINDOWS:
        raise ReportError(f"days must be one of: {', '.join(str(d) for d in ANALYTICS_WINDOWS)}")
    return aggregation.service_analytics(list_service_requests(), now=now or utcnow(), days=days)


def technician_workload(*, now: datetime | None = None) -> dict:
    technicians = [t for t in list_technicians() if t["role"] == "technician"]
    return aggregation.technician_workload(technicians, list_service_requests(), now=now or utcnow())


def dashboard(*, actor: User, now: datetime | None = None) -> dict:
    """Headline numbers for the landing page, scoped to what the role can see."""
    now = now or utcnow()
    today = now.date().isoformat()

    if actor.role == "technician":
        mine = list_service_requests(actor=actor)
        open_requests = [r for r in mine if r["status"] not in ("completed", "cancelled")]
        return {
            "role": actor.role,
            "assigned_requests": len(mine),
            "open_requests": len(open_requests),
            "completed_today": sum(
                1 for r in mine if r["completed_date"] and r["completed_date"][:10] == today
            ),
            "overdue": sum(
                1 for r in open_requests
                if r["estimated_completion"] and aggregation.as_datetime(r["estimated_completion"]) < now
            ),
        }

    sales_today = list_sales(start_date=parse_iso_datetime(today), end_date=parse_iso_datetime(today))
    if actor.role == "sales":
        mine_today = [s for s in sales_today if s["sales_person_id"] == actor.id]
        stats = commission_stats(actor=actor)
        return {
            "role": actor.role,
            "sales_today": len(mine_today),
            "revenue_today_cents": sum(s["total_amount_cents"] for s in mine_today),
            "unpaid_commission_cents": stats["unpaid_commission_cents"],
            "total_commission_cents": stats["total_commission_cents"],
        }

    return {
        "role": actor.role,
        "employee_count": db.session.query(User).filter(User.is_active.is_(True)).count(),
        "product_count": db.session.query(Product).filter(Product.is_active.is_(True)).count(),
        "customer_count": db.session.query(Customer).count(),
        "sales_today": len(sales_today),
        "revenue_today_cents": sum(
            s["total_amount_cents"] for s in sales_today if s["payment_status"] == "paid"
        ),
        "total_sales": db.session.query(Sale).count(),
        "open_service_requests": (
            db.session.query(ServiceRequest)
            .filter(ServiceRequest.status.notin_(("completed", "cancelled")))
            .count()
        ),
        "low_stock_count": len(aggregation.low_stock(list_inventory())),
        "unpaid_commission_cents": commission_stats()["unpaid_commission_cents"],
    }
