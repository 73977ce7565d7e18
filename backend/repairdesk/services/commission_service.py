# backend/repairdesk/services/commission_service.py
"""
Sales commissions.

One commission row per sale, created with the sale when its computed
amount is positive. Only admins change paid state; everyone else only
ever sees their own rows (enforced by passing the acting user in).

Amounts are derived from sale items:
    sum(quantity * unit_price_cents * commission_rate_bps / 10000)
rounded half-up to the cent once, after summing.
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import or_

from ..extensions import db, query_cache
from ..models import Commission, SaleItem, User
from ..query_cache import freeze
from ..time_utils import end_of_day, utcnow
from ..validation import NotFoundError, PermissionDeniedError, ValidationError
from .aggregation import commission_summary_by_person, commission_totals

CACHE_PREFIXES = ("commissions", "commission-stats", "sales", "reports")
REPORT_TYPES = ("summary", "detailed")


def _field(item, name: str):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def compute_commission_cents(items) -> int:
    total = Decimal(0)
    for item in items:
        quantity = _field(item, "quantity") or 0
        unit_price = _field(item, "unit_price_cents") or 0
        rate = _field(item, "commission_rate_bps") or 0
        total += Decimal(quantity) * Decimal(unit_price) * Decimal(rate) / Decimal(10000)
    return int(total.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _scope_person(actor: User | None, sales_person_id: int | None) -> int | None:
    """Non-admins are pinned to their own commissions."""
    if actor is not None and actor.role != "admin":
        return actor.id
    return sales_person_id


def _get_commission_or_404(commission_id: int) -> Commission:
    commission = db.session.get(Commission, commission_id)
    if not commission:
        raise NotFoundError("Commission not found")
    return commission


def list_commissions(
    *,
    actor: User | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    sales_person_id: int | None = None,
    is_paid: bool | None = None,
) -> list[dict]:
    """Commissions newest first; date bounds apply to created_at and are inclusive."""
    person_id = _scope_person(actor, sales_person_id)
    filters = {
        "start_date": start_date,
        "end_date": end_date,
        "sales_person_id": person_id,
        "is_paid": is_paid,
    }

    def _load():
        query = db.session.query(Commission)
        if person_id is not None:
            query = query.filter(Commission.sales_person_id == person_id)
        if start_date:
            query = query.filter(Commission.created_at >= start_date)
        if end_date:
            bound = end_date
            if bound.hour == 0 and bound.minute == 0 and bound.second == 0 and bound.microsecond == 0:
                bound = end_of_day(bound.date())
            query = query.filter(Commission.created_at <= bound)
        if is_paid is not None:
            query = query.filter(Commission.is_paid.is_(bool(is_paid)))
        rows = query.order_by(Commission.created_at.desc(), Commission.id.desc()).all()
        return [c.to_dict() for c in rows]

    return query_cache.get_or_load(("commissions", "list", freeze(filters)), _load)


def get_commission(commission_id: int, *, actor: User | None = None) -> dict:
    commission = _get_commission_or_404(commission_id)
    if actor is not None and actor.role != "admin" and commission.sales_person_id != actor.id:
        raise NotFoundError("Commission not found")
    return commission.to_dict()


def update_commission(commission_id: int, *, is_paid: bool) -> dict:
    """Paid rows get payment_date=now; unpaid rows have it cleared."""
    if not isinstance(is_paid, bool):
        raise ValidationError("is_paid must be a boolean")
    commission = _get_commission_or_404(commission_id)
    commission.is_paid = is_paid
    commission.payment_date = utcnow() if is_paid else None
    db.session.commit()
    query_cache.invalidate(*CACHE_PREFIXES)
    return commission.to_dict()


def bulk_pay_commissions(*, sales_person_id: int, day: date) -> dict:
    """Mark every unpaid commission of the person created on `day` (UTC) as paid."""
    if not db.session.get(User, sales_person_id):
        raise NotFoundError("Sales person not found")

    start = datetime(day.year, day.month, day.day)
    rows = (
        db.session.query(Commission)
        .filter(
            Commission.sales_person_id == sales_person_id,
            Commission.is_paid.is_(False),
            Commission.created_at >= start,
            Commission.created_at <= end_of_day(day),
        )
        .all()
    )
    now = utcnow()
    for commission in rows:
        commission.is_paid = True
        commission.payment_date = now
    db.session.commit()
    query_cache.invalidate(*CACHE_PREFIXES)

    current_app.logger.info(
        "Bulk paid %d commission(s) for user %s on %s", len(rows), sales_person_id, day.isoformat()
    )
    return {
        "updated": len(rows),
        "total_paid_cents": sum(c.commission_amount_cents or 0 for c in rows),
        "ids": [c.id for c in rows],
    }


def sync_commissions(*, only_zero_amount: bool = False) -> dict:
    """
    Recompute stored commission amounts from their sale items.

    Each row is updated in its own savepoint so one bad row does not stop
    the run; failures are reported per row.
    """
    query = db.session.query(Commission)
    if only_zero_amount:
        query = query.filter(or_(Commission.commission_amount_cents == 0, Commission.commission_amount_cents.is_(None)))
    commissions = query.order_by(Commission.id.asc()).all()

    results = {"total": len(commissions), "success": 0, "failure": 0, "details": []}
    for commission in commissions:
        try:
            with db.session.begin_nested():
                items = db.session.query(SaleItem).filter(SaleItem.sale_id == commission.sale_id).all()
                commission.commission_amount_cents = compute_commission_cents(items)
            results["success"] += 1
            results["details"].append({"id": commission.id, "success": True})
        except Exception as e:
            current_app.logger.warning("Commission %s sync failed: %s", commission.id, e)
            results["failure"] += 1
            results["details"].append({"id": commission.id, "success": False, "error": str(e)})

    db.session.commit()
    query_cache.invalidate(*CACHE_PREFIXES)
    current_app.logger.info(
        "Commission sync finished: %d ok, %d failed", results["success"], results["failure"]
    )
    return results


def commission_summary(sales_person_id: int) -> dict:
    """Totals for one sales person."""
    rows = list_commissions(sales_person_id=sales_person_id)
    totals = commission_totals(rows)
    totals["sales_person_id"] = sales_person_id
    return totals


def commission_stats(*, actor: User | None = None) -> dict:
    """Overall totals plus the five highest earners."""
    def _load():
        rows = list_commissions(actor=actor)
        data = commission_totals(rows)
        data["top_performers"] = commission_summary_by_person(rows)[:5]
        return data

    scope = actor.id if actor is not None and actor.role != "admin" else "all"
    return query_cache.get_or_load(("commission-stats", scope), _load)


def commission_report(
    *,
    actor: User | None = None,
    report_type: str = "summary",
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    sales_person_id: int | None = None,
    is_paid: bool | None = None,
) -> dict:
    if report_type not in REPORT_TYPES:
        raise ValidationError("reportType must be summary or detailed")

    rows = list_commissions(
        actor=actor,
        start_date=start_date,
        end_date=end_date,
        sales_person_id=sales_person_id,
        is_paid=is_paid,
    )
    totals = commission_totals(rows)
    if report_type == "summary":
        return {"summary": commission_summary_by_person(rows), "totals": totals}
    return {"commissions": rows, "totals": totals}


def require_own_or_admin(actor: User, sales_person_id: int) -> None:
    if actor.role != "admin" and actor.id != sales_person_id:
        raise PermissionDeniedError("You can only view your own commissions")
