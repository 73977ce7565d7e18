# Overview: Commission routes; admins settle, sales persons read their own.

from flask import Blueprint, current_app, g

from ..decorators import require_role, require_user
from ..services import commission_service
from ..time_utils import parse_iso_date
from ..validation import ValidationError
from .params import arg_bool, arg_datetime, arg_int, arg_str, json_body

commissions_bp = Blueprint("commissions", __name__, url_prefix="/api/commissions")


def _filters() -> dict:
    return {
        "start_date": arg_datetime("startDate", "start_date"),
        "end_date": arg_datetime("endDate", "end_date"),
        "sales_person_id": arg_int("salesPersonId", "sales_person_id"),
        "is_paid": arg_bool("isPaid", "is_paid"),
    }


@commissions_bp.get("")
@require_user
def list_commissions():
    return {"data": commission_service.list_commissions(actor=g.current_user, **_filters())}


@commissions_bp.patch("")
@require_user
@require_role("admin")
def mark_commission():
    """Body: {"id": int, "is_paid": bool}"""
    payload = json_body()
    commission_id = payload.get("id")
    if not isinstance(commission_id, int) or isinstance(commission_id, bool):
        raise ValidationError("id is required")
    updated = commission_service.update_commission(commission_id, is_paid=payload.get("is_paid"))
    return {"data": updated}


@commissions_bp.get("/stats")
@require_user
def commission_stats():
    return {"data": commission_service.commission_stats(actor=g.current_user)}


@commissions_bp.get("/reports")
@require_user
def commission_report():
    report = commission_service.commission_report(
        actor=g.current_user,
        report_type=arg_str("reportType", "report_type") or "summary",
        **_filters(),
    )
    return {"data": report}


@commissions_bp.get("/summary/<int:sales_person_id>")
@require_user
def commission_summary(sales_person_id: int):
    commission_service.require_own_or_admin(g.current_user, sales_person_id)
    return {"data": commission_service.commission_summary(sales_person_id)}


@commissions_bp.post("/bulk-pay")
@require_user
@require_role("admin")
def bulk_pay():
    """Body: {"sales_person_id": int, "date": "YYYY-MM-DD"}"""
    payload = json_body()
    sales_person_id = payload.get("sales_person_id", payload.get("salesPersonId"))
    raw_date = payload.get("date")
    if not isinstance(sales_person_id, int) or isinstance(sales_person_id, bool):
        raise ValidationError("sales_person_id is required")
    if not raw_date:
        raise ValidationError("date is required")
    try:
        day = parse_iso_date(raw_date)
    except ValueError:
        raise ValidationError("date must be YYYY-MM-DD")
    return {"data": commission_service.bulk_pay_commissions(sales_person_id=sales_person_id, day=day)}


@commissions_bp.post("/repair")
@require_user
@require_role("admin")
def repair_commissions():
    only_zero = bool(arg_bool("onlyZeroAmount", "only_zero_amount"))
    results = commission_service.sync_commissions(only_zero_amount=only_zero)
    current_app.logger.info(
        "Commission repair requested by user %s (only_zero=%s)", g.current_user.id, only_zero
    )
    return {"data": results}


@commissions_bp.get("/<int:commission_id>")
@require_user
def get_commission(commission_id: int):
    return {"data": commission_service.get_commission(commission_id, actor=g.current_user)}


@commissions_bp.patch("/<int:commission_id>")
@require_user
@require_role("admin")
def update_commission(commission_id: int):
    payload = json_body()
    return {"data": commission_service.update_commission(commission_id, is_paid=payload.get("is_paid"))}
