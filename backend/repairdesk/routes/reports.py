# Overview: Reporting routes; read-only JSON built from the reporting service.

from flask import Blueprint, g

from ..decorators import require_role, require_user
from ..services import reporting_service
from ..services.reporting_service import ReportError
from .params import arg_int, arg_str

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _range() -> dict:
    return {
        "start": arg_str("startDate", "start_date", "start"),
        "end": arg_str("endDate", "end_date", "end"),
    }


@reports_bp.get("/sales-performance")
@require_user
@require_role("admin")
def sales_performance():
    try:
        return {"data": reporting_service.sales_performance(**_range())}
    except ReportError as e:
        return {"error": str(e)}, 400


@reports_bp.get("/product-performance")
@require_user
@require_role("admin")
def product_performance():
    try:
        return {"data": reporting_service.product_performance(**_range())}
    except ReportError as e:
        return {"error": str(e)}, 400


@reports_bp.get("/customers")
@require_user
@require_role("admin", "sales")
def customer_report():
    try:
        return {"data": reporting_service.customer_report(**_range())}
    except ReportError as e:
        return {"error": str(e)}, 400


@reports_bp.get("/time-based")
@require_user
@require_role("admin")
def time_based():
    try:
        return {"data": reporting_service.time_based_analytics(**_range())}
    except ReportError as e:
        return {"error": str(e)}, 400


@reports_bp.get("/service-analytics")
@require_user
@require_role("admin")
def service_analytics():
    days = arg_int("days") or 30
    try:
        return {"data": reporting_service.service_analytics(days=days)}
    except ReportError as e:
        return {"error": str(e)}, 400


@reports_bp.get("/technician-workload")
@require_user
@require_role("admin")
def technician_workload():
    return {"data": reporting_service.technician_workload()}


@reports_bp.get("/dashboard")
@require_user
def dashboard():
    return {"data": reporting_service.dashboard(actor=g.current_user)}
