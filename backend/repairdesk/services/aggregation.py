# Overview: Pure folds over already-fetched rows; no database access here.

"""
Aggregation helpers used by the reporting service.

Every helper takes plain dict rows (the to_dict() projections the services
return) and makes a single pass: key -> accumulator dict, then list, then
sort. Missing numbers count as 0, averages guard against an empty
denominator, and rows whose grouping relation is missing are skipped.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable

from ..time_utils import parse_iso_datetime


DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
DEFAULT_REORDER_LEVEL = 10
WORKLOAD_CAPACITY = 10

STOCK_OUT = "Out of Stock"
STOCK_LOW = "Low Stock"
STOCK_IN = "In Stock"


def _n(value) -> int:
    return value or 0


def as_datetime(value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return parse_iso_datetime(value)


def _avg(total, count: int):
    return total / count if count > 0 else 0


def _pct(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole > 0 else 0


def sale_profit_cents(sale: dict) -> int:
    """Profit over the sale's items: quantity * (unit price - product cost)."""
    profit = 0
    for item in sale.get("items") or []:
        product = item.get("product") or {}
        profit += _n(item.get("quantity")) * (
            _n(item.get("unit_price_cents")) - _n(product.get("cost_price_cents"))
        )
    return profit


# =============================================================================
# Time buckets
# =============================================================================


def _group_by_period(rows: Iterable[dict], key_name: str, fmt: str) -> list[dict]:
    buckets: dict[str, dict] = {}
    for row in rows:
        when = as_datetime(row.get("sale_date"))
        if when is None:
            continue
        key = when.strftime(fmt)
        bucket = buckets.setdefault(
            key, {key_name: key, "sales_count": 0, "revenue_cents": 0, "profit_cents": 0}
        )
        bucket["sales_count"] += 1
        bucket["revenue_cents"] += _n(row.get("total_amount_cents"))
        bucket["profit_cents"] += sale_profit_cents(row)
    return [buckets[k] for k in sorted(buckets)]


def group_by_date(rows: Iterable[dict]) -> list[dict]:
    """Sales per calendar day (UTC), date ascending."""
    return _group_by_period(rows, "date", "%Y-%m-%d")


def group_by_month(rows: Iterable[dict]) -> list[dict]:
    return _group_by_period(rows, "month", "%Y-%m")


def group_by_hour(rows: Iterable[dict]) -> list[dict]:
    """All 24 hours are present, even the empty ones."""
    buckets = [{"hour": h, "sales_count": 0, "revenue_cents": 0} for h in range(24)]
    for row in rows:
        when = as_datetime(row.get("sale_date"))
        if when is None:
            continue
        bucket = buckets[when.hour]
        bucket["sales_count"] += 1
        bucket["revenue_cents"] += _n(row.get("total_amount_cents"))
    return buckets


def group_by_day_of_week(rows: Iterable[dict]) -> list[dict]:
    """Seven buckets, Sunday first."""
    buckets = [{"day": name, "sales_count": 0, "revenue_cents": 0} for name in DAY_NAMES]
    for row in rows:
        when = as_datetime(row.get("sale_date"))
        if when is None:
            continue
        bucket = buckets[(when.weekday() + 1) % 7]
        bucket["sales_count"] += 1
        bucket["revenue_cents"] += _n(row.get("total_amount_cents"))
    return buckets


def daily_trend(rows: Iterable[dict], *, now: datetime, days: int = 30) -> list[dict]:
    """Per-day totals for the trailing window ending today, oldest first."""
    by_date = {b["date"]: b for b in group_by_date(rows)}
    today = now.date()
    trend = []
    for offset in range(days - 1, -1, -1):
        key = (today - timedelta(days=offset)).isoformat()
        bucket = by_date.get(key)
        trend.append({
            "date": key,
            "sales_count": bucket["sales_count"] if bucket else 0,
            "revenue_cents": bucket["revenue_cents"] if bucket else 0,
        })
    return trend


# =============================================================================
# Sales
# =============================================================================


def sales_overview(rows: Iterable[dict]) -> dict:
    count = 0
    revenue = 0
    for row in rows:
        count += 1
        revenue += _n(row.get("total_amount_cents"))
    return {
        "total_sales": count,
        "total_revenue_cents": revenue,
        "average_order_value_cents": round(_avg(revenue, count)),
    }


def top_performers(rows: Iterable[dict], *, limit: int = 5) -> list[dict]:
    people: dict[int, dict] = {}
    for row in rows:
        person_id = row.get("sales_person_id")
        if person_id is None:
            continue
        person = row.get("sales_person") or {}
        acc = people.setdefault(person_id, {
            "sales_person_id": person_id,
            "name": person.get("full_name") or "Unknown",
            "sales_count": 0,
            "revenue_cents": 0,
        })
        acc["sales_count"] += 1
        acc["revenue_cents"] += _n(row.get("total_amount_cents"))
    ranked = sorted(people.values(), key=lambda p: p["revenue_cents"], reverse=True)
    return ranked[:limit]


def product_performance(items: Iterable[dict], *, limit: int | None = 10) -> list[dict]:
    products: dict[int, dict] = {}
    for item in items:
        product = item.get("product")
        if not product:
            continue
        acc = products.setdefault(product["id"], {
            "product_id": product["id"],
            "name": product.get("name"),
            "sku": product.get("sku"),
            "quantity_sold": 0,
            "revenue_cents": 0,
            "profit_cents": 0,
        })
        qty = _n(item.get("quantity"))
        acc["quantity_sold"] += qty
        acc["revenue_cents"] += _n(item.get("total_price_cents"))
        acc["profit_cents"] += qty * (_n(item.get("unit_price_cents")) - _n(product.get("cost_price_cents")))
    ranked = sorted(products.values(), key=lambda p: p["revenue_cents"], reverse=True)
    return ranked[:limit] if limit else ranked


def category_performance(items: Iterable[dict]) -> list[dict]:
    categories: dict[str, dict] = {}
    seen_products: dict[str, set] = {}
    for item in items:
        product = item.get("product")
        category = (product or {}).get("category")
        if not product or not category:
            continue
        name = category.get("name")
        acc = categories.setdefault(name, {
            "category": name,
            "product_count": 0,
            "quantity_sold": 0,
            "revenue_cents": 0,
        })
        seen_products.setdefault(name, set()).add(product["id"])
        acc["quantity_sold"] += _n(item.get("quantity"))
        acc["revenue_cents"] += _n(item.get("total_price_cents"))
    for name, acc in categories.items():
        acc["product_count"] = len(seen_products[name])
    return sorted(categories.values(), key=lambda c: c["revenue_cents"], reverse=True)


def top_customers(rows: Iterable[dict], *, limit: int = 10) -> list[dict]:
    customers: dict[int, dict] = {}
    for row in rows:
        customer_id = row.get("customer_id")
        if customer_id is None:
            continue
        customer = row.get("customer") or {}
        acc = customers.setdefault(customer_id, {
            "customer_id": customer_id,
            "name": customer.get("name"),
            "email": customer.get("email"),
            "purchase_count": 0,
            "total_spent_cents": 0,
            "last_purchase_date": None,
        })
        acc["purchase_count"] += 1
        acc["total_spent_cents"] += _n(row.get("total_amount_cents"))
        sale_date = row.get("sale_date")
        if sale_date and (acc["last_purchase_date"] is None or sale_date > acc["last_purchase_date"]):
            acc["last_purchase_date"] = sale_date
    ranked = sorted(customers.values(), key=lambda c: c["total_spent_cents"], reverse=True)
    return ranked[:limit]


# =============================================================================
# Inventory
# =============================================================================


def stock_status(quantity, reorder_level=None) -> str:
    level = reorder_level or DEFAULT_REORDER_LEVEL
    quantity = _n(quantity)
    if quantity <= 0:
        return STOCK_OUT
    if quantity <= level:
        return STOCK_LOW
    return STOCK_IN


def low_stock(inventory_rows: Iterable[dict]) -> list[dict]:
    """Rows strictly below their reorder level, lowest quantity first."""
    rows = [
        row for row in inventory_rows
        if _n(row.get("quantity")) < (row.get("reorder_level") or DEFAULT_REORDER_LEVEL)
    ]
    return sorted(rows, key=lambda r: _n(r.get("quantity")))


# =============================================================================
# Commissions
# =============================================================================


def commission_totals(rows: Iterable[dict]) -> dict:
    total = paid = count = 0
    for row in rows:
        amount = _n(row.get("commission_amount_cents"))
        count += 1
        total += amount
        if row.get("is_paid"):
            paid += amount
    return {
        "sale_count": count,
        "total_commission_cents": total,
        "paid_commission_cents": paid,
        "unpaid_commission_cents": total - paid,
    }


def commission_summary_by_person(rows: Iterable[dict]) -> list[dict]:
    people: dict[int, dict] = {}
    for row in rows:
        person_id = row.get("sales_person_id")
        if person_id is None:
            continue
        person = row.get("sales_person") or {}
        acc = people.setdefault(person_id, {
            "sales_person_id": person_id,
            "name": person.get("full_name") or "Unknown",
            "email": person.get("email"),
            "total_commission_cents": 0,
            "paid_commission_cents": 0,
            "unpaid_commission_cents": 0,
            "sale_count": 0,
        })
        amount = _n(row.get("commission_amount_cents"))
        acc["sale_count"] += 1
        acc["total_commission_cents"] += amount
        if row.get("is_paid"):
            acc["paid_commission_cents"] += amount
        else:
            acc["unpaid_commission_cents"] += amount
    return sorted(people.values(), key=lambda p: p["total_commission_cents"], reverse=True)


# =============================================================================
# Service requests
# =============================================================================


def service_analytics(rows: Iterable[dict], *, now: datetime, days: int = 30) -> dict:
    """Metrics over requests created in the trailing window of `days`."""
    cutoff = now - timedelta(days=days)
    window = [r for r in rows if (as_datetime(r.get("created_at")) or now) >= cutoff]

    status_counts: dict[str, int] = {}
    priority_counts = {"urgent": 0, "high": 0, "medium": 0, "low": 0}
    categories: dict[str, dict] = {}
    devices: dict[str, dict] = {}
    revenue = 0
    completion_hours_total = 0.0
    completion_samples = 0

    for row in window:
        status = row.get("status")
        status_counts[status] = status_counts.get(status, 0) + 1
        if row.get("priority") in priority_counts:
            priority_counts[row["priority"]] += 1

        revenue += _n(row.get("final_cost_cents"))
        is_completed = status == "completed"

        completed_at = as_datetime(row.get("completed_date"))
        created_at = as_datetime(row.get("created_at"))
        if is_completed and completed_at and created_at:
            completion_hours_total += (completed_at - created_at).total_seconds() / 3600
            completion_samples += 1

        category_name = (row.get("category") or {}).get("name") or "Unknown"
        cat = categories.setdefault(category_name, {
            "name": category_name, "count": 0, "completed": 0, "revenue_cents": 0,
        })
        cat["count"] += 1
        if is_completed:
            cat["completed"] += 1
            cat["revenue_cents"] += _n(row.get("final_cost_cents"))

        device_name = row.get("device_type") or "Unknown"
        dev = devices.setdefault(device_name, {"name": device_name, "count": 0, "completed": 0})
        dev["count"] += 1
        if is_completed:
            dev["completed"] += 1

    for cat in categories.values():
        cat["completion_rate"] = _pct(cat["completed"], cat["count"])

    total = len(window)
    completed = status_counts.get("completed", 0)

    today = now.date()
    trend = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        created = [r for r in window if (as_datetime(r.get("created_at")) or now).date() == day]
        finished = [
            r for r in window
            if as_datetime(r.get("completed_date")) and as_datetime(r.get("completed_date")).date() == day
        ]
        trend.append({
            "date": day.isoformat(),
            "created": len(created),
            "completed": len(finished),
            "revenue_cents": sum(_n(r.get("final_cost_cents")) for r in finished),
        })

    return {
        "days": days,
        "total": total,
        "completed": completed,
        "in_progress": status_counts.get("in_progress", 0),
        "pending": status_counts.get("pending", 0),
        "cancelled": status_counts.get("cancelled", 0),
        "status_counts": status_counts,
        "total_revenue_cents": revenue,
        "average_service_value_cents": round(_avg(revenue, completed)),
        "average_completion_hours": round(_avg(completion_hours_total, completion_samples), 2),
        "completion_rate": _pct(completed, total),
        "priority_counts": priority_counts,
        "category_stats": sorted(categories.values(), key=lambda c: c["count"], reverse=True),
        "daily_trend": trend,
        "device_stats": sorted(devices.values(), key=lambda d: d["count"], reverse=True),
    }


def technician_workload(technicians: Iterable[dict], requests: list[dict], *, now: datetime) -> dict:
    by_technician: dict[int, list[dict]] = {}
    for req in requests:
        tech_id = req.get("assigned_technician_id")
        if tech_id is not None:
            by_technician.setdefault(tech_id, []).append(req)

    rows = []
    for tech in technicians:
        assigned = by_technician.get(tech["id"], [])
        pending = sum(1 for r in assigned if r.get("status") == "pending")
        in_progress = sum(1 for r in assigned if r.get("status") == "in_progress")
        completed = sum(1 for r in assigned if r.get("status") == "completed")
        overdue = sum(
            1 for r in assigned
            if r.get("status") != "completed"
            and as_datetime(r.get("estimated_completion")) is not None
            and as_datetime(r.get("estimated_completion")) < now
        )
        active = pending + in_progress
        rows.append({
            "technician_id": tech["id"],
            "name": tech.get("full_name"),
            "email": tech.get("email"),
            "pending": pending,
            "in_progress": in_progress,
            "completed": completed,
            "overdue": overdue,
            "total_active": active,
            "total_assigned": len(assigned),
            "completion_rate": _pct(completed, len(assigned)),
            "workload_score": min(100, round(active / WORKLOAD_CAPACITY * 100, 2)),
        })

    rows.sort(key=lambda r: r["workload_score"], reverse=True)
    unassigned = [
        r for r in requests
        if r.get("assigned_technician_id") is None
        and r.get("status") not in ("completed", "cancelled")
    ]
    return {
        "technicians": rows,
        "overloaded_count": sum(1 for r in rows if r["workload_score"] >= 80),
        "unassigned": unassigned,
    }
