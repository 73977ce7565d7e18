# backend/repairdesk/routes/system.py
"""System health endpoint."""

import time
from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db, query_cache
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    status = "healthy" if database["status"] == "healthy" else "unhealthy"
    body = {
        "status": status,
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database,
            "query_cache": {
                "enabled": query_cache.enabled,
                "entries": len(query_cache),
                "hits": query_cache.hits,
                "misses": query_cache.misses,
            },
        },
    }
    return body, 200 if status == "healthy" else 503
