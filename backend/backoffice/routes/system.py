# backend/backoffice/routes/system.py
"""
System health endpoint.

Reports database and cache reachability for load balancers and deploy checks.
"""

import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db, cache
from backoffice.time_utils import to_utc_z, utcnow

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


def check_cache_health() -> dict:
    """Cache is optional: unconfigured reports 'disabled', not unhealthy."""
    if not cache.enabled:
        return {"status": "disabled"}
    start_time = time.time()
    try:
        cache.client.ping()
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        current_app.logger.warning("Cache health check failed", exc_info=True)
        return {"status": "degraded", "error": "Cache unreachable"}


@system_bp.get("/health")
def health():
    database = check_database_health()
    cache_status = check_cache_health()
    healthy = database["status"] == "healthy"
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database, "cache": cache_status},
    }
    return jsonify(body), 200 if healthy else 503
