# backend/stockroom/routes/system.py
"""
System health endpoint.

Reports database and product cache reachability for deployment checks.
Unauthenticated.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db, product_cache

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
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_cache_health() -> dict:
    """
    Cache outages degrade the service (stale or uncached listings) but do
    not make it unhealthy.
    """
    if not product_cache.enabled:
        return {"status": "disabled"}

    start_time = time.time()
    try:
        product_cache.client.ping()
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.warning("Product cache health check failed", exc_info=True)
        return {
            "status": "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Cache unreachable",
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    cache = check_cache_health()

    if database["status"] != "healthy":
        overall = "unhealthy"
    elif cache["status"] == "degraded":
        overall = "degraded"
    else:
        overall = "healthy"

    status_code = 503 if overall == "unhealthy" else 200
    return {"status": overall, "checks": {"database": database, "cache": cache}}, status_code
