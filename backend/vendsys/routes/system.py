# backend/vendsys/routes/system.py
"""System health endpoints."""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from vendsys.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Check database connectivity with a trivial round trip."""
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/")
def index():
    return "API del Vending System funcionando!"


@system_bp.get("/health")
def health():
    database = check_database_health()
    scheduler = current_app.extensions.get("monitor_scheduler")
    body = {
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "database": database,
        "monitor": {
            "enabled": scheduler is not None,
            "alive": bool(scheduler and scheduler.is_alive()),
        },
    }
    return jsonify(body), 200 if database["status"] == "healthy" else 503
