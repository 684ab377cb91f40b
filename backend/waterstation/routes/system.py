# backend/waterstation/routes/system.py
"""
System health endpoints.

/api/health is a liveness probe that never touches the database;
/api/db-status checks connectivity and reports table counts.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from ..extensions import db
from ..models import Customer, Item, Sale, User
from waterstation.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        counts = {
            "items": db.session.query(Item).count(),
            "customers": db.session.query(Customer).count(),
            "sales": db.session.query(Sale).count(),
            "users": db.session.query(User).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": counts,
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    return {
        "status": "OK",
        "message": "Water station API is running",
        "timestamp": utcnow().isoformat() + "Z",
    }


@system_bp.get("/db-status")
def db_status():
    """
    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 200 if database_health["status"] == "healthy" else 503
    return {
        "database": database_health,
        "timestamp": utcnow().isoformat() + "Z",
    }, http_status
