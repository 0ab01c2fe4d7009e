# backend/shopledger/routes/system.py
"""
System health endpoint.

Each check runs one cheap query against a table the ledger depends on and
reports its latency. Any failing check turns the response into a 503.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import DocumentSequence, InventoryRecord, SessionToken, Shop, StockMovement
from shopledger.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def _timed_check(label: str, probe) -> dict:
    """Run probe() and wrap its details (or the failure) with latency."""
    start_time = time.time()
    try:
        details = probe()
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "details": details,
        }
    except Exception:
        current_app.logger.exception("%s health check failed", label)
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": f"{label} error",
        }


def check_database_health() -> dict:
    return _timed_check("Database", lambda: {
        "shops": db.session.query(Shop).count(),
        "inventory_records": db.session.query(InventoryRecord).count(),
        "stock_movements": db.session.query(StockMovement).count(),
    })


def check_numbering_health() -> dict:
    """Counter rows exist only after the first sale/purchase of each type."""
    return _timed_check("Numbering", lambda: {
        row.document_type: row.next_number
        for row in db.session.query(DocumentSequence).all()
    })


def check_session_service_health() -> dict:
    """Reachability only; token counts stay off the unauthenticated endpoint."""
    def _probe():
        db.session.query(SessionToken.id).limit(1).all()
        return {"reachable": True}

    return _timed_check("Session service", _probe)


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: All systems healthy
    - 503: One or more systems unhealthy
    """
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "numbering": check_numbering_health(),
        "session_service": check_session_service_health(),
    }
    unhealthy = any(check["status"] == "unhealthy" for check in checks.values())

    response = {
        "status": "unhealthy" if unhealthy else "healthy",
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }

    return response, 503 if unhealthy else 200
