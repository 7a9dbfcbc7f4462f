# backend/commerce_ledger/routes/system.py
"""
System health endpoint.

Checks the database and the gateway-operation journal so an operator can
see at a glance whether money movements are waiting on reconciliation.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Member, GatewayOperation
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        member_count = db.session.query(Member).count()
        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"members": member_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_journal_health() -> dict:
    """Degraded while any gateway operation is flagged for reconciliation."""
    start_time = time.time()
    try:
        flagged = db.session.query(GatewayOperation).filter_by(
            status="needs_reconciliation"
        ).count()
        pending = db.session.query(GatewayOperation).filter_by(status="pending").count()
        elapsed_ms = (time.time() - start_time) * 1000

        result = {
            "status": "degraded" if flagged else "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "pending_operations": pending,
                "needs_reconciliation": flagged,
            }
        }
        if flagged:
            result["warning"] = f"{flagged} gateway operation(s) need reconciliation"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Journal health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Journal error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    journal_health = check_journal_health()

    all_checks = [database_health, journal_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "gateway_journal": journal_health,
        }
    }

    return response, http_status
