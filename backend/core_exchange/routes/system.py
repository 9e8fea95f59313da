# backend/core_exchange/routes/system.py
"""
System health endpoint.

Reports store connectivity plus a few ledger counters useful when debugging
a deployment.
"""

import time
from flask import Blueprint, current_app

from ..extensions import db
from ..models import MerchandiseEntry, Order, OrderItem
from ..models.entries import ENTRY_STATUS_PENDING
from ..models.sales import ORDER_OPEN_STATUSES
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        open_orders = db.session.query(Order).filter(Order.status.in_(ORDER_OPEN_STATUSES)).count()
        outstanding_lines = db.session.query(OrderItem).filter(OrderItem.core_debt > 0).count()
        pending_entries = db.session.query(MerchandiseEntry).filter_by(status=ENTRY_STATUS_PENDING).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "open_orders": open_orders,
                "outstanding_lines": outstanding_lines,
                "pending_entries": pending_entries,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/api/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: store reachable
    - 503: store unreachable
    """
    database_health = check_database_health()
    healthy = database_health["status"] == "healthy"

    response = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {
            "database": database_health,
        }
    }

    return response, 200 if healthy else 503
