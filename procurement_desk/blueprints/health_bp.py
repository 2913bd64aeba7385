"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  - simple 200 for load balancers
    GET /api/v1/health/live   - detailed health (database, ticket store gateway, push hub)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from procurement_desk.integrations import ticket_gateway as gw_module
from procurement_desk.models import db
from procurement_desk.services.key_locks import request_locks
from procurement_desk.services.notification_push import get_hub

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe - always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except SQLAlchemyError as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check - database failed: %s", exc)

    # ── Ticket store ─────────────────────────────────────────────────
    # Configuration only; probing the remote store here would feed the breaker.
    gateway = gw_module.ticket_gateway
    checks["ticket_store"] = {
        "status": "configured" if gateway.base_url else "not_configured",
        "base_url": gateway.base_url or None,
        "fields_mapped": len(gateway.field_ids),
    }

    # ── In-process state ─────────────────────────────────────────────
    checks["push_hub"] = {"status": "ok", "subscribers": len(get_hub().subscribers())}
    checks["request_locks"] = {"status": "ok", "held": request_locks.active_keys()}

    checks["app"] = {
        "name": "Procurement Desk",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
