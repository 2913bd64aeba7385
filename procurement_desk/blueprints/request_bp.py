"""
Requests Blueprint: visibility-scoped request search and creation events.

Endpoints:
    GET  /api/v1/requests?max_results=50&start_at=0
    POST /api/v1/requests/<key>/created     announce a request raised by the caller
"""

import logging

from flask import Blueprint, g, jsonify, request

from procurement_desk.auth import current_scope, require_principal
from procurement_desk.services import request_service
from procurement_desk.utils.errors import register_service_error_handlers

logger = logging.getLogger(__name__)

request_bp = Blueprint("requests", __name__, url_prefix="/api/v1")
register_service_error_handlers(request_bp)


@request_bp.route("/requests", methods=["GET"])
@require_principal
def list_requests():
    max_results = request.args.get("max_results", 50, type=int)
    start_at = request.args.get("start_at", 0, type=int)
    result = request_service.list_requests(current_scope(), max_results=max_results, start_at=start_at)
    return jsonify({
        "items": result["items"],
        "total": result["total"],
        "upstream_total": result["upstream_total"],
        "scope": current_scope().to_dict(),
    })


@request_bp.route("/requests/<request_key>/created", methods=["POST"])
@require_principal
def request_created(request_key: str):
    created = request_service.announce_request_created(request_key, g.current_user)
    return jsonify({"notified": len(created), "items": [n.to_dict() for n in created]}), 201
