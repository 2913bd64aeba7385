"""
Completed Contracts Blueprint.

Endpoints (all scoped to the caller's visibility):
    GET /api/v1/contracts/completed
    GET /api/v1/contracts/by-vendor?vendor=<name>&product=<name>
    GET /api/v1/contracts/subscriptions
    GET /api/v1/contracts/<request_key>
"""

import logging

from flask import Blueprint, jsonify, request

from procurement_desk.auth import current_scope, require_principal
from procurement_desk.services import contract_service
from procurement_desk.utils.errors import E, api_error, register_service_error_handlers

logger = logging.getLogger(__name__)

contract_bp = Blueprint("contracts", __name__, url_prefix="/api/v1")
register_service_error_handlers(contract_bp)


def _listing(items):
    return jsonify({"items": [s.to_dict() for s in items], "total": len(items)})


@contract_bp.route("/contracts/completed", methods=["GET"])
@require_principal
def list_completed():
    return _listing(contract_service.list_completed_contracts(current_scope()))


@contract_bp.route("/contracts/by-vendor", methods=["GET"])
@require_principal
def by_vendor():
    vendor = (request.args.get("vendor") or "").strip()
    if not vendor:
        return api_error(E.VALIDATION_REQUIRED, "vendor query parameter is required")
    product = (request.args.get("product") or "").strip() or None
    return _listing(contract_service.contracts_by_vendor(vendor, product, current_scope()))


@contract_bp.route("/contracts/subscriptions", methods=["GET"])
@require_principal
def subscriptions():
    return _listing(contract_service.list_subscriptions(current_scope()))


@contract_bp.route("/contracts/<request_key>", methods=["GET"])
@require_principal
def get_contract(request_key: str):
    return jsonify(contract_service.get_contract(request_key, current_scope()).to_dict())
