"""
Negotiation Blueprint: proposal ledger and completion workflow.

Endpoints:
    POST   /api/v1/requests/<key>/proposals
           Body: { "unit_price": 10.5, "quantity": 3, "note": "...",
                   "is_final": false, "total": <optional override> }
           Returns: 201 with the appended proposal.

    GET    /api/v1/requests/<key>/proposals          ledger, ascending sequence
    GET    /api/v1/requests/<key>/proposals/latest   newest proposal or 404
    GET    /api/v1/requests/<key>/profit             { total_profit, has_submitted_final_quote }

    POST   /api/v1/requests/<key>/complete
           Body: { "transition_key": "approve-post-approval",
                   "fields": { logical field overrides }, "profit": <optional> }
           Returns: 200 with the completed-contract snapshot.

    POST   /api/v1/requests/<key>/final-quote        push profit of the final proposal
    PUT    /api/v1/requests/<key>/license-count      Body: { "new_license_count": 40 }

Layer contract:
    - Blueprint: parse input, call service, return JSON.
    - NO db.session calls here; all writes are owned by the services.
    - Service exceptions map to responses via register_service_error_handlers.
"""

import logging

from flask import Blueprint, g, jsonify, request

from procurement_desk.auth import require_principal
from procurement_desk.services import completion_workflow, proposal_ledger
from procurement_desk.utils.errors import E, api_error, register_service_error_handlers

logger = logging.getLogger(__name__)

negotiation_bp = Blueprint("negotiation", __name__, url_prefix="/api/v1")
register_service_error_handlers(negotiation_bp)


# ── Proposal ledger ────────────────────────────────────────────────────────────


@negotiation_bp.route("/requests/<request_key>/proposals", methods=["POST"])
@require_principal
def append_proposal(request_key: str):
    """Append a proposal. Sequence numbers are assigned server-side."""
    data = request.get_json(silent=True) or {}
    if "sequence_number" in data:
        return api_error(E.VALIDATION_INVALID, "sequence_number is assigned by the server")
    for field in ("unit_price", "quantity"):
        if data.get(field) is None:
            return api_error(E.VALIDATION_REQUIRED, f"{field} is required")

    proposal = proposal_ledger.append_proposal(
        request_key,
        unit_price=data["unit_price"],
        quantity=data["quantity"],
        note=data.get("note"),
        is_final=bool(data.get("is_final", False)),
        total=data.get("total"),
    )
    return jsonify(proposal.to_dict()), 201


@negotiation_bp.route("/requests/<request_key>/proposals", methods=["GET"])
@require_principal
def list_proposals(request_key: str):
    items = proposal_ledger.list_proposals(request_key)
    return jsonify({"items": [p.to_dict() for p in items], "total": len(items)})


@negotiation_bp.route("/requests/<request_key>/proposals/latest", methods=["GET"])
@require_principal
def latest_proposal(request_key: str):
    proposal = proposal_ledger.latest_proposal(request_key)
    if proposal is None:
        return api_error(E.NOT_FOUND, f"No proposals for {request_key}")
    return jsonify(proposal.to_dict())


@negotiation_bp.route("/requests/<request_key>/profit", methods=["GET"])
@require_principal
def get_profit(request_key: str):
    return jsonify(completion_workflow.profit_summary(request_key))


# ── Completion workflow ────────────────────────────────────────────────────────


@negotiation_bp.route("/requests/<request_key>/complete", methods=["POST"])
@require_principal
def complete_request(request_key: str):
    """Run the completion workflow for a request.

    Returns 200 with the snapshot; 422 for invalid input or transition key,
    409 when the ticket store rejects the transition, 502/504 when it is
    unreachable or times out (safe to retry).
    """
    data = request.get_json(silent=True) or {}
    transition_key = (data.get("transition_key") or "").strip()
    if not transition_key:
        return api_error(E.VALIDATION_REQUIRED, "transition_key is required")

    fields = data.get("fields") or {}
    if not isinstance(fields, dict):
        return api_error(E.VALIDATION_INVALID, "fields must be an object")

    user = g.current_user
    snapshot = completion_workflow.mark_completed(
        request_key,
        transition_key,
        snapshot_fields=fields,
        profit=data.get("profit"),
        actor_id=user.id,
        actor_name=user.display_name or user.email,
    )
    return jsonify(snapshot.to_dict()), 200


@negotiation_bp.route("/requests/<request_key>/final-quote", methods=["POST"])
@require_principal
def submit_final_quote(request_key: str):
    return jsonify(completion_workflow.submit_final_quote(request_key)), 200


@negotiation_bp.route("/requests/<request_key>/license-count", methods=["PUT"])
@require_principal
def update_license_count(request_key: str):
    data = request.get_json(silent=True) or {}
    if data.get("new_license_count") is None:
        return api_error(E.VALIDATION_REQUIRED, "new_license_count is required")
    return jsonify(completion_workflow.update_license_count(request_key, data["new_license_count"])), 200
