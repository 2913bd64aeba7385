"""
Completion Workflow Service.

Drives a request from its negotiation stages to a durable completed-contract
snapshot.

States per request:
    OPEN           ticket status is anything but the completed label
    TRANSITIONING  per-key lock held while the external transition runs
                   (in-process only, never persisted)
    COMPLETED      ticket status equals the completed label (terminal)

mark_completed sequence:
    1. validate request_key / transition_key           (no I/O)
    2. take the per-key lock
    3. read status and fields from the ticket store
    4. status already completed → skip the transition  (idempotent retry path)
       otherwise resolve the transition key and execute it exactly once
    5. profit = caller value or proposal ledger figure
    6. upsert the snapshot by request key, renewal date projected from the
       contract duration
    7. notify, only when a transition actually ran

A timeout on the transition call means the outcome is unknown. Callers
retry the same call: step 4 turns the retry into a no-op transition when
the first attempt did land.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal

from flask import current_app, has_app_context
from sqlalchemy import select

from procurement_desk.core.exceptions import (
    ExternalTimeout,
    ExternalUnavailable,
    InvalidTransitionKey,
    NotFoundError,
    ProcurementDeskError,
    TransitionRejected,
    ValidationError,
)
from procurement_desk.integrations import ticket_gateway as gw_module
from procurement_desk.models import db
from procurement_desk.models.negotiation import NegotiationSnapshot
from procurement_desk.services import directory_service, proposal_ledger
from procurement_desk.services.key_locks import request_locks
from procurement_desk.services.notification import NotificationService
from procurement_desk.utils.helpers import (
    add_months,
    commit_or_raise,
    parse_date,
    parse_decimal,
    parse_int,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

NEGOTIATION_STAGES = (
    "request-created",
    "pre-approval",
    "request-review",
    "negotiation-stage",
    "post-approval",
)

# UI action key → workflow transition id: approvals are 2-6, declines 7-11
TRANSITION_TABLE: dict[str, str] = {
    **{f"approve-{stage}": str(2 + i) for i, stage in enumerate(NEGOTIATION_STAGES)},
    **{f"decline-{stage}": str(7 + i) for i, stage in enumerate(NEGOTIATION_STAGES)},
}

DEFAULT_COMPLETED_LABEL = "Completed"

# Snapshot columns copied straight from logical ticket fields
_TEXT_FIELDS = (
    "vendor_name",
    "product_name",
    "requester_name",
    "requester_email",
    "current_units",
    "new_units",
    "vendor_contract_type",
    "license_update_type",
    "existing_contract_id",
    "billing_type",
)
_COUNT_FIELDS = (
    "current_license_count",
    "new_license_count",
    "current_usage_count",
    "new_usage_count",
)


# ── Pure helpers ───────────────────────────────────────────────────────────────


def resolve_transition_id(transition_key: str) -> str:
    """Map a UI action key to a transition id.

    Raw numeric ids pass through unchanged.

    Raises:
        InvalidTransitionKey: key is neither in TRANSITION_TABLE nor numeric.
    """
    key = (transition_key or "").strip()
    if key.lower() in TRANSITION_TABLE:
        return TRANSITION_TABLE[key.lower()]
    if key.isdigit():
        return key
    raise InvalidTransitionKey(transition_key)


def compute_renewal_date(completion_date: date | None, duration, fallback=None) -> date | None:
    """completion_date + duration months; else the parsed fallback; else None.

    ``duration`` may be an int or a numeric string (``" 12 "``). A missing,
    non-numeric or non-positive duration selects the fallback.
    """
    months = parse_int(duration.strip() if isinstance(duration, str) else duration)
    if completion_date is not None and months is not None and months > 0:
        return add_months(completion_date, months)
    return parse_date(fallback)


def is_completed_status(status: str | None, label: str | None = None) -> bool:
    label = label or _completed_label()
    return bool(status) and status.strip().lower() == label.strip().lower()


def _completed_label() -> str:
    if has_app_context():
        return current_app.config.get("COMPLETED_STATUS_LABEL", DEFAULT_COMPLETED_LABEL)
    return DEFAULT_COMPLETED_LABEL


def _today() -> date:
    return datetime.now(timezone.utc).date()


# ── Gateway result → error kind ────────────────────────────────────────────────


def _raise_for_read(result, request_key: str) -> None:
    if result.ok:
        return
    if result.timed_out:
        raise ExternalTimeout(f"Timed out reading {request_key} from the ticket store")
    if result.status_code == 404:
        raise NotFoundError(resource="Request", resource_id=request_key)
    raise ExternalUnavailable(
        f"Could not read {request_key} from the ticket store: {result.error}",
        status_code=result.status_code,
    )


def _raise_for_transition(result, request_key: str) -> None:
    if result.ok:
        return
    if result.timed_out:
        raise ExternalTimeout(
            f"Transition call for {request_key} timed out; outcome unknown, re-read status before retrying"
        )
    if result.status_code is None or result.circuit_open:
        raise ExternalUnavailable(
            f"Ticket store unreachable for {request_key}: {result.error}",
        )
    if result.status_code in (401, 403):
        raise ExternalUnavailable(
            f"Ticket store refused credentials for {request_key}",
            status_code=result.status_code,
        )
    raise TransitionRejected(request_key, result.status_code, result.error)


def _raise_for_write(result, request_key: str) -> None:
    if result.ok:
        return
    if result.timed_out:
        raise ExternalTimeout(f"Timed out writing fields to {request_key}")
    if result.status_code == 404:
        raise NotFoundError(resource="Request", resource_id=request_key)
    raise ExternalUnavailable(
        f"Could not write fields to {request_key}: {result.error}",
        status_code=result.status_code,
    )


# ── Snapshot building ──────────────────────────────────────────────────────────


def _merge_fields(ticket_fields: dict, caller_fields: dict | None) -> dict:
    merged = dict(ticket_fields or {})
    for key, value in (caller_fields or {}).items():
        if value is not None and value != "":
            merged[key] = value
    return merged


def _require_vendor_and_product(fields: dict) -> None:
    missing = {
        name: "required"
        for name in ("vendor_name", "product_name")
        if not str(fields.get(name) or "").strip()
    }
    if missing:
        raise ValidationError("Vendor and product are required to complete a contract", details=missing)


def _resolve_requester(fields: dict, issue: dict) -> dict:
    """Requester id/org/dept: directory by email first, then ticket unit names."""
    email = fields.get("requester_email") or issue.get("reporter_email")
    user = directory_service.find_user_by_email(email)
    if user:
        return {
            "id": user["id"],
            "email": email,
            "organization_id": user["organization_id"],
            "department_id": user["department_id"],
        }
    org_id = parse_int(fields.get("requester_organization_id"))
    dept_id = parse_int(fields.get("requester_department_id"))
    if org_id is None and dept_id is None:
        org_id, dept_id = directory_service.resolve_unit_ids(
            fields.get("organization"), fields.get("department"),
        )
    return {"id": None, "email": email, "organization_id": org_id, "department_id": dept_id}


def _get_snapshot(request_key: str) -> NegotiationSnapshot | None:
    stmt = select(NegotiationSnapshot).where(NegotiationSnapshot.request_key == request_key)
    return db.session.execute(stmt).scalars().first()


def _upsert_snapshot(request_key, fields, requester, profit, completion_date, status="completed"):
    snapshot = _get_snapshot(request_key)
    if snapshot is None:
        snapshot = NegotiationSnapshot(request_key=request_key)
        db.session.add(snapshot)

    for name in _TEXT_FIELDS:
        value = fields.get(name)
        setattr(snapshot, name, str(value).strip() if value is not None else None)
    for name in _COUNT_FIELDS:
        setattr(snapshot, name, parse_int(fields.get(name)))

    snapshot.requester_email = requester["email"] or snapshot.requester_email
    snapshot.requester_organization_id = requester["organization_id"]
    snapshot.requester_department_id = requester["department_id"]

    duration = fields.get("contract_duration")
    months = parse_int(duration.strip() if isinstance(duration, str) else duration)
    snapshot.contract_duration_months = months if months and months > 0 else None
    snapshot.due_date = parse_date(fields.get("due_date"))
    renewal = compute_renewal_date(completion_date, duration, fallback=fields.get("renewal_date"))
    snapshot.contract_start_date = completion_date
    snapshot.renewal_date = renewal
    snapshot.contract_end_date = renewal

    snapshot.profit = profit
    snapshot.comment = fields.get("additional_comment") or fields.get("comment")
    snapshot.status = status
    return snapshot


# ── Public API ─────────────────────────────────────────────────────────────────


def mark_completed(
    request_key: str,
    transition_key: str,
    snapshot_fields: dict | None = None,
    profit=None,
    actor_id: int | None = None,
    actor_name: str | None = None,
) -> NegotiationSnapshot:
    """Transition the ticket to completed and persist its snapshot.

    Args:
        request_key:     External ticket key.
        transition_key:  UI action key (e.g. "approve-negotiation-stage") or raw id.
        snapshot_fields: Logical field values overriding what the ticket holds.
        profit:          Explicit profit; computed from the ledger when None.
        actor_id/actor_name: Who triggered the completion (notification sender).

    Returns:
        The persisted NegotiationSnapshot.

    Raises:
        ValidationError, InvalidTransitionKey, NotFoundError, TransitionRejected,
        ExternalTimeout, ExternalUnavailable, PersistenceError.
    """
    missing = {}
    if not request_key or not str(request_key).strip():
        missing["request_key"] = "required"
    if not transition_key or not str(transition_key).strip():
        missing["transition_key"] = "required"
    if missing:
        raise ValidationError("request_key and transition_key are required", details=missing)
    request_key = str(request_key).strip()

    explicit_profit = None
    if profit is not None:
        try:
            explicit_profit = parse_decimal(profit, "profit")
        except ValueError as exc:
            raise ValidationError(str(exc), details={"profit": "must be a number"}) from exc

    gateway = gw_module.ticket_gateway
    with request_locks.hold(request_key):
        read = gateway.get_issue(request_key)
        _raise_for_read(read, request_key)
        issue = read.data
        status_before = issue.get("status")

        fields = _merge_fields(issue.get("fields"), snapshot_fields)
        _require_vendor_and_product(fields)

        existing = _get_snapshot(request_key)
        transitioned = False
        kept_profit = None
        if is_completed_status(status_before):
            logger.info(
                "%s already %s; skipping transition", request_key, status_before,
                extra={"request_key": request_key},
            )
            if existing is not None and existing.contract_start_date is not None:
                completion_date = existing.contract_start_date
            else:
                completion_date = _completion_date(issue)
            if existing is not None:
                kept_profit = existing.profit
        else:
            transition_id = resolve_transition_id(transition_key)
            result = gateway.execute_transition(request_key, transition_id)
            _raise_for_transition(result, request_key)
            transitioned = True
            logger.info(
                "%s transitioned via %s (%s) from %s", request_key, transition_key, transition_id, status_before,
                extra={"request_key": request_key, "transition_id": transition_id},
            )
            completion_date = _completion_date_after_transition(gateway, request_key)

        if explicit_profit is not None:
            negotiated = explicit_profit
        elif kept_profit is not None:
            negotiated = kept_profit
        else:
            negotiated = proposal_ledger.compute_negotiated_profit(request_key)
        requester = _resolve_requester(fields, issue)
        snapshot = _upsert_snapshot(request_key, fields, requester, negotiated, completion_date)
        commit_or_raise("negotiation snapshot")

    if transitioned:
        _emit_status_changed(request_key, status_before, requester, actor_id, actor_name)
    return snapshot


def _completion_date(issue: dict) -> date:
    updated = parse_timestamp(issue.get("updated"))
    return updated.date() if updated else _today()


def _completion_date_after_transition(gateway, request_key: str) -> date:
    """The ticket's last-updated date right after the transition; today if unreadable."""
    reread = gateway.get_issue(request_key)
    if reread.ok:
        return _completion_date(reread.data or {})
    logger.warning(
        "Could not re-read %s after transition (%s); using today as completion date",
        request_key, reread.error, extra={"request_key": request_key},
    )
    return _today()


def _emit_status_changed(request_key, status_before, requester, actor_id, actor_name) -> None:
    # Snapshot is already committed; a failed notification must not report the completion as failed
    try:
        NotificationService.on_status_changed(
            request_key,
            status_before,
            _completed_label(),
            requester_id=requester["id"],
            requester_org=requester["organization_id"],
            requester_dept=requester["department_id"],
            actor_id=actor_id,
            actor_name=actor_name,
        )
    except ProcurementDeskError:
        logger.exception("Status-change notification failed for %s", request_key)


def submit_final_quote(request_key: str) -> dict:
    """Publish the negotiated profit of the final proposal to the ticket.

    Flags final proposals as submitted and, when a snapshot exists, marks it
    ``final_quote_submitted``.

    Raises:
        ValidationError: no final proposal in the ledger.
        ExternalTimeout / ExternalUnavailable / NotFoundError: ticket write failed.
    """
    with request_locks.hold(request_key):
        proposals = proposal_ledger.list_proposals(request_key)
        finals = [p for p in proposals if p.is_final]
        if not finals:
            raise ValidationError(
                f"{request_key} has no final proposal to submit",
                details={"request_key": request_key},
            )
        profit = proposal_ledger.negotiated_profit(proposals)

        result = gw_module.ticket_gateway.update_fields(
            request_key, {"total_optimized_cost": float(profit)},
        )
        _raise_for_write(result, request_key)

        for p in finals:
            p.is_final_submitted = True
        snapshot = _get_snapshot(request_key)
        if snapshot is not None:
            snapshot.status = "final_quote_submitted"
            snapshot.profit = profit
        commit_or_raise("final quote")

    logger.info("Final quote submitted for %s profit=%s", request_key, profit,
                extra={"request_key": request_key})
    return {
        "request_key": request_key,
        "profit": str(profit),
        "final_proposal": finals[-1].to_dict(),
    }


def update_license_count(request_key: str, new_license_count) -> dict:
    """Write the negotiated license count and current profit back to the ticket."""
    count = parse_int(new_license_count)
    if count is None or count < 0:
        raise ValidationError(
            "new_license_count must be a non-negative integer",
            details={"new_license_count": new_license_count},
        )

    with request_locks.hold(request_key):
        profit = proposal_ledger.compute_negotiated_profit(request_key)
        result = gw_module.ticket_gateway.update_fields(
            request_key,
            {"new_license_count": count, "total_optimized_cost": float(profit)},
        )
        _raise_for_write(result, request_key)

        snapshot = _get_snapshot(request_key)
        if snapshot is not None:
            snapshot.new_license_count = count
            commit_or_raise("negotiation snapshot")

    return {"request_key": request_key, "new_license_count": count, "profit": str(profit)}


def profit_summary(request_key: str) -> dict:
    """Profit figure plus whether a final quote exists (drives the UI submit button)."""
    profit: Decimal = proposal_ledger.compute_negotiated_profit(request_key)
    return {
        "request_key": request_key,
        "total_profit": str(profit),
        "has_submitted_final_quote": proposal_ledger.has_final_proposal(request_key),
    }
