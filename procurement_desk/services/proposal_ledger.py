"""
Proposal Ledger Service.

Append-only, per-request sequence of priced proposals, and the negotiated
profit derived from it.

Design decisions:
    - Proposal rows are APPEND-ONLY. There is no update or delete here.
    - sequence_number is assigned here (max + 1), never taken from the caller.
      Assignment runs under the per-key lock and the
      (request_key, sequence_number) unique constraint; a constraint hit from
      another worker is retried with a fresh max.
    - Marking a proposal final does not unmark earlier finals. One final per
      negotiation is a convention of the negotiators, not a constraint.
    - compute_negotiated_profit never raises: missing data means zero.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from procurement_desk.core.exceptions import PersistenceError, ValidationError
from procurement_desk.models import db
from procurement_desk.models.negotiation import Proposal
from procurement_desk.services.key_locks import request_locks
from procurement_desk.utils.helpers import commit_or_raise, parse_decimal

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_CENTS = Decimal("0.01")

# Attempts at sequence assignment when another worker wins the race
_SEQUENCE_ATTEMPTS = 3


# ── Private helpers ────────────────────────────────────────────────────────────


def _last_sequence_number(request_key: str) -> int:
    stmt = select(func.max(Proposal.sequence_number)).where(Proposal.request_key == request_key)
    return db.session.execute(stmt).scalar() or 0


def _validate(request_key, unit_price, quantity, total) -> tuple[Decimal, int, Decimal | None]:
    errors = {}
    if not request_key or not str(request_key).strip():
        errors["request_key"] = "required"

    try:
        price = parse_decimal(unit_price, "unit_price")
    except ValueError as exc:
        errors["unit_price"] = str(exc)
        price = None
    if price is None and "unit_price" not in errors:
        errors["unit_price"] = "required"
    elif price is not None and price < 0:
        errors["unit_price"] = "must not be negative"

    qty = quantity if isinstance(quantity, int) and not isinstance(quantity, bool) else None
    if qty is None:
        errors["quantity"] = "must be an integer"
    elif qty <= 0:
        errors["quantity"] = "must be positive"

    explicit_total = None
    if total is not None:
        try:
            explicit_total = parse_decimal(total, "total")
        except ValueError as exc:
            errors["total"] = str(exc)
        else:
            if explicit_total < 0:
                errors["total"] = "must not be negative"

    if errors:
        raise ValidationError("Invalid proposal", details=errors)
    return price, qty, explicit_total


# ── Public API ─────────────────────────────────────────────────────────────────


def append_proposal(
    request_key: str,
    unit_price,
    quantity: int,
    note: str | None = None,
    is_final: bool = False,
    total=None,
) -> Proposal:
    """Append a proposal to the request's ledger.

    Args:
        request_key: External ticket key, e.g. "REQ-1".
        unit_price:  Price per unit (Decimal, number or numeric string), ≥ 0.
        quantity:    Number of units, > 0.
        note:        Free-text comment.
        is_final:    Marks the offer both sides agreed on.
        total:       Explicit total overriding unit_price × quantity.

    Returns:
        The committed Proposal.

    Raises:
        ValidationError: malformed input (nothing is written).
        PersistenceError: the write failed after retries.
    """
    price, qty, explicit_total = _validate(request_key, unit_price, quantity, total)
    request_key = str(request_key).strip()
    line_total = explicit_total if explicit_total is not None else (price * qty).quantize(_CENTS)

    with request_locks.hold(request_key):
        for attempt in range(1, _SEQUENCE_ATTEMPTS + 1):
            proposal = Proposal(
                request_key=request_key,
                sequence_number=_last_sequence_number(request_key) + 1,
                unit_price=price,
                quantity=qty,
                total=line_total,
                note=note,
                is_final=bool(is_final),
            )
            db.session.add(proposal)
            try:
                db.session.flush()
            except IntegrityError:
                db.session.rollback()
                logger.warning(
                    "Sequence collision on %s attempt=%d/%d", request_key, attempt, _SEQUENCE_ATTEMPTS,
                    extra={"request_key": request_key},
                )
                continue
            commit_or_raise("proposal")
            logger.info(
                "Proposal %s#%d appended total=%s final=%s",
                request_key, proposal.sequence_number, line_total, proposal.is_final,
                extra={"request_key": request_key},
            )
            return proposal

    raise PersistenceError(f"Could not assign a sequence number for {request_key}")


def list_proposals(request_key: str) -> list[Proposal]:
    """All proposals for the request, ascending by sequence number."""
    stmt = (
        select(Proposal)
        .where(Proposal.request_key == request_key)
        .order_by(Proposal.sequence_number.asc())
    )
    return list(db.session.execute(stmt).scalars().all())


def latest_proposal(request_key: str) -> Proposal | None:
    stmt = (
        select(Proposal)
        .where(Proposal.request_key == request_key)
        .order_by(Proposal.sequence_number.desc())
        .limit(1)
    )
    return db.session.execute(stmt).scalars().first()


def has_final_proposal(request_key: str) -> bool:
    stmt = select(func.count(Proposal.id)).where(
        Proposal.request_key == request_key,
        Proposal.is_final.is_(True),
    )
    return (db.session.execute(stmt).scalar() or 0) > 0


def negotiated_profit(proposals: list[Proposal]) -> Decimal:
    """Profit from an ordered proposal list.

    Scans from the end for the last final proposal, then backwards from
    there for the nearest non-final one (the last counteroffer).
    profit = counteroffer.total − final.total. Negative means the price went up.
    """
    if len(proposals) < 2:
        return _ZERO

    final_idx = None
    for idx in range(len(proposals) - 1, -1, -1):
        if proposals[idx].is_final:
            final_idx = idx
            break
    if final_idx is None:
        return _ZERO

    for idx in range(final_idx - 1, -1, -1):
        if not proposals[idx].is_final:
            counter = proposals[idx]
            return Decimal(counter.total) - Decimal(proposals[final_idx].total)
    return _ZERO


def compute_negotiated_profit(request_key: str) -> Decimal:
    """Negotiated profit for a request; zero when the ledger is too short."""
    return negotiated_profit(list_proposals(request_key))
