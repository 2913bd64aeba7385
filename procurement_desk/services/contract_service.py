"""
Completed-contract queries over negotiation snapshots.

Every listing is filtered through the caller's VisibilityScope, using the
requester's organization/department recorded on the snapshot.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select

from procurement_desk.core.exceptions import NotFoundError
from procurement_desk.models import db
from procurement_desk.models.negotiation import NegotiationSnapshot
from procurement_desk.services.visibility import VisibilityScope

logger = logging.getLogger(__name__)

# Contracts renewed monthly are reported as subscriptions
SUBSCRIPTION_DURATION_MONTHS = 1


def _as_request(snapshot: NegotiationSnapshot) -> dict:
    return {
        "organization_id": snapshot.requester_organization_id,
        "department_id": snapshot.requester_department_id,
        "requester_email": snapshot.requester_email,
    }


def _visible(snapshots, scope: VisibilityScope | None) -> list[NegotiationSnapshot]:
    if scope is None:
        return list(snapshots)
    return [s for s in snapshots if scope.matches(_as_request(s))]


def list_completed_contracts(scope: VisibilityScope | None = None) -> list[NegotiationSnapshot]:
    stmt = select(NegotiationSnapshot).order_by(NegotiationSnapshot.updated_at.desc())
    return _visible(db.session.execute(stmt).scalars().all(), scope)


def contracts_by_vendor(
    vendor_name: str,
    product_name: str | None = None,
    scope: VisibilityScope | None = None,
) -> list[NegotiationSnapshot]:
    """Case-insensitive vendor (and optional product) match."""
    stmt = select(NegotiationSnapshot).where(
        func.lower(NegotiationSnapshot.vendor_name) == vendor_name.strip().lower()
    )
    if product_name:
        stmt = stmt.where(func.lower(NegotiationSnapshot.product_name) == product_name.strip().lower())
    stmt = stmt.order_by(NegotiationSnapshot.contract_start_date.desc())
    return _visible(db.session.execute(stmt).scalars().all(), scope)


def list_subscriptions(scope: VisibilityScope | None = None) -> list[NegotiationSnapshot]:
    stmt = (
        select(NegotiationSnapshot)
        .where(NegotiationSnapshot.contract_duration_months == SUBSCRIPTION_DURATION_MONTHS)
        .order_by(NegotiationSnapshot.renewal_date.asc())
    )
    return _visible(db.session.execute(stmt).scalars().all(), scope)


def get_contract(request_key: str, scope: VisibilityScope | None = None) -> NegotiationSnapshot:
    snapshot = db.session.execute(
        select(NegotiationSnapshot).where(NegotiationSnapshot.request_key == request_key)
    ).scalars().first()
    if snapshot is None or (scope is not None and not scope.matches(_as_request(snapshot))):
        raise NotFoundError(resource="NegotiationSnapshot", resource_id=request_key)
    return snapshot
