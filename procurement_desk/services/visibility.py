"""
Visibility Resolver.

Maps a principal (role, organization, department, identity) to the set of
requests and notifications they may see.

Privilege ladder (closed set, no inheritance):
    SUPER_ADMIN              → everything
    ADMIN, APPROVER          → own organization AND own department
                               (each check skipped when the principal's id is unset)
    REQUESTER                → mid-level scope AND requester is the principal
    anything else            → treated as mid-level

For the same organization/department pair each rung sees a superset of the
rung below it.

Usage:
    from procurement_desk.services.visibility import scope_for

    scope = scope_for("APPROVER", user_id=7, organization_id=5)
    scope.matches({"organization_id": 5, "department_id": 2})   # True
    Notification.query.filter(notification_filter(scope))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import and_, or_

from procurement_desk.models.notification import Notification

logger = logging.getLogger(__name__)


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    APPROVER = "APPROVER"
    REQUESTER = "REQUESTER"

    @classmethod
    def parse(cls, value: str | Role | None) -> Role | None:
        """Case-insensitive lookup; None for unknown or empty values."""
        if isinstance(value, Role):
            return value
        if not value:
            return None
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return None


class Tier(str, Enum):
    TOP = "top"
    MID = "mid"
    BOTTOM = "bottom"


def tier_of(role: Role | None) -> Tier:
    match role:
        case Role.SUPER_ADMIN:
            return Tier.TOP
        case Role.ADMIN | Role.APPROVER:
            return Tier.MID
        case Role.REQUESTER:
            return Tier.BOTTOM
        case _:
            return Tier.MID


def _jql_quote(value) -> str:
    return '"' + str(value).replace("\\", "\\\\").replace('"', '\\"') + '"'


def _same(a, b) -> bool:
    if a is None or b is None:
        return False
    return str(a) == str(b)


@dataclass(frozen=True)
class VisibilityScope:
    """Resolved principal. ``role_name`` keeps the raw value for notification matching."""

    role: Role | None
    role_name: str | None = None
    user_id: int | None = None
    user_email: str | None = None
    organization_id: int | None = None
    department_id: int | None = None
    organization_name: str | None = None
    department_name: str | None = None

    @property
    def tier(self) -> Tier:
        return tier_of(self.role)

    # ── Requests ──────────────────────────────────────────────────────────

    def _org_dept_match(self, request: dict) -> bool:
        if self.organization_id is not None and not _same(request.get("organization_id"), self.organization_id):
            return False
        if self.department_id is not None and not _same(request.get("department_id"), self.department_id):
            return False
        return True

    def _is_requester(self, request: dict) -> bool:
        if self.user_id is not None and request.get("requester_id") is not None:
            return _same(request["requester_id"], self.user_id)
        email = (request.get("requester_email") or "").strip().lower()
        return bool(email) and bool(self.user_email) and email == self.user_email.strip().lower()

    def matches(self, request: dict) -> bool:
        """Predicate over a request dict.

        Reads ``organization_id``, ``department_id``, ``requester_id`` and
        ``requester_email`` from the dict; missing keys count as unset.
        """
        match self.tier:
            case Tier.TOP:
                return True
            case Tier.MID:
                return self._org_dept_match(request)
            case Tier.BOTTOM:
                return self._org_dept_match(request) and self._is_requester(request)

    def to_jql(self, field_ids: dict[str, str], base: str | None = None) -> str:
        """Render the same predicate as a JQL clause.

        Only names can be expressed in JQL; callers still apply ``matches``
        to the returned issues because a principal may have an organization
        id whose name is unknown here.
        """
        clauses = [f"({base})"] if base else []

        def cf(name: str) -> str:
            field_id = field_ids.get(name, name)
            if field_id.startswith("customfield_"):
                return f"cf[{field_id.split('_', 1)[1]}]"
            return _jql_quote(field_id)

        if self.tier in (Tier.MID, Tier.BOTTOM):
            if self.organization_name:
                clauses.append(f"{cf('organization')} = {_jql_quote(self.organization_name)}")
            if self.department_name:
                clauses.append(f"{cf('department')} = {_jql_quote(self.department_name)}")
        if self.tier == Tier.BOTTOM and self.user_email:
            clauses.append(f"{cf('requester_email')} ~ {_jql_quote(self.user_email)}")

        jql = " AND ".join(clauses)
        return f"{jql} ORDER BY created DESC" if jql else "ORDER BY created DESC"

    def to_dict(self) -> dict:
        return {
            "role": self.role.value if self.role else self.role_name,
            "tier": self.tier.value,
            "user_id": self.user_id,
            "organization_id": self.organization_id,
            "department_id": self.department_id,
        }


def scope_for(
    role,
    user_id: int | None = None,
    organization_id: int | None = None,
    department_id: int | None = None,
    user_email: str | None = None,
    organization_name: str | None = None,
    department_name: str | None = None,
) -> VisibilityScope:
    """Build the VisibilityScope for a principal."""
    parsed = Role.parse(role)
    if parsed is None and role:
        logger.debug("Unrecognised role %r resolved as mid-level scope", role)
    return VisibilityScope(
        role=parsed,
        role_name=parsed.value if parsed else (str(role).strip().upper() if role else None),
        user_id=user_id,
        user_email=user_email,
        organization_id=organization_id,
        department_id=department_id,
        organization_name=organization_name,
        department_name=department_name,
    )


# ── Notifications ─────────────────────────────────────────────────────────────


def notification_visible(notification, scope: VisibilityScope) -> bool:
    """True when every recipient column set on the notification matches the principal.

    A broadcast (all four columns NULL) therefore passes for everyone.
    """
    checks = (
        (notification.recipient_user_id, scope.user_id),
        (notification.recipient_role, scope.role_name),
        (notification.recipient_department_id, scope.department_id),
        (notification.recipient_organization_id, scope.organization_id),
    )
    for wanted, actual in checks:
        if wanted is not None and not _same(wanted, actual):
            return False
    return True


def _column_matches(column, value):
    if value is None:
        return column.is_(None)
    return or_(column.is_(None), column == value)


def notification_filter(scope: VisibilityScope):
    """SQLAlchemy criterion equivalent to ``notification_visible``."""
    return and_(
        _column_matches(Notification.recipient_user_id, scope.user_id),
        _column_matches(Notification.recipient_role, scope.role_name),
        _column_matches(Notification.recipient_department_id, scope.department_id),
        _column_matches(Notification.recipient_organization_id, scope.organization_id),
    )
