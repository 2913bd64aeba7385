"""
Directory lookups over locally mirrored identity-provider users.

The identity provider stays the source of truth for accounts; this module
only reads the mirror (role, organization, department) that visibility and
notification targeting need.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select

from procurement_desk.models import db
from procurement_desk.models.directory import Department, Organization, User
from procurement_desk.services.visibility import VisibilityScope, scope_for

logger = logging.getLogger(__name__)


def find_user_by_email(email: str | None) -> dict | None:
    """Return ``{id, role, department_id, organization_id, display_name}`` or None.

    Email comparison is case-insensitive; inactive users are not returned.
    """
    if not email or not email.strip():
        return None
    stmt = select(User).where(
        func.lower(User.email) == email.strip().lower(),
        User.is_active.is_(True),
    )
    user = db.session.execute(stmt).scalars().first()
    if user is None:
        logger.debug("No directory entry for %s", email)
        return None
    return {
        "id": user.id,
        "role": user.role,
        "department_id": user.department_id,
        "organization_id": user.organization_id,
        "display_name": user.display_name,
    }


def get_user(user_id: int) -> User | None:
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


def scope_for_user(user: User) -> VisibilityScope:
    """Resolve a directory user into a VisibilityScope, names included for JQL."""
    return scope_for(
        user.role,
        user_id=user.id,
        organization_id=user.organization_id,
        department_id=user.department_id,
        user_email=user.email,
        organization_name=user.organization.name if user.organization else None,
        department_name=user.department.name if user.department else None,
    )


def resolve_unit_ids(organization_name: str | None, department_name: str | None) -> tuple[int | None, int | None]:
    """Map ticket-field organization/department names to directory ids.

    Returns (organization_id, department_id); either is None when unknown.
    Department lookup is restricted to the resolved organization when there is one.
    """
    org_id = None
    if organization_name:
        org = db.session.execute(
            select(Organization).where(func.lower(Organization.name) == str(organization_name).strip().lower())
        ).scalars().first()
        org_id = org.id if org else None

    dept_id = None
    if department_name:
        stmt = select(Department).where(func.lower(Department.name) == str(department_name).strip().lower())
        if org_id is not None:
            stmt = stmt.where(Department.organization_id == org_id)
        dept = db.session.execute(stmt).scalars().first()
        dept_id = dept.id if dept else None
    return org_id, dept_id
