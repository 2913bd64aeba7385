"""
Procurement Desk
Principal resolution for API requests.

The identity provider authenticates users in front of this service and
forwards the caller as ``X-User-Id`` (directory id) or ``X-User-Email``.
This module maps that header onto the local directory mirror and exposes
the caller's VisibilityScope as ``g.scope``.

Provides:
    - require_principal: decorator that rejects unknown callers with 401
    - current_scope(): the resolved VisibilityScope inside a request
"""

import functools
import logging

from flask import g, request

from procurement_desk.models.directory import User
from procurement_desk.services import directory_service
from procurement_desk.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def _lookup_user() -> User | None:
    raw_id = (request.headers.get("X-User-Id") or "").strip()
    if raw_id:
        if not raw_id.isdigit():
            return None
        return directory_service.get_user(int(raw_id))

    email = (request.headers.get("X-User-Email") or "").strip()
    if email:
        found = directory_service.find_user_by_email(email)
        return directory_service.get_user(found["id"]) if found else None
    return None


def require_principal(f):
    """
    Decorator: resolve the calling user and their visibility scope.

    Sets g.current_user and g.scope. Returns 401 when the caller is missing
    from the directory or inactive.
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        user = _lookup_user()
        if user is None:
            logger.warning("Unresolved principal on %s %s", request.method, request.path)
            return api_error(E.UNAUTHENTICATED, "Unknown or missing user. Provide X-User-Id or X-User-Email.")
        g.current_user = user
        g.scope = directory_service.scope_for_user(user)
        return f(*args, **kwargs)

    return decorated


def current_scope():
    return getattr(g, "scope", None)
