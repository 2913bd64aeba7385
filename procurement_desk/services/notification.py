"""
Procurement Desk
Notification Service: fan-out and inbox.

Fan-out turns a domain event into targeted notification rows:
    - one row addressed to the requester, when the requester is known
    - when an organization or department is known, one row for each
      mid-level role (APPROVER, ADMIN) carrying whichever of the two is known
    - when nothing is known, exactly one global broadcast

Rows are committed before anything is pushed. Pushing to live stream
subscribers is best effort and never fails the caller.

Inbox operations only ever touch rows visible to the calling principal;
anything else is reported as not found.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select

from procurement_desk.core.exceptions import NotFoundError
from procurement_desk.models import db
from procurement_desk.models.notification import Notification
from procurement_desk.services.notification_push import get_hub
from procurement_desk.services.visibility import (
    Role,
    VisibilityScope,
    notification_filter,
    notification_visible,
)
from procurement_desk.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

# Mid-level roles addressed when a request's organization/department is known
_UNIT_ROLES = (Role.APPROVER.value, Role.ADMIN.value)


def _recipient_scopes(user_id, organization_id, department_id) -> list[tuple]:
    """(user_id, role, department_id, organization_id) tuples, deduplicated, in emit order."""
    scopes: list[tuple] = []
    if user_id is not None:
        scopes.append((user_id, None, None, None))
    if organization_id is not None or department_id is not None:
        for role in _UNIT_ROLES:
            scopes.append((None, role, department_id, organization_id))
    if not scopes:
        scopes.append((None, None, None, None))

    seen = set()
    unique = []
    for s in scopes:
        if s not in seen:
            seen.add(s)
            unique.append(s)
    return unique


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Fan-out ───────────────────────────────────────────────────────────

    @staticmethod
    def on_status_changed(
        request_key,
        from_status,
        to_status,
        requester_id=None,
        requester_org=None,
        requester_dept=None,
        actor_id=None,
        actor_name=None,
    ) -> list[Notification]:
        """Notify the requester and the request's units that its status changed."""
        return NotificationService._fan_out(
            request_key=request_key,
            title=f"Request {request_key} moved to {to_status}",
            message=(
                f"{actor_name or 'System'} moved {request_key} "
                f"from {from_status or 'unknown'} to {to_status}."
            ),
            user_id=requester_id,
            organization_id=requester_org,
            department_id=requester_dept,
            sender_user_id=actor_id,
            sender_name=actor_name,
            from_status=from_status,
            to_status=to_status,
            event_type="status_changed",
        )

    @staticmethod
    def on_request_created(
        request_key,
        creator_id=None,
        department_id=None,
        organization_id=None,
        creator_name=None,
    ) -> list[Notification]:
        """Notify the creator and the request's units that a request was raised."""
        return NotificationService._fan_out(
            request_key=request_key,
            title=f"New request {request_key}",
            message=f"{creator_name or 'A user'} created request {request_key}.",
            user_id=creator_id,
            organization_id=organization_id,
            department_id=department_id,
            sender_user_id=creator_id,
            sender_name=creator_name,
            event_type="request_created",
        )

    @staticmethod
    def _fan_out(*, request_key, title, message, user_id, organization_id, department_id,
                 sender_user_id=None, sender_name=None, from_status=None, to_status=None,
                 event_type="event") -> list[Notification]:
        created = []
        for r_user, r_role, r_dept, r_org in _recipient_scopes(user_id, organization_id, department_id):
            notif = Notification(
                title=title,
                message=message,
                request_key=request_key,
                recipient_user_id=r_user,
                recipient_role=r_role,
                recipient_department_id=r_dept,
                recipient_organization_id=r_org,
                sender_user_id=sender_user_id,
                sender_name=sender_name,
                from_status=from_status,
                to_status=to_status,
            )
            db.session.add(notif)
            created.append(notif)
        commit_or_raise("notification")

        logger.info(
            "Fan-out %s for %s: %d notification(s)", event_type, request_key, len(created),
            extra={"request_key": request_key, "event_type": event_type},
        )
        NotificationService._push(created)
        return created

    @staticmethod
    def _push(notifications: list[Notification]) -> None:
        """Best-effort live delivery. Errors are logged, never raised."""
        hub = get_hub()
        try:
            for notif in notifications:
                if notif.is_broadcast:
                    hub.publish({"type": "notification", "notification": notif.to_dict()})

            affected = hub.subscribers(
                lambda scope: any(notification_visible(n, scope) for n in notifications)
            )
            for sub in affected:
                hub.publish(
                    {"type": "unread_count", "count": NotificationService.unread_count(sub.scope)},
                    targets=[sub],
                )
        except Exception:  # noqa: BLE001
            logger.exception("Notification push failed")

    @staticmethod
    def _push_unread_to_user(scope: VisibilityScope) -> None:
        hub = get_hub()
        try:
            targets = hub.subscribers(lambda s: s.user_id is not None and s.user_id == scope.user_id)
            if targets:
                hub.publish(
                    {"type": "unread_count", "count": NotificationService.unread_count(scope)},
                    targets=targets,
                )
        except Exception:  # noqa: BLE001
            logger.exception("Unread count push failed")

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for(scope: VisibilityScope, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications visible to the principal, newest first.

        Returns:
            (items, total)
        """
        q = Notification.query.filter(notification_filter(scope))
        if unread_only:
            q = q.filter(Notification.is_read.is_(False))
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(scope: VisibilityScope) -> int:
        stmt = select(func.count(Notification.id)).where(
            notification_filter(scope),
            Notification.is_read.is_(False),
        )
        return db.session.execute(stmt).scalar() or 0

    @staticmethod
    def get_visible(notification_id, scope: VisibilityScope) -> Notification:
        notif = db.session.get(Notification, notification_id)
        if notif is None or not notification_visible(notif, scope):
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        return notif

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, scope: VisibilityScope) -> Notification:
        """Mark a single notification as read. Broadcast rows are shared, so this is global for them."""
        notif = NotificationService.get_visible(notification_id, scope)
        if not notif.is_read:
            notif.mark_read()
            commit_or_raise("notification")
            NotificationService._push_unread_to_user(scope)
        return notif

    @staticmethod
    def mark_all_read(scope: VisibilityScope) -> int:
        """Mark every visible unread notification as read. Returns the row count."""
        now = datetime.now(timezone.utc)
        count = (
            Notification.query
            .filter(notification_filter(scope), Notification.is_read.is_(False))
            .update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        )
        commit_or_raise("notification")
        NotificationService._push_unread_to_user(scope)
        return count

    @staticmethod
    def delete(notification_id, scope: VisibilityScope) -> None:
        notif = NotificationService.get_visible(notification_id, scope)
        db.session.delete(notif)
        commit_or_raise("notification")
        NotificationService._push_unread_to_user(scope)

    @staticmethod
    def delete_all_for(scope: VisibilityScope, direct_only=False) -> int:
        """Delete notifications for the principal.

        direct_only=True limits the purge to rows addressed to the user id;
        otherwise every visible row goes, broadcasts included.
        """
        q = Notification.query
        if direct_only:
            if scope.user_id is None:
                return 0
            q = q.filter(Notification.recipient_user_id == scope.user_id)
        else:
            q = q.filter(notification_filter(scope))
        count = q.delete(synchronize_session="fetch")
        commit_or_raise("notification")
        NotificationService._push_unread_to_user(scope)
        return count
