"""
Procurement Desk
Notification Blueprint: inbox and live stream.

Every route acts on the calling principal's visible notifications only.
Rows outside the caller's scope are reported as 404.

Endpoints:
    GET    /api/v1/notifications?unread_only=true&limit=50&offset=0
    GET    /api/v1/notifications/unread-count
    PATCH  /api/v1/notifications/<id>/read
    POST   /api/v1/notifications/mark-all-read
    DELETE /api/v1/notifications/<id>
    DELETE /api/v1/notifications?direct_only=true
    GET    /api/v1/notifications/stream          text/event-stream
"""

from __future__ import annotations

import json
import logging
import queue

from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context

from procurement_desk.auth import current_scope, require_principal
from procurement_desk.services.notification import NotificationService
from procurement_desk.services.notification_push import get_hub
from procurement_desk.utils.errors import register_service_error_handlers

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1")
register_service_error_handlers(notification_bp)

_MAX_PAGE_SIZE = 200


def _truthy(raw: str | None) -> bool:
    return (raw or "").strip().lower() in ("1", "true", "yes")


# ═══════════════════════════════════════════════════════════════════════════
#  INBOX
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/notifications", methods=["GET"])
@require_principal
def list_notifications():
    """List notifications visible to the caller, newest first."""
    limit = max(1, min(request.args.get("limit", 50, type=int), _MAX_PAGE_SIZE))
    offset = max(0, request.args.get("offset", 0, type=int))
    scope = current_scope()

    items, total = NotificationService.list_for(
        scope, unread_only=_truthy(request.args.get("unread_only")), limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(scope),
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
@require_principal
def unread_count():
    return jsonify({"unread_count": NotificationService.unread_count(current_scope())})


@notification_bp.route("/notifications/<int:nid>/read", methods=["PATCH"])
@require_principal
def mark_read(nid):
    notif = NotificationService.mark_read(nid, current_scope())
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/mark-all-read", methods=["POST"])
@require_principal
def mark_all_read():
    count = NotificationService.mark_all_read(current_scope())
    return jsonify({"marked_read": count})


@notification_bp.route("/notifications/<int:nid>", methods=["DELETE"])
@require_principal
def delete_notification(nid):
    NotificationService.delete(nid, current_scope())
    return jsonify({"deleted": True, "id": nid})


@notification_bp.route("/notifications", methods=["DELETE"])
@require_principal
def delete_all_notifications():
    count = NotificationService.delete_all_for(
        current_scope(), direct_only=_truthy(request.args.get("direct_only")),
    )
    return jsonify({"deleted": count})


# ═══════════════════════════════════════════════════════════════════════════
#  LIVE STREAM (Server-Sent Events)
# ═══════════════════════════════════════════════════════════════════════════

def _sse(message: dict) -> str:
    return f"event: {message.get('type', 'message')}\ndata: {json.dumps(message, default=str)}\n\n"


@notification_bp.route("/notifications/stream", methods=["GET"])
@require_principal
def stream():
    """
    Push broadcast notifications and unread-count updates to the caller.

    The first event is always the current unread count. A comment line is
    sent every NOTIFICATION_STREAM_HEARTBEAT_SECONDS to keep proxies from
    closing an idle connection.
    """
    scope = current_scope()
    heartbeat = current_app.config.get("NOTIFICATION_STREAM_HEARTBEAT_SECONDS", 15)

    def generate():
        hub = get_hub()
        sub = hub.subscribe(scope)
        try:
            yield _sse({"type": "unread_count", "count": NotificationService.unread_count(scope)})
            while True:
                try:
                    message = sub.queue.get(timeout=heartbeat)
                except queue.Empty:
                    yield ": keep-alive\n\n"
                    continue
                yield _sse(message)
        finally:
            hub.unsubscribe(sub)

    return Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
