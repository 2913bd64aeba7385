"""API tests for the notification inbox and live stream."""

from __future__ import annotations

import json

from procurement_desk.models.notification import Notification
from procurement_desk.services.notification import NotificationService
from procurement_desk.services.notification_push import get_hub


def _seed(requester, org, dept):
    NotificationService.on_status_changed(
        "REQ-1", "Negotiation Stage", "Completed",
        requester_id=requester.id, requester_org=org.id, requester_dept=dept.id,
    )
    NotificationService.on_status_changed("REQ-2", "Open", "Completed")  # broadcast


class TestInboxApi:
    def test_list_is_scoped(self, client, requester, approver, org, dept, auth_headers):
        _seed(requester, org, dept)

        mine = client.get("/api/v1/notifications", headers=auth_headers(requester)).get_json()
        theirs = client.get("/api/v1/notifications", headers=auth_headers(approver)).get_json()

        assert mine["total"] == 2
        assert mine["unread_count"] == 2
        assert {n["recipient_role"] for n in theirs["items"]} == {"APPROVER", None}

    def test_unread_only_and_count(self, client, requester, org, dept, auth_headers):
        _seed(requester, org, dept)
        h = auth_headers(requester)
        first = client.get("/api/v1/notifications", headers=h).get_json()["items"][0]

        res = client.patch(f"/api/v1/notifications/{first['id']}/read", headers=h)
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True

        assert client.get("/api/v1/notifications/unread-count", headers=h).get_json() == {"unread_count": 1}
        unread = client.get("/api/v1/notifications?unread_only=true", headers=h).get_json()
        assert unread["total"] == 1

    def test_mark_all_read(self, client, requester, org, dept, auth_headers):
        _seed(requester, org, dept)
        h = auth_headers(requester)

        res = client.post("/api/v1/notifications/mark-all-read", headers=h)

        assert res.get_json() == {"marked_read": 2}
        assert client.get("/api/v1/notifications/unread-count", headers=h).get_json()["unread_count"] == 0

    def test_foreign_notification_is_404(self, client, requester, approver, org, dept, auth_headers):
        _seed(requester, org, dept)
        direct = Notification.query.filter_by(recipient_user_id=requester.id).one()

        res = client.patch(f"/api/v1/notifications/{direct.id}/read", headers=auth_headers(approver))
        assert res.status_code == 404
        res = client.delete(f"/api/v1/notifications/{direct.id}", headers=auth_headers(approver))
        assert res.status_code == 404

    def test_delete_one_and_purge_direct(self, client, requester, org, dept, auth_headers):
        _seed(requester, org, dept)
        h = auth_headers(requester)
        direct = Notification.query.filter_by(recipient_user_id=requester.id).one()

        res = client.delete(f"/api/v1/notifications/{direct.id}", headers=h)
        assert res.get_json() == {"deleted": True, "id": direct.id}

        res = client.delete("/api/v1/notifications?direct_only=true", headers=h)
        assert res.get_json() == {"deleted": 0}
        assert client.get("/api/v1/notifications", headers=h).get_json()["total"] == 1


class TestStreamApi:
    def test_stream_starts_with_unread_count(self, client, requester, org, dept, auth_headers):
        _seed(requester, org, dept)

        res = client.get("/api/v1/notifications/stream", headers=auth_headers(requester))

        assert res.status_code == 200
        assert res.mimetype == "text/event-stream"
        first = next(iter(res.response))
        first = first.decode() if isinstance(first, bytes) else first
        assert first.startswith("event: unread_count\n")
        payload = json.loads(first.split("data: ", 1)[1])
        assert payload == {"type": "unread_count", "count": 2}
        assert len(get_hub().subscribers()) == 1

        res.close()
        assert get_hub().subscribers() == []

    def test_stream_requires_principal(self, client):
        assert client.get("/api/v1/notifications/stream").status_code == 401
