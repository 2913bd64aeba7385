"""API tests for completed-contract queries and scoped request listing."""

from __future__ import annotations

from datetime import date
from unittest.mock import patch

from procurement_desk.integrations import ticket_gateway as gw_module
from procurement_desk.integrations.ticket_gateway import GatewayResult
from procurement_desk.models import db
from procurement_desk.models.negotiation import NegotiationSnapshot
from procurement_desk.models.notification import Notification


def _snapshot(key, vendor, product, org_id, dept_id, duration=12, email=None):
    s = NegotiationSnapshot(
        request_key=key,
        vendor_name=vendor,
        product_name=product,
        requester_organization_id=org_id,
        requester_department_id=dept_id,
        requester_email=email,
        contract_duration_months=duration,
        contract_start_date=date(2024, 1, 15),
        renewal_date=date(2024, 2, 15) if duration == 1 else date(2025, 1, 15),
        profit=0,
    )
    db.session.add(s)
    db.session.commit()
    return s


def _search_result(issues, total=None) -> GatewayResult:
    return GatewayResult(
        ok=True, status_code=200,
        data={"total": len(issues) if total is None else total, "issues": issues},
        error=None, duration_ms=8,
    )


def _issue(key, org="Acme Corp", dept="IT", email="rita@acme.test") -> dict:
    return {
        "key": key,
        "summary": f"Request {key}",
        "status": "Request Review",
        "updated": "2024-01-10T09:00:00.000+0000",
        "created": "2024-01-02T09:00:00.000+0000",
        "reporter_email": email,
        "fields": {
            "organization": org,
            "department": dept,
            "requester_email": email,
            "vendor_name": "Figma",
            "product_name": "Figma Pro",
        },
    }


# ── Contracts ─────────────────────────────────────────────────────────────────


class TestContractsApi:
    def test_completed_is_scoped(self, client, approver, super_admin, org, dept, other_dept, auth_headers):
        _snapshot("REQ-1", "Figma", "Figma Pro", org.id, dept.id)
        _snapshot("REQ-2", "Slack", "Slack Pro", org.id, other_dept.id)

        mine = client.get("/api/v1/contracts/completed", headers=auth_headers(approver)).get_json()
        everything = client.get("/api/v1/contracts/completed", headers=auth_headers(super_admin)).get_json()

        assert [c["request_key"] for c in mine["items"]] == ["REQ-1"]
        assert everything["total"] == 2

    def test_by_vendor_is_case_insensitive(self, client, super_admin, org, dept, auth_headers):
        _snapshot("REQ-1", "Figma", "Figma Pro", org.id, dept.id)
        _snapshot("REQ-2", "Figma", "FigJam", org.id, dept.id)

        h = auth_headers(super_admin)
        assert client.get("/api/v1/contracts/by-vendor?vendor=figma", headers=h).get_json()["total"] == 2
        res = client.get("/api/v1/contracts/by-vendor?vendor=FIGMA&product=figjam", headers=h).get_json()
        assert [c["request_key"] for c in res["items"]] == ["REQ-2"]

    def test_by_vendor_requires_vendor(self, client, super_admin, auth_headers):
        res = client.get("/api/v1/contracts/by-vendor", headers=auth_headers(super_admin))
        assert res.status_code == 400

    def test_subscriptions(self, client, super_admin, org, dept, auth_headers):
        _snapshot("REQ-1", "Figma", "Figma Pro", org.id, dept.id, duration=1)
        _snapshot("REQ-2", "Slack", "Slack Pro", org.id, dept.id, duration=12)

        res = client.get("/api/v1/contracts/subscriptions", headers=auth_headers(super_admin)).get_json()
        assert [c["request_key"] for c in res["items"]] == ["REQ-1"]

    def test_get_contract_outside_scope_is_404(self, client, approver, org, other_dept, auth_headers):
        _snapshot("REQ-2", "Slack", "Slack Pro", org.id, other_dept.id)

        res = client.get("/api/v1/contracts/REQ-2", headers=auth_headers(approver))
        assert res.status_code == 404

    def test_requester_sees_own_contract(self, client, requester, org, dept, auth_headers):
        _snapshot("REQ-1", "Figma", "Figma Pro", org.id, dept.id, email="rita@acme.test")
        _snapshot("REQ-3", "Zoom", "Zoom Pro", org.id, dept.id, email="bob@acme.test")

        res = client.get("/api/v1/contracts/completed", headers=auth_headers(requester)).get_json()
        assert [c["request_key"] for c in res["items"]] == ["REQ-1"]


# ── Requests ──────────────────────────────────────────────────────────────────


class TestRequestsApi:
    def test_list_sends_scope_as_jql_and_post_filters(self, client, approver, org, dept, auth_headers):
        issues = [_issue("REQ-1"), _issue("REQ-2", dept="Finance"), _issue("REQ-3", org="Globex")]
        with patch.object(gw_module.ticket_gateway, "search_issues",
                          return_value=_search_result(issues, total=3)) as search:
            res = client.get("/api/v1/requests?max_results=500", headers=auth_headers(approver))

        assert res.status_code == 200
        body = res.get_json()
        assert [r["key"] for r in body["items"]] == ["REQ-1"]
        assert body["items"][0]["organization_id"] == org.id
        assert body["total"] == 1
        assert body["upstream_total"] == 3
        assert body["scope"]["tier"] == "mid"

        jql = search.call_args.args[0]
        assert jql.startswith('(project = "PROC")')
        assert '= "Acme Corp"' in jql and '= "IT"' in jql
        assert search.call_args.kwargs["max_results"] == 100

    def test_requester_only_sees_own(self, client, requester, auth_headers):
        issues = [_issue("REQ-1"), _issue("REQ-2", email="bob@acme.test")]
        with patch.object(gw_module.ticket_gateway, "search_issues", return_value=_search_result(issues)):
            body = client.get("/api/v1/requests", headers=auth_headers(requester)).get_json()

        assert [r["key"] for r in body["items"]] == ["REQ-1"]

    def test_search_timeout_is_504(self, client, approver, auth_headers):
        timeout = GatewayResult(ok=False, status_code=None, data=None, error="timeout",
                                duration_ms=30000, timed_out=True)
        with patch.object(gw_module.ticket_gateway, "search_issues", return_value=timeout):
            res = client.get("/api/v1/requests", headers=auth_headers(approver))
        assert res.status_code == 504

    def test_request_created_fans_out(self, client, requester, auth_headers):
        res = client.post("/api/v1/requests/REQ-9/created", headers=auth_headers(requester))

        assert res.status_code == 201
        assert res.get_json()["notified"] == 3
        assert Notification.query.filter_by(request_key="REQ-9").count() == 3


class TestHealth:
    def test_ready_and_live(self, client):
        assert client.get("/api/v1/health").status_code == 200
        assert client.get("/api/v1/health/ready").get_json() == {"status": "ok"}
        live = client.get("/api/v1/health/live").get_json()
        assert live["checks"]["database"]["status"] == "ok"
        assert live["checks"]["ticket_store"]["status"] == "configured"

    def test_unknown_api_path_is_json_404(self, client):
        res = client.get("/api/v1/nope")
        assert res.status_code == 404
        assert res.get_json()["error"] == "Not found"
