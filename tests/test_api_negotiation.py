"""API tests for the negotiation blueprint.

Covers request parsing, principal resolution and the error-kind → HTTP
status mapping of the completion workflow.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from procurement_desk.integrations import ticket_gateway as gw_module
from procurement_desk.integrations.ticket_gateway import GatewayResult


def _ok_result(data=None) -> GatewayResult:
    return GatewayResult(ok=True, status_code=200, data=data, error=None, duration_ms=5)


def _err_result(status=None, timed_out=False) -> GatewayResult:
    return GatewayResult(ok=False, status_code=status, data=None, error="nope", duration_ms=5, timed_out=timed_out)


def _issue(status="Negotiation Stage") -> dict:
    return {
        "key": "REQ-1",
        "summary": "Renew",
        "status": status,
        "updated": "2024-01-15T10:22:33.000+0000",
        "created": "2023-12-01T08:00:00.000+0000",
        "reporter_email": "rita@acme.test",
        "fields": {"vendor_name": "Figma", "product_name": "Figma Pro", "contract_duration": 12},
    }


def _post_proposal(client, headers, key="REQ-1", **body):
    payload = {"unit_price": 100, "quantity": 1}
    payload.update(body)
    return client.post(f"/api/v1/requests/{key}/proposals", json=payload, headers=headers)


# ── Principal ─────────────────────────────────────────────────────────────────


class TestPrincipal:
    def test_missing_principal_is_401(self, client):
        res = client.get("/api/v1/requests/REQ-1/proposals")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_unknown_email_is_401(self, client):
        res = client.get("/api/v1/requests/REQ-1/proposals", headers={"X-User-Email": "ghost@acme.test"})
        assert res.status_code == 401

    def test_email_header_resolves(self, client, approver):
        res = client.get("/api/v1/requests/REQ-1/proposals", headers={"X-User-Email": "ALAN@acme.test"})
        assert res.status_code == 200


# ── Proposal ledger ───────────────────────────────────────────────────────────


class TestProposalEndpoints:
    def test_append_and_list(self, client, approver, auth_headers):
        h = auth_headers(approver)
        assert _post_proposal(client, h, unit_price=100).status_code == 201
        res = _post_proposal(client, h, unit_price=80, is_final=True)

        assert res.status_code == 201
        body = res.get_json()
        assert body["sequence_number"] == 2
        assert body["proposal_type"] == "FINAL"

        listing = client.get("/api/v1/requests/REQ-1/proposals", headers=h).get_json()
        assert listing["total"] == 2
        assert [p["sequence_number"] for p in listing["items"]] == [1, 2]

    def test_client_sequence_number_rejected(self, client, approver, auth_headers):
        res = _post_proposal(client, auth_headers(approver), sequence_number=5)
        assert res.status_code == 422

    def test_missing_quantity_is_400(self, client, approver, auth_headers):
        res = client.post(
            "/api/v1/requests/REQ-1/proposals", json={"unit_price": 1}, headers=auth_headers(approver),
        )
        assert res.status_code == 400

    def test_invalid_quantity_is_422_with_details(self, client, approver, auth_headers):
        res = _post_proposal(client, auth_headers(approver), quantity=0)
        assert res.status_code == 422
        assert "quantity" in res.get_json()["details"]

    def test_latest_404_when_empty(self, client, approver, auth_headers):
        res = client.get("/api/v1/requests/REQ-1/proposals/latest", headers=auth_headers(approver))
        assert res.status_code == 404

    def test_profit(self, client, approver, auth_headers):
        h = auth_headers(approver)
        _post_proposal(client, h, unit_price=100)
        _post_proposal(client, h, unit_price=80, is_final=True)

        body = client.get("/api/v1/requests/REQ-1/profit", headers=h).get_json()
        assert body["total_profit"] == "20.00"
        assert body["has_submitted_final_quote"] is True

    def test_non_json_body_is_415(self, client, approver, auth_headers):
        res = client.post(
            "/api/v1/requests/REQ-1/proposals", data="unit_price=1",
            content_type="text/plain", headers=auth_headers(approver),
        )
        assert res.status_code == 415


# ── Completion ────────────────────────────────────────────────────────────────


class TestCompleteEndpoint:
    def test_complete_returns_snapshot(self, client, approver, auth_headers):
        gw = gw_module.ticket_gateway
        with patch.object(gw, "get_issue", side_effect=[
            _ok_result(_issue()), _ok_result(_issue("Completed")),
        ]), patch.object(gw, "execute_transition", return_value=_ok_result({})) as transition:
            res = client.post(
                "/api/v1/requests/REQ-1/complete",
                json={"transition_key": "approve-negotiation-stage"},
                headers=auth_headers(approver),
            )

        assert res.status_code == 200
        body = res.get_json()
        assert body["request_key"] == "REQ-1"
        assert body["renewal_date"] == "2025-01-15"
        transition.assert_called_once_with("REQ-1", "5")

    def test_transition_key_required(self, client, approver, auth_headers):
        res = client.post("/api/v1/requests/REQ-1/complete", json={}, headers=auth_headers(approver))
        assert res.status_code == 400

    @pytest.mark.parametrize("transition_result, status, code", [
        (_err_result(400), 409, "ERR_TRANSITION_REJECTED"),
        (_err_result(None), 502, "ERR_EXTERNAL_UNAVAILABLE"),
        (_err_result(None, timed_out=True), 504, "ERR_EXTERNAL_TIMEOUT"),
    ])
    def test_error_kinds_map_to_status(self, client, approver, auth_headers, transition_result, status, code):
        gw = gw_module.ticket_gateway
        with patch.object(gw, "get_issue", return_value=_ok_result(_issue())), \
             patch.object(gw, "execute_transition", return_value=transition_result):
            res = client.post(
                "/api/v1/requests/REQ-1/complete",
                json={"transition_key": "approve-negotiation-stage"},
                headers=auth_headers(approver),
            )

        assert res.status_code == status
        assert res.get_json()["code"] == code

    def test_invalid_transition_key_is_422(self, client, approver, auth_headers):
        with patch.object(gw_module.ticket_gateway, "get_issue", return_value=_ok_result(_issue())):
            res = client.post(
                "/api/v1/requests/REQ-1/complete",
                json={"transition_key": "approve-everything"},
                headers=auth_headers(approver),
            )
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_INVALID_TRANSITION_KEY"

    def test_unknown_request_is_404(self, client, approver, auth_headers):
        with patch.object(gw_module.ticket_gateway, "get_issue", return_value=_err_result(404)):
            res = client.post(
                "/api/v1/requests/REQ-404/complete",
                json={"transition_key": "6"},
                headers=auth_headers(approver),
            )
        assert res.status_code == 404


class TestFinalQuoteEndpoints:
    def test_final_quote_without_final_is_422(self, client, approver, auth_headers):
        h = auth_headers(approver)
        _post_proposal(client, h)
        res = client.post("/api/v1/requests/REQ-1/final-quote", headers=h)
        assert res.status_code == 422

    def test_final_quote(self, client, approver, auth_headers):
        h = auth_headers(approver)
        _post_proposal(client, h, unit_price=100)
        _post_proposal(client, h, unit_price=80, is_final=True)

        with patch.object(gw_module.ticket_gateway, "update_fields", return_value=_ok_result({})):
            res = client.post("/api/v1/requests/REQ-1/final-quote", headers=h)

        assert res.status_code == 200
        assert res.get_json()["final_proposal"]["is_final_submitted"] is True

    def test_license_count(self, client, approver, auth_headers):
        with patch.object(gw_module.ticket_gateway, "update_fields", return_value=_ok_result({})):
            res = client.put(
                "/api/v1/requests/REQ-1/license-count",
                json={"new_license_count": 40}, headers=auth_headers(approver),
            )
        assert res.status_code == 200
        assert res.get_json()["new_license_count"] == 40
