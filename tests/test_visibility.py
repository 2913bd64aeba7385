"""Tests for the visibility resolver.

Coverage:
  1. Role parsing and tiers (unknown roles behave as mid-level)
  2. Request predicate per rung, including unset organization/department
  3. Superset property across the ladder
  4. JQL rendering
  5. Notification visibility: Python predicate and SQL filter agree
"""

from __future__ import annotations

import pytest

from procurement_desk.models import db
from procurement_desk.models.notification import Notification
from procurement_desk.services.visibility import (
    Role,
    Tier,
    notification_filter,
    notification_visible,
    scope_for,
)

FIELD_IDS = {
    "organization": "customfield_10337",
    "department": "customfield_10244",
    "requester_email": "customfield_10246",
}


def _req(org=None, dept=None, requester_id=None, email=None) -> dict:
    return {
        "organization_id": org,
        "department_id": dept,
        "requester_id": requester_id,
        "requester_email": email,
    }


# Request population used by the ladder tests
_REQUESTS = [
    _req(5, 2, 7, "rita@acme.test"),
    _req(5, 2, 8, "bob@acme.test"),
    _req(5, 3, 7, "rita@acme.test"),
    _req(6, 2, 9, "eve@other.test"),
    _req(None, None, None, None),
]


class TestRoles:
    @pytest.mark.parametrize("raw, expected", [
        ("SUPER_ADMIN", Role.SUPER_ADMIN),
        ("approver", Role.APPROVER),
        (" Admin ", Role.ADMIN),
        ("requester", Role.REQUESTER),
        ("AUDITOR", None),
        ("", None),
        (None, None),
    ])
    def test_parse(self, raw, expected):
        assert Role.parse(raw) is expected

    def test_unknown_role_is_mid_tier(self):
        scope = scope_for("AUDITOR", user_id=1, organization_id=5)
        assert scope.tier == Tier.MID
        assert scope.role_name == "AUDITOR"
        assert scope.matches(_req(5, 9))
        assert not scope.matches(_req(6, 9))


class TestRequestMatching:
    def test_super_admin_sees_everything(self):
        scope = scope_for("SUPER_ADMIN", user_id=1)
        assert all(scope.matches(r) for r in _REQUESTS)

    def test_approver_needs_org_and_dept(self):
        scope = scope_for("APPROVER", user_id=3, organization_id=5, department_id=2)
        visible = [r for r in _REQUESTS if scope.matches(r)]
        assert visible == _REQUESTS[:2]

    def test_unset_department_skips_that_check(self):
        scope = scope_for("ADMIN", user_id=3, organization_id=5, department_id=None)
        visible = [r for r in _REQUESTS if scope.matches(r)]
        assert visible == _REQUESTS[:3]

    def test_mid_level_with_no_units_sees_everything(self):
        scope = scope_for("APPROVER", user_id=3)
        assert all(scope.matches(r) for r in _REQUESTS)

    def test_requester_sees_only_own_requests_in_unit(self):
        scope = scope_for("REQUESTER", user_id=7, organization_id=5, department_id=2)
        visible = [r for r in _REQUESTS if scope.matches(r)]
        assert visible == [_REQUESTS[0]]

    def test_requester_matched_by_email_when_id_missing(self):
        scope = scope_for(
            "REQUESTER", user_id=7, organization_id=5, department_id=2, user_email="Rita@Acme.test",
        )
        assert scope.matches(_req(5, 2, None, "rita@acme.test"))
        assert not scope.matches(_req(5, 2, None, "bob@acme.test"))

    def test_ids_compared_across_types(self):
        scope = scope_for("APPROVER", organization_id=5, department_id=2)
        assert scope.matches({"organization_id": "5", "department_id": "2"})

    @pytest.mark.parametrize("org, dept", [(5, 2), (5, None), (None, 2), (None, None)])
    def test_each_rung_is_superset_of_the_one_below(self, org, dept):
        """Given the same units, super admin ⊇ approver ⊇ requester."""
        top = scope_for("SUPER_ADMIN", user_id=7, organization_id=org, department_id=dept)
        mid = scope_for("APPROVER", user_id=7, organization_id=org, department_id=dept)
        bottom = scope_for("REQUESTER", user_id=7, organization_id=org, department_id=dept)

        for r in _REQUESTS:
            if bottom.matches(r):
                assert mid.matches(r)
            if mid.matches(r):
                assert top.matches(r)


class TestJql:
    def test_super_admin_has_no_scope_clause(self):
        jql = scope_for("SUPER_ADMIN").to_jql(FIELD_IDS, base='project = "PROC"')
        assert jql == '(project = "PROC") ORDER BY created DESC'

    def test_mid_level_filters_by_unit_names(self):
        scope = scope_for("APPROVER", organization_id=5, department_id=2,
                          organization_name="Acme Corp", department_name="IT")
        jql = scope.to_jql(FIELD_IDS)
        assert jql == 'cf[10337] = "Acme Corp" AND cf[10244] = "IT" ORDER BY created DESC'

    def test_requester_adds_email_clause(self):
        scope = scope_for("REQUESTER", user_id=7, organization_id=5, user_email="rita@acme.test",
                          organization_name="Acme Corp")
        jql = scope.to_jql(FIELD_IDS)
        assert 'cf[10246] ~ "rita@acme.test"' in jql
        assert "cf[10244]" not in jql

    def test_quotes_are_escaped(self):
        scope = scope_for("APPROVER", organization_id=5, organization_name='Acme "East"')
        assert 'cf[10337] = "Acme \\"East\\""' in scope.to_jql(FIELD_IDS)


# ── Notifications ─────────────────────────────────────────────────────────────


def _notif(user=None, role=None, dept=None, org=None) -> Notification:
    n = Notification(
        title="t",
        recipient_user_id=user,
        recipient_role=role,
        recipient_department_id=dept,
        recipient_organization_id=org,
    )
    db.session.add(n)
    db.session.flush()
    return n


class TestNotificationVisibility:
    @pytest.fixture()
    def rows(self):
        return {
            "broadcast": _notif(),
            "direct_7": _notif(user=7),
            "direct_8": _notif(user=8),
            "approver_unit": _notif(role="APPROVER", dept=2, org=5),
            "admin_unit": _notif(role="ADMIN", dept=2, org=5),
            "approver_org_only": _notif(role="APPROVER", org=5),
            "approver_other_org": _notif(role="APPROVER", org=6),
        }

    @pytest.mark.parametrize("scope_kwargs, expected", [
        (dict(role="REQUESTER", user_id=7, organization_id=5, department_id=2),
         {"broadcast", "direct_7"}),
        (dict(role="APPROVER", user_id=3, organization_id=5, department_id=2),
         {"broadcast", "approver_unit", "approver_org_only"}),
        (dict(role="ADMIN", user_id=4, organization_id=5, department_id=2),
         {"broadcast", "admin_unit"}),
        (dict(role="SUPER_ADMIN", user_id=1),
         {"broadcast"}),
        (dict(role="APPROVER", user_id=3, organization_id=5, department_id=None),
         {"broadcast", "approver_org_only"}),
    ])
    def test_predicate_and_filter_agree(self, rows, scope_kwargs, expected):
        scope = scope_for(**scope_kwargs)

        by_predicate = {name for name, n in rows.items() if notification_visible(n, scope)}
        ids = {n.id for n in Notification.query.filter(notification_filter(scope)).all()}
        by_filter = {name for name, n in rows.items() if n.id in ids}

        assert by_predicate == expected
        assert by_filter == expected

    def test_broadcast_visible_to_anyone(self):
        n = _notif()
        assert notification_visible(n, scope_for(None))
        assert notification_visible(n, scope_for("REQUESTER", user_id=99))
