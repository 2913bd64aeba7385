"""
Request listing and creation events.

Requests live in the ticket store. Listing pushes the principal's scope down
as JQL and then re-checks every returned issue with VisibilityScope.matches,
so a scope the JQL could not fully express never leaks extra requests.
"""

from __future__ import annotations

import logging

from flask import current_app

from procurement_desk.core.exceptions import ExternalTimeout, ExternalUnavailable
from procurement_desk.integrations import ticket_gateway as gw_module
from procurement_desk.models.directory import User
from procurement_desk.services import directory_service
from procurement_desk.services.notification import NotificationService
from procurement_desk.services.visibility import VisibilityScope

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def _issue_to_request(issue: dict, unit_cache: dict) -> dict:
    fields = issue.get("fields") or {}
    unit_key = (fields.get("organization"), fields.get("department"))
    if unit_key not in unit_cache:
        unit_cache[unit_key] = directory_service.resolve_unit_ids(*unit_key)
    org_id, dept_id = unit_cache[unit_key]
    return {
        "key": issue.get("key"),
        "summary": issue.get("summary"),
        "status": issue.get("status"),
        "created": issue.get("created"),
        "updated": issue.get("updated"),
        "organization": fields.get("organization"),
        "department": fields.get("department"),
        "organization_id": org_id,
        "department_id": dept_id,
        "requester_name": fields.get("requester_name"),
        "requester_email": fields.get("requester_email") or issue.get("reporter_email"),
        "vendor_name": fields.get("vendor_name"),
        "product_name": fields.get("product_name"),
    }


def list_requests(scope: VisibilityScope, max_results: int = 50, start_at: int = 0) -> dict:
    """Requests visible to the principal.

    Returns:
        {"items": [request dict], "total": visible items on this page,
         "upstream_total": match count reported by the ticket store (for paging),
         "jql": the query sent}
    """
    max_results = max(1, min(int(max_results), MAX_PAGE_SIZE))
    gateway = gw_module.ticket_gateway
    project = current_app.config.get("JIRA_PROJECT_KEY")
    base = f'project = "{project}"' if project else None
    jql = scope.to_jql(gateway.field_ids, base=base)

    result = gateway.search_issues(jql, max_results=max_results, start_at=start_at)
    if not result.ok:
        if result.timed_out:
            raise ExternalTimeout("Timed out searching the ticket store")
        raise ExternalUnavailable(f"Ticket search failed: {result.error}", status_code=result.status_code)

    unit_cache: dict = {}
    candidates = [_issue_to_request(i, unit_cache) for i in result.data.get("issues", [])]
    items = [r for r in candidates if scope.matches(r)]
    if len(items) != len(candidates):
        logger.debug("Visibility post-filter dropped %d issue(s)", len(candidates) - len(items))
    return {
        "items": items,
        "total": len(items),
        "upstream_total": result.data.get("total", 0),
        "jql": jql,
    }


def announce_request_created(request_key: str, creator: User):
    """Fan out the 'request created' event for a request raised by ``creator``."""
    return NotificationService.on_request_created(
        request_key,
        creator_id=creator.id,
        department_id=creator.department_id,
        organization_id=creator.organization_id,
        creator_name=creator.display_name or creator.email,
    )
