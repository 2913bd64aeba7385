"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in procurement_desk/__init__.py with no
default limits; this module applies granular limits per route category.

Usage:
    from procurement_desk.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# Workflow calls hit the ticket store; keep them well below its own quota
WORKFLOW_LIMIT = "30/minute"
READ_LIMIT = "200/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Negotiation / completion endpoints: 30/minute
        - Notification and request endpoints: 200/minute
        - Health check: exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("negotiation")
    if bp:
        limiter.limit(WORKFLOW_LIMIT)(bp)

    bp = app.blueprints.get("contracts")
    if bp:
        limiter.limit(READ_LIMIT)(bp)

    for bp_name in ("notifications", "requests"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured - workflow: %s, read: %s", WORKFLOW_LIMIT, READ_LIMIT,
    )
