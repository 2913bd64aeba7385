"""procurement_desk.integrations: External service gateway modules.

All outbound HTTP calls to third-party APIs must go through a gateway
in this package, never via bare `requests` calls in services or blueprints.

Every call is:
  - Authenticated (credentials injected by the gateway)
  - Retried with backoff where the call is safe to repeat
  - Circuit-broken to prevent cascade failures

Current gateways:
  ticket_gateway.JiraGateway - issue tracker REST API (status, fields, transitions)
"""
