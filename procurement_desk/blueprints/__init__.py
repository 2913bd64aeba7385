"""
Procurement Desk
Blueprint registry.

negotiation_bp   - proposal ledger, completion workflow, final quote
contract_bp      - completed-contract queries
request_bp       - scoped request listing, creation events
notification_bp  - inbox and live stream
health_bp        - readiness / liveness probes
"""
