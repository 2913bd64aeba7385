"""
Procurement Desk exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

The workflow error kinds are kept distinct on purpose: a caller that sees
ExternalTimeout does not know whether the remote transition happened, while
TransitionRejected means the ticket store answered and said no.

Usage:
    from procurement_desk.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="NegotiationSnapshot", resource_id="REQ-1")
    raise ValidationError("quantity must be positive", details={"quantity": 0})
"""


class ProcurementDeskError(Exception):
    """Base class for every error raised by the service layer."""


class NotFoundError(ProcurementDeskError):
    """Raised when a requested resource does not exist or is not visible.

    Invisible notifications are reported as missing, so a 404 never
    confirms that a record outside the caller's scope exists.

    Args:
        resource: Human-readable entity name (e.g. "Notification").
        resource_id: The key that was looked up. Included in logs.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(ProcurementDeskError):
    """Raised when input fails validation in the service layer.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidTransitionKey(ValidationError):
    """Transition key is neither a known stage action nor a raw numeric id."""

    def __init__(self, transition_key: str) -> None:
        self.transition_key = transition_key
        super().__init__(
            f"Unknown transition key {transition_key!r}",
            details={"transition_key": transition_key},
        )


class TransitionRejected(ProcurementDeskError):
    """The ticket store answered the transition call with a non-success status.

    Args:
        status_code: HTTP status returned by the ticket store.
        body: Response body (truncated) for diagnostics.
    """

    def __init__(self, request_key: str, status_code: int | None, body: str | None = None) -> None:
        self.request_key = request_key
        self.status_code = status_code
        self.body = body
        super().__init__(f"Transition rejected for {request_key} (HTTP {status_code})")


class ExternalTimeout(ProcurementDeskError):
    """The ticket store did not answer in time. Outcome of the call is unknown."""


class ExternalUnavailable(ProcurementDeskError):
    """Network, authentication or circuit-breaker failure talking to the ticket store."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class PersistenceError(ProcurementDeskError):
    """A write to the local store failed and was rolled back."""
