"""Standardised API error responses.

Usage
-----
    from procurement_desk.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Notification not found")
    return api_error(E.VALIDATION_REQUIRED, "transition_key is required")
    return api_error(E.TRANSITION_REJECTED, str(exc), details={"status_code": 400})
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for standard application errors
     • ERR_EXTERNAL_ prefix for ticket-store failures
    """

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    INVALID_TRANSITION_KEY = "ERR_INVALID_TRANSITION_KEY"

    # Auth – HTTP 401
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    TRANSITION_REJECTED = "ERR_TRANSITION_REJECTED"

    # Ticket store – HTTP 502 / 504
    EXTERNAL_UNAVAILABLE = "ERR_EXTERNAL_UNAVAILABLE"
    EXTERNAL_TIMEOUT = "ERR_EXTERNAL_TIMEOUT"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.INVALID_TRANSITION_KEY: 422,
    E.UNAUTHENTICATED: 401,
    E.NOT_FOUND: 404,
    E.TRANSITION_REJECTED: 409,
    E.EXTERNAL_UNAVAILABLE: 502,
    E.EXTERNAL_TIMEOUT: 504,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field errors, upstream status, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


# ── Service exception → response mapping ─────────────────────────────
def register_service_error_handlers(bp) -> None:
    """Attach handlers for the service exception hierarchy to a blueprint.

    Every API blueprint calls this once after creation so the same error kind
    always produces the same status code and envelope.
    """
    import logging

    from procurement_desk.core.exceptions import (
        ExternalTimeout,
        ExternalUnavailable,
        InvalidTransitionKey,
        NotFoundError,
        PersistenceError,
        TransitionRejected,
        ValidationError,
    )

    log = logging.getLogger(bp.import_name)

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(InvalidTransitionKey)
    def _handle_invalid_transition(error: InvalidTransitionKey):
        return api_error(E.INVALID_TRANSITION_KEY, str(error), details=error.details)

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(TransitionRejected)
    def _handle_rejected(error: TransitionRejected):
        return api_error(
            E.TRANSITION_REJECTED, str(error),
            details={"status_code": error.status_code, "body": error.body},
        )

    @bp.errorhandler(ExternalTimeout)
    def _handle_timeout(error: ExternalTimeout):
        return api_error(E.EXTERNAL_TIMEOUT, str(error))

    @bp.errorhandler(ExternalUnavailable)
    def _handle_unavailable(error: ExternalUnavailable):
        details = {"status_code": error.status_code} if error.status_code else None
        return api_error(E.EXTERNAL_UNAVAILABLE, str(error), details=details)

    @bp.errorhandler(PersistenceError)
    def _handle_persistence(error: PersistenceError):
        log.error("Persistence failure: %s", error)
        return api_error(E.DATABASE, "Database error")
