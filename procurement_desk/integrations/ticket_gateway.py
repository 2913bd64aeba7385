"""
Ticket Store Gateway: Jira Cloud REST v3.

All outbound HTTP calls to the ticket store go through this class.
Direct `requests` calls in services or blueprints are FORBIDDEN.

  - Basic auth (account email + API token)
  - Retry for reads and idempotent writes: max 2 retries, backoff 1 s → 4 s
  - Transition POSTs are sent exactly once: a retried transition could move
    the ticket twice, and the completion workflow re-reads status instead
  - Timeout: JIRA_TIMEOUT_SECONDS (default 30 s)
  - Circuit breaker: ≥5 failures in 60 s → 30 s pause per base URL
  - Structured result returned to the service; the service decides which
    error kind to raise

Custom field ids are configured per deployment (Config.JIRA_FIELDS); the
gateway translates them to logical names in both directions so services
never see ``customfield_*`` keys.

Testability: pass a mock `session` to JiraGateway() in tests, or patch the
module-level `ticket_gateway` methods with `patch.object`.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any

import requests

logger = logging.getLogger(__name__)

# ── Circuit breaker constants ──────────────────────────────────────────────
_CB_FAILURE_THRESHOLD = 5          # failures within window before opening
_CB_WINDOW_SECONDS = 60            # failure counting window (seconds)
_CB_OPEN_DURATION_SECONDS = 30     # how long circuit stays open

# ── Retry constants ────────────────────────────────────────────────────────
_RETRY_MAX = 2
_RETRY_BACKOFF_SECONDS = [1, 4]    # sleep[0] after 1st fail, sleep[1] after 2nd

# ── Default request timeout ────────────────────────────────────────────────
_DEFAULT_TIMEOUT = 30

# Client errors that will not change on retry
_NO_RETRY_STATUSES = frozenset({400, 401, 403, 404, 409, 422})

_API = "/rest/api/3"


class GatewayResult:
    """Structured return value from JiraGateway calls.

    Attributes:
        ok:             True if the call succeeded (HTTP 2xx + no exception).
        status_code:    HTTP status code (None if network-level failure).
        data:           Parsed JSON response body (dict or list), else None.
        error:          Human-readable error message or None.
        duration_ms:    Round-trip latency in milliseconds.
        timed_out:      True when the last attempt hit the request timeout.
        circuit_open:   True when the call was refused by the circuit breaker.
    """

    def __init__(
        self,
        ok: bool,
        status_code: int | None,
        data: dict | list | None,
        error: str | None,
        duration_ms: int,
        timed_out: bool = False,
        circuit_open: bool = False,
    ) -> None:
        self.ok = ok
        self.status_code = status_code
        self.data = data
        self.error = error
        self.duration_ms = duration_ms
        self.timed_out = timed_out
        self.circuit_open = circuit_open

    def __repr__(self) -> str:
        return (
            f"<GatewayResult ok={self.ok} status={self.status_code} "
            f"timed_out={self.timed_out} circuit_open={self.circuit_open}>"
        )


def _unwrap(value: Any) -> Any:
    """Flatten Jira option/user objects to their display value."""
    if isinstance(value, dict):
        for key in ("value", "name", "displayName", "emailAddress"):
            if key in value:
                return value[key]
        return value
    if isinstance(value, list):
        return [_unwrap(v) for v in value]
    return value


class JiraGateway:
    """Jira REST API gateway.

    Instantiate once at module level (module-level singleton pattern) and
    bind credentials with ``init_app``.

    Usage:
        from procurement_desk.integrations.ticket_gateway import ticket_gateway
        result = ticket_gateway.get_issue("REQ-1")
    """

    def __init__(self, session: requests.Session | None = None) -> None:
        # Inject custom session for testing; create real one lazily otherwise.
        self._session: requests.Session | None = session
        self.base_url = ""
        self._auth: tuple[str, str] | None = None
        self.timeout = _DEFAULT_TIMEOUT
        self.field_ids: dict[str, str] = {}

        # Circuit breaker: base_url → {"failures": [datetime, ...], "open_until": datetime|None}
        self._cb_state: dict[str, dict] = {}
        self._cb_lock = threading.Lock()

    def init_app(self, app) -> None:
        """Read connection settings from the Flask config."""
        self.configure(
            base_url=app.config.get("JIRA_BASE_URL", ""),
            email=app.config.get("JIRA_EMAIL", ""),
            api_token=app.config.get("JIRA_API_TOKEN", ""),
            timeout=app.config.get("JIRA_TIMEOUT_SECONDS", _DEFAULT_TIMEOUT),
            field_ids=app.config.get("JIRA_FIELDS", {}),
        )

    def configure(
        self,
        *,
        base_url: str,
        email: str,
        api_token: str,
        timeout: int = _DEFAULT_TIMEOUT,
        field_ids: dict[str, str] | None = None,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self._auth = (email, api_token) if email and api_token else None
        self.timeout = timeout
        self.field_ids = dict(field_ids or {})
        if not self.base_url:
            logger.warning("JIRA_BASE_URL not configured; ticket store calls will fail")

    # ── HTTP session ─────────────────────────────────────────────────────────

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    # ── Circuit breaker ───────────────────────────────────────────────────────

    def _ensure_cb_entry(self, scope: str) -> dict:
        if scope not in self._cb_state:
            self._cb_state[scope] = {"failures": [], "open_until": None}
        return self._cb_state[scope]

    def _circuit_closed(self, scope: str) -> bool:
        """Return True if the circuit allows calls; False if open (paused)."""
        with self._cb_lock:
            state = self._ensure_cb_entry(scope)
            now = datetime.now(timezone.utc)

            if state["open_until"] and now < state["open_until"]:
                logger.warning("Circuit open for %s until %s", scope, state["open_until"])
                return False

            # Prune failures outside the counting window
            window_start = now - timedelta(seconds=_CB_WINDOW_SECONDS)
            state["failures"] = [f for f in state["failures"] if f >= window_start]

            if len(state["failures"]) >= _CB_FAILURE_THRESHOLD:
                state["open_until"] = now + timedelta(seconds=_CB_OPEN_DURATION_SECONDS)
                logger.error(
                    "Circuit opened for %s: %d failures in %ds window",
                    scope, len(state["failures"]), _CB_WINDOW_SECONDS,
                )
                return False

            return True

    def _record_failure(self, scope: str) -> None:
        with self._cb_lock:
            self._ensure_cb_entry(scope)["failures"].append(datetime.now(timezone.utc))

    def _record_success(self, scope: str) -> None:
        """On success, reset failure history and close the circuit."""
        with self._cb_lock:
            state = self._ensure_cb_entry(scope)
            state["failures"].clear()
            state["open_until"] = None

    def reset_circuit(self) -> None:
        """Forget all breaker state (tests, admin reset)."""
        with self._cb_lock:
            self._cb_state.clear()

    # ── Core request dispatcher ───────────────────────────────────────────────

    def request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict | list | None = None,
        params: dict | None = None,
        retry: bool = True,
        timeout: int | None = None,
    ) -> GatewayResult:
        """Execute an authenticated request against the ticket store.

        Implements:
          1. Circuit breaker check - reject immediately if paused.
          2. Basic auth injection.
          3. Execute request; on 2xx → return success result.
          4. On failure (non-2xx or network error):
             - Record failure for circuit breaker.
             - If ``retry`` and the status is retryable, retry up to
               _RETRY_MAX times with backoff.
             - Otherwise return the error result.

        Returns:
            GatewayResult - always returns (never raises). Callers check .ok.
        """
        timeout = timeout or self.timeout
        scope = self.base_url or "unconfigured"
        if not self._circuit_closed(scope):
            return GatewayResult(
                ok=False,
                status_code=None,
                data=None,
                error="Circuit breaker is open - ticket store calls temporarily suspended",
                duration_ms=0,
                circuit_open=True,
            )

        url = f"{self.base_url}{path}"
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        attempts = _RETRY_MAX + 1 if retry else 1
        last_error = "Unknown error"
        last_status: int | None = None
        timed_out = False
        started = time.perf_counter()

        for attempt in range(attempts):
            timed_out = False
            kwargs: dict[str, Any] = {"headers": headers, "timeout": timeout, "auth": self._auth}
            if json_body is not None:
                kwargs["json"] = json_body
            if params:
                kwargs["params"] = params
            try:
                t0 = time.perf_counter()
                resp = self.session.request(method, url, **kwargs)
                duration_ms = int((time.perf_counter() - t0) * 1000)
                last_status = resp.status_code

                if resp.ok:
                    self._record_success(scope)
                    try:
                        data = resp.json() if resp.content else {}
                    except ValueError:
                        data = {}
                    return GatewayResult(
                        ok=True,
                        status_code=resp.status_code,
                        data=data,
                        error=None,
                        duration_ms=duration_ms,
                    )

                last_error = f"HTTP {resp.status_code}: {resp.text[:500]}"
                logger.warning(
                    "Ticket store request failed attempt=%d/%d status=%d %s %s",
                    attempt + 1, attempts, resp.status_code, method, path,
                )
                if resp.status_code >= 500 or resp.status_code == 429:
                    self._record_failure(scope)
                if resp.status_code in _NO_RETRY_STATUSES:
                    break

            except requests.Timeout:
                timed_out = True
                last_status = None
                last_error = f"Request timed out after {timeout}s"
                self._record_failure(scope)
                logger.warning(
                    "Ticket store request timed out attempt=%d/%d %s %s",
                    attempt + 1, attempts, method, path,
                )

            except requests.RequestException as exc:
                last_status = None
                last_error = str(exc)[:500]
                self._record_failure(scope)
                logger.warning(
                    "Ticket store network error attempt=%d/%d %s %s error=%s",
                    attempt + 1, attempts, method, path, last_error,
                )

            # Sleep before retry (except after last attempt)
            if attempt < attempts - 1:
                sleep_s = _RETRY_BACKOFF_SECONDS[min(attempt, len(_RETRY_BACKOFF_SECONDS) - 1)]
                logger.info("Retrying ticket store request in %ss (attempt %d)", sleep_s, attempt + 2)
                time.sleep(sleep_s)

        return GatewayResult(
            ok=False,
            status_code=last_status,
            data=None,
            error=last_error,
            duration_ms=int((time.perf_counter() - started) * 1000),
            timed_out=timed_out,
        )

    # ── Field translation ─────────────────────────────────────────────────────

    def _to_logical(self, raw_fields: dict) -> dict:
        logical = {}
        for name, field_id in self.field_ids.items():
            if field_id in raw_fields:
                logical[name] = _unwrap(raw_fields[field_id])
        return logical

    def _to_raw(self, logical_fields: dict) -> dict:
        raw = {}
        for name, value in logical_fields.items():
            field_id = self.field_ids.get(name)
            if field_id is None:
                raise KeyError(f"No ticket field configured for {name!r}")
            raw[field_id] = value
        return raw

    def _normalise_issue(self, issue: dict) -> dict:
        raw = issue.get("fields") or {}
        reporter = raw.get("reporter") or {}
        return {
            "key": issue.get("key"),
            "summary": raw.get("summary"),
            "status": _unwrap(raw.get("status")),
            "updated": raw.get("updated"),
            "created": raw.get("created"),
            "reporter_email": reporter.get("emailAddress"),
            "fields": self._to_logical(raw),
        }

    # ── Ticket store operations ───────────────────────────────────────────────

    def get_issue(self, request_key: str) -> GatewayResult:
        """GET one issue and return it normalised.

        Returns:
            GatewayResult.data = {key, summary, status, updated, created,
                                  reporter_email, fields: {logical: value}}
        """
        result = self.request("GET", f"{_API}/issue/{request_key}")
        if result.ok:
            result.data = self._normalise_issue(result.data or {})
        return result

    def get_status(self, request_key: str) -> GatewayResult:
        """GatewayResult.data = status label (str)."""
        result = self.get_issue(request_key)
        if result.ok:
            result.data = result.data["status"]
        return result

    def get_fields(self, request_key: str) -> GatewayResult:
        """GatewayResult.data = logical field map plus ``updated``."""
        result = self.get_issue(request_key)
        if result.ok:
            fields = dict(result.data["fields"])
            fields["updated"] = result.data["updated"]
            result.data = fields
        return result

    def execute_transition(self, request_key: str, transition_id: str) -> GatewayResult:
        """POST a workflow transition. Sent once, never retried."""
        logger.info(
            "Executing transition %s on %s", transition_id, request_key,
            extra={"request_key": request_key, "transition_id": transition_id},
        )
        return self.request(
            "POST", f"{_API}/issue/{request_key}/transitions",
            json_body={"transition": {"id": str(transition_id)}},
            retry=False,
        )

    def update_fields(self, request_key: str, fields: dict) -> GatewayResult:
        """PUT logical field values back onto the issue (idempotent, retried)."""
        return self.request(
            "PUT", f"{_API}/issue/{request_key}",
            json_body={"fields": self._to_raw(fields)},
        )

    def search_issues(self, jql: str, *, max_results: int = 50, start_at: int = 0) -> GatewayResult:
        """Run a JQL search.

        Returns:
            GatewayResult.data = {"total": int, "issues": list[normalised issue]}
        """
        result = self.request(
            "GET", f"{_API}/search",
            params={"jql": jql, "maxResults": max_results, "startAt": start_at},
        )
        if result.ok:
            body = result.data or {}
            result.data = {
                "total": body.get("total", 0),
                "issues": [self._normalise_issue(i) for i in body.get("issues", [])],
            }
        return result


# Module-level singleton - import this instance in services.
# In tests, override via:
#   from procurement_desk.integrations import ticket_gateway as gw_module
#   patch.object(gw_module.ticket_gateway, "get_issue", return_value=...)
ticket_gateway = JiraGateway()
