"""
Minimal JSON-over-HTTP client shared by the order catalog and the
finalization gateway.

Every failure comes back as a TransportFailure: connection problems with
status_code=None, HTTP errors with the status code and the backend's
message. 400, 409 and 422 are marked rejected: the backend answered and said no.
"""
import json
import logging
import urllib.error
import urllib.request
from typing import Any, Optional

from .errors import TransportFailure

logger = logging.getLogger(__name__)

USER_AGENT = "Receiving-Intake/1.0"
REJECTION_STATUSES = {400, 409, 422}


class JsonHttpClient:
    """Issues tenant-scoped JSON requests against the backend base URL."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: int = 30,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def get(self, path: str, tenant_id: str) -> Any:
        return self.request("GET", path, tenant_id)

    def post(self, path: str, tenant_id: str, body: bytes) -> Any:
        return self.request("POST", path, tenant_id, body)

    def request(
        self,
        method: str,
        path: str,
        tenant_id: str,
        body: Optional[bytes] = None,
    ) -> Any:
        """Send the request and return the decoded JSON body (None if empty)."""
        url = f"{self.base_url}{path}"
        req = urllib.request.Request(url, data=body, method=method.upper())
        req.add_header("Accept", "application/json")
        req.add_header("User-Agent", USER_AGENT)
        req.add_header("X-Tenant-ID", tenant_id)
        if body is not None:
            req.add_header("Content-Type", "application/json; charset=utf-8")
        if self.token:
            req.add_header("Authorization", f"Bearer {self.token}")

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                status_code = response.getcode()
                raw = response.read().decode("utf-8", errors="replace")
                logger.debug("%s %s → HTTP %d (%d bytes)", method, url, status_code, len(raw))
        except urllib.error.HTTPError as e:
            resp_body = e.read().decode("utf-8", errors="replace") if e.fp else ""
            message = _error_message(resp_body) or f"HTTP {e.code} {e.reason}"
            logger.error("%s %s failed: HTTP %d - %s", method, url, e.code, message)
            raise TransportFailure(
                message, status_code=e.code, rejected=e.code in REJECTION_STATUSES
            ) from e
        except (urllib.error.URLError, OSError) as e:
            reason = getattr(e, "reason", e)
            logger.error("%s %s unreachable: %s", method, url, reason)
            raise TransportFailure(f"Backend unreachable: {reason}") from e

        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("%s %s returned invalid JSON: %s", method, url, raw[:200])
            raise TransportFailure(f"Invalid JSON from backend: {e}") from e


def _error_message(body: str) -> Optional[str]:
    """Pull the human-readable message out of a {error, message} body."""
    if not body:
        return None
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return body[:500]
    if isinstance(data, dict):
        return data.get("message") or data.get("error") or None
    return None
