"""Docket timed HTTP client: request issuance with timeout and cleanup.

Every call opens its own requests.Session and closes it before returning,
so a timed-out or failed request never leaves a pooled connection behind.
The timeout is one budget for the whole call: the body is streamed and a
watchdog shuts the socket down once the budget is spent, so a server that
stalls or trickles its body cannot hold the caller past the deadline.
Network failures are normalized into ApiError codes:
  - budget spent / requests.Timeout / read timeout -> REQUEST_TIMEOUT
  - other RequestException                         -> NETWORK_ERROR
HTTP status codes are NOT treated as errors here; callers decide.
"""

from __future__ import annotations

import json
import logging
import socket
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import requests
from urllib3.exceptions import ReadTimeoutError

from errors import NETWORK_ERROR, REQUEST_TIMEOUT, ApiError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 60.0
USER_AGENT = "Docket/1.0"
CHUNK_SIZE = 8192


@dataclass
class HttpResult:
    """Fully-read HTTP response detached from its (closed) connection."""

    status_code: int
    text: str
    headers: Dict[str, str] = field(default_factory=dict)
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        """Decode the body as JSON (raises ValueError when it is not)."""
        return json.loads(self.text)


def _redact_url(url: str) -> str:
    """Drop the query string so embedded credentials never reach logs."""
    return url.split("?", 1)[0]


def _abort(resp: requests.Response, expired: threading.Event) -> None:
    """Watchdog body: mark the budget spent and unblock any pending read."""
    expired.set()
    conn = getattr(resp.raw, "connection", None)
    sock = getattr(conn, "sock", None)
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass  # already closed by the peer


def _is_read_timeout(exc: requests.RequestException) -> bool:
    # requests re-raises a body read timeout as ConnectionError(ReadTimeoutError)
    return any(isinstance(arg, ReadTimeoutError) for arg in exc.args)


def _read_body(resp: requests.Response, deadline: float) -> Tuple[bytes, bool]:
    """Stream the body until done or until the deadline passes.

    Returns (body, expired).
    """
    expired = threading.Event()
    watchdog = threading.Timer(max(deadline - time.monotonic(), 0.0), _abort, (resp, expired))
    watchdog.daemon = True
    watchdog.start()
    chunks = []
    try:
        for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
            if expired.is_set():
                return b"", True
            chunks.append(chunk)
    except requests.RequestException:
        if expired.is_set():
            return b"", True
        raise
    finally:
        watchdog.cancel()
    if expired.is_set():
        # the shutdown may surface as a clean but truncated end of body
        return b"", True
    return b"".join(chunks), False


def _timeout_error(method: str, safe_url: str, timeout_s: float) -> ApiError:
    logger.warning("%s %s timed out after %ss", method, safe_url, timeout_s)
    return ApiError(
        REQUEST_TIMEOUT,
        f"Request timed out after {int(timeout_s * 1000)}ms",
        {"url": safe_url, "timeout": timeout_s},
    )


def _issue(method: str, url: str, *, timeout_s: float, **kwargs: Any) -> HttpResult:
    """Send one request on a private session and read the whole body."""
    safe_url = _redact_url(url)
    deadline = time.monotonic() + timeout_s
    with requests.Session() as session:
        try:
            resp = session.request(method, url, timeout=timeout_s, stream=True, **kwargs)
            try:
                body, expired = _read_body(resp, deadline)
                if expired:
                    raise _timeout_error(method, safe_url, timeout_s)
                result = HttpResult(
                    status_code=resp.status_code,
                    text=body.decode(resp.encoding or "utf-8", errors="replace"),
                    headers=dict(resp.headers or {}),
                    url=safe_url,
                )
            finally:
                resp.close()
        except requests.Timeout as exc:
            raise _timeout_error(method, safe_url, timeout_s) from exc
        except requests.RequestException as exc:
            if _is_read_timeout(exc):
                raise _timeout_error(method, safe_url, timeout_s) from exc
            logger.warning("%s %s failed: %s", method, safe_url, exc.__class__.__name__)
            raise ApiError(
                NETWORK_ERROR,
                f"Network error talking to {safe_url}: {exc.__class__.__name__}",
                {"url": safe_url},
            ) from exc
    logger.debug("%s %s -> HTTP %s", method, safe_url, result.status_code)
    return result


def post_json(
    url: str,
    body: Any,
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout_s: float = DEFAULT_TIMEOUT_S,
) -> HttpResult:
    """POST a JSON body and return the fully-read response."""
    send_headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}
    send_headers.update(headers or {})
    return _issue("POST", url, timeout_s=timeout_s, json=body, headers=send_headers)


def get_text(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout_s: float = DEFAULT_TIMEOUT_S,
) -> HttpResult:
    """GET a structured-text document (YAML/JSON) and return the response."""
    send_headers = {"User-Agent": USER_AGENT}
    send_headers.update(headers or {})
    return _issue("GET", url, timeout_s=timeout_s, headers=send_headers)
