"""Docket error taxonomy: typed failures for config loading and provider calls.

Two propagation regimes share these types:
  - Configuration loading swallows ConfigValidationError / VersionIncompatible
    (they only gate whether a document is trusted)
  - Provider chat calls surface every ApiError to the caller, one code per
    failure kind so the UI can explain it or switch providers

Dependency: stdlib only.
"""

from __future__ import annotations

from typing import Any, List, Tuple


# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------
REQUEST_TIMEOUT = "REQUEST_TIMEOUT"
NETWORK_ERROR = "NETWORK_ERROR"
API_ERROR = "API_ERROR"
INVALID_ENDPOINT = "INVALID_ENDPOINT"
MISSING_ENDPOINT = "MISSING_ENDPOINT"
INVALID_RESPONSE = "INVALID_RESPONSE"
EMPTY_RESPONSE = "EMPTY_RESPONSE"
UNSUPPORTED_PROVIDER = "UNSUPPORTED_PROVIDER"
INVALID_REQUEST = "INVALID_REQUEST"


# ---------------------------------------------------------------------------
# Provider-call errors
# ---------------------------------------------------------------------------
class ApiError(Exception):
    """Normalized failure of an outbound provider (or refresh) request."""

    def __init__(self, code: str, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        """Serialize for JSON responses and logs."""
        out = {"code": self.code, "message": self.message}
        if self.details is not None:
            out["details"] = self.details
        return out

    def __repr__(self) -> str:
        return f"ApiError({self.code!r}, {self.message!r})"


class InvalidEndpoint(ApiError):
    """Raised by the endpoint validator; never retried."""

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(INVALID_ENDPOINT, message, details)


def create_api_error(code: str, message: str, details: Any = None) -> ApiError:
    """Build an ApiError, picking the dedicated subclass where one exists."""
    if code == INVALID_ENDPOINT:
        return InvalidEndpoint(message, details)
    return ApiError(code, message, details)


# ---------------------------------------------------------------------------
# Configuration errors (never escape the loader)
# ---------------------------------------------------------------------------
class ConfigValidationError(ValueError):
    """Raised when a configuration document fails schema validation."""

    def __init__(self, message: str, issues: List[Tuple[str, str]] | None = None) -> None:
        super().__init__(message)
        self.issues = list(issues or [])


class VersionIncompatible(ValueError):
    """Raised when a remote document requires a newer application version."""

    def __init__(self, min_app_version: str, app_version: str) -> None:
        super().__init__(
            f"document requires app >= {min_app_version} (running {app_version})"
        )
        self.min_app_version = min_app_version
        self.app_version = app_version
