"""
Error taxonomy for DB Distribution.

Every error raised by the service layer is a ``ServiceError`` carrying a
stable code and an HTTP status. The API translates them 1:1 into
``{"error": {"code", "message", "details"}}`` responses.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Base class for errors surfaced to API callers.

    Attributes:
        status_code: HTTP status the error maps to
        code: Stable error code for programmatic handling
        message: Human-readable error description
        details: Optional structured detail (e.g. offending field)
    """

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"error": error}


class Unauthenticated(ServiceError):
    """Missing or invalid bearer token."""

    status_code = 401
    code = "UNAUTHENTICATED"


class Forbidden(ServiceError):
    """Authenticated, but the role or ownership does not allow the action."""

    status_code = 403
    code = "FORBIDDEN"


class NotFound(ServiceError):
    status_code = 404
    code = "NOT_FOUND"


class InvalidInput(ServiceError):
    """The request was malformed."""

    status_code = 400
    code = "INVALID_INPUT"


class Conflict(ServiceError):
    """The request was well-formed but is not applicable to the current state."""

    status_code = 409
    code = "CONFLICT"


class Unavailable(ServiceError):
    """A dependency (storage, repository, identity provider) is unreachable."""

    status_code = 503
    code = "UNAVAILABLE"
