"""Error taxonomy for request resolution and roster operations.

APIError subclasses map one-to-one onto HTTP statuses. `message` is safe
to return to the caller; `details` is for server-side logs only.
"""
from __future__ import annotations
from typing import Any, Optional


class APIError(Exception):
    """Structured failure raised while handling an API request.

    Attributes:
        code: Stable machine-readable error code
        status: HTTP status code
        message: Public, human-readable message
        request_id: Request id, if one was assigned before the failure
        endpoint: Endpoint being resolved
        details: Diagnostic key/values that are logged but never returned
    """

    code = "internal"
    status = 500

    def __init__(
        self,
        message: str,
        *,
        request_id: str = "",
        endpoint: str = "",
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.request_id = request_id
        self.endpoint = endpoint
        self.details = dict(details or {})
        super().__init__(message)

    def add(self, key: str, value: Any) -> "APIError":
        """Attach a diagnostic value (chainable)."""
        self.details[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Public error body."""
        return {
            "request-id": self.request_id,
            "endpoint": self.endpoint,
            "code": self.code,
            "message": self.message,
        }

    def log_line(self) -> str:
        """One-line description including private details."""
        detail = ", ".join(f"{key}={value!r}" for key, value in sorted(self.details.items()))
        return (
            f"[{self.code}] endpoint={self.endpoint} request_id={self.request_id} "
            f"message={self.message!r}" + (f" | {detail}" if detail else "")
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, endpoint={self.endpoint!r})"


class BadRequestError(APIError):
    """Malformed or missing input, or a lookup that is safe to report."""

    code = "bad_request"
    status = 400


class UnauthenticatedError(APIError):
    """Identity or credential could not be verified."""

    code = "unauthenticated"
    status = 401


class PermissionDeniedError(APIError):
    """Identity verified but the user's role is too low."""

    code = "permission_denied"
    status = 403

    def __init__(self, message: str, *, required_role=None, **kwargs):
        super().__init__(message, **kwargs)
        self.required_role = required_role
        if required_role is not None:
            self.details.setdefault("required-role", required_role.label())


class InternalError(APIError):
    """Programming or configuration error on the server side."""

    code = "internal"
    status = 500


# ─────────────────────────────────────────────────────────────────────────────
# Roster / sync errors
# ─────────────────────────────────────────────────────────────────────────────

class RosterError(Exception):
    """Base exception for roster and course storage operations."""
    pass


class CourseConfigError(RosterError):
    """A course config file is missing, unreadable, or invalid."""
    pass


class RosterStoreError(RosterError):
    """Loading or saving a roster failed."""
    pass


class SyncError(RosterError):
    """A user sync was aborted; nothing was persisted."""
    pass


class NotificationError(Exception):
    """A notification could not be delivered."""
    pass
