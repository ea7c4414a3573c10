"""
Error taxonomy for the console core.

- AuthenticationError: bad credentials or role mismatch at login
- AuthorizationError: 403 from the backend, or a local capability-gate denial
- SessionExpiredError: 401 received mid-session
- TransitionError / BulkTransitionError: status-update failures
- ApiError: any other collaborator failure

None of these clear the session except SessionExpiredError.
"""

from __future__ import annotations

from typing import Any


class RentdeskError(Exception):
    """Base class for all console-core errors."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class ApiError(RentdeskError):
    """Raised when the backend answers with a failure status or envelope."""

    def __init__(
        self,
        status_code: int,
        message: str,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class AuthenticationError(RentdeskError):
    """Login rejected: bad credentials, role mismatch, or login already pending."""


class AuthorizationError(RentdeskError):
    """Authenticated but not allowed."""

    def __init__(
        self,
        message: str = "Access denied. Insufficient permissions.",
        capability: str | None = None,
    ) -> None:
        super().__init__(message)
        self.capability = capability


class SessionExpiredError(RentdeskError):
    """A 401 arrived on an authenticated call; the session has been reset."""

    def __init__(self, message: str = "Session expired. Please log in again.") -> None:
        super().__init__(message)


class TransitionError(RentdeskError):
    """A single status transition failed."""

    def __init__(
        self,
        entity: str,
        entity_id: str,
        target: str,
        message: str,
    ) -> None:
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id
        self.target = target


class BulkTransitionError(RentdeskError):
    """
    Aggregate failure of a bulk transition.

    Only counts are carried. Which items failed is deliberately not reported,
    and items that succeeded are not rolled back.
    """

    def __init__(self, entity: str, target: str, requested: int, failed: int) -> None:
        super().__init__(f"Failed to update {failed} of {requested} {entity} item(s) to {target}")
        self.entity = entity
        self.target = target
        self.requested = requested
        self.failed = failed


def extract_error_message(source: Any, fallback: str = "An error occurred") -> str:
    """
    Pull a human-readable message out of whatever the collaborator produced.

    Handles:
      • response envelopes ({"success": false, "message": "..."})
      • RentdeskError instances (their .message)
      • generic exceptions (their first arg)
    Falls back to `fallback` when nothing usable is found.
    """
    if isinstance(source, dict):
        message = source.get("message")
        if isinstance(message, str) and message.strip():
            return message
        return fallback

    if isinstance(source, RentdeskError):
        return source.message or fallback

    if isinstance(source, BaseException):
        if source.args and isinstance(source.args[0], str) and source.args[0].strip():
            return source.args[0]
        return fallback

    if isinstance(source, str) and source.strip():
        return source

    return fallback
