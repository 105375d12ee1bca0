"""Error taxonomy shared by every component.

Each error maps to one HTTP status and renders as ``{"error": message}``.
``ConflictDuplicate`` is normally absorbed by the ingestion path and turned
into a success-shaped response; everything else propagates to the caller.
"""

from typing import Optional

from fastapi import status


class LedgerlineError(Exception):
    """Base class for expected, caller-visible failures."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        """Render as a response body."""
        return {"error": self.message}


class ValidationError(LedgerlineError):
    """Missing or malformed required fields."""

    status_code = status.HTTP_400_BAD_REQUEST


class ScopeError(LedgerlineError):
    """Tenant scope could not be established."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(LedgerlineError):
    """Referenced entity is absent or not visible to the tenant."""

    status_code = status.HTTP_404_NOT_FOUND


class Forbidden(LedgerlineError):
    """Caller is not allowed to act on the entity."""

    status_code = status.HTTP_403_FORBIDDEN


class TenantMismatch(Forbidden):
    """Entity belongs to a different tenant than the one in scope."""


class InvalidState(LedgerlineError):
    """Lifecycle precondition violated."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, current_state: Optional[str] = None):
        super().__init__(message)
        self.current_state = current_state

    def to_payload(self) -> dict:
        payload = super().to_payload()
        if self.current_state is not None:
            payload["state"] = self.current_state
        return payload


class ConflictDuplicate(LedgerlineError):
    """A uniqueness race was lost; the effect has already been applied."""

    status_code = status.HTTP_409_CONFLICT


class UpstreamUnavailable(LedgerlineError):
    """LLM service unreachable or not configured."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str, fallback: Optional[str] = None):
        super().__init__(message)
        self.fallback = fallback

    def to_payload(self) -> dict:
        payload = super().to_payload()
        if self.fallback is not None:
            payload["fallback"] = self.fallback
        return payload
