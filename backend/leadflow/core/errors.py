"""
Dialer Errors
Exception taxonomy shared by the dialer services and the API layer
"""
from typing import Optional


class DialerError(Exception):
    """Base class for dialer failures that carry a structured reason code."""

    reason: str = "dialer_error"
    status_code: int = 500

    def __init__(self, message: str, reason: Optional[str] = None):
        self.message = message
        if reason:
            self.reason = reason
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.reason, "message": self.message}


class ValidationError(DialerError):
    """Malformed or out-of-range input. Raised before any state change."""

    reason = "validation_error"
    status_code = 400


class NotFoundError(DialerError):
    """Referenced account, lead, call or appointment does not exist."""

    reason = "not_found"
    status_code = 404


class SessionConflictError(DialerError):
    """The requested transition conflicts with the current session status."""

    reason = "session_conflict"
    status_code = 409


class UpstreamProviderError(DialerError):
    """
    Call or payment provider failure.

    Surfaced to the caller as-is; the core never retries provider calls.
    """

    reason = "upstream_provider_error"
    status_code = 502

    def __init__(self, message: str, provider: str, reason: Optional[str] = None):
        self.provider = provider
        super().__init__(message, reason)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["provider"] = self.provider
        return data


class PartialFailure(DialerError):
    """
    A secondary write failed after the primary mutation succeeded.

    Never raised to API callers: services log it and move on.
    """

    reason = "partial_failure"

    def __init__(self, message: str, operation: str):
        self.operation = operation
        super().__init__(message)
