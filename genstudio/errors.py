"""Provider-agnostic error taxonomy.

Every failure that crosses a provider adapter boundary is one of these.
Each error carries a stable ``code`` that ends up on the failed
GenerationRecord so the UI can show provider-specific guidance.
"""

from __future__ import annotations

QUOTA_MARKERS = ("quota", "resource_exhausted", "insufficient balance", "billing")


class GenerationError(Exception):
    """Base exception for all generation errors."""

    code = "UNKNOWN_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        provider: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        if code:
            self.code = code

    def __str__(self) -> str:
        return self.message


class AuthenticationError(GenerationError):
    """Credentials missing, invalid or rejected. Never retried."""

    code = "AUTH_ERROR"


class TransientServiceError(GenerationError):
    """Provider temporarily unavailable or the call timed out. Safe to retry."""

    code = "SERVICE_UNAVAILABLE"


class ValidationError(GenerationError):
    """A required input is missing or malformed; raised before submission."""

    code = "INVALID_REQUEST"

    def __init__(self, message: str, *, field: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field


class GenerationFailedError(GenerationError):
    """The provider reported a terminal failure for the job."""

    code = "GENERATION_FAILED"


class UnknownProviderError(GenerationError):
    """Anything else; the provider's own message is preserved."""

    code = "UNKNOWN_ERROR"


class GenerationTimeoutError(GenerationError):
    """The job never reached a terminal state within the poll budget."""

    code = "TIMEOUT"


class StorageError(GenerationError):
    """A file could not be written to or read from the uploads directory."""

    code = "STORAGE_ERROR"


def is_quota_message(message: str | None) -> bool:
    if not message:
        return False
    lowered = message.lower()
    return any(marker in lowered for marker in QUOTA_MARKERS)


def quota_hint(message: str) -> str:
    """Append a billing hint to quota errors."""
    return f"{message} (quota exceeded: check the provider account billing and limits)"
