"""
Error taxonomy for the chat pipeline.

Every failure the pipeline can report maps to one of these exceptions.
Each class carries the ErrorType it surfaces as and whether a retry of the
generation call may succeed.
"""

from typing import Optional

from .types import ErrorType


class ChatError(Exception):
    """Base class for all pipeline errors."""
    error_type: ErrorType = ErrorType.SYSTEM
    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


class ValidationError(ChatError):
    """Raised when a request is rejected by content or safety validation."""
    error_type = ErrorType.VALIDATION


class ConcurrencyError(ChatError):
    """Raised when a request arrives while another one is in flight."""
    error_type = ErrorType.VALIDATION

    def __init__(self, message: str = "Another message is currently being processed"):
        super().__init__(message, code="busy")


class TransientError(ChatError):
    """Network failure, timeout or 5xx-class status. Safe to retry."""
    error_type = ErrorType.NETWORK
    retryable = True


class AuthError(ChatError):
    """401/403-class status. Never retried."""
    error_type = ErrorType.AUTH


class SerializationError(ChatError):
    """Malformed persisted or imported data."""
    error_type = ErrorType.SYSTEM


# Statuses worth retrying besides the 5xx range
_RETRYABLE_STATUSES = {408, 429}


def error_from_status(status_code: int, reason: str = "") -> ChatError:
    """Map a non-success HTTP status to the matching pipeline error.

    Args:
        status_code: HTTP status of the initiating call
        reason: Reason phrase returned by the server

    Returns:
        AuthError, TransientError or a non-retryable ChatError, all
        carrying ``status_code``
    """
    detail = f"HTTP {status_code}: {reason}".rstrip(": ")
    code = f"http_{status_code}"
    if status_code in (401, 403):
        return AuthError(
            f"Authentication failed - please check your API key ({detail})",
            code=code,
            status_code=status_code,
        )
    if status_code == 429:
        return TransientError(
            f"Rate limit exceeded - please try again later ({detail})",
            code=code,
            status_code=status_code,
        )
    if status_code >= 500 or status_code in _RETRYABLE_STATUSES:
        return TransientError(
            f"LLM service is temporarily unavailable ({detail})",
            code=code,
            status_code=status_code,
        )
    return ChatError(detail, code=code, status_code=status_code)


def is_retryable(error: BaseException) -> bool:
    """Decide whether a failed generation attempt should be retried.

    Pipeline errors answer through their ``retryable`` flag; anything
    else (an unexpected failure inside the stream) is treated as transient.
    """
    if isinstance(error, ChatError):
        return error.retryable
    return isinstance(error, Exception)
