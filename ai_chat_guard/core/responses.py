"""
Error response construction.

Turns pipeline errors into apology-style assistant messages so that every
request resolves to a ChatResponse.
"""

from typing import Optional

from .errors import ChatError
from .messages import create_assistant_message
from .types import ChatResponse, ErrorInfo, ErrorType

APOLOGY_PREFIX = "I apologize, but I encountered an error: "


def build_error_info(
    message: str,
    error_type: ErrorType = ErrorType.SYSTEM,
    code: Optional[str] = None
) -> ErrorInfo:
    """Create ErrorInfo; only network and system errors are retryable."""
    return ErrorInfo(
        type=error_type,
        message=message,
        code=code,
        retryable=error_type in (ErrorType.NETWORK, ErrorType.SYSTEM),
    )


def error_response(
    message: str,
    error_type: ErrorType = ErrorType.SYSTEM,
    code: Optional[str] = None
) -> ChatResponse:
    """Wrap an error message into an assistant message and ErrorInfo."""
    return ChatResponse(
        message=create_assistant_message(f"{APOLOGY_PREFIX}{message}"),
        error=build_error_info(message, error_type, code),
    )


def error_response_from(error: ChatError) -> ChatResponse:
    return error_response(error.message, error.error_type, error.code)
