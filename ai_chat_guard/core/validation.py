"""
Structural validation of messages and editor context.

Checks shape and size limits only; content safety is the SafetyValidator's job.
"""

import re
from datetime import datetime
from typing import List

from .errors import ValidationError
from .types import ChatContext, ChatMessage, GitInfo, MessageRole, SpecInfo, SpecPhase, ValidationResult

MAX_CONTENT_LENGTH = 50000
LONG_CONTENT_LENGTH = 10000
MAX_ID_LENGTH = 100
MAX_FILE_PATH_LENGTH = 500
MAX_SELECTED_TEXT_LENGTH = 10000
MAX_WORKSPACE_FILES = 1000
MAX_RECENT_COMMITS = 50

_SUSPICIOUS_PATTERNS = [
    re.compile(r"rm\s+-rf\s+/"),
    re.compile(r"sudo\s+"),
    re.compile(r"eval\s*\("),
    re.compile(r"exec\s*\("),
    re.compile(r"<script[^>]*>"),
]


def validate_message_content(content: str) -> ValidationResult:
    """Validate raw message text before a message is created.

    Args:
        content: Text typed by the user

    Returns:
        ValidationResult; empty/whitespace or oversized content is invalid,
        suspicious command patterns produce a warning
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not isinstance(content, str) or not content:
        return ValidationResult(is_valid=False, errors=["Content must be a non-empty string"])

    trimmed = content.strip()
    if not trimmed:
        errors.append("Content cannot be empty or only whitespace")
    if len(trimmed) > MAX_CONTENT_LENGTH:
        errors.append(f"Content cannot exceed {MAX_CONTENT_LENGTH} characters")

    if any(pattern.search(content) for pattern in _SUSPICIOUS_PATTERNS):
        warnings.append("Content contains patterns that may need review")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def require_valid_content(content: str) -> ValidationResult:
    """Like validate_message_content, but raise on invalid content.

    Raises:
        ValidationError: If the content is rejected
    """
    result = validate_message_content(content)
    if not result.is_valid:
        raise ValidationError("; ".join(result.errors), code="invalid_content")
    return result


def validate_chat_message(message: ChatMessage) -> ValidationResult:
    errors: List[str] = []
    warnings: List[str] = []

    if not message.id or not isinstance(message.id, str):
        errors.append("Message ID is required and must be a string")
    elif len(message.id) > MAX_ID_LENGTH:
        errors.append(f"Message ID cannot exceed {MAX_ID_LENGTH} characters")

    if not isinstance(message.role, MessageRole):
        errors.append('Message role must be either "user" or "assistant"')

    if not isinstance(message.content, str):
        errors.append("Message content is required and must be a string")
    else:
        length = len(message.content.strip())
        if length == 0:
            errors.append("Message content cannot be empty")
        elif length > MAX_CONTENT_LENGTH:
            errors.append(f"Message content cannot exceed {MAX_CONTENT_LENGTH} characters")
        elif length > LONG_CONTENT_LENGTH:
            warnings.append("Message content is very long and may affect performance")

    if not isinstance(message.timestamp, datetime):
        errors.append("Message timestamp is required and must be a datetime")
    elif message.timestamp.tzinfo is None and message.timestamp > datetime.now():
        warnings.append("Message timestamp is in the future")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def validate_chat_context(context: ChatContext) -> ValidationResult:
    """Validate a caller-supplied context snapshot.

    Args:
        context: Context to check

    Returns:
        ValidationResult with errors for malformed fields and warnings for
        fields large enough to hurt performance
    """
    errors: List[str] = []
    warnings: List[str] = []

    if context.active_file is not None:
        if not isinstance(context.active_file, str):
            errors.append("active_file must be a string")
        elif len(context.active_file) > MAX_FILE_PATH_LENGTH:
            errors.append(f"active_file path cannot exceed {MAX_FILE_PATH_LENGTH} characters")

    if context.selected_text is not None:
        if not isinstance(context.selected_text, str):
            errors.append("selected_text must be a string")
        elif len(context.selected_text) > MAX_SELECTED_TEXT_LENGTH:
            warnings.append(
                f"selected_text is very long ({len(context.selected_text)} chars) "
                "and may be truncated"
            )

    if context.workspace_files is not None:
        if not isinstance(context.workspace_files, (list, tuple)):
            errors.append("workspace_files must be a list")
        else:
            if len(context.workspace_files) > MAX_WORKSPACE_FILES:
                warnings.append(
                    f"workspace_files contains {len(context.workspace_files)} files, "
                    "which may impact performance"
                )
            invalid = [
                path for path in context.workspace_files
                if not isinstance(path, str) or len(path) > MAX_FILE_PATH_LENGTH
            ]
            if invalid:
                errors.append(f"workspace_files contains {len(invalid)} invalid file paths")

    if context.git_status is not None:
        _validate_git_info(context.git_status, errors, warnings)

    if context.spec_context is not None:
        _validate_spec_info(context.spec_context, errors)

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def _validate_git_info(git: GitInfo, errors: List[str], warnings: List[str]) -> None:
    if not isinstance(git.branch, str) or not git.branch.strip():
        errors.append("Git branch name is required and must be a non-empty string")
    if not isinstance(git.has_changes, bool):
        errors.append("Git has_changes must be a boolean")
    if git.recent_commits is not None:
        if not isinstance(git.recent_commits, (list, tuple)):
            errors.append("recent_commits must be a list")
        elif len(git.recent_commits) > MAX_RECENT_COMMITS:
            warnings.append("Large number of recent commits may impact performance")


def _validate_spec_info(spec: SpecInfo, errors: List[str]) -> None:
    if spec.current_spec is not None and not isinstance(spec.current_spec, str):
        errors.append("current_spec must be a string")
    if spec.phase is not None and not isinstance(spec.phase, SpecPhase):
        valid = ", ".join(phase.value for phase in SpecPhase)
        errors.append(f"phase must be one of: {valid}")
    if spec.context is not None and not isinstance(spec.context, str):
        errors.append("spec context must be a string")
