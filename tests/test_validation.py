"""
Unit tests for structural validation of messages and context.
"""

from datetime import datetime, timedelta

import pytest

from ai_chat_guard.core.errors import ValidationError
from ai_chat_guard.core.types import ChatContext, ChatMessage, GitInfo, MessageRole, SpecInfo
from ai_chat_guard.core.validation import (
    MAX_CONTENT_LENGTH,
    require_valid_content,
    validate_chat_context,
    validate_chat_message,
    validate_message_content,
)


class TestValidateMessageContent:
    """Test raw content checks."""

    def test_valid_content(self):
        result = validate_message_content("How do I write a test?")
        assert result.is_valid
        assert result.warnings == []

    @pytest.mark.parametrize("content,error", [
        ("", "Content must be a non-empty string"),
        (None, "Content must be a non-empty string"),
        ("   \n\t", "Content cannot be empty or only whitespace"),
        ("x" * (MAX_CONTENT_LENGTH + 1), f"Content cannot exceed {MAX_CONTENT_LENGTH} characters"),
    ])
    def test_invalid_content(self, content, error):
        result = validate_message_content(content)
        assert not result.is_valid
        assert result.errors == [error]

    def test_suspicious_content_warns(self):
        result = validate_message_content("what does sudo do?")
        assert result.is_valid
        assert result.warnings == ["Content contains patterns that may need review"]

    def test_require_valid_content_raises(self):
        with pytest.raises(ValidationError) as exc_info:
            require_valid_content("   ")
        assert exc_info.value.code == "invalid_content"


class TestValidateChatMessage:
    """Test message shape checks."""

    def make_message(self, **overrides):
        values = dict(
            id="msg_1",
            role=MessageRole.USER,
            content="hello",
            timestamp=datetime.now() - timedelta(seconds=1),
        )
        values.update(overrides)
        return ChatMessage(**values)

    def test_valid_message(self):
        result = validate_chat_message(self.make_message())
        assert result.is_valid
        assert result.warnings == []

    def test_invalid_fields(self):
        result = validate_chat_message(self.make_message(
            id="", role="system", content="  ", timestamp="now"
        ))
        assert not result.is_valid
        assert len(result.errors) == 4

    def test_long_content_warns(self):
        result = validate_chat_message(self.make_message(content="x" * 20000))
        assert result.is_valid
        assert result.warnings == ["Message content is very long and may affect performance"]

    def test_future_timestamp_warns(self):
        result = validate_chat_message(self.make_message(timestamp=datetime.now() + timedelta(days=1)))
        assert result.is_valid
        assert result.warnings == ["Message timestamp is in the future"]


class TestValidateChatContext:
    """Test context snapshot checks."""

    def test_empty_context(self):
        assert validate_chat_context(ChatContext()).is_valid

    def test_long_path_rejected(self):
        result = validate_chat_context(ChatContext(active_file="x" * 501))
        assert result.errors == ["active_file path cannot exceed 500 characters"]

    def test_large_fields_warn(self):
        result = validate_chat_context(ChatContext(
            selected_text="x" * 10001,
            workspace_files=[f"f{i}.py" for i in range(1001)],
            git_status=GitInfo(branch="main", has_changes=False, recent_commits=["c"] * 51),
        ))
        assert result.is_valid
        assert len(result.warnings) == 3

    def test_invalid_workspace_paths(self):
        result = validate_chat_context(ChatContext(workspace_files=["ok.py", 42, "y" * 600]))
        assert result.errors == ["workspace_files contains 2 invalid file paths"]

    def test_invalid_git_and_spec(self):
        result = validate_chat_context(ChatContext(
            git_status=GitInfo(branch=" ", has_changes="yes"),
            spec_context=SpecInfo(phase="launch"),
        ))
        assert not result.is_valid
        assert "Git branch name is required and must be a non-empty string" in result.errors
        assert "Git has_changes must be a boolean" in result.errors
        assert "phase must be one of: requirements, design, tasks" in result.errors
