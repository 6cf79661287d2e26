"""
Unit tests for message construction and serialization.
"""

import re
from datetime import datetime

import pytest

from ai_chat_guard.core.errors import SerializationError
from ai_chat_guard.core.messages import (
    create_assistant_message,
    create_user_message,
    deserialize_message,
    deserialize_messages,
    generate_message_id,
    serialize_message,
)
from ai_chat_guard.core.types import (
    ChatContext,
    ChatMessage,
    GitInfo,
    MessageMetadata,
    MessageRole,
    SpecInfo,
    SpecPhase,
)


class TestMessageConstruction:
    """Test message factories."""

    def test_message_id_format(self):
        """Ids are time-prefixed and unique."""
        first = generate_message_id()
        second = generate_message_id()
        assert re.fullmatch(r"msg_\d+_[0-9a-f]{9}", first)
        assert first != second

    def test_user_message(self):
        context = ChatContext(active_file="app.py")
        message = create_user_message("Hi", context)
        assert message.role is MessageRole.USER
        assert message.content == "Hi"
        assert message.context is context
        assert message.metadata is None

    def test_assistant_message(self):
        metadata = MessageMetadata(token_count=3, model="gpt-4")
        message = create_assistant_message("Hello", metadata)
        assert message.role is MessageRole.ASSISTANT
        assert message.metadata == metadata
        assert message.context is None

    def test_with_metadata_returns_copy(self):
        """Messages are immutable; attaching metadata yields a new message."""
        message = create_assistant_message("Hello")
        updated = message.with_metadata(MessageMetadata(token_count=2))
        assert message.metadata is None
        assert updated.metadata.token_count == 2
        assert updated.id == message.id


class TestContextMerge:
    """Test ChatContext helpers."""

    def test_explicit_fields_win(self):
        gathered = ChatContext(active_file="a.py", workspace_files=["a.py", "b.py"])
        merged = gathered.merged_with(ChatContext(active_file="b.py"))
        assert merged.active_file == "b.py"
        assert merged.workspace_files == ["a.py", "b.py"]

    def test_no_explicit_context(self):
        gathered = ChatContext(active_file="a.py")
        assert gathered.merged_with(None) is gathered

    def test_is_empty(self):
        assert ChatContext().is_empty
        assert not ChatContext(selected_text="x").is_empty


class TestSerialization:
    """Test conversion to and from dictionaries."""

    def make_message(self):
        return ChatMessage(
            id="msg_1",
            role=MessageRole.USER,
            content="Explain this",
            timestamp=datetime(2024, 5, 1, 9, 30, 0),
            context=ChatContext(
                active_file="src/app.py",
                selected_text="def main(): pass",
                workspace_files=["src/app.py"],
                git_status=GitInfo(branch="main", has_changes=True, recent_commits=["abc fix"]),
                spec_context=SpecInfo(current_spec="login", phase=SpecPhase.DESIGN),
            ),
            metadata=MessageMetadata(token_count=3, processing_time_ms=12, model="gpt-4"),
        )

    def test_serialized_shape(self):
        data = serialize_message(self.make_message())
        assert data["role"] == "user"
        assert data["timestamp"] == "2024-05-01T09:30:00"
        assert data["context"]["git_status"]["branch"] == "main"
        assert data["context"]["spec_context"]["phase"] == "design"
        assert data["metadata"]["truncated"] is False

    def test_restores_equal_message(self):
        message = self.make_message()
        assert deserialize_message(serialize_message(message)) == message

    def test_minimal_message(self):
        data = {"id": "msg_2", "role": "assistant", "content": "ok", "timestamp": "2024-01-01T00:00:00"}
        message = deserialize_message(data)
        assert message.context is None
        assert message.metadata is None

    @pytest.mark.parametrize("data,match", [
        ({"role": "user", "content": "x", "timestamp": "2024-01-01T00:00:00"}, "missing field: id"),
        ({"id": "m", "role": "system", "content": "x", "timestamp": "2024-01-01T00:00:00"}, "Malformed"),
        ({"id": "m", "role": "user", "content": "x", "timestamp": "yesterday"}, "Malformed"),
        ({"id": "m", "role": "user", "content": 5, "timestamp": "2024-01-01T00:00:00"}, "must be a string"),
        ("not a dict", "must be an object"),
    ])
    def test_malformed_input(self, data, match):
        with pytest.raises(SerializationError, match=match):
            deserialize_message(data)

    def test_malformed_context(self):
        data = serialize_message(self.make_message())
        data["context"]["spec_context"]["phase"] = "launch"
        with pytest.raises(SerializationError, match="Malformed serialized context"):
            deserialize_message(data)

    def test_messages_must_be_list(self):
        with pytest.raises(SerializationError):
            deserialize_messages({"id": "m"})
