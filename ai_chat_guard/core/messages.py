"""
Message construction and serialization.

Builds user/assistant messages and converts them to and from
JSON-compatible dictionaries for persistence.
"""

import time
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from .errors import SerializationError
from .types import (
    ChatContext,
    ChatMessage,
    GitInfo,
    MessageMetadata,
    MessageRole,
    SpecInfo,
    SpecPhase,
)


def generate_message_id() -> str:
    """Generate a unique, time-prefixed message id."""
    return f"msg_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def create_user_message(content: str, context: Optional[ChatContext] = None) -> ChatMessage:
    return ChatMessage(
        id=generate_message_id(),
        role=MessageRole.USER,
        content=content,
        timestamp=datetime.now(),
        context=context,
    )


def create_assistant_message(
    content: str,
    metadata: Optional[MessageMetadata] = None
) -> ChatMessage:
    return ChatMessage(
        id=generate_message_id(),
        role=MessageRole.ASSISTANT,
        content=content,
        timestamp=datetime.now(),
        metadata=metadata,
    )


def serialize_message(message: ChatMessage) -> Dict[str, Any]:
    """Convert a message to a JSON-compatible dictionary.

    Args:
        message: Message to serialize

    Returns:
        Dictionary with ISO-formatted timestamp and nested context/metadata
    """
    data: Dict[str, Any] = {
        "id": message.id,
        "role": message.role.value,
        "content": message.content,
        "timestamp": message.timestamp.isoformat(),
    }
    if message.context is not None:
        data["context"] = _serialize_context(message.context)
    if message.metadata is not None:
        data["metadata"] = {
            "token_count": message.metadata.token_count,
            "processing_time_ms": message.metadata.processing_time_ms,
            "model": message.metadata.model,
            "truncated": message.metadata.truncated,
        }
    return data


def deserialize_message(data: Dict[str, Any]) -> ChatMessage:
    """Rebuild a message from its serialized form.

    Args:
        data: Dictionary produced by serialize_message

    Returns:
        Reconstructed ChatMessage

    Raises:
        SerializationError: If required fields are missing or malformed
    """
    if not isinstance(data, dict):
        raise SerializationError("Serialized message must be an object")
    try:
        role = MessageRole(data["role"])
        timestamp = datetime.fromisoformat(data["timestamp"])
        content = data["content"]
        message_id = data["id"]
    except KeyError as e:
        raise SerializationError(f"Serialized message missing field: {e.args[0]}") from e
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Malformed serialized message: {e}") from e

    if not isinstance(content, str):
        raise SerializationError("Serialized message content must be a string")

    context = data.get("context")
    metadata = data.get("metadata")
    if metadata and not isinstance(metadata, dict):
        raise SerializationError("Serialized metadata must be an object")
    return ChatMessage(
        id=str(message_id),
        role=role,
        content=content,
        timestamp=timestamp,
        context=_deserialize_context(context) if context else None,
        metadata=MessageMetadata(
            token_count=metadata.get("token_count"),
            processing_time_ms=metadata.get("processing_time_ms"),
            model=metadata.get("model"),
            truncated=bool(metadata.get("truncated", False)),
        ) if metadata else None,
    )


def serialize_messages(messages: List[ChatMessage]) -> List[Dict[str, Any]]:
    return [serialize_message(message) for message in messages]


def deserialize_messages(data: List[Dict[str, Any]]) -> List[ChatMessage]:
    if not isinstance(data, list):
        raise SerializationError("Serialized messages must be a list")
    return [deserialize_message(item) for item in data]


def _serialize_context(context: ChatContext) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "active_file": context.active_file,
        "selected_text": context.selected_text,
        "workspace_files": list(context.workspace_files) if context.workspace_files is not None else None,
    }
    if context.git_status is not None:
        data["git_status"] = {
            "branch": context.git_status.branch,
            "has_changes": context.git_status.has_changes,
            "recent_commits": context.git_status.recent_commits,
        }
    if context.spec_context is not None:
        spec = context.spec_context
        data["spec_context"] = {
            "current_spec": spec.current_spec,
            "phase": spec.phase.value if spec.phase else None,
            "context": spec.context,
        }
    return data


def _deserialize_context(data: Dict[str, Any]) -> ChatContext:
    if not isinstance(data, dict):
        raise SerializationError("Serialized context must be an object")
    git = data.get("git_status")
    spec = data.get("spec_context")
    try:
        return ChatContext(
            active_file=data.get("active_file"),
            selected_text=data.get("selected_text"),
            workspace_files=data.get("workspace_files"),
            git_status=GitInfo(
                branch=git["branch"],
                has_changes=bool(git["has_changes"]),
                recent_commits=git.get("recent_commits"),
            ) if git else None,
            spec_context=SpecInfo(
                current_spec=spec.get("current_spec"),
                phase=SpecPhase(spec["phase"]) if spec.get("phase") else None,
                context=spec.get("context"),
            ) if spec else None,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise SerializationError(f"Malformed serialized context: {e}") from e
