"""
Data models for storage layer.

Defines the persisted conversation record and its JSON-compatible form.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ai_chat_guard.core.errors import SerializationError
from ai_chat_guard.core.messages import deserialize_messages, serialize_messages
from ai_chat_guard.core.types import ChatMessage


def generate_conversation_id() -> str:
    return f"conv_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def default_conversation_title(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"Chat {now.strftime('%Y-%m-%d %H:%M')}"


@dataclass
class ConversationState:
    """A conversation and its running counters.

    Messages are only ever appended or trimmed from the front; counters are
    kept in step by the ledger.
    """
    id: str
    title: str
    messages: List[ChatMessage] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    last_modified: datetime = field(default_factory=datetime.now)
    message_count: int = 0
    total_tokens: int = 0
    active_context: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "messages": serialize_messages(self.messages),
            "created_at": self.created_at.isoformat(),
            "last_modified": self.last_modified.isoformat(),
            "metadata": {
                "message_count": self.message_count,
                "total_tokens": self.total_tokens,
                "active_context": self.active_context,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationState":
        """Rebuild a conversation from its serialized form.

        Args:
            data: Dictionary produced by to_dict

        Returns:
            Reconstructed ConversationState

        Raises:
            SerializationError: If required fields are missing or malformed
        """
        if not isinstance(data, dict):
            raise SerializationError("Serialized conversation must be an object")
        try:
            metadata = data.get("metadata") or {}
            messages = deserialize_messages(data["messages"])
            return cls(
                id=str(data["id"]),
                title=str(data["title"]),
                messages=messages,
                created_at=datetime.fromisoformat(data["created_at"]),
                last_modified=datetime.fromisoformat(data["last_modified"]),
                message_count=int(metadata.get("message_count", len(messages))),
                total_tokens=int(metadata.get("total_tokens", 0)),
                active_context=metadata.get("active_context"),
            )
        except KeyError as e:
            raise SerializationError(f"Serialized conversation missing field: {e.args[0]}") from e
        except (AttributeError, TypeError, ValueError) as e:
            raise SerializationError(f"Malformed serialized conversation: {e}") from e
