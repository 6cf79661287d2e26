"""
Conversation ledger.

Holds the current conversation and persists conversations through a
StorageAdapter. Messages are append-only; trimming drops the oldest.
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Dict, List, Optional

from ai_chat_guard.core.errors import SerializationError
from ai_chat_guard.core.interfaces import StorageAdapter
from ai_chat_guard.core.messages import generate_message_id
from ai_chat_guard.core.types import ChatMessage, MessageRole

from .db import DEFAULT_DB_PATH
from .models import ConversationState, default_conversation_title, generate_conversation_id
from .repository import delete_entry, initialize_schema, list_entry_keys, load_entry, save_entry

LOGGER = logging.getLogger(__name__)

KEY_PREFIX = "conversation_"


class InMemoryStorageAdapter:
    """Dictionary-backed adapter. Nothing survives the process."""

    def __init__(self):
        self.entries: Dict[str, str] = {}

    async def save(self, key: str, data: str) -> None:
        self.entries[key] = data

    async def load(self, key: str) -> Optional[str]:
        return self.entries.get(key)

    async def delete(self, key: str) -> None:
        self.entries.pop(key, None)

    async def list_keys(self, prefix: str = "") -> List[str]:
        return [key for key in self.entries if key.startswith(prefix)]


class SQLiteStorageAdapter:
    """SQLite key/value adapter.

    Repository calls are blocking, so each one runs in a worker thread.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, initialize: bool = True):
        self.db_path = db_path
        if initialize:
            initialize_schema(db_path)

    async def save(self, key: str, data: str) -> None:
        await asyncio.to_thread(save_entry, key, data, self.db_path)

    async def load(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(load_entry, key, self.db_path)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(delete_entry, key, self.db_path)

    async def list_keys(self, prefix: str = "") -> List[str]:
        return await asyncio.to_thread(list_entry_keys, prefix, self.db_path)


class ConversationLedger:
    """Append-only message store for the current conversation.

    Failures from the storage adapter propagate to the caller.
    """

    def __init__(
        self,
        storage: Optional[StorageAdapter] = None,
        auto_save: bool = True,
        max_history_length: int = 50
    ):
        if max_history_length < 1:
            raise ValueError("max_history_length must be >= 1")
        self.storage = storage if storage is not None else InMemoryStorageAdapter()
        self.auto_save = auto_save
        self.max_history_length = max_history_length
        self.current: Optional[ConversationState] = None

    @staticmethod
    def storage_key(conversation_id: str) -> str:
        return f"{KEY_PREFIX}{conversation_id}"

    async def create_new_conversation(self, title: Optional[str] = None) -> ConversationState:
        conversation = ConversationState(
            id=generate_conversation_id(),
            title=title or default_conversation_title(),
        )
        self.current = conversation
        await self.save_conversation(conversation)
        LOGGER.debug("Created conversation %s", conversation.id)
        return conversation

    async def load_conversation(self, conversation_id: str) -> Optional[ConversationState]:
        """Load a conversation and make it current.

        Args:
            conversation_id: Id of the conversation to load

        Returns:
            The conversation, or None if nothing is stored under that id

        Raises:
            SerializationError: If the stored data is malformed
        """
        data = await self.storage.load(self.storage_key(conversation_id))
        if data is None:
            return None

        conversation = _parse_conversation(data, conversation_id)
        self.current = conversation
        return conversation

    async def save_conversation(self, conversation: Optional[ConversationState] = None) -> None:
        """Persist ``conversation`` (defaults to the current one).

        Raises:
            ValueError: If there is nothing to save
        """
        conversation = conversation or self.current
        if conversation is None:
            raise ValueError("No conversation to save")
        await self.storage.save(
            self.storage_key(conversation.id),
            json.dumps(conversation.to_dict())
        )

    async def persist(self) -> None:
        if self.current is not None:
            await self.save_conversation(self.current)

    async def delete_conversation(self, conversation_id: str) -> None:
        await self.storage.delete(self.storage_key(conversation_id))
        if self.current is not None and self.current.id == conversation_id:
            self.current = None

    async def list_conversations(self) -> List[ConversationState]:
        """All stored conversations, most recently modified first.

        Entries that fail to parse are logged and skipped.
        """
        conversations = []
        for key in await self.storage.list_keys(KEY_PREFIX):
            data = await self.storage.load(key)
            if data is None:
                continue
            try:
                conversations.append(_parse_conversation(data, key[len(KEY_PREFIX):]))
            except SerializationError as e:
                LOGGER.warning("Skipping unreadable conversation %s: %s", key, e.message)

        conversations.sort(key=lambda conversation: conversation.last_modified, reverse=True)
        return conversations

    async def append(self, message: ChatMessage) -> None:
        """Append a message to the current conversation.

        A conversation is created first if none is active.
        """
        if self.current is None:
            await self.create_new_conversation()

        conversation = self.current
        conversation.messages.append(message)
        conversation.last_modified = datetime.now()
        conversation.message_count = len(conversation.messages)
        if message.metadata is not None and message.metadata.token_count:
            conversation.total_tokens += message.metadata.token_count

        if self.auto_save:
            await self.save_conversation(conversation)

    def list(self) -> List[ChatMessage]:
        if self.current is None:
            return []
        return list(self.current.messages)

    async def clear(self) -> None:
        if self.current is None:
            return
        self.current.messages = []
        self.current.last_modified = datetime.now()
        self.current.message_count = 0
        self.current.total_tokens = 0
        if self.auto_save:
            await self.save_conversation(self.current)

    async def trim(self, max_length: Optional[int] = None) -> None:
        """Keep only the most recent ``max_length`` messages."""
        if self.current is None:
            return

        limit = self.max_history_length if max_length is None else max_length
        if limit < 0:
            raise ValueError("max_length must be >= 0")
        messages = self.current.messages
        if len(messages) <= limit:
            return

        removed = len(messages) - limit
        kept = messages[removed:]
        self.current.messages = kept
        self.current.last_modified = datetime.now()
        self.current.message_count = len(kept)
        self.current.total_tokens = sum(
            message.metadata.token_count
            for message in kept
            if message.metadata is not None and message.metadata.token_count
        )
        LOGGER.info("Trimmed %d messages from conversation history", removed)

        await self.save_conversation(self.current)

    async def export_conversation(self, conversation_id: Optional[str] = None) -> str:
        """Export a conversation as JSON text.

        Args:
            conversation_id: Conversation to export (defaults to the current one)

        Returns:
            JSON with title, timestamps, message count and role/content/timestamp
            per message

        Raises:
            ValueError: If the conversation does not exist
        """
        if conversation_id:
            conversation = await self.load_conversation(conversation_id)
        else:
            conversation = self.current
        if conversation is None:
            raise ValueError("Conversation not found")

        return json.dumps({
            "title": conversation.title,
            "created_at": conversation.created_at.isoformat(),
            "last_modified": conversation.last_modified.isoformat(),
            "message_count": conversation.message_count,
            "messages": [
                {
                    "role": message.role.value,
                    "content": message.content,
                    "timestamp": message.timestamp.isoformat(),
                }
                for message in conversation.messages
            ],
        }, indent=2)

    async def import_conversation(self, data: str, title: Optional[str] = None) -> ConversationState:
        """Store exported JSON as a new conversation.

        Imported messages get fresh ids. The current conversation is unchanged.

        Raises:
            SerializationError: If the data is not a valid export
        """
        try:
            payload = json.loads(data)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Invalid conversation data: {e}") from e

        if not isinstance(payload, dict) or not isinstance(payload.get("messages"), list):
            raise SerializationError("Invalid conversation data: missing messages")

        messages = []
        for index, item in enumerate(payload["messages"]):
            try:
                content = item["content"]
                if not isinstance(content, str):
                    raise TypeError("content must be a string")
                messages.append(ChatMessage(
                    id=generate_message_id(),
                    role=MessageRole(item["role"]),
                    content=content,
                    timestamp=datetime.fromisoformat(item["timestamp"]),
                ))
            except (KeyError, TypeError, ValueError) as e:
                raise SerializationError(f"Invalid message at index {index}: {e}") from e

        now = datetime.now()
        conversation = ConversationState(
            id=generate_conversation_id(),
            title=title or payload.get("title") or "Imported Conversation",
            messages=messages,
            created_at=now,
            last_modified=now,
            message_count=len(messages),
        )
        await self.save_conversation(conversation)
        return conversation


def _parse_conversation(data: str, conversation_id: str) -> ConversationState:
    try:
        payload = json.loads(data)
    except ValueError as e:
        raise SerializationError(f"Conversation {conversation_id} is not valid JSON: {e}") from e
    return ConversationState.from_dict(payload)
