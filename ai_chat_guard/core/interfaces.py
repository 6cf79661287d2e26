"""
Collaborator interfaces consumed by the chat pipeline.

Any object with matching methods can be plugged in; the package ships default
implementations (SafetyFilter, WorkspaceContextProvider, ConversationLedger,
LLMClient, the storage adapters).
"""

from typing import AsyncIterator, List, Optional, Protocol, runtime_checkable

from .types import ChatContext, ChatMessage, ValidationResult


@runtime_checkable
class SafetyValidator(Protocol):
    def validate_request(self, text: str) -> ValidationResult:
        ...

    def sanitize_response(self, text: str) -> str:
        ...


@runtime_checkable
class ContextProvider(Protocol):
    async def get_current_context(self) -> ChatContext:
        ...

    async def get_relevant_context(self, query: str) -> str:
        ...


@runtime_checkable
class ConversationStore(Protocol):
    """Append-only ordered message store."""

    async def append(self, message: ChatMessage) -> None:
        ...

    def list(self) -> List[ChatMessage]:
        ...

    async def trim(self, max_length: int) -> None:
        ...

    async def persist(self) -> None:
        ...


@runtime_checkable
class StreamGenerator(Protocol):
    """Produces a lazy, finite, non-restartable sequence of text fragments."""

    model: str

    def generate(self, prompt: str, context: Optional[str] = None) -> AsyncIterator[str]:
        ...


@runtime_checkable
class StorageAdapter(Protocol):
    """Async key/value persistence for serialized conversations."""

    async def save(self, key: str, data: str) -> None:
        ...

    async def load(self, key: str) -> Optional[str]:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def list_keys(self, prefix: str = "") -> List[str]:
        ...
