"""
Shared data types for the chat pipeline.

Messages, editor context snapshots, responses, actions and the results
produced by token-budget optimization.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Type, Union


class MessageRole(Enum):
    """Author of a chat message."""
    USER = "user"
    ASSISTANT = "assistant"


class SpecPhase(Enum):
    """Phase of a project spec, ordered by progression."""
    REQUIREMENTS = "requirements"
    DESIGN = "design"
    TASKS = "tasks"


@dataclass(frozen=True)
class GitInfo:
    """Git state of the workspace."""
    branch: str
    has_changes: bool
    recent_commits: Optional[List[str]] = None


@dataclass(frozen=True)
class SpecInfo:
    """Active project spec, if any."""
    current_spec: Optional[str] = None
    phase: Optional[SpecPhase] = None
    context: Optional[str] = None


@dataclass(frozen=True)
class ChatContext:
    """Editor context snapshot attached to a user message.

    Captured once when the message is created and never mutated afterward.
    """
    active_file: Optional[str] = None
    selected_text: Optional[str] = None
    workspace_files: Optional[List[str]] = None
    git_status: Optional[GitInfo] = None
    spec_context: Optional[SpecInfo] = None

    def merged_with(self, explicit: Optional["ChatContext"]) -> "ChatContext":
        """Overlay explicitly supplied fields on top of this (gathered) context."""
        if explicit is None:
            return self
        overrides = {
            name: getattr(explicit, name)
            for name in self.__dataclass_fields__
            if getattr(explicit, name) is not None
        }
        return replace(self, **overrides)

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in self.__dataclass_fields__)


@dataclass(frozen=True)
class MessageMetadata:
    """Optional metadata attached to a message after generation."""
    token_count: Optional[int] = None
    processing_time_ms: Optional[int] = None
    model: Optional[str] = None
    truncated: bool = False


@dataclass(frozen=True)
class ChatMessage:
    """A single chat message.

    Immutable once appended to history; metadata attachment yields a copy.
    """
    id: str
    role: MessageRole
    content: str
    timestamp: datetime
    context: Optional[ChatContext] = None
    metadata: Optional[MessageMetadata] = None

    def with_metadata(self, metadata: MessageMetadata) -> "ChatMessage":
        """Return a copy of this message carrying ``metadata``."""
        return replace(self, metadata=metadata)


class ErrorType(Enum):
    """Classification of a failed request."""
    NETWORK = "network"
    AUTH = "auth"
    VALIDATION = "validation"
    SYSTEM = "system"


@dataclass(frozen=True)
class ErrorInfo:
    """Error details carried by an error response."""
    type: ErrorType
    message: str
    code: Optional[str] = None
    retryable: bool = False


class ChatActionType(Enum):
    """Kinds of follow-up actions derived from a response."""
    CREATE_FILE = "create_file"
    MODIFY_FILE = "modify_file"
    RUN_COMMAND = "run_command"
    CREATE_SPEC = "create_spec"


@dataclass(frozen=True)
class CreateFilePayload:
    content: str
    language: str


@dataclass(frozen=True)
class ModifyFilePayload:
    path: str
    content: str


@dataclass(frozen=True)
class RunCommandPayload:
    command: str


@dataclass(frozen=True)
class CreateSpecPayload:
    pass


ActionPayload = Union[CreateFilePayload, ModifyFilePayload, RunCommandPayload, CreateSpecPayload]

_PAYLOAD_TYPES: Dict[ChatActionType, Type] = {
    ChatActionType.CREATE_FILE: CreateFilePayload,
    ChatActionType.MODIFY_FILE: ModifyFilePayload,
    ChatActionType.RUN_COMMAND: RunCommandPayload,
    ChatActionType.CREATE_SPEC: CreateSpecPayload,
}


@dataclass(frozen=True)
class ChatAction:
    """Structured action discriminated by ``type``.

    Each action type has exactly one payload shape.
    """
    type: ChatActionType
    payload: ActionPayload
    description: str

    def __post_init__(self):
        """Validate the payload matches the action type."""
        expected = _PAYLOAD_TYPES[self.type]
        if not isinstance(self.payload, expected):
            raise ValueError(
                f"{self.type.value} action requires {expected.__name__}, "
                f"got {type(self.payload).__name__}"
            )


@dataclass(frozen=True)
class ChatResponse:
    """Result of one pipeline invocation. Always carries a message."""
    message: ChatMessage
    suggestions: Optional[List[str]] = None
    actions: Optional[List[ChatAction]] = None
    error: Optional[ErrorInfo] = None


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a validation or safety check."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TokenBudget:
    """Token limits for a model: completion cap and total context window."""
    max_tokens: int
    context_window: int

    def __post_init__(self):
        """Validate budget values are positive."""
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        if self.context_window <= 0:
            raise ValueError("context_window must be > 0")


@dataclass(frozen=True)
class OptimizationResult:
    """Result of fitting a prompt and its context into a token target."""
    optimized_prompt: str
    optimized_context: str
    removed_content: List[str] = field(default_factory=list)
    tokens_saved: int = 0


@dataclass(frozen=True)
class TokenOptimization:
    """Combined prompt, context and history optimization."""
    optimized_prompt: str
    optimized_context: str
    optimized_history: List[ChatMessage]
    original_tokens: int
    optimized_tokens: int

    @property
    def tokens_saved(self) -> int:
        return self.original_tokens - self.optimized_tokens


@dataclass(frozen=True)
class TokenLimitReport:
    """Issues found when checking a request against the token budget."""
    is_valid: bool
    total_tokens: int
    issues: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
