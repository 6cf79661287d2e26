"""
Message processing pipeline.

Wires admission control, validation, context gathering, token budgeting,
streamed generation with retry, sanitization, persistence and
post-processing into a single ``send_message`` call.

Processing Order:
1. Validate content (and caller context)
2. Safety check - blocked requests never reach the generator
3. Create the user message with gathered + caller context
4. Append the user message to the ledger
5. Build the context string
6. Optimize prompt, context and history for the token budget
7. Generate with retry, accumulating streamed fragments
8. Sanitize and attach metadata
9. Append the assistant message and trim history
10. Derive suggestions and actions

Every failure resolves to an error response; ``send_message`` never raises.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional

from ai_chat_guard.config.loader import ChatSettings
from ai_chat_guard.storage.ledger import ConversationLedger
from ai_chat_guard.storage.models import ConversationState

from .errors import AuthError, ChatError, ValidationError, is_retryable
from .gate import RequestGate
from .interfaces import ContextProvider, SafetyValidator, StreamGenerator
from .messages import create_assistant_message, create_user_message
from .models import DEFAULT_MAX_TOKENS, build_token_budget
from .postprocess import ResponsePostProcessor
from .responses import error_response, error_response_from
from .retry import RetryCoordinator, SleepFunction
from .safety import SafetyFilter
from .token_budget import TokenBudgetOptimizer, estimate_tokens
from .types import ChatContext, ChatMessage, ChatResponse, ErrorType, MessageMetadata, TokenBudget
from .validation import require_valid_content, validate_chat_context

LOGGER = logging.getLogger(__name__)

PERSONA_LINES = [
    "You are an AI assistant integrated into the developer's editor.",
    "You help developers with code generation, debugging, explanations, and project planning.",
]
RECENT_CONVERSATION_MESSAGES = 5
RECENT_MESSAGE_PREVIEW = 200


@dataclass(frozen=True)
class ChatRequest:
    text: str
    context: Optional[ChatContext] = None


class ChatPipeline:
    """Single-flight chat orchestration over pluggable collaborators."""

    def __init__(
        self,
        generator: StreamGenerator,
        settings: Optional[ChatSettings] = None,
        safety: Optional[SafetyValidator] = None,
        context_provider: Optional[ContextProvider] = None,
        ledger: Optional[ConversationLedger] = None,
        budget: Optional[TokenBudget] = None,
        sleep: Optional[SleepFunction] = None
    ):
        """Initialize the pipeline.

        Args:
            generator: Stream generator producing response fragments
            settings: Chat behavior settings (defaults apply if omitted)
            safety: Request/response safety validator (SafetyFilter if omitted)
            context_provider: Source of editor/project context (none if omitted)
            ledger: Conversation store (in-memory if omitted)
            budget: Token budget (derived from the model catalog if omitted)
            sleep: Awaitable sleep used for retry backoff
        """
        self.settings = settings or ChatSettings()
        self.generator = generator
        self.safety = safety or SafetyFilter()
        self.context_provider = context_provider
        self.ledger = ledger or ConversationLedger(
            max_history_length=self.settings.max_history_length
        )
        self.model_name = self.settings.model_name or getattr(generator, "model", "unknown")
        self.budget = budget or build_token_budget(
            self.model_name, getattr(generator, "max_tokens", DEFAULT_MAX_TOKENS)
        )
        self.optimizer = TokenBudgetOptimizer(self.budget)
        self.retry = RetryCoordinator(
            attempts=self.settings.retry_attempts,
            base_delay=self.settings.retry_delay,
            sleep=sleep,
        )
        self.gate = RequestGate()
        self.postprocessor = ResponsePostProcessor()

    @property
    def is_processing(self) -> bool:
        return self.gate.is_processing

    async def send_message(self, text: str, context: Optional[ChatContext] = None) -> ChatResponse:
        """Process one user message.

        Args:
            text: User message
            context: Caller-supplied context; its fields win over gathered ones

        Returns:
            ChatResponse with the assistant message, or an error response
        """
        return await self.gate.submit(self._handle, ChatRequest(text=text, context=context))

    async def _handle(self, request: ChatRequest) -> ChatResponse:
        try:
            return await self._process(request)
        except ChatError as e:
            LOGGER.warning("Message processing failed: %s", e.message)
            return error_response_from(e)
        except Exception as e:
            LOGGER.exception("Unexpected failure while processing message")
            return error_response(str(e) or type(e).__name__, ErrorType.SYSTEM)

    async def _process(self, request: ChatRequest) -> ChatResponse:
        # 1. Content and caller context
        content_check = require_valid_content(request.text)
        for warning in content_check.warnings:
            LOGGER.warning("Message content: %s", warning)

        if request.context is not None:
            context_check = validate_chat_context(request.context)
            if not context_check.is_valid:
                raise ValidationError(
                    f"Invalid context: {', '.join(context_check.errors)}",
                    code="invalid_context",
                )
            for warning in context_check.warnings:
                LOGGER.warning("Message context: %s", warning)

        # 2. Safety
        if self.settings.enable_safety_filter:
            verdict = self.safety.validate_request(request.text)
            if not verdict.is_valid:
                raise ValidationError(
                    f"Message blocked: {', '.join(verdict.errors)}",
                    code="blocked",
                )
            for warning in verdict.warnings:
                LOGGER.warning("Safety: %s", warning)

        # 3-4. User message
        context = await self._gather_context(request.context)
        user_message = create_user_message(request.text, context)
        await self.ledger.append(user_message)

        # 5. Context string
        history = self.ledger.list()
        window = self.optimizer.optimize_conversation_history(history)
        recent = window[:-1][-RECENT_CONVERSATION_MESSAGES:]
        context_text = await self._build_context_string(user_message, recent)

        # 6. Token budget
        optimization = self.optimizer.optimize(user_message.content, context_text, history)
        report = self.optimizer.validate_token_limits(
            optimization.optimized_prompt,
            optimization.optimized_context,
            optimization.optimized_history,
        )
        for issue in report.issues:
            LOGGER.warning("Token limits: %s", issue)
        if optimization.tokens_saved > 0:
            LOGGER.debug("Token optimization saved %d tokens", optimization.tokens_saved)

        # 7. Generation
        started = time.monotonic()
        content = await self._generate_with_retry(
            optimization.optimized_prompt, optimization.optimized_context
        )
        processing_time_ms = int((time.monotonic() - started) * 1000)

        # 8. Sanitize and attach metadata
        if self.settings.enable_safety_filter:
            content = self.safety.sanitize_response(content)
        assistant_message = create_assistant_message(content, MessageMetadata(
            token_count=estimate_tokens(content),
            processing_time_ms=processing_time_ms,
            model=self.model_name,
        ))

        # 9. Persist
        await self.ledger.append(assistant_message)
        await self.ledger.trim(self.settings.max_history_length)

        # 10. Suggestions and actions
        suggestions, actions = self.postprocessor.process(assistant_message.content)
        return ChatResponse(message=assistant_message, suggestions=suggestions, actions=actions)

    async def _gather_context(self, explicit: Optional[ChatContext]) -> Optional[ChatContext]:
        if not self.settings.enable_context_gathering or self.context_provider is None:
            return explicit

        try:
            gathered = await self.context_provider.get_current_context()
        except Exception as e:
            LOGGER.warning("Failed to gather context: %s", e)
            return explicit

        merged = gathered.merged_with(explicit)
        return None if merged.is_empty else merged

    async def _build_context_string(self, message: ChatMessage, recent: List[ChatMessage]) -> str:
        sections = list(PERSONA_LINES) + [""]

        context = message.context
        if context is not None:
            if context.active_file:
                sections.append(f"**Active File:** {context.active_file}")
            if context.selected_text:
                sections.extend(["**Selected Text:**", "```", context.selected_text, "```", ""])
            if context.git_status is not None:
                changes = "Yes" if context.git_status.has_changes else "No"
                sections.append(
                    f"**Git Status:** Branch: {context.git_status.branch}, Changes: {changes}"
                )

        if self.context_provider is not None:
            try:
                relevant = await self.context_provider.get_relevant_context(message.content)
            except Exception as e:
                LOGGER.debug("Could not gather project context: %s", e)
                relevant = ""
            if relevant and relevant.strip():
                sections.extend(["**Project Context:**", relevant, ""])

        if recent:
            sections.append("**Recent Conversation:**")
            for previous in recent:
                preview = previous.content[:RECENT_MESSAGE_PREVIEW]
                if len(previous.content) > RECENT_MESSAGE_PREVIEW:
                    preview += "..."
                sections.append(f"{previous.role.value}: {preview}")
            sections.append("")

        return "\n".join(sections)

    async def _generate_with_retry(self, prompt: str, context: str) -> str:
        async def attempt() -> str:
            fragments = []
            async for fragment in self.generator.generate(prompt, context):
                fragments.append(fragment)
            return "".join(fragments)

        try:
            return await self.retry.run(attempt, retryable=is_retryable)
        except AuthError:
            raise
        except ChatError as e:
            raise ChatError(
                f"LLM generation failed: {e.message}",
                code=e.code,
                status_code=e.status_code,
            ) from e
        except Exception as e:
            raise ChatError(f"LLM generation failed: {e}") from e

    def get_history(self) -> List[ChatMessage]:
        return self.ledger.list()

    def get_last_messages(self, count: int) -> List[ChatMessage]:
        if count <= 0:
            return []
        return self.ledger.list()[-count:]

    async def add_message(self, message: ChatMessage) -> None:
        await self.ledger.append(message)

    async def clear_history(self) -> None:
        await self.ledger.clear()

    async def create_new_conversation(self, title: Optional[str] = None) -> ConversationState:
        return await self.ledger.create_new_conversation(title)

    async def load_conversation(self, conversation_id: str) -> Optional[ConversationState]:
        return await self.ledger.load_conversation(conversation_id)

    async def save_current_conversation(self) -> None:
        await self.ledger.persist()

    async def list_conversations(self) -> List[ConversationState]:
        return await self.ledger.list_conversations()

    async def export_conversation(self, conversation_id: Optional[str] = None) -> str:
        return await self.ledger.export_conversation(conversation_id)

    async def import_conversation(self, data: str, title: Optional[str] = None) -> ConversationState:
        return await self.ledger.import_conversation(data, title)
