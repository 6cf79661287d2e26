"""
Token budget optimization.

Estimates token cost of text and messages, and trims context and
conversation history so a request fits the model's budget.

Token counts are an approximation (four characters per token), not a real
tokenizer. The estimate depends only on text length, so optimization is
reproducible for identical inputs.

Reduction Order (optimize_prompt):
1. Truncate context from its start, keeping the tail
2. Strip comment lines
3. Collapse blank-line runs and repeated horizontal whitespace
4. Strip import declarations
"""

import logging
import math
import re
from dataclasses import replace
from typing import List, Optional

from .types import (
    ChatMessage,
    MessageMetadata,
    OptimizationResult,
    TokenBudget,
    TokenLimitReport,
    TokenOptimization,
)

LOGGER = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
MESSAGE_OVERHEAD_TOKENS = 4  # role + content wrapper
HISTORY_WINDOW_RATIO = 0.7  # share of the context window given to history
TRUNCATION_OVERHEAD_TOKENS = 10
MIN_TRUNCATED_CONTENT_TOKENS = 20
TRUNCATION_MARKER = "... [truncated]"

_COMMENT_LINE = re.compile(r"^[ \t]*(?:#|//).*$", re.MULTILINE)
_BLANK_LINE_RUN = re.compile(r"\n\s*\n\s*\n")
_HORIZONTAL_WHITESPACE = re.compile(r"[ \t]+")
_IMPORT_LINE = re.compile(
    r"^[ \t]*(?:import[ \t].*|from[ \t]+[\w.]+[ \t]+import[ \t].*)$",
    re.MULTILINE
)


def estimate_tokens(text: str) -> int:
    """Approximate token count: ceil(len(text) / 4), 0 for empty text."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class TokenBudgetOptimizer:
    """Fits prompt, context and history into a TokenBudget."""

    def __init__(self, budget: TokenBudget):
        self.budget = budget

    def estimate_tokens(self, text: str) -> int:
        return estimate_tokens(text)

    def calculate_message_tokens(self, message: ChatMessage) -> int:
        """Estimate the cost of a message including its context snapshot.

        Args:
            message: Message to measure

        Returns:
            Structural overhead + content tokens + context field tokens
        """
        tokens = MESSAGE_OVERHEAD_TOKENS + estimate_tokens(message.content)

        context = message.context
        if context is not None:
            if context.active_file:
                tokens += estimate_tokens(context.active_file)
            if context.selected_text:
                tokens += estimate_tokens(context.selected_text)
            if context.workspace_files:
                tokens += sum(estimate_tokens(path) for path in context.workspace_files)

        return tokens

    def optimize_prompt(
        self,
        prompt: str,
        context: str,
        target_tokens: Optional[int] = None
    ) -> OptimizationResult:
        """Reduce context until prompt + context fits ``target_tokens``.

        Strategies are applied in order and only while tokens are still owed.
        The prompt itself is never modified.

        Args:
            prompt: User prompt (kept verbatim)
            context: Context text to reduce
            target_tokens: Token target (defaults to the budget's max_tokens)

        Returns:
            OptimizationResult with the reduced context, a description of each
            removal, and the number of tokens saved
        """
        target = self.budget.max_tokens if target_tokens is None else target_tokens
        current_tokens = estimate_tokens(prompt + context)

        if current_tokens <= target:
            return OptimizationResult(optimized_prompt=prompt, optimized_context=context)

        removed: List[str] = []
        optimized = context

        def tokens_owed() -> int:
            return estimate_tokens(prompt + optimized) - target

        # 1. Keep the tail of the context, dropping what is owed from its start
        owed = tokens_owed()
        context_tokens = estimate_tokens(optimized)
        if context_tokens > owed:
            keep_chars = (context_tokens - owed) * CHARS_PER_TOKEN
            truncated = optimized[-keep_chars:] if keep_chars < len(optimized) else optimized
            if len(truncated) < len(optimized):
                removed.append(
                    f"Truncated {len(optimized) - len(truncated)} characters from context"
                )
                optimized = truncated

        # 2. Comment lines
        if tokens_owed() > 0:
            comments = _COMMENT_LINE.findall(optimized)
            if comments:
                optimized = _COMMENT_LINE.sub("", optimized)
                removed.append(f"Removed {len(comments)} comment lines")

        # 3. Whitespace
        if tokens_owed() > 0:
            before = len(optimized)
            optimized = _BLANK_LINE_RUN.sub("\n\n", optimized)
            optimized = _HORIZONTAL_WHITESPACE.sub(" ", optimized)
            if len(optimized) != before:
                removed.append(f"Compressed whitespace ({before - len(optimized)} characters)")

        # 4. Import declarations
        if tokens_owed() > 0:
            imports = _IMPORT_LINE.findall(optimized)
            if imports:
                optimized = _IMPORT_LINE.sub("", optimized)
                removed.append(f"Removed {len(imports)} import statements")

        tokens_saved = current_tokens - estimate_tokens(prompt + optimized)
        if tokens_owed() > 0:
            LOGGER.debug(
                "Context reduction exhausted with %d tokens still over target %d",
                tokens_owed(), target
            )

        return OptimizationResult(
            optimized_prompt=prompt,
            optimized_context=optimized,
            removed_content=removed,
            tokens_saved=tokens_saved,
        )

    def optimize_conversation_history(
        self,
        messages: List[ChatMessage],
        max_history_tokens: Optional[int] = None
    ) -> List[ChatMessage]:
        """Select the most recent messages that fit the history budget.

        The last message is always kept in full. Older messages are added
        newest first while they fit; the first one that overflows may be kept
        as a truncated copy, and everything older is dropped.

        Args:
            messages: Conversation in chronological order
            max_history_tokens: History budget (defaults to 70% of the window)

        Returns:
            Kept messages in their original order
        """
        if not messages:
            return []

        if max_history_tokens is None:
            max_tokens = math.floor(self.budget.context_window * HISTORY_WINDOW_RATIO)
        else:
            max_tokens = max_history_tokens

        last_message = messages[-1]
        total = self.calculate_message_tokens(last_message)
        kept = [last_message]

        for message in reversed(messages[:-1]):
            message_tokens = self.calculate_message_tokens(message)
            if total + message_tokens <= max_tokens:
                total += message_tokens
                kept.append(message)
                continue

            truncated = self._truncate_message(message, max_tokens - total)
            if truncated is not None:
                kept.append(truncated)
            break

        kept.reverse()
        if len(kept) < len(messages):
            LOGGER.debug(
                "History window kept %d of %d messages (%d token budget)",
                len(kept), len(messages), max_tokens
            )
        return kept

    def validate_token_limits(
        self,
        prompt: str,
        context: str,
        history: List[ChatMessage]
    ) -> TokenLimitReport:
        """Check a request against the context window and completion budget.

        Args:
            prompt: User prompt
            context: Context text
            history: Conversation history sent alongside

        Returns:
            TokenLimitReport pairing each issue with a suggestion
        """
        issues: List[str] = []
        suggestions: List[str] = []

        prompt_tokens = estimate_tokens(prompt)
        context_tokens = estimate_tokens(context)
        history_tokens = sum(self.calculate_message_tokens(message) for message in history)
        total_tokens = prompt_tokens + context_tokens + history_tokens

        if total_tokens > self.budget.context_window:
            issues.append(
                f"Total tokens ({total_tokens}) exceed context window ({self.budget.context_window})"
            )
            suggestions.append("Consider reducing conversation history or context length")

        available_for_completion = self.budget.context_window - total_tokens
        if available_for_completion < self.budget.max_tokens * 0.1:
            issues.append("Very little space left for LLM response")
            suggestions.append("Reduce input length to allow for meaningful response")

        if prompt_tokens > self.budget.max_tokens * 0.5:
            issues.append("Prompt is very long")
            suggestions.append("Consider breaking down the request into smaller parts")

        if context_tokens > self.budget.context_window * 0.3:
            issues.append("Context is very large")
            suggestions.append("Consider reducing workspace context or selected text")

        return TokenLimitReport(
            is_valid=not issues,
            total_tokens=total_tokens,
            issues=issues,
            suggestions=suggestions,
        )

    def optimize(
        self,
        prompt: str,
        context: str,
        history: List[ChatMessage]
    ) -> TokenOptimization:
        """Optimize history, then prompt + context, and report the savings."""
        optimized_history = self.optimize_conversation_history(history)
        optimization = self.optimize_prompt(prompt, context)

        original_tokens = estimate_tokens(prompt + context) + sum(
            self.calculate_message_tokens(message) for message in history
        )
        optimized_tokens = estimate_tokens(
            optimization.optimized_prompt + optimization.optimized_context
        ) + sum(self.calculate_message_tokens(message) for message in optimized_history)

        return TokenOptimization(
            optimized_prompt=optimization.optimized_prompt,
            optimized_context=optimization.optimized_context,
            optimized_history=optimized_history,
            original_tokens=original_tokens,
            optimized_tokens=optimized_tokens,
        )

    def _truncate_message(
        self,
        message: ChatMessage,
        available_tokens: int
    ) -> Optional[ChatMessage]:
        """Cut a message down to ``available_tokens``, or None if not worth it.

        The copy keeps the original id, drops its context snapshot and is
        marked ``metadata.truncated``.
        """
        content_tokens = available_tokens - TRUNCATION_OVERHEAD_TOKENS
        if content_tokens < MIN_TRUNCATED_CONTENT_TOKENS:
            return None

        max_length = content_tokens * CHARS_PER_TOKEN
        content = message.content
        if len(content) > max_length:
            content = content[:max_length - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER

        metadata = replace(message.metadata or MessageMetadata(), truncated=True)
        return replace(message, content=content, context=None, metadata=metadata)
