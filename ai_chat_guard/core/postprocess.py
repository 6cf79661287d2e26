"""
Response post-processing.

Derives follow-up suggestions and structured actions from the final response
text. Pure functions of the text: identical input gives identical output.
"""

import re
from typing import List, Tuple

from .types import (
    ChatAction,
    ChatActionType,
    CreateFilePayload,
    CreateSpecPayload,
)

MAX_SUGGESTIONS = 3
MIN_CODE_BLOCK_LENGTH = 50

# (keywords, suggestions) checked in order against the lower-cased text
SUGGESTION_GROUPS: List[Tuple[Tuple[str, ...], Tuple[str, ...]]] = [
    (("code", "function"), (
        "Explain this code",
        "Add error handling",
        "Write tests for this",
    )),
    (("error", "bug"), (
        "How can I debug this?",
        "Show me the stack trace",
        "What are common causes?",
    )),
    (("spec", "requirements"), (
        "Create a new spec",
        "Update the design",
        "Generate tasks",
    )),
]

FALLBACK_SUGGESTIONS = (
    "Can you elaborate?",
    "Show me an example",
    "What are the alternatives?",
)

_CODE_BLOCK = re.compile(r"```(\w+)?\n([\s\S]*?)```")


def generate_suggestions(content: str) -> List[str]:
    """Return up to three follow-up suggestions for a response."""
    lowered = content.lower()
    suggestions: List[str] = []

    for keywords, group in SUGGESTION_GROUPS:
        if any(keyword in lowered for keyword in keywords):
            suggestions.extend(group)

    if len(suggestions) < MAX_SUGGESTIONS:
        suggestions.extend(FALLBACK_SUGGESTIONS)

    return suggestions[:MAX_SUGGESTIONS]


def extract_actions(content: str) -> List[ChatAction]:
    """Extract structured actions, ordered by where they appear in the text.

    Fenced code blocks with a language tag and more than 50 characters of
    code become ``create_file`` actions. Mentioning both "create" and "spec"
    adds a ``create_spec`` action, positioned where both words have appeared.
    """
    positioned: List[Tuple[int, ChatAction]] = []

    for match in _CODE_BLOCK.finditer(content):
        language, code = match.group(1), match.group(2)
        if language and len(code) > MIN_CODE_BLOCK_LENGTH:
            positioned.append((match.start(), ChatAction(
                type=ChatActionType.CREATE_FILE,
                payload=CreateFilePayload(content=code, language=language),
                description=f"Create {language} file with this code",
            )))

    lowered = content.lower()
    create_at = lowered.find("create")
    spec_at = lowered.find("spec")
    if create_at >= 0 and spec_at >= 0:
        positioned.append((max(create_at, spec_at), ChatAction(
            type=ChatActionType.CREATE_SPEC,
            payload=CreateSpecPayload(),
            description="Create a new feature spec",
        )))

    positioned.sort(key=lambda item: item[0])
    return [action for _, action in positioned]


class ResponsePostProcessor:
    """Attaches suggestions and actions to a completed response."""

    def process(self, content: str) -> Tuple[List[str], List[ChatAction]]:
        return generate_suggestions(content), extract_actions(content)
