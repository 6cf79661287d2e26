"""
Model catalog and token budgets.

Maps model identifiers to their context windows. The table is fixed; unknown
models fall back to the default window.
"""

from dataclasses import dataclass
from typing import Dict

from .types import TokenBudget

DEFAULT_CONTEXT_WINDOW = 4096
DEFAULT_MAX_TOKENS = 4096


@dataclass(frozen=True)
class ModelProfile:
    """Static limits for a specific model."""
    context_window: int
    supports_streaming: bool = True

    def __post_init__(self):
        """Validate the context window is positive."""
        if self.context_window <= 0:
            raise ValueError("context_window must be > 0")


@dataclass(frozen=True)
class ModelInfo:
    """Model limits as reported to callers."""
    name: str
    max_tokens: int
    context_window: int
    supports_streaming: bool = True


@dataclass(frozen=True)
class ModelCatalog:
    """Fixed table of known models."""
    profiles: Dict[str, ModelProfile]
    default: ModelProfile = ModelProfile(context_window=DEFAULT_CONTEXT_WINDOW)

    def get_profile(self, model: str) -> ModelProfile:
        """Get the profile for a model.

        Args:
            model: Model identifier

        Returns:
            The model's profile, or the default profile if it is unknown
        """
        return self.profiles.get(model, self.default)

    def context_window(self, model: str) -> int:
        return self.get_profile(model).context_window

    def is_known(self, model: str) -> bool:
        return model in self.profiles


# Fixed table - no dynamic fetching
MODEL_CATALOG = ModelCatalog({
    "gpt-3.5-turbo": ModelProfile(context_window=4096),
    "gpt-3.5-turbo-16k": ModelProfile(context_window=16384),
    "gpt-4": ModelProfile(context_window=8192),
    "gpt-4-32k": ModelProfile(context_window=32768),
    "gpt-4-turbo": ModelProfile(context_window=128000),
    "claude-3-sonnet": ModelProfile(context_window=200000),
    "claude-3-opus": ModelProfile(context_window=200000),
})


def build_model_info(model: str, max_tokens: int = DEFAULT_MAX_TOKENS) -> ModelInfo:
    profile = MODEL_CATALOG.get_profile(model)
    return ModelInfo(
        name=model,
        max_tokens=max_tokens,
        context_window=profile.context_window,
        supports_streaming=profile.supports_streaming,
    )


def build_token_budget(model: str, max_tokens: int = DEFAULT_MAX_TOKENS) -> TokenBudget:
    """Token budget for a model: completion cap plus its context window."""
    return TokenBudget(max_tokens=max_tokens, context_window=MODEL_CATALOG.context_window(model))
