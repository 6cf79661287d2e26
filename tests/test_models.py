"""
Unit tests for the model catalog and token budgets.
"""

import pytest

from ai_chat_guard.core.models import (
    DEFAULT_CONTEXT_WINDOW,
    MODEL_CATALOG,
    ModelProfile,
    build_model_info,
    build_token_budget,
)


class TestModelCatalog:
    """Test context window lookup."""

    @pytest.mark.parametrize("model,window", [
        ("gpt-3.5-turbo", 4096),
        ("gpt-3.5-turbo-16k", 16384),
        ("gpt-4", 8192),
        ("gpt-4-32k", 32768),
        ("gpt-4-turbo", 128000),
        ("claude-3-sonnet", 200000),
        ("claude-3-opus", 200000),
    ])
    def test_known_models(self, model, window):
        assert MODEL_CATALOG.context_window(model) == window
        assert MODEL_CATALOG.is_known(model)

    def test_unknown_model_uses_default(self):
        """Unknown models fall back instead of failing."""
        assert MODEL_CATALOG.context_window("local-llama") == DEFAULT_CONTEXT_WINDOW
        assert not MODEL_CATALOG.is_known("local-llama")

    def test_profile_validation(self):
        with pytest.raises(ValueError, match="context_window must be > 0"):
            ModelProfile(context_window=0)


class TestBudgets:
    """Test derived model info and budgets."""

    def test_model_info(self):
        info = build_model_info("gpt-4", max_tokens=1000)
        assert info.name == "gpt-4"
        assert info.max_tokens == 1000
        assert info.context_window == 8192
        assert info.supports_streaming

    def test_token_budget(self):
        budget = build_token_budget("gpt-4-turbo", max_tokens=2048)
        assert budget.max_tokens == 2048
        assert budget.context_window == 128000
