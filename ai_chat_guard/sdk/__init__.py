"""
SDK for AI Chat Guard.

Provides the streaming client for OpenAI-compatible chat endpoints.
"""

from .llm_client import LLMClient

__all__ = ["LLMClient"]
