"""
Streaming client for OpenAI-compatible chat endpoints.

Default StreamGenerator: posts to ``{base_url}/chat/completions`` with
``stream: true`` and yields text fragments as they arrive.
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from openai import AsyncOpenAI, OpenAIError

from ..core.errors import TransientError, error_from_status
from ..core.models import DEFAULT_MAX_TOKENS, ModelInfo, build_model_info
from ..core.streaming import iter_stream_fragments

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_TIMEOUT = 30.0
CONNECTION_CHECK_TIMEOUT = 5.0
DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant integrated into the developer's editor."


class LLMClient:
    """Streams completions from an OpenAI-compatible endpoint.

    The HTTP stream is opened inside ``async with``, so the response is
    released exactly once however iteration ends.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """Initialize the client.

        Args:
            api_key: Bearer token for the endpoint (required)
            base_url: API root, without the ``/chat/completions`` suffix
            model: Model identifier sent with every request
            max_tokens: Completion token cap
            temperature: Sampling temperature
            timeout: Request timeout in seconds
            http_client: Preconfigured httpx client (one is created if omitted)

        Raises:
            ValueError: If api_key is missing/empty
        """
        if not api_key or not api_key.strip():
            raise ValueError("API key is required for LLM service")

        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self._sdk: Optional[AsyncOpenAI] = None

    @classmethod
    def from_config(cls, config: Any, http_client: Optional[httpx.AsyncClient] = None) -> "LLMClient":
        """Build a client from an LLMConfig."""
        return cls(
            api_key=config.api_key,
            base_url=config.base_url,
            model=config.model,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.timeout,
            http_client=http_client,
        )

    @property
    def chat_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def build_payload(self, prompt: str, context: Optional[str] = None) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = [
            {"role": "system", "content": context or DEFAULT_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        return {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "stream": True,
        }

    async def generate(self, prompt: str, context: Optional[str] = None) -> AsyncIterator[str]:
        """Stream the completion for ``prompt`` as text fragments.

        Args:
            prompt: User prompt
            context: System context (a default persona is used if empty)

        Yields:
            Non-empty content fragments, in order

        Raises:
            AuthError: On 401/403, before any fragment is yielded
            TransientError: On 408/429/5xx, timeouts and transport failures
            ChatError: On any other non-success status
        """
        payload = self.build_payload(prompt, context)
        headers = {"Authorization": f"Bearer {self.api_key}"}
        LOGGER.debug("Starting streamed completion via %s (%d chars of context)",
                     self.model, len(context or ""))

        try:
            async with self._http.stream(
                "POST", self.chat_url, json=payload, headers=headers, timeout=self.timeout
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise error_from_status(response.status_code, response.reason_phrase)

                async for fragment in iter_stream_fragments(response.aiter_bytes()):
                    yield fragment
        except httpx.TimeoutException as e:
            raise TransientError(
                "Request timeout - the LLM service took too long to respond",
                code="timeout",
            ) from e
        except httpx.TransportError as e:
            raise TransientError(
                f"Could not reach the LLM service: {e}",
                code="network",
            ) from e

    async def validate_connection(self) -> bool:
        """Check the endpoint by listing models. Never raises."""
        try:
            await self._sdk_client().models.list()
        except OpenAIError as e:
            LOGGER.warning("Connection validation failed: %s", e)
            return False
        return True

    async def get_model_info(self) -> ModelInfo:
        """Model limits, confirmed against the endpoint when it is reachable.

        Falls back to catalog defaults if the lookup fails.
        """
        try:
            model = await self._sdk_client().models.retrieve(self.model)
            LOGGER.debug("Endpoint reports model %s", getattr(model, "id", self.model))
        except OpenAIError as e:
            LOGGER.debug("Model lookup failed, using catalog defaults: %s", e)
        return build_model_info(self.model, self.max_tokens)

    def _sdk_client(self) -> AsyncOpenAI:
        if self._sdk is None:
            self._sdk = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=CONNECTION_CHECK_TIMEOUT,
                max_retries=0,
            )
        return self._sdk

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
        if self._sdk is not None:
            await self._sdk.close()
            self._sdk = None

    async def __aenter__(self) -> "LLMClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
