"""OpenAI LLM client wrapper for the changelog agent.

This module encapsulates all interaction with the OpenAI API. It handles:
- Client initialization and configuration
- Chat completion requests over a multi-turn conversation
- Classifying SDK failures as transient (retryable) or not

Design notes:
- The orchestrator owns retrying, so the SDK's own retries are disabled
  here; transient failures surface as TransientCallError instead
- Anything that implements TextGenerationService can stand in for the
  OpenAI client (tests use fakes)
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel

from changelog_agent.errors import TransientCallError
from changelog_agent.logging_config import get_logger
from changelog_agent.schemas import ChatMessage

logger = get_logger(__name__)

# SDK errors worth another attempt. APITimeoutError is an APIConnectionError.
_TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class TextGenerationService(Protocol):
    """Anything that can continue a conversation given a system prompt."""

    async def generate(
        self, system_prompt: str, messages: Sequence[ChatMessage]
    ) -> str:
        """Return the model's next reply as plain text."""
        ...


class LLMConfig(BaseModel):
    """Configuration for the LLM client.

    Attributes:
        model: OpenAI model identifier (e.g., "gpt-4o", "gpt-4o-mini")
        temperature: Sampling temperature (0.0 = deterministic, 1.0 = creative)
        max_tokens: Maximum tokens in the response
        api_key: OpenAI API key (loaded from env if not provided)
        timeout: Per-request timeout in seconds
    """

    model: str = "gpt-4o"
    temperature: float = 0.2
    max_tokens: int = 4096
    api_key: str | None = None
    timeout: float = 120.0


class LLMClient:
    """Async wrapper around the OpenAI chat completions API.

    Usage:
        client = LLMClient(config=LLMConfig())
        text = await client.generate(system_prompt, [ChatMessage(...)])
    """

    def __init__(self, config: LLMConfig | None = None) -> None:
        """Initialize the LLM client.

        Args:
            config: LLM configuration. Uses defaults if not provided.
        """
        self.config = config or LLMConfig()
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        # Created on first use so the agent can be built without credentials.
        # With api_key=None the SDK reads OPENAI_API_KEY.
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.config.api_key,
                timeout=self.config.timeout,
                max_retries=0,
            )
        return self._client

    async def generate(
        self, system_prompt: str, messages: Sequence[ChatMessage]
    ) -> str:
        """Send the conversation to the model and return its reply.

        Args:
            system_prompt: The system message (instructions, tool list)
            messages: Conversation so far, oldest first

        Returns:
            The reply text ("" if the model returned no content)

        Raises:
            TransientCallError: On connection errors, timeouts, rate limits
                or server errors
            openai.APIError: On any other API failure
        """
        payload = [{"role": "system", "content": system_prompt}]
        payload.extend(m.model_dump() for m in messages)
        try:
            response = await self._get_client().chat.completions.create(
                model=self.config.model,
                messages=payload,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
        except _TRANSIENT_ERRORS as e:
            raise TransientCallError(f"LLM request failed: {e}") from e

        content = response.choices[0].message.content or ""
        logger.debug(
            "llm_response_received",
            model=self.config.model,
            turns=len(messages),
            chars=len(content),
        )
        return content
