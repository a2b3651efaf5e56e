"""
Claude API Client

Thin async wrapper around the Anthropic SDK used by the model-backed
intent extractor: one system prompt, one user turn, bounded retries on
rate limits and connection errors.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from anthropic import AsyncAnthropic, APIError, RateLimitError, APIConnectionError

from app.config import settings

logger = logging.getLogger(__name__)


class ClaudeClientError(Exception):
    """Raised when Claude API call fails."""
    pass


@dataclass
class ClaudeResponse:
    """Response from Claude API."""
    content: str
    model: str
    input_tokens: int
    output_tokens: int
    latency_ms: float


class ClaudeClient:
    """
    Async Claude API client.

    Built once at startup when an API key is configured and injected into
    the intent extractor.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_retries: int = 3,
    ):
        """Initialize Claude client.

        Args:
            api_key: Anthropic API key (defaults to settings)
            model: Default model (defaults to settings.claude_intent_model)
            max_retries: Attempts for retryable errors
        """
        self.api_key = api_key or settings.anthropic_api_key
        if not self.api_key:
            raise ValueError("Anthropic API key is required")

        self._client = AsyncAnthropic(api_key=self.api_key)
        self._model = model or settings.claude_intent_model
        self._max_retries = max_retries

        logger.info(f"ClaudeClient initialized with model={self._model}")

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 200,
        temperature: float = 0.0,
    ) -> ClaudeResponse:
        """
        Generate a response from Claude.

        Args:
            prompt: User message
            system_prompt: System prompt (optional)
            model: Model to use (defaults to the client's model)
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature (0.0 for deterministic)

        Returns:
            ClaudeResponse with generated content

        Raises:
            ClaudeClientError: If API call fails after retries
        """
        model = model or self._model
        start_time = time.time()

        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        response = await self._call_with_retry(kwargs)

        text_blocks = [
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        ]

        return ClaudeResponse(
            content="".join(text_blocks),
            model=model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            latency_ms=(time.time() - start_time) * 1000,
        )

    async def _call_with_retry(self, kwargs: dict[str, Any]) -> Any:
        """Call API with exponential backoff retry."""
        last_error: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                return await self._client.messages.create(**kwargs)

            except (RateLimitError, APIConnectionError) as e:
                last_error = e
                wait_time = 2 ** attempt
                logger.warning(
                    f"Claude call failed ({type(e).__name__}), "
                    f"retrying in {wait_time}s (attempt {attempt + 1})"
                )
                await asyncio.sleep(wait_time)

            except APIError as e:
                raise ClaudeClientError(f"Claude API error: {e}") from e

        raise ClaudeClientError(f"Max retries exceeded: {last_error}")

    async def close(self) -> None:
        """Close the client."""
        await self._client.close()
