"""
Claude API Client

Manages the Anthropic API connection used for clinical note generation.
Calls are bounded by a hard timeout and are never retried automatically.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from anthropic import (
    AsyncAnthropic,
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
)

from practiceflow.config import settings

logger = logging.getLogger(__name__)


class ClaudeClientError(Exception):
    """Raised when Claude API call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ClaudeResponse:
    """Response from Claude API."""
    content: str
    model: str
    input_tokens: int
    output_tokens: int
    stop_reason: Optional[str]
    latency_ms: float


class ClaudeClient:
    """
    Async Claude API client wrapper.

    Features:
    - Async API calls
    - Hard request timeout (no automatic retries)
    - Token counting
    """

    _instance: Optional["ClaudeClient"] = None

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[AsyncAnthropic] = None,
    ):
        """Initialize Claude client.

        Args:
            api_key: Anthropic API key (defaults to settings)
            timeout: Request timeout in seconds (defaults to settings)
            client: Preconfigured AsyncAnthropic instance
        """
        self.api_key = api_key or settings.anthropic_api_key
        self.timeout = timeout or settings.note_timeout_seconds

        if client is None:
            if not self.api_key:
                raise ValueError("Anthropic API key is required")
            client = AsyncAnthropic(
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=0,
            )
        self._client = client
        self._default_model = settings.claude_note_model

        logger.info(f"ClaudeClient initialized with model={self._default_model}")

    @classmethod
    def get_instance(cls) -> "ClaudeClient":
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (useful for testing)."""
        cls._instance = None

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
    ) -> ClaudeResponse:
        """
        Generate a response from Claude.

        Args:
            prompt: User message
            system_prompt: System prompt (optional)
            model: Model to use (defaults to the note model)
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature

        Returns:
            ClaudeResponse with generated content

        Raises:
            ClaudeClientError: On non-2xx status, timeout, connection
                failure or a response without text content
        """
        model = model or self._default_model
        start_time = time.time()

        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        try:
            response = await self._client.messages.create(**kwargs)
        except APITimeoutError as e:
            logger.error(f"Claude request timed out after {self.timeout}s")
            raise ClaudeClientError(f"Request timed out after {self.timeout:g} seconds") from e
        except APIConnectionError as e:
            logger.error(f"Claude connection error: {e}")
            raise ClaudeClientError(f"Connection error: {e}") from e
        except APIStatusError as e:
            logger.error(f"Claude API error {e.status_code}: {e.message}")
            raise ClaudeClientError(
                f"API returned status {e.status_code}: {e.message}",
                status_code=e.status_code,
            ) from e

        text_blocks = [
            block.text for block in (response.content or [])
            if getattr(block, "type", None) == "text" and getattr(block, "text", None)
        ]
        if not text_blocks:
            logger.error("Claude response contained no text content")
            raise ClaudeClientError("Malformed response: no text content")

        latency_ms = (time.time() - start_time) * 1000

        return ClaudeResponse(
            content="".join(text_blocks),
            model=model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
            latency_ms=latency_ms,
        )

    async def close(self) -> None:
        """Close the client."""
        await self._client.close()


# Singleton accessor
def get_claude_client() -> ClaudeClient:
    """Get Claude client singleton instance."""
    return ClaudeClient.get_instance()
