"""Claude (Anthropic) LLM implementation using raw httpx."""

import logging
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from knowledge_lifecycle.config import settings
from knowledge_lifecycle.llm.base import BaseLLM
from knowledge_lifecycle.llm.exceptions import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMRateLimitError,
)

logger = logging.getLogger(__name__)

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"


class ClaudeLLM(BaseLLM):
    """Claude client over the Anthropic Messages API (no SDK dependency)."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float = 60.0,
        max_tokens: int = 1024,
    ):
        self.api_key = api_key or settings.ANTHROPIC_API_KEY
        self.model = model or settings.ANTHROPIC_MODEL
        self.timeout = timeout
        self.max_tokens = max_tokens

    @property
    def provider_name(self) -> str:
        return "claude"

    async def is_available(self) -> bool:
        return bool(self.api_key)

    def _get_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception_type((LLMConnectionError, LLMRateLimitError)),
        reraise=True,
    )
    async def generate(self, prompt: str, **kwargs: Any) -> str:
        """Generate text from a prompt.

        Raises:
            LLMAuthenticationError: If API key is missing or invalid
            LLMRateLimitError: If rate limit is exceeded
            LLMConnectionError: If connection fails
        """
        if not self.api_key:
            raise LLMAuthenticationError("API key not configured", provider=self.provider_name)

        body: dict[str, Any] = {
            "model": self.model,
            "max_tokens": kwargs.get("max_tokens", self.max_tokens),
            "messages": [{"role": "user", "content": prompt}],
        }
        if kwargs.get("temperature") is not None:
            body["temperature"] = kwargs["temperature"]

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(ANTHROPIC_API_URL, headers=self._get_headers(), json=body)
            except httpx.ConnectError as e:
                raise LLMConnectionError(f"Failed to connect: {e}", provider=self.provider_name) from e
            except httpx.TimeoutException as e:
                raise LLMConnectionError(f"Request timed out: {e}", provider=self.provider_name) from e

        if response.status_code == 401:
            raise LLMAuthenticationError("Invalid API key", provider=self.provider_name)
        if response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            raise LLMRateLimitError(
                "Rate limit exceeded",
                provider=self.provider_name,
                retry_after=float(retry_after) if retry_after else None,
            )
        response.raise_for_status()

        content_blocks = response.json().get("content", [])
        return "".join(block.get("text", "") for block in content_blocks if block.get("type") == "text")

    async def check_health(self) -> bool:
        """Configuration check only; a real request would be billed."""
        if not self.api_key:
            logger.warning("Claude health check: No API key configured")
            return False
        return True
