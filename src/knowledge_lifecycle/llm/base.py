"""LLM client base class and the Ollama implementation."""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from knowledge_lifecycle.config import settings
from knowledge_lifecycle.llm.exceptions import LLMConnectionError

logger = logging.getLogger(__name__)

JSON_INSTRUCTION = (
    "IMPORTANT: Respond ONLY with valid JSON. No markdown, no explanation, just the JSON object."
)

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class BaseLLM(ABC):
    """Base class for LLM implementations."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def generate(self, prompt: str, **kwargs: Any) -> str:
        """Generate text from a prompt."""
        pass

    @abstractmethod
    async def check_health(self) -> bool:
        pass

    async def generate_json(self, prompt: str, **kwargs: Any) -> dict[str, Any]:
        """Generate a JSON object from a prompt.

        Returns:
            Parsed JSON object, or empty dict when the response is not JSON
        """
        response_text = await self.generate(f"{prompt}\n\n{JSON_INSTRUCTION}", **kwargs)
        return self._parse_json_response(response_text)

    async def is_available(self) -> bool:
        """Lightweight configuration check (no network request)."""
        return True

    def _parse_json_response(self, response_text: str) -> dict[str, Any]:
        """Parse JSON from an LLM response, tolerating code fences and surrounding prose."""
        text = response_text.strip()
        if text.startswith("```json"):
            text = text[7:]
        elif text.startswith("```"):
            text = text[3:]
        if text.endswith("```"):
            text = text[:-3]
        text = text.strip()

        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            match = _JSON_OBJECT_RE.search(text)
            if not match:
                logger.warning(f"{self.provider_name} response contained no JSON object")
                return {}
            try:
                parsed = json.loads(match.group(0))
            except json.JSONDecodeError as e:
                logger.warning(f"Failed to parse {self.provider_name} response as JSON: {e}")
                return {}

        if not isinstance(parsed, dict):
            logger.warning(f"{self.provider_name} returned JSON {type(parsed).__name__}, expected object")
            return {}
        return parsed


class OllamaLLM(BaseLLM):
    """Ollama LLM client."""

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float = 120.0,
    ):
        self.base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")
        self.model = model or settings.OLLAMA_LLM_MODEL
        self.timeout = timeout

    @property
    def provider_name(self) -> str:
        return "ollama"

    async def is_available(self) -> bool:
        return bool(self.base_url)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(LLMConnectionError),
        reraise=True,
    )
    async def generate(self, prompt: str, **kwargs: Any) -> str:
        payload: dict[str, Any] = {"model": self.model, "prompt": prompt, "stream": False}
        if kwargs.get("format"):
            payload["format"] = kwargs["format"]
        if kwargs.get("temperature") is not None:
            payload["options"] = {"temperature": kwargs["temperature"]}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(f"{self.base_url}/api/generate", json=payload)
                response.raise_for_status()
                return response.json().get("response", "")
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            raise LLMConnectionError(f"Request failed: {e}", provider=self.provider_name) from e

    async def generate_json(self, prompt: str, **kwargs: Any) -> dict[str, Any]:
        # Ollama can constrain output to JSON natively
        kwargs.setdefault("format", "json")
        return await super().generate_json(prompt, **kwargs)

    async def check_health(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(f"{self.base_url}/api/tags")
                return response.status_code == 200
        except Exception as e:
            logger.error(f"Ollama health check failed: {e}")
            return False
