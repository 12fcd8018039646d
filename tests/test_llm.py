"""Tests for the LLM module."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from knowledge_lifecycle.llm.base import OllamaLLM
from knowledge_lifecycle.llm.claude import ClaudeLLM
from knowledge_lifecycle.llm.exceptions import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMProviderNotConfiguredError,
)
from knowledge_lifecycle.llm.factory import get_available_providers, get_llm, get_provider


def _mock_client(mock_client_class, response=None, side_effect=None) -> AsyncMock:
    mock_client = AsyncMock()
    mock_client.post = AsyncMock(return_value=response, side_effect=side_effect)
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)
    mock_client_class.return_value = mock_client
    return mock_client


class TestOllamaLLM:
    """Tests for OllamaLLM."""

    def test_base_url_trailing_slash_removed(self):
        llm = OllamaLLM(base_url="http://localhost:11434/")
        assert llm.base_url == "http://localhost:11434"

    @pytest.mark.asyncio
    async def test_generate_success(self):
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_response = MagicMock()
            mock_response.json.return_value = {"response": "Hello, World!"}
            mock_response.raise_for_status = MagicMock()
            mock_client = _mock_client(mock_client_class, response=mock_response)

            result = await OllamaLLM().generate("Say hello", temperature=0.2)

            assert result == "Hello, World!"
            payload = mock_client.post.call_args.kwargs["json"]
            assert payload["options"] == {"temperature": 0.2}
            assert payload["stream"] is False

    @pytest.mark.asyncio
    async def test_generate_json_requests_json_format(self):
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_response = MagicMock()
            mock_response.json.return_value = {"response": '{"key": "value"}'}
            mock_response.raise_for_status = MagicMock()
            mock_client = _mock_client(mock_client_class, response=mock_response)

            result = await OllamaLLM().generate_json("Generate JSON")

            assert result == {"key": "value"}
            assert mock_client.post.call_args.kwargs["json"]["format"] == "json"

    @pytest.mark.asyncio
    async def test_connection_error_is_retried_then_raised(self):
        with patch("httpx.AsyncClient") as mock_client_class, patch("asyncio.sleep", new=AsyncMock()):
            mock_client = _mock_client(mock_client_class, side_effect=httpx.ConnectError("refused"))

            with pytest.raises(LLMConnectionError):
                await OllamaLLM().generate("hi")

            assert mock_client.post.await_count == 3


class TestJsonParsing:
    """Tests for BaseLLM._parse_json_response."""

    def test_plain_json(self):
        assert OllamaLLM()._parse_json_response('{"a": 1}') == {"a": 1}

    def test_markdown_fence(self):
        assert OllamaLLM()._parse_json_response('```json\n{"a": 1}\n```') == {"a": 1}

    def test_surrounding_prose(self):
        text = 'Here is the analysis: {"a": 1} Hope that helps.'
        assert OllamaLLM()._parse_json_response(text) == {"a": 1}

    def test_not_json(self):
        assert OllamaLLM()._parse_json_response("I cannot answer that.") == {}

    def test_json_array_rejected(self):
        assert OllamaLLM()._parse_json_response("[1, 2, 3]") == {}


class TestClaudeLLM:
    """Tests for ClaudeLLM."""

    @pytest.mark.asyncio
    async def test_missing_key(self):
        with pytest.raises(LLMAuthenticationError):
            await ClaudeLLM(api_key="").generate("hi")

    @pytest.mark.asyncio
    async def test_generate_joins_text_blocks(self):
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_response = MagicMock()
            mock_response.status_code = 200
            mock_response.json.return_value = {
                "content": [{"type": "text", "text": "Hello"}, {"type": "text", "text": " there"}]
            }
            mock_response.raise_for_status = MagicMock()
            mock_client = _mock_client(mock_client_class, response=mock_response)

            result = await ClaudeLLM(api_key="test-key").generate("hi")

            assert result == "Hello there"
            headers = mock_client.post.call_args.kwargs["headers"]
            assert headers["x-api-key"] == "test-key"

    @pytest.mark.asyncio
    async def test_check_health_without_key(self):
        assert await ClaudeLLM(api_key="").check_health() is False


class TestFactory:
    """Tests for the provider registry."""

    def test_registered_providers(self):
        assert {"ollama", "claude"} <= set(get_available_providers())

    def test_unknown_provider(self):
        with pytest.raises(LLMProviderNotConfiguredError):
            get_provider("nonexistent")

    @pytest.mark.asyncio
    async def test_explicit_provider(self):
        llm = await get_llm("ollama")
        assert llm.provider_name == "ollama"

    @pytest.mark.asyncio
    async def test_auto_selects_claude_with_key(self):
        with patch("knowledge_lifecycle.llm.factory.settings") as mock_settings, patch(
            "knowledge_lifecycle.llm.claude.settings"
        ) as claude_settings:
            mock_settings.LLM_PROVIDER = ""
            mock_settings.ANTHROPIC_API_KEY = "sk-test"
            claude_settings.ANTHROPIC_API_KEY = "sk-test"
            claude_settings.ANTHROPIC_MODEL = "claude-test"

            llm = await get_llm()

            assert llm.provider_name == "claude"

    @pytest.mark.asyncio
    async def test_falls_back_to_ollama(self):
        with patch("knowledge_lifecycle.llm.factory.settings") as mock_settings:
            mock_settings.LLM_PROVIDER = ""
            mock_settings.ANTHROPIC_API_KEY = ""

            llm = await get_llm()

            assert llm.provider_name == "ollama"
