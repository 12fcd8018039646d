"""LLM access used by the feature classifier."""

from knowledge_lifecycle.llm.base import BaseLLM, OllamaLLM
from knowledge_lifecycle.llm.exceptions import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMError,
    LLMProviderNotConfiguredError,
    LLMRateLimitError,
)
from knowledge_lifecycle.llm.factory import get_available_providers, get_llm, get_provider

__all__ = [
    "BaseLLM",
    "LLMAuthenticationError",
    "LLMConnectionError",
    "LLMError",
    "LLMProviderNotConfiguredError",
    "LLMRateLimitError",
    "OllamaLLM",
    "get_available_providers",
    "get_llm",
    "get_provider",
]
