"""LLM provider factory with registry pattern."""

import logging
from typing import Callable

from knowledge_lifecycle.config import settings
from knowledge_lifecycle.llm.base import BaseLLM, OllamaLLM
from knowledge_lifecycle.llm.exceptions import LLMProviderNotConfiguredError

logger = logging.getLogger(__name__)

# Provider registry: maps provider names to factory functions
_PROVIDER_REGISTRY: dict[str, Callable[[], BaseLLM]] = {}


def register_provider(name: str):
    """Decorator to register an LLM provider factory."""

    def decorator(factory: Callable[[], BaseLLM]) -> Callable[[], BaseLLM]:
        _PROVIDER_REGISTRY[name.lower()] = factory
        logger.debug(f"Registered LLM provider: {name}")
        return factory

    return decorator


def get_available_providers() -> list[str]:
    return list(_PROVIDER_REGISTRY.keys())


def get_provider(name: str) -> BaseLLM:
    """Get an LLM provider instance by name.

    Raises:
        LLMProviderNotConfiguredError: If provider is not registered
    """
    name_lower = name.lower()
    if name_lower not in _PROVIDER_REGISTRY:
        available = ", ".join(get_available_providers())
        raise LLMProviderNotConfiguredError(
            f"Unknown provider '{name}'. Available: {available}",
            provider=name,
        )
    return _PROVIDER_REGISTRY[name_lower]()


async def get_llm(provider: str | None = None) -> BaseLLM:
    """Get an LLM instance.

    Selection order: explicit provider, then LLM_PROVIDER, then Claude when an
    API key is configured, then Ollama.

    Raises:
        LLMProviderNotConfiguredError: If no provider is available
    """
    provider_name = provider or settings.LLM_PROVIDER

    if provider_name:
        llm = get_provider(provider_name)
        if await llm.is_available():
            logger.info(f"Using LLM provider: {llm.provider_name}")
            return llm
        logger.warning(f"Configured provider '{provider_name}' not available")

    if settings.ANTHROPIC_API_KEY:
        llm = get_provider("claude")
        if await llm.is_available():
            logger.info("Auto-selected Claude LLM provider")
            return llm

    llm = get_provider("ollama")
    if await llm.is_available():
        logger.info("Auto-selected Ollama LLM provider")
        return llm

    raise LLMProviderNotConfiguredError(
        "No LLM provider is configured or available. "
        "Set ANTHROPIC_API_KEY for Claude or configure OLLAMA_BASE_URL.",
        provider="none",
    )


@register_provider("ollama")
def _create_ollama() -> BaseLLM:
    return OllamaLLM()


@register_provider("claude")
def _create_claude() -> BaseLLM:
    from knowledge_lifecycle.llm.claude import ClaudeLLM

    return ClaudeLLM()
