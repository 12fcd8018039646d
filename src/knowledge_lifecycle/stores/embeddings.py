"""Embeddings providers for the similarity store."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from knowledge_lifecycle.config import settings

logger = logging.getLogger(__name__)

# Provider registry
_EMBEDDING_REGISTRY: dict[str, Callable[[], "BaseEmbeddings"]] = {}


def register_embedding_provider(name: str):
    """Decorator to register an embedding provider factory."""

    def decorator(factory: Callable[[], "BaseEmbeddings"]):
        _EMBEDDING_REGISTRY[name.lower()] = factory
        return factory

    return decorator


class BaseEmbeddings(ABC):
    """Abstract base class for embedding providers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for a list of texts."""
        pass

    async def embed_single(self, text: str) -> list[float]:
        embeddings = await self.embed([text])
        return embeddings[0]


class SentenceTransformerEmbeddings(BaseEmbeddings):
    """Embeddings using sentence-transformers (runs locally, no external API).

    Install the `local-embeddings` extra to use this provider.
    """

    def __init__(self, model: str | None = None):
        self.model_name = model or settings.EMBEDDING_MODEL
        self._model = None

    @property
    def provider_name(self) -> str:
        return "sentence-transformer"

    def _load_model(self):
        """Lazy load the model."""
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError as e:
                raise ImportError(
                    "sentence-transformers not installed. "
                    "Install with: pip install 'knowledge-lifecycle[local-embeddings]'"
                ) from e

            logger.info(f"Loading sentence-transformer model: {self.model_name}")
            self._model = SentenceTransformer(self.model_name)
        return self._model

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        def _encode() -> list[list[float]]:
            model = self._load_model()
            return model.encode(texts, convert_to_numpy=True).tolist()

        return await asyncio.to_thread(_encode)


class OllamaEmbeddings(BaseEmbeddings):
    """Embeddings using Ollama (requires Ollama server)."""

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float = 60.0,
    ):
        self.base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")
        self.model = model or settings.OLLAMA_EMBEDDING_MODEL
        self.timeout = timeout

    @property
    def provider_name(self) -> str:
        return "ollama"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def embed(self, texts: list[str]) -> list[list[float]]:
        embeddings = []
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                for text in texts:
                    response = await client.post(
                        f"{self.base_url}/api/embeddings",
                        json={"model": self.model, "prompt": text},
                    )
                    response.raise_for_status()
                    embeddings.append(response.json().get("embedding", []))
        except httpx.HTTPError as e:
            logger.error(f"HTTP error while generating embeddings: {e}")
            raise
        return embeddings


@register_embedding_provider("sentence-transformer")
def _create_sentence_transformer():
    return SentenceTransformerEmbeddings()


@register_embedding_provider("ollama")
def _create_ollama():
    return OllamaEmbeddings()


def get_available_embedding_providers() -> list[str]:
    return list(_EMBEDDING_REGISTRY.keys())


def get_embeddings(provider: str | None = None) -> BaseEmbeddings:
    """Get an embeddings instance.

    Raises:
        ValueError: If provider is not registered
    """
    provider_name = (provider or settings.EMBEDDING_PROVIDER).lower()

    if provider_name not in _EMBEDDING_REGISTRY:
        available = ", ".join(get_available_embedding_providers())
        raise ValueError(
            f"Unknown embedding provider '{provider_name}'. Available: {available}"
        )

    return _EMBEDDING_REGISTRY[provider_name]()
