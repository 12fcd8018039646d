"""Knowledge stores: one contract, a similarity and a structured implementation."""

from knowledge_lifecycle.stores.base import (
    CONFIDENCE_THRESHOLD,
    RELEVANCE_THRESHOLD,
    KnowledgeFilter,
    KnowledgeStore,
    SearchHit,
)
from knowledge_lifecycle.stores.relational import RelationalKnowledgeStore


def __getattr__(name: str):
    """Lazy import for the ChromaDB-backed components."""
    if name == "VectorKnowledgeStore":
        from knowledge_lifecycle.stores.vector import VectorKnowledgeStore
        return VectorKnowledgeStore

    if name == "ChromaClient":
        from knowledge_lifecycle.stores.chroma import ChromaClient
        return ChromaClient

    if name in ("BaseEmbeddings", "get_embeddings"):
        from knowledge_lifecycle.stores.embeddings import BaseEmbeddings, get_embeddings
        return locals()[name]

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "CONFIDENCE_THRESHOLD",
    "RELEVANCE_THRESHOLD",
    "BaseEmbeddings",
    "ChromaClient",
    "KnowledgeFilter",
    "KnowledgeStore",
    "RelationalKnowledgeStore",
    "SearchHit",
    "VectorKnowledgeStore",
    "get_embeddings",
]
