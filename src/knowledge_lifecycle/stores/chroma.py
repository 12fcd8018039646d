"""ChromaDB client for the similarity store.

The chromadb HTTP client is synchronous; every call is pushed to a worker
thread so callers can bound it with asyncio timeouts.
"""

import asyncio
import logging
from typing import Any

import chromadb
from chromadb.config import Settings as ChromaSettings

from knowledge_lifecycle.config import settings

logger = logging.getLogger(__name__)


class ChromaClient:
    """Thin async wrapper around one ChromaDB collection."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        use_ssl: bool | None = None,
        token: str | None = None,
        collection_name: str | None = None,
    ):
        """Initialize ChromaDB client.

        Args:
            host: ChromaDB host (defaults to settings.CHROMA_HOST)
            port: ChromaDB port (defaults to settings.CHROMA_PORT)
            use_ssl: Use HTTPS (defaults to settings.CHROMA_USE_SSL)
            token: Authentication token (defaults to settings.CHROMA_TOKEN)
            collection_name: Collection name (defaults to settings.CHROMA_COLLECTION)
        """
        self.host = host or settings.CHROMA_HOST
        self.port = port or settings.CHROMA_PORT
        self.use_ssl = use_ssl if use_ssl is not None else settings.CHROMA_USE_SSL
        self.token = token or settings.CHROMA_TOKEN
        self.collection_name = collection_name or settings.CHROMA_COLLECTION
        self._client: Any = None
        self._collection: Any = None

    def _get_client(self) -> Any:
        """Get or create the ChromaDB client."""
        if self._client is None:
            protocol = "https" if self.use_ssl else "http"
            logger.info(f"Connecting to ChromaDB at {protocol}://{self.host}:{self.port}")

            client_kwargs: dict[str, Any] = {
                "host": self.host,
                "port": self.port,
                "ssl": self.use_ssl,
                "settings": ChromaSettings(anonymized_telemetry=False),
            }
            if self.token:
                logger.info("Using token authentication for ChromaDB")
                client_kwargs["headers"] = {"Authorization": f"Bearer {self.token}"}

            self._client = chromadb.HttpClient(**client_kwargs)
        return self._client

    def _get_collection(self) -> Any:
        """Get or create the collection (cosine space)."""
        if self._collection is None:
            client = self._get_client()
            self._collection = client.get_or_create_collection(
                name=self.collection_name,
                metadata={"hnsw:space": "cosine"},
            )
            logger.info(f"Using collection: {self.collection_name}")
        return self._collection

    async def upsert(
        self,
        ids: list[str],
        embeddings: list[list[float]],
        documents: list[str],
        metadatas: list[dict[str, Any]],
    ) -> None:
        """Insert or update documents in the collection."""

        def _upsert() -> None:
            self._get_collection().upsert(
                ids=ids,
                embeddings=embeddings,
                documents=documents,
                metadatas=metadatas,
            )

        await asyncio.to_thread(_upsert)
        logger.debug(f"Upserted {len(ids)} documents")

    async def update_metadata(self, ids: list[str], metadatas: list[dict[str, Any]]) -> None:
        """Replace metadata for existing documents without re-embedding."""

        def _update() -> None:
            self._get_collection().update(ids=ids, metadatas=metadatas)

        await asyncio.to_thread(_update)
        logger.debug(f"Updated metadata for {len(ids)} documents")

    async def delete(self, ids: list[str]) -> None:
        """Delete documents by ID."""

        def _delete() -> None:
            self._get_collection().delete(ids=ids)

        await asyncio.to_thread(_delete)
        logger.debug(f"Deleted {len(ids)} documents")

    async def query(
        self,
        query_embedding: list[float],
        n_results: int = 10,
        where: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Query the collection for similar documents.

        Returns:
            Query results with ids, documents, metadatas, distances
        """

        def _query() -> dict[str, Any]:
            return self._get_collection().query(
                query_embeddings=[query_embedding],
                n_results=n_results,
                where=where,
                include=["documents", "metadatas", "distances"],
            )

        return await asyncio.to_thread(_query)

    async def get(
        self,
        ids: list[str] | None = None,
        where: dict[str, Any] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> dict[str, Any]:
        """Get documents by ID or metadata filter."""

        def _get() -> dict[str, Any]:
            return self._get_collection().get(
                ids=ids,
                where=where,
                limit=limit,
                offset=offset,
                include=["documents", "metadatas"],
            )

        return await asyncio.to_thread(_get)

    async def count(self) -> int:
        return await asyncio.to_thread(lambda: self._get_collection().count())

    async def check_health(self) -> bool:
        """Check if ChromaDB is accessible."""
        try:
            await asyncio.to_thread(lambda: self._get_client().heartbeat())
            return True
        except Exception as e:
            logger.error(f"ChromaDB health check failed: {e}")
            return False
