"""Similarity store backed by ChromaDB."""

import logging
from datetime import datetime
from typing import Any, Awaitable, TypeVar

from knowledge_lifecycle.exceptions import StoreUnavailable
from knowledge_lifecycle.models import KnowledgeItem, utcnow
from knowledge_lifecycle.stores.base import KnowledgeFilter, KnowledgeStore, SearchHit
from knowledge_lifecycle.stores.chroma import ChromaClient
from knowledge_lifecycle.stores.embeddings import BaseEmbeddings

logger = logging.getLogger(__name__)

T = TypeVar("T")

KEYWORD_SEPARATOR = "|"


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _from_iso(value: Any) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def item_to_metadata(item: KnowledgeItem) -> dict[str, Any]:
    """Flatten an item into Chroma metadata.

    Chroma only accepts scalar values, so None values are omitted and keywords
    are joined into one string.
    """
    metadata: dict[str, Any] = {
        "question": item.question,
        "answer": item.answer,
        "keywords": KEYWORD_SEPARATOR.join(item.keywords),
        "category": item.category,
        "tier": item.tier.value,
        "score": item.score,
        "base_score": item.base_score,
        "created_at": _to_iso(item.created_at),
        "last_decay_update": _to_iso(item.last_decay_update),
        "last_feedback_at": _to_iso(item.last_feedback_at),
        "source_store": item.source_store.value,
        "cross_ref_id": item.cross_ref_id,
        "needs_review": item.needs_review,
        "provenance": item.provenance,
        "usage_count": item.usage_count,
        "avg_feedback": item.avg_feedback,
    }
    return {key: value for key, value in metadata.items() if value is not None}


def metadata_to_item(item_id: str, metadata: dict[str, Any], document: str | None = None) -> KnowledgeItem:
    keywords = metadata.get("keywords") or ""
    return KnowledgeItem(
        id=item_id,
        question=metadata.get("question") or document or "",
        answer=metadata.get("answer") or "",
        keywords=[k for k in keywords.split(KEYWORD_SEPARATOR) if k],
        category=metadata.get("category", "general"),
        tier=metadata.get("tier", "MID_TERM"),
        score=metadata.get("score", 0.5),
        base_score=metadata.get("base_score"),
        created_at=_from_iso(metadata.get("created_at")) or utcnow(),
        last_decay_update=_from_iso(metadata.get("last_decay_update")),
        last_feedback_at=_from_iso(metadata.get("last_feedback_at")),
        source_store=metadata.get("source_store", "VECTOR"),
        cross_ref_id=metadata.get("cross_ref_id"),
        needs_review=bool(metadata.get("needs_review", False)),
        provenance=metadata.get("provenance", "authored"),
        usage_count=int(metadata.get("usage_count", 0)),
        avg_feedback=metadata.get("avg_feedback"),
    )


def build_where(filter: KnowledgeFilter | None) -> dict[str, Any] | None:
    """Translate the metadata-expressible part of a filter into a Chroma where clause."""
    if filter is None:
        return None
    conditions: list[dict[str, Any]] = []
    if filter.category is not None:
        conditions.append({"category": filter.category})
    if filter.tier is not None:
        conditions.append({"tier": str(getattr(filter.tier, "value", filter.tier))})
    if filter.needs_review is not None:
        conditions.append({"needs_review": filter.needs_review})
    if not conditions:
        return None
    if len(conditions) == 1:
        return conditions[0]
    return {"$and": conditions}


def _needs_post_filter(filter: KnowledgeFilter | None) -> bool:
    if filter is None:
        return False
    return any(
        value is not None
        for value in (
            filter.unlinked,
            filter.min_usage_count,
            filter.min_avg_feedback,
            filter.min_score,
        )
    )


class VectorKnowledgeStore(KnowledgeStore):
    """KnowledgeStore over a Chroma collection plus an embeddings provider."""

    def __init__(self, client: ChromaClient, embeddings: BaseEmbeddings):
        self.client = client
        self.embeddings = embeddings

    @property
    def name(self) -> str:
        return "vector"

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except StoreUnavailable:
            raise
        except Exception as e:
            logger.error(f"Vector store {operation} failed: {e}")
            raise StoreUnavailable(f"{operation} failed: {e}", store=self.name) from e

    async def upsert(self, item: KnowledgeItem) -> str:
        item_id = item.ensure_id()
        embedding = await self._call("embed", self.embeddings.embed_single(item.text))
        await self._call(
            "upsert",
            self.client.upsert(
                ids=[item_id],
                embeddings=[embedding],
                documents=[item.text],
                metadatas=[item_to_metadata(item)],
            ),
        )
        return item_id

    async def update(self, item: KnowledgeItem) -> None:
        """Rewrite an existing item's metadata (score, tier, links) without re-embedding."""
        await self._call(
            "update",
            self.client.update_metadata(ids=[item.ensure_id()], metadatas=[item_to_metadata(item)]),
        )

    async def get(self, item_id: str) -> KnowledgeItem | None:
        result = await self._call("get", self.client.get(ids=[item_id]))
        items = self._items_from_get(result)
        return items[0] if items else None

    async def search(
        self,
        query_text: str,
        top_k: int = 5,
        filter: KnowledgeFilter | None = None,
    ) -> list[SearchHit]:
        embedding = await self._call("embed", self.embeddings.embed_single(query_text))
        post_filter = _needs_post_filter(filter)
        n_results = top_k * 4 if post_filter else top_k
        result = await self._call(
            "query",
            self.client.query(embedding, n_results=n_results, where=build_where(filter)),
        )

        ids = (result.get("ids") or [[]])[0]
        metadatas = (result.get("metadatas") or [[]])[0]
        documents = (result.get("documents") or [[]])[0]
        distances = (result.get("distances") or [[]])[0]

        hits = []
        for index, item_id in enumerate(ids):
            item = metadata_to_item(item_id, metadatas[index] or {}, documents[index])
            if filter is not None and not filter.matches(item):
                continue
            relevance = max(0.0, min(1.0, 1.0 - float(distances[index])))
            hits.append(SearchHit(item=item, score=relevance))

        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:top_k]

    async def list_all(
        self,
        filter: KnowledgeFilter | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[KnowledgeItem]:
        where = build_where(filter)
        if not _needs_post_filter(filter):
            result = await self._call("get", self.client.get(where=where, limit=limit, offset=offset))
            return self._items_from_get(result)

        # Post-filtered queries read the whole match set before paging
        result = await self._call("get", self.client.get(where=where))
        items = [item for item in self._items_from_get(result) if filter.matches(item)]
        return items[offset : offset + limit]

    async def list_every(
        self,
        filter: KnowledgeFilter | None = None,
        page_size: int = 100,
    ) -> list[KnowledgeItem]:
        """Post-filtered reads already see the whole match set, so they take one call."""
        if not _needs_post_filter(filter):
            return await super().list_every(filter, page_size=page_size)
        result = await self._call("get", self.client.get(where=build_where(filter)))
        return [item for item in self._items_from_get(result) if filter.matches(item)]

    async def delete(self, ids: list[str]) -> int:
        if not ids:
            return 0
        existing = await self._call("get", self.client.get(ids=ids))
        found = existing.get("ids") or []
        if not found:
            return 0
        await self._call("delete", self.client.delete(ids=list(found)))
        return len(found)

    async def stats(self) -> dict[str, Any]:
        count = await self._call("count", self.client.count())
        return {"name": self.name, "count": count}

    @staticmethod
    def _items_from_get(result: dict[str, Any]) -> list[KnowledgeItem]:
        ids = result.get("ids") or []
        metadatas = result.get("metadatas") or [{}] * len(ids)
        documents = result.get("documents") or [None] * len(ids)
        return [
            metadata_to_item(item_id, metadatas[index] or {}, documents[index])
            for index, item_id in enumerate(ids)
        ]
