"""Uniform read/write contract over the similarity and structured stores."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from knowledge_lifecycle.models import KnowledgeItem, Tier

# A search result is relevant at or above this score
RELEVANCE_THRESHOLD = 0.70
# Relevant results at or above this score are authoritative
CONFIDENCE_THRESHOLD = 0.80


@dataclass
class KnowledgeFilter:
    """Filter accepted by every store.

    Fields left as None do not constrain the result.
    """

    category: str | None = None
    tier: Tier | None = None
    needs_review: bool | None = None
    unlinked: bool | None = None  # True = no cross-reference into the other store
    min_usage_count: int | None = None
    min_avg_feedback: float | None = None
    min_score: float | None = None

    def matches(self, item: KnowledgeItem) -> bool:
        """Check an item in memory (used where the backend cannot filter)."""
        if self.category is not None and item.category != self.category:
            return False
        if self.tier is not None and item.tier != Tier(self.tier):
            return False
        if self.needs_review is not None and item.needs_review != self.needs_review:
            return False
        if self.unlinked is not None and (item.cross_ref_id is None) != self.unlinked:
            return False
        if self.min_usage_count is not None and item.usage_count < self.min_usage_count:
            return False
        if self.min_avg_feedback is not None and (
            item.avg_feedback is None or item.avg_feedback < self.min_avg_feedback
        ):
            return False
        if self.min_score is not None and item.score < self.min_score:
            return False
        return True


@dataclass
class SearchHit:
    """A ranked search result."""

    item: KnowledgeItem
    score: float  # Relevance (higher is better)

    @property
    def is_relevant(self) -> bool:
        return self.score >= RELEVANCE_THRESHOLD

    @property
    def is_confident(self) -> bool:
        return self.is_relevant and self.score >= CONFIDENCE_THRESHOLD


class KnowledgeStore(ABC):
    """Abstract base class for knowledge stores.

    Implementations raise StoreUnavailable on transport failures.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the store name ('vector' or 'relational')."""
        pass

    @abstractmethod
    async def upsert(self, item: KnowledgeItem) -> str:
        """Insert or replace an item, keyed by its id.

        Items without an id get a deterministic one derived from content,
        so repeated upserts of the same content collapse to one record.

        Returns:
            The stored item id
        """
        pass

    @abstractmethod
    async def get(self, item_id: str) -> KnowledgeItem | None:
        """Get an item by id, or None if not found."""
        pass

    @abstractmethod
    async def search(
        self,
        query_text: str,
        top_k: int = 5,
        filter: KnowledgeFilter | None = None,
    ) -> list[SearchHit]:
        """Rank items by relevance to the query text."""
        pass

    @abstractmethod
    async def list_all(
        self,
        filter: KnowledgeFilter | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[KnowledgeItem]:
        """List up to `limit` items matching the filter, skipping the first `offset`.

        Items come back in a stable order, oldest first where the store keeps one.
        """
        pass

    @abstractmethod
    async def delete(self, ids: list[str]) -> int:
        """Delete items by id.

        Returns:
            Number of items deleted
        """
        pass

    @abstractmethod
    async def stats(self) -> dict[str, Any]:
        """Return aggregate statistics, at least {'count': int}."""
        pass

    async def update(self, item: KnowledgeItem) -> None:
        """Rewrite an existing item whose question and answer are unchanged.

        Stores that can skip re-indexing override this.
        """
        await self.upsert(item)

    async def list_every(
        self,
        filter: KnowledgeFilter | None = None,
        page_size: int = 100,
    ) -> list[KnowledgeItem]:
        """Read every matching item, one page of `page_size` at a time.

        The full set is read before the caller changes anything, so deletes
        and relinks during processing cannot shift later pages.
        """
        items: list[KnowledgeItem] = []
        offset = 0
        while True:
            page = await self.list_all(filter, limit=page_size, offset=offset)
            items.extend(page)
            if len(page) < page_size:
                return items
            offset += page_size

    async def relevant_hits(
        self,
        query_text: str,
        top_k: int = 5,
        filter: KnowledgeFilter | None = None,
    ) -> list[SearchHit]:
        """Search and keep only relevant hits."""
        hits = await self.search(query_text, top_k=top_k, filter=filter)
        return [hit for hit in hits if hit.is_relevant]
