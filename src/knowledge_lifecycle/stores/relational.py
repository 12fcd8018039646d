"""Structured store backed by SQLAlchemy (SQLite via aiosqlite by default)."""

import json
import logging
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_lifecycle.db.models import KnowledgeEntry
from knowledge_lifecycle.exceptions import StoreUnavailable
from knowledge_lifecycle.learning.clustering import tokenize
from knowledge_lifecycle.models import KnowledgeItem, utcnow
from knowledge_lifecycle.stores.base import KnowledgeFilter, KnowledgeStore, SearchHit

logger = logging.getLogger(__name__)

# Rows scanned per lexical search
SEARCH_SCAN_LIMIT = 500


def entry_to_item(entry: KnowledgeEntry) -> KnowledgeItem:
    return KnowledgeItem(
        id=entry.id,
        question=entry.question,
        answer=entry.answer,
        keywords=json.loads(entry.keywords or "[]"),
        category=entry.category,
        tier=entry.tier,
        score=entry.score,
        base_score=entry.base_score,
        created_at=entry.created_at,
        last_decay_update=entry.last_decay_update,
        last_feedback_at=entry.last_feedback_at,
        source_store=entry.source_store,
        cross_ref_id=entry.cross_ref_id,
        needs_review=entry.needs_review,
        provenance=entry.provenance,
        usage_count=entry.usage_count,
        avg_feedback=entry.avg_feedback,
    )


def _apply_item(entry: KnowledgeEntry, item: KnowledgeItem) -> None:
    entry.question = item.question
    entry.answer = item.answer
    entry.keywords = json.dumps(item.keywords, ensure_ascii=False)
    entry.category = item.category
    entry.tier = item.tier.value
    entry.score = item.score
    entry.base_score = item.base_score
    entry.created_at = item.created_at
    entry.last_decay_update = item.last_decay_update
    entry.last_feedback_at = item.last_feedback_at
    entry.source_store = item.source_store.value
    entry.cross_ref_id = item.cross_ref_id
    entry.needs_review = item.needs_review
    entry.provenance = item.provenance
    entry.usage_count = item.usage_count
    entry.avg_feedback = item.avg_feedback
    entry.is_active = True


def _lexical_relevance(query_tokens: set[str], item: KnowledgeItem) -> float:
    item_tokens = set(tokenize(item.question))
    item_tokens.update(keyword.lower() for keyword in item.keywords)
    if not query_tokens or not item_tokens:
        return 0.0
    return len(query_tokens & item_tokens) / len(query_tokens | item_tokens)


class RelationalKnowledgeStore(KnowledgeStore):
    """KnowledgeStore over the `knowledge_entries` table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    @property
    def name(self) -> str:
        return "relational"

    def _unavailable(self, operation: str, error: Exception) -> StoreUnavailable:
        logger.error(f"Relational store {operation} failed: {error}")
        return StoreUnavailable(f"{operation} failed: {error}", store=self.name)

    def _filtered(self, stmt, filter: KnowledgeFilter | None):
        stmt = stmt.where(KnowledgeEntry.is_active.is_(True))
        if filter is None:
            return stmt
        if filter.category is not None:
            stmt = stmt.where(KnowledgeEntry.category == filter.category)
        if filter.tier is not None:
            stmt = stmt.where(KnowledgeEntry.tier == str(getattr(filter.tier, "value", filter.tier)))
        if filter.needs_review is not None:
            stmt = stmt.where(KnowledgeEntry.needs_review.is_(filter.needs_review))
        if filter.unlinked is True:
            stmt = stmt.where(KnowledgeEntry.cross_ref_id.is_(None))
        elif filter.unlinked is False:
            stmt = stmt.where(KnowledgeEntry.cross_ref_id.is_not(None))
        if filter.min_usage_count is not None:
            stmt = stmt.where(KnowledgeEntry.usage_count >= filter.min_usage_count)
        if filter.min_avg_feedback is not None:
            stmt = stmt.where(
                KnowledgeEntry.avg_feedback.is_not(None),
                KnowledgeEntry.avg_feedback >= filter.min_avg_feedback,
            )
        if filter.min_score is not None:
            stmt = stmt.where(KnowledgeEntry.score >= filter.min_score)
        return stmt

    async def upsert(self, item: KnowledgeItem) -> str:
        item_id = item.ensure_id()
        try:
            async with self.session_maker() as session:
                entry = await session.get(KnowledgeEntry, item_id)
                if entry is None:
                    entry = KnowledgeEntry(id=item_id)
                    session.add(entry)
                _apply_item(entry, item)
                entry.updated_at = utcnow()
                await session.commit()
        except SQLAlchemyError as e:
            raise self._unavailable("upsert", e) from e
        return item_id

    async def get(self, item_id: str) -> KnowledgeItem | None:
        try:
            async with self.session_maker() as session:
                entry = await session.get(KnowledgeEntry, item_id)
                if entry is None or not entry.is_active:
                    return None
                return entry_to_item(entry)
        except SQLAlchemyError as e:
            raise self._unavailable("get", e) from e

    async def search(
        self,
        query_text: str,
        top_k: int = 5,
        filter: KnowledgeFilter | None = None,
    ) -> list[SearchHit]:
        """Rank rows by word overlap between the query and question/keywords."""
        query_tokens = set(tokenize(query_text))
        if not query_tokens:
            return []

        items = await self.list_all(filter, limit=SEARCH_SCAN_LIMIT)
        hits = [
            SearchHit(item=item, score=_lexical_relevance(query_tokens, item))
            for item in items
        ]
        hits = [hit for hit in hits if hit.score > 0]
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:top_k]

    async def list_all(
        self,
        filter: KnowledgeFilter | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[KnowledgeItem]:
        stmt = self._filtered(select(KnowledgeEntry), filter)
        stmt = stmt.order_by(KnowledgeEntry.created_at.asc(), KnowledgeEntry.id.asc())
        stmt = stmt.offset(offset).limit(limit)
        try:
            async with self.session_maker() as session:
                result = await session.execute(stmt)
                return [entry_to_item(entry) for entry in result.scalars().all()]
        except SQLAlchemyError as e:
            raise self._unavailable("list_all", e) from e

    async def delete(self, ids: list[str]) -> int:
        if not ids:
            return 0
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    delete(KnowledgeEntry).where(KnowledgeEntry.id.in_(ids))
                )
                await session.commit()
                return result.rowcount or 0
        except SQLAlchemyError as e:
            raise self._unavailable("delete", e) from e

    async def stats(self) -> dict[str, Any]:
        try:
            async with self.session_maker() as session:
                count = await session.scalar(
                    select(func.count(KnowledgeEntry.id)).where(KnowledgeEntry.is_active.is_(True))
                )
                rows = await session.execute(
                    select(KnowledgeEntry.tier, func.count(KnowledgeEntry.id))
                    .where(KnowledgeEntry.is_active.is_(True))
                    .group_by(KnowledgeEntry.tier)
                )
                by_tier = {tier: tier_count for tier, tier_count in rows.all()}
                needs_review = await session.scalar(
                    select(func.count(KnowledgeEntry.id)).where(
                        KnowledgeEntry.is_active.is_(True),
                        KnowledgeEntry.needs_review.is_(True),
                    )
                )
        except SQLAlchemyError as e:
            raise self._unavailable("stats", e) from e

        return {
            "name": self.name,
            "count": count or 0,
            "by_tier": by_tier,
            "needs_review": needs_review or 0,
        }

    async def record_usage(self, item_id: str, rating: int | None = None) -> KnowledgeItem | None:
        """Count one use of an item and fold an optional 1-5 rating into its average."""
        try:
            async with self.session_maker() as session:
                entry = await session.get(KnowledgeEntry, item_id)
                if entry is None or not entry.is_active:
                    return None
                entry.usage_count += 1
                if rating is not None:
                    total = (entry.avg_feedback or 0.0) * entry.feedback_count + rating
                    entry.feedback_count += 1
                    entry.avg_feedback = total / entry.feedback_count
                entry.updated_at = utcnow()
                await session.commit()
                return entry_to_item(entry)
        except SQLAlchemyError as e:
            raise self._unavailable("record_usage", e) from e
