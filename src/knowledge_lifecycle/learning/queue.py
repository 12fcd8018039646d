"""Persistent learning queue over the `learning_queue` table."""

import logging
from datetime import timedelta
from typing import Any

from pydantic import ValidationError
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_lifecycle.db.models import LearningQueueItem
from knowledge_lifecycle.exceptions import CandidateValidationError
from knowledge_lifecycle.learning.clustering import QuestionPattern
from knowledge_lifecycle.models import (
    CandidateEntry,
    ProcessingStatus,
    ResponseSource,
    normalize_text,
    utcnow,
)

logger = logging.getLogger(__name__)

BASE_PRIORITY = 5
MAX_PRIORITY = 10
LOW_CONFIDENCE = 0.6

# Entries skipped with this reason never feed pattern analysis
PERSONAL_DATA_SKIP = "personal_data"


def compute_priority(candidate: CandidateEntry) -> int:
    """5, +2 for model-generated answers, +3 for low confidence, capped at 10."""
    priority = BASE_PRIORITY
    if candidate.response_source == ResponseSource.LANGUAGE_MODEL:
        priority += 2
    if candidate.confidence_score < LOW_CONFIDENCE:
        priority += 3
    return min(priority, MAX_PRIORITY)


def validate_candidate(candidate: CandidateEntry | dict[str, Any]) -> CandidateEntry:
    if isinstance(candidate, CandidateEntry):
        return candidate
    try:
        return CandidateEntry.model_validate(candidate)
    except ValidationError as e:
        raise CandidateValidationError(f"Invalid learning candidate: {e.error_count()} error(s)") from e


class LearningQueue:
    """Owns learning_queue rows from enqueue to a terminal status."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def enqueue(self, candidate: CandidateEntry | dict[str, Any]) -> int:
        """Persist a candidate as a pending entry.

        Raises:
            CandidateValidationError: If the candidate is malformed

        Returns:
            The queue entry id
        """
        candidate = validate_candidate(candidate)
        async with self.session_maker() as session:
            entry = LearningQueueItem(
                user_message=candidate.user_message,
                bot_response=candidate.bot_response,
                response_source=candidate.response_source.value,
                confidence_score=candidate.confidence_score,
                matched_knowledge_id=candidate.matched_knowledge_id,
                user_feedback=candidate.user_feedback,
                priority=compute_priority(candidate),
                processing_status=ProcessingStatus.PENDING.value,
                created_at=utcnow(),
            )
            session.add(entry)
            await session.commit()
            logger.debug(f"Enqueued learning candidate {entry.id} (priority={entry.priority})")
            return entry.id

    async def fetch_pending(self, limit: int) -> list[LearningQueueItem]:
        """Claim up to `limit` pending entries, highest priority and oldest first."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(LearningQueueItem)
                .where(LearningQueueItem.processing_status == ProcessingStatus.PENDING.value)
                .order_by(
                    LearningQueueItem.priority.desc(),
                    LearningQueueItem.created_at.asc(),
                    LearningQueueItem.id.asc(),
                )
                .limit(limit)
            )
            entries = list(result.scalars().all())
            for entry in entries:
                entry.processing_status = ProcessingStatus.PROCESSING.value
            await session.commit()
            return entries

    async def mark(
        self,
        entry_id: int,
        status: ProcessingStatus,
        skip_reason: str | None = None,
        error: str | None = None,
    ) -> None:
        status = ProcessingStatus(status)
        values: dict[str, Any] = {"processing_status": status.value}
        if skip_reason is not None:
            values["skip_reason"] = skip_reason
        if error is not None:
            values["error"] = error[:2000]
        if status in (ProcessingStatus.COMPLETED, ProcessingStatus.FAILED):
            values["processed_at"] = utcnow()

        async with self.session_maker() as session:
            await session.execute(
                update(LearningQueueItem).where(LearningQueueItem.id == entry_id).values(**values)
            )
            await session.commit()

    async def requeue_processing(self) -> int:
        """Return entries left in `processing` (e.g. by a crash) to `pending`."""
        async with self.session_maker() as session:
            result = await session.execute(
                update(LearningQueueItem)
                .where(LearningQueueItem.processing_status == ProcessingStatus.PROCESSING.value)
                .values(processing_status=ProcessingStatus.PENDING.value)
            )
            await session.commit()
            count = result.rowcount or 0
        if count:
            logger.info(f"Requeued {count} learning entries left in processing")
        return count

    async def get(self, entry_id: int) -> LearningQueueItem | None:
        async with self.session_maker() as session:
            return await session.get(LearningQueueItem, entry_id)

    async def status_counts(self, days: int | None = None) -> dict[str, int]:
        stmt = select(LearningQueueItem.processing_status, func.count(LearningQueueItem.id))
        if days is not None:
            stmt = stmt.where(LearningQueueItem.created_at >= utcnow() - timedelta(days=days))
        stmt = stmt.group_by(LearningQueueItem.processing_status)

        counts = {status.value: 0 for status in ProcessingStatus}
        async with self.session_maker() as session:
            result = await session.execute(stmt)
            for status, count in result.all():
                counts[status] = count
        return counts

    async def pending(self, limit: int = 50) -> list[LearningQueueItem]:
        """Pending entries in processing order, without claiming them."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(LearningQueueItem)
                .where(LearningQueueItem.processing_status == ProcessingStatus.PENDING.value)
                .order_by(
                    LearningQueueItem.priority.desc(),
                    LearningQueueItem.created_at.asc(),
                    LearningQueueItem.id.asc(),
                )
                .limit(limit)
            )
            return list(result.scalars().all())

    async def recent_patterns(self, days: int) -> list[QuestionPattern]:
        """Distinct questions completed in the last `days`, with frequency and ratings."""
        since = utcnow() - timedelta(days=days)
        async with self.session_maker() as session:
            result = await session.execute(
                select(LearningQueueItem)
                .where(
                    LearningQueueItem.processing_status == ProcessingStatus.COMPLETED.value,
                    LearningQueueItem.created_at >= since,
                    or_(
                        LearningQueueItem.skip_reason.is_(None),
                        LearningQueueItem.skip_reason != PERSONAL_DATA_SKIP,
                    ),
                )
                .order_by(LearningQueueItem.created_at.asc(), LearningQueueItem.id.asc())
            )
            entries = list(result.scalars().all())

        grouped: dict[str, list[LearningQueueItem]] = {}
        for entry in entries:
            grouped.setdefault(normalize_text(entry.user_message), []).append(entry)

        patterns = []
        for group in grouped.values():
            ratings = [entry.user_feedback for entry in group if entry.user_feedback is not None]
            patterns.append(
                QuestionPattern(
                    user_message=group[-1].user_message,
                    bot_response=group[-1].bot_response,
                    frequency=len(group),
                    avg_feedback=sum(ratings) / len(ratings) if ratings else None,
                    avg_confidence=sum(entry.confidence_score for entry in group) / len(group),
                )
            )
        patterns.sort(key=lambda pattern: pattern.frequency, reverse=True)
        return patterns
