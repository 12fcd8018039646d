"""Personal-data guard: the single gate every write path goes through."""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_lifecycle.cache.answer_cache import cache_key
from knowledge_lifecycle.config import settings
from knowledge_lifecycle.db.models import PersonalDataLog
from knowledge_lifecycle.exceptions import ClassificationFailure
from knowledge_lifecycle.models import utcnow
from knowledge_lifecycle.privacy.detector import (
    PatternPersonalDataClassifier,
    PersonalDataClassifier,
    PersonalDataMatch,
    PersonalDataResult,
)

logger = logging.getLogger(__name__)

CLASSIFICATION_FAILURE = "classification_failure"

# Masked previews never grow past this many mask characters
MAX_MASK_CHARS = 8


def mask_preview(value: str, visible_chars: int | None = None) -> str:
    """Keep a short visible prefix of a detected value and mask the rest."""
    visible = settings.AUDIT_PREVIEW_CHARS if visible_chars is None else visible_chars
    if len(value) <= visible:
        return "*" * min(len(value), MAX_MASK_CHARS)
    return value[:visible] + "*" * min(len(value) - visible, MAX_MASK_CHARS)


class PersonalDataAuditLog:
    """Audit trail of detections in `personal_data_logs`.

    Rows carry the answer-cache key of the inspected content plus a masked
    preview, so the sync sweep can evict cache entries without the raw text.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        preview_chars: int | None = None,
    ):
        self.session_maker = session_maker
        self.preview_chars = preview_chars

    async def record(
        self,
        content_key: str,
        result: PersonalDataResult,
        source: str = "unknown",
        action: str = "blocked",
    ) -> int:
        """Write one row per detected type.

        Returns:
            Number of rows written
        """
        by_type: dict[str, PersonalDataMatch | None] = {data_type: None for data_type in result.types}
        for match in result.matches:
            current = by_type.get(match.type)
            if current is None or match.confidence > current.confidence:
                by_type[match.type] = match

        async with self.session_maker() as session:
            for data_type, match in by_type.items():
                session.add(
                    PersonalDataLog(
                        content_key=content_key,
                        data_type=data_type,
                        preview=mask_preview(match.value, self.preview_chars) if match else "",
                        confidence=match.confidence if match else 1.0,
                        source=source,
                        action_taken=action,
                        created_at=utcnow(),
                    )
                )
            await session.commit()
        return len(by_type)

    async def recent_content_keys(self, since: datetime) -> list[str]:
        """Distinct content keys flagged at or after `since`."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(PersonalDataLog.content_key)
                .where(PersonalDataLog.created_at >= since)
                .distinct()
            )
            return [row for row in result.scalars().all()]

    async def recent(self, limit: int = 50) -> list[PersonalDataLog]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(PersonalDataLog).order_by(PersonalDataLog.created_at.desc()).limit(limit)
            )
            return list(result.scalars().all())


class PersonalDataGuard:
    """Classifies text before anything is persisted or cached.

    The guard fails closed: a classifier error is reported as personal data
    of type `classification_failure`.
    """

    def __init__(
        self,
        classifier: PersonalDataClassifier | None = None,
        audit_log: PersonalDataAuditLog | None = None,
    ):
        self.classifier = classifier or PatternPersonalDataClassifier()
        self.audit_log = audit_log

    async def check(
        self,
        text: str,
        source: str = "unknown",
        content_key: str | None = None,
    ) -> PersonalDataResult:
        """Classify text and audit positive results.

        Args:
            text: Text to inspect
            source: Caller label stored in the audit row
            content_key: Cache key to audit under (defaults to the key of `text`)
        """
        try:
            result = await self.classifier.classify(text)
        except Exception as e:
            failure = ClassificationFailure(str(e), component="personal_data")
            logger.error(f"Personal-data classification failed ({source}), treating as flagged: {failure}")
            result = PersonalDataResult(
                has_personal_data=True,
                types=[CLASSIFICATION_FAILURE],
                matches=[],
            )

        if not result.has_personal_data:
            return result

        logger.warning(f"Personal data detected from {source}: types={result.types}")
        if self.audit_log is not None:
            try:
                await self.audit_log.record(content_key or cache_key(text), result, source=source)
            except Exception as e:
                logger.warning(f"Failed to write personal-data audit record: {e}")
        return result

    async def check_pair(self, question: str, answer: str, source: str = "unknown") -> PersonalDataResult:
        """Inspect a question/answer pair, audited under the question's cache key."""
        return await self.check(f"{question}\n{answer}", source=source, content_key=cache_key(question))
