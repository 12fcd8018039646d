"""Learning worker: drains the queue and promotes knowledge.

One pass claims a batch of pending entries and routes each by the source of
its answer. Afterwards it flags frequently asked, poorly rated questions and
promotes large question clusters into the similarity store.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_lifecycle.cache.answer_cache import AnswerCache
from knowledge_lifecycle.config import settings
from knowledge_lifecycle.db.models import AnswerOptimization, LearningQueueItem, QuestionClusterRecord
from knowledge_lifecycle.exceptions import OperationTimeout
from knowledge_lifecycle.learning.clustering import (
    cluster_questions,
    extract_keywords,
    generate_cluster_name,
    jaccard_similarity,
)
from knowledge_lifecycle.learning.queue import PERSONAL_DATA_SKIP, LearningQueue
from knowledge_lifecycle.lifecycle.decision import DecisionContext, DecisionEngine
from knowledge_lifecycle.models import (
    KnowledgeItem,
    ProcessingStatus,
    ResponseSource,
    SourceStore,
    UserFeedback,
    utcnow,
)
from knowledge_lifecycle.privacy.guard import PersonalDataGuard
from knowledge_lifecycle.scheduling import SingleFlight
from knowledge_lifecycle.stores.base import KnowledgeStore

logger = logging.getLogger(__name__)

LLM_LEARNED_CATEGORY = "llm-learned"
CLUSTER_CATEGORY = "faq"
MAX_CLUSTER_KEYWORDS = 10

# Terminal skip reasons
SKIP_PERSONAL_DATA = PERSONAL_DATA_SKIP
SKIP_LOW_CONFIDENCE = "low_confidence"
SKIP_NOT_RETAINED = "not_retained"
SKIP_NO_MATCH = "no_match"
SKIP_ALREADY_LINKED = "already_linked"


@dataclass
class LearningReport:
    skipped: bool = False
    fetched: int = 0
    completed: int = 0
    failed: int = 0
    stored: int = 0
    personal_data: int = 0
    optimizations_flagged: int = 0
    linked: int = 0
    clustered: int = 0
    patterns_flagged: int = 0
    promoted: int = 0
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None

    def to_dict(self) -> dict:
        data = {key: value for key, value in self.__dict__.items() if not isinstance(value, datetime)}
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data


class LearningWorker:
    """Processes learning queue batches (single-flight)."""

    def __init__(
        self,
        queue: LearningQueue,
        guard: PersonalDataGuard,
        decision_engine: DecisionEngine,
        vector_store: KnowledgeStore,
        relational_store: KnowledgeStore,
        session_maker: async_sessionmaker[AsyncSession],
        answer_cache: AnswerCache | None = None,
        batch_size: int | None = None,
        timeout_seconds: float | None = None,
    ):
        self.queue = queue
        self.guard = guard
        self.decision_engine = decision_engine
        self.vector_store = vector_store
        self.relational_store = relational_store
        self.session_maker = session_maker
        self.answer_cache = answer_cache
        self.batch_size = batch_size or settings.LEARNING_BATCH_SIZE
        self.timeout = timeout_seconds or settings.OPERATION_TIMEOUT_SECONDS
        self.flight = SingleFlight("learning_pass")

    async def run_learning_pass(self) -> LearningReport:
        ran, report = await self.flight.run(self._run)
        if not ran:
            return LearningReport(skipped=True, finished_at=utcnow())
        return report

    async def _run(self) -> LearningReport:
        report = LearningReport()
        entries = await self.queue.fetch_pending(self.batch_size)
        report.fetched = len(entries)

        for entry in entries:
            try:
                skip_reason = await asyncio.wait_for(self._process_entry(entry, report), timeout=self.timeout)
                await self.queue.mark(entry.id, ProcessingStatus.COMPLETED, skip_reason=skip_reason)
            except asyncio.TimeoutError:
                error = OperationTimeout(f"learning entry {entry.id}", self.timeout)
                await self._fail(entry, report, error)
                continue
            except Exception as e:
                await self._fail(entry, report, e)
                continue

            report.completed += 1

        try:
            report.patterns_flagged = await self.analyze_patterns()
        except Exception as e:
            logger.error(f"Question pattern analysis failed: {e}")

        try:
            report.promoted = await self.promote_clusters()
        except Exception as e:
            logger.error(f"Cluster promotion failed: {e}")

        report.finished_at = utcnow()
        logger.info(
            f"Learning pass complete: fetched={report.fetched} completed={report.completed} "
            f"failed={report.failed} stored={report.stored} promoted={report.promoted}"
        )
        return report

    async def _fail(self, entry: LearningQueueItem, report: LearningReport, error: Exception) -> None:
        logger.error(f"Learning entry {entry.id} failed: {error}")
        report.failed += 1
        try:
            await self.queue.mark(entry.id, ProcessingStatus.FAILED, error=str(error) or type(error).__name__)
        except Exception as e:
            # Left in processing; requeue_processing picks it up on restart
            logger.error(f"Could not mark learning entry {entry.id} failed: {e}")

    async def _process_entry(self, entry: LearningQueueItem, report: LearningReport) -> str | None:
        """Route one entry. Returns the skip reason, or None when it produced a write."""
        check = await self.guard.check_pair(entry.user_message, entry.bot_response, source="learning_queue")
        if check.has_personal_data:
            if self.answer_cache is not None:
                await self.answer_cache.invalidate(entry.user_message)
            report.personal_data += 1
            return SKIP_PERSONAL_DATA

        source = ResponseSource(entry.response_source)
        if source == ResponseSource.LANGUAGE_MODEL:
            return await self._learn_generated_answer(entry, report)
        if source == ResponseSource.STRUCTURED_SEARCH:
            return await self._review_structured_answer(entry, report)
        if source == ResponseSource.SIMILARITY_SEARCH:
            return await self._link_similarity_answer(entry, report)
        return await self._merge_into_cluster(entry, report)

    async def _learn_generated_answer(self, entry: LearningQueueItem, report: LearningReport) -> str | None:
        if entry.confidence_score < settings.LLM_PROMOTION_MIN_CONFIDENCE:
            return SKIP_LOW_CONFIDENCE

        feedback = UserFeedback(rating=entry.user_feedback) if entry.user_feedback is not None else None
        decision = await self.decision_engine.decide(
            entry.user_message,
            entry.bot_response,
            DecisionContext(feedback=feedback, source=entry.response_source),
        )
        if not decision.store:
            return SKIP_NOT_RETAINED

        item = KnowledgeItem(
            question=entry.user_message,
            answer=entry.bot_response,
            keywords=decision.keywords or extract_keywords(entry.user_message),
            category=LLM_LEARNED_CATEGORY,
            tier=decision.tier,
            score=decision.score,
            source_store=SourceStore.VECTOR,
            provenance="learning_queue",
        )
        item_id = await self.vector_store.upsert(item)
        report.stored += 1
        logger.info(f"Learned generated answer as {item_id} ({decision.tier.value}, score={decision.score:.2f})")
        return None

    async def _review_structured_answer(self, entry: LearningQueueItem, report: LearningReport) -> str | None:
        if not entry.matched_knowledge_id:
            return SKIP_NO_MATCH

        record_usage = getattr(self.relational_store, "record_usage", None)
        if record_usage is not None:
            item = await record_usage(entry.matched_knowledge_id, entry.user_feedback)
        else:
            item = await self.relational_store.get(entry.matched_knowledge_id)
        if item is None:
            return SKIP_NO_MATCH

        if item.avg_feedback is not None and item.avg_feedback < settings.LOW_PERFORMER_RATING:
            flagged = await self.flag_optimization(
                question=item.question,
                answer=item.answer,
                reason=f"Average rating {item.avg_feedback:.1f} below {settings.LOW_PERFORMER_RATING:.1f}",
                knowledge_id=item.id,
            )
            if flagged:
                report.optimizations_flagged += 1
        return None

    async def _link_similarity_answer(self, entry: LearningQueueItem, report: LearningReport) -> str | None:
        if entry.confidence_score < settings.SIMILARITY_PROMOTION_MIN_CONFIDENCE:
            return SKIP_LOW_CONFIDENCE
        item_id = entry.matched_knowledge_id
        if not item_id:
            return SKIP_NO_MATCH
        if await self.relational_store.get(item_id) is not None:
            return SKIP_ALREADY_LINKED

        vector_item = await self.vector_store.get(item_id)
        if vector_item is not None:
            check = await self.guard.check_pair(vector_item.question, vector_item.answer, source="learning_queue")
            if check.has_personal_data:
                report.personal_data += 1
                return SKIP_PERSONAL_DATA
            relational_item = vector_item.copy(
                source_store=SourceStore.BOTH,
                cross_ref_id=item_id,
                provenance="vector_sync",
            )
        else:
            relational_item = KnowledgeItem(
                id=item_id,
                question=entry.user_message,
                answer=entry.bot_response,
                keywords=extract_keywords(entry.user_message),
                source_store=SourceStore.RELATIONAL,
                provenance="learning_queue",
            )

        await self.relational_store.upsert(relational_item)
        if vector_item is not None:
            await self.vector_store.update(vector_item.copy(cross_ref_id=item_id, source_store=SourceStore.BOTH))
        report.linked += 1
        return None

    async def _merge_into_cluster(self, entry: LearningQueueItem, report: LearningReport) -> str | None:
        threshold = settings.CLUSTER_SIMILARITY_THRESHOLD
        async with self.session_maker() as session:
            result = await session.execute(select(QuestionClusterRecord))
            clusters = list(result.scalars().all())

            target = None
            for cluster in clusters:
                if jaccard_similarity(cluster.representative_question, entry.user_message) > threshold:
                    target = cluster
                    break

            if target is None:
                name = generate_cluster_name(entry.user_message)
                taken = {cluster.cluster_name for cluster in clusters}
                suffix = 2
                base_name = name
                while name in taken:
                    name = f"{base_name}_{suffix}"
                    suffix += 1
                target = QuestionClusterRecord(
                    cluster_name=name,
                    representative_question=entry.user_message,
                    representative_answer=entry.bot_response,
                    keywords="[]",
                    member_count=0,
                    avg_confidence=0.0,
                    created_at=utcnow(),
                )
                session.add(target)

            keywords = json.loads(target.keywords or "[]")
            for keyword in extract_keywords(entry.user_message):
                if keyword not in keywords and len(keywords) < MAX_CLUSTER_KEYWORDS:
                    keywords.append(keyword)
            target.keywords = json.dumps(keywords, ensure_ascii=False)
            target.avg_confidence = (
                target.avg_confidence * target.member_count + entry.confidence_score
            ) / (target.member_count + 1)
            target.member_count += 1
            if not target.representative_answer:
                target.representative_answer = entry.bot_response
            target.updated_at = utcnow()
            await session.commit()

        report.clustered += 1
        return None

    async def flag_optimization(
        self,
        question: str,
        answer: str,
        reason: str,
        knowledge_id: str | None = None,
    ) -> bool:
        """Record an answer for re-generation unless a pending flag already exists.

        Returns:
            True if a new flag was written
        """
        async with self.session_maker() as session:
            stmt = select(AnswerOptimization.id).where(AnswerOptimization.status == "pending")
            if knowledge_id is not None:
                stmt = stmt.where(AnswerOptimization.knowledge_id == knowledge_id)
            else:
                stmt = stmt.where(AnswerOptimization.original_question == question)
            if await session.scalar(stmt.limit(1)) is not None:
                return False

            session.add(
                AnswerOptimization(
                    knowledge_id=knowledge_id,
                    original_question=question,
                    original_answer=answer,
                    reason=reason,
                    status="pending",
                    created_at=utcnow(),
                )
            )
            await session.commit()
        logger.info(f"Flagged answer for optimization: {reason}")
        return True

    async def analyze_patterns(self) -> int:
        """Flag frequently asked, poorly rated questions from recent history."""
        patterns = await self.queue.recent_patterns(settings.PATTERN_LOOKBACK_DAYS)
        flagged = 0
        for cluster in cluster_questions(patterns, settings.CLUSTER_SIMILARITY_THRESHOLD):
            avg_feedback = cluster.avg_feedback
            if cluster.total_frequency <= settings.PATTERN_MIN_FREQUENCY:
                continue
            if avg_feedback is None or avg_feedback >= settings.PATTERN_MAX_AVG_FEEDBACK:
                continue
            representative = cluster.representative
            if await self.flag_optimization(
                question=representative.user_message,
                answer=representative.bot_response,
                reason="Low satisfaction score for frequently asked question",
            ):
                flagged += 1
        return flagged

    async def promote_clusters(self) -> int:
        """Promote large, unpromoted clusters into the similarity store."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(QuestionClusterRecord).where(
                    QuestionClusterRecord.member_count > settings.CLUSTER_PROMOTION_THRESHOLD,
                    QuestionClusterRecord.promoted_item_id.is_(None),
                )
            )
            candidates = list(result.scalars().all())

        promoted = 0
        for cluster in candidates:
            try:
                item_id = await self._promote_cluster(cluster)
            except asyncio.TimeoutError:
                logger.error(f"Promotion of cluster {cluster.cluster_name} timed out after {self.timeout}s")
                continue
            except Exception as e:
                logger.error(f"Promotion of cluster {cluster.cluster_name} failed: {e}")
                continue

            if item_id is not None:
                promoted += 1
                logger.info(
                    f"Promoted cluster {cluster.cluster_name} ({cluster.member_count} members) as {item_id}"
                )
        return promoted

    async def _promote_cluster(self, cluster: QuestionClusterRecord) -> str | None:
        """Store one cluster's representative pair. Returns the new item id, or None when skipped."""
        question = cluster.representative_question
        answer = cluster.representative_answer
        if not answer:
            return None

        check = await self.guard.check_pair(question, answer, source="cluster_promotion")
        if check.has_personal_data:
            logger.info(f"Cluster {cluster.cluster_name} not promoted: personal data")
            return None

        decision = await asyncio.wait_for(
            self.decision_engine.decide(question, answer, DecisionContext(source="cluster_promotion")),
            timeout=self.timeout,
        )
        item = KnowledgeItem(
            question=question,
            answer=answer,
            keywords=json.loads(cluster.keywords or "[]"),
            category=CLUSTER_CATEGORY,
            tier=decision.tier,
            score=decision.score,
            source_store=SourceStore.VECTOR,
            provenance="cluster_promotion",
        )
        item_id = await self.vector_store.upsert(item)

        async with self.session_maker() as session:
            record = await session.get(QuestionClusterRecord, cluster.id)
            record.promoted_item_id = item_id
            record.updated_at = utcnow()
            await session.commit()
        return item_id
