"""Facade exposing the engine's operations to the API, the CLI and callers."""

import asyncio
import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_lifecycle.cache.answer_cache import AnswerCache, CachedAnswer
from knowledge_lifecycle.cache.redis_cache import RedisCache
from knowledge_lifecycle.config import settings
from knowledge_lifecycle.learning.queue import LearningQueue, validate_candidate
from knowledge_lifecycle.learning.worker import LearningReport, LearningWorker
from knowledge_lifecycle.lifecycle.classifier import (
    FeatureClassifier,
    HeuristicFeatureClassifier,
    LLMFeatureClassifier,
)
from knowledge_lifecycle.lifecycle.decay import DecayReport
from knowledge_lifecycle.lifecycle.decision import DecisionContext, DecisionEngine, StorageDecision
from knowledge_lifecycle.lifecycle.feedback import FeedbackService
from knowledge_lifecycle.models import CandidateEntry, KnowledgeItem, UserFeedback
from knowledge_lifecycle.privacy.guard import PersonalDataAuditLog, PersonalDataGuard
from knowledge_lifecycle.scheduling import AsyncioScheduler, Scheduler
from knowledge_lifecycle.stores.base import KnowledgeStore
from knowledge_lifecycle.sync.module import SyncMode, SyncModule, SyncReport

logger = logging.getLogger(__name__)


async def build_feature_classifier() -> FeatureClassifier:
    """Classifier selected by FEATURE_CLASSIFIER, heuristic when no LLM is reachable."""
    if settings.FEATURE_CLASSIFIER.lower() == "heuristic":
        return HeuristicFeatureClassifier()

    from knowledge_lifecycle.llm.factory import get_llm
    from knowledge_lifecycle.llm.exceptions import LLMError

    try:
        return LLMFeatureClassifier(await get_llm())
    except LLMError as e:
        logger.warning(f"No LLM available for feature classification, using heuristics: {e}")
        return HeuristicFeatureClassifier()


class KnowledgeLifecycleService:
    """Wires the stores, guard, queue, worker and sync module together."""

    def __init__(
        self,
        vector_store: KnowledgeStore,
        relational_store: KnowledgeStore,
        session_maker: async_sessionmaker[AsyncSession],
        redis_cache: RedisCache,
        classifier: FeatureClassifier,
        guard: PersonalDataGuard | None = None,
    ):
        self.vector_store = vector_store
        self.relational_store = relational_store
        self.session_maker = session_maker
        self.redis_cache = redis_cache

        self.audit_log = PersonalDataAuditLog(session_maker)
        self.guard = guard or PersonalDataGuard(audit_log=self.audit_log)
        if self.guard.audit_log is not None:
            self.audit_log = self.guard.audit_log
        self.answer_cache = AnswerCache(redis_cache, self.guard)
        self.queue = LearningQueue(session_maker)
        self.decision_engine = DecisionEngine(classifier)
        self.feedback = FeedbackService([vector_store, relational_store])
        self.worker = LearningWorker(
            queue=self.queue,
            guard=self.guard,
            decision_engine=self.decision_engine,
            vector_store=vector_store,
            relational_store=relational_store,
            session_maker=session_maker,
            answer_cache=self.answer_cache,
        )
        self.sync = SyncModule(
            vector_store=vector_store,
            relational_store=relational_store,
            guard=self.guard,
            answer_cache=self.answer_cache,
            audit_log=self.audit_log,
            queue=self.queue,
            redis_cache=redis_cache,
        )

        self.scheduler: Scheduler | None = None
        self._pending: set[asyncio.Task] = set()

    @classmethod
    async def create_default(cls) -> "KnowledgeLifecycleService":
        """Build the service from settings (ChromaDB, SQL database, Redis, LLM)."""
        from knowledge_lifecycle.db.database import async_session_maker
        from knowledge_lifecycle.stores.chroma import ChromaClient
        from knowledge_lifecycle.stores.embeddings import get_embeddings
        from knowledge_lifecycle.stores.relational import RelationalKnowledgeStore
        from knowledge_lifecycle.stores.vector import VectorKnowledgeStore

        return cls(
            vector_store=VectorKnowledgeStore(ChromaClient(), get_embeddings()),
            relational_store=RelationalKnowledgeStore(async_session_maker),
            session_maker=async_session_maker,
            redis_cache=RedisCache.from_url(settings.REDIS_URL),
            classifier=await build_feature_classifier(),
        )

    # Ingestion

    async def enqueue_candidate(self, entry: CandidateEntry | dict[str, Any]) -> int:
        """Validate and persist a learning candidate.

        Raises:
            CandidateValidationError: If the candidate is malformed
        """
        return await self.queue.enqueue(entry)

    def submit_candidate(self, entry: CandidateEntry | dict[str, Any]) -> asyncio.Task:
        """Fire-and-forget enqueue.

        Validation happens before the task is created, so malformed input
        raises here. The returned task is tracked until done and failures
        are logged; resubmitting is safe.
        """
        candidate = validate_candidate(entry)
        task = asyncio.create_task(self.queue.enqueue(candidate))
        self._pending.add(task)
        task.add_done_callback(self._on_submit_done)
        return task

    def _on_submit_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning("Learning candidate submission was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Learning candidate submission failed: {error}")

    @property
    def pending_submissions(self) -> int:
        return len(self._pending)

    # Decisions and feedback

    async def decide(
        self,
        question: str,
        answer: str,
        context: DecisionContext | None = None,
    ) -> StorageDecision:
        return await self.decision_engine.decide(question, answer, context)

    async def apply_feedback(self, item_id: str, feedback: UserFeedback) -> KnowledgeItem | None:
        updated = await self.feedback.apply_feedback(item_id, feedback)
        if updated is not None and feedback.is_negative:
            await self.answer_cache.invalidate(updated.question)
        return updated

    # Periodic work

    async def run_learning_pass(self) -> LearningReport:
        return await self.worker.run_learning_pass()

    async def run_full_sync(self, mode: SyncMode | str = SyncMode.FULL) -> SyncReport:
        return await self.sync.run_full_sync(mode)

    async def run_decay_pass(self) -> DecayReport:
        return await self.sync.run_decay_pass()

    async def get_stats(self) -> dict[str, Any]:
        return await self.sync.get_stats()

    # Answer cache

    async def lookup_answer(self, question: str) -> CachedAnswer | None:
        return await self.answer_cache.get(question)

    async def cache_answer(
        self,
        question: str,
        answer: str,
        matched_id: str | None = None,
        source: str = "unknown",
    ) -> bool:
        return await self.answer_cache.put(question, answer, matched_id=matched_id, source=source)

    # Lifecycle

    async def start(self, scheduler: Scheduler | None = None) -> Scheduler:
        """Register the periodic jobs and start the scheduler."""
        await self.queue.requeue_processing()

        self.scheduler = scheduler or AsyncioScheduler()
        self.scheduler.every(settings.LEARNING_INTERVAL_SECONDS, self.run_learning_pass, "learning_pass")
        self.scheduler.every(settings.SYNC_INTERVAL_SECONDS, self.run_full_sync, "full_sync")
        self.scheduler.every(settings.DECAY_INTERVAL_SECONDS, self.run_decay_pass, "decay_pass")
        await self.scheduler.start()
        logger.info("Knowledge lifecycle service started")
        return self.scheduler

    async def stop(self) -> None:
        """Stop periodic jobs and wait for in-flight submissions."""
        if self.scheduler is not None:
            await self.scheduler.stop()
            self.scheduler = None
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        await self.redis_cache.close()
        logger.info("Knowledge lifecycle service stopped")
