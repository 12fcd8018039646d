"""Dual-store synchronization.

A full sync runs four steps, each fault-tolerant on its own:

1. Pull: copy similarity-store items without a structured counterpart into
   the structured store and cross-reference both sides.
2. Push: copy well-used, well-rated structured items into the similarity store.
3. Cache sweep: evict answer-cache keys recorded by the personal-data audit log.
4. Stats: write a JSON snapshot of both stores and the queue to Redis.

A store that fails with StoreUnavailable is skipped for the rest of the run.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable

from knowledge_lifecycle.cache.answer_cache import AnswerCache
from knowledge_lifecycle.cache.redis_cache import RedisCache
from knowledge_lifecycle.config import settings
from knowledge_lifecycle.exceptions import StoreUnavailable
from knowledge_lifecycle.learning.queue import LearningQueue
from knowledge_lifecycle.lifecycle.decay import DecayPass, DecayReport
from knowledge_lifecycle.models import KnowledgeItem, SourceStore, utcnow
from knowledge_lifecycle.privacy.guard import PersonalDataAuditLog, PersonalDataGuard
from knowledge_lifecycle.scheduling import SingleFlight
from knowledge_lifecycle.stores.base import KnowledgeFilter, KnowledgeStore

logger = logging.getLogger(__name__)

STEP_OK = "ok"
STEP_SKIPPED = "skipped"
STEP_FAILED = "failed"


class SyncMode(str, Enum):
    FULL = "full"
    PULL_ONLY = "pull-only"
    PUSH_ONLY = "push-only"
    CACHE_SWEEP_ONLY = "cache-sweep-only"


_MODE_STEPS: dict[SyncMode, tuple[str, ...]] = {
    SyncMode.FULL: ("pull", "push", "cache_sweep", "stats"),
    SyncMode.PULL_ONLY: ("pull", "stats"),
    SyncMode.PUSH_ONLY: ("push", "stats"),
    SyncMode.CACHE_SWEEP_ONLY: ("cache_sweep",),
}


@dataclass
class SyncReport:
    mode: SyncMode = SyncMode.FULL
    skipped: bool = False
    pulled: int = 0
    pushed: int = 0
    already_linked: int = 0
    personal_data_blocked: int = 0
    failed_items: int = 0
    cache_evicted: int = 0
    steps: dict[str, str] = field(default_factory=dict)
    unavailable_stores: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "skipped": self.skipped,
            "pulled": self.pulled,
            "pushed": self.pushed,
            "already_linked": self.already_linked,
            "personal_data_blocked": self.personal_data_blocked,
            "failed_items": self.failed_items,
            "cache_evicted": self.cache_evicted,
            "steps": dict(self.steps),
            "unavailable_stores": list(self.unavailable_stores),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class SyncModule:
    """Keeps the similarity and structured stores consistent."""

    def __init__(
        self,
        vector_store: KnowledgeStore,
        relational_store: KnowledgeStore,
        guard: PersonalDataGuard,
        answer_cache: AnswerCache,
        audit_log: PersonalDataAuditLog,
        queue: LearningQueue,
        redis_cache: RedisCache,
        decay_pass: DecayPass | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.vector_store = vector_store
        self.relational_store = relational_store
        self.guard = guard
        self.answer_cache = answer_cache
        self.audit_log = audit_log
        self.queue = queue
        self.redis_cache = redis_cache
        self.decay_pass = decay_pass or DecayPass([vector_store, relational_store], clock=clock)
        self.clock = clock
        self.sync_flight = SingleFlight("full_sync")
        self.decay_flight = SingleFlight("decay_pass")
        self.last_report: SyncReport | None = None

    async def run_full_sync(self, mode: SyncMode | str = SyncMode.FULL) -> SyncReport:
        mode = SyncMode(mode)
        ran, report = await self.sync_flight.run(lambda: self._run(mode))
        if not ran:
            logger.info(f"Sync ({mode.value}) requested while another sync is running; skipped")
            return SyncReport(mode=mode, skipped=True, finished_at=self.clock())
        return report

    async def run_decay_pass(self) -> DecayReport:
        ran, report = await self.decay_flight.run(self.decay_pass.run)
        if not ran:
            return DecayReport(skipped=True, finished_at=self.clock())
        return report

    async def _run(self, mode: SyncMode) -> SyncReport:
        report = SyncReport(mode=mode, started_at=self.clock())
        unavailable: set[str] = set()
        logger.info(f"Starting sync ({mode.value})")

        for step in _MODE_STEPS[mode]:
            try:
                if step == "pull":
                    report.steps[step] = await self._pull(report, unavailable)
                elif step == "push":
                    report.steps[step] = await self._push(report, unavailable)
                elif step == "cache_sweep":
                    report.steps[step] = await self._sweep_cache(report)
                else:
                    report.unavailable_stores = sorted(unavailable)
                    report.steps[step] = await self._refresh_stats(report, unavailable)
            except Exception as e:
                logger.error(f"Sync step {step} failed: {e}", exc_info=True)
                report.steps[step] = STEP_FAILED

        report.unavailable_stores = sorted(unavailable)
        report.finished_at = self.clock()
        self.last_report = report
        logger.info(
            f"Sync ({mode.value}) complete: pulled={report.pulled} pushed={report.pushed} "
            f"evicted={report.cache_evicted} failed_items={report.failed_items} steps={report.steps}"
        )
        return report

    @staticmethod
    def _linked(item: KnowledgeItem, item_id: str) -> KnowledgeItem:
        return item.copy(cross_ref_id=item_id, source_store=SourceStore.BOTH)

    async def _pull(self, report: SyncReport, unavailable: set[str]) -> str:
        """Similarity store -> structured store."""
        if {self.vector_store.name, self.relational_store.name} & unavailable:
            return STEP_SKIPPED
        try:
            items = await self.vector_store.list_every(
                KnowledgeFilter(unlinked=True), page_size=settings.SYNC_PULL_LIMIT
            )
        except StoreUnavailable as e:
            unavailable.add(e.store)
            logger.warning(f"Pull skipped: {e}")
            return STEP_SKIPPED

        for item in items:
            try:
                if item.cross_ref_id or await self.relational_store.get(item.id) is not None:
                    report.already_linked += 1
                    continue

                check = await self.guard.check_pair(item.question, item.answer, source="sync_pull")
                if check.has_personal_data:
                    await self.answer_cache.invalidate(item.question)
                    report.personal_data_blocked += 1
                    continue

                linked = self._linked(item, item.id)
                await self.relational_store.upsert(linked.copy(provenance="vector_sync"))
                await self.vector_store.update(linked)
                report.pulled += 1
            except StoreUnavailable as e:
                report.failed_items += 1
                unavailable.add(e.store)
                logger.warning(f"Pull stopped at {item.id}: {e}")
                return STEP_FAILED
            except Exception as e:
                report.failed_items += 1
                logger.error(f"Pull of {item.id} failed: {e}")

        return STEP_OK

    async def _push(self, report: SyncReport, unavailable: set[str]) -> str:
        """Structured store -> similarity store, for proven items only."""
        if {self.vector_store.name, self.relational_store.name} & unavailable:
            return STEP_SKIPPED
        candidates_filter = KnowledgeFilter(
            unlinked=True,
            min_usage_count=settings.SYNC_PUSH_MIN_USAGE + 1,
            min_avg_feedback=settings.SYNC_PUSH_MIN_AVG_FEEDBACK,
        )
        try:
            items = await self.relational_store.list_all(candidates_filter, limit=settings.SYNC_PUSH_LIMIT)
        except StoreUnavailable as e:
            unavailable.add(e.store)
            logger.warning(f"Push skipped: {e}")
            return STEP_SKIPPED

        for item in items:
            try:
                check = await self.guard.check_pair(item.question, item.answer, source="sync_push")
                if check.has_personal_data:
                    await self.answer_cache.invalidate(item.question)
                    report.personal_data_blocked += 1
                    continue

                linked = self._linked(item, item.id)
                await self.vector_store.upsert(linked.copy(provenance="relational_sync"))
                await self.relational_store.update(linked)
                report.pushed += 1
            except StoreUnavailable as e:
                report.failed_items += 1
                unavailable.add(e.store)
                logger.warning(f"Push stopped at {item.id}: {e}")
                return STEP_FAILED
            except Exception as e:
                report.failed_items += 1
                logger.error(f"Push of {item.id} failed: {e}")

        return STEP_OK

    async def _sweep_cache(self, report: SyncReport) -> str:
        """Evict cached answers for content flagged in the lookback window."""
        since = self.clock() - timedelta(hours=settings.SYNC_CACHE_LOOKBACK_HOURS)
        keys = await self.audit_log.recent_content_keys(since)
        for key in keys:
            if await self.answer_cache.delete_key(key):
                report.cache_evicted += 1
        if report.cache_evicted:
            logger.info(f"Cache sweep evicted {report.cache_evicted} of {len(keys)} flagged keys")
        return STEP_OK

    async def _store_stats(self, store: KnowledgeStore, unavailable: set[str]) -> dict[str, Any]:
        if store.name in unavailable:
            return {"name": store.name, "available": False}
        try:
            return {**(await store.stats()), "available": True}
        except StoreUnavailable as e:
            unavailable.add(e.store)
            logger.warning(f"Stats unavailable for {store.name}: {e}")
            return {"name": store.name, "available": False}

    async def build_stats(self, unavailable: set[str] | None = None) -> dict[str, Any]:
        unavailable = unavailable if unavailable is not None else set()
        return {
            "vector": await self._store_stats(self.vector_store, unavailable),
            "relational": await self._store_stats(self.relational_store, unavailable),
            "learning_queue": await self.queue.status_counts(days=7),
            "last_sync": self.last_report.to_dict() if self.last_report else None,
            "generated_at": self.clock().isoformat(),
        }

    async def _refresh_stats(self, report: SyncReport, unavailable: set[str]) -> str:
        self.last_report = report
        snapshot = await self.build_stats(unavailable)
        written = await self.redis_cache.set_json(
            settings.SYNC_STATS_KEY, snapshot, ttl_seconds=settings.SYNC_STATS_TTL_SECONDS
        )
        return STEP_OK if written else STEP_FAILED

    async def get_stats(self) -> dict[str, Any]:
        """Cached stats snapshot, or a freshly computed one."""
        cached = await self.redis_cache.get_json(settings.SYNC_STATS_KEY)
        if isinstance(cached, dict):
            return {**cached, "cached": True}
        return {**(await self.build_stats()), "cached": False}
