"""Periodic re-scoring and archival of stored items."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from knowledge_lifecycle.config import settings
from knowledge_lifecycle.exceptions import StoreUnavailable
from knowledge_lifecycle.lifecycle.tiers import current_score, days_elapsed, should_archive
from knowledge_lifecycle.models import KnowledgeItem, utcnow
from knowledge_lifecycle.stores.base import KnowledgeStore

logger = logging.getLogger(__name__)


@dataclass
class DecayReport:
    skipped: bool = False
    scanned: int = 0
    rescored: int = 0
    unchanged: int = 0
    archived: int = 0
    failed: int = 0
    unavailable_stores: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "skipped": self.skipped,
            "scanned": self.scanned,
            "rescored": self.rescored,
            "unchanged": self.unchanged,
            "archived": self.archived,
            "failed": self.failed,
            "unavailable_stores": list(self.unavailable_stores),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class DecayPass:
    """Applies tier decay to every item in every store.

    Each store is read in pages of `batch_limit` items.
    Expired items are deleted from their store and from the cross-referenced
    store. Score writes are skipped when the change is within `epsilon`.
    """

    def __init__(
        self,
        stores: list[KnowledgeStore],
        batch_limit: int | None = None,
        epsilon: float | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.stores = stores
        self.batch_limit = batch_limit or settings.DECAY_BATCH_LIMIT
        self.epsilon = settings.DECAY_EPSILON if epsilon is None else epsilon
        self.clock = clock

    async def run(self) -> DecayReport:
        report = DecayReport()
        now = self.clock()
        unavailable: set[str] = set()
        archived_ids: set[str] = set()

        for store in self.stores:
            if store.name in unavailable:
                continue
            try:
                items = await store.list_every(page_size=self.batch_limit)
            except StoreUnavailable as e:
                logger.warning(f"Decay pass skipping {store.name}: {e}")
                unavailable.add(store.name)
                continue

            for item in items:
                if item.id in archived_ids:
                    continue
                report.scanned += 1
                try:
                    await self._process(store, item, now, report, archived_ids, unavailable)
                except StoreUnavailable as e:
                    report.failed += 1
                    unavailable.add(e.store)
                    logger.warning(f"Decay of {item.id} failed, {e.store} unavailable for this pass: {e}")
                    if e.store == store.name:
                        break
                except Exception as e:
                    report.failed += 1
                    logger.error(f"Decay of {item.id} in {store.name} failed: {e}")

        report.unavailable_stores = sorted(unavailable)
        report.finished_at = self.clock()
        logger.info(
            f"Decay pass complete: scanned={report.scanned} rescored={report.rescored} "
            f"archived={report.archived} failed={report.failed}"
        )
        return report

    async def _process(
        self,
        store: KnowledgeStore,
        item: KnowledgeItem,
        now: datetime,
        report: DecayReport,
        archived_ids: set[str],
        unavailable: set[str],
    ) -> None:
        days = days_elapsed(item.created_at, now)

        if should_archive(days, item.tier):
            await self._archive(store, item, archived_ids, unavailable)
            report.archived += 1
            logger.info(f"Archived {item.id} ({item.tier.value}, {days} days old)")
            return

        new_score = current_score(item.base_score, days, item.tier)
        if abs(new_score - item.score) <= self.epsilon:
            report.unchanged += 1
            return

        await store.update(item.copy(score=new_score, last_decay_update=now))
        report.rescored += 1

    async def _archive(
        self,
        store: KnowledgeStore,
        item: KnowledgeItem,
        archived_ids: set[str],
        unavailable: set[str],
    ) -> None:
        ids = [item.id]
        if item.cross_ref_id and item.cross_ref_id != item.id:
            ids.append(item.cross_ref_id)

        await store.delete([item.id])
        archived_ids.update(ids)

        for other in self.stores:
            if other is store or other.name in unavailable:
                continue
            try:
                await other.delete(ids)
            except StoreUnavailable as e:
                unavailable.add(other.name)
                logger.warning(f"Could not archive {item.id} from {other.name}: {e}")
