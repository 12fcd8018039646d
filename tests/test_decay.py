"""Tests for the decay pass."""

import math
from datetime import datetime, timedelta

import pytest

from conftest import InMemoryKnowledgeStore
from knowledge_lifecycle.lifecycle.decay import DecayPass
from knowledge_lifecycle.models import KnowledgeItem, SourceStore, Tier

NOW = datetime(2025, 3, 1, 12, 0, 0)


def _item(days_old: int, tier: Tier, **kwargs) -> KnowledgeItem:
    kwargs.setdefault("question", f"Question stored {days_old} days ago as {tier.value}?")
    kwargs.setdefault("answer", "A sufficiently long answer for the decay pass tests.")
    kwargs.setdefault("score", 0.8)
    return KnowledgeItem(tier=tier, created_at=NOW - timedelta(days=days_old), **kwargs)


def _decay(*stores, **kwargs) -> DecayPass:
    return DecayPass(list(stores), clock=lambda: NOW, **kwargs)


class TestArchival:
    """Items past their tier lifespan are deleted."""

    @pytest.mark.asyncio
    async def test_short_term_archived_after_a_week(self, vector_store):
        expired = await vector_store.upsert(_item(8, Tier.SHORT_TERM))
        fresh = await vector_store.upsert(_item(6, Tier.SHORT_TERM))

        report = await _decay(vector_store).run()

        assert report.archived == 1
        assert expired not in vector_store.items
        assert fresh in vector_store.items
        assert vector_store.items[fresh].score == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_archive_removes_cross_referenced_copy(self, vector_store, relational_store):
        item = _item(400, Tier.MID_TERM)
        item_id = item.ensure_id()
        await vector_store.upsert(item.copy(cross_ref_id=item_id, source_store=SourceStore.BOTH))
        await relational_store.upsert(item.copy(cross_ref_id=item_id, source_store=SourceStore.BOTH))

        report = await _decay(vector_store, relational_store).run()

        assert report.archived == 1
        assert report.scanned == 1
        assert vector_store.items == {}
        assert await relational_store.get(item_id) is None

    @pytest.mark.asyncio
    async def test_expired_item_past_the_first_page_is_archived(self, vector_store):
        for days_old in (100, 101, 102):
            await vector_store.upsert(_item(days_old, Tier.LONG_TERM))
        expired = await vector_store.upsert(_item(8, Tier.SHORT_TERM))

        report = await _decay(vector_store, batch_limit=3).run()

        assert report.scanned == 4
        assert report.rescored == 3
        assert report.archived == 1
        assert expired not in vector_store.items
        assert len(vector_store.items) == 3

    @pytest.mark.asyncio
    async def test_relational_store_is_paged(self, relational_store):
        for days_old in (100, 101, 102, 103):
            await relational_store.upsert(_item(days_old, Tier.LONG_TERM))
        expired = await relational_store.upsert(_item(8, Tier.SHORT_TERM))

        report = await _decay(relational_store, batch_limit=2).run()

        assert report.scanned == 5
        assert report.archived == 1
        assert await relational_store.get(expired) is None
        assert (await relational_store.stats())["count"] == 4


class TestRescoring:
    """Scores follow the exponential decay curve from the base score."""

    @pytest.mark.asyncio
    async def test_rescores_from_base_score(self, vector_store):
        item_id = await vector_store.upsert(_item(10, Tier.MID_TERM, score=0.5, base_score=0.8))

        report = await _decay(vector_store).run()

        assert report.rescored == 1
        updated = vector_store.items[item_id]
        assert updated.score == pytest.approx(0.8 * math.exp(-0.05 * 10))
        assert updated.base_score == pytest.approx(0.8)
        assert updated.last_decay_update == NOW

    @pytest.mark.asyncio
    async def test_small_changes_not_written(self, vector_store):
        await vector_store.upsert(_item(1, Tier.LONG_TERM))

        report = await _decay(vector_store).run()

        assert report.unchanged == 1
        assert vector_store.updates == 0

    @pytest.mark.asyncio
    async def test_epsilon_is_configurable(self, vector_store):
        await vector_store.upsert(_item(1, Tier.LONG_TERM))

        report = await _decay(vector_store, epsilon=0.0).run()

        assert report.rescored == 1


class TestOutages:
    """An unavailable store is skipped for the pass."""

    @pytest.mark.asyncio
    async def test_unavailable_store_skipped(self, relational_store):
        down = InMemoryKnowledgeStore("vector")
        down.available = False
        await relational_store.upsert(_item(8, Tier.SHORT_TERM))

        report = await _decay(down, relational_store).run()

        assert report.unavailable_stores == ["vector"]
        assert report.archived == 1
        assert (await relational_store.stats())["count"] == 0


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_sync_module_runs_decay(self, sync_module, vector_store):
        await vector_store.upsert(_item(800, Tier.MID_TERM))

        report = await sync_module.run_decay_pass()

        assert report.skipped is False
        assert report.archived == 1
        assert sync_module.decay_flight.runs_started == 1
