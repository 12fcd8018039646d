"""Tests for the service facade."""

import asyncio

import pytest

from knowledge_lifecycle.cache.answer_cache import cache_key
from knowledge_lifecycle.exceptions import CandidateValidationError
from knowledge_lifecycle.models import KnowledgeItem, UserFeedback
from knowledge_lifecycle.scheduling import VirtualScheduler


def _candidate(**kwargs) -> dict:
    data = {
        "user_message": "Where is the admission office?",
        "bot_response": "The admission office is in Hall B, room 110, open weekdays from 9am to 5pm.",
        "response_source": "language_model",
        "confidence_score": 0.9,
    }
    data.update(kwargs)
    return data


class TestSubmission:
    """Fire-and-forget candidate submission."""

    @pytest.mark.asyncio
    async def test_submit_candidate(self, service):
        task = service.submit_candidate(_candidate())
        assert service.pending_submissions == 1

        entry_id = await task
        await asyncio.sleep(0)

        assert service.pending_submissions == 0
        entry = await service.queue.get(entry_id)
        assert entry.processing_status == "pending"

    @pytest.mark.asyncio
    async def test_malformed_candidate_rejected_synchronously(self, service):
        with pytest.raises(CandidateValidationError):
            service.submit_candidate(_candidate(bot_response=""))
        assert service.pending_submissions == 0

    @pytest.mark.asyncio
    async def test_submission_then_learning_pass(self, service, vector_store):
        await service.submit_candidate(_candidate())

        report = await service.run_learning_pass()

        assert report.stored == 1
        assert len(vector_store.items) == 1


class TestAnswerCache:
    """Answer lookups through the facade."""

    @pytest.mark.asyncio
    async def test_cache_roundtrip(self, service):
        question = "Where is the international student office?"
        assert await service.cache_answer(question, "Hall B, room 110.", matched_id="kn_1", source="structured_search")

        cached = await service.lookup_answer("  where is the international student office?")

        assert cached.answer == "Hall B, room 110."
        assert cached.matched_id == "kn_1"

    @pytest.mark.asyncio
    async def test_personal_answer_not_cached(self, service, fake_redis):
        assert await service.cache_answer("What's my phone number?", "It is 010-1234-5678.") is False
        assert fake_redis.data == {}


class TestFeedback:
    """Feedback through the facade."""

    @pytest.mark.asyncio
    async def test_negative_feedback_invalidates_cache(self, service, vector_store, fake_redis):
        item = KnowledgeItem(
            question="When is the graduation ceremony?",
            answer="The graduation ceremony takes place in the main stadium in late May.",
            score=0.8,
        )
        item_id = await vector_store.upsert(item)
        await service.cache_answer(item.question, item.answer, matched_id=item_id)
        assert cache_key(item.question) in fake_redis.data

        updated = await service.apply_feedback(item_id, UserFeedback(is_wrong=True))

        assert updated.needs_review is True
        assert cache_key(item.question) not in fake_redis.data
        assert item_id in vector_store.items

    @pytest.mark.asyncio
    async def test_positive_feedback_keeps_cache(self, service, vector_store, fake_redis):
        item = KnowledgeItem(question="When is the graduation ceremony?", answer="Late May in the stadium.")
        item_id = await vector_store.upsert(item)
        await service.cache_answer(item.question, item.answer)

        await service.apply_feedback(item_id, UserFeedback(rating=5))

        assert cache_key(item.question) in fake_redis.data


class TestLifecycle:
    """Scheduler registration and shutdown."""

    @pytest.mark.asyncio
    async def test_start_registers_jobs_and_requeues(self, service):
        entry_id = await service.enqueue_candidate(_candidate())
        await service.queue.fetch_pending(limit=10)
        scheduler = VirtualScheduler()

        await service.start(scheduler)

        assert scheduler.job_names == ["learning_pass", "full_sync", "decay_pass"]
        assert (await service.queue.get(entry_id)).processing_status == "pending"

        await service.stop()
        assert scheduler.started is False
        assert service.scheduler is None

    @pytest.mark.asyncio
    async def test_scheduled_learning_pass(self, service, vector_store):
        scheduler = VirtualScheduler()
        await service.start(scheduler)
        await service.enqueue_candidate(_candidate())

        await scheduler.advance(300)

        assert len(vector_store.items) == 1
        assert service.worker.flight.runs_started == 1
        await service.stop()
