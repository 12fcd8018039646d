"""Shared fixtures: in-memory database, fake Redis and an in-memory similarity store."""

from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from knowledge_lifecycle.cache.answer_cache import AnswerCache
from knowledge_lifecycle.cache.redis_cache import RedisCache
from knowledge_lifecycle.db.models import Base
from knowledge_lifecycle.exceptions import ClassificationFailure, StoreUnavailable
from knowledge_lifecycle.learning.clustering import tokenize
from knowledge_lifecycle.learning.queue import LearningQueue
from knowledge_lifecycle.learning.worker import LearningWorker
from knowledge_lifecycle.lifecycle.classifier import (
    FeatureClassifier,
    HeuristicFeatureClassifier,
    InformationAnalysis,
)
from knowledge_lifecycle.lifecycle.decision import DecisionEngine
from knowledge_lifecycle.models import KnowledgeItem
from knowledge_lifecycle.privacy.detector import PersonalDataClassifier, PersonalDataResult
from knowledge_lifecycle.privacy.guard import PersonalDataAuditLog, PersonalDataGuard
from knowledge_lifecycle.service import KnowledgeLifecycleService
from knowledge_lifecycle.stores.base import KnowledgeFilter, KnowledgeStore, SearchHit
from knowledge_lifecycle.stores.relational import RelationalKnowledgeStore
from knowledge_lifecycle.sync.module import SyncModule


class InMemoryKnowledgeStore(KnowledgeStore):
    """Dict-backed store with word-overlap relevance.

    Set `available = False` to make every call raise StoreUnavailable.
    """

    def __init__(self, name: str = "vector"):
        self._name = name
        self.items: dict[str, KnowledgeItem] = {}
        self.available = True
        self.upserts = 0
        self.updates = 0
        self.relevance: dict[str, float] = {}  # forced search scores by id

    @property
    def name(self) -> str:
        return self._name

    def _check(self) -> None:
        if not self.available:
            raise StoreUnavailable("connection refused", store=self.name)

    async def upsert(self, item: KnowledgeItem) -> str:
        self._check()
        item_id = item.ensure_id()
        self.items[item_id] = item.copy()
        self.upserts += 1
        return item_id

    async def update(self, item: KnowledgeItem) -> None:
        self._check()
        self.items[item.ensure_id()] = item.copy()
        self.updates += 1

    async def get(self, item_id: str) -> KnowledgeItem | None:
        self._check()
        item = self.items.get(item_id)
        return item.copy() if item else None

    async def search(
        self,
        query_text: str,
        top_k: int = 5,
        filter: KnowledgeFilter | None = None,
    ) -> list[SearchHit]:
        self._check()
        query_tokens = set(tokenize(query_text))
        hits = []
        for item in self.items.values():
            if filter is not None and not filter.matches(item):
                continue
            if item.id in self.relevance:
                score = self.relevance[item.id]
            else:
                item_tokens = set(tokenize(item.question))
                union = query_tokens | item_tokens
                score = len(query_tokens & item_tokens) / len(union) if union else 0.0
            hits.append(SearchHit(item=item.copy(), score=score))
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:top_k]

    async def list_all(
        self,
        filter: KnowledgeFilter | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[KnowledgeItem]:
        self._check()
        items = sorted(self.items.values(), key=lambda item: (item.created_at, item.id))
        if filter is not None:
            items = [item for item in items if filter.matches(item)]
        return [item.copy() for item in items[offset : offset + limit]]

    async def delete(self, ids: list[str]) -> int:
        self._check()
        deleted = 0
        for item_id in ids:
            if self.items.pop(item_id, None) is not None:
                deleted += 1
        return deleted

    async def stats(self) -> dict[str, Any]:
        self._check()
        return {"name": self.name, "count": len(self.items)}


class FakeRedis:
    """The subset of redis.asyncio.Redis used by RedisCache."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise ConnectionError("redis down")

    async def get(self, key: str):
        self._check()
        return self.data.get(key)

    async def set(self, key: str, value: str):
        self._check()
        self.data[key] = value
        return True

    async def setex(self, key: str, ttl: int, value: str):
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def exists(self, key: str) -> int:
        self._check()
        return int(key in self.data)

    async def ping(self) -> bool:
        self._check()
        return True

    async def aclose(self) -> None:
        pass


class StubFeatureClassifier(FeatureClassifier):
    """Returns a fixed analysis, or raises when `error` is set."""

    def __init__(self, analysis: InformationAnalysis | None = None, error: Exception | None = None):
        self.analysis = analysis or InformationAnalysis()
        self.error = error
        self.calls = 0

    async def analyze(self, question: str, answer: str) -> InformationAnalysis:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.analysis


class FailingPersonalDataClassifier(PersonalDataClassifier):
    async def classify(self, text: str) -> PersonalDataResult:
        raise ClassificationFailure("model offline", component="personal_data")


@pytest.fixture
def long_term_analysis() -> InformationAnalysis:
    """Stable, reusable information (scores 0.64 before penalties)."""
    return InformationAnalysis(
        time_sensitivity=0.1,
        reusability=0.9,
        specificity=0.8,
        privacy=0.0,
        importance=0.9,
    )


@pytest_asyncio.fixture
async def session_maker():
    """Fresh in-memory database per test; every session shares one connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def relational_store(session_maker) -> RelationalKnowledgeStore:
    return RelationalKnowledgeStore(session_maker)


@pytest.fixture
def vector_store() -> InMemoryKnowledgeStore:
    return InMemoryKnowledgeStore("vector")


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def redis_cache(fake_redis) -> RedisCache:
    return RedisCache(fake_redis)


@pytest.fixture
def audit_log(session_maker) -> PersonalDataAuditLog:
    return PersonalDataAuditLog(session_maker)


@pytest.fixture
def guard(audit_log) -> PersonalDataGuard:
    return PersonalDataGuard(audit_log=audit_log)


@pytest.fixture
def answer_cache(redis_cache, guard) -> AnswerCache:
    return AnswerCache(redis_cache, guard, ttl_seconds=3600)


@pytest.fixture
def queue(session_maker) -> LearningQueue:
    return LearningQueue(session_maker)


@pytest.fixture
def decision_engine() -> DecisionEngine:
    return DecisionEngine(HeuristicFeatureClassifier())


@pytest.fixture
def worker(queue, guard, decision_engine, vector_store, relational_store, session_maker, answer_cache) -> LearningWorker:
    return LearningWorker(
        queue=queue,
        guard=guard,
        decision_engine=decision_engine,
        vector_store=vector_store,
        relational_store=relational_store,
        session_maker=session_maker,
        answer_cache=answer_cache,
        batch_size=20,
        timeout_seconds=5.0,
    )


@pytest.fixture
def sync_module(vector_store, relational_store, guard, answer_cache, audit_log, queue, redis_cache) -> SyncModule:
    return SyncModule(
        vector_store=vector_store,
        relational_store=relational_store,
        guard=guard,
        answer_cache=answer_cache,
        audit_log=audit_log,
        queue=queue,
        redis_cache=redis_cache,
    )


@pytest.fixture
def service(vector_store, relational_store, session_maker, redis_cache) -> KnowledgeLifecycleService:
    return KnowledgeLifecycleService(
        vector_store=vector_store,
        relational_store=relational_store,
        session_maker=session_maker,
        redis_cache=redis_cache,
        classifier=HeuristicFeatureClassifier(),
    )
