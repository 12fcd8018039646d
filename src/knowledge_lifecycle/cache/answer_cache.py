"""Short-lived cache of final answers keyed by the normalized question."""

import hashlib
import logging
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING

from knowledge_lifecycle.cache.redis_cache import RedisCache
from knowledge_lifecycle.config import settings
from knowledge_lifecycle.models import utcnow

if TYPE_CHECKING:
    from knowledge_lifecycle.privacy.guard import PersonalDataGuard

logger = logging.getLogger(__name__)

KEY_PREFIX = "answer:"


def cache_key(text: str) -> str:
    """Answer-cache key of a question: prefix + sha256 of the trimmed, lower-cased text."""
    digest = hashlib.sha256(text.strip().lower().encode("utf-8")).hexdigest()
    return f"{KEY_PREFIX}{digest}"


@dataclass
class CachedAnswer:
    answer: str
    matched_id: str | None = None
    source: str = "unknown"
    cached_at: str = field(default_factory=lambda: utcnow().isoformat())


class AnswerCache:
    """Answer cache that refuses to hold anything the guard flags."""

    def __init__(
        self,
        cache: RedisCache,
        guard: "PersonalDataGuard",
        ttl_seconds: int | None = None,
    ):
        self.cache = cache
        self.guard = guard
        self.ttl = ttl_seconds or settings.ANSWER_CACHE_TTL_SECONDS

    async def get(self, question: str) -> CachedAnswer | None:
        data = await self.cache.get_json(cache_key(question))
        if not isinstance(data, dict) or "answer" not in data:
            return None
        return CachedAnswer(
            answer=data["answer"],
            matched_id=data.get("matched_id"),
            source=data.get("source", "unknown"),
            cached_at=data.get("cached_at", ""),
        )

    async def put(
        self,
        question: str,
        answer: str,
        matched_id: str | None = None,
        source: str = "unknown",
    ) -> bool:
        """Cache an answer unless the pair contains personal data.

        A flagged pair also evicts whatever is cached under the question.

        Returns:
            True if the answer was cached
        """
        result = await self.guard.check_pair(question, answer, source="answer_cache")
        if result.has_personal_data:
            await self.invalidate(question)
            logger.info(f"Refused to cache answer with personal data: types={result.types}")
            return False

        entry = CachedAnswer(answer=answer, matched_id=matched_id, source=source)
        return await self.cache.set_json(cache_key(question), asdict(entry), ttl_seconds=self.ttl)

    async def invalidate(self, question: str) -> bool:
        return await self.delete_key(cache_key(question))

    async def delete_key(self, key: str) -> bool:
        deleted = await self.cache.delete(key)
        if deleted:
            logger.debug(f"Evicted answer cache key {key}")
        return deleted
