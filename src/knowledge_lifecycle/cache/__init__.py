"""Redis-backed caching: answer cache and JSON snapshots."""

from knowledge_lifecycle.cache.answer_cache import AnswerCache, CachedAnswer, cache_key
from knowledge_lifecycle.cache.redis_cache import RedisCache

__all__ = ["AnswerCache", "CachedAnswer", "RedisCache", "cache_key"]
