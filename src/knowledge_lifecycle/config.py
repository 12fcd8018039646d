"""Configuration management using pydantic-settings."""

import logging

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Knowledge Lifecycle"
    DEBUG: bool = False

    # Relational store
    DATABASE_URL: str = "sqlite+aiosqlite:///./knowledge_lifecycle.db"

    # ChromaDB (similarity store)
    CHROMA_HOST: str = "chromadb"
    CHROMA_PORT: int = 8000
    CHROMA_USE_SSL: bool = False
    CHROMA_TOKEN: str = ""
    CHROMA_COLLECTION: str = "knowledge_items"

    # Redis (answer cache + stats snapshot)
    REDIS_URL: str = "redis://redis:6379/0"

    # LLM Provider Selection
    LLM_PROVIDER: str = ""  # 'ollama', 'claude', or empty for auto-select
    FEATURE_CLASSIFIER: str = "llm"  # 'llm' or 'heuristic'

    # Ollama (local LLM)
    OLLAMA_BASE_URL: str = "http://ollama:11434"
    OLLAMA_LLM_MODEL: str = "llama3.1:8b"
    OLLAMA_EMBEDDING_MODEL: str = "mxbai-embed-large"

    # Anthropic (Claude)
    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_MODEL: str = "claude-sonnet-4-20250514"

    # Embeddings
    EMBEDDING_PROVIDER: str = "sentence-transformer"  # 'sentence-transformer' or 'ollama'
    EMBEDDING_MODEL: str = "all-MiniLM-L6-v2"

    # Decision engine
    STORE_THRESHOLD: float = 0.6  # Adjusted score at or above this = store
    LLM_PROMOTION_MIN_CONFIDENCE: float = 0.7
    SIMILARITY_PROMOTION_MIN_CONFIDENCE: float = 0.85
    LOW_PERFORMER_RATING: float = 3.0  # Average rating below this = needs optimization

    # Decay pass
    DECAY_BATCH_LIMIT: int = 1000
    DECAY_EPSILON: float = 0.01  # Skip writes for smaller score changes

    # Learning queue
    LEARNING_BATCH_SIZE: int = 20
    CLUSTER_SIMILARITY_THRESHOLD: float = 0.7
    CLUSTER_PROMOTION_THRESHOLD: int = 10  # member_count above this = promoted
    PATTERN_LOOKBACK_DAYS: int = 7
    PATTERN_MIN_FREQUENCY: int = 5
    PATTERN_MAX_AVG_FEEDBACK: float = 3.0

    # Synchronization
    SYNC_PULL_LIMIT: int = 1000
    SYNC_PUSH_LIMIT: int = 50
    SYNC_PUSH_MIN_USAGE: int = 5  # usage_count must exceed this
    SYNC_PUSH_MIN_AVG_FEEDBACK: float = 4.0
    SYNC_CACHE_LOOKBACK_HOURS: int = 24
    SYNC_STATS_TTL_SECONDS: int = 3600
    SYNC_STATS_KEY: str = "sync:stats"

    # Answer cache
    ANSWER_CACHE_TTL_SECONDS: int = 3600

    # Personal-data audit log
    AUDIT_PREVIEW_CHARS: int = 4  # Visible characters kept in audit previews

    # Scheduling (seconds)
    LEARNING_INTERVAL_SECONDS: float = 300.0
    SYNC_INTERVAL_SECONDS: float = 1800.0
    DECAY_INTERVAL_SECONDS: float = 86400.0
    OPERATION_TIMEOUT_SECONDS: float = 30.0

    @model_validator(mode="after")
    def check_intervals(self) -> "Settings":
        """Warn about scheduling values that would spin the event loop."""
        for name in (
            "LEARNING_INTERVAL_SECONDS",
            "SYNC_INTERVAL_SECONDS",
            "DECAY_INTERVAL_SECONDS",
        ):
            if getattr(self, name) < 1:
                logging.warning(f"{name} is below one second; periodic tasks will run hot")
        if self.OPERATION_TIMEOUT_SECONDS <= 0:
            logging.warning("OPERATION_TIMEOUT_SECONDS must be positive; external calls are unbounded")
        return self


settings = Settings()
