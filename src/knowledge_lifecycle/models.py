"""Domain models shared by the stores, the decision engine and the learning queue."""

import hashlib
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    """Naive UTC timestamp, the form persisted in every store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_text(text: str) -> str:
    """Lower-case and trim text for hashing and matching."""
    return " ".join(text.strip().lower().split())


def content_id(question: str, answer: str) -> str:
    """Deterministic knowledge id derived from normalized content."""
    digest = hashlib.sha256(
        f"{normalize_text(question)}\n{normalize_text(answer)}".encode("utf-8")
    ).hexdigest()
    return f"kn_{digest[:24]}"


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class Tier(str, Enum):
    """Retention class of a knowledge item."""

    SHORT_TERM = "SHORT_TERM"
    MID_TERM = "MID_TERM"
    LONG_TERM = "LONG_TERM"


class SourceStore(str, Enum):
    """Which physical store(s) hold an item."""

    VECTOR = "VECTOR"
    RELATIONAL = "RELATIONAL"
    BOTH = "BOTH"


class ResponseSource(str, Enum):
    """Where the answer of a learning candidate came from."""

    LANGUAGE_MODEL = "language_model"
    STRUCTURED_SEARCH = "structured_search"
    SIMILARITY_SEARCH = "similarity_search"
    SESSION_REVIEW = "session_review"


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class KnowledgeItem:
    """The unit of retained knowledge.

    `id` is shared by both stores. `cross_ref_id` is set once the item has a
    counterpart in the other store. `base_score` is the score decay starts
    from; `score` is the current, decayed value.
    """

    question: str
    answer: str
    id: str | None = None
    keywords: list[str] = field(default_factory=list)
    category: str = "general"
    tier: Tier = Tier.MID_TERM
    score: float = 0.5
    base_score: float | None = None
    created_at: datetime = field(default_factory=utcnow)
    last_decay_update: datetime | None = None
    last_feedback_at: datetime | None = None
    source_store: SourceStore = SourceStore.VECTOR
    cross_ref_id: str | None = None
    needs_review: bool = False
    provenance: str = "authored"
    usage_count: int = 0
    avg_feedback: float | None = None

    def __post_init__(self) -> None:
        self.tier = Tier(self.tier)
        self.source_store = SourceStore(self.source_store)
        self.score = clamp(float(self.score))
        if self.base_score is None:
            self.base_score = self.score
        self.base_score = clamp(float(self.base_score))
        seen: list[str] = []
        for keyword in self.keywords:
            keyword = keyword.strip()
            if keyword and keyword not in seen:
                seen.append(keyword)
        self.keywords = seen

    @property
    def text(self) -> str:
        """Question and answer joined, the text the guard inspects."""
        return f"{self.question} {self.answer}"

    def ensure_id(self) -> str:
        if not self.id:
            self.id = content_id(self.question, self.answer)
        return self.id

    def copy(self, **changes) -> "KnowledgeItem":
        changes.setdefault("keywords", list(self.keywords))
        return replace(self, **changes)


@dataclass
class UserFeedback:
    """Explicit user feedback on an answer."""

    is_wrong: bool = False
    rating: int | None = None  # 1-5
    comment: str | None = None

    @property
    def is_negative(self) -> bool:
        return self.is_wrong or (self.rating is not None and self.rating < 3)

    @property
    def is_positive(self) -> bool:
        return not self.is_negative and self.rating is not None and self.rating >= 4

    @property
    def is_strongly_negative(self) -> bool:
        return self.is_wrong or (self.rating is not None and self.rating <= 2)


class CandidateEntry(BaseModel):
    """A question/answer pair submitted to the learning queue."""

    user_message: str = Field(min_length=1)
    bot_response: str = Field(min_length=1)
    response_source: ResponseSource
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    matched_knowledge_id: str | None = None
    user_feedback: int | None = Field(default=None, ge=1, le=5)

    @field_validator("user_message", "bot_response")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()
