"""API request and response schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from knowledge_lifecycle.models import KnowledgeItem, UserFeedback
from knowledge_lifecycle.sync.module import SyncMode


class SyncTriggerRequest(BaseModel):
    """Manual sync trigger."""

    mode: SyncMode = Field(default=SyncMode.FULL, description="Which sync steps to run")

    model_config = {"json_schema_extra": {"example": {"mode": "pull-only"}}}


class FeedbackRequest(BaseModel):
    """Explicit feedback on a stored item."""

    is_wrong: bool = Field(default=False, description="The answer was wrong")
    rating: int | None = Field(default=None, ge=1, le=5, description="Rating from 1 to 5")
    comment: str | None = Field(default=None, max_length=2000)

    def to_feedback(self) -> UserFeedback:
        return UserFeedback(is_wrong=self.is_wrong, rating=self.rating, comment=self.comment)


class KnowledgeItemResponse(BaseModel):
    id: str
    question: str
    answer: str
    category: str
    tier: str
    score: float
    base_score: float
    needs_review: bool
    source_store: str
    cross_ref_id: str | None = None
    last_feedback_at: datetime | None = None

    @classmethod
    def from_item(cls, item: KnowledgeItem) -> "KnowledgeItemResponse":
        return cls(
            id=item.id or "",
            question=item.question,
            answer=item.answer,
            category=item.category,
            tier=item.tier.value,
            score=item.score,
            base_score=item.base_score,
            needs_review=item.needs_review,
            source_store=item.source_store.value,
            cross_ref_id=item.cross_ref_id,
            last_feedback_at=item.last_feedback_at,
        )


class QueueEntryResponse(BaseModel):
    id: int
    user_message: str
    response_source: str
    confidence_score: float
    priority: int
    processing_status: str
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class LearningQueueResponse(BaseModel):
    counts: dict[str, int]
    pending: list[QueueEntryResponse]
