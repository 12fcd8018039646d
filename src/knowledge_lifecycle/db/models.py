"""SQLAlchemy models for the relational side of the knowledge base.

- KnowledgeEntry: rows of the structured store (one per KnowledgeItem)
- LearningQueueItem: pending/terminal learning decisions
- QuestionClusterRecord: lexical clusters built from session reviews
- AnswerOptimization: answers flagged for re-generation
- PersonalDataLog: audit trail of personal-data detections (masked previews only)
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class KnowledgeEntry(Base):
    """A knowledge item held by the structured store."""

    __tablename__ = "knowledge_entries"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    question: Mapped[str] = mapped_column(Text)
    answer: Mapped[str] = mapped_column(Text)
    keywords: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    category: Mapped[str] = mapped_column(String(128), default="general", index=True)

    # Lifecycle
    tier: Mapped[str] = mapped_column(String(16), default="MID_TERM", index=True)
    score: Mapped[float] = mapped_column(Float, default=0.5)
    base_score: Mapped[float] = mapped_column(Float, default=0.5)
    needs_review: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Synchronization
    source_store: Mapped[str] = mapped_column(String(16), default="RELATIONAL")
    cross_ref_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    provenance: Mapped[str] = mapped_column(String(64), default="authored")

    # Performance
    usage_count: Mapped[int] = mapped_column(Integer, default=0)
    avg_feedback: Mapped[float | None] = mapped_column(Float, nullable=True)
    feedback_count: Mapped[int] = mapped_column(Integer, default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )
    last_decay_update: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_feedback_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<KnowledgeEntry(id={self.id}, tier={self.tier}, score={self.score:.2f})>"


class LearningQueueItem(Base):
    """A candidate question/answer pair awaiting a retention decision."""

    __tablename__ = "learning_queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_message: Mapped[str] = mapped_column(Text)
    bot_response: Mapped[str] = mapped_column(Text)
    response_source: Mapped[str] = mapped_column(String(32), index=True)
    confidence_score: Mapped[float] = mapped_column(Float, default=0.0)
    matched_knowledge_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    user_feedback: Mapped[int | None] = mapped_column(Integer, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=5, index=True)

    # pending -> processing -> completed | failed
    processing_status: Mapped[str] = mapped_column(String(16), default="pending", index=True)
    skip_reason: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    processed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<LearningQueueItem(id={self.id}, source={self.response_source}, "
            f"status={self.processing_status})>"
        )


class QuestionClusterRecord(Base):
    """A group of lexically similar questions."""

    __tablename__ = "question_clusters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cluster_name: Mapped[str] = mapped_column(String(256), unique=True, index=True)
    representative_question: Mapped[str] = mapped_column(Text)
    representative_answer: Mapped[str] = mapped_column(Text, default="")
    keywords: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    member_count: Mapped[int] = mapped_column(Integer, default=0)
    avg_confidence: Mapped[float] = mapped_column(Float, default=0.0)
    promoted_item_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<QuestionClusterRecord(name={self.cluster_name}, members={self.member_count})>"


class AnswerOptimization(Base):
    """An answer flagged for re-generation."""

    __tablename__ = "answer_optimizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    knowledge_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    original_question: Mapped[str] = mapped_column(Text)
    original_answer: Mapped[str] = mapped_column(Text)
    optimized_answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    reason: Mapped[str] = mapped_column(String(256))
    status: Mapped[str] = mapped_column(String(16), default="pending")  # pending, applied, dismissed

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class PersonalDataLog(Base):
    """Audit record of a personal-data detection.

    Only a masked preview of the detected value is kept. `content_key` is the
    answer-cache key of the inspected text.
    """

    __tablename__ = "personal_data_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    content_key: Mapped[str] = mapped_column(String(128), index=True)
    data_type: Mapped[str] = mapped_column(String(32))
    preview: Mapped[str] = mapped_column(String(64), default="")
    confidence: Mapped[float] = mapped_column(Float, default=0.0)
    source: Mapped[str] = mapped_column(String(64), default="unknown")
    action_taken: Mapped[str] = mapped_column(String(32), default="blocked")  # blocked, evicted

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), index=True)

    def __repr__(self) -> str:
        return f"<PersonalDataLog(type={self.data_type}, source={self.source})>"
