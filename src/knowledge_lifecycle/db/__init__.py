"""Relational persistence: knowledge entries, learning queue and audit log."""

from knowledge_lifecycle.db.database import async_session_maker, engine, init_db
from knowledge_lifecycle.db.models import (
    AnswerOptimization,
    Base,
    KnowledgeEntry,
    LearningQueueItem,
    PersonalDataLog,
    QuestionClusterRecord,
)

__all__ = [
    "Base",
    "KnowledgeEntry",
    "LearningQueueItem",
    "QuestionClusterRecord",
    "AnswerOptimization",
    "PersonalDataLog",
    "engine",
    "async_session_maker",
    "init_db",
]
