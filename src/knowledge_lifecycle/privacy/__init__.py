"""Personal-data detection and the guard applied on every write path."""

from knowledge_lifecycle.privacy.detector import (
    PatternPersonalDataClassifier,
    PersonalDataClassifier,
    PersonalDataMatch,
    PersonalDataResult,
)
from knowledge_lifecycle.privacy.guard import (
    CLASSIFICATION_FAILURE,
    PersonalDataAuditLog,
    PersonalDataGuard,
    mask_preview,
)

__all__ = [
    "CLASSIFICATION_FAILURE",
    "PatternPersonalDataClassifier",
    "PersonalDataAuditLog",
    "PersonalDataClassifier",
    "PersonalDataGuard",
    "PersonalDataMatch",
    "PersonalDataResult",
    "mask_preview",
]
