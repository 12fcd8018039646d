"""Knowledge lifecycle: retention decisions, tier decay and feedback.

This module handles:
- Feature classification (LLM or heuristic)
- Storage decisions and tier selection
- Exponential decay and archival per tier
- Feedback-driven score adjustment
"""

from knowledge_lifecycle.lifecycle.classifier import (
    FeatureClassifier,
    HeuristicFeatureClassifier,
    InformationAnalysis,
    LLMFeatureClassifier,
)
from knowledge_lifecycle.lifecycle.decay import DecayPass, DecayReport
from knowledge_lifecycle.lifecycle.decision import (
    DecisionContext,
    DecisionEngine,
    StorageDecision,
    apply_feedback_adjustment,
    compute_importance,
    select_tier,
)
from knowledge_lifecycle.lifecycle.feedback import FeedbackService
from knowledge_lifecycle.lifecycle.tiers import (
    TIER_POLICIES,
    TierPolicy,
    current_score,
    days_elapsed,
    should_archive,
)

__all__ = [
    # Classification
    "FeatureClassifier",
    "HeuristicFeatureClassifier",
    "InformationAnalysis",
    "LLMFeatureClassifier",
    # Decisions
    "DecisionContext",
    "DecisionEngine",
    "StorageDecision",
    "apply_feedback_adjustment",
    "compute_importance",
    "select_tier",
    # Decay
    "DecayPass",
    "DecayReport",
    "TIER_POLICIES",
    "TierPolicy",
    "current_score",
    "days_elapsed",
    "should_archive",
    # Feedback
    "FeedbackService",
]
