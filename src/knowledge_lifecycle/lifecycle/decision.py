"""Retention decisions for question/answer pairs.

The engine scores a pair from classifier features, applies length penalties
and user feedback, and picks a tier. Classifier failures never propagate:
they resolve to a safe default (store, MID_TERM, 0.7).
"""

import logging
from dataclasses import dataclass

from knowledge_lifecycle.config import settings
from knowledge_lifecycle.lifecycle.classifier import FeatureClassifier, InformationAnalysis
from knowledge_lifecycle.lifecycle.tiers import get_policy
from knowledge_lifecycle.models import Tier, UserFeedback, clamp

logger = logging.getLogger(__name__)

# Feature weights (privacy and time sensitivity count against retention)
WEIGHTS = {
    "reusability": 0.30,
    "importance": 0.25,
    "specificity": 0.20,
    "time_sensitivity": -0.15,
    "privacy": -0.10,
}

SHORT_QUESTION_CHARS = 10
SHORT_QUESTION_FACTOR = 0.8
SHORT_ANSWER_CHARS = 30
SHORT_ANSWER_FACTOR = 0.7

NEGATIVE_FEEDBACK_FACTOR = 0.3
POSITIVE_FEEDBACK_FACTOR = 1.3

FALLBACK_TIER = Tier.MID_TERM
FALLBACK_SCORE = 0.7


@dataclass
class DecisionContext:
    feedback: UserFeedback | None = None
    source: str | None = None


@dataclass
class StorageDecision:
    store: bool
    tier: Tier
    score: float  # after penalties and feedback
    initial_score: float  # before feedback
    reasoning: str
    analysis: InformationAnalysis | None
    expected_lifespan_days: int
    used_fallback: bool = False

    @property
    def keywords(self) -> list[str]:
        return list(self.analysis.keywords) if self.analysis else []


def compute_importance(analysis: InformationAnalysis) -> float:
    """Weighted feature sum, clamped to [0, 1]."""
    score = sum(getattr(analysis, feature) * weight for feature, weight in WEIGHTS.items())
    return clamp(score)


def apply_length_penalty(score: float, question: str, answer: str) -> float:
    if len(question.strip()) < SHORT_QUESTION_CHARS:
        score *= SHORT_QUESTION_FACTOR
    if len(answer.strip()) < SHORT_ANSWER_CHARS:
        score *= SHORT_ANSWER_FACTOR
    return score


def select_tier(analysis: InformationAnalysis) -> Tier:
    if analysis.suggested_tier is not None:
        return analysis.suggested_tier
    if analysis.time_sensitivity > 0.8:
        return Tier.SHORT_TERM
    if analysis.time_sensitivity > 0.3:
        return Tier.MID_TERM
    return Tier.LONG_TERM


def apply_feedback_adjustment(score: float, feedback: UserFeedback | None) -> float:
    """Scale a score by explicit feedback: negative x0.3, positive x1.3, clamped."""
    if feedback is None:
        return clamp(score)
    if feedback.is_negative:
        score *= NEGATIVE_FEEDBACK_FACTOR
    elif feedback.is_positive:
        score *= POSITIVE_FEEDBACK_FACTOR
    return clamp(score)


class DecisionEngine:
    """Decides whether and how long a question/answer pair is kept."""

    def __init__(self, classifier: FeatureClassifier, store_threshold: float | None = None):
        self.classifier = classifier
        self.store_threshold = settings.STORE_THRESHOLD if store_threshold is None else store_threshold

    async def decide(
        self,
        question: str,
        answer: str,
        context: DecisionContext | None = None,
    ) -> StorageDecision:
        context = context or DecisionContext()

        try:
            analysis = await self.classifier.analyze(question, answer)
        except Exception as e:
            logger.error(f"Feature classification failed, using safe defaults: {e}")
            return StorageDecision(
                store=True,
                tier=FALLBACK_TIER,
                score=FALLBACK_SCORE,
                initial_score=FALLBACK_SCORE,
                reasoning="feature classification failed, using safe defaults",
                analysis=None,
                expected_lifespan_days=get_policy(FALLBACK_TIER).max_lifespan_days,
                used_fallback=True,
            )

        initial_score = clamp(apply_length_penalty(compute_importance(analysis), question, answer))
        tier = select_tier(analysis)
        score = apply_feedback_adjustment(initial_score, context.feedback)
        store = score >= self.store_threshold

        logger.info(
            f"Decision: {'STORE' if store else 'SKIP'} score={score:.2f} tier={tier.value}"
            + (f" source={context.source}" if context.source else "")
        )
        return StorageDecision(
            store=store,
            tier=tier,
            score=score,
            initial_score=initial_score,
            reasoning=analysis.reasoning,
            analysis=analysis,
            expected_lifespan_days=get_policy(tier).max_lifespan_days,
        )
