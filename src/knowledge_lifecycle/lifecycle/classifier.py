"""Feature classifiers feeding the decision engine.

A classifier turns a question/answer pair into an `InformationAnalysis`:
five features in [0, 1] plus an optional suggested tier.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from knowledge_lifecycle.exceptions import ClassificationFailure
from knowledge_lifecycle.llm.base import BaseLLM
from knowledge_lifecycle.models import Tier, clamp

logger = logging.getLogger(__name__)

DEFAULT_FEATURE = 0.5


class InformationAnalysis(BaseModel):
    """Features extracted from a question/answer pair.

    Missing or malformed features fall back to 0.5; out-of-range values are
    clamped; an unknown suggested tier becomes None.
    """

    model_config = ConfigDict(populate_by_name=True)

    time_sensitivity: float = Field(
        default=DEFAULT_FEATURE,
        validation_alias=AliasChoices("time_sensitivity", "timeSensitivity"),
    )
    reusability: float = DEFAULT_FEATURE
    specificity: float = DEFAULT_FEATURE
    privacy: float = DEFAULT_FEATURE
    importance: float = DEFAULT_FEATURE
    suggested_tier: Tier | None = Field(
        default=None,
        validation_alias=AliasChoices("suggested_tier", "suggestedTier"),
    )
    reasoning: str = ""
    keywords: list[str] = Field(default_factory=list)
    category: str | None = None

    @field_validator("time_sensitivity", "reusability", "specificity", "privacy", "importance", mode="before")
    @classmethod
    def clamp_feature(cls, value: Any) -> float:
        try:
            return clamp(float(value))
        except (TypeError, ValueError):
            return DEFAULT_FEATURE

    @field_validator("suggested_tier", mode="before")
    @classmethod
    def parse_tier(cls, value: Any) -> Tier | None:
        if value is None:
            return None
        try:
            return Tier(str(value).strip().upper())
        except ValueError:
            return None

    @field_validator("reasoning", mode="before")
    @classmethod
    def coerce_reasoning(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("keywords", mode="before")
    @classmethod
    def parse_keywords(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, (list, tuple)):
            return []
        return [str(keyword).strip() for keyword in value if str(keyword).strip()]

    @field_validator("category", mode="before")
    @classmethod
    def coerce_category(cls, value: Any) -> str | None:
        if not isinstance(value, str) or not value.strip():
            return None
        return value.strip()


class FeatureClassifier(ABC):
    """Abstract base class for feature classifiers."""

    @abstractmethod
    async def analyze(self, question: str, answer: str) -> InformationAnalysis:
        """Extract features.

        Raises:
            ClassificationFailure: If no analysis could be produced
        """
        pass


ANALYSIS_PROMPT = """Analyze the following question and answer and rate the information.

Question: {question}
Answer: {answer}

Criteria (each 0.0-1.0):
1. timeSensitivity: does the information become meaningless as time passes?
2. reusability: is it useful to other users?
3. specificity: is it concrete and actionable?
4. privacy: is it personal rather than general?
5. importance: how important is it overall?

Tiers:
- SHORT_TERM: temporary, fast-changing information (schedules, weather, notices)
- MID_TERM: useful for months (semester information, projects, policies)
- LONG_TERM: lasting basic information (regulations, contacts, procedures)

Respond with a JSON object:
{{"timeSensitivity": 0.8, "reusability": 0.7, "specificity": 0.9, "privacy": 0.2,
"importance": 0.8, "suggestedTier": "MID_TERM", "reasoning": "...",
"keywords": ["keyword1", "keyword2"], "category": "general"}}"""


class LLMFeatureClassifier(FeatureClassifier):
    """Asks an LLM to rate the pair."""

    def __init__(self, llm: BaseLLM):
        self.llm = llm

    async def analyze(self, question: str, answer: str) -> InformationAnalysis:
        try:
            payload = await self.llm.generate_json(
                ANALYSIS_PROMPT.format(question=question, answer=answer),
                temperature=0.2,
            )
        except Exception as e:
            raise ClassificationFailure(str(e), component=self.llm.provider_name) from e

        if not payload:
            raise ClassificationFailure("empty or unparseable analysis", component=self.llm.provider_name)
        return InformationAnalysis.model_validate(payload)


_WORD_RE = re.compile(r"[0-9a-z가-힣]+")

# Multi-word and Korean markers match as substrings, the rest as whole words
SHORT_LIVED_MARKERS = ("today", "tomorrow", "tonight", "now", "this week", "weather", "오늘", "내일")
MID_LIVED_MARKERS = ("semester", "this year", "deadline", "schedule", "학기", "올해")
FIRST_PERSON_MARKERS = ("i", "my", "me", "mine", " 나는", " 내가", " 제가", " 저는", " 나의", " 저의", " 제 ", " 내 ")
QUESTION_WORDS = ("what", "when", "where", "who", "which", "how", "why", "무엇", "언제", "어디", "어떻게", "왜")
IMPORTANT_MARKERS = (
    "founded", "requirement", "policy", "graduation", "admission",
    "tuition", "scholarship", "졸업", "입학", "장학",
)


def _contains_marker(text: str, words: set[str], markers: tuple[str, ...]) -> bool:
    for marker in markers:
        if " " in marker or not marker.isascii():
            if marker in text:
                return True
        elif marker in words:
            return True
    return False


class HeuristicFeatureClassifier(FeatureClassifier):
    """Keyword and length heuristics, used when no LLM is configured."""

    async def analyze(self, question: str, answer: str) -> InformationAnalysis:
        text = f"{question} {answer}".lower()
        words = set(_WORD_RE.findall(text))
        question_lower = question.lower()
        question_words = set(_WORD_RE.findall(question_lower))

        if _contains_marker(text, words, SHORT_LIVED_MARKERS):
            time_sensitivity = 0.9
        elif _contains_marker(text, words, MID_LIVED_MARKERS):
            time_sensitivity = 0.5
        else:
            time_sensitivity = 0.1

        first_person = _contains_marker(f" {question_lower} ", question_words, FIRST_PERSON_MARKERS)
        if first_person:
            reusability = 0.4
        elif _contains_marker(question_lower, question_words, QUESTION_WORDS):
            reusability = 0.9
        else:
            reusability = 0.7

        if len(answer) >= 100:
            specificity = 0.8
        elif len(answer) >= 30:
            specificity = 0.6
        else:
            specificity = 0.3
        if any(ch.isdigit() for ch in answer):
            specificity = min(1.0, specificity + 0.1)

        importance = 0.9 if _contains_marker(text, words, IMPORTANT_MARKERS) else 0.6

        return InformationAnalysis(
            time_sensitivity=time_sensitivity,
            reusability=reusability,
            specificity=specificity,
            privacy=0.8 if first_person else 0.0,
            importance=importance,
            reasoning="heuristic analysis",
        )
