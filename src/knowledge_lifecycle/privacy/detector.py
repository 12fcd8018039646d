"""Personal-data detection.

`PersonalDataClassifier` is the capability the rest of the engine consumes;
`PatternPersonalDataClassifier` is the default regex-based implementation
covering Korean and English formats.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

# Matches below this confidence are discarded
MIN_CONFIDENCE = 0.5


@dataclass
class PersonalDataMatch:
    """One detected fragment."""

    type: str
    value: str
    confidence: float


@dataclass
class PersonalDataResult:
    has_personal_data: bool = False
    types: list[str] = field(default_factory=list)
    matches: list[PersonalDataMatch] = field(default_factory=list)

    @classmethod
    def from_matches(cls, matches: list[PersonalDataMatch]) -> "PersonalDataResult":
        types: list[str] = []
        for match in matches:
            if match.type not in types:
                types.append(match.type)
        return cls(has_personal_data=bool(matches), types=types, matches=matches)


class PersonalDataClassifier(ABC):
    """Abstract base class for personal-data classifiers."""

    @abstractmethod
    async def classify(self, text: str) -> PersonalDataResult:
        """Detect personal data in text."""
        pass


@dataclass(frozen=True)
class _Pattern:
    type: str
    regex: re.Pattern
    confidence: float
    group: int = 0


def _p(type_: str, pattern: str, confidence: float, group: int = 0, flags: int = 0) -> _Pattern:
    return _Pattern(type_, re.compile(pattern, flags), confidence, group)


_I = re.IGNORECASE

PATTERNS: list[_Pattern] = [
    # Email
    _p("email", r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b", 0.9),
    # Phone numbers (KR mobile, KR landline, US)
    _p("phone", r"(?<!\d)(?:\+82-?|0)1[016789]-?\d{3,4}-?\d{4}(?!\d)", 0.85),
    _p("phone", r"(?<!\d)(?:\+82-?|0)(?:2|3[1-3]|4[1-4]|5[1-5]|6[1-4])-?\d{3,4}-?\d{4}(?!\d)", 0.85),
    _p("phone", r"\b\d{3}-\d{3}-\d{4}\b", 0.85),
    _p("phone", r"\(\d{3}\)\s*\d{3}-\d{4}\b", 0.85),
    _p("phone", r"\b\d{3}\.\d{3}\.\d{4}\b", 0.85),
    # Birthdays and full dates
    _p("birthday", r"\b(?:19|20)\d{2}\s?년\s?(?:0?[1-9]|1[0-2])\s?월\s?(?:0?[1-9]|[12]\d|3[01])\s?일", 0.8),
    _p("birthday", r"\b(?:0?[1-9]|1[0-2])[/.-](?:0?[1-9]|[12]\d|3[01])[/.-](?:19|20)\d{2}\b", 0.8),
    _p("birthday", r"\b(?:19|20)\d{2}[/.-](?:0?[1-9]|1[0-2])[/.-](?:0?[1-9]|[12]\d|3[01])\b", 0.8),
    # Resident registration number
    _p("residence_number", r"\b\d{6}[-\s]?[1-4]\d{6}\b", 0.95),
    # Credit card
    _p("credit_card", r"\b(?:\d{4}[-\s]){3}\d{4}\b", 0.9),
    # Student id, labelled
    _p("student_id", r"(?:학번|student\s*(?:id|number))[:：\s]*((?=[A-Z_-]*\d)[A-Z0-9_-]{6,15})", 0.9, group=1, flags=_I),
    _p("student_id", r"\bmy\s+(?:student\s+)?(?:id|number)\s+is[:：\s]*((?=[A-Z_-]*\d)[A-Z0-9_-]{6,15})", 0.9, group=1, flags=_I),
    _p("student_id", r"\b(?:matric|registration)[:：\s]*((?=[A-Z_-]*\d)[A-Z0-9_-]{6,15})", 0.9, group=1, flags=_I),
    _p("student_id", r"\b\d{2}학번\s*(\d{6,8})\b", 0.9, group=1),
    # Password
    _p("password", r"(?:password|pwd|비밀번호|패스워드|비번|암호)\s*(?:is|[:：=])\s*(\S{4,})", 0.85, group=1, flags=_I),
    # Verification codes
    _p("code", r"(?:code|코드|인증번호|확인번호|verification)\s*(?:is|[:：=])?\s*((?=[A-Z]*\d)[A-Z0-9]{4,10})\b", 0.7, group=1, flags=_I),
    # Address (KR)
    _p("address", r"(?:서울|부산|대구|인천|광주|대전|울산|경기|강원|충북|충남|전북|전남|경북|경남|제주)(?:특별시|광역시|도)?\s+[\w\s-]*?(?:로|길|동)\s*\d+", 0.75),
    # Schedules and appointments
    _p("schedule", r"(?:내일|오늘|모레|다음\s?주|이번\s?주|다음\s?달|이번\s?달)\s*\d{1,2}\s*시", 0.6),
    _p("schedule", r"\d{1,2}월\s*\d{1,2}일\s*\d{1,2}\s*시", 0.6),
    _p("schedule", r"\bmy\s+(?:schedule|appointment|meeting|calendar|plans?)\b", 0.7, flags=_I),
    _p(
        "schedule",
        r"\b(?:today|tonight|tomorrow|next\s+\w+day|on\s+(?:mon|tues|wednes|thurs|fri|satur|sun)day)\s+at\s+\d{1,2}(?::\d{2})?\s*(?:am|pm)?\b",
        0.6,
        flags=_I,
    ),
    _p("schedule", r"\b\d{1,2}(?::\d{2})?\s*(?:am|pm)\s+(?:today|tonight|tomorrow)\b", 0.6, flags=_I),
    # Implicit personal information
    _p("personal_info", r"(?:나는|저는|내가|제가)\s*[\w\s]*?(?:살아|살고|거주|산다)", 0.5),
    _p("personal_info", r"\bmy\s+name\s+is\s+\w+", 0.5, flags=_I),
    _p("personal_info", r"(?:제|내)\s*이름은\s*\w+", 0.5),
    _p("personal_info", r"\bI\s+live\s+(?:in|at|on)\s+\w+", 0.5, flags=_I),
    _p("personal_info", r"\b(?:나이|age)[:：\s]*\d{1,3}\b", 0.5, flags=_I),
]


class PatternPersonalDataClassifier(PersonalDataClassifier):
    """Regex-based classifier.

    Matches below MIN_CONFIDENCE are dropped and duplicate (type, value)
    pairs are reported once.
    """

    def __init__(self, patterns: list[_Pattern] | None = None):
        self.patterns = patterns if patterns is not None else PATTERNS

    def detect(self, text: str) -> list[PersonalDataMatch]:
        matches: list[PersonalDataMatch] = []
        seen: set[tuple[str, str]] = set()

        for pattern in self.patterns:
            if pattern.confidence < MIN_CONFIDENCE:
                continue
            for found in pattern.regex.finditer(text):
                value = (found.group(pattern.group) or "").strip()
                if not value:
                    continue
                key = (pattern.type, value)
                if key in seen:
                    continue
                seen.add(key)
                matches.append(PersonalDataMatch(pattern.type, value, pattern.confidence))

        return matches

    async def classify(self, text: str) -> PersonalDataResult:
        if not text:
            return PersonalDataResult()
        return PersonalDataResult.from_matches(self.detect(text))
