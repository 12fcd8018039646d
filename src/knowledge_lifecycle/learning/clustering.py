"""Lexical clustering of user questions.

Questions are compared by Jaccard similarity over their word sets. Clusters
feed cluster promotion and answer-optimization flags.
"""

import re
from dataclasses import dataclass, field

_TOKEN_RE = re.compile(r"[0-9a-z가-힣]+")

# English function words plus common Korean particles
STOP_WORDS = frozenset(
    {
        "a", "an", "and", "are", "at", "be", "can", "did", "do", "does", "for",
        "how", "i", "in", "is", "it", "me", "my", "of", "on", "or", "the", "to",
        "was", "what", "when", "where", "which", "who", "why", "with", "you",
        "은", "는", "이", "가", "을", "를", "에", "에서", "으로", "와", "과", "의", "에게",
    }
)


def tokenize(text: str) -> list[str]:
    """Lower-case word tokens (latin, digits and hangul)."""
    return _TOKEN_RE.findall(text.lower())


def jaccard_similarity(text1: str, text2: str) -> float:
    """Word-set Jaccard similarity in [0, 1]."""
    words1 = set(tokenize(text1))
    words2 = set(tokenize(text2))
    if not words1 and not words2:
        return 0.0
    return len(words1 & words2) / len(words1 | words2)


def extract_keywords(text: str, max_keywords: int = 5) -> list[str]:
    """Distinct non-stop-word tokens in order of appearance."""
    keywords: list[str] = []
    for word in tokenize(text):
        if len(word) <= 1 or word in STOP_WORDS or word in keywords:
            continue
        keywords.append(word)
        if len(keywords) >= max_keywords:
            break
    return keywords


def generate_cluster_name(question: str) -> str:
    return "_".join(extract_keywords(question)[:2]) or "general"


@dataclass
class QuestionPattern:
    """A distinct question seen in the learning queue."""

    user_message: str
    bot_response: str
    frequency: int = 1
    avg_feedback: float | None = None
    avg_confidence: float = 0.0


@dataclass
class QuestionCluster:
    name: str
    members: list[QuestionPattern] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)

    @property
    def member_count(self) -> int:
        return len(self.members)

    @property
    def total_frequency(self) -> int:
        return sum(member.frequency for member in self.members)

    @property
    def avg_confidence(self) -> float:
        if not self.members:
            return 0.0
        return sum(member.avg_confidence for member in self.members) / len(self.members)

    @property
    def avg_feedback(self) -> float | None:
        """Frequency-weighted rating over members that have feedback."""
        rated = [member for member in self.members if member.avg_feedback is not None]
        weight = sum(member.frequency for member in rated)
        if not weight:
            return None
        return sum(member.avg_feedback * member.frequency for member in rated) / weight

    @property
    def representative(self) -> QuestionPattern:
        return max(self.members, key=lambda member: member.frequency)


def cluster_questions(
    patterns: list[QuestionPattern],
    threshold: float = 0.7,
) -> list[QuestionCluster]:
    """Greedy single-pass clustering.

    Each unassigned pattern seeds a cluster and absorbs every later unassigned
    pattern whose similarity to the seed exceeds `threshold`.
    """
    clusters: list[QuestionCluster] = []
    assigned: set[int] = set()

    for index, seed in enumerate(patterns):
        if index in assigned:
            continue
        assigned.add(index)
        cluster = QuestionCluster(
            name=generate_cluster_name(seed.user_message),
            members=[seed],
            keywords=extract_keywords(seed.user_message),
        )
        for other_index in range(index + 1, len(patterns)):
            if other_index in assigned:
                continue
            other = patterns[other_index]
            if jaccard_similarity(seed.user_message, other.user_message) > threshold:
                cluster.members.append(other)
                assigned.add(other_index)
        clusters.append(cluster)

    return clusters
