"""Tier policies and the exponential decay model."""

import math
from dataclasses import dataclass
from datetime import datetime

from knowledge_lifecycle.models import Tier

# Decayed scores never drop below this floor
SCORE_FLOOR = 0.1


@dataclass(frozen=True)
class TierPolicy:
    decay_rate: float  # per day
    max_lifespan_days: int
    base_priority: int


TIER_POLICIES: dict[Tier, TierPolicy] = {
    Tier.SHORT_TERM: TierPolicy(decay_rate=0.5, max_lifespan_days=7, base_priority=3),
    Tier.MID_TERM: TierPolicy(decay_rate=0.05, max_lifespan_days=365, base_priority=7),
    Tier.LONG_TERM: TierPolicy(decay_rate=0.001, max_lifespan_days=3650, base_priority=10),
}


def get_policy(tier: Tier | str) -> TierPolicy:
    return TIER_POLICIES[Tier(tier)]


def current_score(original_score: float, days: float, tier: Tier | str) -> float:
    """Decayed score: original * e^(-rate * days), floored at 0.1."""
    policy = get_policy(tier)
    return max(SCORE_FLOOR, original_score * math.exp(-policy.decay_rate * max(days, 0)))


def should_archive(days: float, tier: Tier | str) -> bool:
    return days >= get_policy(tier).max_lifespan_days


def days_elapsed(since: datetime, now: datetime) -> int:
    """Whole days between two timestamps (floor, never negative)."""
    return max(0, (now - since).days)
