"""Tests for tier policies and the decay model."""

import math
from datetime import datetime, timedelta

import pytest

from knowledge_lifecycle.lifecycle.tiers import (
    SCORE_FLOOR,
    TIER_POLICIES,
    current_score,
    days_elapsed,
    get_policy,
    should_archive,
)
from knowledge_lifecycle.models import Tier


class TestTierPolicies:
    """Tests for the policy table."""

    def test_policy_values(self):
        assert TIER_POLICIES[Tier.SHORT_TERM].decay_rate == 0.5
        assert TIER_POLICIES[Tier.SHORT_TERM].max_lifespan_days == 7
        assert TIER_POLICIES[Tier.SHORT_TERM].base_priority == 3
        assert TIER_POLICIES[Tier.MID_TERM].decay_rate == 0.05
        assert TIER_POLICIES[Tier.MID_TERM].max_lifespan_days == 365
        assert TIER_POLICIES[Tier.MID_TERM].base_priority == 7
        assert TIER_POLICIES[Tier.LONG_TERM].decay_rate == 0.001
        assert TIER_POLICIES[Tier.LONG_TERM].max_lifespan_days == 3650
        assert TIER_POLICIES[Tier.LONG_TERM].base_priority == 10

    def test_get_policy_accepts_strings(self):
        assert get_policy("MID_TERM") is TIER_POLICIES[Tier.MID_TERM]

    def test_get_policy_rejects_unknown_tier(self):
        with pytest.raises(ValueError):
            get_policy("FOREVER")


class TestCurrentScore:
    """Tests for current_score."""

    def test_no_elapsed_time_keeps_score(self):
        assert current_score(0.8, 0, Tier.MID_TERM) == pytest.approx(0.8)

    def test_exponential_decay(self):
        assert current_score(0.8, 10, Tier.MID_TERM) == pytest.approx(0.8 * math.exp(-0.5))

    def test_floor(self):
        assert current_score(0.9, 30, Tier.SHORT_TERM) == SCORE_FLOOR

    def test_negative_days_treated_as_zero(self):
        assert current_score(0.6, -5, Tier.SHORT_TERM) == pytest.approx(0.6)

    @pytest.mark.parametrize("tier", list(Tier))
    @pytest.mark.parametrize("score", [0.0, 0.05, 0.3, 0.75, 1.0])
    def test_monotonic_and_floored(self, tier, score):
        """Scores never increase with time and never drop below the floor."""
        previous = current_score(score, 0, tier)
        for days in range(0, 4000, 37):
            value = current_score(score, days, tier)
            assert value <= previous
            assert value >= SCORE_FLOOR
            previous = value


class TestArchival:
    """Tests for should_archive and days_elapsed."""

    def test_short_term_boundaries(self):
        assert should_archive(8, Tier.SHORT_TERM) is True
        assert should_archive(7, Tier.SHORT_TERM) is True
        assert should_archive(6, Tier.SHORT_TERM) is False

    def test_mid_term_after_400_days(self):
        assert should_archive(400, Tier.MID_TERM) is True
        assert should_archive(364, Tier.MID_TERM) is False

    def test_days_elapsed_floors_partial_days(self):
        now = datetime(2024, 5, 10, 12, 0)
        assert days_elapsed(now - timedelta(days=6, hours=23), now) == 6

    def test_days_elapsed_never_negative(self):
        now = datetime(2024, 5, 10)
        assert days_elapsed(now + timedelta(days=2), now) == 0
