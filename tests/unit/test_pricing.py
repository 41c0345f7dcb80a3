"""
Unit tests for phase pricing, bid increments and revenue splits.
"""

from decimal import Decimal

import pytest

from skysale.core.pricing import (
    badge_for_score,
    format_cents,
    item_price,
    item_price_cents,
    minimum_increment,
    minimum_next_bid,
    phase_multiplier,
    split_revenue,
)


# =============================================================================
# Phase Pricing Tests
# =============================================================================


class TestPhasePricing:
    """Tests for the compounding phase multiplier."""

    def test_phase_one_is_base_price(self):
        """Phase 1 applies no increase."""
        assert phase_multiplier(1) == Decimal(1)
        assert item_price_cents(300, 1) == 3000

    def test_phase_two_price(self):
        """300 points at phase 2: 300 * 0.10 * 1.075 = $32.25."""
        assert item_price(300, 2) == Decimal("32.25")
        assert item_price_cents(300, 2) == 3225

    def test_multiplier_compounds(self):
        assert phase_multiplier(3) == Decimal("1.075") ** 2

    def test_rounds_half_up(self):
        """1 point at phase 2 is $0.1075, which rounds to $0.11."""
        assert item_price_cents(1, 2) == 11

    def test_custom_increase_percent(self):
        assert item_price_cents(400, 2, increase_percent="10") == 4400

    def test_invalid_phase(self):
        with pytest.raises(ValueError):
            phase_multiplier(0)


# =============================================================================
# Bid Increment Tests
# =============================================================================


class TestBidIncrement:
    """Tests for the minimum next bid."""

    def test_floor_applies_to_small_bids(self):
        """5% of $100 is below the $25 floor."""
        assert minimum_increment(10_000) == 2500
        assert minimum_next_bid(10_000) == 12_500

    def test_percentage_applies_to_large_bids(self):
        """5% of $500 is exactly the floor; 5% of $1000 is $50."""
        assert minimum_next_bid(50_000) == 52_500
        assert minimum_next_bid(100_000) == 105_000

    def test_fractional_cents_round_up(self):
        assert minimum_increment(50_001) == 2501


# =============================================================================
# Revenue Split Tests
# =============================================================================


class TestRevenueSplit:
    """Tests for the creator/partner split."""

    def test_seventy_thirty(self):
        split = split_revenue("a1", 100_000)
        assert split.creator_cents == 70_000
        assert split.partner_cents == 30_000
        assert split.transaction_type == "AUCTION"

    def test_parts_sum_to_total(self):
        """Odd cents go to the partner."""
        split = split_revenue("a2", 12_345)
        assert split.creator_cents == 8641
        assert split.creator_cents + split.partner_cents == 12_345


class TestDisplay:
    def test_badges(self):
        assert badge_for_score(430) == "ELITE"
        assert badge_for_score(400) == "PREMIUM"
        assert badge_for_score(380) == "EXCEPTIONAL"
        assert badge_for_score(350) == "STANDARD"
        assert badge_for_score(349) is None

    def test_format_cents(self):
        assert format_cents(125_050) == "$1,250.50"
