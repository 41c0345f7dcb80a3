"""
Unit tests for the fixed-price tier scheduler.
"""

from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest

from skysale.core.errors import TierError
from skysale.core.models import ItemStatus
from skysale.core.tiers import TierScheduler, create_tiers

PHASE = timedelta(weeks=2)


@pytest.fixture
def scheduler(store, clock, config):
    return TierScheduler(store, clock, config)


@pytest.fixture
def tiers(store):
    return create_tiers(store, 3, duration=PHASE)


@pytest.fixture
def item(store):
    return store.add_item("Aldebaran", 300)


# =============================================================================
# Setup Tests
# =============================================================================


class TestCreateTiers:
    def test_prices_and_quantities(self, tiers):
        assert [t.phase for t in tiers] == [1, 2, 3]
        assert tiers[0].price == Decimal("1.0000")
        assert tiers[1].price == Decimal("1.0750")
        assert tiers[2].price == Decimal("1.1556")
        assert tiers[0].quantity_available == 1000
        assert tiers[1].quantity_available == 250
        assert not any(t.active for t in tiers)


# =============================================================================
# Transition Tests
# =============================================================================


class TestAdvance:
    """Tests for expiry-driven phase transitions."""

    def test_no_tiers(self, scheduler):
        assert scheduler.advance_tier_if_expired() is None

    def test_bootstrap_phase_one(self, scheduler, store, tiers, item, clock):
        activated = scheduler.advance_tier_if_expired()
        assert activated.phase == 1
        assert activated.start_time == clock.now()
        assert store.get_item(item.item_id).price_cents == 3000

    def test_not_expired(self, scheduler, tiers, clock):
        scheduler.advance_tier_if_expired()
        clock.advance(PHASE - timedelta(seconds=1))
        assert scheduler.advance_tier_if_expired() is None

    def test_advance_reprices(self, scheduler, store, tiers, item, clock):
        """300 points at phase 2 costs $32.25."""
        sold = store.add_item("Sold Star", 300, status=ItemStatus.SOLD, price_cents=3000)
        scheduler.advance_tier_if_expired()
        clock.advance(PHASE)

        activated = scheduler.advance_tier_if_expired()
        assert activated.phase == 2
        assert store.get_item(item.item_id).price_cents == 3225
        assert store.get_item(sold.item_id).price_cents == 3000
        assert store.count_active_tiers() == 1
        assert store.get_active_tier().phase == 2

    def test_late_tick_resets_start(self, scheduler, store, tiers, clock):
        """A missed deadline starts the next phase at the tick, not the old end."""
        scheduler.advance_tier_if_expired()
        clock.advance(PHASE + timedelta(days=3))
        activated = scheduler.advance_tier_if_expired()
        assert activated.start_time == clock.now()

    def test_one_phase_per_tick(self, scheduler, store, tiers, clock):
        scheduler.advance_tier_if_expired()
        clock.advance(PHASE * 5)
        assert scheduler.advance_tier_if_expired().phase == 2
        assert store.get_active_tier().phase == 2

    def test_final_tier_stays_active(self, scheduler, store, tiers, clock):
        scheduler.advance_tier_if_expired()
        for _ in range(2):
            clock.advance(PHASE)
            scheduler.advance_tier_if_expired()
        assert store.get_active_tier().phase == 3

        clock.advance(PHASE * 2)
        assert scheduler.advance_tier_if_expired() is None
        assert store.get_active_tier().phase == 3
        assert scheduler.next_transition_at() is None

    def test_batched_repricing(self, store, clock, config, tiers):
        scheduler = TierScheduler(store, clock, replace(config, price_batch_size=2))
        ids = [store.add_item(f"Star {i}", 400).item_id for i in range(5)]
        scheduler.advance_tier_if_expired()
        assert {store.get_item(i).price_cents for i in ids} == {4000}

    def test_custom_increase_percent(self, scheduler, store, tiers, item, clock):
        scheduler.advance_tier_if_expired()
        scheduler.set_increase_percent("10")
        clock.advance(PHASE)
        scheduler.advance_tier_if_expired()
        assert store.get_item(item.item_id).price_cents == 3300

    def test_invalid_increase_percent(self, scheduler):
        with pytest.raises(TierError):
            scheduler.set_increase_percent(150)
        with pytest.raises(TierError):
            scheduler.set_increase_percent("lots")


# =============================================================================
# Admin Tests
# =============================================================================


class TestPauseResume:
    """Tests for pausing the phase timer."""

    def test_paused_tier_does_not_expire(self, scheduler, store, tiers, clock):
        scheduler.advance_tier_if_expired()
        scheduler.pause()
        clock.advance(PHASE * 2)
        assert scheduler.advance_tier_if_expired() is None
        assert store.get_active_tier().phase == 1
        assert scheduler.next_transition_at() is None

    def test_resume_extends_window(self, scheduler, store, tiers, clock):
        start = clock.now()
        scheduler.advance_tier_if_expired()
        clock.advance(days=1)
        scheduler.pause()
        clock.advance(days=3)
        assert scheduler.resume() == timedelta(days=3)

        assert scheduler.next_transition_at() == start + PHASE + timedelta(days=3)
        clock.set(start + PHASE + timedelta(days=2))
        assert scheduler.advance_tier_if_expired() is None
        clock.set(start + PHASE + timedelta(days=3))
        assert scheduler.advance_tier_if_expired().phase == 2

    def test_pause_offset_cleared_on_transition(self, scheduler, store, tiers, clock):
        scheduler.advance_tier_if_expired()
        scheduler.pause()
        clock.advance(days=1)
        scheduler.resume()
        clock.advance(PHASE)
        phase2 = scheduler.advance_tier_if_expired()
        assert scheduler.tier_end(store.get_active_tier()) == phase2.start_time + PHASE

    def test_double_pause(self, scheduler, tiers):
        scheduler.pause()
        with pytest.raises(TierError):
            scheduler.pause()

    def test_resume_when_running(self, scheduler, tiers):
        with pytest.raises(TierError):
            scheduler.resume()


class TestForceAdvance:
    """Tests for manual advancement."""

    def test_force_advance(self, scheduler, store, tiers, item, clock):
        scheduler.advance_tier_if_expired()
        clock.advance(hours=1)
        tier = scheduler.force_advance()
        assert tier.phase == 2
        assert tier.start_time == clock.now()
        assert store.get_item(item.item_id).price_cents == 3225

    def test_force_advance_clears_pause(self, scheduler, tiers):
        scheduler.advance_tier_if_expired()
        scheduler.pause()
        scheduler.force_advance()
        assert not scheduler.is_paused

    def test_no_active_tier(self, scheduler, tiers):
        with pytest.raises(TierError):
            scheduler.force_advance()

    def test_final_phase(self, scheduler, tiers):
        scheduler.advance_tier_if_expired()
        scheduler.force_advance()
        scheduler.force_advance()
        with pytest.raises(TierError):
            scheduler.force_advance()


class TestStatus:
    def test_status(self, scheduler, tiers, clock):
        scheduler.advance_tier_if_expired()
        clock.advance(days=4)
        status = scheduler.status()
        assert status["phase"] == 1
        assert status["time_remaining"] == timedelta(days=10)
        assert not status["paused"]
        assert not status["is_final"]

    def test_status_before_launch(self, scheduler, tiers):
        assert scheduler.status() == {"phase": None, "paused": False}
