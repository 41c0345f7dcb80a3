"""
Tier Scheduler - advances the fixed-price sale through its phases.

Exactly one tier is active after bootstrap. When the active tier's
window (start + duration + accumulated pause) has passed, the scheduler
deactivates it, activates the next phase with start_time = now, and
reprices every AVAILABLE item for the new phase. All three steps commit
together, so readers never see the new tier with old prices.

Pausing freezes the window; the paused time is added to the active
tier's end on resume and cleared on the next transition.
"""

from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

from skysale.core.clock import SystemClock, from_millis, to_millis
from skysale.core.config import EngineConfig
from skysale.core.errors import TierError
from skysale.core.models import ItemStatus, Tier
from skysale.core.pricing import item_price_cents, phase_multiplier
from skysale.core.storage import CatalogStore
from skysale.utils.logger import get_logger

logger = get_logger("tiers")

# engine_settings keys
PHASE_PAUSED = "phase_paused"
PAUSED_AT = "paused_at"
PAUSE_DURATION_MS = "pause_duration_ms"
INCREASE_PERCENT = "phase_increase_percent"


class TierScheduler:
    """Owns the single-active-tier invariant and catalog repricing."""

    def __init__(
        self,
        store: CatalogStore,
        clock=None,
        config: Optional[EngineConfig] = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.config = config or EngineConfig()

    # =========================================================================
    # Settings
    # =========================================================================

    @property
    def increase_percent(self) -> Decimal:
        stored = self.store.get_setting(INCREASE_PERCENT)
        return Decimal(stored if stored is not None else self.config.phase_increase_percent)

    def set_increase_percent(self, percent) -> Decimal:
        """Change the per-phase step; applies from the next repricing."""
        try:
            value = Decimal(str(percent))
        except InvalidOperation as e:
            raise TierError(f"Invalid increase percent: {percent!r}") from e
        if not Decimal(0) <= value <= Decimal(100):
            raise TierError(f"Increase percent must be between 0 and 100, got {value}")
        self.store.set_setting(INCREASE_PERCENT, str(value))
        logger.info(f"Phase increase set to {value}%")
        return value

    @property
    def is_paused(self) -> bool:
        return self.store.get_setting(PHASE_PAUSED) == "1"

    def _pause_offset(self) -> timedelta:
        return timedelta(milliseconds=int(self.store.get_setting(PAUSE_DURATION_MS) or 0))

    def tier_end(self, tier: Tier) -> Optional[datetime]:
        """End of a tier's window including accumulated pause time."""
        if tier.end_time is None:
            return None
        return tier.end_time + self._pause_offset()

    # =========================================================================
    # Transitions
    # =========================================================================

    def advance_tier_if_expired(self) -> Optional[Tier]:
        """
        Bootstrap phase 1 or advance past an expired tier.

        Returns:
            The newly activated tier, or None if nothing changed
        """
        now = self.clock.now()

        with self.store.transaction():
            active = self.store.get_active_tier()

            if active is None:
                phase1 = self.store.get_tier_by_phase(1)
                if phase1 is None:
                    logger.warning("No tiers configured, nothing to activate")
                    return None
                activated = self._activate(phase1, now)
                logger.info("Activated Phase 1")
                return activated

            if self.is_paused:
                logger.debug(f"Phase {active.phase} timer paused")
                return None

            if now < self.tier_end(active):
                return None

            next_tier = self.store.get_tier_by_phase(active.phase + 1)
            if next_tier is None:
                logger.debug(f"Already at final tier (phase {active.phase})")
                return None

            return self._flip(active, next_tier, now)

    def force_advance(self) -> Tier:
        """
        Advance to the next phase immediately (admin action).

        Raises:
            TierError: no active tier, or already at the final phase
        """
        now = self.clock.now()
        with self.store.transaction():
            active = self.store.get_active_tier()
            if active is None:
                raise TierError("No active tier found")
            next_tier = self.store.get_tier_by_phase(active.phase + 1)
            if next_tier is None:
                raise TierError("Already at the last phase")
            return self._flip(active, next_tier, now)

    def _flip(self, current: Tier, next_tier: Tier, now: datetime) -> Tier:
        """Deactivate, activate, reset pause and reprice; caller holds the transaction."""
        if not self.store.deactivate_tier(current.tier_id):
            raise TierError(f"Phase {current.phase} was not active")
        activated = self._activate(next_tier, now)

        self.store.set_setting(PHASE_PAUSED, "0")
        self.store.set_setting(PAUSED_AT, None)
        self.store.set_setting(PAUSE_DURATION_MS, "0")

        logger.info(
            f"Tier advanced to Phase {activated.phase}, "
            f"multiplier {phase_multiplier(activated.phase, self.increase_percent):.4f}"
        )
        return activated

    def _activate(self, tier: Tier, now: datetime) -> Tier:
        if not self.store.activate_tier(tier.tier_id, now):
            raise TierError(f"Phase {tier.phase} could not be activated")
        count = self.reprice_catalog(tier.phase)
        logger.info(f"Repriced {count} available items for phase {tier.phase}")
        return self.store.get_tier_by_phase(tier.phase)

    def reprice_catalog(self, phase: int) -> int:
        """
        Recompute the price of every AVAILABLE item for `phase`.

        Writes in batches of `price_batch_size`; when called inside a
        transaction the whole pass commits with it.
        """
        base = self.config.base_price_per_point
        percent = self.increase_percent
        total = 0

        with self.store.transaction():
            for batch in self.store.iter_item_scores(ItemStatus.AVAILABLE, self.config.price_batch_size):
                total += self.store.update_item_prices(
                    [(item_id, item_price_cents(score, phase, base, percent)) for item_id, score in batch]
                )
        return total

    # =========================================================================
    # Pause / resume
    # =========================================================================

    def pause(self) -> datetime:
        """Freeze the active tier's timer."""
        now = self.clock.now()
        with self.store.transaction():
            if self.is_paused:
                raise TierError("Phase timer is already paused")
            self.store.set_setting(PHASE_PAUSED, "1")
            self.store.set_setting(PAUSED_AT, str(to_millis(now)))
        logger.info("Phase timer paused")
        return now

    def resume(self) -> timedelta:
        """
        Restart the timer, pushing the active tier's end back by the pause.

        Returns:
            How long this pause lasted
        """
        now = self.clock.now()
        with self.store.transaction():
            if not self.is_paused:
                raise TierError("Phase timer is not paused")
            paused_at = from_millis(int(self.store.get_setting(PAUSED_AT) or to_millis(now)))
            paused_for = max(now - paused_at, timedelta(0))
            total = self._pause_offset() + paused_for

            self.store.set_setting(PHASE_PAUSED, "0")
            self.store.set_setting(PAUSED_AT, None)
            self.store.set_setting(PAUSE_DURATION_MS, str(total // timedelta(milliseconds=1)))
        logger.info(f"Phase timer resumed after {paused_for}")
        return paused_for

    # =========================================================================
    # Status
    # =========================================================================

    def status(self) -> Dict:
        """Snapshot of the fixed-price sale for display."""
        now = self.clock.now()
        active = self.store.get_active_tier()
        if active is None:
            return {"phase": None, "paused": self.is_paused}

        ends_at = self.tier_end(active)
        return {
            "phase": active.phase,
            "multiplier": phase_multiplier(active.phase, self.increase_percent),
            "started_at": active.start_time,
            "ends_at": ends_at,
            "time_remaining": max(ends_at - now, timedelta(0)),
            "quantity_available": active.quantity_available,
            "quantity_sold": active.quantity_sold,
            "paused": self.is_paused,
            "is_final": self.store.get_tier_by_phase(active.phase + 1) is None,
        }

    def next_transition_at(self) -> Optional[datetime]:
        """When the active tier expires, if it can."""
        active = self.store.get_active_tier()
        if active is None or self.is_paused:
            return None
        if self.store.get_tier_by_phase(active.phase + 1) is None:
            return None
        return self.tier_end(active)
