"""Phased fixed-price sale: tier setup and scheduling"""
from datetime import timedelta
from decimal import Decimal
from typing import List

from skysale.core.models import Tier
from skysale.core.pricing import DEFAULT_INCREASE_PERCENT, phase_multiplier
from skysale.core.storage import CatalogStore
from skysale.core.tiers.scheduler import TierScheduler

# Phase 1 sells the first 1000 items, every later phase 250 more
FIRST_PHASE_QUANTITY = 1000
LATER_PHASE_QUANTITY = 250


def create_tiers(
    store: CatalogStore,
    phases: int,
    duration: timedelta = timedelta(weeks=2),
    increase_percent: Decimal = DEFAULT_INCREASE_PERCENT,
    first_quantity: int = FIRST_PHASE_QUANTITY,
    later_quantity: int = LATER_PHASE_QUANTITY,
) -> List[Tier]:
    """Create inactive tiers 1..phases; done once at catalog setup."""
    tiers = []
    with store.transaction():
        for phase in range(1, phases + 1):
            tiers.append(store.add_tier(
                phase=phase,
                price=phase_multiplier(phase, increase_percent).quantize(Decimal("0.0001")),
                quantity_available=first_quantity if phase == 1 else later_quantity,
                duration=duration,
            ))
    return tiers


__all__ = ["TierScheduler", "create_tiers"]
