"""
Pricing - fixed-sale prices, bid increments and revenue splits.

Fixed-sale price of an item:
    score * base_price_per_point * (1 + increase_percent / 100) ** (phase - 1)

Prices compound per phase and are rounded half-up to the cent. Bid
increments and revenue splits work in integer cents.
"""

from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP
from typing import Optional, Union

from skysale.core.models import RevenueSplit

Number = Union[str, int, float, Decimal]

CENT = Decimal("0.01")
DEFAULT_BASE_PRICE_PER_POINT = Decimal("0.10")
DEFAULT_INCREASE_PERCENT = Decimal("7.5")

MAX_SCORE = 500

# Minimum score for each badge, highest first
BADGE_THRESHOLDS = [
    ("ELITE", 425),
    ("PREMIUM", 400),
    ("EXCEPTIONAL", 375),
    ("STANDARD", 350),
]


def _dec(value: Number) -> Decimal:
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def phase_multiplier(phase: int, increase_percent: Number = DEFAULT_INCREASE_PERCENT) -> Decimal:
    """Compounded multiplier for a phase; phase 1 is 1.0."""
    if phase < 1:
        raise ValueError(f"phase must be >= 1, got {phase}")
    base = 1 + _dec(increase_percent) / 100
    return base ** (phase - 1)


def item_price(
    score: int,
    phase: int,
    base_price_per_point: Number = DEFAULT_BASE_PRICE_PER_POINT,
    increase_percent: Number = DEFAULT_INCREASE_PERCENT,
) -> Decimal:
    """Dollar price of an item at a phase, rounded to the cent."""
    raw = _dec(score) * _dec(base_price_per_point) * phase_multiplier(phase, increase_percent)
    return raw.quantize(CENT, rounding=ROUND_HALF_UP)


def item_price_cents(
    score: int,
    phase: int,
    base_price_per_point: Number = DEFAULT_BASE_PRICE_PER_POINT,
    increase_percent: Number = DEFAULT_INCREASE_PERCENT,
) -> int:
    return int(item_price(score, phase, base_price_per_point, increase_percent) * 100)


def minimum_increment(
    current_bid_cents: int,
    rate: float = 0.05,
    floor_cents: int = 2500,
) -> int:
    """Smallest allowed raise over the current bid."""
    raw = _dec(current_bid_cents) * _dec(rate)
    return max(int(raw.to_integral_value(rounding=ROUND_CEILING)), floor_cents)


def minimum_next_bid(
    current_bid_cents: int,
    rate: float = 0.05,
    floor_cents: int = 2500,
) -> int:
    """
    Minimum acceptable bid given the current bid.

    current + max(current * rate, floor), in cents.
    """
    return current_bid_cents + minimum_increment(current_bid_cents, rate, floor_cents)


def split_revenue(
    transaction_id: str,
    total_cents: int,
    creator_share: float = 0.70,
    transaction_type: str = "AUCTION",
) -> RevenueSplit:
    """
    Split a sale between creator and partner.

    Creator share is floored; the partner gets the remainder so the two
    always add up to the total.
    """
    creator = int((_dec(total_cents) * _dec(creator_share)).to_integral_value(rounding=ROUND_FLOOR))
    return RevenueSplit(
        transaction_id=transaction_id,
        transaction_type=transaction_type,
        total_cents=total_cents,
        creator_cents=creator,
        partner_cents=total_cents - creator,
    )


def badge_for_score(score: int) -> Optional[str]:
    """Badge name for a score, or None below the lowest threshold."""
    for badge, minimum in BADGE_THRESHOLDS:
        if score >= minimum:
            return badge
    return None


def format_cents(cents: int) -> str:
    return f"${cents / 100:,.2f}"
