"""
Input Validation - sanity checks for values entering the engine.

Guards the request-facing operations (bids, auction creation) against:
- Wrong types
- Out-of-range amounts and durations
- Oversized or malformed identifiers
"""

import re
from typing import Any, Optional, Tuple

# =============================================================================
# Constants
# =============================================================================

MAX_STRING_LENGTH = 256
MAX_BID_CENTS = 10**12            # $10B
MAX_AUCTION_DAYS = 60
MAX_SCORE = 500

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
BIDDER_PATTERN = r"^[A-Za-z0-9_.:@-]+$"


# =============================================================================
# Validation Functions
# =============================================================================


def validate_integer(
    value: Any,
    name: str,
    min_val: int = 0,
    max_val: int = MAX_BID_CENTS,
) -> Tuple[bool, str]:
    """
    Validate integer within bounds.

    Args:
        value: Value to validate
        name: Field name for errors
        min_val: Minimum allowed value
        max_val: Maximum allowed value

    Returns:
        (is_valid, error_message)
    """
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_string(
    value: Any,
    name: str,
    max_length: int = MAX_STRING_LENGTH,
    pattern: Optional[str] = None,
) -> Tuple[bool, str]:
    """
    Validate string input.

    Args:
        value: Value to validate
        name: Field name for errors
        max_length: Maximum string length
        pattern: Optional regex pattern

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(value, str):
        return False, f"{name} must be str, got {type(value).__name__}"

    if not value:
        return False, f"{name} must not be empty"

    if len(value) > max_length:
        return False, f"{name} exceeds max length {max_length}"

    if pattern and not re.match(pattern, value):
        return False, f"{name} does not match required pattern"

    return True, ""


def validate_amount_cents(amount: Any) -> Tuple[bool, str]:
    """Validate a positive money amount in cents."""
    return validate_integer(amount, "amount_cents", 1, MAX_BID_CENTS)


def validate_bidder(bidder: Any) -> Tuple[bool, str]:
    """Validate a bidder identifier (wallet address or account handle)."""
    return validate_string(bidder, "bidder", pattern=BIDDER_PATTERN)


def validate_email(email: Any) -> Tuple[bool, str]:
    return validate_string(email, "bidder_email", pattern=EMAIL_PATTERN)


def validate_duration_days(days: Any) -> Tuple[bool, str]:
    return validate_integer(days, "duration_days", 1, MAX_AUCTION_DAYS)


def validate_score(score: Any) -> Tuple[bool, str]:
    return validate_integer(score, "score", 0, MAX_SCORE)


# =============================================================================
# Composite Validators
# =============================================================================


def validate_bid_request(
    bidder: Any,
    amount_cents: Any,
    bidder_email: Any = None,
) -> Tuple[bool, str]:
    """Validate the inputs of a bid before it reaches the ledger."""
    valid, err = validate_bidder(bidder)
    if not valid:
        return False, err

    valid, err = validate_amount_cents(amount_cents)
    if not valid:
        return False, err

    if bidder_email is not None:
        valid, err = validate_email(bidder_email)
        if not valid:
            return False, err

    return True, ""


def mask_address(address: str) -> str:
    """Shorten an address for display: 0x1234...abcd"""
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


__all__ = [
    "validate_integer",
    "validate_string",
    "validate_amount_cents",
    "validate_bidder",
    "validate_email",
    "validate_duration_days",
    "validate_score",
    "validate_bid_request",
    "mask_address",
    "MAX_BID_CENTS",
    "MAX_AUCTION_DAYS",
]
