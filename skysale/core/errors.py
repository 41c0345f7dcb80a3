"""
Error taxonomy for the Skysale engine.

Validation errors are rejected synchronously with no state change.
Conflict errors mean the caller lost an optimistic race and should retry
with a fresh view. Everything else is operational and recoverable.
"""

from typing import Optional


class SkysaleError(Exception):
    """Base class for all engine errors"""


class ConfigError(SkysaleError):
    """Invalid configuration value or schedule file"""


# =============================================================================
# Validation
# =============================================================================


class ValidationError(SkysaleError):
    """Request rejected before any state was mutated."""

    def __init__(self, reason: str, minimum_cents: Optional[int] = None):
        super().__init__(reason)
        self.reason = reason
        self.minimum_cents = minimum_cents


class BidValidationError(ValidationError):
    """Bid below the minimum or otherwise malformed."""


class AuctionNotFoundError(ValidationError):
    def __init__(self, auction_id: str):
        super().__init__(f"Auction {auction_id} not found")
        self.auction_id = auction_id


class AuctionNotActiveError(ValidationError):
    def __init__(self, auction_id: str, status: str):
        super().__init__(f"Auction {auction_id} is not active (status={status})")
        self.auction_id = auction_id
        self.status = status


class AuctionEndedError(ValidationError):
    def __init__(self, auction_id: str):
        super().__init__(f"Auction {auction_id} has ended")
        self.auction_id = auction_id


class AuctionNotEndedError(ValidationError):
    """Finalization requested before the auction's end time."""


class ItemNotFoundError(ValidationError):
    """Referenced catalog item does not exist"""


class ItemUnavailableError(ValidationError):
    """Item is not in a status that allows the requested transition"""


# =============================================================================
# Concurrency
# =============================================================================


class BidConflictError(SkysaleError):
    """The auction changed between read and write; retry with a fresh view."""

    def __init__(self, auction_id: str):
        super().__init__(f"Concurrent update on auction {auction_id}, retry the bid")
        self.auction_id = auction_id


class AlreadyFinalizedError(SkysaleError):
    """Raised only when finalization is called in strict mode."""

    def __init__(self, auction_id: str, result=None):
        super().__init__(f"Auction {auction_id} already finalized")
        self.auction_id = auction_id
        self.result = result


class LeaseLostError(SkysaleError):
    """The scheduler lease expired or was taken by another instance mid-tick."""


# =============================================================================
# Scheduling / external
# =============================================================================


class TierError(SkysaleError):
    """Invalid tier operation (no active tier, already at final phase, ...)"""


class MintError(SkysaleError):
    """External mint adapter failed"""
