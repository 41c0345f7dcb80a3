"""
Catalog data model.

Items, tiers, auctions and bids as stored in the catalog, plus the
value objects returned by finalization and scheduler ticks. All money is
integer cents; all timestamps are timezone-aware UTC datetimes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional


# =============================================================================
# Enums
# =============================================================================


class ItemStatus(str, Enum):
    """Lifecycle status of a catalog item."""
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"                  # Held in a buyer's cart
    AUCTION_RESERVED = "AUCTION_RESERVED"  # Held back for a scheduled auction
    AUCTIONED = "AUCTIONED"                # Referenced by an active auction
    SOLD = "SOLD"
    MINTED = "MINTED"
    MINT_FAILED = "MINT_FAILED"            # Sold, mint needs operator remediation


class AuctionStatus(str, Enum):
    """Auction state machine: PENDING -> ACTIVE -> {ENDED_NO_BIDS | FINALIZED}."""
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    ENDED_NO_BIDS = "ENDED_NO_BIDS"
    FINALIZED = "FINALIZED"

    @property
    def is_terminal(self) -> bool:
        return self in (AuctionStatus.ENDED_NO_BIDS, AuctionStatus.FINALIZED)


OPEN_AUCTION_STATUSES = (AuctionStatus.PENDING, AuctionStatus.ACTIVE)


# =============================================================================
# Entities
# =============================================================================


@dataclass
class Item:
    """A uniquely scored collectible."""
    item_id: int
    name: str
    score: int
    status: ItemStatus = ItemStatus.AVAILABLE
    price_cents: int = 0
    owner: Optional[str] = None
    tx_hash: Optional[str] = None
    sold_at: Optional[datetime] = None
    minted_at: Optional[datetime] = None

    @property
    def price(self) -> Decimal:
        """Current fixed-sale price in dollars."""
        return Decimal(self.price_cents) / 100


@dataclass
class Tier:
    """One time-boxed pricing phase."""
    tier_id: int
    phase: int
    price: Decimal
    quantity_available: int
    quantity_sold: int = 0
    start_time: Optional[datetime] = None
    duration: timedelta = timedelta(days=7)
    active: bool = False

    @property
    def end_time(self) -> Optional[datetime]:
        if self.start_time is None:
            return None
        return self.start_time + self.duration


@dataclass
class Auction:
    """An English auction over a single item."""
    auction_id: str
    item_id: int
    item_name: str
    starting_bid_cents: int
    current_bid_cents: int
    start_time: datetime
    end_time: datetime
    status: AuctionStatus = AuctionStatus.ACTIVE
    highest_bidder: Optional[str] = None
    version: int = 0
    last_extended_for_bid_id: Optional[str] = None
    extension_count: int = 0
    mint_tx_ref: Optional[str] = None

    def is_open(self, now: datetime) -> bool:
        return self.status == AuctionStatus.ACTIVE and now < self.end_time

    def time_remaining(self, now: datetime) -> timedelta:
        return max(self.end_time - now, timedelta(0))


@dataclass(frozen=True)
class Bid:
    """Immutable ledger entry."""
    bid_id: str
    auction_id: str
    bidder: str
    amount_cents: int
    timestamp: datetime
    bidder_email: Optional[str] = None

    @property
    def contact(self) -> str:
        """Where notifications for this bidder go."""
        return self.bidder_email or self.bidder


@dataclass(frozen=True)
class SaleRecord:
    """Auction history row written once per finalized auction."""
    auction_id: str
    item_id: int
    item_name: str
    final_price_cents: int
    winner: str
    winner_email: Optional[str]
    sold_at: datetime


@dataclass(frozen=True)
class RevenueSplit:
    """Fixed accounting split of a sale."""
    transaction_id: str
    transaction_type: str
    total_cents: int
    creator_cents: int
    partner_cents: int


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class FinalizationResult:
    """Outcome of finalizing an auction with a winner."""
    auction_id: str
    winner: str
    final_price_cents: int
    tx_ref: Optional[str] = None
    already_finalized: bool = False

    def as_dict(self) -> dict:
        return {
            "auction_id": self.auction_id,
            "winner": self.winner,
            "final_price_cents": self.final_price_cents,
            "tx_ref": self.tx_ref,
        }


@dataclass
class TickReport:
    """What a single scheduler tick did, job by job."""
    started_at: datetime
    ran: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    skipped: bool = False
    aborted: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed and not self.aborted
