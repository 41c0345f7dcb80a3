"""
Bid Ledger - English auction state machine for reserved items.

Handles the live part of an auction:
- Auction creation (item flips to AUCTIONED)
- Bid validation against the minimum increment
- Atomic bid recording with an optimistic version check
- Anti-snipe extension of auctions that receive late bids

State machine:
    PENDING -> ACTIVE -> {ENDED_NO_BIDS | FINALIZED}

Terminal transitions belong to the FinalizationCoordinator.
"""

import sqlite3
import uuid
from datetime import timedelta
from typing import Dict, List, Optional

from skysale.adapters.notifier import LoggingNotifier, Notifier, SafeNotifier
from skysale.core.clock import SystemClock
from skysale.core.config import EngineConfig
from skysale.core.errors import (
    AuctionEndedError,
    AuctionNotActiveError,
    AuctionNotFoundError,
    BidConflictError,
    BidValidationError,
    ItemNotFoundError,
    ItemUnavailableError,
    ValidationError,
)
from skysale.core.models import Auction, AuctionStatus, Bid, ItemStatus
from skysale.core.pricing import format_cents, minimum_next_bid
from skysale.core.storage import CatalogStore
from skysale.utils.logger import get_logger
from skysale.utils.validation import (
    mask_address,
    validate_amount_cents,
    validate_bid_request,
    validate_duration_days,
)

logger = get_logger("auction")

# Items that may be put up for auction
AUCTIONABLE_STATUSES = (ItemStatus.AVAILABLE, ItemStatus.AUCTION_RESERVED)


class AuctionLedger:
    """
    Validates and records bids and drives auctions through ACTIVE.

    Bid placement is called from the request path and only needs
    row-level isolation; the scheduler calls `sweep_extensions` on its
    tick.
    """

    def __init__(
        self,
        store: CatalogStore,
        notifier: Optional[Notifier] = None,
        clock=None,
        config: Optional[EngineConfig] = None,
    ):
        self.store = store
        self.notifier = SafeNotifier(notifier or LoggingNotifier())
        self.clock = clock or SystemClock()
        self.config = config or EngineConfig()

    # =========================================================================
    # Creation
    # =========================================================================

    def create_auction(
        self,
        item_id: int,
        starting_bid_cents: int,
        duration_days: Optional[int] = None,
        auction_id: Optional[str] = None,
    ) -> Auction:
        """
        Open an auction for an item.

        The item must be AVAILABLE or AUCTION_RESERVED; it becomes
        AUCTIONED in the same transaction that creates the auction.

        Raises:
            ValidationError: bad arguments
            ItemNotFoundError / ItemUnavailableError: item cannot be auctioned
        """
        days = duration_days if duration_days is not None else self.config.default_auction_days
        for valid, err in (validate_amount_cents(starting_bid_cents), validate_duration_days(days)):
            if not valid:
                raise ValidationError(err)

        now = self.clock.now()
        auction_id = auction_id or uuid.uuid4().hex

        try:
            with self.store.transaction():
                item = self.store.get_item(item_id)
                if item is None:
                    raise ItemNotFoundError(f"Item {item_id} not found")
                if item.status not in AUCTIONABLE_STATUSES:
                    raise ItemUnavailableError(
                        f"Item {item.name} is {item.status.value}, cannot be auctioned"
                    )

                auction = Auction(
                    auction_id=auction_id,
                    item_id=item.item_id,
                    item_name=item.name,
                    starting_bid_cents=starting_bid_cents,
                    current_bid_cents=starting_bid_cents,
                    start_time=now,
                    end_time=now + timedelta(days=days),
                    status=AuctionStatus.ACTIVE,
                )
                self.store.insert_auction(auction)
                self.store.set_item_status(item.item_id, ItemStatus.AUCTIONED, expected=AUCTIONABLE_STATUSES)
        except sqlite3.IntegrityError as e:
            raise ItemUnavailableError(f"Item {item_id} already has an open auction") from e

        logger.info(
            f"Auction created for {auction.item_name} (item #{auction.item_id}): "
            f"start {format_cents(starting_bid_cents)}, ends {auction.end_time.isoformat()}"
        )
        return auction

    # =========================================================================
    # Bidding
    # =========================================================================

    def minimum_bid(self, auction: Auction) -> int:
        """Smallest bid the auction will currently accept, in cents."""
        return minimum_next_bid(
            auction.current_bid_cents,
            self.config.min_increment_rate,
            self.config.min_increment_floor_cents,
        )

    def place_bid(
        self,
        auction_id: str,
        bidder: str,
        amount_cents: int,
        bidder_email: Optional[str] = None,
    ) -> Bid:
        """
        Place a bid.

        The read of the current bid, the ledger append and the auction
        update happen in one serializable transaction, and the auction
        row is written with a version check.

        Raises:
            ValidationError: not found, not active, ended, or below minimum
            BidConflictError: lost a concurrent update; retry with fresh state
        """
        valid, err = validate_bid_request(bidder, amount_cents, bidder_email)
        if not valid:
            raise BidValidationError(err)

        now = self.clock.now()
        previous_contact = None

        try:
            with self.store.transaction():
                auction = self.store.get_auction(auction_id)
                if auction is None:
                    raise AuctionNotFoundError(auction_id)
                if auction.status != AuctionStatus.ACTIVE:
                    raise AuctionNotActiveError(auction_id, auction.status.value)
                if now >= auction.end_time:
                    raise AuctionEndedError(auction_id)

                minimum = self.minimum_bid(auction)
                if amount_cents < minimum:
                    raise BidValidationError(
                        f"Bid must be at least {format_cents(minimum)}",
                        minimum_cents=minimum,
                    )

                previous = auction.highest_bidder
                if previous and previous != bidder:
                    last = self.store.get_latest_bid(auction_id, bidder=previous)
                    previous_contact = last.contact if last else previous

                bid = Bid(
                    bid_id=uuid.uuid4().hex,
                    auction_id=auction_id,
                    bidder=bidder,
                    amount_cents=amount_cents,
                    timestamp=now,
                    bidder_email=bidder_email,
                )
                self.store.insert_bid(bid)
                if not self.store.update_auction_bid(auction_id, auction.version, amount_cents, bidder):
                    raise BidConflictError(auction_id)
        except sqlite3.OperationalError as e:
            # Write lock not obtained within the busy timeout
            if "locked" not in str(e) and "busy" not in str(e):
                raise
            logger.warning(f"Bid on {auction_id} hit a locked catalog: {e}")
            raise BidConflictError(auction_id) from e

        logger.info(
            f"Bid placed: {format_cents(amount_cents)} on {auction.item_name} "
            f"by {mask_address(bidder)}"
        )

        if previous_contact:
            self.notifier.notify_outbid(previous_contact, auction.item_name, amount_cents)

        return bid

    # =========================================================================
    # Anti-snipe
    # =========================================================================

    def sweep_extensions(self) -> List[str]:
        """
        Extend auctions that got a bid right before closing.

        An ACTIVE auction ending within `extension_window` whose latest
        bid is younger than `recent_bid_window` is pushed back by
        `extension_duration`. Each bid can trigger at most one extension;
        the triggering bid id is stored on the auction.

        Returns:
            Ids of the auctions extended on this pass
        """
        now = self.clock.now()
        extended = []

        for auction in self.store.find_auctions_ending_between(now, now + self.config.extension_window):
            last_bid = self.store.get_latest_bid(auction.auction_id)
            if last_bid is None:
                continue
            if now - last_bid.timestamp >= self.config.recent_bid_window:
                continue
            if last_bid.bid_id == auction.last_extended_for_bid_id:
                continue

            new_end = auction.end_time + self.config.extension_duration
            if self.store.extend_auction(auction.auction_id, auction.version, new_end, last_bid.bid_id):
                extended.append(auction.auction_id)
                logger.info(
                    f"Extended auction {auction.item_name} to {new_end.isoformat()} due to late bid"
                )
            else:
                # A bid landed in between; the next tick re-evaluates
                logger.debug(f"Extension of {auction.auction_id} lost a race, retrying next tick")

        return extended

    # =========================================================================
    # Queries
    # =========================================================================

    def get_auction(self, auction_id: str) -> Auction:
        auction = self.store.get_auction(auction_id)
        if auction is None:
            raise AuctionNotFoundError(auction_id)
        return auction

    def active_auctions(self) -> List[Auction]:
        now = self.clock.now()
        return [a for a in self.store.list_auctions(AuctionStatus.ACTIVE) if a.end_time > now]

    def bid_history(self, auction_id: str) -> List[Dict]:
        """Bids newest first, with bidder addresses masked for display."""
        return [
            {
                "bidder": mask_address(bid.bidder),
                "amount_cents": bid.amount_cents,
                "display_amount": format_cents(bid.amount_cents),
                "timestamp": bid.timestamp,
            }
            for bid in self.store.get_bids(auction_id)
        ]

    def stats(self) -> Dict:
        """Auction statistics for the admin dashboard."""
        counts = self.store.count_auctions_by_status()
        by_status = {s.value.lower(): counts.get(s.value, 0) for s in AuctionStatus}
        return {
            **by_status,
            "total": sum(counts.values()),
            "total_bids": self.store.count_bids(),
            "total_revenue_cents": self.store.total_sales_cents(),
        }
