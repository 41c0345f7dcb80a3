"""
Finalization - settles ended auctions exactly once.

For an ACTIVE auction past its end time:
- No bids: auction -> ENDED_NO_BIDS, item back to AVAILABLE
- Winner: auction -> FINALIZED, item SOLD to the winner, sale history
  and revenue split written, all in one transaction

Minting and the winner notification run after the commit. A mint
failure flags the item MINT_FAILED for remediation; the sale stands.
Finalizing a settled auction returns its recorded outcome.
"""

from typing import Dict, Optional

from skysale.adapters.mint import MintDispatcher, MockMintAdapter
from skysale.adapters.notifier import LoggingNotifier, Notifier, SafeNotifier
from skysale.core.clock import SystemClock
from skysale.core.config import EngineConfig
from skysale.core.errors import (
    AlreadyFinalizedError,
    AuctionNotActiveError,
    AuctionNotEndedError,
    AuctionNotFoundError,
    MintError,
)
from skysale.core.models import (
    Auction,
    AuctionStatus,
    FinalizationResult,
    ItemStatus,
    SaleRecord,
)
from skysale.core.pricing import format_cents, split_revenue
from skysale.core.storage import CatalogStore
from skysale.utils.logger import get_logger

logger = get_logger("finalize")


class FinalizationCoordinator:
    """Determines winners, records sales and hands items to minting."""

    def __init__(
        self,
        store: CatalogStore,
        mint: Optional[MintDispatcher] = None,
        notifier: Optional[Notifier] = None,
        clock=None,
        config: Optional[EngineConfig] = None,
    ):
        self.store = store
        self.config = config or EngineConfig()
        self.mint = mint or MintDispatcher(
            MockMintAdapter(),
            max_attempts=self.config.mint_max_attempts,
            backoff_base=self.config.mint_backoff_base,
        )
        self.notifier = SafeNotifier(notifier or LoggingNotifier())
        self.clock = clock or SystemClock()

    # =========================================================================
    # Single auction
    # =========================================================================

    def finalize_auction(self, auction_id: str, strict: bool = False) -> Optional[FinalizationResult]:
        """
        Finalize one auction.

        Args:
            auction_id: Auction to settle
            strict: Raise AlreadyFinalizedError instead of returning the
                recorded outcome when the auction is already settled

        Returns:
            FinalizationResult for a winner, None when nobody bid

        Raises:
            AuctionNotFoundError, AuctionNotActiveError, AuctionNotEndedError
        """
        now = self.clock.now()

        with self.store.transaction():
            auction = self.store.get_auction(auction_id)
            if auction is None:
                raise AuctionNotFoundError(auction_id)

            if auction.status.is_terminal:
                prior = self._recorded_outcome(auction)
                settled_now = False
            else:
                if auction.status != AuctionStatus.ACTIVE:
                    raise AuctionNotActiveError(auction_id, auction.status.value)
                if now <= auction.end_time:
                    raise AuctionNotEndedError(
                        f"Auction {auction_id} ends at {auction.end_time.isoformat()}"
                    )
                sale = self._settle(auction, now)
                settled_now = True

        if not settled_now:
            if strict:
                raise AlreadyFinalizedError(auction_id, prior)
            logger.debug(f"Auction {auction_id} already settled ({auction.status.value})")
            return prior

        if sale is None:
            logger.info(f"Auction {auction.item_name} ({auction_id}) ended with no bids")
            return None

        tx_ref = self._mint(auction, sale)
        self.notifier.notify_auction_won(
            sale.winner_email or sale.winner,
            sale.item_name,
            sale.final_price_cents,
            tx_ref,
        )

        logger.info(
            f"Auction finalized: {sale.item_name} sold for {format_cents(sale.final_price_cents)}"
        )
        return FinalizationResult(
            auction_id=auction_id,
            winner=sale.winner,
            final_price_cents=sale.final_price_cents,
            tx_ref=tx_ref,
        )

    def _settle(self, auction: Auction, now) -> Optional[SaleRecord]:
        """Terminal transition; caller holds the transaction."""
        if not auction.highest_bidder:
            self.store.transition_auction(auction.auction_id, AuctionStatus.ENDED_NO_BIDS)
            self.store.set_item_status(
                auction.item_id, ItemStatus.AVAILABLE, expected=[ItemStatus.AUCTIONED]
            )
            return None

        winning_bid = self.store.get_latest_bid(auction.auction_id, bidder=auction.highest_bidder)
        sale = SaleRecord(
            auction_id=auction.auction_id,
            item_id=auction.item_id,
            item_name=auction.item_name,
            final_price_cents=auction.current_bid_cents,
            winner=auction.highest_bidder,
            winner_email=winning_bid.bidder_email if winning_bid else None,
            sold_at=now,
        )

        self.store.transition_auction(auction.auction_id, AuctionStatus.FINALIZED)
        self.store.set_item_status(
            auction.item_id,
            ItemStatus.SOLD,
            owner=sale.winner,
            sold_at=now,
        )
        self.store.insert_sale(sale)
        self.store.insert_revenue_split(
            split_revenue(auction.auction_id, sale.final_price_cents, self.config.creator_share)
        )
        return sale

    def _recorded_outcome(self, auction: Auction) -> Optional[FinalizationResult]:
        if auction.status == AuctionStatus.ENDED_NO_BIDS:
            return None
        sale = self.store.get_sale(auction.auction_id)
        return FinalizationResult(
            auction_id=auction.auction_id,
            winner=sale.winner,
            final_price_cents=sale.final_price_cents,
            tx_ref=auction.mint_tx_ref,
            already_finalized=True,
        )

    def _mint(self, auction: Auction, sale: SaleRecord) -> Optional[str]:
        """Mint to the winner; returns the tx hash or None on failure."""
        try:
            receipt = self.mint.mint([sale.item_id], sale.winner, idempotency_key=auction.auction_id)
        except MintError as e:
            logger.error(f"Mint failed for {sale.item_name} (auction {auction.auction_id}): {e}")
            self.store.set_item_status(sale.item_id, ItemStatus.MINT_FAILED, expected=[ItemStatus.SOLD])
            return None

        with self.store.transaction():
            self.store.set_item_status(
                sale.item_id,
                ItemStatus.MINTED,
                expected=[ItemStatus.SOLD, ItemStatus.MINT_FAILED],
                tx_hash=receipt.tx_hash,
                minted_at=self.clock.now(),
            )
            self.store.set_auction_tx_ref(auction.auction_id, receipt.tx_hash)
        return receipt.tx_hash

    # =========================================================================
    # Sweeps
    # =========================================================================

    def sweep_ended_auctions(self) -> Dict[str, int]:
        """
        Finalize every ACTIVE auction whose end time has passed.

        Each auction is settled independently; a failure is logged and
        the sweep moves on.
        """
        now = self.clock.now()
        summary = {"finalized": 0, "no_bids": 0, "failed": 0}

        for auction in self.store.find_auctions_ending_before(now):
            try:
                result = self.finalize_auction(auction.auction_id)
            except Exception as e:
                summary["failed"] += 1
                logger.error(f"Failed to finalize auction {auction.auction_id}: {e}")
                continue

            if result is None:
                summary["no_bids"] += 1
            else:
                summary["finalized"] += 1

        if any(summary.values()):
            logger.info(f"Finalization sweep: {summary}")
        return summary

    def retry_failed_mints(self) -> int:
        """
        Re-attempt minting for sold items flagged MINT_FAILED.

        Returns:
            Number of items minted on this pass
        """
        minted = 0
        for auction in self.store.list_auctions(AuctionStatus.FINALIZED):
            item = self.store.get_item(auction.item_id)
            if item is None or item.status != ItemStatus.MINT_FAILED:
                continue
            sale = self.store.get_sale(auction.auction_id)
            if sale is None:
                logger.warning(f"Finalized auction {auction.auction_id} has no sale record")
                continue
            if self._mint(auction, sale):
                minted += 1
        return minted
