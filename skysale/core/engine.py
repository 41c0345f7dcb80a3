"""
SaleEngine - wires the scheduling engine together.

Every component receives the catalog store, clock, config and external
adapters explicitly, so tests can swap in a FrozenClock, a temporary
database and recording fakes.

Entry points for the request layer:
    place_bid, create_auction, finalize_auction
Entry points for the clock (safe to call by hand for recovery):
    advance_tier_if_expired, run_auction_deployment_check,
    sweep_ended_auctions, sweep_extensions
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from skysale.adapters.mint import MintAdapter, MintDispatcher, MockMintAdapter
from skysale.adapters.notifier import LoggingNotifier, Notifier
from skysale.core.auction import (
    AuctionDeploymentScheduler,
    AuctionLedger,
    FinalizationCoordinator,
)
from skysale.core.clock import SystemClock
from skysale.core.config import EngineConfig
from skysale.core.models import Auction, Bid, FinalizationResult, Tier
from skysale.core.storage import CatalogStore
from skysale.core.tiers import TierScheduler
from skysale.core.ticker import Ticker

# Events are reported just after they happen so the due check sees them
EVENT_SLACK = timedelta(milliseconds=1)


class SaleEngine:
    """Facade over the ledger, finalizer, tier and deployment schedulers."""

    def __init__(
        self,
        store: CatalogStore,
        mint_adapter: Optional[MintAdapter] = None,
        notifier: Optional[Notifier] = None,
        clock=None,
        config: Optional[EngineConfig] = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.config = config or EngineConfig()
        notifier = notifier or LoggingNotifier()

        self.ledger = AuctionLedger(store, notifier, self.clock, self.config)
        self.finalizer = FinalizationCoordinator(
            store,
            MintDispatcher(
                mint_adapter or MockMintAdapter(),
                max_attempts=self.config.mint_max_attempts,
                backoff_base=self.config.mint_backoff_base,
            ),
            notifier,
            self.clock,
            self.config,
        )
        self.tiers = TierScheduler(store, self.clock, self.config)
        self.deployer = AuctionDeploymentScheduler(store, self.ledger, self.clock, self.config)

    # =========================================================================
    # Request layer
    # =========================================================================

    def place_bid(
        self,
        auction_id: str,
        bidder: str,
        amount_cents: int,
        bidder_email: Optional[str] = None,
    ) -> Bid:
        return self.ledger.place_bid(auction_id, bidder, amount_cents, bidder_email)

    def create_auction(
        self,
        item_id: int,
        starting_bid_cents: int,
        duration_days: Optional[int] = None,
    ) -> Auction:
        return self.ledger.create_auction(item_id, starting_bid_cents, duration_days)

    def finalize_auction(self, auction_id: str, strict: bool = False) -> Optional[FinalizationResult]:
        return self.finalizer.finalize_auction(auction_id, strict=strict)

    # =========================================================================
    # Clock entry points
    # =========================================================================

    def advance_tier_if_expired(self) -> Optional[Tier]:
        return self.tiers.advance_tier_if_expired()

    def run_auction_deployment_check(self) -> Optional[Auction]:
        return self.deployer.run_auction_deployment_check()

    def sweep_ended_auctions(self) -> Dict[str, int]:
        return self.finalizer.sweep_ended_auctions()

    def sweep_extensions(self) -> List[str]:
        return self.ledger.sweep_extensions()

    def retry_failed_mints(self) -> int:
        return self.finalizer.retry_failed_mints()

    def next_event_at(self, now: datetime) -> Optional[datetime]:
        """Earliest upcoming tier expiry, extension window or auction end after `now`."""
        events = []
        tier_end = self.tiers.next_transition_at()
        if tier_end is not None and tier_end > now:
            events.append(tier_end)
        auction_end = self.store.next_auction_end(now)
        if auction_end is not None:
            events.append(auction_end + EVENT_SLACK)
            window_opens = auction_end - self.config.extension_window
            if window_opens > now:
                events.append(window_opens)
        return min(events) if events else None

    def build_ticker(self, holder_id: Optional[str] = None) -> Ticker:
        """
        Ticker with the engine's jobs.

        Tier advance, finalization and extensions run every tick
        interval and are pulled forward by catalog events; deployment
        keeps to the deployment interval.
        """
        ticker = Ticker(
            self.store,
            clock=self.clock,
            config=self.config,
            holder_id=holder_id,
            next_event=self.next_event_at,
        )
        tick = timedelta(seconds=self.config.tick_interval)
        ticker.add_job("advance_tier", self.advance_tier_if_expired, tick, priority=0)
        ticker.add_job(
            "deploy_auctions",
            self.run_auction_deployment_check,
            timedelta(seconds=self.config.deployment_interval),
            priority=1,
            on_events=False,
        )
        ticker.add_job("finalize_auctions", self.sweep_ended_auctions, tick, priority=2)
        ticker.add_job("extend_auctions", self.sweep_extensions, tick, priority=3)
        return ticker
