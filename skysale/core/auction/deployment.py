"""
Auction Deployment - opens the scheduled auction for the current week.

The calendar maps an item name to the launch week its auction opens in.
Weeks count from phase 1's activation:

    current_week = floor((now - phase1.start_time) / 7 days) + 1

A slot deploys at most once: an open auction for the item, or the item
no longer being AUCTION_RESERVED, makes the check a no-op.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from skysale.core.auction.ledger import AuctionLedger
from skysale.core.clock import SystemClock
from skysale.core.config import EngineConfig, ScheduleEntry
from skysale.core.errors import ItemUnavailableError
from skysale.core.models import Auction, ItemStatus
from skysale.core.pricing import format_cents
from skysale.core.storage import CatalogStore
from skysale.utils.logger import get_logger

logger = get_logger("deploy")

WEEK = timedelta(days=7)


@dataclass(frozen=True)
class UpcomingAuction:
    item_name: str
    target_week: int
    starting_bid_cents: int
    weeks_until: int
    estimated_start: Optional[datetime]


class AuctionDeploymentScheduler:
    """Matches the auction calendar against elapsed launch time."""

    def __init__(
        self,
        store: CatalogStore,
        ledger: AuctionLedger,
        clock=None,
        config: Optional[EngineConfig] = None,
        schedule: Optional[List[ScheduleEntry]] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.clock = clock or SystemClock()
        self.config = config or EngineConfig()
        self.schedule = list(schedule if schedule is not None else self.config.schedule)

    def launch_time(self) -> Optional[datetime]:
        phase1 = self.store.get_tier_by_phase(1)
        return phase1.start_time if phase1 else None

    def current_week(self, now: Optional[datetime] = None) -> int:
        """Launch week number, 1-based; 0 before launch."""
        launch = self.launch_time()
        if launch is None:
            return 0
        now = now or self.clock.now()
        if now < launch:
            return 0
        return (now - launch) // WEEK + 1

    def entry_for_week(self, week: int) -> Optional[ScheduleEntry]:
        for entry in self.schedule:
            if entry.target_week == week:
                return entry
        return None

    def run_auction_deployment_check(self) -> Optional[Auction]:
        """
        Deploy this week's scheduled auction if it is not open yet.

        Returns:
            The new Auction, or None when nothing was deployed
        """
        week = self.current_week()
        entry = self.entry_for_week(week)
        if entry is None:
            logger.debug(f"No auction scheduled for week {week}")
            return None

        existing = self.store.find_open_auction_for_name(entry.item_name)
        if existing is not None:
            logger.debug(f"Auction for {entry.item_name} already open ({existing.auction_id})")
            return None

        item = self.store.find_item_by_name(entry.item_name, status=ItemStatus.AUCTION_RESERVED)
        if item is None:
            logger.warning(f"Could not find AUCTION_RESERVED item: {entry.item_name}")
            return None

        try:
            auction = self.ledger.create_auction(
                item.item_id,
                entry.starting_bid_cents,
                duration_days=self.config.default_auction_days,
            )
        except ItemUnavailableError as e:
            # Another instance won the race for this slot
            logger.info(f"Skipped deployment of {entry.item_name}: {e}")
            return None

        logger.info(
            f"Auto-deployed auction: {item.name} (week {week}), "
            f"starting bid {format_cents(entry.starting_bid_cents)}, id {auction.auction_id}"
        )
        return auction

    def upcoming_schedule(self) -> List[UpcomingAuction]:
        """Calendar entries from the current week on."""
        week = self.current_week()
        launch = self.launch_time()
        return [
            UpcomingAuction(
                item_name=e.item_name,
                target_week=e.target_week,
                starting_bid_cents=e.starting_bid_cents,
                weeks_until=e.target_week - week,
                estimated_start=launch + (e.target_week - 1) * WEEK if launch else None,
            )
            for e in sorted(self.schedule, key=lambda e: e.target_week)
            if e.target_week >= week
        ]
