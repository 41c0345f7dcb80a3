"""
Skysale Auction Module.

This module provides the English auction system for reserved items:
- Bid ledger and anti-snipe extensions
- Exactly-once finalization
- Calendar-driven auction deployment
"""

from skysale.core.auction.ledger import AuctionLedger, AUCTIONABLE_STATUSES
from skysale.core.auction.finalization import FinalizationCoordinator
from skysale.core.auction.deployment import (
    AuctionDeploymentScheduler,
    UpcomingAuction,
    WEEK,
)

__all__ = [
    "AuctionLedger",
    "AUCTIONABLE_STATUSES",
    "FinalizationCoordinator",
    "AuctionDeploymentScheduler",
    "UpcomingAuction",
    "WEEK",
]
