"""
Skysale

Scheduling engine for a phased fixed-price collectible sale and its
weekly English auctions:
- Bid ledger and auction state machine
- Idempotent auction finalization
- Tier scheduling with catalog-wide repricing
- Calendar-driven auction deployment
"""

__version__ = "0.1.0"
