"""
Persistent Storage Module.

Provides SQLite-backed persistence for:
- Catalog items and pricing tiers
- Auctions and the append-only bid ledger
- Sale history, revenue splits and scheduler leases
"""

from skysale.core.storage.sqlite_adapter import SQLiteAdapter
from skysale.core.storage.catalog_store import CatalogStore

__all__ = ["SQLiteAdapter", "CatalogStore"]
