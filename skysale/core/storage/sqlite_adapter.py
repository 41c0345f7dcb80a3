import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from skysale.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteAdapter:
    """
    SQLite backend for the catalog.

    Provides:
    1. Catalog tables (items, tiers, auctions, bids, sale history).
    2. Serializable multi-record writes through `transaction()`.
    3. Scheduler coordination state (leases, engine settings).
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._conn_local = threading.local()

        if not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False,
                isolation_level=None,  # Explicit BEGIN/COMMIT only
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA foreign_keys=ON;")
            self._conn_local.conn = conn
            self._conn_local.depth = 0
        return self._conn_local.conn

    def close(self):
        """Close this thread's connection."""
        conn = getattr(self._conn_local, "conn", None)
        if conn is not None:
            conn.close()
            del self._conn_local.conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run the block as one serializable write transaction.

        BEGIN IMMEDIATE takes the database write lock up front, so reads
        inside the block cannot go stale before the writes land. Nested
        calls join the outer transaction.
        """
        conn = self._get_conn()
        if self._conn_local.depth > 0:
            self._conn_local.depth += 1
            try:
                yield conn
            finally:
                self._conn_local.depth -= 1
            return

        conn.execute("BEGIN IMMEDIATE")
        self._conn_local.depth = 1
        try:
            yield conn
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        else:
            conn.execute("COMMIT")
        finally:
            self._conn_local.depth = 0

    @property
    def in_transaction(self) -> bool:
        return getattr(self._conn_local, "depth", 0) > 0

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._get_conn()
        with self.transaction():
            # 1. Catalog items
            conn.execute("""
                CREATE TABLE IF NOT EXISTS items (
                    item_id INTEGER PRIMARY KEY,
                    name TEXT NOT NULL,
                    score INTEGER NOT NULL CHECK (score BETWEEN 0 AND 500),
                    status TEXT NOT NULL,
                    price_cents INTEGER NOT NULL DEFAULT 0,
                    owner TEXT,
                    tx_hash TEXT,
                    sold_at INTEGER,
                    minted_at INTEGER
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_items_status ON items(status);")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_items_name ON items(name COLLATE NOCASE);")

            # 2. Pricing tiers
            # The partial unique index makes a second active tier unrepresentable
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tiers (
                    tier_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    phase INTEGER NOT NULL UNIQUE CHECK (phase >= 1),
                    price TEXT NOT NULL,
                    quantity_available INTEGER NOT NULL,
                    quantity_sold INTEGER NOT NULL DEFAULT 0,
                    start_time INTEGER,
                    duration_ms INTEGER NOT NULL,
                    active INTEGER NOT NULL DEFAULT 0
                )
            """)
            conn.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_single_active_tier "
                "ON tiers(active) WHERE active = 1;"
            )

            # 3. Auctions
            # One open (PENDING/ACTIVE) auction per item
            conn.execute("""
                CREATE TABLE IF NOT EXISTS auctions (
                    auction_id TEXT PRIMARY KEY,
                    item_id INTEGER NOT NULL REFERENCES items(item_id),
                    item_name TEXT NOT NULL,
                    starting_bid_cents INTEGER NOT NULL,
                    current_bid_cents INTEGER NOT NULL,
                    highest_bidder TEXT,
                    status TEXT NOT NULL,
                    start_time INTEGER NOT NULL,
                    end_time INTEGER NOT NULL,
                    version INTEGER NOT NULL DEFAULT 0,
                    last_extended_for_bid_id TEXT,
                    extension_count INTEGER NOT NULL DEFAULT 0,
                    mint_tx_ref TEXT
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_auctions_status_end ON auctions(status, end_time);")
            conn.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_open_auction_per_item "
                "ON auctions(item_id) WHERE status IN ('PENDING', 'ACTIVE');"
            )

            # 4. Bid ledger (append-only)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bids (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    bid_id TEXT NOT NULL UNIQUE,
                    auction_id TEXT NOT NULL REFERENCES auctions(auction_id),
                    bidder TEXT NOT NULL,
                    bidder_email TEXT,
                    amount_cents INTEGER NOT NULL,
                    timestamp INTEGER NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_bids_auction ON bids(auction_id, timestamp);")

            # 5. Sale history (one row per finalized auction)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sale_history (
                    auction_id TEXT PRIMARY KEY REFERENCES auctions(auction_id),
                    item_id INTEGER NOT NULL,
                    item_name TEXT NOT NULL,
                    final_price_cents INTEGER NOT NULL,
                    winner TEXT NOT NULL,
                    winner_email TEXT,
                    sold_at INTEGER NOT NULL
                )
            """)

            # 6. Revenue splits
            conn.execute("""
                CREATE TABLE IF NOT EXISTS revenue_splits (
                    transaction_id TEXT PRIMARY KEY,
                    transaction_type TEXT NOT NULL,
                    total_cents INTEGER NOT NULL,
                    creator_cents INTEGER NOT NULL,
                    partner_cents INTEGER NOT NULL
                )
            """)

            # 7. Scheduler coordination
            conn.execute("""
                CREATE TABLE IF NOT EXISTS scheduler_leases (
                    name TEXT PRIMARY KEY,
                    holder TEXT NOT NULL,
                    expires_at INTEGER NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS engine_settings (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

    # =========================================================================
    # Generic helpers
    # =========================================================================

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        return self._get_conn().execute(sql, params)

    def executemany(self, sql: str, rows: List[Sequence[Any]]) -> sqlite3.Cursor:
        return self._get_conn().executemany(sql, rows)

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        return self._get_conn().execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        return self._get_conn().execute(sql, params).fetchall()

    def write(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute a single write, in its own transaction unless one is open."""
        with self.transaction() as conn:
            return conn.execute(sql, params).rowcount

    # =========================================================================
    # Engine settings
    # =========================================================================

    def set_setting(self, key: str, value: Optional[str]):
        self.write(
            "INSERT OR REPLACE INTO engine_settings (key, value) VALUES (?, ?)",
            (key, value),
        )

    def get_setting(self, key: str) -> Optional[str]:
        row = self.fetchone("SELECT value FROM engine_settings WHERE key = ?", (key,))
        return row["value"] if row else None

    # =========================================================================
    # Leases
    # =========================================================================

    def acquire_lease(self, name: str, holder: str, now_ms: int, ttl_ms: int) -> bool:
        """
        Take or renew a named lease.

        Succeeds when the lease is free, expired, or already ours.
        """
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT holder, expires_at FROM scheduler_leases WHERE name = ?", (name,)
            ).fetchone()
            if row and row["holder"] != holder and row["expires_at"] > now_ms:
                return False
            conn.execute(
                "INSERT OR REPLACE INTO scheduler_leases (name, holder, expires_at) VALUES (?, ?, ?)",
                (name, holder, now_ms + ttl_ms),
            )
            return True

    def lease_holder(self, name: str, now_ms: int) -> Optional[Tuple[str, int]]:
        """Current unexpired (holder, expires_at), if any."""
        row = self.fetchone(
            "SELECT holder, expires_at FROM scheduler_leases WHERE name = ? AND expires_at > ?",
            (name, now_ms),
        )
        return (row["holder"], row["expires_at"]) if row else None

    def release_lease(self, name: str, holder: str):
        self.write(
            "DELETE FROM scheduler_leases WHERE name = ? AND holder = ?",
            (name, holder),
        )
