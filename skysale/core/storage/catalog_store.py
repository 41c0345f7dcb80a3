from contextlib import contextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from skysale.core.clock import from_millis, to_millis
from skysale.core.models import (
    Auction,
    AuctionStatus,
    Bid,
    Item,
    ItemStatus,
    OPEN_AUCTION_STATUSES,
    RevenueSplit,
    SaleRecord,
    Tier,
)
from skysale.core.storage.sqlite_adapter import SQLiteAdapter
from skysale.utils.logger import get_logger

logger = get_logger("storage.catalog")


def _ms(dt: Optional[datetime]) -> Optional[int]:
    return to_millis(dt) if dt is not None else None


def _item(row) -> Item:
    return Item(
        item_id=row["item_id"],
        name=row["name"],
        score=row["score"],
        status=ItemStatus(row["status"]),
        price_cents=row["price_cents"],
        owner=row["owner"],
        tx_hash=row["tx_hash"],
        sold_at=from_millis(row["sold_at"]),
        minted_at=from_millis(row["minted_at"]),
    )


def _tier(row) -> Tier:
    return Tier(
        tier_id=row["tier_id"],
        phase=row["phase"],
        price=Decimal(row["price"]),
        quantity_available=row["quantity_available"],
        quantity_sold=row["quantity_sold"],
        start_time=from_millis(row["start_time"]),
        duration=timedelta(milliseconds=row["duration_ms"]),
        active=bool(row["active"]),
    )


def _auction(row) -> Auction:
    return Auction(
        auction_id=row["auction_id"],
        item_id=row["item_id"],
        item_name=row["item_name"],
        starting_bid_cents=row["starting_bid_cents"],
        current_bid_cents=row["current_bid_cents"],
        highest_bidder=row["highest_bidder"],
        status=AuctionStatus(row["status"]),
        start_time=from_millis(row["start_time"]),
        end_time=from_millis(row["end_time"]),
        version=row["version"],
        last_extended_for_bid_id=row["last_extended_for_bid_id"],
        extension_count=row["extension_count"],
        mint_tx_ref=row["mint_tx_ref"],
    )


def _bid(row) -> Bid:
    return Bid(
        bid_id=row["bid_id"],
        auction_id=row["auction_id"],
        bidder=row["bidder"],
        bidder_email=row["bidder_email"],
        amount_cents=row["amount_cents"],
        timestamp=from_millis(row["timestamp"]),
    )


def _sale(row) -> SaleRecord:
    return SaleRecord(
        auction_id=row["auction_id"],
        item_id=row["item_id"],
        item_name=row["item_name"],
        final_price_cents=row["final_price_cents"],
        winner=row["winner"],
        winner_email=row["winner_email"],
        sold_at=from_millis(row["sold_at"]),
    )


class CatalogStore:
    """
    Transactional persistence for the catalog.

    Holds items, tiers, auctions, bids and sale history. Multi-record
    transitions run inside `transaction()`; single reads see committed
    state only.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.adapter = SQLiteAdapter(self.db_path)

        logger.info(f"CatalogStore initialized at {self.db_path}")

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Atomic, serializable read-modify-write scope."""
        with self.adapter.transaction():
            yield

    def close(self):
        self.adapter.close()

    # =========================================================================
    # Items
    # =========================================================================

    def add_item(
        self,
        name: str,
        score: int,
        status: ItemStatus = ItemStatus.AVAILABLE,
        price_cents: int = 0,
        item_id: Optional[int] = None,
    ) -> Item:
        with self.adapter.transaction() as conn:
            cur = conn.execute(
                "INSERT INTO items (item_id, name, score, status, price_cents) VALUES (?, ?, ?, ?, ?)",
                (item_id, name, score, status.value, price_cents),
            )
            new_id = cur.lastrowid
        return self.get_item(new_id)

    def get_item(self, item_id: int) -> Optional[Item]:
        row = self.adapter.fetchone("SELECT * FROM items WHERE item_id = ?", (item_id,))
        return _item(row) if row else None

    def find_item_by_name(self, name: str, status: Optional[ItemStatus] = None) -> Optional[Item]:
        """
        Find an item by name, case-insensitively.

        An exact match wins over a substring match.
        """
        status_sql, params = "", []
        if status is not None:
            status_sql, params = " AND status = ?", [status.value]

        row = self.adapter.fetchone(
            f"SELECT * FROM items WHERE name = ? COLLATE NOCASE{status_sql} ORDER BY item_id LIMIT 1",
            [name] + params,
        )
        if row is None:
            row = self.adapter.fetchone(
                f"SELECT * FROM items WHERE instr(lower(name), lower(?)) > 0{status_sql} "
                "ORDER BY item_id LIMIT 1",
                [name] + params,
            )
        return _item(row) if row else None

    def find_items_by_status(self, status: ItemStatus, limit: Optional[int] = None) -> List[Item]:
        sql = "SELECT * FROM items WHERE status = ? ORDER BY item_id"
        params: list = [status.value]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [_item(r) for r in self.adapter.fetchall(sql, params)]

    def iter_item_scores(self, status: ItemStatus, batch_size: int) -> Iterator[List[Tuple[int, int]]]:
        """Yield (item_id, score) batches by keyset pagination."""
        last_id = -1
        while True:
            rows = self.adapter.fetchall(
                "SELECT item_id, score FROM items WHERE status = ? AND item_id > ? "
                "ORDER BY item_id LIMIT ?",
                (status.value, last_id, batch_size),
            )
            if not rows:
                return
            yield [(r["item_id"], r["score"]) for r in rows]
            last_id = rows[-1]["item_id"]

    def update_item_prices(self, prices: Sequence[Tuple[int, int]]) -> int:
        """Write (item_id, price_cents) pairs."""
        with self.adapter.transaction():
            self.adapter.executemany(
                "UPDATE items SET price_cents = ? WHERE item_id = ?",
                [(price, item_id) for item_id, price in prices],
            )
        return len(prices)

    def set_item_status(
        self,
        item_id: int,
        status: ItemStatus,
        expected: Optional[Sequence[ItemStatus]] = None,
        **fields,
    ) -> bool:
        """
        Change an item's status and optional owner/tx fields.

        With `expected`, only rows currently in one of those statuses change.
        """
        allowed = {"owner", "tx_hash", "sold_at", "minted_at"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Unknown item fields: {sorted(unknown)}")

        assignments = ["status = ?"]
        params: list = [status.value]
        for key, value in fields.items():
            assignments.append(f"{key} = ?")
            params.append(_ms(value) if isinstance(value, datetime) else value)

        sql = f"UPDATE items SET {', '.join(assignments)} WHERE item_id = ?"
        params.append(item_id)
        if expected:
            sql += f" AND status IN ({', '.join('?' for _ in expected)})"
            params.extend(s.value for s in expected)
        return self.adapter.write(sql, params) == 1

    # =========================================================================
    # Tiers
    # =========================================================================

    def add_tier(
        self,
        phase: int,
        price: Decimal,
        quantity_available: int,
        duration: timedelta,
    ) -> Tier:
        with self.adapter.transaction() as conn:
            conn.execute(
                "INSERT INTO tiers (phase, price, quantity_available, duration_ms) VALUES (?, ?, ?, ?)",
                (phase, str(price), quantity_available, duration // timedelta(milliseconds=1)),
            )
        return self.get_tier_by_phase(phase)

    def get_active_tier(self) -> Optional[Tier]:
        row = self.adapter.fetchone("SELECT * FROM tiers WHERE active = 1")
        return _tier(row) if row else None

    def get_tier_by_phase(self, phase: int) -> Optional[Tier]:
        row = self.adapter.fetchone("SELECT * FROM tiers WHERE phase = ?", (phase,))
        return _tier(row) if row else None

    def list_tiers(self) -> List[Tier]:
        return [_tier(r) for r in self.adapter.fetchall("SELECT * FROM tiers ORDER BY phase")]

    def count_active_tiers(self) -> int:
        return self.adapter.fetchone("SELECT COUNT(*) AS cnt FROM tiers WHERE active = 1")["cnt"]

    def deactivate_tier(self, tier_id: int) -> bool:
        return self.adapter.write(
            "UPDATE tiers SET active = 0 WHERE tier_id = ? AND active = 1", (tier_id,)
        ) == 1

    def activate_tier(self, tier_id: int, start_time: datetime) -> bool:
        return self.adapter.write(
            "UPDATE tiers SET active = 1, start_time = ? WHERE tier_id = ? AND active = 0",
            (_ms(start_time), tier_id),
        ) == 1

    # =========================================================================
    # Auctions
    # =========================================================================

    def insert_auction(self, auction: Auction):
        self.adapter.write(
            "INSERT INTO auctions (auction_id, item_id, item_name, starting_bid_cents, "
            "current_bid_cents, highest_bidder, status, start_time, end_time) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                auction.auction_id,
                auction.item_id,
                auction.item_name,
                auction.starting_bid_cents,
                auction.current_bid_cents,
                auction.highest_bidder,
                auction.status.value,
                _ms(auction.start_time),
                _ms(auction.end_time),
            ),
        )

    def get_auction(self, auction_id: str) -> Optional[Auction]:
        row = self.adapter.fetchone("SELECT * FROM auctions WHERE auction_id = ?", (auction_id,))
        return _auction(row) if row else None

    def list_auctions(self, status: Optional[AuctionStatus] = None) -> List[Auction]:
        if status is None:
            rows = self.adapter.fetchall("SELECT * FROM auctions ORDER BY start_time")
        else:
            rows = self.adapter.fetchall(
                "SELECT * FROM auctions WHERE status = ? ORDER BY end_time", (status.value,)
            )
        return [_auction(r) for r in rows]

    def find_open_auction_for_name(self, name: str) -> Optional[Auction]:
        """PENDING/ACTIVE auction whose item name contains `name`."""
        statuses = [s.value for s in OPEN_AUCTION_STATUSES]
        row = self.adapter.fetchone(
            "SELECT * FROM auctions WHERE instr(lower(item_name), lower(?)) > 0 "
            "AND status IN (?, ?) LIMIT 1",
            [name] + statuses,
        )
        return _auction(row) if row else None

    def find_auctions_ending_before(
        self,
        t: datetime,
        status: AuctionStatus = AuctionStatus.ACTIVE,
    ) -> List[Auction]:
        rows = self.adapter.fetchall(
            "SELECT * FROM auctions WHERE status = ? AND end_time < ? ORDER BY end_time",
            (status.value, _ms(t)),
        )
        return [_auction(r) for r in rows]

    def find_auctions_ending_between(
        self,
        start: datetime,
        end: datetime,
        status: AuctionStatus = AuctionStatus.ACTIVE,
    ) -> List[Auction]:
        """Auctions with start < end_time <= end."""
        rows = self.adapter.fetchall(
            "SELECT * FROM auctions WHERE status = ? AND end_time > ? AND end_time <= ? "
            "ORDER BY end_time",
            (status.value, _ms(start), _ms(end)),
        )
        return [_auction(r) for r in rows]

    def update_auction_bid(
        self,
        auction_id: str,
        expected_version: int,
        amount_cents: int,
        bidder: str,
    ) -> bool:
        """Optimistic bid write; False if the auction moved on."""
        return self.adapter.write(
            "UPDATE auctions SET current_bid_cents = ?, highest_bidder = ?, version = version + 1 "
            "WHERE auction_id = ? AND version = ? AND status = ? AND current_bid_cents < ?",
            (
                amount_cents,
                bidder,
                auction_id,
                expected_version,
                AuctionStatus.ACTIVE.value,
                amount_cents,
            ),
        ) == 1

    def extend_auction(
        self,
        auction_id: str,
        expected_version: int,
        new_end_time: datetime,
        bid_id: str,
    ) -> bool:
        return self.adapter.write(
            "UPDATE auctions SET end_time = ?, last_extended_for_bid_id = ?, "
            "extension_count = extension_count + 1, version = version + 1 "
            "WHERE auction_id = ? AND version = ? AND status = ?",
            (_ms(new_end_time), bid_id, auction_id, expected_version, AuctionStatus.ACTIVE.value),
        ) == 1

    def transition_auction(
        self,
        auction_id: str,
        new_status: AuctionStatus,
        expected_status: AuctionStatus = AuctionStatus.ACTIVE,
    ) -> bool:
        """Compare-and-set the auction status."""
        return self.adapter.write(
            "UPDATE auctions SET status = ?, version = version + 1 WHERE auction_id = ? AND status = ?",
            (new_status.value, auction_id, expected_status.value),
        ) == 1

    def set_auction_tx_ref(self, auction_id: str, tx_ref: str):
        self.adapter.write(
            "UPDATE auctions SET mint_tx_ref = ? WHERE auction_id = ?", (tx_ref, auction_id)
        )

    def count_auctions_by_status(self) -> Dict[str, int]:
        rows = self.adapter.fetchall("SELECT status, COUNT(*) AS cnt FROM auctions GROUP BY status")
        return {r["status"]: r["cnt"] for r in rows}

    # =========================================================================
    # Bids
    # =========================================================================

    def insert_bid(self, bid: Bid):
        self.adapter.write(
            "INSERT INTO bids (bid_id, auction_id, bidder, bidder_email, amount_cents, timestamp) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                bid.bid_id,
                bid.auction_id,
                bid.bidder,
                bid.bidder_email,
                bid.amount_cents,
                _ms(bid.timestamp),
            ),
        )

    def get_bids(self, auction_id: str) -> List[Bid]:
        """Bids for an auction, newest first."""
        rows = self.adapter.fetchall(
            "SELECT * FROM bids WHERE auction_id = ? ORDER BY timestamp DESC, seq DESC",
            (auction_id,),
        )
        return [_bid(r) for r in rows]

    def get_latest_bid(self, auction_id: str, bidder: Optional[str] = None) -> Optional[Bid]:
        sql = "SELECT * FROM bids WHERE auction_id = ?"
        params: list = [auction_id]
        if bidder is not None:
            sql += " AND bidder = ?"
            params.append(bidder)
        row = self.adapter.fetchone(sql + " ORDER BY timestamp DESC, seq DESC LIMIT 1", params)
        return _bid(row) if row else None

    def count_bids(self, auction_id: Optional[str] = None) -> int:
        if auction_id is None:
            row = self.adapter.fetchone("SELECT COUNT(*) AS cnt FROM bids")
        else:
            row = self.adapter.fetchone(
                "SELECT COUNT(*) AS cnt FROM bids WHERE auction_id = ?", (auction_id,)
            )
        return row["cnt"]

    # =========================================================================
    # Sale history & accounting
    # =========================================================================

    def insert_sale(self, sale: SaleRecord):
        self.adapter.write(
            "INSERT INTO sale_history (auction_id, item_id, item_name, final_price_cents, "
            "winner, winner_email, sold_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                sale.auction_id,
                sale.item_id,
                sale.item_name,
                sale.final_price_cents,
                sale.winner,
                sale.winner_email,
                _ms(sale.sold_at),
            ),
        )

    def get_sale(self, auction_id: str) -> Optional[SaleRecord]:
        row = self.adapter.fetchone("SELECT * FROM sale_history WHERE auction_id = ?", (auction_id,))
        return _sale(row) if row else None

    def count_sales(self, auction_id: Optional[str] = None) -> int:
        if auction_id is None:
            return self.adapter.fetchone("SELECT COUNT(*) AS cnt FROM sale_history")["cnt"]
        return self.adapter.fetchone(
            "SELECT COUNT(*) AS cnt FROM sale_history WHERE auction_id = ?", (auction_id,)
        )["cnt"]

    def total_sales_cents(self) -> int:
        row = self.adapter.fetchone("SELECT COALESCE(SUM(final_price_cents), 0) AS total FROM sale_history")
        return row["total"]

    def insert_revenue_split(self, split: RevenueSplit):
        self.adapter.write(
            "INSERT INTO revenue_splits (transaction_id, transaction_type, total_cents, "
            "creator_cents, partner_cents) VALUES (?, ?, ?, ?, ?)",
            (
                split.transaction_id,
                split.transaction_type,
                split.total_cents,
                split.creator_cents,
                split.partner_cents,
            ),
        )

    def get_revenue_split(self, transaction_id: str) -> Optional[RevenueSplit]:
        row = self.adapter.fetchone(
            "SELECT * FROM revenue_splits WHERE transaction_id = ?", (transaction_id,)
        )
        if row is None:
            return None
        return RevenueSplit(
            transaction_id=row["transaction_id"],
            transaction_type=row["transaction_type"],
            total_cents=row["total_cents"],
            creator_cents=row["creator_cents"],
            partner_cents=row["partner_cents"],
        )

    # =========================================================================
    # Settings & leases
    # =========================================================================

    def get_setting(self, key: str) -> Optional[str]:
        return self.adapter.get_setting(key)

    def set_setting(self, key: str, value: Optional[str]):
        self.adapter.set_setting(key, value)

    def acquire_lease(self, name: str, holder: str, now: datetime, ttl: timedelta) -> bool:
        return self.adapter.acquire_lease(name, holder, to_millis(now), ttl // timedelta(milliseconds=1))

    def holds_lease(self, name: str, holder: str, now: datetime) -> bool:
        current = self.adapter.lease_holder(name, to_millis(now))
        return current is not None and current[0] == holder

    def release_lease(self, name: str, holder: str):
        self.adapter.release_lease(name, holder)

    # =========================================================================
    # Scheduling support
    # =========================================================================

    def next_auction_end(self, after: datetime) -> Optional[datetime]:
        row = self.adapter.fetchone(
            "SELECT MIN(end_time) AS t FROM auctions WHERE status = ? AND end_time > ?",
            (AuctionStatus.ACTIVE.value, _ms(after)),
        )
        return from_millis(row["t"]) if row and row["t"] is not None else None
