"""
Unit tests for the SQLite catalog store.
"""

import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from skysale.core.models import Auction, AuctionStatus, Bid, ItemStatus

START = datetime(2025, 1, 6, 12, 0, tzinfo=timezone.utc)


def _auction(item, auction_id="a1", status=AuctionStatus.ACTIVE, days=7):
    return Auction(
        auction_id=auction_id,
        item_id=item.item_id,
        item_name=item.name,
        starting_bid_cents=50_000,
        current_bid_cents=50_000,
        start_time=START,
        end_time=START + timedelta(days=days),
        status=status,
    )


# =============================================================================
# Transaction Tests
# =============================================================================


class TestTransactions:
    """Tests for the transaction scope."""

    def test_commit(self, store):
        with store.transaction():
            store.add_item("Vega", 410)
            store.add_item("Rigel", 380)
        assert len(store.find_items_by_status(ItemStatus.AVAILABLE)) == 2

    def test_rollback_on_error(self, store):
        """Nothing from a failed block is visible afterwards."""
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.add_item("Vega", 410)
                raise RuntimeError("boom")
        assert store.find_item_by_name("Vega") is None

    def test_nested_joins_outer(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction():
                with store.transaction():
                    store.add_item("Deneb", 390)
                raise RuntimeError("outer fails")
        assert store.find_item_by_name("Deneb") is None

    def test_survives_reopen(self, store, config):
        from skysale.core.storage import CatalogStore

        store.add_item("Polaris", 420)
        store.close()
        reopened = CatalogStore(config.db_path)
        assert reopened.find_item_by_name("polaris").score == 420
        reopened.close()


# =============================================================================
# Item Tests
# =============================================================================


class TestItems:
    """Tests for item lookup and updates."""

    def test_exact_name_beats_substring(self, store):
        store.add_item("Mars Rover", 300)
        mars = store.add_item("Mars", 350)
        assert store.find_item_by_name("mars").item_id == mars.item_id

    def test_substring_match_with_status(self, store):
        store.add_item("Andromeda Galaxy", 0, status=ItemStatus.AUCTION_RESERVED)
        found = store.find_item_by_name("andromeda", status=ItemStatus.AUCTION_RESERVED)
        assert found.name == "Andromeda Galaxy"
        assert store.find_item_by_name("andromeda", status=ItemStatus.AVAILABLE) is None

    def test_status_compare_and_set(self, store):
        item = store.add_item("Sirius", 440)
        assert not store.set_item_status(item.item_id, ItemStatus.MINTED, expected=[ItemStatus.SOLD])
        assert store.set_item_status(
            item.item_id, ItemStatus.SOLD, expected=[ItemStatus.AVAILABLE], owner="0xwinner", sold_at=START
        )
        sold = store.get_item(item.item_id)
        assert sold.status == ItemStatus.SOLD
        assert sold.owner == "0xwinner"
        assert sold.sold_at == START

    def test_unknown_field_rejected(self, store):
        item = store.add_item("Sirius", 440)
        with pytest.raises(ValueError):
            store.set_item_status(item.item_id, ItemStatus.SOLD, price_cents=1)

    def test_score_checked(self, store):
        with pytest.raises(sqlite3.IntegrityError):
            store.add_item("Too High", 501)

    def test_batched_score_iteration(self, store):
        for i in range(7):
            store.add_item(f"Star {i}", 300 + i)
        store.add_item("Sold Star", 400, status=ItemStatus.SOLD)
        batches = list(store.iter_item_scores(ItemStatus.AVAILABLE, batch_size=3))
        assert [len(b) for b in batches] == [3, 3, 1]


# =============================================================================
# Structural Invariant Tests
# =============================================================================


class TestInvariants:
    """Tests for constraints enforced by the schema."""

    def test_single_active_tier(self, store):
        t1 = store.add_tier(1, Decimal("1"), 1000, timedelta(weeks=2))
        t2 = store.add_tier(2, Decimal("1.075"), 250, timedelta(weeks=2))
        assert store.activate_tier(t1.tier_id, START)
        with pytest.raises(sqlite3.IntegrityError):
            store.activate_tier(t2.tier_id, START)
        assert store.count_active_tiers() == 1

    def test_one_open_auction_per_item(self, store):
        item = store.add_item("Moon", 0, status=ItemStatus.AUCTION_RESERVED)
        store.insert_auction(_auction(item, "a1"))
        with pytest.raises(sqlite3.IntegrityError):
            store.insert_auction(_auction(item, "a2"))

    def test_closed_auction_allows_new_one(self, store):
        item = store.add_item("Moon", 0, status=ItemStatus.AUCTION_RESERVED)
        store.insert_auction(_auction(item, "a1"))
        assert store.transition_auction("a1", AuctionStatus.ENDED_NO_BIDS)
        store.insert_auction(_auction(item, "a2"))
        assert store.get_auction("a2").status == AuctionStatus.ACTIVE


# =============================================================================
# Auction Row Tests
# =============================================================================


class TestAuctionWrites:
    """Tests for versioned auction updates."""

    def test_bid_update_checks_version(self, store):
        item = store.add_item("Moon", 0)
        store.insert_auction(_auction(item))
        assert store.update_auction_bid("a1", 0, 52_500, "alice")
        assert not store.update_auction_bid("a1", 0, 60_000, "bob")

        auction = store.get_auction("a1")
        assert auction.version == 1
        assert auction.current_bid_cents == 52_500
        assert auction.highest_bidder == "alice"

    def test_bid_update_must_increase(self, store):
        item = store.add_item("Moon", 0)
        store.insert_auction(_auction(item))
        assert not store.update_auction_bid("a1", 0, 50_000, "alice")

    def test_extension_records_bid(self, store):
        item = store.add_item("Moon", 0)
        store.insert_auction(_auction(item))
        new_end = START + timedelta(days=7, hours=1)
        assert store.extend_auction("a1", 0, new_end, "bid-1")

        auction = store.get_auction("a1")
        assert auction.end_time == new_end
        assert auction.last_extended_for_bid_id == "bid-1"
        assert auction.extension_count == 1

    def test_ending_windows(self, store):
        a = store.add_item("A", 0)
        b = store.add_item("B", 0)
        store.insert_auction(_auction(a, "short", days=1))
        store.insert_auction(_auction(b, "long", days=7))

        before = store.find_auctions_ending_before(START + timedelta(days=2))
        assert [x.auction_id for x in before] == ["short"]

        between = store.find_auctions_ending_between(START + timedelta(days=1), START + timedelta(days=7))
        assert [x.auction_id for x in between] == ["long"]

        assert store.next_auction_end(START) == START + timedelta(days=1)
        assert store.next_auction_end(START + timedelta(days=1)) == START + timedelta(days=7)

    def test_latest_bid_order(self, store):
        item = store.add_item("Moon", 0)
        store.insert_auction(_auction(item))
        store.insert_bid(Bid("b1", "a1", "alice", 52_500, START))
        store.insert_bid(Bid("b2", "a1", "bob", 55_125, START + timedelta(minutes=1)))
        assert store.get_latest_bid("a1").bid_id == "b2"
        assert store.get_latest_bid("a1", bidder="alice").bid_id == "b1"
        assert [b.bid_id for b in store.get_bids("a1")] == ["b2", "b1"]
        assert store.count_bids("a1") == 2


# =============================================================================
# Lease Tests
# =============================================================================


class TestLeases:
    """Tests for the scheduler lease."""

    def test_exclusive_until_expiry(self, store):
        ttl = timedelta(minutes=2)
        assert store.acquire_lease("scheduler", "one", START, ttl)
        assert not store.acquire_lease("scheduler", "two", START + timedelta(minutes=1), ttl)
        assert store.acquire_lease("scheduler", "two", START + timedelta(minutes=3), ttl)
        assert store.holds_lease("scheduler", "two", START + timedelta(minutes=3))
        assert not store.holds_lease("scheduler", "one", START + timedelta(minutes=3))

    def test_release(self, store):
        ttl = timedelta(minutes=2)
        store.acquire_lease("scheduler", "one", START, ttl)
        store.release_lease("scheduler", "one")
        assert store.acquire_lease("scheduler", "two", START, ttl)

    def test_connections_are_per_thread(self, store):
        """Writes from another thread are visible after commit."""
        thread = threading.Thread(target=lambda: store.add_item("Threaded", 300))
        thread.start()
        thread.join()
        assert store.find_item_by_name("Threaded") is not None
