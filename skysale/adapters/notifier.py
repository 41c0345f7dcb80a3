"""
Notifier - outbid and auction-won messages to bidders.

Delivery is fire-and-forget: the engine goes through SafeNotifier, which
logs failures and never lets them reach the caller.
"""

from dataclasses import dataclass
from typing import List, Optional, Protocol

from skysale.core.pricing import format_cents
from skysale.utils.logger import get_logger

logger = get_logger("notify")


class Notifier(Protocol):
    def notify_outbid(self, recipient: str, item_name: str, new_amount_cents: int) -> None:
        ...

    def notify_auction_won(
        self,
        recipient: str,
        item_name: str,
        amount_cents: int,
        tx_ref: Optional[str],
    ) -> None:
        ...


class LoggingNotifier:
    """Writes notifications to the log instead of sending them."""

    def notify_outbid(self, recipient: str, item_name: str, new_amount_cents: int) -> None:
        logger.info(f"[outbid] {recipient}: {item_name} now at {format_cents(new_amount_cents)}")

    def notify_auction_won(
        self,
        recipient: str,
        item_name: str,
        amount_cents: int,
        tx_ref: Optional[str],
    ) -> None:
        logger.info(
            f"[won] {recipient}: {item_name} for {format_cents(amount_cents)} (tx={tx_ref or 'pending'})"
        )


@dataclass
class Notification:
    kind: str
    recipient: str
    item_name: str
    amount_cents: int
    tx_ref: Optional[str] = None


class RecordingNotifier:
    """Keeps every notification in memory; can be told to fail."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Notification] = []

    def _record(self, note: Notification):
        if self.fail:
            raise ConnectionError(f"mail relay down, dropped {note.kind} for {note.recipient}")
        self.sent.append(note)

    def notify_outbid(self, recipient: str, item_name: str, new_amount_cents: int) -> None:
        self._record(Notification("outbid", recipient, item_name, new_amount_cents))

    def notify_auction_won(
        self,
        recipient: str,
        item_name: str,
        amount_cents: int,
        tx_ref: Optional[str],
    ) -> None:
        self._record(Notification("won", recipient, item_name, amount_cents, tx_ref))

    def of_kind(self, kind: str) -> List[Notification]:
        return [n for n in self.sent if n.kind == kind]


class SafeNotifier:
    """Wraps a Notifier so delivery failures are logged only."""

    def __init__(self, inner: Notifier):
        self.inner = inner

    def notify_outbid(self, recipient: str, item_name: str, new_amount_cents: int) -> bool:
        try:
            self.inner.notify_outbid(recipient, item_name, new_amount_cents)
            return True
        except Exception as e:
            logger.error(f"Outbid notification to {recipient} failed: {e}")
            return False

    def notify_auction_won(
        self,
        recipient: str,
        item_name: str,
        amount_cents: int,
        tx_ref: Optional[str],
    ) -> bool:
        try:
            self.inner.notify_auction_won(recipient, item_name, amount_cents, tx_ref)
            return True
        except Exception as e:
            logger.error(f"Auction-won notification to {recipient} failed: {e}")
            return False
