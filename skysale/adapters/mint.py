"""
Mint adapter - hands sold items to the blockchain minting service.

Minting is asynchronous and may fail; the engine records the sale first
and then calls the adapter through MintDispatcher, which retries with
exponential backoff. The auction id is the idempotency key so a retried
call never mints twice.
"""

import hashlib
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from skysale.core.errors import MintError
from skysale.utils.logger import get_logger

logger = get_logger("mint")


@dataclass(frozen=True)
class MintReceipt:
    """Result of a successful mint."""
    tx_hash: str
    minted_ids: Tuple[int, ...]


class MintAdapter(Protocol):
    def mint(
        self,
        item_ids: Sequence[int],
        recipient: str,
        idempotency_key: str,
    ) -> MintReceipt:
        ...


class MockMintAdapter:
    """
    In-process mint service.

    Produces deterministic tx hashes. `fail_times` makes the next N calls
    raise; `always_fail` makes every call raise.
    """

    def __init__(self, fail_times: int = 0, always_fail: bool = False):
        self.fail_times = fail_times
        self.always_fail = always_fail
        self.calls: List[Tuple[Tuple[int, ...], str, str]] = []
        self.receipts: Dict[str, MintReceipt] = {}

    def mint(
        self,
        item_ids: Sequence[int],
        recipient: str,
        idempotency_key: str,
    ) -> MintReceipt:
        ids = tuple(item_ids)
        self.calls.append((ids, recipient, idempotency_key))

        if self.always_fail or self.fail_times > 0:
            self.fail_times = max(self.fail_times - 1, 0)
            raise MintError(f"mint service unavailable for {idempotency_key}")

        if idempotency_key in self.receipts:
            return self.receipts[idempotency_key]

        receipt = MintReceipt(
            tx_hash="0x" + hashlib.sha256(f"{ids}:{recipient}:{idempotency_key}".encode()).hexdigest(),
            minted_ids=ids,
        )
        self.receipts[idempotency_key] = receipt
        return receipt


@dataclass
class MintDispatcher:
    """Calls a MintAdapter with bounded retries and exponential backoff."""
    adapter: MintAdapter
    max_attempts: int = 3
    backoff_base: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep)

    def mint(
        self,
        item_ids: Sequence[int],
        recipient: str,
        idempotency_key: str,
    ) -> MintReceipt:
        """
        Mint, retrying transient failures.

        Raises:
            MintError: after the last attempt fails
        """
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                receipt = self.adapter.mint(item_ids, recipient, idempotency_key)
                logger.info(f"Minted {list(item_ids)} to {recipient}: tx={receipt.tx_hash[:12]}...")
                return receipt
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Mint attempt {attempt}/{self.max_attempts} failed for {idempotency_key}: {e}"
                )
                if attempt < self.max_attempts:
                    self.sleep(self.backoff_base * (2 ** (attempt - 1)))

        raise MintError(f"Mint failed after {self.max_attempts} attempts: {last_error}") from last_error
