"""External collaborators: blockchain minting and bidder notifications"""
from skysale.adapters.mint import (
    MintAdapter,
    MintReceipt,
    MockMintAdapter,
    MintDispatcher,
)
from skysale.adapters.notifier import (
    Notifier,
    LoggingNotifier,
    RecordingNotifier,
    SafeNotifier,
)

__all__ = [
    "MintAdapter",
    "MintReceipt",
    "MockMintAdapter",
    "MintDispatcher",
    "Notifier",
    "LoggingNotifier",
    "RecordingNotifier",
    "SafeNotifier",
]
