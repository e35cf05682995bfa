"""Sync, persistence and submission services."""

from hledger_mirror.services.errors import (
    SyncCancelled,
    SyncError,
    SyncException,
    to_sync_exception,
)
from hledger_mirror.services.persistence import GenerationalPersistence, SaveResult
from hledger_mirror.services.sender import SendError, TransactionSender, build_add_payload
from hledger_mirror.services.sync import (
    SyncIndeterminate,
    SyncOrchestrator,
    SyncProgress,
    SyncResult,
    SyncRunning,
    SyncStarting,
)

__all__ = [
    "GenerationalPersistence",
    "SaveResult",
    "SendError",
    "SyncCancelled",
    "SyncError",
    "SyncException",
    "SyncIndeterminate",
    "SyncOrchestrator",
    "SyncProgress",
    "SyncResult",
    "SyncRunning",
    "SyncStarting",
    "TransactionSender",
    "build_add_payload",
    "to_sync_exception",
]
