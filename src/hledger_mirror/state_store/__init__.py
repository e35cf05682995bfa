"""
State Store (SQLite-based).

Local cache of hledger-web servers:
- Profiles and last sync info
- Accounts and per-currency balances
- Transactions and postings
- Transaction templates

Rows are keyed by natural keys (profile + account name, profile + ledger id)
and tagged with the sync generation that last confirmed them.
"""

from .sqlite_store import (
    PurgeStats,
    SaveStats,
    StateStore,
    SyncInfo,
)

__all__ = [
    "StateStore",
    "SaveStats",
    "PurgeStats",
    "SyncInfo",
]
