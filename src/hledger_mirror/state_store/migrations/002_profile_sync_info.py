"""
Migration 002: Add last sync info to profiles.

Stores when a profile last synced successfully and how many transactions
and accounts that sync delivered.
"""

import sqlite3

VERSION = 2
NAME = "profile_sync_info"


def upgrade(conn: sqlite3.Connection) -> None:
    """Add last sync columns to profiles."""
    conn.execute("ALTER TABLE profiles ADD COLUMN last_sync_at TEXT DEFAULT NULL")
    conn.execute("ALTER TABLE profiles ADD COLUMN last_sync_transactions INTEGER DEFAULT NULL")
    conn.execute("ALTER TABLE profiles ADD COLUMN last_sync_accounts INTEGER DEFAULT NULL")


def downgrade(conn: sqlite3.Connection) -> None:
    """Remove sync info columns (SQLite doesn't support DROP COLUMN easily)."""
    raise NotImplementedError("Downgrade not supported for this migration")
