"""
Migration 003: Remember the last generation written for a profile.

A sync of an empty server purges every row, so the highest generation can
no longer be read from the data tables alone.
"""

import sqlite3

VERSION = 3
NAME = "profile_generation"


def upgrade(conn: sqlite3.Connection) -> None:
    """Add the last generation column to profiles."""
    conn.execute("ALTER TABLE profiles ADD COLUMN last_generation INTEGER NOT NULL DEFAULT 0")


def downgrade(conn: sqlite3.Connection) -> None:
    """Remove the generation column (SQLite doesn't support DROP COLUMN easily)."""
    raise NotImplementedError("Downgrade not supported for this migration")
