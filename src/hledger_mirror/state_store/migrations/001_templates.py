"""
Migration 001: Add transaction template tables.

Templates turn free text (typed or scanned) into a transaction skeleton.
Every field is stored as a literal column plus an optional match group
column; a positive match group takes precedence at extraction time.
"""

import sqlite3

VERSION = 1
NAME = "templates"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create templates and template_lines tables."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS templates (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            pattern TEXT NOT NULL,
            test_text TEXT,
            description TEXT,
            description_match_group INTEGER,
            comment TEXT,
            comment_match_group INTEGER,
            date_year TEXT,
            date_year_match_group INTEGER,
            date_month TEXT,
            date_month_match_group INTEGER,
            date_day TEXT,
            date_day_match_group INTEGER,
            position INTEGER NOT NULL,  -- matching order
            created_at TEXT NOT NULL
        )
    """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS template_lines (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            template_id INTEGER NOT NULL,
            position INTEGER NOT NULL,
            acc TEXT,
            acc_match_group INTEGER,
            amount TEXT,
            amount_match_group INTEGER,
            currency TEXT,
            currency_match_group INTEGER,
            comment TEXT,
            comment_match_group INTEGER,
            negate_amount INTEGER NOT NULL DEFAULT 0,
            FOREIGN KEY (template_id) REFERENCES templates(id) ON DELETE CASCADE
        )
    """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_templates_position ON templates(position)")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_template_lines_template ON template_lines(template_id)"
    )


def downgrade(conn: sqlite3.Connection) -> None:
    """Remove template tables."""
    conn.execute("DROP TABLE IF EXISTS template_lines")
    conn.execute("DROP TABLE IF EXISTS templates")
