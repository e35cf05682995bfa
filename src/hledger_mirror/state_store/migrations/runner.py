"""
Migration runner for the ledger cache schema.

Migration modules live next to this file and are named {version}_{name}.py,
e.g. 001_templates.py. Each defines:
- VERSION: int
- NAME: str
- upgrade(conn) -> None
- downgrade(conn) -> None, optional; may raise NotImplementedError
"""

import importlib
import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

MIGRATION_GLOB = "[0-9][0-9][0-9]_*.py"


class MigrationError(Exception):
    """A migration module is malformed or failed to apply."""

    pass


@dataclass
class Migration:
    """One schema step."""

    version: int
    name: str
    upgrade: Callable[[sqlite3.Connection], None]
    downgrade: Callable[[sqlite3.Connection], None] | None


def get_all_migrations() -> list[Migration]:
    """Load every migration module in this package, ordered by version."""
    migrations = []
    for path in sorted(Path(__file__).parent.glob(MIGRATION_GLOB)):
        module = importlib.import_module(f".{path.stem}", __package__)
        try:
            migrations.append(
                Migration(
                    version=module.VERSION,
                    name=module.NAME,
                    upgrade=module.upgrade,
                    downgrade=getattr(module, "downgrade", None),
                )
            )
        except AttributeError as e:
            raise MigrationError(f"Malformed migration {path.stem}: {e}") from e

    versions = [m.version for m in migrations]
    if len(versions) != len(set(versions)):
        raise MigrationError(f"Duplicate migration versions: {versions}")
    return sorted(migrations, key=lambda m: m.version)


class MigrationRunner:
    """
    Applies pending migrations in version order.

    Applied versions are recorded in a `migrations` table. Each migration
    runs and is recorded in one commit, so a failure leaves it pending.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS migrations (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                applied_at TEXT NOT NULL
            )
        """
        )
        self.conn.commit()

    def applied_versions(self) -> set[int]:
        rows = self.conn.execute("SELECT version FROM migrations").fetchall()
        return {row[0] for row in rows}

    def current_version(self) -> int:
        """Highest applied version, 0 on a fresh database."""
        row = self.conn.execute("SELECT MAX(version) FROM migrations").fetchone()
        return row[0] or 0

    def pending(self) -> list[Migration]:
        applied = self.applied_versions()
        return [m for m in get_all_migrations() if m.version not in applied]

    def _apply(self, migration: Migration) -> None:
        logger.info(f"Applying migration {migration.version:03d}_{migration.name}")
        try:
            migration.upgrade(self.conn)
            applied_at = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
            self.conn.execute(
                "INSERT INTO migrations (version, name, applied_at) VALUES (?, ?, ?)",
                (migration.version, migration.name, applied_at),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            logger.error(f"Migration {migration.version:03d}_{migration.name} failed")
            raise

    def run_pending(self) -> list[int]:
        """Apply all pending migrations. Returns the versions applied."""
        applied = []
        for migration in self.pending():
            self._apply(migration)
            applied.append(migration.version)

        if applied:
            logger.info(f"Applied migrations: {applied}")
        else:
            logger.debug("Schema is up to date")
        return applied

    def rollback_last(self) -> int | None:
        """
        Undo the most recently applied migration.

        Returns:
            The version rolled back, or None if nothing is applied

        Raises:
            NotImplementedError: The migration cannot be undone
        """
        current = self.current_version()
        if current == 0:
            return None

        migration = {m.version: m for m in get_all_migrations()}.get(current)
        if migration is None or migration.downgrade is None:
            raise NotImplementedError(f"Migration {current} does not support rollback")

        logger.info(f"Rolling back migration {migration.version:03d}_{migration.name}")
        try:
            migration.downgrade(self.conn)
            self.conn.execute("DELETE FROM migrations WHERE version = ?", (current,))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return current
