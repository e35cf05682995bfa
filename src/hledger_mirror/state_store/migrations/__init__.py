"""
Database migrations for the ledger cache.

Migrations are applied in order and tracked in a migrations table. The
core ledger tables are created by the store itself; migrations add
everything layered on top.
"""

from .runner import MigrationError, MigrationRunner, get_all_migrations

__all__ = ["MigrationError", "MigrationRunner", "get_all_migrations"]
