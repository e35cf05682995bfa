"""
CLI runner module.

Provides commands:
- init-config: Write a default config file
- sync: Mirror the server into the local cache
- status / accounts: Inspect the cache
- import-templates / match: Manage and apply transaction templates
- balance / add: Solve and submit new transactions
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
