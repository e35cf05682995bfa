"""Generation-based persistence of fetched ledger data.

A save is mark-and-sweep over rows: every row written or confirmed is tagged
with the next generation, and only after all of them are written are the
rows still carrying an older generation deleted.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from hledger_mirror.state_store import PurgeStats, SaveStats

if TYPE_CHECKING:
    from hledger_mirror.schemas import Account, Profile, Transaction
    from hledger_mirror.state_store import StateStore

logger = logging.getLogger(__name__)


@dataclass
class SaveResult:
    """Outcome of one generational save."""

    generation: int
    accounts_stored: int
    transactions: SaveStats = field(default_factory=SaveStats)
    purged: PurgeStats = field(default_factory=PurgeStats)


class GenerationalPersistence:
    """Writes a complete server snapshot for a profile into the state store."""

    DEFAULT_BATCH_SIZE = 200

    def __init__(self, store: StateStore, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        """Initialize the persistence service.

        Args:
            store: State store receiving the rows.
            batch_size: Rows written per database transaction.
        """
        self.store = store
        self.batch_size = max(1, batch_size)

    def save(
        self,
        profile: Profile,
        accounts: list[Account],
        transactions: list[Transaction],
        check_cancelled: Callable[[], None] | None = None,
    ) -> SaveResult:
        """Store a snapshot and purge what it no longer contains.

        `check_cancelled` is polled before every batch. If it raises, or any
        write fails, the purge does not run and rows that were not part of
        this snapshot stay untouched.

        Args:
            profile: Profile the data belongs to.
            accounts: Complete account list from the server.
            transactions: Complete transaction list from the server.
            check_cancelled: Raises to abort the save.

        Returns:
            SaveResult with the generation used and row statistics.
        """
        check = check_cancelled or (lambda: None)

        generation = self.store.get_max_generation(profile.id) + 1
        logger.info(
            f"Saving {len(accounts)} accounts and {len(transactions)} transactions "
            f"for profile '{profile.name}' as generation {generation}"
        )

        for start in range(0, len(accounts), self.batch_size):
            check()
            batch = accounts[start : start + self.batch_size]
            self.store.store_accounts(profile.id, batch, generation)

        tx_stats = SaveStats()
        for start in range(0, len(transactions), self.batch_size):
            check()
            batch = transactions[start : start + self.batch_size]
            tx_stats.add(self.store.store_transactions(profile.id, batch, generation))

        check()
        purged = self.store.purge_older_than(profile.id, generation)
        self.store.record_sync_info(profile.id, len(transactions), len(accounts), generation)

        logger.info(
            f"Generation {generation}: {tx_stats.inserted} inserted, "
            f"{tx_stats.updated} updated, {tx_stats.unchanged} unchanged"
        )
        return SaveResult(
            generation=generation,
            accounts_stored=len(accounts),
            transactions=tx_stats,
            purged=purged,
        )
