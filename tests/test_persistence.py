"""Tests for generational persistence (mark and purge)."""

from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest

from hledger_mirror.schemas import Account, AccountAmount, Posting, Transaction
from hledger_mirror.services import GenerationalPersistence


def _tx(ledger_id: int) -> Transaction:
    return Transaction(
        ledger_id=ledger_id,
        date=date(2024, 2, ledger_id),
        description=f"Transaction {ledger_id}",
        postings=[
            Posting("Expenses:Misc", Decimal("5.00"), "EUR"),
            Posting("Assets:Cash", Decimal("-5.00"), "EUR"),
        ],
    )


ACCOUNTS = [
    Account("Assets"),
    Account("Assets:Cash", [AccountAmount("EUR", Decimal("-15.00"))]),
    Account("Expenses"),
    Account("Expenses:Misc", [AccountAmount("EUR", Decimal("15.00"))]),
]


def _snapshot(store, profile_id):
    """Stored state without row ids."""
    accounts = [(a.name, a.amounts) for a in store.get_accounts(profile_id)]
    transactions = [
        (t.ledger_id, t.description, t.postings) for t in store.get_transactions(profile_id)
    ]
    return accounts, transactions


class TestGenerationalPersistence:
    """Tests for GenerationalPersistence.save."""

    @pytest.fixture
    def persistence(self, store):
        return GenerationalPersistence(store, batch_size=2)

    def test_first_save(self, store, profile, persistence):
        result = persistence.save(profile, ACCOUNTS, [_tx(1), _tx(2), _tx(3)])

        assert result.generation == 1
        assert result.transactions.inserted == 3
        assert store.get_stats(profile.id)["transactions"] == 3
        assert store.get_sync_info(profile.id).transaction_count == 3

    def test_idempotent(self, store, profile, persistence):
        """Saving the same snapshot twice changes nothing but the generation."""
        txs = [_tx(1), _tx(2), _tx(3)]
        persistence.save(profile, ACCOUNTS, txs)
        before = _snapshot(store, profile.id)
        ids_before = [t.id for t in store.get_transactions(profile.id)]

        result = persistence.save(profile, ACCOUNTS, txs)

        assert result.generation == 2
        assert result.transactions.unchanged == 3
        assert result.purged.transactions == 0
        assert _snapshot(store, profile.id) == before
        assert [t.id for t in store.get_transactions(profile.id)] == ids_before
        assert store.get_stats(profile.id)["postings"] == 6

    def test_generation_advances_by_one(self, store, profile, persistence):
        for expected in (1, 2, 3):
            assert persistence.save(profile, ACCOUNTS, [_tx(1)]).generation == expected
        assert store.get_generation(profile.id, 1) == 3

    def test_generation_advances_after_empty_snapshot(self, store, profile, persistence):
        """Emptying the profile does not restart the generation count."""
        assert persistence.save(profile, ACCOUNTS, [_tx(1)]).generation == 1
        assert persistence.save(profile, [], []).generation == 2
        assert store.get_transactions(profile.id) == []

        assert persistence.save(profile, [], []).generation == 3
        assert persistence.save(profile, ACCOUNTS, [_tx(1)]).generation == 4
        assert store.get_max_generation(profile.id) == 4

    def test_missing_rows_are_purged(self, store, profile, persistence):
        """Sync 1 stores {1,2,3}; sync 2 sees only {1,2}: 3 is purged, ids are kept."""
        persistence.save(profile, ACCOUNTS, [_tx(1), _tx(2), _tx(3)])
        ids = {t.ledger_id: t.id for t in store.get_transactions(profile.id)}

        result = persistence.save(profile, ACCOUNTS, [_tx(1), _tx(2)])

        assert result.purged.transactions == 1
        remaining = {t.ledger_id: t.id for t in store.get_transactions(profile.id)}
        assert remaining == {1: ids[1], 2: ids[2]}

    def test_missing_accounts_are_purged(self, store, profile, persistence):
        persistence.save(profile, ACCOUNTS, [])
        persistence.save(profile, ACCOUNTS[:2], [])

        assert [a.name for a in store.get_accounts(profile.id)] == ["Assets", "Assets:Cash"]

    def test_cancel_skips_purge(self, store, profile, persistence):
        """A cancelled save leaves rows of older generations in place."""
        persistence.save(profile, ACCOUNTS, [_tx(1), _tx(2), _tx(3)])

        class Cancelled(Exception):
            pass

        calls = []

        def check():
            calls.append(1)
            if len(calls) == 3:
                raise Cancelled()

        with pytest.raises(Cancelled):
            persistence.save(profile, ACCOUNTS, [_tx(1)], check_cancelled=check)

        assert [t.ledger_id for t in store.get_transactions(profile.id)] == [3, 2, 1]

    def test_write_failure_skips_purge(self, store, profile, persistence):
        persistence.save(profile, ACCOUNTS, [_tx(1), _tx(2)])

        with patch.object(store, "store_transactions", side_effect=RuntimeError("disk full")):
            with pytest.raises(RuntimeError):
                persistence.save(profile, ACCOUNTS, [_tx(1)])

        assert len(store.get_transactions(profile.id)) == 2
        assert store.get_sync_info(profile.id).transaction_count == 2

    def test_changed_transaction_updated_in_place(self, store, profile, persistence):
        persistence.save(profile, ACCOUNTS, [_tx(1)])
        row_id = store.get_transaction(profile.id, 1).id
        changed = Transaction(
            ledger_id=1,
            date=date(2024, 2, 1),
            description="Renamed",
            postings=[
                Posting("Expenses:Misc", Decimal("5.00"), "EUR"),
                Posting("Assets:Cash", Decimal("-2.00"), "EUR"),
                Posting("Assets:Bank", Decimal("-3.00"), "EUR"),
            ],
        )

        result = persistence.save(profile, ACCOUNTS, [changed])

        assert result.transactions.updated == 1
        stored = store.get_transaction(profile.id, 1)
        assert stored.id == row_id
        assert [p.account_name for p in stored.postings] == [
            "Expenses:Misc",
            "Assets:Cash",
            "Assets:Bank",
        ]

    def test_removed_posting_purged(self, store, profile, persistence):
        """A posting dropped from a changed transaction disappears after the save."""
        persistence.save(profile, ACCOUNTS, [_tx(1)])
        shorter = Transaction(
            ledger_id=1,
            date=date(2024, 2, 1),
            description="Transaction 1",
            postings=[Posting("Expenses:Misc", Decimal("5.00"), "EUR")],
        )

        persistence.save(profile, ACCOUNTS, [shorter])

        assert len(store.get_transaction(profile.id, 1).postings) == 1
