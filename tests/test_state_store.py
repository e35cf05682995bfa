"""Tests for state store."""

from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal

import pytest

from hledger_mirror.schemas import (
    Account,
    AccountAmount,
    AmountStyle,
    ApiVersion,
    CommodityPosition,
    Posting,
    Transaction,
    compute_data_hash,
)
from hledger_mirror.state_store import StateStore
from hledger_mirror.state_store.migrations import MigrationRunner, get_all_migrations
from hledger_mirror.templates import LiteralValue, MatchGroup, Template, TemplateLine


def _tx(ledger_id: int, description: str = "Coffee", amount: str = "3.50") -> Transaction:
    return Transaction(
        ledger_id=ledger_id,
        date=date(2024, 5, 1) + timedelta(days=ledger_id),
        description=description,
        postings=[
            Posting("Expenses:Coffee", Decimal(amount), "EUR"),
            Posting("Assets:Cash", -Decimal(amount), "EUR"),
        ],
    )


class TestStateStore:
    """Tests for SQLite state store."""

    def test_init_creates_db(self, temp_db):
        """Initializing creates database file."""
        StateStore(temp_db)
        assert temp_db.exists()

    def test_init_creates_tables(self, store):
        """All required tables are created."""
        conn = store._get_connection()
        try:
            tables = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
            table_names = [t[0] for t in tables]

            assert "profiles" in table_names
            assert "accounts" in table_names
            assert "account_values" in table_names
            assert "transactions" in table_names
            assert "transaction_accounts" in table_names
            assert "templates" in table_names
            assert "template_lines" in table_names
        finally:
            conn.close()

    def test_reopen_keeps_data(self, temp_db):
        """Migrations are not re-applied on an existing database."""
        first = StateStore(temp_db)
        first.create_profile(name="p", url="http://x")

        second = StateStore(temp_db)
        assert second.get_profile_by_name("p") is not None

    def test_migrations_recorded(self, store):
        conn = store._get_connection()
        try:
            runner = MigrationRunner(conn)
            assert runner.pending() == []
            assert runner.current_version() == max(m.version for m in get_all_migrations())
        finally:
            conn.close()


class TestProfiles:
    """Tests for profile CRUD."""

    def test_create_and_get(self, store):
        profile = store.create_profile(
            name="home",
            url="https://ledger.example.com",
            auth_user="alice",
            auth_password="secret",
            api_version=ApiVersion.V1_32,
            permit_posting=True,
            default_commodity="EUR",
        )

        loaded = store.get_profile(profile.id)
        assert loaded == profile
        assert loaded.api_version is ApiVersion.V1_32
        assert loaded.use_authentication is True

    def test_update(self, store, profile):
        store.update_profile(replace(profile, api_version=ApiVersion.HTML))

        assert store.get_profile(profile.id).api_version is ApiVersion.HTML

    def test_sync_info(self, store, profile):
        assert store.get_sync_info(profile.id) is None

        store.record_sync_info(profile.id, transaction_count=12, account_count=5)

        info = store.get_sync_info(profile.id)
        assert info.transaction_count == 12
        assert info.account_count == 5
        assert info.synced_at.endswith("Z")


class TestAccounts:
    """Tests for account upserts."""

    def test_store_and_read(self, store, profile):
        style = AmountStyle(CommodityPosition.BEFORE, spaced=True)
        store.store_accounts(
            profile.id,
            [Account("Assets:Cash", [AccountAmount("EUR", Decimal("-12.50"), style)])],
            generation=1,
        )

        account = store.get_account(profile.id, "Assets:Cash")
        assert account.amounts == [AccountAmount("EUR", Decimal("-12.50"), style)]
        assert account.level == 1

    def test_upsert_keeps_id_and_ui_state(self, store, profile):
        """A re-sync updates balances but not the expansion state."""
        store.store_accounts(
            profile.id, [Account("Assets", [AccountAmount("EUR", Decimal(1))])], generation=1
        )
        first = store.get_account(profile.id, "Assets")
        store.set_account_expanded(profile.id, "Assets", expanded=True, amounts_expanded=True)

        store.store_accounts(
            profile.id, [Account("Assets", [AccountAmount("EUR", Decimal(5))])], generation=2
        )

        second = store.get_account(profile.id, "Assets")
        assert second.id == first.id
        assert second.expanded is True
        assert second.amounts_expanded is True
        assert second.amounts[0].amount == Decimal(5)

    def test_set_expanded_unknown_account(self, store, profile):
        assert store.set_account_expanded(profile.id, "Nope", expanded=True) is False


class TestTransactions:
    """Tests for transaction reconciliation."""

    def test_insert(self, store, profile):
        stats = store.store_transactions(profile.id, [_tx(1), _tx(2)], generation=1)

        assert stats.inserted == 2
        stored = store.get_transactions(profile.id)
        assert [t.ledger_id for t in stored] == [2, 1]
        assert stored[0].postings[0].amount == Decimal("3.50")

    def test_unchanged_bumps_generation_only(self, store, profile):
        store.store_transactions(profile.id, [_tx(1)], generation=1)
        row_id = store.get_transaction(profile.id, 1).id

        stats = store.store_transactions(profile.id, [_tx(1)], generation=2)

        assert stats.unchanged == 1
        assert store.get_generation(profile.id, 1) == 2
        assert store.get_transaction(profile.id, 1).id == row_id

    def test_changed_overwrites_in_place(self, store, profile):
        store.store_transactions(profile.id, [_tx(1)], generation=1)
        row_id = store.get_transaction(profile.id, 1).id

        stats = store.store_transactions(
            profile.id, [_tx(1, description="Tea", amount="2.00")], generation=2
        )

        assert stats.updated == 1
        updated = store.get_transaction(profile.id, 1)
        assert updated.id == row_id
        assert updated.description == "Tea"
        assert [p.amount for p in updated.postings] == [Decimal("2.00"), Decimal("-2.00")]

    def test_hash_ignores_trailing_zeros(self):
        a = _tx(1, amount="10.00")
        b = _tx(1, amount="10")
        assert compute_data_hash(1, a) == compute_data_hash(1, b)
        assert compute_data_hash(1, a) != compute_data_hash(2, a)

    def test_style_change_updates_stored_style(self, store, profile):
        """A transaction whose only change is a posting style is rewritten."""
        plain = _tx(1)
        styled_posting = replace(
            plain.postings[0],
            style=AmountStyle(CommodityPosition.AFTER, spaced=True, decimal_mark=","),
        )
        styled = replace(plain, postings=[styled_posting, plain.postings[1]])
        assert compute_data_hash(1, plain) != compute_data_hash(1, styled)

        store.store_transactions(profile.id, [plain], generation=1)
        stats = store.store_transactions(profile.id, [styled], generation=2)

        assert stats.updated == 1
        stored = store.get_transaction(profile.id, 1)
        assert stored.postings[0].style.decimal_mark == ","
        assert stored.postings[0].style.position is CommodityPosition.AFTER

    def test_purge_older_than(self, store, profile):
        store.store_accounts(profile.id, [Account("Assets")], generation=1)
        store.store_transactions(profile.id, [_tx(1), _tx(2)], generation=1)
        store.store_transactions(profile.id, [_tx(1)], generation=2)

        purged = store.purge_older_than(profile.id, 2)

        assert purged.transactions == 1
        assert purged.postings == 2
        assert purged.accounts == 1
        assert [t.ledger_id for t in store.get_transactions(profile.id)] == [1]

    def test_purge_is_scoped_to_profile(self, store, profile):
        other = store.create_profile(name="other", url="http://other")
        store.store_transactions(profile.id, [_tx(1)], generation=1)
        store.store_transactions(other.id, [_tx(1)], generation=1)

        store.purge_older_than(profile.id, 5)

        assert store.get_transactions(profile.id) == []
        assert len(store.get_transactions(other.id)) == 1


class TestLocalAppend:
    """Tests for locally composed transactions."""

    def test_append_assigns_next_ledger_id(self, store, profile):
        store.store_transactions(profile.id, [_tx(1), _tx(7)], generation=3)

        stored = store.append_local_transaction(profile.id, _tx(0))

        assert stored.ledger_id == 8
        assert store.get_generation(profile.id, 8) == 3

    def test_append_creates_account_chain_and_balances(self, store, profile):
        store.store_accounts(
            profile.id,
            [Account("Assets:Cash", [AccountAmount("EUR", Decimal("20.00"))]), Account("Assets")],
            generation=1,
        )

        store.append_local_transaction(profile.id, _tx(0, amount="3.50"))

        assert store.get_account(profile.id, "Assets:Cash").amounts[0].amount == Decimal("16.50")
        coffee = store.get_account(profile.id, "Expenses:Coffee")
        assert coffee.amounts[0].amount == Decimal("3.50")
        assert store.get_account(profile.id, "Expenses") is not None


class TestTemplates:
    """Tests for template storage."""

    def _template(self, name: str = "pay") -> Template:
        return Template(
            name=name,
            pattern=r"^PAY (\d+\.\d+) (\w+)$",
            description=LiteralValue("Card payment"),
            date_year=MatchGroup(3, fallback="2024"),
            lines=[
                TemplateLine(
                    account=LiteralValue("Expenses:Misc"),
                    amount=MatchGroup(1),
                    currency=MatchGroup(2),
                ),
                TemplateLine(account=LiteralValue("Assets:Card"), negate_amount=True),
            ],
            test_text="PAY 12.50 USD",
        )

    def test_save_and_load(self, store):
        saved = store.save_template(self._template())

        loaded = store.get_templates()
        assert loaded == [saved]
        assert loaded[0].date_year == MatchGroup(3, fallback="2024")
        assert loaded[0].lines[1].negate_amount is True

    def test_update_replaces_lines(self, store):
        saved = store.save_template(self._template())
        store.save_template(replace(saved, lines=saved.lines[:1]))

        assert len(store.get_templates()[0].lines) == 1

    def test_order_and_delete(self, store):
        first = store.save_template(self._template("first"))
        store.save_template(self._template("second"))

        assert [t.name for t in store.get_templates()] == ["first", "second"]
        assert store.delete_template(first.id) is True
        assert [t.name for t in store.get_templates()] == ["second"]
        assert store.delete_template(first.id) is False


@pytest.mark.parametrize("value", [None, "", "BOGUS:true:2:.", "BEFORE:true"])
def test_amount_style_parse_invalid(value):
    assert AmountStyle.parse(value) is None


def test_amount_style_round_trip():
    style = AmountStyle(CommodityPosition.AFTER, spaced=True, precision=3, decimal_mark=",")
    assert style.serialize() == "AFTER:true:3:,"
    assert AmountStyle.parse(style.serialize()) == style
