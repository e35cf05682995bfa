"""
SQLite-based ledger cache implementation.

Tables:
- profiles: Configured servers and their last sync info
- accounts: Account tree per profile, with UI-only expansion state
- account_values: Per-currency account balances
- transactions: Cached transactions with content hash
- transaction_accounts: Postings, ordered by order_no
- templates / template_lines: Text-matching templates (migration 001)

Every account, balance, transaction and posting row carries the sync
generation that last confirmed it.
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

from ..schemas.api_version import ApiVersion
from ..schemas.content_hash import compute_data_hash
from ..schemas.ledger import (
    Account,
    AccountAmount,
    AmountStyle,
    Posting,
    Profile,
    Transaction,
    parent_account_name,
)
from ..templates.models import (
    Template,
    TemplateLine,
    source_from_columns,
    source_to_columns,
)

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _amount_to_db(amount: Decimal | None) -> str | None:
    return None if amount is None else str(amount)


def _amount_from_db(value: str | None) -> Decimal | None:
    return None if value is None else Decimal(value)


def _style_to_db(style: AmountStyle | None) -> str | None:
    return None if style is None else style.serialize()


@dataclass
class SaveStats:
    """Outcome of storing one batch of transactions."""

    inserted: int = 0
    updated: int = 0
    unchanged: int = 0

    def add(self, other: "SaveStats") -> None:
        self.inserted += other.inserted
        self.updated += other.updated
        self.unchanged += other.unchanged


@dataclass
class PurgeStats:
    """Rows deleted by a generation purge."""

    accounts: int = 0
    account_values: int = 0
    transactions: int = 0
    postings: int = 0


@dataclass
class SyncInfo:
    """Last successful sync of a profile."""

    synced_at: str | None
    transaction_count: int
    account_count: int


def _profile_from_row(row: sqlite3.Row) -> Profile:
    try:
        api_version = ApiVersion(row["api_version"])
    except ValueError:
        api_version = ApiVersion.AUTO
    return Profile(
        id=row["id"],
        name=row["name"],
        url=row["url"],
        auth_user=row["auth_user"],
        auth_password=row["auth_password"],
        api_version=api_version,
        permit_posting=bool(row["permit_posting"]),
        default_commodity=row["default_commodity"],
    )


def _posting_from_row(row: sqlite3.Row) -> Posting:
    return Posting(
        account_name=row["account_name"],
        amount=_amount_from_db(row["amount"]),
        currency=row["currency"] or "",
        comment=row["comment"],
        style=AmountStyle.parse(row["amount_style"]),
    )


class StateStore:
    """
    SQLite-based cache of one or more hledger-web servers.

    Provides persistent tracking of:
    - Profiles and their last sync
    - Accounts with balances (generation-tagged)
    - Transactions with postings (generation-tagged, content-hashed)
    - Transaction templates

    Thread-safe for single-writer scenarios: every method opens its own
    connection, so the store may be used from a dedicated I/O thread.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | str, run_migrations: bool = True):
        """
        Initialize state store.

        Args:
            db_path: Path to SQLite database file
            run_migrations: Whether to run pending migrations (default True)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        if run_migrations:
            self._run_migrations()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS profiles (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    url TEXT NOT NULL,
                    auth_user TEXT,
                    auth_password TEXT,
                    api_version TEXT NOT NULL DEFAULT 'auto',
                    permit_posting INTEGER NOT NULL DEFAULT 0,
                    default_commodity TEXT,
                    created_at TEXT NOT NULL
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    profile_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    parent_name TEXT,
                    level INTEGER NOT NULL,
                    expanded INTEGER NOT NULL DEFAULT 0,  -- UI-only
                    amounts_expanded INTEGER NOT NULL DEFAULT 0,  -- UI-only
                    generation INTEGER NOT NULL DEFAULT 0,
                    UNIQUE (profile_id, name),
                    FOREIGN KEY (profile_id) REFERENCES profiles(id) ON DELETE CASCADE
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS account_values (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    account_id INTEGER NOT NULL,
                    currency TEXT NOT NULL,
                    value TEXT NOT NULL,  -- Decimal as string
                    amount_style TEXT,
                    generation INTEGER NOT NULL DEFAULT 0,
                    UNIQUE (account_id, currency),
                    FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS transactions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    profile_id INTEGER NOT NULL,
                    ledger_id INTEGER NOT NULL,
                    date TEXT NOT NULL,  -- YYYY-MM-DD
                    description TEXT NOT NULL,
                    comment TEXT,
                    data_hash TEXT NOT NULL,
                    generation INTEGER NOT NULL DEFAULT 0,
                    UNIQUE (profile_id, ledger_id),
                    FOREIGN KEY (profile_id) REFERENCES profiles(id) ON DELETE CASCADE
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS transaction_accounts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    transaction_id INTEGER NOT NULL,
                    order_no INTEGER NOT NULL,
                    account_name TEXT NOT NULL,
                    amount TEXT,  -- Decimal as string, NULL if unresolved
                    currency TEXT NOT NULL DEFAULT '',
                    comment TEXT,
                    amount_style TEXT,
                    generation INTEGER NOT NULL DEFAULT 0,
                    UNIQUE (transaction_id, order_no),
                    FOREIGN KEY (transaction_id) REFERENCES transactions(id) ON DELETE CASCADE
                )
            """
            )

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_accounts_generation ON accounts(profile_id, generation)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_transactions_generation ON transactions(profile_id, generation)"
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(date)")

            conn.execute(
                "INSERT OR IGNORE INTO schema_version (version) VALUES (?)",
                (self.SCHEMA_VERSION,),
            )

    def _run_migrations(self) -> None:
        """Run pending database migrations."""
        from .migrations import MigrationRunner

        conn = self._get_connection()
        try:
            runner = MigrationRunner(conn)
            runner.run_pending()
        finally:
            conn.close()

    # Profile methods

    def create_profile(
        self,
        name: str,
        url: str,
        auth_user: str | None = None,
        auth_password: str | None = None,
        api_version: ApiVersion = ApiVersion.AUTO,
        permit_posting: bool = False,
        default_commodity: str | None = None,
    ) -> Profile:
        """Insert a new profile and return it with its id."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO profiles
                (name, url, auth_user, auth_password, api_version, permit_posting,
                 default_commodity, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    name,
                    url,
                    auth_user,
                    auth_password,
                    api_version.value,
                    int(permit_posting),
                    default_commodity,
                    _now(),
                ),
            )
            profile_id = cursor.lastrowid
        logger.info(f"Created profile '{name}' (id={profile_id})")
        return self.get_profile(profile_id)

    def update_profile(self, profile: Profile) -> None:
        """Write back the user-editable fields of a profile."""
        with self._transaction() as conn:
            conn.execute(
                """
                UPDATE profiles
                SET name = ?, url = ?, auth_user = ?, auth_password = ?, api_version = ?,
                    permit_posting = ?, default_commodity = ?
                WHERE id = ?
            """,
                (
                    profile.name,
                    profile.url,
                    profile.auth_user,
                    profile.auth_password,
                    profile.api_version.value,
                    int(profile.permit_posting),
                    profile.default_commodity,
                    profile.id,
                ),
            )

    def get_profile(self, profile_id: int) -> Profile | None:
        """Get a profile by ID."""
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM profiles WHERE id = ?", (profile_id,)).fetchone()
            return _profile_from_row(row) if row else None

    def get_profile_by_name(self, name: str) -> Profile | None:
        """Get a profile by its unique name."""
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM profiles WHERE name = ?", (name,)).fetchone()
            return _profile_from_row(row) if row else None

    def list_profiles(self) -> list[Profile]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM profiles ORDER BY name").fetchall()
            return [_profile_from_row(row) for row in rows]

    def record_sync_info(
        self,
        profile_id: int,
        transaction_count: int,
        account_count: int,
        generation: int = 0,
    ) -> None:
        """Remember when a profile last synced successfully, and what it got.

        The recorded generation never decreases, so generation numbers keep
        growing even after a sync that left the profile without rows.
        """
        with self._transaction() as conn:
            conn.execute(
                """
                UPDATE profiles
                SET last_sync_at = ?, last_sync_transactions = ?, last_sync_accounts = ?,
                    last_generation = MAX(last_generation, ?)
                WHERE id = ?
            """,
                (_now(), transaction_count, account_count, generation, profile_id),
            )

    def get_sync_info(self, profile_id: int) -> SyncInfo | None:
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT last_sync_at, last_sync_transactions, last_sync_accounts
                FROM profiles WHERE id = ?
            """,
                (profile_id,),
            ).fetchone()
            if not row or row["last_sync_at"] is None:
                return None
            return SyncInfo(
                synced_at=row["last_sync_at"],
                transaction_count=row["last_sync_transactions"] or 0,
                account_count=row["last_sync_accounts"] or 0,
            )

    # Generation methods

    def get_max_generation(self, profile_id: int) -> int:
        """Highest generation used for a profile, 0 before the first save."""
        with self._transaction() as conn:
            return self._max_generation(conn, profile_id)

    @staticmethod
    def _max_generation(conn: sqlite3.Connection, profile_id: int) -> int:
        row = conn.execute(
            """
            SELECT MAX(g) FROM (
                SELECT MAX(generation) AS g FROM accounts WHERE profile_id = ?
                UNION ALL
                SELECT MAX(generation) AS g FROM transactions WHERE profile_id = ?
                UNION ALL
                SELECT last_generation AS g FROM profiles WHERE id = ?
            )
        """,
            (profile_id, profile_id, profile_id),
        ).fetchone()
        return row[0] or 0

    def purge_older_than(self, profile_id: int, generation: int) -> PurgeStats:
        """
        Delete every row of a profile not confirmed by `generation`.

        Covers accounts, balances, transactions and postings; the latter two
        also catch rows left behind inside a kept parent (a currency dropped
        from an account, a posting removed from a transaction).
        """
        stats = PurgeStats()
        with self._transaction() as conn:
            stats.postings = conn.execute(
                """
                DELETE FROM transaction_accounts
                WHERE generation < ?
                  AND transaction_id IN (SELECT id FROM transactions WHERE profile_id = ?)
            """,
                (generation, profile_id),
            ).rowcount
            stats.transactions = conn.execute(
                "DELETE FROM transactions WHERE profile_id = ? AND generation < ?",
                (profile_id, generation),
            ).rowcount
            stats.account_values = conn.execute(
                """
                DELETE FROM account_values
                WHERE generation < ?
                  AND account_id IN (SELECT id FROM accounts WHERE profile_id = ?)
            """,
                (generation, profile_id),
            ).rowcount
            stats.accounts = conn.execute(
                "DELETE FROM accounts WHERE profile_id = ? AND generation < ?",
                (profile_id, generation),
            ).rowcount

        logger.info(
            f"Purged profile {profile_id} below generation {generation}: "
            f"{stats.transactions} transactions, {stats.accounts} accounts"
        )
        return stats

    # Account methods

    @staticmethod
    def _upsert_account(
        conn: sqlite3.Connection, profile_id: int, name: str, generation: int
    ) -> int:
        """Insert or re-tag an account by (profile, name). UI-only fields are untouched."""
        conn.execute(
            """
            INSERT INTO accounts (profile_id, name, parent_name, level, generation)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(profile_id, name) DO UPDATE SET
                parent_name = excluded.parent_name,
                level = excluded.level,
                generation = excluded.generation
        """,
            (profile_id, name, parent_account_name(name), name.count(":"), generation),
        )
        row = conn.execute(
            "SELECT id FROM accounts WHERE profile_id = ? AND name = ?", (profile_id, name)
        ).fetchone()
        return row["id"]

    def store_accounts(self, profile_id: int, accounts: list[Account], generation: int) -> None:
        """Upsert accounts and their balances, tagged with `generation`."""
        with self._transaction() as conn:
            for account in accounts:
                account_id = self._upsert_account(conn, profile_id, account.name, generation)
                for amount in account.amounts:
                    conn.execute(
                        """
                        INSERT INTO account_values
                        (account_id, currency, value, amount_style, generation)
                        VALUES (?, ?, ?, ?, ?)
                        ON CONFLICT(account_id, currency) DO UPDATE SET
                            value = excluded.value,
                            amount_style = excluded.amount_style,
                            generation = excluded.generation
                    """,
                        (
                            account_id,
                            amount.currency,
                            _amount_to_db(amount.amount),
                            _style_to_db(amount.style),
                            generation,
                        ),
                    )

    def _load_amounts(self, conn: sqlite3.Connection, account_id: int) -> list[AccountAmount]:
        rows = conn.execute(
            "SELECT * FROM account_values WHERE account_id = ? ORDER BY currency",
            (account_id,),
        ).fetchall()
        return [
            AccountAmount(
                currency=row["currency"],
                amount=Decimal(row["value"]),
                style=AmountStyle.parse(row["amount_style"]),
            )
            for row in rows
        ]

    def _account_from_row(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Account:
        return Account(
            id=row["id"],
            name=row["name"],
            amounts=self._load_amounts(conn, row["id"]),
            expanded=bool(row["expanded"]),
            amounts_expanded=bool(row["amounts_expanded"]),
        )

    def get_accounts(self, profile_id: int) -> list[Account]:
        """All cached accounts of a profile, in tree order."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM accounts WHERE profile_id = ? ORDER BY name", (profile_id,)
            ).fetchall()
            return [self._account_from_row(conn, row) for row in rows]

    def get_account(self, profile_id: int, name: str) -> Account | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM accounts WHERE profile_id = ? AND name = ?", (profile_id, name)
            ).fetchone()
            return self._account_from_row(conn, row) if row else None

    def set_account_expanded(
        self,
        profile_id: int,
        name: str,
        expanded: bool | None = None,
        amounts_expanded: bool | None = None,
    ) -> bool:
        """Update UI-only expansion state. Returns False if the account is unknown."""
        account = self.get_account(profile_id, name)
        if account is None:
            return False
        if expanded is not None:
            account = replace(account, expanded=expanded)
        if amounts_expanded is not None:
            account = replace(account, amounts_expanded=amounts_expanded)
        with self._transaction() as conn:
            conn.execute(
                "UPDATE accounts SET expanded = ?, amounts_expanded = ? WHERE id = ?",
                (int(account.expanded), int(account.amounts_expanded), account.id),
            )
        return True

    # Transaction methods

    @staticmethod
    def _upsert_postings(
        conn: sqlite3.Connection,
        transaction_id: int,
        postings: list[Posting],
        generation: int,
    ) -> None:
        """Reconcile postings by order number: update in place or insert."""
        for order_no, posting in enumerate(postings, start=1):
            conn.execute(
                """
                INSERT INTO transaction_accounts
                (transaction_id, order_no, account_name, amount, currency, comment,
                 amount_style, generation)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(transaction_id, order_no) DO UPDATE SET
                    account_name = excluded.account_name,
                    amount = excluded.amount,
                    currency = excluded.currency,
                    comment = excluded.comment,
                    amount_style = excluded.amount_style,
                    generation = excluded.generation
            """,
                (
                    transaction_id,
                    order_no,
                    posting.account_name,
                    _amount_to_db(posting.amount),
                    posting.currency,
                    posting.comment,
                    _style_to_db(posting.style),
                    generation,
                ),
            )

    @staticmethod
    def _insert_transaction(
        conn: sqlite3.Connection,
        profile_id: int,
        transaction: Transaction,
        data_hash: str,
        generation: int,
    ) -> int:
        cursor = conn.execute(
            """
            INSERT INTO transactions
            (profile_id, ledger_id, date, description, comment, data_hash, generation)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
            (
                profile_id,
                transaction.ledger_id,
                transaction.date.isoformat(),
                transaction.description,
                transaction.comment,
                data_hash,
                generation,
            ),
        )
        return cursor.lastrowid

    def store_transactions(
        self, profile_id: int, transactions: list[Transaction], generation: int
    ) -> SaveStats:
        """
        Upsert a batch of transactions by (profile, ledger id).

        - Same content hash: only the generation is bumped
        - Different hash: fields overwritten in the same row, postings
          reconciled by order number
        - Unknown ledger id: inserted with its postings
        """
        stats = SaveStats()
        with self._transaction() as conn:
            for tx in transactions:
                data_hash = compute_data_hash(profile_id, tx)
                existing = conn.execute(
                    "SELECT id, data_hash FROM transactions WHERE profile_id = ? AND ledger_id = ?",
                    (profile_id, tx.ledger_id),
                ).fetchone()

                if existing is None:
                    tx_id = self._insert_transaction(conn, profile_id, tx, data_hash, generation)
                    self._upsert_postings(conn, tx_id, tx.postings, generation)
                    stats.inserted += 1
                elif existing["data_hash"] == data_hash:
                    conn.execute(
                        "UPDATE transactions SET generation = ? WHERE id = ?",
                        (generation, existing["id"]),
                    )
                    conn.execute(
                        "UPDATE transaction_accounts SET generation = ? WHERE transaction_id = ?",
                        (generation, existing["id"]),
                    )
                    stats.unchanged += 1
                else:
                    conn.execute(
                        """
                        UPDATE transactions
                        SET date = ?, description = ?, comment = ?, data_hash = ?, generation = ?
                        WHERE id = ?
                    """,
                        (
                            tx.date.isoformat(),
                            tx.description,
                            tx.comment,
                            data_hash,
                            generation,
                            existing["id"],
                        ),
                    )
                    self._upsert_postings(conn, existing["id"], tx.postings, generation)
                    stats.updated += 1
        return stats

    def _transaction_from_row(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Transaction:
        postings = conn.execute(
            "SELECT * FROM transaction_accounts WHERE transaction_id = ? ORDER BY order_no",
            (row["id"],),
        ).fetchall()
        return Transaction(
            id=row["id"],
            ledger_id=row["ledger_id"],
            date=date.fromisoformat(row["date"]),
            description=row["description"],
            comment=row["comment"],
            postings=[_posting_from_row(p) for p in postings],
        )

    def get_transactions(self, profile_id: int) -> list[Transaction]:
        """All cached transactions of a profile, newest first."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM transactions WHERE profile_id = ?
                ORDER BY date DESC, ledger_id DESC
            """,
                (profile_id,),
            ).fetchall()
            return [self._transaction_from_row(conn, row) for row in rows]

    def get_transaction(self, profile_id: int, ledger_id: int) -> Transaction | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM transactions WHERE profile_id = ? AND ledger_id = ?",
                (profile_id, ledger_id),
            ).fetchone()
            return self._transaction_from_row(conn, row) if row else None

    def get_generation(self, profile_id: int, ledger_id: int) -> int | None:
        """Generation tag of one cached transaction."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT generation FROM transactions WHERE profile_id = ? AND ledger_id = ?",
                (profile_id, ledger_id),
            ).fetchone()
            return row["generation"] if row else None

    def append_local_transaction(self, profile_id: int, transaction: Transaction) -> Transaction:
        """
        Store a locally composed transaction without a sync.

        The transaction gets ledger id max+1 and the current generation, so it
        survives until the next successful sync replaces it with the server's
        copy. Missing accounts along each posting's chain are created and
        posting amounts are added to the account balances.
        """
        with self._transaction() as conn:
            generation = self._max_generation(conn, profile_id)
            row = conn.execute(
                "SELECT COALESCE(MAX(ledger_id), 0) FROM transactions WHERE profile_id = ?",
                (profile_id,),
            ).fetchone()
            stored = replace(transaction, ledger_id=row[0] + 1)

            data_hash = compute_data_hash(profile_id, stored)
            tx_id = self._insert_transaction(conn, profile_id, stored, data_hash, generation)
            self._upsert_postings(conn, tx_id, stored.postings, generation)

            for posting in stored.postings:
                account_id = self._ensure_account_chain(
                    conn, profile_id, posting.account_name, generation
                )
                if posting.amount is not None:
                    self._add_to_balance(conn, account_id, posting, generation)

        logger.info(f"Appended local transaction {stored.ledger_id} to profile {profile_id}")
        return replace(stored, id=tx_id)

    def _ensure_account_chain(
        self, conn: sqlite3.Connection, profile_id: int, name: str, generation: int
    ) -> int:
        """Create the account and its missing ancestors. Returns the account id."""
        account_id = None
        current: str | None = name
        while current is not None:
            row = conn.execute(
                "SELECT id FROM accounts WHERE profile_id = ? AND name = ?",
                (profile_id, current),
            ).fetchone()
            if row is None:
                cursor = conn.execute(
                    """
                    INSERT INTO accounts (profile_id, name, parent_name, level, generation)
                    VALUES (?, ?, ?, ?, ?)
                """,
                    (
                        profile_id,
                        current,
                        parent_account_name(current),
                        current.count(":"),
                        generation,
                    ),
                )
                found_id = cursor.lastrowid
            else:
                found_id = row["id"]
            if account_id is None:
                account_id = found_id
            current = parent_account_name(current)
        return account_id

    @staticmethod
    def _add_to_balance(
        conn: sqlite3.Connection, account_id: int, posting: Posting, generation: int
    ) -> None:
        row = conn.execute(
            "SELECT id, value FROM account_values WHERE account_id = ? AND currency = ?",
            (account_id, posting.currency),
        ).fetchone()
        if row is None:
            conn.execute(
                """
                INSERT INTO account_values (account_id, currency, value, amount_style, generation)
                VALUES (?, ?, ?, ?, ?)
            """,
                (
                    account_id,
                    posting.currency,
                    _amount_to_db(posting.amount),
                    _style_to_db(posting.style),
                    generation,
                ),
            )
        else:
            total = Decimal(row["value"]) + posting.amount
            conn.execute(
                "UPDATE account_values SET value = ? WHERE id = ?",
                (_amount_to_db(total), row["id"]),
            )

    # Template methods

    def save_template(self, template: Template) -> Template:
        """Insert or replace a template and its lines. Returns it with its id."""
        header = {
            "description": source_to_columns(template.description),
            "comment": source_to_columns(template.comment),
            "date_year": source_to_columns(template.date_year),
            "date_month": source_to_columns(template.date_month),
            "date_day": source_to_columns(template.date_day),
        }
        with self._transaction() as conn:
            values = (
                template.name,
                template.pattern,
                template.test_text,
                header["description"][0],
                header["description"][1],
                header["comment"][0],
                header["comment"][1],
                header["date_year"][0],
                header["date_year"][1],
                header["date_month"][0],
                header["date_month"][1],
                header["date_day"][0],
                header["date_day"][1],
            )
            if template.id is None:
                position = conn.execute(
                    "SELECT COALESCE(MAX(position), 0) + 1 FROM templates"
                ).fetchone()[0]
                cursor = conn.execute(
                    """
                    INSERT INTO templates
                    (name, pattern, test_text, description, description_match_group,
                     comment, comment_match_group, date_year, date_year_match_group,
                     date_month, date_month_match_group, date_day, date_day_match_group,
                     position, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    values + (position, _now()),
                )
                template_id = cursor.lastrowid
            else:
                template_id = template.id
                conn.execute(
                    """
                    UPDATE templates
                    SET name = ?, pattern = ?, test_text = ?,
                        description = ?, description_match_group = ?,
                        comment = ?, comment_match_group = ?,
                        date_year = ?, date_year_match_group = ?,
                        date_month = ?, date_month_match_group = ?,
                        date_day = ?, date_day_match_group = ?
                    WHERE id = ?
                """,
                    values + (template_id,),
                )
                conn.execute("DELETE FROM template_lines WHERE template_id = ?", (template_id,))

            for position, line in enumerate(template.lines, start=1):
                acc, acc_group = source_to_columns(line.account)
                amount, amount_group = source_to_columns(line.amount)
                currency, currency_group = source_to_columns(line.currency)
                comment, comment_group = source_to_columns(line.comment)
                conn.execute(
                    """
                    INSERT INTO template_lines
                    (template_id, position, acc, acc_match_group, amount, amount_match_group,
                     currency, currency_match_group, comment, comment_match_group, negate_amount)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        template_id,
                        position,
                        acc,
                        acc_group,
                        amount,
                        amount_group,
                        currency,
                        currency_group,
                        comment,
                        comment_group,
                        int(line.negate_amount),
                    ),
                )

        return replace(template, id=template_id)

    def get_templates(self) -> list[Template]:
        """All templates in matching order."""
        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM templates ORDER BY position, id").fetchall()
            templates = []
            for row in rows:
                line_rows = conn.execute(
                    "SELECT * FROM template_lines WHERE template_id = ? ORDER BY position",
                    (row["id"],),
                ).fetchall()
                templates.append(self._template_from_rows(row, line_rows))
            return templates

    @staticmethod
    def _template_from_rows(row: sqlite3.Row, line_rows: list[sqlite3.Row]) -> Template:
        lines = [
            TemplateLine(
                account=source_from_columns(r["acc"], r["acc_match_group"]),
                amount=source_from_columns(r["amount"], r["amount_match_group"]),
                currency=source_from_columns(r["currency"], r["currency_match_group"]),
                comment=source_from_columns(r["comment"], r["comment_match_group"]),
                negate_amount=bool(r["negate_amount"]),
            )
            for r in line_rows
        ]
        return Template(
            id=row["id"],
            name=row["name"],
            pattern=row["pattern"],
            test_text=row["test_text"],
            description=source_from_columns(row["description"], row["description_match_group"]),
            comment=source_from_columns(row["comment"], row["comment_match_group"]),
            date_year=source_from_columns(row["date_year"], row["date_year_match_group"]),
            date_month=source_from_columns(row["date_month"], row["date_month_match_group"]),
            date_day=source_from_columns(row["date_day"], row["date_day_match_group"]),
            lines=lines,
        )

    def delete_template(self, template_id: int) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM templates WHERE id = ?", (template_id,))
            return cursor.rowcount > 0

    # Stats

    def get_stats(self, profile_id: int) -> dict[str, Any]:
        """Get cache statistics for a profile."""
        with self._transaction() as conn:
            accounts = conn.execute(
                "SELECT COUNT(*) as count FROM accounts WHERE profile_id = ?", (profile_id,)
            ).fetchone()
            transactions = conn.execute(
                "SELECT COUNT(*) as count FROM transactions WHERE profile_id = ?", (profile_id,)
            ).fetchone()
            postings = conn.execute(
                """
                SELECT COUNT(*) as count FROM transaction_accounts
                WHERE transaction_id IN (SELECT id FROM transactions WHERE profile_id = ?)
            """,
                (profile_id,),
            ).fetchone()

            return {
                "accounts": accounts["count"] if accounts else 0,
                "transactions": transactions["count"] if transactions else 0,
                "postings": postings["count"] if postings else 0,
                "generation": self._max_generation(conn, profile_id),
            }
