"""
Canonical ledger model (SSOT).

These are the only account/transaction shapes used across the package. Every
wire format (all JSON API versions and the legacy HTML journal) decodes into
them, and the state store persists exactly these fields.

Records are immutable: "update in place" means look up by natural key,
`dataclasses.replace` the changed fields and write the copy back.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from .api_version import ApiVersion

ACCOUNT_SEPARATOR = ":"


class CommodityPosition(str, Enum):
    """Where the commodity symbol is rendered relative to the number."""

    BEFORE = "BEFORE"
    AFTER = "AFTER"
    NONE = "NONE"


@dataclass(frozen=True)
class AmountStyle:
    """Display style of a commodity, kept apart from the numeric value.

    Stored as a compact string: ``POSITION:spaced:precision:mark``,
    e.g. ``BEFORE:false:2:.``.
    """

    position: CommodityPosition = CommodityPosition.NONE
    spaced: bool = False
    precision: int = 2
    decimal_mark: str = "."

    def serialize(self) -> str:
        spaced = "true" if self.spaced else "false"
        return f"{self.position.value}:{spaced}:{self.precision}:{self.decimal_mark}"

    @classmethod
    def parse(cls, value: str | None) -> "AmountStyle | None":
        """Parse the serialized form. Returns None for empty or malformed input."""
        if not value:
            return None
        parts = value.split(":", 3)
        if len(parts) != 4:
            return None
        try:
            return cls(
                position=CommodityPosition(parts[0]),
                spaced=parts[1] == "true",
                precision=int(parts[2]),
                decimal_mark=parts[3] or ".",
            )
        except ValueError:
            return None


@dataclass(frozen=True)
class Profile:
    """A configured hledger-web server.

    `api_version` is a hint: AUTO probes the version ladder, HTML skips JSON
    entirely, anything else pins one wire format.
    """

    id: int
    name: str
    url: str
    auth_user: str | None = None
    auth_password: str | None = None
    api_version: ApiVersion = ApiVersion.AUTO
    permit_posting: bool = False
    default_commodity: str | None = None

    @property
    def use_authentication(self) -> bool:
        return bool(self.auth_user)


@dataclass(frozen=True)
class AccountAmount:
    """One per-currency balance of an account."""

    currency: str
    amount: Decimal
    style: AmountStyle | None = None


@dataclass(frozen=True)
class Account:
    """A ledger account. The hierarchy is derived from the name alone."""

    name: str
    amounts: list[AccountAmount] = field(default_factory=list)
    # UI-only state, never sent by the server
    expanded: bool = False
    amounts_expanded: bool = False
    id: int | None = None

    @property
    def level(self) -> int:
        return self.name.count(ACCOUNT_SEPARATOR)

    @property
    def parent_name(self) -> str | None:
        return parent_account_name(self.name)


@dataclass(frozen=True)
class Posting:
    """One line of a transaction. `amount` is None while still unresolved."""

    account_name: str
    amount: Decimal | None = None
    currency: str = ""
    comment: str | None = None
    style: AmountStyle | None = None


@dataclass(frozen=True)
class Transaction:
    """A ledger transaction with its ordered postings."""

    ledger_id: int
    date: date
    description: str
    comment: str | None = None
    postings: list[Posting] = field(default_factory=list)
    id: int | None = None


def parent_account_name(name: str) -> str | None:
    """Return the name with the last segment removed, or None for top level."""
    idx = name.rfind(ACCOUNT_SEPARATOR)
    if idx <= 0:
        return None
    return name[:idx]


def ensure_parent_accounts(accounts: list[Account]) -> list[Account]:
    """Append synthesized ancestors missing from a flat account list.

    hledger lists accounts flat and may omit intermediate levels, e.g. it can
    report "Assets:Bank:Checking" without "Assets:Bank" or "Assets".
    """
    existing = {acc.name for acc in accounts}
    result = list(accounts)

    for account in accounts:
        parent = account.parent_name
        while parent is not None and parent not in existing:
            result.append(Account(name=parent))
            existing.add(parent)
            parent = parent_account_name(parent)

    return result


def sort_transactions(transactions: list[Transaction]) -> list[Transaction]:
    """Newest first; same-day transactions by descending ledger id."""
    return sorted(transactions, key=lambda tx: (tx.date, tx.ledger_id), reverse=True)
