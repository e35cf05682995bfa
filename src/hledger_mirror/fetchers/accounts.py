"""
Account list fetcher (GET /accounts).

Version differences handled here:
- up to 1.40: balances in `aibalance`, posting count in `anumpostings`
- 1.50: both under `adata.pdperiods[0][1]` (`bdincludingsubs`, `bdnumpostings`)
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from ..schemas.api_version import ApiVersion, ServerVersion
from ..schemas.ledger import Account, AccountAmount, Profile, ensure_parent_accounts
from .base import LedgerParseError, VersionedFetcher, decode_amount

logger = logging.getLogger(__name__)

ROOT_ACCOUNT_NAME = "root"


@dataclass
class AccountListResult:
    """Accounts plus the total posting count the server reported for them."""

    accounts: list[Account] = field(default_factory=list)
    expected_postings_count: int = 0


def _balance_data(raw: dict[str, Any], version: ApiVersion) -> tuple[list[Any], int]:
    """Return (balance amounts, posting count) for one raw account."""
    if version.balances_in_periods:
        adata = raw.get("adata")
        if not isinstance(adata, dict):
            raise LedgerParseError("Missing adata")
        periods = adata.get("pdperiods")
        if not isinstance(periods, list):
            raise LedgerParseError("Missing adata.pdperiods")
        if not periods:
            return [], 0
        try:
            balance_data = periods[0][1]
        except (IndexError, KeyError, TypeError) as e:
            raise LedgerParseError(f"Malformed pdperiods entry: {e}") from e
        if not isinstance(balance_data, dict):
            raise LedgerParseError("Malformed pdperiods balance data")
        amounts = balance_data.get("bdincludingsubs") or []
        count = balance_data.get("bdnumpostings", 0)
    else:
        if "aibalance" not in raw:
            raise LedgerParseError("Missing aibalance")
        amounts = raw.get("aibalance") or []
        count = raw.get("anumpostings", 0)

    if not isinstance(amounts, list):
        raise LedgerParseError("Balance is not a list")
    if not isinstance(count, int) or isinstance(count, bool):
        raise LedgerParseError(f"Invalid posting count: {count!r}")
    return amounts, count


def decode_accounts(payload: Any, version: ApiVersion) -> AccountListResult:
    """Decode an /accounts payload for one API version."""
    if not isinstance(payload, list):
        raise LedgerParseError(f"Expected account list, got {type(payload).__name__}")

    accounts: list[Account] = []
    seen: set[str] = set()
    expected = 0

    for raw in payload:
        if not isinstance(raw, dict):
            raise LedgerParseError("Account entry is not an object")
        name = raw.get("aname")
        if not isinstance(name, str) or not name:
            raise LedgerParseError(f"Invalid account name: {name!r}")

        raw_amounts, posting_count = _balance_data(raw, version)

        # hledger reports the invisible top of the tree as "root"
        if name.lower() == ROOT_ACCOUNT_NAME or name in seen:
            continue

        amounts = []
        for raw_amount in raw_amounts:
            currency, quantity, style = decode_amount(raw_amount, version)
            amounts.append(AccountAmount(currency=currency, amount=quantity, style=style))

        accounts.append(Account(name=name, amounts=amounts))
        seen.add(name)
        expected += posting_count

    return AccountListResult(
        accounts=ensure_parent_accounts(accounts),
        expected_postings_count=expected,
    )


class AccountListFetcher(VersionedFetcher[AccountListResult]):
    """Fetches the account tree with per-currency balances."""

    @property
    def endpoint(self) -> str:
        return "accounts"

    def fetch(
        self, profile: Profile, server_version: ServerVersion | None = None
    ) -> AccountListResult | None:
        """
        Fetch accounts for a profile.

        Returns:
            AccountListResult, or None if the JSON endpoint is unsupported

        Raises:
            LedgerParseError: Payload does not match a pinned API version
            ApiNotSupportedError: No ladder version decodes the payload (AUTO)
            HledgerError: Transport or HTTP failure other than 404
        """
        result = self._fetch_decoded(profile, server_version, decode_accounts)
        if result is not None:
            logger.info(
                f"Fetched {len(result.accounts)} accounts "
                f"({result.expected_postings_count} postings expected)"
            )
        return result
