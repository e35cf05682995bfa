"""
Transaction list fetcher (GET /transactions).
"""

import logging
from collections.abc import Callable
from datetime import date
from typing import Any

from ..schemas.api_version import ApiVersion, ServerVersion
from ..schemas.ledger import Posting, Profile, Transaction, sort_transactions
from .base import LedgerParseError, VersionedFetcher, decode_amount, decode_comment

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def _decode_posting(raw: Any, version: ApiVersion) -> Posting:
    if not isinstance(raw, dict):
        raise LedgerParseError("Posting is not an object")
    account = raw.get("paccount")
    if not isinstance(account, str):
        raise LedgerParseError(f"Invalid paccount: {account!r}")

    amounts = raw.get("pamount") or []
    if not isinstance(amounts, list):
        raise LedgerParseError("pamount is not a list")

    # Postings carry a single amount in practice; extra commodities are ignored
    if amounts:
        currency, quantity, style = decode_amount(amounts[0], version)
        return Posting(
            account_name=account,
            amount=quantity,
            currency=currency,
            comment=decode_comment(raw.get("pcomment")),
            style=style,
        )
    return Posting(account_name=account, comment=decode_comment(raw.get("pcomment")))


def decode_transaction(raw: Any, version: ApiVersion) -> Transaction:
    """Decode one transaction object."""
    if not isinstance(raw, dict):
        raise LedgerParseError("Transaction is not an object")

    ledger_id = raw.get("tindex")
    if not isinstance(ledger_id, int) or isinstance(ledger_id, bool):
        raise LedgerParseError(f"Invalid tindex: {ledger_id!r}")

    raw_date = raw.get("tdate")
    if not isinstance(raw_date, str):
        raise LedgerParseError(f"Transaction {ledger_id} has no date")
    try:
        tx_date = date.fromisoformat(raw_date)
    except ValueError as e:
        raise LedgerParseError(f"Transaction {ledger_id} has invalid date {raw_date!r}") from e

    postings = raw.get("tpostings") or []
    if not isinstance(postings, list):
        raise LedgerParseError(f"Transaction {ledger_id}: tpostings is not a list")

    description = raw.get("tdescription")
    return Transaction(
        ledger_id=ledger_id,
        date=tx_date,
        description=description if isinstance(description, str) else "",
        comment=decode_comment(raw.get("tcomment")),
        postings=[_decode_posting(p, version) for p in postings],
    )


class TransactionListFetcher(VersionedFetcher[list[Transaction]]):
    """Fetches all transactions, reporting progress in postings processed."""

    @property
    def endpoint(self) -> str:
        return "transactions"

    def fetch(
        self,
        profile: Profile,
        expected_postings_count: int = 0,
        on_progress: ProgressCallback | None = None,
        server_version: ServerVersion | None = None,
    ) -> list[Transaction] | None:
        """
        Fetch transactions for a profile, newest first.

        Args:
            profile: Server profile
            expected_postings_count: Total postings reported by the account
                list; progress is only reported when this is positive
            on_progress: Called with (postings processed, expected total)
            server_version: Detected server version, narrows AUTO probing

        Returns:
            Sorted transactions, or None if the JSON endpoint is unsupported
        """

        def decode(payload: Any, version: ApiVersion) -> list[Transaction]:
            if not isinstance(payload, list):
                raise LedgerParseError(
                    f"Expected transaction list, got {type(payload).__name__}"
                )
            transactions = []
            processed = 0
            for raw in payload:
                self._check_cancelled()
                tx = decode_transaction(raw, version)
                transactions.append(tx)
                processed += len(tx.postings)
                if on_progress is not None and expected_postings_count > 0:
                    on_progress(processed, expected_postings_count)
            return transactions

        transactions = self._fetch_decoded(profile, server_version, decode)
        if transactions is None:
            return None

        logger.info(f"Fetched {len(transactions)} transactions")
        return sort_transactions(transactions)
