"""
Transaction content hash (CRITICAL).

This module defines THE digest used to decide, during sync, whether a cached
transaction is unchanged, changed or new. It must stay stable across releases:
changing it forces every cached transaction to be rewritten on the next sync.

Hash input (NUL-separated, in order):
- the format tag "ver2"
- profile id, ledger id
- description, comment, ISO date
- per posting, in order: account, currency, amount, comment, serialized style
"""

import hashlib
from decimal import Decimal

from .ledger import Transaction

HASH_FORMAT_TAG = "ver2"
FIELD_SEPARATOR = "\0"


def _normalize_amount(amount: Decimal | None) -> str:
    """Render an amount independent of trailing zeros (10.00 == 10)."""
    if amount is None:
        return ""
    normalized = amount.normalize()
    if normalized == 0:
        return "0"
    return format(normalized, "f")


def compute_data_hash(profile_id: int, transaction: Transaction) -> str:
    """
    Compute the content hash of a transaction.

    Args:
        profile_id: Owning profile
        transaction: Transaction to digest

    Returns:
        64-character lowercase hex SHA256 hash
    """
    parts = [
        HASH_FORMAT_TAG,
        str(profile_id),
        str(transaction.ledger_id),
        transaction.description or "",
        transaction.comment or "",
        transaction.date.isoformat(),
    ]
    for posting in transaction.postings:
        parts.extend(
            [
                posting.account_name,
                posting.currency or "",
                _normalize_amount(posting.amount),
                posting.comment or "",
                posting.style.serialize() if posting.style is not None else "",
            ]
        )

    digest_input = FIELD_SEPARATOR.join(parts) + FIELD_SEPARATOR
    return hashlib.sha256(digest_input.encode("utf-8")).hexdigest()
