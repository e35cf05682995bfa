"""
SSOT (Single Source of Truth) schemas for the ledger mirror.

These canonical models are the ONLY shapes used across all modules.
Wire decoders map into them; the state store persists them.
"""

from .api_version import ApiVersion, ServerVersion
from .content_hash import compute_data_hash
from .ledger import (
    ACCOUNT_SEPARATOR,
    Account,
    AccountAmount,
    AmountStyle,
    CommodityPosition,
    Posting,
    Profile,
    Transaction,
    ensure_parent_accounts,
    parent_account_name,
    sort_transactions,
)

__all__ = [
    "ACCOUNT_SEPARATOR",
    "Account",
    "AccountAmount",
    "AmountStyle",
    "ApiVersion",
    "CommodityPosition",
    "Posting",
    "Profile",
    "ServerVersion",
    "Transaction",
    "compute_data_hash",
    "ensure_parent_accounts",
    "parent_account_name",
    "sort_transactions",
]
