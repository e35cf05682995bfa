"""
Server data fetchers.

Version-aware JSON decoders for accounts and transactions, the version
probe, and the legacy journal HTML scraper used when JSON is unavailable.
"""

from .accounts import AccountListFetcher, AccountListResult
from .base import ApiNotSupportedError, LedgerParseError, VersionedFetcher, candidate_versions
from .legacy_html import LegacyHtmlParser, LegacyParseResult, parse_journal
from .transactions import TransactionListFetcher
from .version_detector import VersionDetector, parse_version

__all__ = [
    "AccountListFetcher",
    "AccountListResult",
    "ApiNotSupportedError",
    "LedgerParseError",
    "LegacyHtmlParser",
    "LegacyParseResult",
    "TransactionListFetcher",
    "VersionDetector",
    "VersionedFetcher",
    "candidate_versions",
    "parse_journal",
    "parse_version",
]
