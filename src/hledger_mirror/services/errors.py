"""
Sync error taxonomy.

`to_sync_exception` is the single boundary where raw transport, decoding
and storage exceptions become a typed `SyncException`. Callers of the sync
engine only ever see `SyncException`.
"""

import sqlite3
from enum import Enum

from ..fetchers import ApiNotSupportedError, LedgerParseError
from ..hledger_client import (
    HledgerAPIError,
    HledgerAuthError,
    HledgerConnectionError,
    HledgerError,
)


class SyncError(str, Enum):
    """Kind of sync failure."""

    NETWORK = "NETWORK"
    TIMEOUT = "TIMEOUT"
    AUTHENTICATION = "AUTHENTICATION"
    SERVER = "SERVER"
    VALIDATION = "VALIDATION"
    PARSE = "PARSE"
    API_VERSION = "API_VERSION"
    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"

    @property
    def is_retryable(self) -> bool:
        """Whether trying the same sync again later may succeed."""
        return self in (SyncError.NETWORK, SyncError.TIMEOUT, SyncError.SERVER)


class SyncException(Exception):
    """A sync failed. Carries exactly one `SyncError` kind."""

    def __init__(
        self,
        kind: SyncError,
        message: str,
        status_code: int | None = None,
    ):
        self.kind = kind
        self.message = message
        self.status_code = status_code
        super().__init__(f"{kind.value}: {message}")

    @property
    def is_retryable(self) -> bool:
        return self.kind.is_retryable


class SyncCancelled(SyncException):
    """The sync was cancelled by its caller."""

    def __init__(self, message: str = "Sync cancelled"):
        super().__init__(SyncError.CANCELLED, message)


def to_sync_exception(exc: BaseException) -> SyncException:
    """Map any exception raised during a sync to a `SyncException`."""
    if isinstance(exc, SyncException):
        return exc

    if isinstance(exc, HledgerConnectionError):
        kind = SyncError.TIMEOUT if exc.timed_out else SyncError.NETWORK
        return SyncException(kind, str(exc))
    if isinstance(exc, HledgerAuthError):
        return SyncException(SyncError.AUTHENTICATION, "Authentication failed", 401)
    if isinstance(exc, HledgerAPIError):
        return SyncException(SyncError.SERVER, exc.message, exc.status_code)
    if isinstance(exc, HledgerError):
        return SyncException(SyncError.NETWORK, str(exc))
    if isinstance(exc, ApiNotSupportedError):
        return SyncException(SyncError.API_VERSION, str(exc))
    if isinstance(exc, LedgerParseError):
        return SyncException(SyncError.PARSE, str(exc))
    if isinstance(exc, (sqlite3.IntegrityError, ValueError)):
        return SyncException(SyncError.VALIDATION, str(exc))

    return SyncException(SyncError.UNKNOWN, f"{type(exc).__name__}: {exc}")
