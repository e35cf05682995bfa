"""hledger-web → local cache synchronization service.

`SyncOrchestrator.sync()` returns a progress stream (a generator). The sync
itself runs on a worker thread that pushes events into a queue; writes to
the state store run on a dedicated single-thread I/O executor. Closing the
generator early, or setting the caller's cancel event, cancels the sync at
the next checkpoint (between network calls, per parsed line or transaction,
and per persisted batch). A cancelled or failed sync never purges.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING

from hledger_mirror.fetchers import (
    AccountListFetcher,
    LedgerParseError,
    LegacyHtmlParser,
    TransactionListFetcher,
    VersionDetector,
)
from hledger_mirror.hledger_client import HledgerClient
from hledger_mirror.schemas import ApiVersion
from hledger_mirror.services.errors import SyncCancelled, SyncException, to_sync_exception
from hledger_mirror.services.persistence import GenerationalPersistence

if TYPE_CHECKING:
    from hledger_mirror.schemas import Profile, ServerVersion
    from hledger_mirror.state_store import StateStore

logger = logging.getLogger(__name__)

_DONE = object()


@dataclass(frozen=True)
class SyncProgress:
    """Base progress event."""

    message: str


@dataclass(frozen=True)
class SyncStarting(SyncProgress):
    """Sync accepted, nothing fetched yet."""


@dataclass(frozen=True)
class SyncIndeterminate(SyncProgress):
    """Working, size of the remaining work unknown."""


@dataclass(frozen=True)
class SyncRunning(SyncProgress):
    """Working through `total` items, `current` done."""

    current: int = 0
    total: int = 0


@dataclass
class SyncResult:
    """Result of a successful sync."""

    transaction_count: int
    account_count: int
    duration_ms: int
    generation: int = 0
    used_html: bool = False


class SyncOrchestrator:
    """Service for mirroring an hledger-web server into the state store.

    Flow: version probe (AUTO profiles) → JSON accounts → JSON transactions,
    or the legacy journal HTML when JSON is unsupported → generational save.
    One sync per profile at a time is the caller's responsibility.
    """

    def __init__(
        self,
        store: StateStore,
        client_factory: Callable[[Profile], HledgerClient] = HledgerClient.from_profile,
        batch_size: int = GenerationalPersistence.DEFAULT_BATCH_SIZE,
        poll_interval: float = 0.1,
    ) -> None:
        """Initialize the sync service.

        Args:
            store: State store receiving the data.
            client_factory: Builds an HTTP client for a profile.
            batch_size: Rows persisted per batch (cancellation granularity).
            poll_interval: Seconds between cancel checks while waiting for events.
        """
        self.store = store
        self.client_factory = client_factory
        self.persistence = GenerationalPersistence(store, batch_size=batch_size)
        self.poll_interval = poll_interval
        self._io_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ledger-io")
        self._last_result: SyncResult | None = None

    def get_last_result(self) -> SyncResult | None:
        """Result of the most recent successful sync, if any."""
        return self._last_result

    def close(self) -> None:
        """Release the I/O executor."""
        self._io_executor.shutdown(wait=True)

    def sync(
        self,
        profile: Profile,
        cancel_event: threading.Event | None = None,
    ) -> Iterator[SyncProgress | SyncResult]:
        """Sync a profile, yielding progress events.

        The last item yielded is the `SyncResult`. Failures are raised from
        the generator as `SyncException`.

        Args:
            profile: Profile to sync.
            cancel_event: Set by the caller to cancel the sync.

        Yields:
            SyncStarting, SyncIndeterminate and SyncRunning events, then SyncResult.

        Raises:
            SyncException: The sync failed or was cancelled.
        """
        cancel = cancel_event or threading.Event()
        events: queue.Queue = queue.Queue()
        worker = threading.Thread(
            target=self._run,
            args=(profile, cancel, events),
            name=f"sync-{profile.name}",
            daemon=True,
        )
        worker.start()

        finished = False
        try:
            while True:
                try:
                    item = events.get(timeout=self.poll_interval)
                except queue.Empty:
                    continue
                if item is _DONE:
                    finished = True
                    break
                if isinstance(item, SyncException):
                    finished = True
                    raise item
                yield item
        finally:
            if finished:
                worker.join()
            else:
                # Consumer stopped early; the worker stops at its next checkpoint
                cancel.set()

    def run(
        self,
        profile: Profile,
        on_progress: Callable[[SyncProgress], None] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> SyncResult:
        """Run a sync to completion, forwarding progress to a callback."""
        result = None
        for event in self.sync(profile, cancel_event):
            if isinstance(event, SyncResult):
                result = event
            elif on_progress is not None:
                on_progress(event)
        return result

    def _run(self, profile: Profile, cancel: threading.Event, events: queue.Queue) -> None:
        """Worker thread body. Every outcome ends up in `events`."""
        start_time = time.monotonic()

        def check_cancelled() -> None:
            if cancel.is_set():
                raise SyncCancelled()

        def report(current: int, total: int) -> None:
            events.put(SyncRunning("Processing transactions", current=current, total=total))

        try:
            events.put(SyncStarting(f"Connecting to {profile.url}"))
            client = self.client_factory(profile)

            server_version = None
            if profile.api_version is ApiVersion.AUTO:
                check_cancelled()
                events.put(SyncIndeterminate("Detecting server version"))
                server_version = self._detect_version(client)

            check_cancelled()
            events.put(SyncIndeterminate("Fetching accounts"))
            account_list = AccountListFetcher(client, check_cancelled).fetch(
                profile, server_version
            )

            transactions = None
            if account_list is not None:
                check_cancelled()
                events.put(SyncIndeterminate("Fetching transactions"))
                transactions = TransactionListFetcher(client, check_cancelled).fetch(
                    profile,
                    expected_postings_count=account_list.expected_postings_count,
                    on_progress=report,
                    server_version=server_version,
                )

            used_html = account_list is None or transactions is None
            if used_html:
                check_cancelled()
                logger.info(f"JSON API unavailable for '{profile.name}', using journal HTML")
                events.put(SyncIndeterminate("Reading journal HTML"))
                legacy = LegacyHtmlParser(client, check_cancelled).parse(
                    profile, on_progress=report
                )
                accounts = legacy.accounts
                transactions = legacy.transactions
            else:
                accounts = account_list.accounts

            check_cancelled()
            events.put(SyncIndeterminate("Saving"))
            future = self._io_executor.submit(
                self.persistence.save, profile, accounts, transactions, check_cancelled
            )
            saved = future.result()

            result = SyncResult(
                transaction_count=len(transactions),
                account_count=len(accounts),
                duration_ms=int((time.monotonic() - start_time) * 1000),
                generation=saved.generation,
                used_html=used_html,
            )
            self._last_result = result
            logger.info(
                f"Sync of '{profile.name}' complete: {result.transaction_count} transactions, "
                f"{result.account_count} accounts in {result.duration_ms}ms"
            )
            events.put(result)

        except Exception as e:
            error = to_sync_exception(e)
            if error is not e:
                error.__cause__ = e
            if isinstance(error, SyncCancelled):
                logger.info(f"Sync of '{profile.name}' cancelled")
            else:
                logger.error(f"Sync of '{profile.name}' failed: {error}")
            events.put(error)
        finally:
            events.put(_DONE)

    def _detect_version(self, client: HledgerClient) -> ServerVersion | None:
        """Probe the server version; an unreadable answer means probe every version."""
        try:
            return VersionDetector(client).detect()
        except LedgerParseError as e:
            logger.warning(f"Ignoring version probe result: {e}")
            return None
