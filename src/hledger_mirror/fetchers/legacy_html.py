"""
Legacy journal scraper for hledger-web servers without the JSON API.

GET /journal lists the accounts first (a register link followed by one or
more balance spans), then the journal table where each transaction is a
`tr.title` row followed by a `tr.posting` row. The posting row's `title`
attribute holds the journal text: a "date description" header, then one
posting per line, ended by an empty line. Everything from the
add-transaction modal (`#addmodal`) on is ignored.

Supported number formats:
- Balances: 1,000.50 (decimal point), 1.000,50 (decimal comma)
- Postings: 12.50, 12,50, with the commodity before or after
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from urllib.parse import parse_qs, urlsplit

from bs4 import BeautifulSoup, Tag

from ..hledger_client import HledgerClient
from ..schemas.ledger import (
    Account,
    AccountAmount,
    Posting,
    Profile,
    Transaction,
    ensure_parent_accounts,
    sort_transactions,
)
from .base import LedgerParseError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

RE_COMMENT = re.compile(r"^\s*;")
RE_BALANCE = re.compile(r"^([-+]?[\d.,]+)(?:\s+(\S+))?$")
RE_DECIMAL_COMMA = re.compile(r",\d\d?$")
RE_DECIMAL_POINT = re.compile(r"\.\d\d?$")
RE_TRANSACTION_ID = re.compile(r"^transaction-(\d+)$")
RE_TRANSACTION_HEADER = re.compile(r"^(\S+)\s+(.*)$")
RE_POSTING = re.compile(
    r"^\s+([!*]\s+)?(\S[\S\s]+\S)\s\s+"
    r"(?:([^\d\s+\-]+)\s*)?([-+]?\d[\d,.]*)(?:\s*([^\d\s+\-]+)\s*$)?"
)

ACCOUNT_QUERY_PREFIX = "inacct:"
END_MARKER_ID = "addmodal"


@dataclass
class LegacyParseResult:
    """Everything scraped from one journal page."""

    accounts: list[Account] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)


def parse_balance_value(value: str) -> Decimal:
    """Parse a balance span number in either decimal convention."""
    if RE_DECIMAL_COMMA.search(value):
        value = value.replace(".", "").replace(",", ".")
    if RE_DECIMAL_POINT.search(value):
        value = value.replace(",", "").replace(" ", "")
    try:
        return Decimal(value)
    except InvalidOperation as e:
        raise LedgerParseError(f"Invalid balance amount: {value!r}") from e


def parse_posting_line(line: str) -> Posting | None:
    """
    Parse one journal posting line, e.g. "  Expenses:Food  EUR 12,50".

    Returns None when the line is not a posting, or when it names a
    commodity on both sides of the number.
    """
    match = RE_POSTING.search(line)
    if not match:
        return None

    account = match.group(2)
    currency_pre = match.group(3)
    currency_post = match.group(5)
    if currency_pre and currency_post:
        return None
    currency = currency_pre or currency_post or ""

    raw_amount = match.group(4).replace(",", ".")
    try:
        amount = Decimal(raw_amount)
    except InvalidOperation as e:
        raise LedgerParseError(f"Invalid posting amount in {line.strip()!r}") from e

    return Posting(account_name=account, amount=amount, currency=currency)


def _parse_date(text: str) -> date:
    # Secondary dates are written as "primary=secondary"; the secondary wins
    if "=" in text:
        text = text[text.index("=") + 1 :]
    try:
        return date.fromisoformat(text.replace("/", "-").replace(".", "-"))
    except ValueError as e:
        raise LedgerParseError(f"Invalid transaction date: {text!r}") from e


def _has_class(tag: Tag, name: str) -> bool:
    return name in (tag.get("class") or [])


def _account_name(link: Tag) -> str | None:
    """Account named by a `register?q=inacct:...` link, None for other links."""
    href = link.get("href") or ""
    if "register" not in href:
        return None
    query = parse_qs(urlsplit(href).query).get("q")
    if not query or not query[0].startswith(ACCOUNT_QUERY_PREFIX):
        return None
    return query[0][len(ACCOUNT_QUERY_PREFIX) :].replace('"', "").strip() or None


def _transaction_id(row: Tag) -> int | None:
    if row.name != "tr" or not _has_class(row, "title"):
        return None
    match = RE_TRANSACTION_ID.match(row.get("id") or "")
    return int(match.group(1)) if match else None


def _page_elements(soup: BeautifulSoup) -> list[Tag]:
    """Account links, balance spans and journal rows before the add form, in page order."""
    elements = []
    for tag in soup.find_all(True):
        if tag.get("id") == END_MARKER_ID:
            break
        if tag.name == "a" or (tag.name == "span" and _has_class(tag, "amount")):
            elements.append(tag)
        elif tag.name == "tr" and (_has_class(tag, "title") or _has_class(tag, "posting")):
            elements.append(tag)
    return elements


def _parse_transaction_text(ledger_id: int, text: str) -> Transaction:
    """Build a transaction from the journal text of a posting row."""
    lines = text.splitlines()
    header = RE_TRANSACTION_HEADER.match(lines[0].strip()) if lines else None
    if header is None:
        raise LedgerParseError(f"Transaction {ledger_id} has no date/description line")

    postings = []
    for line in lines[1:]:
        if line.strip() == "":
            break
        if RE_COMMENT.search(line):
            continue
        posting = parse_posting_line(line)
        if posting is not None:
            postings.append(posting)
        else:
            logger.debug(f"Ignoring journal line in transaction {ledger_id}: {line!r}")

    return Transaction(
        ledger_id=ledger_id,
        date=_parse_date(header.group(1)),
        description=header.group(2).strip(),
        postings=postings,
    )


def parse_journal(
    html: str,
    expected_count: int = 0,
    on_progress: ProgressCallback | None = None,
    check_cancelled: Callable[[], None] | None = None,
) -> LegacyParseResult:
    """
    Scrape accounts and transactions from journal HTML.

    Args:
        html: Full journal page
        expected_count: Expected number of transactions; when not positive,
            the transaction rows on the page are counted instead
        on_progress: Called with (transactions parsed, total) per transaction
        check_cancelled: Raises to abort; polled once per page element

    Raises:
        LedgerParseError: Malformed date or number
    """
    elements = _page_elements(BeautifulSoup(html, "html.parser"))
    if expected_count > 0:
        total = expected_count
    else:
        total = sum(1 for tag in elements if _transaction_id(tag) is not None)

    amounts: dict[str, list[AccountAmount]] = {}
    transactions: list[Transaction] = []

    in_journal = False
    last_account: str | None = None
    pending_id: int | None = None
    processed = 0

    for tag in elements:
        if check_cancelled is not None:
            check_cancelled()

        ledger_id = _transaction_id(tag)
        if ledger_id is not None:
            # Account links inside the journal table are not balance rows
            in_journal = True
            pending_id = ledger_id
            processed += 1
            if on_progress is not None and total > 0:
                on_progress(processed, total)
            continue

        if tag.name == "tr":
            if pending_id is not None and _has_class(tag, "posting"):
                transactions.append(_parse_transaction_text(pending_id, tag.get("title") or ""))
                pending_id = None
            continue

        if in_journal:
            continue

        if tag.name == "a":
            name = _account_name(tag)
            if name is None:
                continue
            if name in amounts:
                last_account = None
                continue
            amounts[name] = []
            last_account = name
        elif last_account is not None:
            match = RE_BALANCE.match(tag.get_text(" ", strip=True))
            if match is None:
                logger.debug(f"Ignoring balance of {last_account}: {tag.get_text()!r}")
                continue
            value = parse_balance_value(match.group(1))
            amounts[last_account].append(AccountAmount(currency=match.group(2) or "", amount=value))

    accounts = [Account(name=name, amounts=values) for name, values in amounts.items()]
    return LegacyParseResult(
        accounts=ensure_parent_accounts(accounts),
        transactions=sort_transactions(transactions),
    )


class LegacyHtmlParser:
    """Fetches and scrapes GET /journal. Last resort: no further fallback."""

    def __init__(
        self,
        client: HledgerClient,
        check_cancelled: Callable[[], None] | None = None,
    ):
        self.client = client
        self._check_cancelled = check_cancelled

    def parse(
        self,
        profile: Profile,
        expected_count: int = 0,
        on_progress: ProgressCallback | None = None,
    ) -> LegacyParseResult:
        """Fetch the journal page for a profile and scrape it."""
        if self._check_cancelled is not None:
            self._check_cancelled()
        logger.info(f"Fetching legacy journal for profile '{profile.name}'")
        html = self.client.get_text("journal")
        result = parse_journal(html, expected_count, on_progress, self._check_cancelled)
        logger.info(
            f"Scraped {len(result.accounts)} accounts and "
            f"{len(result.transactions)} transactions from HTML"
        )
        return result
