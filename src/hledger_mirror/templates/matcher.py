"""Template matching for free text (scanned or typed).

Templates are tried in the caller's order; the first whose pattern is found
anywhere in the text wins. The winning match is then turned into a
transaction skeleton whose postings can be handed to the balance solver.

Problems with user-editable patterns are returned as values: an invalid
pattern is logged and skipped during matching, and `validate_pattern`
returns the error message instead of raising.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation

from hledger_mirror.schemas import Posting
from hledger_mirror.templates.models import FieldSource, MatchGroup, Template

logger = logging.getLogger(__name__)

_AMOUNT_NOISE = re.compile(r"[,\s]")


@dataclass(frozen=True)
class MatchedTemplate:
    """A template together with the match it produced."""

    template: Template
    match: re.Match

    @property
    def group_count(self) -> int:
        return self.match.re.groups


@dataclass
class ExtractedTransaction:
    """Transaction skeleton produced by a template.

    `date` is None when the template does not yield a year, or when the
    resolved parts do not form a valid date.
    """

    description: str | None
    comment: str | None
    date: date | None
    lines: list[Posting] = field(default_factory=list)


@dataclass(frozen=True)
class PatternCheck:
    """Result of trying a pattern against sample text."""

    error: str | None = None
    group_count: int = 0
    # (start, end) of the match in the sample text, None when it does not match
    span: tuple[int, int] | None = None

    @property
    def matches(self) -> bool:
        return self.span is not None


def resolve(source: FieldSource, match: re.Match) -> str | None:
    """Value of a field source for a match.

    A group index inside [1, group count] yields that group's text; an index
    out of range, or a group that did not take part in the match, yields the
    fallback literal.
    """
    if isinstance(source, MatchGroup):
        if 1 <= source.index <= match.re.groups:
            text = match.group(source.index)
            if text is not None:
                return text
        return source.fallback
    return source.value


def parse_amount(text: str | None) -> Decimal | None:
    """Parse an amount, ignoring thousands separators and spaces."""
    if text is None:
        return None
    cleaned = _AMOUNT_NOISE.sub("", text)
    if not cleaned:
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        logger.debug(f"Not an amount: {text!r}")
        return None
    return value if value.is_finite() else None


def _parse_int(text: str | None) -> int | None:
    if text is None:
        return None
    text = text.strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        return None


def validate_pattern(pattern: str | None) -> str | None:
    """Error message for an invalid pattern, None when usable. Blank is valid."""
    if pattern is None or not pattern.strip():
        return None
    try:
        re.compile(pattern)
    except re.error as e:
        return str(e)
    return None


def check_pattern(pattern: str, test_text: str | None) -> PatternCheck:
    """Compile a pattern and try it against sample text."""
    error = validate_pattern(pattern)
    if error is not None:
        return PatternCheck(error=error)
    if not pattern.strip():
        return PatternCheck()

    compiled = re.compile(pattern)
    match = compiled.search(test_text) if test_text else None
    return PatternCheck(
        group_count=compiled.groups,
        span=match.span() if match else None,
    )


class TemplateMatcher:
    """Applies templates to text. Stateless and safe to share between threads."""

    def find_match(self, text: str, templates: Iterable[Template]) -> MatchedTemplate | None:
        """First template whose pattern is found in `text`.

        Templates with a blank pattern never match. Templates whose pattern
        does not compile are logged and skipped.
        """
        for template in templates:
            if not template.pattern or not template.pattern.strip():
                continue
            try:
                compiled = re.compile(template.pattern)
            except re.error as e:
                logger.warning(f"Skipping template '{template.name}': invalid pattern ({e})")
                continue
            match = compiled.search(text)
            if match is not None:
                logger.debug(f"Template '{template.name}' matched at {match.span()}")
                return MatchedTemplate(template=template, match=match)
        return None

    def extract_transaction(
        self,
        matched: MatchedTemplate,
        default_currency: str | None = None,
    ) -> ExtractedTransaction:
        """Build a transaction skeleton from a match.

        Args:
            matched: Result of `find_match`.
            default_currency: Used for lines whose currency resolves empty.

        Returns:
            ExtractedTransaction; lines keep the template's order and have
            amount None where no amount could be resolved.
        """
        template = matched.template
        match = matched.match

        lines = []
        for line in template.lines:
            amount = parse_amount(resolve(line.amount, match))
            if amount is not None and line.negate_amount:
                amount = -amount
            currency = resolve(line.currency, match) or default_currency or ""
            lines.append(
                Posting(
                    account_name=resolve(line.account, match) or "",
                    amount=amount,
                    currency=currency,
                    comment=resolve(line.comment, match),
                )
            )

        return ExtractedTransaction(
            description=resolve(template.description, match),
            comment=resolve(template.comment, match),
            date=self._extract_date(template, match),
            lines=lines,
        )

    @staticmethod
    def _extract_date(template: Template, match: re.Match) -> date | None:
        year = _parse_int(resolve(template.date_year, match))
        if year is None:
            return None

        today = date.today()
        month = _parse_int(resolve(template.date_month, match)) or today.month
        day = _parse_int(resolve(template.date_day, match)) or today.day
        try:
            return date(year, month, day)
        except ValueError:
            logger.debug(f"Template '{template.name}' produced invalid date {year}-{month}-{day}")
            return None
