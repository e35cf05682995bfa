"""
Double-entry balance solver.

For every currency in a transaction the posting amounts must sum to zero.
Postings with an amount are fixed; postings without one are receivers.
Per currency:
- balance ~ 0: receivers stay empty (their hint is "0")
- balance != 0 and exactly one receiver: it gets the negated balance
  (the plug amount)
- balance != 0 with zero or several receivers: not balanced; the solver
  never picks a row on the user's behalf

All functions are pure and safe to call from any thread.
"""

from collections import OrderedDict
from dataclasses import dataclass, field, replace
from decimal import Decimal

from ..schemas.ledger import Posting

EPSILON = Decimal("0.0001")


@dataclass
class BalanceResult:
    """Solved postings plus per-currency diagnostics."""

    lines: list[Posting] = field(default_factory=list)
    # Sum of the fixed amounts per currency, before any plug is applied
    balance_per_currency: dict[str, Decimal] = field(default_factory=dict)
    unbalanced_currencies: list[str] = field(default_factory=list)

    @property
    def is_balanced(self) -> bool:
        return not self.unbalanced_currencies


@dataclass
class _CurrencyGroup:
    balance: Decimal = Decimal(0)
    receivers: list[int] = field(default_factory=list)


def _is_zero(value: Decimal) -> bool:
    return abs(value) < EPSILON


def _clean(entries: list[Posting]) -> list[Posting]:
    """Drop entries without an account name and trim the others."""
    cleaned = []
    for entry in entries:
        name = (entry.account_name or "").strip()
        if not name:
            continue
        if name != entry.account_name:
            entry = replace(entry, account_name=name)
        cleaned.append(entry)
    return cleaned


def _group(entries: list[Posting]) -> "OrderedDict[str, _CurrencyGroup]":
    groups: OrderedDict[str, _CurrencyGroup] = OrderedDict()
    for idx, entry in enumerate(entries):
        group = groups.setdefault(entry.currency or "", _CurrencyGroup())
        if entry.amount is None:
            group.receivers.append(idx)
        else:
            group.balance += entry.amount
    return groups


def _group_is_solvable(group: _CurrencyGroup) -> bool:
    return _is_zero(group.balance) or len(group.receivers) == 1


def calculate_balance(entries: list[Posting]) -> BalanceResult:
    """
    Fill in the missing amounts of a transaction.

    Args:
        entries: Postings in display order; blank account names are ignored

    Returns:
        BalanceResult whose `lines` are the cleaned postings with plug
        amounts assigned where exactly one receiver exists
    """
    lines = _clean(entries)
    groups = _group(lines)
    result = BalanceResult()

    for currency, group in groups.items():
        result.balance_per_currency[currency] = group.balance
        if _is_zero(group.balance):
            continue
        if len(group.receivers) == 1:
            idx = group.receivers[0]
            lines[idx] = replace(lines[idx], amount=-group.balance)
        else:
            result.unbalanced_currencies.append(currency)

    result.lines = lines
    return result


def is_balanceable(entries: list[Posting]) -> bool:
    """Whether `calculate_balance` would balance every currency. Empty input is balanceable."""
    return all(_group_is_solvable(g) for g in _group(_clean(entries)).values())


def calculate_amount_hints(entries: list[Posting]) -> list[str | None]:
    """
    Placeholder text for each entry's amount field.

    Aligned with `entries` (blank-account entries get None). Fixed amounts
    get None; a receiver gets "0" when its currency already balances, the
    plug amount when it is the only receiver, and None otherwise.
    """
    indexed = [
        (pos, replace(e, account_name=e.account_name.strip()))
        for pos, e in enumerate(entries)
        if (e.account_name or "").strip()
    ]
    groups = _group([e for _, e in indexed])
    hints: list[str | None] = [None] * len(entries)

    for currency, group in groups.items():
        for receiver in group.receivers:
            pos = indexed[receiver][0]
            if _is_zero(group.balance):
                hints[pos] = "0"
            elif len(group.receivers) == 1:
                hints[pos] = format(-group.balance, "f")
    return hints
