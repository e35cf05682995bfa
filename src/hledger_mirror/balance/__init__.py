"""
Balance solving for composed transactions.

Fills the single missing amount per currency so postings sum to zero, and
flags transactions that cannot be balanced without guessing.
"""

from .solver import (
    EPSILON,
    BalanceResult,
    calculate_amount_hints,
    calculate_balance,
    is_balanceable,
)

__all__ = [
    "EPSILON",
    "BalanceResult",
    "calculate_amount_hints",
    "calculate_balance",
    "is_balanceable",
]
