"""Tests for the balance solver."""

from decimal import Decimal

from hledger_mirror.balance import calculate_amount_hints, calculate_balance, is_balanceable
from hledger_mirror.schemas import Posting


def usd(account: str, amount: str | None = None) -> Posting:
    return Posting(account, Decimal(amount) if amount is not None else None, "USD")


class TestCalculateBalance:
    """Tests for filling in missing amounts."""

    def test_single_receiver_gets_plug(self):
        result = calculate_balance([usd("Assets:Cash", "-10.00"), usd("Expenses:Food")])

        assert result.is_balanced
        assert result.lines[1].amount == Decimal("10.00")
        assert result.balance_per_currency == {"USD": Decimal("-10.00")}

    def test_plug_covers_several_fixed_amounts(self):
        result = calculate_balance(
            [usd("Assets:Cash", "-10.00"), usd("Assets:Bank", "4.00"), usd("Expenses:Food")]
        )

        assert result.is_balanced
        assert result.lines[2].amount == Decimal("6.00")

    def test_two_receivers_not_balanceable(self):
        entries = [usd("Assets:Cash", "-10.00"), usd("Expenses:Food"), usd("Expenses:Fun")]

        result = calculate_balance(entries)

        assert not result.is_balanced
        assert result.unbalanced_currencies == ["USD"]
        assert result.lines[1].amount is None
        assert result.lines[2].amount is None
        assert not is_balanceable(entries)

    def test_no_receiver_with_nonzero_balance(self):
        """Nothing to plug: the transaction is not submittable."""
        entries = [usd("Assets:Cash", "-10.00"), usd("Expenses:Food", "9.00")]

        assert not calculate_balance(entries).is_balanced
        assert not is_balanceable(entries)

    def test_balanced_input_untouched(self):
        entries = [usd("Assets:Cash", "-10.00"), usd("Expenses:Food", "10.00"), usd("Notes")]

        result = calculate_balance(entries)

        assert result.is_balanced
        assert [p.amount for p in result.lines] == [Decimal("-10.00"), Decimal("10.00"), None]

    def test_near_zero_counts_as_balanced(self):
        entries = [usd("Assets:Cash", "-10.00001"), usd("Expenses:Food", "10.00")]
        assert calculate_balance(entries).is_balanced

    def test_currencies_solved_independently(self):
        entries = [
            usd("Assets:Cash", "-10.00"),
            usd("Expenses:Food"),
            Posting("Assets:Euro", Decimal("-5"), "EUR"),
            Posting("Expenses:Travel", None, "EUR"),
        ]

        result = calculate_balance(entries)

        assert result.is_balanced
        assert [p.amount for p in result.lines] == [
            Decimal("-10.00"),
            Decimal("10.00"),
            Decimal("-5"),
            Decimal("5"),
        ]

    def test_one_currency_unbalanced(self):
        entries = [
            usd("Assets:Cash", "-10.00"),
            usd("Expenses:Food"),
            Posting("Assets:Euro", Decimal("-5"), "EUR"),
        ]

        result = calculate_balance(entries)

        assert result.unbalanced_currencies == ["EUR"]
        assert result.lines[1].amount == Decimal("10.00")

    def test_blank_accounts_ignored(self):
        entries = [usd("  Assets:Cash ", "-3"), usd("   ", "99"), usd(""), usd("Expenses:Food")]

        result = calculate_balance(entries)

        assert [p.account_name for p in result.lines] == ["Assets:Cash", "Expenses:Food"]
        assert result.lines[1].amount == Decimal("3")

    def test_input_not_mutated(self):
        entries = [usd("Assets:Cash", "-10.00"), usd("Expenses:Food")]
        calculate_balance(entries)
        assert entries[1].amount is None

    def test_empty(self):
        assert calculate_balance([]).is_balanced
        assert is_balanceable([])


class TestAmountHints:
    """Tests for amount placeholders."""

    def test_plug_hint(self):
        hints = calculate_amount_hints([usd("Assets:Cash", "-10.00"), usd("Expenses:Food")])
        assert hints == [None, "10.00"]

    def test_zero_hint_when_balanced(self):
        hints = calculate_amount_hints(
            [usd("Assets:Cash", "-1"), usd("Expenses:Food", "1"), usd("Expenses:Other")]
        )
        assert hints == [None, None, "0"]

    def test_no_hint_for_several_receivers(self):
        hints = calculate_amount_hints(
            [usd("Assets:Cash", "-1"), usd("Expenses:A"), usd("Expenses:B")]
        )
        assert hints == [None, None, None]

    def test_hints_aligned_with_blank_rows(self):
        hints = calculate_amount_hints([usd("Assets:Cash", "-2.5"), usd(""), usd("Expenses:Food")])
        assert hints == [None, None, "2.5"]
