"""Test fixtures and utilities."""

from pathlib import Path

import pytest

from hledger_mirror.state_store import StateStore

BASE_URL = "http://ledger.test:5000"


def make_amount(
    commodity: str,
    mantissa: int,
    places: int = 2,
    side: str = "L",
    spaced: bool = True,
    api: str = "1.32",
    mark: str = ".",
) -> dict:
    """One hledger JSON amount in the shape of an API version."""
    if api == "1.19.1":
        precision = {"tag": "Precision", "contents": places}
    else:
        precision = places
    style = {
        "ascommodityside": side,
        "ascommodityspaced": spaced,
        "asprecision": precision,
        "asdigitgroups": None,
    }
    if api in ("1.32", "1.40", "1.50"):
        style["asdecimalmark"] = mark
        style["asrounding"] = "NoRounding"
    else:
        style["asdecimalpoint"] = mark
    return {
        "acommodity": commodity,
        "aismultiplier": False,
        "aquantity": {
            "decimalMantissa": mantissa,
            "decimalPlaces": places,
            "floatingPoint": mantissa / 10**places,
        },
        "astyle": style,
    }


def make_account(name: str, amounts: list[dict], postings: int, api: str = "1.32") -> dict:
    """One /accounts entry."""
    if api == "1.50":
        return {
            "aname": name,
            "adeclarationinfo": None,
            "adata": {
                "pdpre": {"bdincludingsubs": [], "bdexcludingsubs": [], "bdnumpostings": 0},
                "pdperiods": [
                    [
                        "2024-01-01",
                        {
                            "bdincludingsubs": amounts,
                            "bdexcludingsubs": amounts,
                            "bdnumpostings": postings,
                        },
                    ]
                ],
            },
        }
    return {
        "aname": name,
        "aebalance": amounts,
        "aibalance": amounts,
        "anumpostings": postings,
        "aboring": False,
        "asubs_": [],
    }


def make_posting(account: str, amount: dict | None, comment: str = "", api: str = "1.32") -> dict:
    return {
        "paccount": account,
        "pamount": [amount] if amount is not None else [],
        "pcomment": comment,
        "pstatus": "Unmarked",
        "ptype": "RegularPosting",
        "ptags": [],
        "pdate": None,
        "pdate2": None,
        "pbalanceassertion": None,
        "ptransaction_": "1" if api in ("1.32", "1.40", "1.50") else 1,
    }


def make_transaction(
    index: int, tdate: str, description: str, postings: list[dict], comment: str = ""
) -> dict:
    return {
        "tindex": index,
        "tdate": tdate,
        "tdate2": None,
        "tdescription": description,
        "tcomment": comment,
        "tcode": "",
        "tstatus": "Unmarked",
        "ttags": [],
        "tprecedingcomment": "",
        "tpostings": postings,
    }


def sample_accounts(api: str = "1.32") -> list[dict]:
    """Flat account list as hledger reports it, without intermediate parents."""
    return [
        make_account("root", [], 0, api),
        make_account("Assets:Bank:Checking", [make_amount("EUR", 100000, api=api)], 1, api),
        make_account("Assets:Cash", [make_amount("EUR", -1250, api=api)], 1, api),
        make_account("Expenses:Food", [make_amount("EUR", 1250, api=api)], 1, api),
        make_account("Income:Salary", [make_amount("EUR", -100000, api=api)], 1, api),
    ]


def sample_transactions(api: str = "1.32") -> list[dict]:
    return [
        make_transaction(
            1,
            "2024-01-10",
            "Salary",
            [
                make_posting("Assets:Bank:Checking", make_amount("EUR", 100000, api=api), api=api),
                make_posting("Income:Salary", make_amount("EUR", -100000, api=api), api=api),
            ],
        ),
        make_transaction(
            2,
            "2024-01-15",
            "Groceries",
            [
                make_posting(
                    "Expenses:Food", make_amount("EUR", 1250, api=api), "weekly shop", api=api
                ),
                make_posting("Assets:Cash", make_amount("EUR", -1250, api=api), api=api),
            ],
            comment="  receipt 42  ",
        ),
    ]


SAMPLE_JOURNAL_HTML = """<!DOCTYPE html>
<html>
<body>
<div id="sidebar">
<table class="balancereport">
<tr><td class="account"><a href="/register?q=inacct%3AAssets%3ACash" class="account-name">Cash</a></td>
<td class="amount"><span class="amount negative">-12,50 EUR</span>
</td></tr>
<tr><td class="account"><a href="/register?q=inacct%3AExpenses%3AFood" class="account-name">Food</a></td>
<td class="amount"><span class="amount positive">12,50 EUR</span>
</td></tr>
<tr><td class="account"><a href="/register?q=inacct%3AAssets%3ABank" class="account-name">Bank</a></td>
<td class="amount"><span class="amount positive">1,000.00 EUR</span>
</td></tr>
<tr><td class="account"><a href="/register?q=inacct%3AIncome" class="account-name">Income</a></td>
<td class="amount"><span class="amount negative">-1.000,00 EUR</span>
</td></tr>
</table>
</div>
<div id="main">
<h2>General Journal</h2>
<table class="transactionsreport">
<tr class="title" id="transaction-1"><td class="date">2024-01-10</td><td colspan="2">Salary</td></tr>
<tr class="posting" title="2024-01-10 Salary
    Assets:Bank  1000.00 EUR
    Income  -1000.00 EUR

"><td></td><td>Assets:Bank</td></tr>
<tr class="title" id="transaction-2"><td class="date">2024-01-15</td><td colspan="2">Groceries</td></tr>
<tr class="posting" title="2024/01/15 Groceries
    ; paid cash
    Expenses:Food  EUR 12,50
    Assets:Cash  EUR -12,50

"><td></td><td>Expenses:Food</td></tr>
</table>
</div>
<div class="modal" id="addmodal">
<tr class="title" id="transaction-99"><td class="date">2024-02-01</td></tr>
</div>
</body>
</html>
"""


@pytest.fixture
def sample_journal_html() -> str:
    """Journal page of a pre-1.19 hledger-web."""
    return SAMPLE_JOURNAL_HTML


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Temporary database path for testing."""
    return tmp_path / "test_state.db"


@pytest.fixture
def store(temp_db) -> StateStore:
    """Fresh state store."""
    return StateStore(temp_db)


@pytest.fixture
def profile(store):
    """Stored AUTO profile pointing at the mocked server."""
    return store.create_profile(name="test", url=BASE_URL)
