"""
Posting new transactions to hledger-web (`PUT add`).

The request body is the JSON transaction shape of the profile's API
version. AUTO profiles walk the version ladder newest first; a 400 or 405
answer means the server does not accept that shape and the next version is
tried.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from hledger_mirror.balance import calculate_balance
from hledger_mirror.fetchers import ApiNotSupportedError, candidate_versions
from hledger_mirror.hledger_client import HledgerAPIError, HledgerClient
from hledger_mirror.schemas import ApiVersion, CommodityPosition

if TYPE_CHECKING:
    from hledger_mirror.schemas import AmountStyle, Posting, Profile, ServerVersion, Transaction

logger = logging.getLogger(__name__)

ADD_ENDPOINT = "add"

# Status codes meaning "this body shape is not understood here"
UNSUPPORTED_STATUS = (400, 405)


class SendError(Exception):
    """A transaction could not be submitted."""

    pass


def _quantity(amount: Decimal) -> dict[str, int]:
    places = max(0, -amount.as_tuple().exponent)
    return {
        "decimalMantissa": int(amount.scaleb(places)),
        "decimalPlaces": places,
    }


def _style(currency: str, style: AmountStyle | None, version: ApiVersion) -> dict[str, Any]:
    side = "L"
    spaced = False
    precision = 2
    if style is not None:
        side = "R" if style.position is CommodityPosition.AFTER else "L"
        spaced = style.spaced
        precision = style.precision
    if not currency:
        spaced = False

    result: dict[str, Any] = {
        "ascommodityside": side,
        "ascommodityspaced": spaced,
        "asdigitgroups": None,
        "asprecision": (
            {"tag": "Precision", "contents": precision}
            if version.precision_is_tagged
            else precision
        ),
    }
    if version.uses_decimal_mark:
        result["asdecimalmark"] = "."
        result["asrounding"] = "NoRounding"
    else:
        result["asdecimalpoint"] = "."
    return result


def _posting(posting: Posting, version: ApiVersion) -> dict[str, Any]:
    amount = posting.amount if posting.amount is not None else Decimal(0)
    return {
        "paccount": posting.account_name,
        "pamount": [
            {
                "acommodity": posting.currency,
                "aismultiplier": False,
                "aquantity": _quantity(amount),
                "astyle": _style(posting.currency, posting.style, version),
            }
        ],
        "pcomment": posting.comment or "",
        "pstatus": "Unmarked",
        "ptype": "RegularPosting",
        "ptags": [],
        "pdate": None,
        "pdate2": None,
        "pbalanceassertion": None,
        "ptransaction_": "1" if version.transaction_id_is_string else 1,
    }


def _source_pos(version: ApiVersion) -> Any:
    position = {"sourceName": "", "sourceLine": 1, "sourceColumn": 1}
    if version.source_pos_is_list:
        return [position, dict(position)]
    return position


def build_add_payload(transaction: Transaction, version: ApiVersion) -> dict[str, Any]:
    """
    JSON body for `PUT add` in the shape of one API version.

    Postings without an account name are left out.

    Raises:
        ValueError: `version` is not a JSON version
    """
    if not version.is_json:
        raise ValueError(f"No JSON shape for API version '{version.value}'")

    postings = [p for p in transaction.postings if p.account_name.strip()]
    return {
        "tdate": transaction.date.isoformat(),
        "tdate2": None,
        "tdescription": transaction.description,
        "tcomment": transaction.comment or "",
        "tcode": "",
        "tstatus": "Unmarked",
        "tprecedingcomment": "",
        "ttags": [],
        "tindex": 1,
        "tsourcepos": _source_pos(version),
        "tpostings": [_posting(p, version) for p in postings],
    }


class TransactionSender:
    """Submits locally composed transactions to a profile's server."""

    def __init__(
        self,
        client_factory: Callable[[Profile], HledgerClient] = HledgerClient.from_profile,
    ) -> None:
        self.client_factory = client_factory

    def send(
        self,
        profile: Profile,
        transaction: Transaction,
        server_version: ServerVersion | None = None,
    ) -> ApiVersion:
        """
        Balance and submit a transaction.

        Args:
            profile: Target profile; must permit posting and not be HTML-only
            transaction: Transaction to add; a single missing amount per
                currency is filled in before sending
            server_version: Detected server version, narrows the AUTO ladder

        Returns:
            The API version whose body shape the server accepted

        Raises:
            SendError: Posting not permitted, or the transaction cannot be balanced
            ApiNotSupportedError: No candidate version was accepted
            HledgerError: Transport, authentication or other server errors
        """
        if not profile.permit_posting:
            raise SendError(f"Profile '{profile.name}' does not permit posting")
        if profile.api_version is ApiVersion.HTML:
            raise SendError(f"Profile '{profile.name}' is HTML-only; posting needs the JSON API")

        balance = calculate_balance(transaction.postings)
        if not balance.is_balanced:
            currencies = ", ".join(c or "(none)" for c in balance.unbalanced_currencies)
            raise SendError(f"Transaction does not balance in: {currencies}")
        if len(balance.lines) < 2:
            raise SendError("A transaction needs at least two postings")

        balanced = replace(transaction, postings=balance.lines)
        client = self.client_factory(profile)
        versions = candidate_versions(profile, server_version)

        for version in versions:
            body = build_add_payload(balanced, version)
            try:
                client.put_json(ADD_ENDPOINT, body)
            except HledgerAPIError as e:
                if e.status_code in UNSUPPORTED_STATUS and len(versions) > 1:
                    logger.debug(f"Server rejected API {version.value} body ({e.status_code})")
                    continue
                if e.status_code in UNSUPPORTED_STATUS:
                    raise ApiNotSupportedError(ADD_ENDPOINT, versions) from e
                raise
            logger.info(
                f"Added transaction '{balanced.description}' to '{profile.name}' "
                f"using API {version.value}"
            )
            return version

        raise ApiNotSupportedError(ADD_ENDPOINT, versions)
