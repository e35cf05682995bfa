"""
Base fetcher interface and shared JSON decoding.

Fetchers return None when the server does not offer the JSON endpoint (HTTP
404, or a profile pinned to HTML). That is the "unsupported" signal the sync
orchestrator answers with the legacy HTML parser; it is never an error.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from decimal import Decimal
from typing import Any, Generic, TypeVar

from ..hledger_client import HledgerClient, HledgerNotFoundError
from ..schemas.api_version import ApiVersion, ServerVersion
from ..schemas.ledger import AmountStyle, CommodityPosition, Profile

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_PRECISION = 2


class LedgerParseError(Exception):
    """Payload does not have the shape expected for an API version."""

    pass


class ApiNotSupportedError(Exception):
    """No version on the ladder could decode the server's payload."""

    def __init__(self, endpoint: str, tried: list[ApiVersion] | None = None):
        self.endpoint = endpoint
        self.tried = tried or []
        versions = ", ".join(v.value for v in self.tried) or "none"
        super().__init__(f"No supported API version for /{endpoint} (tried: {versions})")


def decode_quantity(raw: Any) -> Decimal:
    """Decode `{"decimalMantissa": m, "decimalPlaces": p}` as m / 10^p.

    Floating literals are rejected; only the exact mantissa form is accepted.
    """
    if not isinstance(raw, dict):
        raise LedgerParseError(f"Expected quantity object, got {type(raw).__name__}")
    mantissa = raw.get("decimalMantissa")
    places = raw.get("decimalPlaces")
    if not isinstance(mantissa, int) or isinstance(mantissa, bool):
        raise LedgerParseError(f"Invalid decimalMantissa: {mantissa!r}")
    if not isinstance(places, int) or isinstance(places, bool) or places < 0:
        raise LedgerParseError(f"Invalid decimalPlaces: {places!r}")
    return Decimal(mantissa).scaleb(-places)


def _decode_precision(raw: Any, version: ApiVersion) -> int:
    if raw is None:
        return DEFAULT_PRECISION
    if version.precision_is_tagged:
        if not isinstance(raw, dict) or not isinstance(raw.get("contents"), int):
            raise LedgerParseError(f"Expected tagged precision, got {raw!r}")
        return raw["contents"]
    if not isinstance(raw, int) or isinstance(raw, bool):
        raise LedgerParseError(f"Expected integer precision, got {raw!r}")
    return raw


def decode_style(raw: Any, currency: str, version: ApiVersion) -> AmountStyle | None:
    """Decode `astyle`. A commodity-less amount never gets a symbol position."""
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise LedgerParseError(f"Expected style object, got {type(raw).__name__}")

    side = raw.get("ascommodityside")
    if currency and side == "L":
        position = CommodityPosition.BEFORE
    elif currency and side == "R":
        position = CommodityPosition.AFTER
    else:
        position = CommodityPosition.NONE

    if version.uses_decimal_mark:
        if "asdecimalpoint" in raw and "asdecimalmark" not in raw:
            raise LedgerParseError(
                f"Style uses asdecimalpoint, {version.value} expects asdecimalmark"
            )
        mark = raw.get("asdecimalmark")
    else:
        if "asdecimalmark" in raw and "asdecimalpoint" not in raw:
            raise LedgerParseError(
                f"Style uses asdecimalmark, {version.value} expects asdecimalpoint"
            )
        mark = raw.get("asdecimalpoint")

    return AmountStyle(
        position=position,
        spaced=bool(raw.get("ascommodityspaced", False)),
        precision=_decode_precision(raw.get("asprecision"), version),
        decimal_mark=mark if isinstance(mark, str) and mark else ".",
    )


def decode_amount(raw: Any, version: ApiVersion) -> tuple[str, Decimal, AmountStyle | None]:
    """Decode one hledger amount into (currency, quantity, style)."""
    if not isinstance(raw, dict):
        raise LedgerParseError(f"Expected amount object, got {type(raw).__name__}")
    currency = raw.get("acommodity") or ""
    if not isinstance(currency, str):
        raise LedgerParseError(f"Invalid acommodity: {currency!r}")
    quantity = decode_quantity(raw.get("aquantity"))
    style = decode_style(raw.get("astyle"), currency, version)
    return currency, quantity, style


def decode_comment(raw: Any) -> str | None:
    """Trimmed comment, None when empty."""
    if not isinstance(raw, str):
        return None
    text = raw.strip()
    return text or None


def candidate_versions(
    profile: Profile, server_version: ServerVersion | None = None
) -> list[ApiVersion]:
    """
    Versions to try, in order.

    A pinned profile version is the only candidate. AUTO walks the ladder
    newest first, starting at the highest entry not newer than the detected
    server version when one is known.
    """
    if profile.api_version.is_json:
        return [profile.api_version]

    ladder = ApiVersion.ladder()
    if server_version is None:
        return ladder
    ceiling = server_version.api_version()
    return [v for v in ladder if v.number <= ceiling.number]


class VersionedFetcher(ABC, Generic[T]):
    """
    Base class for JSON fetchers.

    One GET per fetch; the payload is then decoded with each candidate API
    version in turn until one accepts it.
    """

    def __init__(
        self,
        client: HledgerClient,
        check_cancelled: Callable[[], None] | None = None,
    ):
        self.client = client
        self._check_cancelled = check_cancelled or (lambda: None)

    @property
    @abstractmethod
    def endpoint(self) -> str:
        """Server path, relative to the profile URL."""
        pass

    def candidate_versions(
        self, profile: Profile, server_version: ServerVersion | None = None
    ) -> list[ApiVersion]:
        return candidate_versions(profile, server_version)

    def _fetch_decoded(
        self,
        profile: Profile,
        server_version: ServerVersion | None,
        decode: Callable[[Any, ApiVersion], T],
    ) -> T | None:
        if profile.api_version is ApiVersion.HTML:
            logger.info(f"Profile '{profile.name}' uses HTML mode, skipping /{self.endpoint}")
            return None

        versions = self.candidate_versions(profile, server_version)

        self._check_cancelled()
        try:
            payload = self.client.get_json(self.endpoint)
        except HledgerNotFoundError:
            logger.info(f"/{self.endpoint} not available on server (404)")
            return None
        except ValueError as e:
            if len(versions) == 1:
                raise LedgerParseError(f"/{self.endpoint} did not return JSON: {e}") from e
            raise ApiNotSupportedError(self.endpoint, versions) from e
        self._check_cancelled()

        if len(versions) == 1:
            return decode(payload, versions[0])

        for version in versions:
            try:
                result = decode(payload, version)
            except LedgerParseError as e:
                logger.debug(f"/{self.endpoint} does not decode as API {version.value}: {e}")
                continue
            logger.info(f"Decoded /{self.endpoint} using API {version.value}")
            return result

        raise ApiNotSupportedError(self.endpoint, versions)
