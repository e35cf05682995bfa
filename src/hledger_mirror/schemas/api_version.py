"""
hledger-web JSON API versions.

Each hledger release that changed the JSON shape gets one ladder entry. The
decoders consult the feature properties below instead of comparing version
numbers themselves.

Ladder (newest first): 1.50, 1.40, 1.32, 1.23, 1.19.1, 1.15, 1.14
"""

from dataclasses import dataclass
from enum import Enum


class ApiVersion(str, Enum):
    """Wire format selector for a profile."""

    AUTO = "auto"
    HTML = "html"
    V1_14 = "1.14"
    V1_15 = "1.15"
    V1_19_1 = "1.19.1"
    V1_23 = "1.23"
    V1_32 = "1.32"
    V1_40 = "1.40"
    V1_50 = "1.50"

    @classmethod
    def ladder(cls) -> list["ApiVersion"]:
        """All JSON versions, newest first."""
        versions = [v for v in cls if v.is_json]
        return sorted(versions, key=lambda v: v.number, reverse=True)

    @classmethod
    def for_server(cls, major: int, minor: int) -> "ApiVersion":
        """Highest ladder entry that is not newer than the server version.

        Servers older than every entry get the oldest JSON format.
        """
        for version in cls.ladder():
            if version.number[:2] <= (major, minor):
                return version
        return cls.V1_14

    @property
    def is_json(self) -> bool:
        return self not in (ApiVersion.AUTO, ApiVersion.HTML)

    @property
    def number(self) -> tuple[int, ...]:
        if not self.is_json:
            return ()
        return tuple(int(part) for part in self.value.split("."))

    # Decoding differences

    @property
    def transaction_id_is_string(self) -> bool:
        """`ptransaction_` is a string from 1.32 on, an int before."""
        return self.number >= (1, 32)

    @property
    def precision_is_tagged(self) -> bool:
        """1.19.1 wraps `asprecision` as {"tag": "Precision", "contents": N}."""
        return self is ApiVersion.V1_19_1

    @property
    def uses_decimal_mark(self) -> bool:
        """`asdecimalmark` (string) replaced `asdecimalpoint` (char) in 1.32."""
        return self.number >= (1, 32)

    @property
    def balances_in_periods(self) -> bool:
        """1.50 moved account balances under `adata.pdperiods`."""
        return self.number >= (1, 50)

    @property
    def source_pos_is_list(self) -> bool:
        return self.number >= (1, 50)


@dataclass(frozen=True)
class ServerVersion:
    """Result of probing `GET version`.

    A 404 on the probe is a valid answer: the server predates 1.19 and has no
    version endpoint, so `pre_1_19` is set and major/minor are unknown.
    """

    major: int = 0
    minor: int = 0
    pre_1_19: bool = False

    def __str__(self) -> str:
        if self.pre_1_19:
            return "pre-1.19"
        return f"{self.major}.{self.minor}"

    def api_version(self) -> ApiVersion:
        """Wire format to use for this server."""
        if self.pre_1_19:
            return ApiVersion.V1_15
        return ApiVersion.for_server(self.major, self.minor)
