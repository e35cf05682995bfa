"""
Server version probe (GET /version).

hledger-web answers with a JSON string such as "1.32.3" (some builds send
it unquoted). Servers before 1.19 have no such endpoint; their 404 is a
successful detection result, not an error.
"""

import logging
import re

from ..hledger_client import HledgerClient, HledgerNotFoundError
from ..schemas.api_version import ServerVersion
from .base import LedgerParseError

logger = logging.getLogger(__name__)

VERSION_PATTERN = re.compile(r'^\s*"?(\d+)\.(\d+)(?:\.(\d+))?"?\s*$')


def parse_version(text: str) -> ServerVersion:
    """Parse a `major.minor[.patch]` answer, quoted or bare."""
    match = VERSION_PATTERN.match(text)
    if not match:
        raise LedgerParseError(f"Unrecognized server version: {text.strip()!r}")
    return ServerVersion(major=int(match.group(1)), minor=int(match.group(2)))


class VersionDetector:
    """Detects which hledger-web release a server runs."""

    def __init__(self, client: HledgerClient):
        self.client = client

    def detect(self) -> ServerVersion:
        """
        Probe the server version.

        Raises:
            LedgerParseError: The answer is not a version string
            HledgerError: Transport or HTTP failure other than 404
        """
        try:
            text = self.client.get_text("version")
        except HledgerNotFoundError:
            logger.info("No /version endpoint, assuming hledger-web before 1.19")
            return ServerVersion(pre_1_19=True)

        version = parse_version(text)
        logger.info(f"Detected hledger-web {version}")
        return version
