"""
hledger-web API Client.

Provides:
- JSON endpoints (GET /accounts, GET /transactions, PUT /add)
- Version probe (GET /version)
- Legacy journal HTML (GET /journal)

Maps HTTP failures to typed errors; 404 is kept distinct so callers can
treat a missing endpoint as "unsupported" rather than as a failure.
"""

from .client import (
    HledgerAPIError,
    HledgerAuthError,
    HledgerClient,
    HledgerConnectionError,
    HledgerError,
    HledgerNotFoundError,
)

__all__ = [
    "HledgerClient",
    "HledgerError",
    "HledgerAPIError",
    "HledgerAuthError",
    "HledgerNotFoundError",
    "HledgerConnectionError",
]
