"""
hledger-web HTTP client implementation.
"""

import json
import logging
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..schemas.ledger import Profile

logger = logging.getLogger(__name__)


class HledgerError(Exception):
    """Base exception for hledger client errors."""

    pass


class HledgerAPIError(HledgerError):
    """Server returned a non-2xx response."""

    def __init__(
        self,
        status_code: int,
        message: str,
        response_body: str | None = None,
    ):
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        super().__init__(f"hledger-web error {status_code}: {message}")


class HledgerAuthError(HledgerAPIError):
    """Server rejected the credentials (HTTP 401)."""

    pass


class HledgerNotFoundError(HledgerAPIError):
    """Endpoint does not exist on this server (HTTP 404)."""

    pass


class HledgerConnectionError(HledgerError):
    """Failed to reach the server, or the request timed out."""

    def __init__(self, message: str, timed_out: bool = False):
        self.timed_out = timed_out
        super().__init__(message)


class HledgerClient:
    """
    Client for an hledger-web server.

    Features:
    - JSON and plain-text GET (API endpoints, version probe, journal HTML)
    - JSON PUT (transaction submission)
    - Optional HTTP basic authentication
    - Automatic retry with backoff for 429/5xx
    """

    DEFAULT_TIMEOUT = 30

    def __init__(
        self,
        base_url: str,
        user: str | None = None,
        password: str | None = None,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
    ):
        """
        Initialize hledger-web client.

        Args:
            base_url: Server URL (e.g., "https://ledger.example.com/books")
            user: Basic-auth user name, None to disable authentication
            password: Basic-auth password
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts
            backoff_factor: Backoff factor for retries
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json, text/html;q=0.9"})
        if user:
            self.session.auth = (user, password or "")

        # Exhausted retries hand back the last response so the status maps normally
        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "PUT"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    @classmethod
    def from_profile(cls, profile: Profile, **kwargs: Any) -> "HledgerClient":
        """Build a client for a profile's URL and credentials."""
        user = profile.auth_user if profile.use_authentication else None
        return cls(profile.url, user=user, password=profile.auth_password, **kwargs)

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        json_data: Any = None,
    ) -> requests.Response:
        """Make a request with error handling."""
        url = self.url_for(path)

        logger.debug(f"Request: {method} {url}")
        if json_data is not None:
            logger.debug(f"Request body: {json.dumps(json_data, indent=2)}")

        try:
            response = self.session.request(
                method=method,
                url=url,
                json=json_data,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"Timeout for {url}: {e}")
            raise HledgerConnectionError(f"Request to {url} timed out: {e}", timed_out=True) from e
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Connection error to {url}: {e}")
            raise HledgerConnectionError(
                f"Failed to connect to hledger-web at {self.base_url}: {e}"
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Request error for {url}: {e}")
            raise HledgerError(f"Request failed: {e}") from e

        logger.debug(f"Response status: {response.status_code}")

        if response.status_code == 401:
            raise HledgerAuthError(401, "Authentication required", response.text)
        if response.status_code == 404:
            raise HledgerNotFoundError(404, f"{path} not found", response.text)
        if not response.ok:
            logger.error(f"HTTP error {response.status_code} for {url}: {response.reason}")
            raise HledgerAPIError(
                status_code=response.status_code,
                message=response.reason or "HTTP error",
                response_body=response.text,
            )

        return response

    def get_json(self, path: str) -> Any:
        """GET a JSON document. Raises ValueError if the body is not JSON."""
        return self._request("GET", path).json()

    def get_text(self, path: str) -> str:
        """GET a text/HTML document."""
        response = self._request("GET", path)
        if response.encoding is None:
            response.encoding = "utf-8"
        return response.text

    def put_json(self, path: str, body: Any) -> requests.Response:
        """PUT a JSON document."""
        return self._request("PUT", path, json_data=body)

    def test_connection(self) -> bool:
        """Check that the server answers the version probe."""
        try:
            self._request("GET", "version")
            return True
        except HledgerNotFoundError:
            # Servers before 1.19 have no version endpoint but are reachable
            return True
        except HledgerError:
            return False
