"""
Configuration management (SSOT).

This module defines ALL configuration for the hledger mirror.
All config keys are defined here; no other module should invent config keys.

Key invariants:
- One config file describes one hledger-web server (one profile)
- Credentials may come from the environment instead of the file
- The profile row in the state store is refreshed from this config on every run
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .schemas import ApiVersion, Profile


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


@dataclass
class ServerConfig:
    """hledger-web server configuration.

    api_version:
    - "auto": probe the server and walk the version ladder
    - "html": never use JSON, scrape the journal page
    - a ladder entry such as "1.32": pin that wire format
    """

    base_url: str
    user: str | None = None
    password: str | None = None
    api_version: ApiVersion = ApiVersion.AUTO
    # Allow `PUT add` for composed transactions
    permit_posting: bool = False
    default_commodity: str | None = None
    timeout: int = 30
    max_retries: int = 3


@dataclass
class SyncConfig:
    """Sync engine settings."""

    # Rows per persistence batch; cancellation is checked between batches
    persist_batch_size: int = 200
    # How often the progress stream checks for cancellation
    cancel_poll_seconds: float = 0.1


@dataclass
class Config:
    """Main application configuration."""

    server: ServerConfig
    sync: SyncConfig = field(default_factory=SyncConfig)
    state_db_path: Path = field(default_factory=lambda: Path("data/ledger.db"))
    profile_name: str = "default"

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if not self.server.base_url:
            errors.append("server.base_url is required")
        elif not self.server.base_url.startswith(("http://", "https://")):
            errors.append("server.base_url must start with http:// or https://")

        if self.server.password and not self.server.user:
            errors.append("server.password is set but server.user is empty")

        if self.server.timeout <= 0:
            errors.append("server.timeout must be positive")
        if self.server.max_retries < 0:
            errors.append("server.max_retries must not be negative")

        if self.sync.persist_batch_size < 1:
            errors.append("sync.persist_batch_size must be at least 1")
        if self.sync.cancel_poll_seconds <= 0:
            errors.append("sync.cancel_poll_seconds must be positive")

        if not self.profile_name:
            errors.append("profile_name is required")

        return errors

    def to_profile(self, profile_id: int = 0) -> Profile:
        """Build the sync engine's view of this server."""
        return Profile(
            id=profile_id,
            name=self.profile_name,
            url=self.server.base_url,
            auth_user=self.server.user or None,
            auth_password=self.server.password or None,
            api_version=self.server.api_version,
            permit_posting=self.server.permit_posting,
            default_commodity=self.server.default_commodity or None,
        )


def _parse_api_version(raw: object) -> ApiVersion:
    if raw is None:
        return ApiVersion.AUTO
    # Unquoted YAML reads 1.50 as the float 1.5
    value = f"{raw:.2f}" if isinstance(raw, float) else str(raw).strip().lower()
    try:
        return ApiVersion(value)
    except ValueError:
        choices = ", ".join(v.value for v in ApiVersion)
        raise ConfigValidationError(
            f"Unknown api_version '{raw}' (expected one of: {choices})"
        ) from None


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables can override config values:
    - HLEDGER_URL
    - HLEDGER_USER
    - HLEDGER_PASSWORD
    - HLEDGER_API_VERSION (auto, html, or a version such as 1.32)
    - HLEDGER_STATE_DB
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    # Server config
    server_data = data.get("server", {}) or {}
    server = ServerConfig(
        base_url=os.environ.get(
            "HLEDGER_URL", server_data.get("base_url", "http://localhost:5000")
        ).rstrip("/"),
        user=os.environ.get("HLEDGER_USER", server_data.get("user")),
        password=os.environ.get("HLEDGER_PASSWORD", server_data.get("password")),
        api_version=_parse_api_version(
            os.environ.get("HLEDGER_API_VERSION", server_data.get("api_version", "auto"))
        ),
        permit_posting=bool(server_data.get("permit_posting", False)),
        default_commodity=server_data.get("default_commodity"),
        timeout=int(server_data.get("timeout", 30)),
        max_retries=int(server_data.get("max_retries", 3)),
    )

    # Sync config
    sync_data = data.get("sync", {}) or {}
    sync = SyncConfig(
        persist_batch_size=int(sync_data.get("persist_batch_size", 200)),
        cancel_poll_seconds=float(sync_data.get("cancel_poll_seconds", 0.1)),
    )

    # State DB
    state_db = os.environ.get("HLEDGER_STATE_DB", data.get("state_db_path", "data/ledger.db"))

    return Config(
        server=server,
        sync=sync,
        state_db_path=Path(state_db),
        profile_name=data.get("profile_name", "default"),
    )


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# hledger-web mirror configuration
#
# Credentials can also be supplied through the environment:
# HLEDGER_URL, HLEDGER_USER, HLEDGER_PASSWORD, HLEDGER_API_VERSION, HLEDGER_STATE_DB

profile_name: "default"

server:
  base_url: "http://localhost:5000"   # hledger-web root URL
  user: null                           # HTTP Basic auth user (null = no auth)
  password: null
  api_version: "auto"                  # auto, html, or one of 1.14 ... 1.50
  permit_posting: false                # allow adding transactions (PUT add)
  default_commodity: null              # currency for template lines without one
  timeout: 30                          # seconds per request
  max_retries: 3                       # retries on 429/5xx and connection errors

sync:
  persist_batch_size: 200              # rows per database batch
  cancel_poll_seconds: 0.1

# Local cache database
state_db_path: "data/ledger.db"
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
