"""Tests for configuration loading."""

from pathlib import Path

import pytest

from hledger_mirror.config import (
    Config,
    ConfigValidationError,
    ServerConfig,
    create_default_config,
    load_config,
)
from hledger_mirror.schemas import ApiVersion

ENV_VARS = (
    "HLEDGER_URL",
    "HLEDGER_USER",
    "HLEDGER_PASSWORD",
    "HLEDGER_API_VERSION",
    "HLEDGER_STATE_DB",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "missing.yaml")

        assert config.server.base_url == "http://localhost:5000"
        assert config.server.api_version is ApiVersion.AUTO
        assert config.server.permit_posting is False
        assert config.sync.persist_batch_size == 200
        assert config.state_db_path == Path("data/ledger.db")
        assert config.profile_name == "default"
        assert config.validate() == []

    def test_file_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            """
profile_name: home
server:
  base_url: https://ledger.example.com/
  user: alice
  password: secret
  api_version: 1.50
  permit_posting: true
  default_commodity: EUR
sync:
  persist_batch_size: 50
state_db_path: /tmp/home.db
"""
        )

        config = load_config(path)

        assert config.profile_name == "home"
        assert config.server.base_url == "https://ledger.example.com"
        assert config.server.user == "alice"
        assert config.server.api_version is ApiVersion.V1_50
        assert config.server.permit_posting is True
        assert config.sync.persist_batch_size == 50
        assert config.state_db_path == Path("/tmp/home.db")

    def test_environment_overrides(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("server:\n  base_url: http://file-value\n  user: file-user\n")
        monkeypatch.setenv("HLEDGER_URL", "http://env-value:5000")
        monkeypatch.setenv("HLEDGER_USER", "env-user")
        monkeypatch.setenv("HLEDGER_API_VERSION", "html")
        monkeypatch.setenv("HLEDGER_STATE_DB", str(tmp_path / "env.db"))

        config = load_config(path)

        assert config.server.base_url == "http://env-value:5000"
        assert config.server.user == "env-user"
        assert config.server.api_version is ApiVersion.HTML
        assert config.state_db_path == tmp_path / "env.db"

    def test_version_strings(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text('server:\n  api_version: "1.19.1"\n')
        assert load_config(path).server.api_version is ApiVersion.V1_19_1

    def test_unknown_api_version(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("server:\n  api_version: '2.0'\n")

        with pytest.raises(ConfigValidationError):
            load_config(path)


class TestValidate:
    """Tests for Config.validate."""

    def test_bad_url_scheme(self):
        config = Config(server=ServerConfig(base_url="ftp://ledger"))
        assert any("base_url" in e for e in config.validate())

    def test_password_without_user(self):
        config = Config(server=ServerConfig(base_url="http://ledger", password="x"))
        assert any("password" in e for e in config.validate())

    def test_bad_numbers(self):
        config = Config(server=ServerConfig(base_url="http://ledger", timeout=0))
        config.sync.persist_batch_size = 0
        errors = config.validate()
        assert len(errors) == 2

    def test_to_profile(self):
        config = Config(
            server=ServerConfig(
                base_url="http://ledger",
                user="bob",
                password="pw",
                default_commodity="",
            ),
            profile_name="work",
        )

        profile = config.to_profile(profile_id=4)

        assert profile.id == 4
        assert profile.name == "work"
        assert profile.auth_user == "bob"
        assert profile.default_commodity is None


def test_default_config_loads(tmp_path):
    path = tmp_path / "nested" / "config.yaml"

    create_default_config(path)
    config = load_config(path)

    assert config.server.base_url == "http://localhost:5000"
    assert config.server.user is None
    assert config.validate() == []
