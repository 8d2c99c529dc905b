"""Tests for core configuration classes."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from ftpwatch.core.config import (
    DEFAULT_IGNORE_PATTERNS,
    DEFAULT_REMOTE_PATH,
    PASSWORD_ENV,
    USERNAME_ENV,
    ConfigError,
    WatchConfig,
    load_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep credential overrides from the environment out of the tests."""
    monkeypatch.delenv(PASSWORD_ENV, raising=False)
    monkeypatch.delenv(USERNAME_ENV, raising=False)


def write_config(tmp_path: Path, data: object) -> Path:
    path = tmp_path / "sftp.json"
    path.write_text(json.dumps(data))
    return path


class TestWatchConfig:
    """Tests for WatchConfig class."""

    def test_init_basic(self) -> None:
        """Should initialize with defaults for optional fields."""
        config = WatchConfig(host="ftp.example.com", username="user", password="secret")
        assert config.port == 21
        assert config.protocol == "ftp"
        assert config.remote_path == DEFAULT_REMOTE_PATH
        assert config.ignore == DEFAULT_IGNORE_PATTERNS
        assert config.timeout == 30.0
        assert config.is_ftp
        assert not config.is_secure

    def test_remote_path_gets_trailing_slash(self) -> None:
        """Should normalize the remote path to end with '/'."""
        config = WatchConfig(host="h", username="u", password="p", remote_path="/www")
        assert config.remote_path == "/www/"

    def test_protocol_lowercased(self) -> None:
        """Should normalize the protocol name."""
        config = WatchConfig(host="h", username="u", password="p", protocol="FTPS")
        assert config.protocol == "ftps"
        assert config.is_secure

    def test_remote_root(self) -> None:
        """The local folder is mirrored into a directory of the same name."""
        config = WatchConfig(host="h", username="u", password="p", remote_path="/themes/")
        assert config.remote_root("hub-child") == "/themes/hub-child"

    def test_describe_hides_password(self) -> None:
        """Should not include the password."""
        config = WatchConfig(host="h", username="u", password="secret", port=2121)
        assert config.describe() == "ftp://u@h:2121"
        assert "secret" not in config.describe()

    def test_from_dict(self) -> None:
        """Should read the editor-extension key names."""
        config = WatchConfig.from_dict(
            {
                "host": "ftp.example.com",
                "username": "deploy",
                "password": "hunter2",
                "port": "2121",
                "protocol": "ftp",
                "remotePath": "/public_html/site",
                "ignore": ["**/*.map", "dist/**"],
            }
        )
        assert config.host == "ftp.example.com"
        assert config.port == 2121
        assert config.remote_path == "/public_html/site/"
        assert config.ignore == ["*.map", "dist/**"]

    def test_from_dict_strips_credentials(self) -> None:
        """Surrounding whitespace in credentials is removed."""
        config = WatchConfig.from_dict(
            {"host": " ftp.example.com ", "username": " deploy\n", "password": " pw "}
        )
        assert config.host == "ftp.example.com"
        assert config.username == "deploy"
        assert config.password == "pw"

    def test_from_dict_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Credentials from the environment take precedence."""
        monkeypatch.setenv(PASSWORD_ENV, "from-env")
        monkeypatch.setenv(USERNAME_ENV, "env-user")
        config = WatchConfig.from_dict({"host": "h", "username": "u", "password": "p"})
        assert config.username == "env-user"
        assert config.password == "from-env"

    def test_password_from_env_only(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The password may be left out of the file."""
        monkeypatch.setenv(PASSWORD_ENV, "from-env")
        config = WatchConfig.from_dict({"host": "h", "username": "u"})
        assert config.password == "from-env"

    @pytest.mark.parametrize("missing", ["host", "username", "password"])
    def test_from_dict_missing_required(self, missing: str) -> None:
        """Should fail when a required field is absent."""
        data = {"host": "h", "username": "u", "password": "p"}
        del data[missing]
        with pytest.raises(ConfigError, match=missing):
            WatchConfig.from_dict(data)

    def test_from_dict_invalid_port(self) -> None:
        """Should fail on a non-numeric port."""
        with pytest.raises(ConfigError, match="port"):
            WatchConfig.from_dict({"host": "h", "username": "u", "password": "p", "port": "ftp"})


class TestLoadConfig:
    """Tests for load_config."""

    def test_load(self, tmp_path: Path) -> None:
        """Should load a valid file."""
        path = write_config(tmp_path, {"host": "h", "username": "u", "password": "p"})
        config = load_config(path)
        assert config.host == "h"

    def test_missing_file(self, tmp_path: Path) -> None:
        """Should fail when the file does not exist."""
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path: Path) -> None:
        """Should fail on malformed JSON."""
        path = tmp_path / "sftp.json"
        path.write_text("{ host: ")
        with pytest.raises(ConfigError, match="Could not read"):
            load_config(path)

    def test_not_an_object(self, tmp_path: Path) -> None:
        """Should fail when the top level is not an object."""
        path = write_config(tmp_path, ["host"])
        with pytest.raises(ConfigError, match="JSON object"):
            load_config(path)

    def test_non_ftp_protocol_warns(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Other protocols are accepted with a warning."""
        path = write_config(
            tmp_path, {"host": "h", "username": "u", "password": "p", "protocol": "sftp"}
        )
        with caplog.at_level(logging.WARNING, logger="ftpwatch"):
            config = load_config(path)
        assert config.protocol == "sftp"
        assert "expects FTP" in caplog.text

    def test_unknown_protocol_warns(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Unknown protocols do not block startup."""
        path = write_config(
            tmp_path, {"host": "h", "username": "u", "password": "p", "protocol": "gopher"}
        )
        with caplog.at_level(logging.WARNING, logger="ftpwatch"):
            load_config(path)
        assert "falling back to plain FTP" in caplog.text
