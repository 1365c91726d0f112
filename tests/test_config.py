"""
Tests for configuration loading and validation.
"""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from update_stream.config import Settings, get_settings, reset_settings
from update_stream.exceptions import ConfigurationError


class TestSettings:
    """Test Settings parsing from the environment."""

    def setup_method(self):
        """Set up test fixtures."""
        reset_settings()

    def teardown_method(self):
        """Clean up cached settings."""
        reset_settings()

    def test_defaults(self):
        """Test default values with only the token set."""
        with patch.dict(os.environ, {"BOT_TOKEN": "123:abc"}, clear=True):
            settings = Settings(_env_file=None)

            assert settings.bot_token.get_secret_value() == "123:abc"
            assert settings.api_url == "https://api.telegram.org"
            assert settings.polling_timeout_seconds == 10
            assert settings.error_backoff_seconds == 1.0
            assert settings.initial_offset is None
            assert settings.owner_receiver is None
            assert settings.log_level == "INFO"
            assert settings.log_format == "console"

    def test_token_hidden_from_repr(self):
        with patch.dict(os.environ, {"BOT_TOKEN": "123:secret"}, clear=True):
            settings = Settings(_env_file=None)

            assert "123:secret" not in repr(settings)

    def test_polling_config(self):
        """Test that the read budget equals the long-poll timeout."""
        env = {
            "BOT_TOKEN": "123:abc",
            "POLLING_TIMEOUT_SECONDS": "30",
            "ERROR_BACKOFF_SECONDS": "4",
            "INITIAL_OFFSET": "900",
        }
        with patch.dict(os.environ, env, clear=True):
            polling = Settings(_env_file=None).polling_config

            assert polling.timeout_seconds == 30
            assert polling.read_timeout_seconds == 30
            assert polling.error_backoff_seconds == 4.0
            assert polling.initial_offset == 900

    def test_blank_token_rejected(self):
        with patch.dict(os.environ, {"BOT_TOKEN": "   "}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_zero_polling_timeout_rejected(self):
        """Test that the long-poll timeout must leave a usable read budget."""
        env = {"BOT_TOKEN": "123:abc", "POLLING_TIMEOUT_SECONDS": "0"}
        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_negative_backoff_rejected(self):
        env = {"BOT_TOKEN": "123:abc", "ERROR_BACKOFF_SECONDS": "-1"}
        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_log_settings_normalized(self):
        env = {"BOT_TOKEN": "123:abc", "LOG_LEVEL": "debug", "LOG_FORMAT": "JSON"}
        with patch.dict(os.environ, env, clear=True):
            settings = Settings(_env_file=None)

            assert settings.log_level == "DEBUG"
            assert settings.log_format == "json"

    @pytest.mark.parametrize(
        "key,value", [("LOG_LEVEL", "verbose"), ("LOG_FORMAT", "xml")]
    )
    def test_invalid_log_settings(self, key, value):
        with patch.dict(os.environ, {"BOT_TOKEN": "123:abc", key: value}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    @pytest.mark.parametrize(
        "owner_chat,expected", [("-100123", -100123), ("@ops_channel", "@ops_channel")]
    )
    def test_owner_chat(self, owner_chat, expected):
        env = {"BOT_TOKEN": "123:abc", "OWNER_CHAT": owner_chat}
        with patch.dict(os.environ, env, clear=True):
            assert Settings(_env_file=None).owner_receiver == expected

    def test_invalid_owner_chat(self):
        env = {"BOT_TOKEN": "123:abc", "OWNER_CHAT": "ops channel"}
        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)


class TestGetSettings:
    """Test the cached settings accessor."""

    def setup_method(self):
        """Set up test fixtures."""
        reset_settings()

    def teardown_method(self):
        """Clean up cached settings."""
        reset_settings()

    def test_missing_token(self, tmp_path, monkeypatch):
        """Test that a missing token is reported as a configuration error."""
        monkeypatch.chdir(tmp_path)
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                get_settings()

        assert "BOT_TOKEN" in str(exc_info.value)
        assert exc_info.value.code == "CONFIGURATION_ERROR"

    def test_invalid_value(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        env = {"BOT_TOKEN": "123:abc", "POLLING_TIMEOUT_SECONDS": "soon"}
        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                get_settings()

        assert "Invalid configuration" in str(exc_info.value)

    def test_cached(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with patch.dict(os.environ, {"BOT_TOKEN": "123:abc"}, clear=True):
            first = get_settings()
            second = get_settings()

        assert first is second

    def test_reads_dotenv_file(self, tmp_path, monkeypatch):
        """Test loading settings from a .env file in the working directory."""
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env").write_text("BOT_TOKEN=555:from-file\nLOG_LEVEL=warning\n")
        with patch.dict(os.environ, {}, clear=True):
            settings = get_settings()

        assert settings.bot_token.get_secret_value() == "555:from-file"
        assert settings.log_level == "WARNING"
