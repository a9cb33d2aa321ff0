"""Tests for configuration loading and precedence."""

import json

import pytest
from pydantic import ValidationError

from ask_stream.config import (
    AppSettings,
    ClientSettings,
    ConnectionSettings,
    get_config_dir,
    get_config_file,
    get_settings,
    load_config_file,
)


class TestDefaults:
    """Test default values when nothing is configured."""

    def test_client_defaults(self, clean_settings_env):
        settings = get_settings()
        assert settings.client.api_endpoint == "http://localhost:8000/ask"
        assert settings.client.site is None
        assert settings.client.generate_mode == "list"
        assert settings.client.context_url is None

    def test_connection_defaults(self, clean_settings_env):
        """Default schedule is 3 retries doubling from 1s with a 10s ceiling."""
        connection = get_settings().connection
        assert connection.max_retries == 3
        assert connection.initial_delay == 1.0
        assert connection.max_delay == 10.0

    def test_logging_defaults(self, clean_settings_env):
        assert get_settings().logging.level == "WARNING"
        assert get_settings().logging.json_output is False

    def test_settings_are_cached(self, clean_settings_env):
        assert get_settings() is get_settings()


class TestEnvironment:
    """Test environment variable overrides."""

    def test_env_overrides_defaults(self, clean_settings_env, monkeypatch):
        monkeypatch.setenv("ASK_STREAM_CLIENT_API_ENDPOINT", "https://ask.example.com/ask")
        monkeypatch.setenv("ASK_STREAM_CLIENT_SITE", "seriouseats")
        monkeypatch.setenv("ASK_STREAM_CONNECTION_MAX_RETRIES", "5")

        settings = get_settings()
        assert settings.client.api_endpoint == "https://ask.example.com/ask"
        assert settings.client.site == "seriouseats"
        assert settings.connection.max_retries == 5

    def test_env_overrides_config_file(self, clean_settings_env, monkeypatch):
        clean_settings_env.write_text(json.dumps({"client": {"site": "from-file", "generate_mode": "summarize"}}))
        monkeypatch.setenv("ASK_STREAM_CLIENT_SITE", "from-env")

        settings = get_settings()
        assert settings.client.site == "from-env"
        assert settings.client.generate_mode == "summarize"

    def test_invalid_generate_mode_rejected(self, clean_settings_env, monkeypatch):
        monkeypatch.setenv("ASK_STREAM_CLIENT_GENERATE_MODE", "poetry")
        with pytest.raises(ValidationError):
            ClientSettings()

    @pytest.mark.parametrize("value", ["-1", "11"])
    def test_max_retries_bounds(self, clean_settings_env, monkeypatch, value):
        monkeypatch.setenv("ASK_STREAM_CONNECTION_MAX_RETRIES", value)
        with pytest.raises(ValidationError):
            ConnectionSettings()


class TestConfigFile:
    """Test JSON config file persistence."""

    def test_file_values_are_loaded(self, clean_settings_env):
        clean_settings_env.write_text(json.dumps({"connection": {"max_retries": 1, "max_delay": 4}}))

        connection = get_settings().connection
        assert connection.max_retries == 1
        assert connection.max_delay == 4.0
        assert connection.initial_delay == 1.0

    @pytest.mark.parametrize("content", ["", "not json", "[1, 2]"])
    def test_unreadable_file_is_ignored(self, clean_settings_env, content):
        clean_settings_env.write_text(content)
        assert load_config_file() == {}
        assert get_settings().client.api_endpoint == "http://localhost:8000/ask"

    def test_save_round_trips_through_file(self, clean_settings_env):
        settings = AppSettings(client=ClientSettings(site="woksoflife"))

        path = settings.save()

        assert path == clean_settings_env
        saved = json.loads(path.read_text())
        assert saved["client"]["site"] == "woksoflife"
        assert "context_url" not in saved["client"]
        get_settings.cache_clear()
        assert get_settings().client.site == "woksoflife"

    def test_config_file_override(self, clean_settings_env):
        assert get_config_file() == clean_settings_env

    def test_config_dir_honours_xdg(self, monkeypatch, tmp_path):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert get_config_dir() == tmp_path / "ask-stream"

