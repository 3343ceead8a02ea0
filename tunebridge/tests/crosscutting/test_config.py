import pytest

from tunebridge.crosscutting import config
from tunebridge.crosscutting.config import ConfigError, Settings, load_settings, setup_config, get_settings


class TestLoadSettings:
    """Tests for environment-based configuration."""

    def test_defaults(self):
        settings = load_settings({})

        assert settings == Settings()
        assert settings.default_country == "us"
        assert settings.max_workers == 8
        assert settings.request_timeout == 10.0
        assert settings.token_safety_margin == 300
        assert settings.port == 3000
        assert settings.host == "localhost"
        assert not settings.has_spotify_credentials

    def test_reads_values(self):
        settings = load_settings({
            "SPOTIFY_CLIENT_ID": "id",
            "SPOTIFY_CLIENT_SECRET": "secret",
            "TUNEBRIDGE_DEFAULT_COUNTRY": "GB",
            "TUNEBRIDGE_MAX_WORKERS": "4",
            "TUNEBRIDGE_REQUEST_TIMEOUT": "2.5",
            "TUNEBRIDGE_TOKEN_SAFETY_MARGIN": "0",
            "TUNEBRIDGE_SEARCH_LIMIT": "10",
            "TUNEBRIDGE_LOG_LEVEL": "debug",
            "TUNEBRIDGE_LOG_FILE": "/tmp/tb.log",
            "HOST": "0.0.0.0",
            "PORT": "8080",
        })

        assert settings.has_spotify_credentials
        assert settings.default_country == "gb"
        assert settings.max_workers == 4
        assert settings.request_timeout == 2.5
        assert settings.token_safety_margin == 0
        assert settings.search_limit == 10
        assert settings.log_level == "DEBUG"
        assert settings.log_file == "/tmp/tb.log"
        assert (settings.host, settings.port) == ("0.0.0.0", 8080)

    def test_blank_values_use_defaults(self):
        settings = load_settings({"TUNEBRIDGE_MAX_WORKERS": "  ", "SPOTIFY_CLIENT_ID": ""})
        assert settings.max_workers == 8
        assert settings.spotify_client_id is None

    @pytest.mark.parametrize("env", [
        {"TUNEBRIDGE_MAX_WORKERS": "many"},
        {"TUNEBRIDGE_MAX_WORKERS": "0"},
        {"TUNEBRIDGE_REQUEST_TIMEOUT": "-1"},
        {"TUNEBRIDGE_SEARCH_LIMIT": "0"},
        {"PORT": "http"},
        {"TUNEBRIDGE_LOG_LEVEL": "LOUD"},
    ])
    def test_invalid_values(self, env):
        with pytest.raises(ConfigError):
            load_settings(env)

    def test_summary_hides_secrets(self):
        summary = load_settings({"SPOTIFY_CLIENT_ID": "id", "SPOTIFY_CLIENT_SECRET": "topsecret"}).summary()

        assert summary["spotify_credentials"] is True
        assert "topsecret" not in str(summary)

    def test_reads_process_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TUNEBRIDGE_MAX_WORKERS", "3")
        settings = load_settings(dotenv_path=str(tmp_path / "missing.env"))
        assert settings.max_workers == 3

    def test_dotenv_file_is_loaded(self, monkeypatch, tmp_path):
        dotenv = tmp_path / ".env"
        dotenv.write_text("TUNEBRIDGE_SEARCH_LIMIT=7\n", encoding="utf-8")
        monkeypatch.delenv("TUNEBRIDGE_SEARCH_LIMIT", raising=False)

        settings = load_settings(dotenv_path=str(dotenv))
        assert settings.search_limit == 7


def test_setup_config_replaces_global_settings(monkeypatch):
    monkeypatch.setattr(config, "_settings", None)
    settings = setup_config({"TUNEBRIDGE_MAX_WORKERS": "2"})
    assert get_settings() is settings
    assert get_settings().max_workers == 2
