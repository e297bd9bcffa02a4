"""Tests for settings loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from mediaqueue.config import Settings, get_settings, load_settings
from mediaqueue.sync import RetryConfig


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ("SERVER_URL", "MAX_RETRIES", "DATA_DIR", "LOG_LEVEL", "CONFIG_FILE", "AUTO_REQUEUE"):
        monkeypatch.delenv(f"MEDIAQUEUE_{name}", raising=False)
    # Keep a stray .env in the working directory out of the way
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestSettings:
    """Tests for the Settings model."""

    def test_defaults(self, clean_env):
        settings = Settings()

        assert settings.server_url == "http://localhost:3001"
        assert settings.max_retries == 3
        assert settings.auto_requeue is True
        assert settings.log_level == "INFO"

    def test_env_override(self, clean_env, monkeypatch):
        monkeypatch.setenv("MEDIAQUEUE_SERVER_URL", "http://nas.local:3001")
        monkeypatch.setenv("MEDIAQUEUE_MAX_RETRIES", "5")
        monkeypatch.setenv("MEDIAQUEUE_LOG_LEVEL", "debug")

        settings = Settings()

        assert settings.server_url == "http://nas.local:3001"
        assert settings.max_retries == 5
        assert settings.log_level == "DEBUG"

    @pytest.mark.parametrize(
        "field,value",
        [
            ("max_retries", -1),
            ("initial_delay_ms", 0),
            ("max_delay_ms", -5),
            ("backoff_factor", 0.5),
            ("sweep_interval", 0),
            ("log_level", "LOUD"),
        ],
    )
    def test_invalid_values_rejected(self, clean_env, field, value):
        with pytest.raises(ValidationError):
            Settings(**{field: value})

    def test_retry_config(self, clean_env):
        settings = Settings(max_retries=2, initial_delay_ms=500, max_delay_ms=4000, backoff_factor=3)

        assert settings.retry_config() == RetryConfig(
            max_retries=2, initial_delay=500, max_delay=4000, factor=3
        )

    def test_paths_expanded(self, clean_env):
        settings = Settings(data_dir=Path("~/queue-data"))

        assert settings.data_path == Path("~/queue-data").expanduser()
        assert settings.queue_db_path == settings.data_path / "upload_queue.db"


class TestLoadSettings:
    """Tests for load_settings() with a YAML config file."""

    def test_missing_file_uses_defaults(self, clean_env):
        settings = load_settings(clean_env / "nope.yaml")

        assert settings.server_url == "http://localhost:3001"

    def test_yaml_overrides_defaults(self, clean_env):
        config_file = clean_env / "config.yaml"
        config_file.write_text("server_url: http://yaml.local\nmax_retries: 1\nunknown_key: 3\n")

        settings = load_settings(config_file)

        assert settings.server_url == "http://yaml.local"
        assert settings.max_retries == 1

    def test_env_wins_over_yaml(self, clean_env, monkeypatch):
        config_file = clean_env / "config.yaml"
        config_file.write_text("server_url: http://yaml.local\nmax_retries: 1\n")
        monkeypatch.setenv("MEDIAQUEUE_SERVER_URL", "http://env.local")

        settings = load_settings(config_file)

        assert settings.server_url == "http://env.local"
        assert settings.max_retries == 1

    def test_config_file_from_env(self, clean_env, monkeypatch):
        config_file = clean_env / "custom.yaml"
        config_file.write_text("sweep_interval: 5\n")
        monkeypatch.setenv("MEDIAQUEUE_CONFIG_FILE", str(config_file))

        assert load_settings().sweep_interval == 5

    @pytest.mark.parametrize("content", ["server_url: [unclosed\n", "- just\n- a list\n"])
    def test_unusable_file_ignored(self, clean_env, content):
        config_file = clean_env / "config.yaml"
        config_file.write_text(content)

        settings = load_settings(config_file)

        assert settings.server_url == "http://localhost:3001"

    def test_get_settings_is_cached(self, isolated_settings):
        assert get_settings() is get_settings()
        assert get_settings().data_path == isolated_settings
