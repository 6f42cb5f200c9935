"""Tests for config.py — ContentSyncConfig, TOML loading, env and CLI overrides."""

from pathlib import Path

import pytest

from contentsync import config as config_module
from contentsync.config import (
    ContentSyncConfig,
    SourceConfig,
    load_config,
    merge_cli_overrides,
)

_ENV_VARS = (
    "CONTENTSYNC_URL",
    "CONTENTSYNC_USERNAME",
    "CONTENTSYNC_APP_PASSWORD",
    "CONTENTSYNC_TOKEN",
    "CONTENTSYNC_CACHE_PATH",
    "CONTENTSYNC_LOG_LEVEL",
    "CONTENTSYNC_TIMEOUT",
    "CONTENTSYNC_CACHE_TTL",
    "CONTENTSYNC_INGEST_DELAY",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Remove env vars that _apply_env_vars reads so tests see TOML values."""
    for key in _ENV_VARS:
        monkeypatch.delenv(key, raising=False)


class TestDefaults:
    def test_source(self):
        cfg = ContentSyncConfig()
        assert cfg.source.url == ""
        assert cfg.source.is_configured is False
        assert cfg.source.has_credentials is False
        assert cfg.source.rest_bases["post"] == "posts"

    def test_cache_and_ingest(self):
        cfg = ContentSyncConfig()
        assert cfg.cache.default_ttl == 3600.0
        assert cfg.cache.is_durable is False
        assert cfg.ingest.delay_seconds == 0.5
        assert cfg.logging.level == "INFO"

    def test_base_url(self):
        source = SourceConfig(url="https://cms.example/")
        assert source.base_url == "https://cms.example/wp-json/wp/v2"

    def test_credentials(self):
        assert SourceConfig(token="t").has_credentials
        assert SourceConfig(username="u", app_password="p").has_credentials
        assert not SourceConfig(username="u").has_credentials


class TestLoadConfig:
    def test_load_from_explicit_path(self, tmp_path):
        toml_path = tmp_path / ".contentsync.toml"
        toml_path.write_text(
            '[source]\nurl = "https://cms.example"\ntimeout = 5\n'
            '[source.rest_bases]\nproject = "projects"\n'
            '[cache]\ndefault_ttl = 60\npath = "cache.json"\n'
        )
        cfg = load_config(toml_path)
        assert cfg.source.url == "https://cms.example"
        assert cfg.source.timeout == 5
        assert cfg.source.rest_bases == {"project": "projects"}
        assert cfg.cache.default_ttl == 60
        assert cfg.cache.is_durable

    def test_missing_path_returns_defaults(self, tmp_path):
        cfg = load_config(tmp_path / "nonexistent.toml")
        assert cfg.source.url == ""

    def test_searches_cwd(self, tmp_path, monkeypatch):
        (tmp_path / ".contentsync.toml").write_text('[ingest]\ndelay_seconds = 2.0\n')
        monkeypatch.setattr(config_module, "CONFIG_SEARCH_PATHS", [tmp_path])
        assert load_config().ingest.delay_seconds == 2.0

    def test_invalid_toml_returns_defaults(self, tmp_path):
        toml_path = tmp_path / ".contentsync.toml"
        toml_path.write_text("[source\nurl = ")
        assert load_config(toml_path).source.url == ""

    def test_invalid_values_return_defaults(self, tmp_path):
        toml_path = tmp_path / ".contentsync.toml"
        toml_path.write_text('[cache]\ndefault_ttl = "forever"\n')
        assert load_config(toml_path).cache.default_ttl == 3600.0


class TestEnvOverrides:
    def test_env_overrides_toml(self, tmp_path, monkeypatch):
        toml_path = tmp_path / ".contentsync.toml"
        toml_path.write_text('[source]\nurl = "https://from-toml.example"\n')
        monkeypatch.setenv("CONTENTSYNC_URL", "https://from-env.example")
        monkeypatch.setenv("CONTENTSYNC_TOKEN", "tok")

        cfg = load_config(toml_path)
        assert cfg.source.url == "https://from-env.example"
        assert cfg.source.token == "tok"

    def test_numeric_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CONTENTSYNC_TIMEOUT", "12.5")
        monkeypatch.setenv("CONTENTSYNC_INGEST_DELAY", "0")
        cfg = load_config(tmp_path / "none.toml")
        assert cfg.source.timeout == 12.5
        assert cfg.ingest.delay_seconds == 0.0

    def test_non_numeric_env_ignored(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CONTENTSYNC_CACHE_TTL", "soon")
        assert load_config(tmp_path / "none.toml").cache.default_ttl == 3600.0


class TestMergeCliOverrides:
    def test_overrides_set_values(self):
        cfg = merge_cli_overrides(
            ContentSyncConfig(),
            url="https://cli.example",
            delay=1.5,
            cache_path="/tmp/c.json",
            log_level="DEBUG",
        )
        assert cfg.source.url == "https://cli.example"
        assert cfg.ingest.delay_seconds == 1.5
        assert cfg.cache.path == "/tmp/c.json"
        assert cfg.logging.level == "DEBUG"

    def test_none_values_ignored(self):
        base = ContentSyncConfig.model_validate({"source": {"url": "https://keep.example"}})
        cfg = merge_cli_overrides(base, url=None, delay=None)
        assert cfg.source.url == "https://keep.example"

    def test_unknown_keys_ignored(self):
        cfg = merge_cli_overrides(ContentSyncConfig(), colour="blue")
        assert cfg == ContentSyncConfig()

    def test_returns_new_instance(self):
        base = ContentSyncConfig()
        merge_cli_overrides(base, url="https://x.example")
        assert base.source.url == ""


def test_config_file_example_is_valid(tmp_path: Path):
    toml_path = tmp_path / ".contentsync.toml"
    toml_path.write_text(
        "[source]\n"
        'url = "https://cms.example"\n'
        'username = "editor"\n'
        'app_password = "xxxx xxxx"\n'
        "[ingest]\n"
        "delay_seconds = 1.0\n"
        "[logging]\n"
        'level = "WARNING"\n'
    )
    cfg = load_config(toml_path)
    assert cfg.source.has_credentials
    assert cfg.logging.level == "WARNING"
