"""Unified configuration loaded from .contentsync.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".contentsync.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
    Path.home() / ".config" / "contentsync",
]

MAX_PAGE_SIZE = 100


class SourceConfig(BaseModel):
    """[source] section: the remote content API."""

    url: str = ""
    api_prefix: str = "/wp-json/wp/v2"
    username: str = ""
    app_password: str = ""
    token: str = ""
    timeout: float = 30.0
    page_size: int = MAX_PAGE_SIZE
    user_agent: str = "contentsync/0.1"
    rest_bases: dict[str, str] = Field(
        default_factory=lambda: {"post": "posts", "page": "pages", "project": "project"}
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.url)

    @property
    def has_credentials(self) -> bool:
        return bool(self.token or (self.username and self.app_password))

    @property
    def base_url(self) -> str:
        return f"{self.url.rstrip('/')}/{self.api_prefix.strip('/')}".rstrip("/")


class CacheSectionConfig(BaseModel):
    """[cache] section."""

    default_ttl: float = 3600.0
    max_entries: int = 0
    path: str = ""

    @property
    def is_durable(self) -> bool:
        return bool(self.path)


class IngestSectionConfig(BaseModel):
    """[ingest] section."""

    delay_seconds: float = 0.5


class LoggingConfig(BaseModel):
    """[logging] section."""

    level: str = "INFO"


class ContentSyncConfig(BaseModel):
    """Top-level configuration for the sync layer."""

    source: SourceConfig = Field(default_factory=SourceConfig)
    cache: CacheSectionConfig = Field(default_factory=CacheSectionConfig)
    ingest: IngestSectionConfig = Field(default_factory=IngestSectionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(path: str | Path | None = None) -> ContentSyncConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .contentsync.toml in CWD
    3. ~/.config/contentsync/.contentsync.toml
    4. ~/.config/contentsync/config.toml

    Then overlay environment variables.

    Args:
        path: Explicit path to a TOML file.

    Returns:
        Merged ContentSyncConfig.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        global_config = Path.home() / ".config" / "contentsync" / "config.toml"
        if not data and global_config.exists():
            data = _load_toml(global_config)
            logger.info("Loaded config from %s", global_config)

    try:
        config = ContentSyncConfig.model_validate(data) if data else ContentSyncConfig()
    except ValidationError as exc:
        logger.warning("Invalid configuration, using defaults: %s", exc)
        config = ContentSyncConfig()

    return _apply_env_vars(config)


def merge_cli_overrides(config: ContentSyncConfig, **cli_kwargs: object) -> ContentSyncConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Only overrides values where the CLI flag was explicitly provided
    (i.e., not None).
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "url": ("source", "url"),
        "username": ("source", "username"),
        "app_password": ("source", "app_password"),
        "token": ("source", "token"),
        "timeout": ("source", "timeout"),
        "cache_path": ("cache", "path"),
        "cache_ttl": ("cache", "default_ttl"),
        "delay": ("ingest", "delay_seconds"),
        "log_level": ("logging", "level"),
    }

    for key, value in cli_kwargs.items():
        if value is None:
            continue
        if key in mapping:
            section, field = mapping[key]
            data[section][field] = value

    return ContentSyncConfig.model_validate(data)


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _apply_env_vars(config: ContentSyncConfig) -> ContentSyncConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "CONTENTSYNC_URL": ("source", "url"),
        "CONTENTSYNC_USERNAME": ("source", "username"),
        "CONTENTSYNC_APP_PASSWORD": ("source", "app_password"),
        "CONTENTSYNC_TOKEN": ("source", "token"),
        "CONTENTSYNC_CACHE_PATH": ("cache", "path"),
        "CONTENTSYNC_LOG_LEVEL": ("logging", "level"),
    }
    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            data[section][field] = value

    # Numeric env vars
    numeric_mapping: dict[str, tuple[str, str]] = {
        "CONTENTSYNC_TIMEOUT": ("source", "timeout"),
        "CONTENTSYNC_CACHE_TTL": ("cache", "default_ttl"),
        "CONTENTSYNC_INGEST_DELAY": ("ingest", "delay_seconds"),
    }
    for env_var, (section, field) in numeric_mapping.items():
        raw = os.environ.get(env_var)
        if raw is None:
            continue
        try:
            data[section][field] = float(raw)
        except ValueError:
            logger.warning("Ignoring non-numeric %s=%r", env_var, raw)

    return ContentSyncConfig.model_validate(data)
