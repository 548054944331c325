"""Load the JSON configuration file."""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic import ValidationError

from .errors import ConfigurationError
from .models import AppConfig
from .settings import EngineSettings, get_settings


logger = structlog.get_logger(__name__)


def load_config(path: str | Path | None = None, settings: EngineSettings | None = None) -> AppConfig:
    """Read, validate and apply environment overrides to the configuration."""

    cfg = settings or get_settings()
    config_path = Path(path or cfg.config_path).expanduser()
    if not config_path.is_file():
        raise ConfigurationError(f"configuration file not found: {config_path}")

    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"failed to read configuration file {config_path}: {exc}") from exc

    try:
        config = AppConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration file {config_path}: {exc}") from exc

    overrides: dict[str, str] = {}
    if cfg.backup_dir:
        overrides["backup_dir"] = cfg.backup_dir
    if cfg.mongodump_bin:
        overrides["mongodump_path"] = cfg.mongodump_bin
    if cfg.mongorestore_bin:
        overrides["mongorestore_path"] = cfg.mongorestore_bin
    if overrides:
        config = config.model_copy(update=overrides)

    logger.info(
        "config_loaded",
        path=str(config_path),
        connections=len(config.connections),
        backup_dir=config.backup_dir,
    )
    return config
