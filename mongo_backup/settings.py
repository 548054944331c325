"""Engine settings models."""

from __future__ import annotations

from functools import lru_cache

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class EngineSettings(BaseSettings):
    """Runtime settings loaded from the environment and ``.env``.

    Environment variables follow the ``MONGO_BACKUP_`` prefix. For example,
    ``MONGO_BACKUP_CONFIG_PATH`` points at the JSON configuration file and
    ``MONGO_BACKUP_BACKUP_DIR`` overrides the archive directory declared there.
    ``MONGODUMP_BIN`` and ``MONGORESTORE_BIN`` are honoured as well.
    """

    config_path: str = "config.json"
    log_level: str = "INFO"
    backup_dir: str | None = None
    mongodump_bin: str | None = Field(default=None, alias="MONGODUMP_BIN")
    mongorestore_bin: str | None = Field(default=None, alias="MONGORESTORE_BIN")
    catalog_timeout_ms: int = 5000
    command_timeout: float | None = None
    ssh_timeout: float = 10.0
    stream_chunk_size: int = 64 * 1024

    model_config = ConfigDict(
        env_prefix="MONGO_BACKUP_",
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    """Return cached engine settings."""

    return EngineSettings()
