"""Shared fixtures for the engine tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from mongo_backup.models import AppConfig
from mongo_backup.settings import EngineSettings


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(
        _env_file=None,
        catalog_timeout_ms=100,
        ssh_timeout=1.0,
        stream_chunk_size=4,
    )


@pytest.fixture
def ssh_block() -> dict:
    return {"host": "bastion.example", "port": 2222, "username": "deploy", "password": "hunter2"}


@pytest.fixture
def app_config(tmp_path: Path, ssh_block: dict) -> AppConfig:
    return AppConfig.model_validate(
        {
            "backupDir": str(tmp_path / "backups"),
            "filenameFormat": "backup_{datetime}_{source}.gz",
            "connections": [
                {"name": "prod", "uri": "mongodb://localhost:27017/shop", "database": "shop"},
                {
                    "name": "staging",
                    "host": "db.staging",
                    "port": 27018,
                    "database": "shop_copy",
                    "username": "admin",
                    "password": "pw",
                    "authSource": "admin",
                },
                {
                    "name": "remote",
                    "host": "10.0.0.5",
                    "port": 27017,
                    "database": "shop",
                    "username": "reader",
                    "password": "s3cret",
                    "authenticationDatabase": "admin",
                    "ssh": ssh_block,
                },
            ],
            "backupPresets": [
                {
                    "name": "nightly-users",
                    "sourceName": "prod",
                    "selectionMode": "include",
                    "collections": ["users"],
                },
                {
                    "name": "recent-events",
                    "sourceName": "prod",
                    "selectionMode": "include",
                    "collections": ["events"],
                    "queryStartTime": "2024-01-05T00:00:00Z",
                },
            ],
            "restorePresets": [
                {
                    "name": "refresh-staging",
                    "targetName": "staging",
                    "backupPattern": "*_prod.gz",
                    "options": {"drop": True},
                }
            ],
        }
    )
