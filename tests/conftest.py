from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from kosakata.bootstrap import Bootstrapper
from kosakata.config import AppConfig
from kosakata.services.storage import ContentRepository

SUPERADMIN_EMAIL = "root@example.com"
SUPERADMIN_PASSWORD = "super-secret"


@pytest.fixture()
def temp_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    monkeypatch.chdir(tmp_path)

    config = AppConfig.from_mapping(
        {
            "storage_root": "storage",
            "database_file": "storage/kosakata.db",
            "uploads_root": "public",
            "secret_key": "test-secret",
        },
        base_path=tmp_path,
        environ={
            "SUPERADMIN_EMAIL": SUPERADMIN_EMAIL,
            "SUPERADMIN_PASSWORD": SUPERADMIN_PASSWORD,
        },
    )

    Bootstrapper(config).initialize()
    return config


@pytest.fixture()
def repository(temp_config: AppConfig) -> ContentRepository:
    return ContentRepository(temp_config)


def write_media(config: AppConfig, relative_path: str, content: bytes = b"data") -> Path:
    """Create a file below the uploads root, as an earlier upload would have."""

    target = config.uploads_root / relative_path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(content)
    return target
