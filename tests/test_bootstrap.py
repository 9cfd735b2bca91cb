from dataclasses import replace
from pathlib import Path

import pytest

import kosakata.config as config_module
from kosakata.bootstrap import BootstrapError, Bootstrapper
from kosakata.config import AppConfig
from kosakata.services.auth import ROLE_SUPERADMIN, verify_password
from kosakata.services.storage import ContentRepository


def test_bootstrapper_raises_when_storage_directory_unwritable(
    tmp_path: Path, monkeypatch
) -> None:
    storage_root = tmp_path / "storage"
    uploads_root = tmp_path / "public"
    database_file = storage_root / "kosakata.db"

    config = AppConfig(
        storage_root=storage_root,
        database_file=database_file,
        uploads_root=uploads_root,
    )

    original_ensure = config_module._ensure_writable_directory

    def fake_ensure(path: Path) -> bool:
        if path.resolve() == storage_root.resolve():
            return False
        return original_ensure(path)

    monkeypatch.setattr(config_module, "_ensure_writable_directory", fake_ensure)

    bootstrapper = Bootstrapper(config)

    with pytest.raises(BootstrapError) as excinfo:
        bootstrapper.initialize()

    assert "storage" in str(excinfo.value).lower()


def test_bootstrap_seeds_languages_and_superadmin_once(temp_config: AppConfig) -> None:
    Bootstrapper(temp_config).initialize()

    repository = ContentRepository(temp_config)
    assert [language.code for language in repository.list_languages()] == ["id", "su", "en"]
    admins = repository.list_admins()
    assert len(admins) == 1
    assert admins[0].role == ROLE_SUPERADMIN
    assert admins[0].email == "root@example.com"
    assert verify_password("super-secret", admins[0].password_hash)


def test_bootstrap_without_credentials_skips_superadmin(tmp_path: Path, caplog) -> None:
    config = AppConfig(
        storage_root=tmp_path / "storage",
        database_file=tmp_path / "storage" / "kosakata.db",
        uploads_root=tmp_path / "public",
    )

    with caplog.at_level("ERROR", logger="kosakata.bootstrap"):
        Bootstrapper(config).initialize()

    assert ContentRepository(config).count_admins() == 0
    assert "SUPERADMIN_EMAIL" in caplog.text
    assert config.uploads_root.is_dir()

    Bootstrapper(replace(config, superadmin_email="late@example.com", superadmin_password="pw")).initialize()
    assert ContentRepository(config).count_admins(ROLE_SUPERADMIN) == 1
