"""Configuration loading utilities for the Kosakata service."""

from __future__ import annotations

import contextlib
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple


LOGGER = logging.getLogger(__name__)


_PERMISSION_SENTINEL = ".kosakata_write_check"
_DEFAULT_MAX_UPLOAD_BYTES = 20 * 1024 * 1024
_DEFAULT_SECRET_KEY = "kosakata-development-secret"

PRODUCTION = "production"
DEVELOPMENT = "development"


def _ensure_writable_directory(path: Path) -> bool:
    """Return ``True`` if *path* can be created and written to."""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False

    marker = path / _PERMISSION_SENTINEL
    try:
        with marker.open("w", encoding="utf-8") as handle:
            handle.write("ok")
    except OSError:
        return False
    finally:
        with contextlib.suppress(OSError):
            marker.unlink()

    return True


def _select_writable_directory(
    preferred: Path,
    *,
    label: str,
    fallbacks: Iterable[Path] = (),
) -> Tuple[Path, bool]:
    """Return a usable directory based on ``preferred`` and ``fallbacks``.

    The first writable candidate wins and the flag reports whether a fallback
    had to be used. When nothing is writable ``preferred`` is returned so the
    bootstrapper can report the failure.
    """

    preferred = preferred.resolve()
    if _ensure_writable_directory(preferred):
        return preferred, False

    for fallback in fallbacks:
        candidate = fallback.resolve()
        if candidate == preferred:
            continue
        if _ensure_writable_directory(candidate):
            LOGGER.warning(
                "Preferred %s directory '%s' is not writable; using fallback '%s'.",
                label,
                preferred,
                candidate,
            )
            return candidate, True

    LOGGER.warning(
        "%s directory '%s' is not writable and no fallback is available.",
        label.capitalize(),
        preferred,
    )
    return preferred, False


def _read_int(value: Optional[str], default: int) -> int:
    try:
        return int((value or "").strip() or default)
    except ValueError:
        LOGGER.warning("Ignoring invalid integer setting %r; using %s", value, default)
        return default


@dataclass(frozen=True)
class AppConfig:
    """Runtime paths and settings for the service."""

    storage_root: Path
    database_file: Path
    uploads_root: Path
    environment: str = DEVELOPMENT
    secret_key: str = _DEFAULT_SECRET_KEY
    max_upload_bytes: int = _DEFAULT_MAX_UPLOAD_BYTES
    superadmin_email: Optional[str] = field(default=None, repr=False)
    superadmin_password: Optional[str] = field(default=None, repr=False)

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION

    @classmethod
    def from_mapping(
        cls,
        mapping: Dict[str, Any],
        *,
        base_path: Path,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "AppConfig":
        env = os.environ if environ is None else environ

        preferred_storage = (base_path / mapping["storage_root"]).resolve()
        storage_root, storage_fallback_used = _select_writable_directory(
            preferred_storage,
            label="storage",
            fallbacks=(Path.home() / ".kosakata" / "storage",),
        )

        database_file = (base_path / mapping["database_file"]).resolve()
        if storage_fallback_used:
            try:
                relative_database = database_file.relative_to(preferred_storage)
            except ValueError:
                relative_database = None
            if relative_database is not None:
                fallback_database = (storage_root / relative_database).resolve()
                if _ensure_writable_directory(fallback_database.parent):
                    LOGGER.warning(
                        "Preferred database location '%s' is not writable; using fallback '%s'.",
                        database_file,
                        fallback_database,
                    )
                    database_file = fallback_database

        preferred_uploads = (base_path / mapping["uploads_root"]).resolve()
        uploads_root, _ = _select_writable_directory(
            preferred_uploads,
            label="uploads",
            fallbacks=(storage_root / "public",),
        )

        environment = (env.get("KOSAKATA_ENV") or mapping.get("environment") or DEVELOPMENT)
        return cls(
            storage_root=storage_root,
            database_file=database_file,
            uploads_root=uploads_root,
            environment=environment.strip().lower(),
            secret_key=env.get("KOSAKATA_SECRET_KEY") or mapping.get("secret_key") or _DEFAULT_SECRET_KEY,
            max_upload_bytes=_read_int(
                env.get("KOSAKATA_MAX_UPLOAD_BYTES"),
                int(mapping.get("max_upload_bytes", _DEFAULT_MAX_UPLOAD_BYTES)),
            ),
            superadmin_email=env.get("SUPERADMIN_EMAIL") or mapping.get("superadmin_email"),
            superadmin_password=env.get("SUPERADMIN_PASSWORD") or mapping.get("superadmin_password"),
        )


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load the service configuration from ``config/default.json`` by default."""

    base_path = Path(__file__).resolve().parent.parent
    if config_path is None:
        config_path = base_path / "config" / "default.json"

    with config_path.open("r", encoding="utf-8") as config_file:
        raw_config = json.load(config_file)

    return AppConfig.from_mapping(raw_config, base_path=base_path)


__all__ = ["AppConfig", "DEVELOPMENT", "PRODUCTION", "load_config"]
