"""Bootstrap logic that prepares runtime directories and the SQLite database."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from . import config as config_module
from .config import AppConfig, load_config
from .services.auth import ROLE_SUPERADMIN, hash_password

LOGGER = logging.getLogger(__name__)


DEFAULT_LANGUAGES = (
    ("Indonesia", "id"),
    ("Sunda", "su"),
    ("English", "en"),
)

SCHEMA = """
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS languages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    code TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS topics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    position INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    topic_id INTEGER NOT NULL,
    image_path TEXT NOT NULL,
    position INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY(topic_id) REFERENCES topics(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_entries_topic ON entries(topic_id);

CREATE TABLE IF NOT EXISTS vocabularies (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    vocab TEXT NOT NULL,
    audio_path TEXT,
    language_id INTEGER NOT NULL,
    FOREIGN KEY(language_id) REFERENCES languages(id)
);

CREATE TABLE IF NOT EXISTS entry_vocabularies (
    entry_id INTEGER NOT NULL,
    vocabulary_id INTEGER NOT NULL,
    position INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY(entry_id, vocabulary_id),
    FOREIGN KEY(entry_id) REFERENCES entries(id) ON DELETE CASCADE,
    FOREIGN KEY(vocabulary_id) REFERENCES vocabularies(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS vocabulary_translations (
    vocabulary_id INTEGER NOT NULL,
    translation_id INTEGER NOT NULL,
    PRIMARY KEY(vocabulary_id, translation_id),
    CHECK(vocabulary_id != translation_id),
    FOREIGN KEY(vocabulary_id) REFERENCES vocabularies(id) ON DELETE CASCADE,
    FOREIGN KEY(translation_id) REFERENCES vocabularies(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS culture_topics (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    image_path TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS culture_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    culture_topic_id INTEGER NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    image_path TEXT NOT NULL,
    video_path TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY(culture_topic_id) REFERENCES culture_topics(id)
);
CREATE INDEX IF NOT EXISTS idx_culture_entries_topic ON culture_entries(culture_topic_id);

CREATE TABLE IF NOT EXISTS learners (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    city TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS visitor_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    learner_id INTEGER NOT NULL,
    topic_id INTEGER,
    timestamp TEXT NOT NULL,
    FOREIGN KEY(learner_id) REFERENCES learners(id) ON DELETE CASCADE,
    FOREIGN KEY(topic_id) REFERENCES topics(id) ON DELETE SET NULL
);
CREATE INDEX IF NOT EXISTS idx_visitor_logs_timestamp ON visitor_logs(timestamp);

CREATE TABLE IF NOT EXISTS admins (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'admin' CHECK(role IN ('admin', 'superadmin')),
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


class BootstrapError(RuntimeError):
    """Raised when initialization cannot be completed."""


class Bootstrapper:
    """High level object orchestrating initialization steps."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    @property
    def config(self) -> AppConfig:
        return self._config

    def initialize(self) -> None:
        """Run all bootstrap tasks."""

        LOGGER.debug("Starting bootstrap sequence")
        self._ensure_directories()
        self._ensure_database()
        LOGGER.info("Bootstrap completed successfully")

    def _ensure_directories(self) -> None:
        for label, path in (
            ("storage", self._config.storage_root),
            ("uploads", self._config.uploads_root),
            ("database", self._config.database_file.parent),
        ):
            if not config_module._ensure_writable_directory(path):
                raise BootstrapError(f"The {label} directory '{path}' is not writable.")
            LOGGER.debug("Ensured directory exists: %s", path)

    def _ensure_database(self) -> None:
        LOGGER.debug("Ensuring database schema at %s", self._config.database_file)
        connection = sqlite3.connect(self._config.database_file)
        try:
            connection.executescript(SCHEMA)
            connection.commit()
            self._seed_languages(connection)
            self._seed_superadmin(connection)
        except sqlite3.Error as error:
            raise BootstrapError(f"Could not prepare database: {error}") from error
        finally:
            connection.close()

    def _seed_languages(self, connection: sqlite3.Connection) -> None:
        (count,) = connection.execute("SELECT COUNT(*) FROM languages").fetchone()
        if count:
            return
        with connection:
            connection.executemany(
                "INSERT INTO languages(name, code) VALUES (?, ?)", DEFAULT_LANGUAGES
            )
        LOGGER.info("Seeded %d default languages", len(DEFAULT_LANGUAGES))

    def _seed_superadmin(self, connection: sqlite3.Connection) -> None:
        row = connection.execute(
            "SELECT id FROM admins WHERE role = ? LIMIT 1", (ROLE_SUPERADMIN,)
        ).fetchone()
        if row is not None:
            return

        email = (self._config.superadmin_email or "").strip()
        password = self._config.superadmin_password or ""
        if not email or not password:
            LOGGER.error(
                "No superadmin exists and SUPERADMIN_EMAIL/SUPERADMIN_PASSWORD are not set; "
                "skipping superadmin seed."
            )
            return

        with connection:
            connection.execute(
                "INSERT INTO admins(name, email, password_hash, role, created_at) VALUES (?, ?, ?, ?, ?)",
                (
                    "Super Admin",
                    email.lower(),
                    hash_password(password),
                    ROLE_SUPERADMIN,
                    datetime.now().isoformat(sep=" ", timespec="microseconds"),
                ),
            )
        LOGGER.info("Superadmin account created for %s", email)


def initialize_app(config_path: Path | None = None) -> AppConfig:
    """Convenience helper that loads configuration and runs initialization."""

    config = load_config(config_path=config_path)
    bootstrapper = Bootstrapper(config)
    bootstrapper.initialize()
    return config


__all__ = ["BootstrapError", "Bootstrapper", "DEFAULT_LANGUAGES", "SCHEMA", "initialize_app"]
