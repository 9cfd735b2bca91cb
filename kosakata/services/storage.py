"""Persistence helpers backed by SQLite."""

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from ..config import AppConfig
from .periods import sqlite_bucket_key


@dataclass
class LanguageRecord:
    id: int
    name: str
    code: str


@dataclass
class TopicRecord:
    id: int
    name: str
    position: int


@dataclass
class VocabularyRecord:
    id: int
    vocab: str
    audio_path: Optional[str]
    language_id: int
    language_code: Optional[str] = None
    translation_ids: List[int] = field(default_factory=list)


@dataclass
class EntryRecord:
    id: int
    topic_id: int
    image_path: str
    position: int
    vocabulary_ids: List[int] = field(default_factory=list)


@dataclass
class CultureTopicRecord:
    id: int
    name: List[Dict[str, str]]
    image_path: str
    created_at: str
    updated_at: str


@dataclass
class CultureEntryRecord:
    id: int
    culture_topic_id: int
    title: List[Dict[str, str]]
    description: List[Dict[str, str]]
    image_path: str
    video_path: str
    created_at: str
    updated_at: str


@dataclass
class LearnerRecord:
    id: int
    name: str
    city: str
    created_at: str


@dataclass
class VisitorLogRecord:
    id: int
    learner_id: int
    topic_id: Optional[int]
    timestamp: str


@dataclass
class AdminRecord:
    id: int
    name: str
    email: str
    password_hash: str
    role: str
    created_at: str


_MISSING = object()


LOGGER = logging.getLogger(__name__)


def format_timestamp(moment: datetime) -> str:
    """Serialise *moment* so that lexical order equals chronological order."""

    return moment.isoformat(sep=" ", timespec="microseconds")


def _load_localized(raw: Optional[str]) -> List[Dict[str, str]]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return [{"languageCode": "", "value": raw}]
    return value if isinstance(value, list) else []


def _dump_localized(value: Sequence[Dict[str, str]]) -> str:
    return json.dumps(list(value), ensure_ascii=False)


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


_MEDIA_COLUMNS = (
    ("entries", "image_path"),
    ("vocabularies", "audio_path"),
    ("culture_topics", "image_path"),
    ("culture_entries", "image_path"),
    ("culture_entries", "video_path"),
)


class ContentRepository:
    """Repository exposing CRUD and aggregation helpers for all content tables.

    Mutating helpers accept an optional ``connection``. When it is given the
    statement joins the caller's transaction (see :meth:`transaction`);
    otherwise the helper runs in a short transaction of its own.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        event_emitter: Optional[Callable[..., None]] = None,
    ) -> None:
        self._db_path = config.database_file
        self._event_emitter: Optional[Callable[..., None]] = event_emitter

    def configure_event_emitter(self, emitter: Optional[Callable[..., None]]) -> None:
        """Register the callable receiving ``DB_QUERY`` events."""

        self._event_emitter = emitter

    @contextlib.contextmanager
    def _track_db_event(self, action: str, **payload: Any) -> Iterator[Dict[str, Any]]:
        """Emit a structured event with the duration of a database action."""

        if self._event_emitter is None:
            yield payload
            return

        start = time.perf_counter()
        event_payload: Dict[str, Any] = dict(payload)
        try:
            yield event_payload
        except Exception as exc:
            event_payload.setdefault("status", "error")
            event_payload.setdefault("error", f"{exc.__class__.__name__}: {exc}")
            raise
        finally:
            event_payload.setdefault("status", "ok")
            self._event_emitter(
                "DB_QUERY",
                action,
                payload={key: value for key, value in event_payload.items() if value is not None},
                duration_ms=(time.perf_counter() - start) * 1000.0,
            )

    @staticmethod
    def _summarize_sql(statement: str) -> str:
        collapsed = " ".join(statement.strip().split())
        return collapsed[:180] + ("…" if len(collapsed) > 180 else "")

    def _execute(
        self,
        connection: sqlite3.Connection,
        statement: str,
        parameters: Sequence[Any] | None = None,
        *,
        action: str,
        table: Optional[str] = None,
    ) -> sqlite3.Cursor:
        params: Tuple[Any, ...] = tuple(parameters) if parameters is not None else ()
        with self._track_db_event(
            action,
            table=table,
            sql=self._summarize_sql(statement),
            parameter_count=len(params),
        ) as event:
            cursor = connection.execute(statement, params)
            if cursor.rowcount is not None and cursor.rowcount >= 0:
                event["rowcount"] = int(cursor.rowcount)
            return cursor

    def _connect(self) -> sqlite3.Connection:
        LOGGER.debug("Opening SQLite connection to %s", self._db_path)
        connection = sqlite3.connect(self._db_path, isolation_level=None)
        connection.row_factory = sqlite3.Row
        connection.create_function("bucket_key", 2, sqlite_bucket_key, deterministic=True)
        self._execute(connection, "PRAGMA foreign_keys = ON", action="pragma_foreign_keys")
        return connection

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection whose statements commit or roll back together."""

        connection = self._connect()
        try:
            self._execute(connection, "BEGIN IMMEDIATE", action="transaction.begin")
            try:
                yield connection
            except BaseException:
                if connection.in_transaction:
                    self._execute(connection, "ROLLBACK", action="transaction.rollback")
                    LOGGER.debug("Transaction rolled back")
                raise
            self._execute(connection, "COMMIT", action="transaction.commit")
        finally:
            connection.close()

    @contextlib.contextmanager
    def _session(self, connection: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        if connection is not None:
            yield connection
            return
        with self.transaction() as own:
            yield own

    @contextlib.contextmanager
    def _reader(self, connection: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        if connection is not None:
            yield connection
            return
        own = self._connect()
        try:
            yield own
        finally:
            own.close()

    def _fetch_all(
        self,
        statement: str,
        parameters: Sequence[Any] | None = None,
        *,
        action: str,
        table: Optional[str] = None,
        connection: Optional[sqlite3.Connection] = None,
    ) -> List[sqlite3.Row]:
        with self._reader(connection) as active:
            return self._execute(
                active, statement, parameters, action=action, table=table
            ).fetchall()

    def _fetch_one(
        self,
        statement: str,
        parameters: Sequence[Any] | None = None,
        *,
        action: str,
        table: Optional[str] = None,
        connection: Optional[sqlite3.Connection] = None,
    ) -> Optional[sqlite3.Row]:
        with self._reader(connection) as active:
            return self._execute(
                active, statement, parameters, action=action, table=table
            ).fetchone()

    def _count(self, statement: str, parameters: Sequence[Any] | None = None, *, action: str) -> int:
        row = self._fetch_one(statement, parameters, action=action)
        return int(row[0]) if row and row[0] is not None else 0

    def _next_position(
        self,
        connection: sqlite3.Connection,
        table: str,
        *,
        filter_field: Optional[str] = None,
        filter_value: Optional[int] = None,
    ) -> int:
        query = f"SELECT COALESCE(MAX(position), -1) + 1 FROM {table}"
        params: List[object] = []
        if filter_field is not None:
            query += f" WHERE {filter_field} = ?"
            params.append(filter_value)
        row = self._execute(
            connection, query, params, action=f"{table}.next_position", table=table
        ).fetchone()
        return int(row[0] or 0) if row is not None else 0

    # ------------------------------------------------------------------
    # Languages
    # ------------------------------------------------------------------
    def list_languages(self) -> List[LanguageRecord]:
        rows = self._fetch_all(
            "SELECT id, name, code FROM languages ORDER BY id",
            action="languages.list",
            table="languages",
        )
        return [LanguageRecord(**row) for row in rows]

    def find_language_by_code(
        self, code: str, *, connection: Optional[sqlite3.Connection] = None
    ) -> Optional[LanguageRecord]:
        row = self._fetch_one(
            "SELECT id, name, code FROM languages WHERE code = ?",
            (code,),
            action="languages.lookup_by_code",
            table="languages",
            connection=connection,
        )
        return LanguageRecord(**row) if row else None

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------
    def add_topic(self, name: str) -> int:
        LOGGER.debug("Adding topic '%s'", name)
        with self.transaction() as connection:
            position = self._next_position(connection, "topics")
            cursor = self._execute(
                connection,
                "INSERT INTO topics(name, position) VALUES (?, ?)",
                (name, position),
                action="topics.insert",
                table="topics",
            )
            return int(cursor.lastrowid)

    def get_topic(
        self, topic_id: int, *, connection: Optional[sqlite3.Connection] = None
    ) -> Optional[TopicRecord]:
        row = self._fetch_one(
            "SELECT id, name, position FROM topics WHERE id = ?",
            (topic_id,),
            action="topics.get",
            table="topics",
            connection=connection,
        )
        return TopicRecord(**row) if row else None

    def list_topics(self) -> List[TopicRecord]:
        rows = self._fetch_all(
            "SELECT id, name, position FROM topics ORDER BY position, id",
            action="topics.list",
            table="topics",
        )
        return [TopicRecord(**row) for row in rows]

    def update_topic(self, topic_id: int, *, name: str) -> None:
        with self.transaction() as connection:
            self._execute(
                connection,
                "UPDATE topics SET name = ? WHERE id = ?",
                (name, topic_id),
                action="topics.update",
                table="topics",
            )

    def remove_topic(self, topic_id: int, *, connection: Optional[sqlite3.Connection] = None) -> int:
        with self._session(connection) as active:
            cursor = self._execute(
                active,
                "DELETE FROM topics WHERE id = ?",
                (topic_id,),
                action="topics.delete",
                table="topics",
            )
            return max(cursor.rowcount, 0)

    def count_topics(self) -> int:
        return self._count("SELECT COUNT(*) FROM topics", action="topics.count")

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------
    def _entry_vocabulary_ids(self, connection: sqlite3.Connection, entry_id: int) -> List[int]:
        rows = self._execute(
            connection,
            "SELECT vocabulary_id FROM entry_vocabularies WHERE entry_id = ? ORDER BY position, vocabulary_id",
            (entry_id,),
            action="entry_vocabularies.list",
            table="entry_vocabularies",
        ).fetchall()
        return [int(row[0]) for row in rows]

    def _build_entry(self, connection: sqlite3.Connection, row: sqlite3.Row) -> EntryRecord:
        record = EntryRecord(**row)
        record.vocabulary_ids = self._entry_vocabulary_ids(connection, record.id)
        return record

    def add_entry(
        self,
        topic_id: int,
        image_path: str,
        vocabulary_ids: Sequence[int],
        *,
        connection: Optional[sqlite3.Connection] = None,
    ) -> int:
        """Create an entry at the end of its topic's ordered entry list."""

        with self._session(connection) as active:
            position = self._next_position(
                active, "entries", filter_field="topic_id", filter_value=topic_id
            )
            cursor = self._execute(
                active,
                "INSERT INTO entries(topic_id, image_path, position) VALUES (?, ?, ?)",
                (topic_id, image_path, position),
                action="entries.insert",
                table="entries",
            )
            entry_id = int(cursor.lastrowid)
            self.set_entry_vocabularies(entry_id, vocabulary_ids, connection=active)
            LOGGER.debug(
                "Entry id=%s added to topic_id=%s at position=%s with %d vocabularies",
                entry_id,
                topic_id,
                position,
                len(vocabulary_ids),
            )
            return entry_id

    def get_entry(
        self, entry_id: int, *, connection: Optional[sqlite3.Connection] = None
    ) -> Optional[EntryRecord]:
        with self._reader(connection) as active:
            row = self._execute(
                active,
                "SELECT id, topic_id, image_path, position FROM entries WHERE id = ?",
                (entry_id,),
                action="entries.get",
                table="entries",
            ).fetchone()
            return self._build_entry(active, row) if row else None

    def list_entries(
        self, topic_id: int, *, connection: Optional[sqlite3.Connection] = None
    ) -> List[EntryRecord]:
        with self._reader(connection) as active:
            rows = self._execute(
                active,
                "SELECT id, topic_id, image_path, position FROM entries WHERE topic_id = ? ORDER BY position, id",
                (topic_id,),
                action="entries.list",
                table="entries",
            ).fetchall()
            return [self._build_entry(active, row) for row in rows]

    def set_entry_vocabularies(
        self,
        entry_id: int,
        vocabulary_ids: Sequence[int],
        *,
        connection: Optional[sqlite3.Connection] = None,
    ) -> None:
        with self._session(connection) as active:
            self._execute(
                active,
                "DELETE FROM entry_vocabularies WHERE entry_id = ?",
                (entry_id,),
                action="entry_vocabularies.clear",
                table="entry_vocabularies",
            )
            for index, vocabulary_id in enumerate(dict.fromkeys(vocabulary_ids)):
                self._execute(
                    active,
                    "INSERT INTO entry_vocabularies(entry_id, vocabulary_id, position) VALUES (?, ?, ?)",
                    (entry_id, vocabulary_id, index),
                    action="entry_vocabularies.insert",
                    table="entry_vocabularies",
                )

    def update_entry_image(
        self, entry_id: int, image_path: str, *, connection: Optional[sqlite3.Connection] = None
    ) -> None:
        with self._session(connection) as active:
            self._execute(
                active,
                "UPDATE entries SET image_path = ? WHERE id = ?",
                (image_path, entry_id),
                action="entries.update_image",
                table="entries",
            )

    def remove_entry(self, entry_id: int, *, connection: Optional[sqlite3.Connection] = None) -> int:
        with self._session(connection) as active:
            cursor = self._execute(
                active,
                "DELETE FROM entries WHERE id = ?",
                (entry_id,),
                action="entries.delete",
                table="entries",
            )
            return max(cursor.rowcount, 0)

    # ------------------------------------------------------------------
    # Vocabularies
    # ------------------------------------------------------------------
    _VOCABULARY_SELECT = """
        SELECT vocabularies.id AS id,
               vocabularies.vocab AS vocab,
               vocabularies.audio_path AS audio_path,
               vocabularies.language_id AS language_id,
               languages.code AS language_code
        FROM vocabularies
        LEFT JOIN languages ON languages.id = vocabularies.language_id
    """

    def _translation_ids(self, connection: sqlite3.Connection, vocabulary_id: int) -> List[int]:
        rows = self._execute(
            connection,
            "SELECT translation_id FROM vocabulary_translations WHERE vocabulary_id = ? ORDER BY translation_id",
            (vocabulary_id,),
            action="vocabulary_translations.list",
            table="vocabulary_translations",
        ).fetchall()
        return [int(row[0]) for row in rows]

    def add_vocabulary(
        self,
        vocab: str,
        audio_path: Optional[str],
        language_id: int,
        *,
        connection: Optional[sqlite3.Connection] = None,
    ) -> int:
        with self._session(connection) as active:
            cursor = self._execute(
                active,
                "INSERT INTO vocabularies(vocab, audio_path, language_id) VALUES (?, ?, ?)",
                (vocab, audio_path, language_id),
                action="vocabularies.insert",
                table="vocabularies",
            )
            return int(cursor.lastrowid)

    def get_vocabulary(
        self, vocabulary_id: int, *, connection: Optional[sqlite3.Connection] = None
    ) -> Optional[VocabularyRecord]:
        records = self.get_vocabularies([vocabulary_id], connection=connection)
        return records[0] if records else None

    def get_vocabularies(
        self, vocabulary_ids: Sequence[int], *, connection: Optional[sqlite3.Connection] = None
    ) -> List[VocabularyRecord]:
        """Return the vocabularies for *vocabulary_ids* in the requested order."""

        identifiers = list(dict.fromkeys(vocabulary_ids))
        if not identifiers:
            return []
        with self._reader(connection) as active:
            rows = self._execute(
                active,
                f"{self._VOCABULARY_SELECT} WHERE vocabularies.id IN ({_placeholders(len(identifiers))})",
                identifiers,
                action="vocabularies.get_many",
                table="vocabularies",
            ).fetchall()
            by_id: Dict[int, VocabularyRecord] = {}
            for row in rows:
                record = VocabularyRecord(**row)
                record.translation_ids = self._translation_ids(active, record.id)
                by_id[record.id] = record
        return [by_id[identifier] for identifier in identifiers if identifier in by_id]

    def update_vocabulary(
        self,
        vocabulary_id: int,
        *,
        vocab: str | object = _MISSING,
        audio_path: Optional[str] | object = _MISSING,
        connection: Optional[sqlite3.Connection] = None,
    ) -> None:
        """Update the provided vocabulary fields; omitted ones stay untouched."""

        assignments: List[str] = []
        params: List[Any] = []
        if vocab is not _MISSING:
            assignments.append("vocab = ?")
            params.append(vocab)
        if audio_path is not _MISSING:
            assignments.append("audio_path = ?")
            params.append(audio_path)
        if not assignments:
            return
        params.append(vocabulary_id)
        with self._session(connection) as active:
            self._execute(
                active,
                "UPDATE vocabularies SET " + ", ".join(assignments) + " WHERE id = ?",
                params,
                action="vocabularies.update",
                table="vocabularies",
            )

    def remove_vocabularies(
        self, vocabulary_ids: Sequence[int], *, connection: Optional[sqlite3.Connection] = None
    ) -> int:
        identifiers = list(dict.fromkeys(vocabulary_ids))
        if not identifiers:
            return 0
        with self._session(connection) as active:
            cursor = self._execute(
                active,
                f"DELETE FROM vocabularies WHERE id IN ({_placeholders(len(identifiers))})",
                identifiers,
                action="vocabularies.delete",
                table="vocabularies",
            )
            return max(cursor.rowcount, 0)

    def link_translations(
        self, vocabulary_ids: Sequence[int], *, connection: Optional[sqlite3.Connection] = None
    ) -> None:
        """Add mutual translation links between every pair of *vocabulary_ids*.

        Links are a set: pairs that already exist are left as they are.
        """

        identifiers = list(dict.fromkeys(vocabulary_ids))
        if len(identifiers) < 2:
            return
        with self._session(connection) as active:
            for source in identifiers:
                for target in identifiers:
                    if source == target:
                        continue
                    self._execute(
                        active,
                        "INSERT OR IGNORE INTO vocabulary_translations(vocabulary_id, translation_id) VALUES (?, ?)",
                        (source, target),
                        action="vocabulary_translations.insert",
                        table="vocabulary_translations",
                    )

    def replace_translations(
        self, vocabulary_ids: Sequence[int], *, connection: Optional[sqlite3.Connection] = None
    ) -> None:
        """Make *vocabulary_ids* translate exactly each other and nothing else."""

        identifiers = list(dict.fromkeys(vocabulary_ids))
        if not identifiers:
            return
        marks = _placeholders(len(identifiers))
        with self._session(connection) as active:
            self._execute(
                active,
                f"DELETE FROM vocabulary_translations WHERE vocabulary_id IN ({marks}) OR translation_id IN ({marks})",
                identifiers + identifiers,
                action="vocabulary_translations.clear",
                table="vocabulary_translations",
            )
            self.link_translations(identifiers, connection=active)

    # ------------------------------------------------------------------
    # Culture topics and entries
    # ------------------------------------------------------------------
    @staticmethod
    def _culture_topic(row: sqlite3.Row) -> CultureTopicRecord:
        return CultureTopicRecord(
            id=row["id"],
            name=_load_localized(row["name"]),
            image_path=row["image_path"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _culture_entry(row: sqlite3.Row) -> CultureEntryRecord:
        return CultureEntryRecord(
            id=row["id"],
            culture_topic_id=row["culture_topic_id"],
            title=_load_localized(row["title"]),
            description=_load_localized(row["description"]),
            image_path=row["image_path"],
            video_path=row["video_path"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def add_culture_topic(self, name: Sequence[Dict[str, str]], image_path: str) -> int:
        stamp = format_timestamp(datetime.now())
        with self.transaction() as connection:
            cursor = self._execute(
                connection,
                "INSERT INTO culture_topics(name, image_path, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (_dump_localized(name), image_path, stamp, stamp),
                action="culture_topics.insert",
                table="culture_topics",
            )
            return int(cursor.lastrowid)

    def get_culture_topic(
        self, topic_id: int, *, connection: Optional[sqlite3.Connection] = None
    ) -> Optional[CultureTopicRecord]:
        row = self._fetch_one(
            "SELECT id, name, image_path, created_at, updated_at FROM culture_topics WHERE id = ?",
            (topic_id,),
            action="culture_topics.get",
            table="culture_topics",
            connection=connection,
        )
        return self._culture_topic(row) if row else None

    def list_culture_topics(self) -> List[CultureTopicRecord]:
        rows = self._fetch_all(
            "SELECT id, name, image_path, created_at, updated_at FROM culture_topics ORDER BY id",
            action="culture_topics.list",
            table="culture_topics",
        )
        return [self._culture_topic(row) for row in rows]

    def update_culture_topic(
        self,
        topic_id: int,
        *,
        name: Sequence[Dict[str, str]] | object = _MISSING,
        image_path: str | object = _MISSING,
        connection: Optional[sqlite3.Connection] = None,
    ) -> None:
        assignments = ["updated_at = ?"]
        params: List[Any] = [format_timestamp(datetime.now())]
        if name is not _MISSING:
            assignments.append("name = ?")
            params.append(_dump_localized(name))  # type: ignore[arg-type]
        if image_path is not _MISSING:
            assignments.append("image_path = ?")
            params.append(image_path)
        params.append(topic_id)
        with self._session(connection) as active:
            self._execute(
                active,
                "UPDATE culture_topics SET " + ", ".join(assignments) + " WHERE id = ?",
                params,
                action="culture_topics.update",
                table="culture_topics",
            )

    def remove_culture_topic(
        self, topic_id: int, *, connection: Optional[sqlite3.Connection] = None
    ) -> int:
        with self._session(connection) as active:
            cursor = self._execute(
                active,
                "DELETE FROM culture_topics WHERE id = ?",
                (topic_id,),
                action="culture_topics.delete",
                table="culture_topics",
            )
            return max(cursor.rowcount, 0)

    def add_culture_entry(
        self,
        topic_id: int,
        *,
        title: Sequence[Dict[str, str]],
        description: Sequence[Dict[str, str]],
        image_path: str,
        video_path: str,
    ) -> int:
        stamp = format_timestamp(datetime.now())
        with self.transaction() as connection:
            cursor = self._execute(
                connection,
                """
                INSERT INTO culture_entries(
                    culture_topic_id, title, description, image_path, video_path, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    topic_id,
                    _dump_localized(title),
                    _dump_localized(description),
                    image_path,
                    video_path,
                    stamp,
                    stamp,
                ),
                action="culture_entries.insert",
                table="culture_entries",
            )
            return int(cursor.lastrowid)

    _CULTURE_ENTRY_COLUMNS = (
        "id, culture_topic_id, title, description, image_path, video_path, created_at, updated_at"
    )

    def get_culture_entry(
        self, entry_id: int, *, connection: Optional[sqlite3.Connection] = None
    ) -> Optional[CultureEntryRecord]:
        row = self._fetch_one(
            f"SELECT {self._CULTURE_ENTRY_COLUMNS} FROM culture_entries WHERE id = ?",
            (entry_id,),
            action="culture_entries.get",
            table="culture_entries",
            connection=connection,
        )
        return self._culture_entry(row) if row else None

    def list_culture_entries(
        self, topic_id: int, *, connection: Optional[sqlite3.Connection] = None
    ) -> List[CultureEntryRecord]:
        rows = self._fetch_all(
            f"SELECT {self._CULTURE_ENTRY_COLUMNS} FROM culture_entries WHERE culture_topic_id = ? ORDER BY id",
            (topic_id,),
            action="culture_entries.list",
            table="culture_entries",
            connection=connection,
        )
        return [self._culture_entry(row) for row in rows]

    def update_culture_entry(
        self,
        entry_id: int,
        *,
        title: Sequence[Dict[str, str]] | object = _MISSING,
        description: Sequence[Dict[str, str]] | object = _MISSING,
        image_path: str | object = _MISSING,
        video_path: str | object = _MISSING,
        connection: Optional[sqlite3.Connection] = None,
    ) -> None:
        assignments = ["updated_at = ?"]
        params: List[Any] = [format_timestamp(datetime.now())]
        if title is not _MISSING:
            assignments.append("title = ?")
            params.append(_dump_localized(title))  # type: ignore[arg-type]
        if description is not _MISSING:
            assignments.append("description = ?")
            params.append(_dump_localized(description))  # type: ignore[arg-type]
        if image_path is not _MISSING:
            assignments.append("image_path = ?")
            params.append(image_path)
        if video_path is not _MISSING:
            assignments.append("video_path = ?")
            params.append(video_path)
        params.append(entry_id)
        with self._session(connection) as active:
            self._execute(
                active,
                "UPDATE culture_entries SET " + ", ".join(assignments) + " WHERE id = ?",
                params,
                action="culture_entries.update",
                table="culture_entries",
            )

    def remove_culture_entry(
        self, entry_id: int, *, connection: Optional[sqlite3.Connection] = None
    ) -> int:
        with self._session(connection) as active:
            cursor = self._execute(
                active,
                "DELETE FROM culture_entries WHERE id = ?",
                (entry_id,),
                action="culture_entries.delete",
                table="culture_entries",
            )
            return max(cursor.rowcount, 0)

    def remove_culture_entries_for_topic(
        self, topic_id: int, *, connection: Optional[sqlite3.Connection] = None
    ) -> int:
        with self._session(connection) as active:
            cursor = self._execute(
                active,
                "DELETE FROM culture_entries WHERE culture_topic_id = ?",
                (topic_id,),
                action="culture_entries.delete_for_topic",
                table="culture_entries",
            )
            return max(cursor.rowcount, 0)

    # ------------------------------------------------------------------
    # Learners and visitor logs
    # ------------------------------------------------------------------
    def add_learner(self, name: str, city: str = "") -> int:
        with self.transaction() as connection:
            cursor = self._execute(
                connection,
                "INSERT INTO learners(name, city, created_at) VALUES (?, ?, ?)",
                (name, city, format_timestamp(datetime.now())),
                action="learners.insert",
                table="learners",
            )
            return int(cursor.lastrowid)

    def get_learner(self, learner_id: int) -> Optional[LearnerRecord]:
        row = self._fetch_one(
            "SELECT id, name, city, created_at FROM learners WHERE id = ?",
            (learner_id,),
            action="learners.get",
            table="learners",
        )
        return LearnerRecord(**row) if row else None

    def list_learners(self) -> List[LearnerRecord]:
        rows = self._fetch_all(
            "SELECT id, name, city, created_at FROM learners ORDER BY id",
            action="learners.list",
            table="learners",
        )
        return [LearnerRecord(**row) for row in rows]

    def add_visitor_log(self, learner_id: int, topic_id: Optional[int], timestamp: datetime) -> int:
        with self.transaction() as connection:
            cursor = self._execute(
                connection,
                "INSERT INTO visitor_logs(learner_id, topic_id, timestamp) VALUES (?, ?, ?)",
                (learner_id, topic_id, format_timestamp(timestamp)),
                action="visitor_logs.insert",
                table="visitor_logs",
            )
            return int(cursor.lastrowid)

    def remove_learner(self, learner_id: int) -> int:
        """Delete a learner; their visitor logs go with them."""

        with self.transaction() as connection:
            cursor = self._execute(
                connection,
                "DELETE FROM learners WHERE id = ?",
                (learner_id,),
                action="learners.delete",
                table="learners",
            )
            return max(cursor.rowcount, 0)

    def get_visitor_log(self, log_id: int) -> Optional[VisitorLogRecord]:
        row = self._fetch_one(
            "SELECT id, learner_id, topic_id, timestamp FROM visitor_logs WHERE id = ?",
            (log_id,),
            action="visitor_logs.get",
            table="visitor_logs",
        )
        return VisitorLogRecord(**row) if row else None

    # ------------------------------------------------------------------
    # Admins
    # ------------------------------------------------------------------
    _ADMIN_COLUMNS = "id, name, email, password_hash, role, created_at"

    def add_admin(self, name: str, email: str, password_hash: str, role: str) -> int:
        with self.transaction() as connection:
            cursor = self._execute(
                connection,
                "INSERT INTO admins(name, email, password_hash, role, created_at) VALUES (?, ?, ?, ?, ?)",
                (name, email.strip().lower(), password_hash, role, format_timestamp(datetime.now())),
                action="admins.insert",
                table="admins",
            )
            return int(cursor.lastrowid)

    def get_admin(self, admin_id: int) -> Optional[AdminRecord]:
        row = self._fetch_one(
            f"SELECT {self._ADMIN_COLUMNS} FROM admins WHERE id = ?",
            (admin_id,),
            action="admins.get",
            table="admins",
        )
        return AdminRecord(**row) if row else None

    def find_admin_by_email(self, email: str) -> Optional[AdminRecord]:
        row = self._fetch_one(
            f"SELECT {self._ADMIN_COLUMNS} FROM admins WHERE email = ?",
            (email.strip().lower(),),
            action="admins.lookup_by_email",
            table="admins",
        )
        return AdminRecord(**row) if row else None

    def list_admins(self) -> List[AdminRecord]:
        rows = self._fetch_all(
            f"SELECT {self._ADMIN_COLUMNS} FROM admins ORDER BY id",
            action="admins.list",
            table="admins",
        )
        return [AdminRecord(**row) for row in rows]

    def count_admins(self, role: Optional[str] = None) -> int:
        if role is None:
            return self._count("SELECT COUNT(*) FROM admins", action="admins.count")
        return self._count(
            "SELECT COUNT(*) FROM admins WHERE role = ?", (role,), action="admins.count_role"
        )

    def update_admin(
        self,
        admin_id: int,
        *,
        name: str | object = _MISSING,
        email: str | object = _MISSING,
        password_hash: str | object = _MISSING,
        role: str | object = _MISSING,
    ) -> None:
        assignments: List[str] = []
        params: List[Any] = []
        for column, value in (
            ("name", name),
            ("email", email),
            ("password_hash", password_hash),
            ("role", role),
        ):
            if value is _MISSING:
                continue
            if column == "email":
                value = str(value).strip().lower()
            assignments.append(f"{column} = ?")
            params.append(value)
        if not assignments:
            return
        params.append(admin_id)
        with self.transaction() as connection:
            self._execute(
                connection,
                "UPDATE admins SET " + ", ".join(assignments) + " WHERE id = ?",
                params,
                action="admins.update",
                table="admins",
            )

    def remove_admin(self, admin_id: int) -> int:
        with self.transaction() as connection:
            cursor = self._execute(
                connection,
                "DELETE FROM admins WHERE id = ?",
                (admin_id,),
                action="admins.delete",
                table="admins",
            )
            return max(cursor.rowcount, 0)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    def get_setting(self, key: str, default: Any = None) -> Any:
        row = self._fetch_one(
            "SELECT value FROM settings WHERE key = ?",
            (key,),
            action="settings.get",
            table="settings",
        )
        return json.loads(row["value"]) if row else default

    def set_setting(self, key: str, value: Any) -> None:
        with self.transaction() as connection:
            self._execute(
                connection,
                "INSERT INTO settings(key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, json.dumps(value)),
                action="settings.upsert",
                table="settings",
            )

    # ------------------------------------------------------------------
    # Media references
    # ------------------------------------------------------------------
    def referenced_media(
        self, paths: Sequence[Optional[str]], *, connection: Optional[sqlite3.Connection] = None
    ) -> set[str]:
        """Return the subset of *paths* that some record still points at."""

        wanted = sorted({path for path in paths if path})
        if not wanted:
            return set()
        marks = _placeholders(len(wanted))
        statement = " UNION ".join(
            f"SELECT {column} FROM {table} WHERE {column} IN ({marks})"
            for table, column in _MEDIA_COLUMNS
        )
        rows = self._fetch_all(
            statement,
            wanted * len(_MEDIA_COLUMNS),
            action="media.referenced",
            connection=connection,
        )
        return {row[0] for row in rows}

    # ------------------------------------------------------------------
    # Visitor statistics
    # ------------------------------------------------------------------
    def count_visits(self, start: datetime, end: datetime) -> int:
        return self._count(
            "SELECT COUNT(*) FROM visitor_logs WHERE timestamp BETWEEN ? AND ?",
            (format_timestamp(start), format_timestamp(end)),
            action="visitor_logs.count",
        )

    def count_unique_visitors(self, start: datetime, end: datetime) -> int:
        return self._count(
            "SELECT COUNT(DISTINCT learner_id) FROM visitor_logs WHERE timestamp BETWEEN ? AND ?",
            (format_timestamp(start), format_timestamp(end)),
            action="visitor_logs.count_unique",
        )

    def visits_by_bucket(self, period: str, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        """Return ``{key, count}`` visit totals per period bucket, oldest first."""

        rows = self._fetch_all(
            """
            SELECT bucket_key(?, timestamp) AS bucket, COUNT(*) AS visits
            FROM visitor_logs
            WHERE timestamp BETWEEN ? AND ?
            GROUP BY bucket
            ORDER BY bucket
            """,
            (period, format_timestamp(start), format_timestamp(end)),
            action="visitor_logs.visits_by_bucket",
            table="visitor_logs",
        )
        return [{"key": row["bucket"], "count": int(row["visits"])} for row in rows]

    def unique_visitors_by_bucket(
        self, period: str, start: datetime, end: datetime
    ) -> List[Dict[str, Any]]:
        """Return ``{key, count}`` distinct learners per period bucket, oldest first."""

        rows = self._fetch_all(
            """
            SELECT bucket, COUNT(*) AS visitors
            FROM (
                SELECT DISTINCT bucket_key(?, timestamp) AS bucket, learner_id
                FROM visitor_logs
                WHERE timestamp BETWEEN ? AND ?
            )
            GROUP BY bucket
            ORDER BY bucket
            """,
            (period, format_timestamp(start), format_timestamp(end)),
            action="visitor_logs.unique_by_bucket",
            table="visitor_logs",
        )
        return [{"key": row["bucket"], "count": int(row["visitors"])} for row in rows]

    def topic_visit_distribution(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        """Return visit counts per existing topic, most visited first."""

        rows = self._fetch_all(
            """
            SELECT topics.id AS topic_id, topics.name AS name, COUNT(*) AS visits
            FROM visitor_logs
            JOIN topics ON topics.id = visitor_logs.topic_id
            WHERE visitor_logs.timestamp BETWEEN ? AND ?
            GROUP BY topics.id
            ORDER BY visits DESC, topics.id
            """,
            (format_timestamp(start), format_timestamp(end)),
            action="visitor_logs.topic_distribution",
            table="visitor_logs",
        )
        return [
            {"topicId": int(row["topic_id"]), "name": row["name"], "count": int(row["visits"])}
            for row in rows
        ]

    def city_distribution(
        self, start: datetime, end: datetime, *, limit: int = 5
    ) -> List[Dict[str, Any]]:
        """Return the cities with the most distinct visiting learners."""

        rows = self._fetch_all(
            """
            SELECT learners.city AS city, COUNT(DISTINCT learners.id) AS visitors
            FROM visitor_logs
            JOIN learners ON learners.id = visitor_logs.learner_id
            WHERE visitor_logs.timestamp BETWEEN ? AND ?
            GROUP BY learners.city
            ORDER BY visitors DESC, learners.city
            LIMIT ?
            """,
            (format_timestamp(start), format_timestamp(end), int(limit)),
            action="visitor_logs.city_distribution",
            table="visitor_logs",
        )
        return [{"label": row["city"], "count": int(row["visitors"])} for row in rows]


__all__ = [
    "AdminRecord",
    "ContentRepository",
    "CultureEntryRecord",
    "CultureTopicRecord",
    "EntryRecord",
    "LanguageRecord",
    "LearnerRecord",
    "TopicRecord",
    "VisitorLogRecord",
    "VocabularyRecord",
    "format_timestamp",
]
