"""Topics, vocabulary entries and their media files."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .errors import NotFoundError, ValidationFailure
from .files import cleanup_files, cleanup_uploads
from .storage import ContentRepository, EntryRecord, TopicRecord, VocabularyRecord
from .uploads import UploadBatch

LOGGER = logging.getLogger(__name__)


def _orphaned(
    repository: ContentRepository, paths: Sequence[Optional[str]], connection: sqlite3.Connection
) -> List[str]:
    """Return the *paths* no record references any more."""

    candidates = list(dict.fromkeys(path for path in paths if path))
    in_use = repository.referenced_media(candidates, connection=connection)
    return [path for path in candidates if path not in in_use]


@dataclass(frozen=True)
class VocabularyInput:
    """One vocabulary item of an entry form.

    ``id`` refers to an existing vocabulary when updating; ``new_audio_index``
    points into the ``audioFiles`` uploaded with the same request.
    """

    vocab: str
    language_code: Optional[str] = None
    new_audio_index: Optional[int] = None
    id: Optional[int] = None


class TopicService:
    """Create, rename and delete topics together with everything they own."""

    def __init__(self, repository: ContentRepository, *, uploads_root: Path) -> None:
        self._repository = repository
        self._uploads_root = uploads_root

    def list_topics(self) -> List[TopicRecord]:
        return self._repository.list_topics()

    def get_topic(self, topic_id: int) -> TopicRecord:
        topic = self._repository.get_topic(topic_id)
        if topic is None:
            raise NotFoundError("Topic not found.")
        return topic

    def create_topic(self, name: str) -> TopicRecord:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationFailure("Topic name is required.")
        topic_id = self._repository.add_topic(cleaned)
        LOGGER.info("Created topic id=%s name=%r", topic_id, cleaned)
        return self.get_topic(topic_id)

    def rename_topic(self, topic_id: int, name: str) -> TopicRecord:
        self.get_topic(topic_id)
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationFailure("Topic name is required.")
        self._repository.update_topic(topic_id, name=cleaned)
        return self.get_topic(topic_id)

    def delete_topic(self, topic_id: int) -> int:
        """Delete a topic, its entries and their vocabularies.

        Returns the number of media files removed after the commit.
        """

        files: List[Optional[str]] = []
        with self._repository.transaction() as connection:
            if self._repository.get_topic(topic_id, connection=connection) is None:
                raise NotFoundError("Topic not found.")
            entries = self._repository.list_entries(topic_id, connection=connection)
            vocabulary_ids: List[int] = []
            for entry in entries:
                files.append(entry.image_path)
                vocabulary_ids.extend(entry.vocabulary_ids)
            for vocabulary in self._repository.get_vocabularies(vocabulary_ids, connection=connection):
                files.append(vocabulary.audio_path)
            self._repository.remove_vocabularies(vocabulary_ids, connection=connection)
            self._repository.remove_topic(topic_id, connection=connection)
            doomed = _orphaned(self._repository, files, connection)

        LOGGER.info(
            "Deleted topic id=%s with %d entr(y/ies) and %d vocabular(y/ies)",
            topic_id,
            len(entries),
            len(vocabulary_ids),
        )
        return cleanup_files(doomed, root=self._uploads_root)


class EntryService:
    """Multilingual vocabulary entries.

    Every create and update runs as one database transaction. When it fails
    the files uploaded with the request are removed again; files replaced or
    orphaned by a successful change are removed only after the commit.
    """

    def __init__(self, repository: ContentRepository, *, uploads_root: Path) -> None:
        self._repository = repository
        self._uploads_root = uploads_root

    def list_entries(self, topic_id: int) -> List[EntryRecord]:
        if self._repository.get_topic(topic_id) is None:
            raise NotFoundError("Topic not found.")
        return self._repository.list_entries(topic_id)

    def get_entry(self, entry_id: int) -> EntryRecord:
        entry = self._repository.get_entry(entry_id)
        if entry is None:
            raise NotFoundError("Entry not found.")
        return entry

    def vocabularies_for(self, entry: EntryRecord) -> List[VocabularyRecord]:
        return self._repository.get_vocabularies(entry.vocabulary_ids)

    @staticmethod
    def _check_audio_indexes(vocabularies: Sequence[VocabularyInput]) -> None:
        seen = set()
        for item in vocabularies:
            if item.new_audio_index is None:
                continue
            if item.new_audio_index in seen:
                raise ValidationFailure(
                    f"Audio file {item.new_audio_index} is assigned to more than one vocabulary."
                )
            seen.add(item.new_audio_index)

    @staticmethod
    def _uploaded_audio(batch: UploadBatch) -> List[str]:
        return [upload.relative_path for upload in batch.get("audioFiles")]

    def _audio_for(self, item: VocabularyInput, batch: UploadBatch) -> str:
        audio_files = batch.get("audioFiles")
        index = item.new_audio_index
        if index is None or index < 0 or index >= len(audio_files):
            raise ValidationFailure(f"No uploaded audio file for vocabulary '{item.vocab}'.")
        return audio_files[index].relative_path

    def _create_vocabulary(
        self, connection: sqlite3.Connection, item: VocabularyInput, batch: UploadBatch
    ) -> int:
        language = self._repository.find_language_by_code(
            item.language_code or "", connection=connection
        )
        if language is None:
            raise ValidationFailure(f"Language '{item.language_code}' not found.")
        audio_path = self._audio_for(item, batch)
        return self._repository.add_vocabulary(
            item.vocab, audio_path, language.id, connection=connection
        )

    def create_entry(
        self, topic_id: int, vocabularies: Sequence[VocabularyInput], batch: UploadBatch
    ) -> EntryRecord:
        try:
            image = batch.first("entryImage")
            if image is None:
                raise ValidationFailure("An entry image is required.")
            if not vocabularies:
                raise ValidationFailure("At least one vocabulary item is required.")
            self._check_audio_indexes(vocabularies)

            with self._repository.transaction() as connection:
                if self._repository.get_topic(topic_id, connection=connection) is None:
                    raise NotFoundError("Topic not found.")
                vocabulary_ids = [
                    self._create_vocabulary(connection, item, batch) for item in vocabularies
                ]
                self._repository.link_translations(vocabulary_ids, connection=connection)
                entry_id = self._repository.add_entry(
                    topic_id, image.relative_path, vocabulary_ids, connection=connection
                )
                unused = _orphaned(self._repository, self._uploaded_audio(batch), connection)
        except Exception:
            cleanup_uploads(batch)
            raise

        cleanup_files(unused, root=self._uploads_root)
        LOGGER.info(
            "Created entry id=%s in topic id=%s with %d vocabular(y/ies)",
            entry_id,
            topic_id,
            len(vocabulary_ids),
        )
        return self.get_entry(entry_id)

    def update_entry(
        self, entry_id: int, vocabularies: Sequence[VocabularyInput], batch: UploadBatch
    ) -> EntryRecord:
        stale_files: List[Optional[str]] = []
        try:
            self._check_audio_indexes(vocabularies)
            with self._repository.transaction() as connection:
                existing = self._repository.get_entry(entry_id, connection=connection)
                if existing is None:
                    raise NotFoundError("Entry not found.")

                final_ids: List[int] = []
                for item in vocabularies:
                    if item.id is None:
                        final_ids.append(self._create_vocabulary(connection, item, batch))
                        continue
                    current = self._repository.get_vocabulary(item.id, connection=connection)
                    if current is None:
                        LOGGER.debug("Skipping unknown vocabulary id=%s", item.id)
                        continue
                    if item.new_audio_index is not None:
                        stale_files.append(current.audio_path)
                        self._repository.update_vocabulary(
                            current.id,
                            vocab=item.vocab,
                            audio_path=self._audio_for(item, batch),
                            connection=connection,
                        )
                    else:
                        self._repository.update_vocabulary(
                            current.id, vocab=item.vocab, connection=connection
                        )
                    final_ids.append(current.id)

                final_ids = list(dict.fromkeys(final_ids))
                removed_ids = [
                    vocabulary_id
                    for vocabulary_id in existing.vocabulary_ids
                    if vocabulary_id not in final_ids
                ]
                for vocabulary in self._repository.get_vocabularies(removed_ids, connection=connection):
                    stale_files.append(vocabulary.audio_path)
                self._repository.remove_vocabularies(removed_ids, connection=connection)

                self._repository.set_entry_vocabularies(entry_id, final_ids, connection=connection)
                image = batch.first("entryImage")
                if image is not None:
                    stale_files.append(existing.image_path)
                    self._repository.update_entry_image(
                        entry_id, image.relative_path, connection=connection
                    )
                self._repository.replace_translations(final_ids, connection=connection)
                doomed = _orphaned(
                    self._repository, stale_files + self._uploaded_audio(batch), connection
                )
        except Exception:
            cleanup_uploads(batch)
            raise

        cleanup_files(doomed, root=self._uploads_root)
        LOGGER.info(
            "Updated entry id=%s; %d vocabular(y/ies) kept, %d removed",
            entry_id,
            len(final_ids),
            len(removed_ids),
        )
        return self.get_entry(entry_id)

    def delete_entry(self, entry_id: int) -> int:
        """Delete an entry with its vocabularies; returns the files removed."""

        files: List[Optional[str]] = []
        with self._repository.transaction() as connection:
            entry = self._repository.get_entry(entry_id, connection=connection)
            if entry is None:
                raise NotFoundError("Entry not found.")
            files.append(entry.image_path)
            for vocabulary in self._repository.get_vocabularies(
                entry.vocabulary_ids, connection=connection
            ):
                files.append(vocabulary.audio_path)
            self._repository.remove_vocabularies(entry.vocabulary_ids, connection=connection)
            self._repository.remove_entry(entry_id, connection=connection)
            doomed = _orphaned(self._repository, files, connection)

        LOGGER.info("Deleted entry id=%s", entry_id)
        return cleanup_files(doomed, root=self._uploads_root)


__all__ = ["EntryService", "TopicService", "VocabularyInput"]
