"""Culture topics and their illustrated video entries."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .errors import NotFoundError, ValidationFailure
from .files import cleanup_files, cleanup_uploads
from .storage import ContentRepository, CultureEntryRecord, CultureTopicRecord
from .uploads import UploadBatch

LOGGER = logging.getLogger(__name__)

LocalizedText = List[Dict[str, str]]


def normalize_localized(value: Optional[Sequence[Any]]) -> LocalizedText:
    """Return ``[{languageCode, value}]`` items with blank values dropped."""

    normalized: LocalizedText = []
    for item in value or ():
        if isinstance(item, dict):
            code = str(item.get("languageCode") or "").strip()
            text = str(item.get("value") or "").strip()
        else:
            code = str(getattr(item, "languageCode", "") or "").strip()
            text = str(getattr(item, "value", "") or "").strip()
        if text:
            normalized.append({"languageCode": code, "value": text})
    return normalized


class CultureService:
    def __init__(self, repository: ContentRepository, *, uploads_root: Path) -> None:
        self._repository = repository
        self._uploads_root = uploads_root

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------
    def list_topics(self) -> List[CultureTopicRecord]:
        return self._repository.list_culture_topics()

    def get_topic(self, topic_id: int) -> CultureTopicRecord:
        topic = self._repository.get_culture_topic(topic_id)
        if topic is None:
            raise NotFoundError("Culture topic not found.")
        return topic

    def create_topic(self, name: Optional[Sequence[Any]], batch: UploadBatch) -> CultureTopicRecord:
        try:
            localized = normalize_localized(name)
            image = batch.first("image")
            if not localized or image is None:
                raise ValidationFailure("A topic name and an image are required.")
            topic_id = self._repository.add_culture_topic(localized, image.relative_path)
        except Exception:
            cleanup_uploads(batch)
            raise
        LOGGER.info("Created culture topic id=%s", topic_id)
        return self.get_topic(topic_id)

    def update_topic(
        self, topic_id: int, name: Optional[Sequence[Any]], batch: UploadBatch
    ) -> CultureTopicRecord:
        stale: List[Optional[str]] = []
        try:
            with self._repository.transaction() as connection:
                topic = self._repository.get_culture_topic(topic_id, connection=connection)
                if topic is None:
                    raise NotFoundError("Culture topic not found.")
                changes: Dict[str, Any] = {}
                localized = normalize_localized(name)
                if localized:
                    changes["name"] = localized
                image = batch.first("image")
                if image is not None:
                    stale.append(topic.image_path)
                    changes["image_path"] = image.relative_path
                self._repository.update_culture_topic(topic_id, connection=connection, **changes)
        except Exception:
            cleanup_uploads(batch)
            raise
        cleanup_files(stale, root=self._uploads_root)
        return self.get_topic(topic_id)

    def delete_topic(self, topic_id: int) -> int:
        """Delete a topic and all of its entries in one transaction.

        Media files (the topic image plus every entry image and video) are
        collected inside the transaction and removed only once it committed.
        If anything fails first, nothing is deleted from disk.
        """

        files: List[Optional[str]] = []
        with self._repository.transaction() as connection:
            topic = self._repository.get_culture_topic(topic_id, connection=connection)
            if topic is None:
                raise NotFoundError("Culture topic not found.")
            entries = self._repository.list_culture_entries(topic_id, connection=connection)
            files.append(topic.image_path)
            for entry in entries:
                files.extend((entry.image_path, entry.video_path))
            if entries:
                self._repository.remove_culture_entries_for_topic(topic_id, connection=connection)
            self._repository.remove_culture_topic(topic_id, connection=connection)

        LOGGER.info("Deleted culture topic id=%s with %d entr(y/ies)", topic_id, len(entries))
        return cleanup_files(files, root=self._uploads_root)

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------
    def list_entries(self, topic_id: int) -> List[CultureEntryRecord]:
        self.get_topic(topic_id)
        return self._repository.list_culture_entries(topic_id)

    @staticmethod
    def _owned(entry: Optional[CultureEntryRecord], topic_id: Optional[int]) -> CultureEntryRecord:
        if entry is None or (topic_id is not None and entry.culture_topic_id != topic_id):
            raise NotFoundError("Culture entry not found.")
        return entry

    def get_entry(self, entry_id: int, *, topic_id: Optional[int] = None) -> CultureEntryRecord:
        """Return the entry, which must belong to *topic_id* when one is given."""

        return self._owned(self._repository.get_culture_entry(entry_id), topic_id)

    def create_entry(
        self,
        topic_id: int,
        *,
        title: Optional[Sequence[Any]],
        description: Optional[Sequence[Any]],
        batch: UploadBatch,
    ) -> CultureEntryRecord:
        try:
            localized_title = normalize_localized(title)
            localized_description = normalize_localized(description)
            image = batch.first("entryImage")
            video = batch.first("entryVideo")
            if not (localized_title and localized_description and image and video):
                raise ValidationFailure(
                    "Incomplete data. Title, description, image and video are required."
                )
            if self._repository.get_culture_topic(topic_id) is None:
                raise NotFoundError("Culture topic not found.")
            entry_id = self._repository.add_culture_entry(
                topic_id,
                title=localized_title,
                description=localized_description,
                image_path=image.relative_path,
                video_path=video.relative_path,
            )
        except Exception:
            cleanup_uploads(batch)
            raise
        LOGGER.info("Created culture entry id=%s in topic id=%s", entry_id, topic_id)
        return self.get_entry(entry_id)

    def update_entry(
        self,
        entry_id: int,
        *,
        title: Optional[Sequence[Any]],
        description: Optional[Sequence[Any]],
        batch: UploadBatch,
        topic_id: Optional[int] = None,
    ) -> CultureEntryRecord:
        stale: List[Optional[str]] = []
        try:
            with self._repository.transaction() as connection:
                entry = self._owned(
                    self._repository.get_culture_entry(entry_id, connection=connection), topic_id
                )
                changes: Dict[str, Any] = {}
                localized_title = normalize_localized(title)
                if localized_title:
                    changes["title"] = localized_title
                localized_description = normalize_localized(description)
                if localized_description:
                    changes["description"] = localized_description
                image = batch.first("entryImage")
                if image is not None:
                    stale.append(entry.image_path)
                    changes["image_path"] = image.relative_path
                video = batch.first("entryVideo")
                if video is not None:
                    stale.append(entry.video_path)
                    changes["video_path"] = video.relative_path
                self._repository.update_culture_entry(entry_id, connection=connection, **changes)
        except Exception:
            cleanup_uploads(batch)
            raise
        cleanup_files(stale, root=self._uploads_root)
        return self.get_entry(entry_id)

    def delete_entry(self, entry_id: int, *, topic_id: Optional[int] = None) -> int:
        with self._repository.transaction() as connection:
            entry = self._owned(
                self._repository.get_culture_entry(entry_id, connection=connection), topic_id
            )
            self._repository.remove_culture_entry(entry_id, connection=connection)
        LOGGER.info("Deleted culture entry id=%s", entry_id)
        return cleanup_files([entry.image_path, entry.video_path], root=self._uploads_root)


__all__ = ["CultureService", "LocalizedText", "normalize_localized"]
