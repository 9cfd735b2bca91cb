"""Validation and persistence of multipart uploads."""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

from starlette.datastructures import UploadFile

from .events import emit_file_event
from .files import cleanup_files, cleanup_uploads
from .naming import build_upload_name

LOGGER = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024
VIDEO_MAX_BYTES = 50 * 1024 * 1024

IMAGE_TYPES: FrozenSet[str] = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
AUDIO_TYPES: FrozenSet[str] = frozenset(
    {
        "audio/mpeg",
        "audio/mp3",
        "audio/wav",
        "audio/x-wav",
        "audio/wave",
        "audio/ogg",
        "audio/webm",
        "audio/mp4",
        "audio/aac",
        "audio/x-m4a",
    }
)
VIDEO_TYPES: FrozenSet[str] = frozenset({"video/mp4", "video/webm", "video/ogg"})


class UploadRejected(ValueError):
    """Raised when an upload violates the policy of its route."""


@dataclass(frozen=True)
class FieldRule:
    name: str
    allowed_types: FrozenSet[str]
    subdirectory: str
    max_count: Optional[int] = 1
    kind: str = "file"


@dataclass(frozen=True)
class UploadPolicy:
    """The set of file fields a route accepts, plus an optional size cap."""

    rules: Tuple[FieldRule, ...]
    max_bytes: Optional[int] = None

    def rule_for(self, name: str) -> Optional[FieldRule]:
        for rule in self.rules:
            if rule.name == name:
                return rule
        return None

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(rule.name for rule in self.rules)


ENTRY_UPLOADS = UploadPolicy(
    rules=(
        FieldRule("entryImage", IMAGE_TYPES, "images/entries", kind="image"),
        FieldRule("audioFiles", AUDIO_TYPES, "audio/entries", max_count=None, kind="audio"),
    )
)
CULTURE_TOPIC_UPLOADS = UploadPolicy(
    rules=(FieldRule("image", IMAGE_TYPES, "images/culture", kind="image"),)
)
CULTURE_ENTRY_UPLOADS = UploadPolicy(
    rules=(
        FieldRule("entryImage", IMAGE_TYPES, "images/culture", kind="image"),
        FieldRule("entryVideo", VIDEO_TYPES, "videos/culture", kind="video"),
    ),
    max_bytes=VIDEO_MAX_BYTES,
)


@dataclass(frozen=True)
class StoredUpload:
    field: str
    original_name: str
    content_type: str
    size: int
    path: Path
    relative_path: str


@dataclass
class UploadBatch:
    """Files written for one request, grouped by field name."""

    root: Path
    files: Dict[str, List[StoredUpload]] = field(default_factory=dict)

    def add(self, upload: StoredUpload) -> None:
        self.files.setdefault(upload.field, []).append(upload)

    def get(self, name: str) -> List[StoredUpload]:
        return list(self.files.get(name, ()))

    def first(self, name: str) -> Optional[StoredUpload]:
        stored = self.files.get(name)
        return stored[0] if stored else None

    def paths(self) -> List[Path]:
        return [upload.path for uploads in self.files.values() for upload in uploads]

    def __len__(self) -> int:
        return sum(len(uploads) for uploads in self.files.values())

    def cleanup(self) -> int:
        """Remove every file of this batch from disk."""

        if not self.files:
            return 0
        LOGGER.info("Cleaning up %d uploaded file(s)", len(self))
        return cleanup_uploads(self)


def _describe_types(rule: FieldRule) -> str:
    return ", ".join(sorted(rule.allowed_types))


def validate_uploads(policy: UploadPolicy, files: Mapping[str, Sequence[UploadFile]]) -> None:
    """Check field names, counts and MIME types before anything is written."""

    for name, uploads in files.items():
        rule = policy.rule_for(name)
        if rule is None:
            raise UploadRejected(
                f"Unexpected file field '{name}'. Accepted fields: {', '.join(policy.field_names)}."
            )
        if rule.max_count is not None and len(uploads) > rule.max_count:
            raise UploadRejected(
                f"Field '{name}' accepts at most {rule.max_count} file(s), got {len(uploads)}."
            )
        for upload in uploads:
            content_type = (upload.content_type or "").split(";")[0].strip().lower()
            if content_type not in rule.allowed_types:
                raise UploadRejected(
                    f"File type '{content_type or 'unknown'}' is not allowed for '{name}'. "
                    f"Only {rule.kind} files ({_describe_types(rule)}) are accepted."
                )


def _copy_with_limit(upload: UploadFile, target: Path, max_bytes: Optional[int]) -> int:
    source = upload.file
    with contextlib.suppress(OSError, ValueError, AttributeError):
        source.seek(0)
    written = 0
    with target.open("wb") as buffer:
        while True:
            chunk = source.read(_CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if max_bytes is not None and max_bytes > 0 and written > max_bytes:
                raise UploadRejected(
                    f"File '{upload.filename}' exceeds the maximum size of {max_bytes} bytes."
                )
            buffer.write(chunk)
    return written


async def store_uploads(
    policy: UploadPolicy,
    files: Mapping[str, Sequence[UploadFile]],
    *,
    root: Path,
    default_max_bytes: Optional[int] = None,
) -> UploadBatch:
    """Validate and persist *files* below *root* according to *policy*.

    Nothing is written unless every file passes validation. When writing fails
    midway, the files already stored for this batch are removed before the
    error propagates.
    """

    max_bytes = policy.max_bytes if policy.max_bytes is not None else default_max_bytes
    batch = UploadBatch(root=root)
    loop = asyncio.get_running_loop()

    try:
        validate_uploads(policy, files)
        for rule in policy.rules:
            for upload in files.get(rule.name, ()):
                destination = root / rule.subdirectory
                destination.mkdir(parents=True, exist_ok=True)
                target = destination / build_upload_name(rule.name, upload.filename)
                while target.exists():
                    target = destination / build_upload_name(rule.name, upload.filename)

                start = time.perf_counter()
                copy = functools.partial(_copy_with_limit, upload, target, max_bytes)
                try:
                    size = await loop.run_in_executor(None, copy)
                except Exception:
                    cleanup_files([target], root=root)
                    raise
                stored = StoredUpload(
                    field=rule.name,
                    original_name=upload.filename or "",
                    content_type=(upload.content_type or "").lower(),
                    size=size,
                    path=target,
                    relative_path=target.relative_to(root).as_posix(),
                )
                batch.add(stored)
                emit_file_event(
                    "store_upload",
                    stored.relative_path,
                    payload={"field": rule.name, "size": size},
                    duration_ms=(time.perf_counter() - start) * 1000.0,
                    level=logging.DEBUG,
                )
    except OSError as error:
        batch.cleanup()
        raise UploadRejected(f"Could not store upload: {error}") from error
    except Exception:
        batch.cleanup()
        raise
    finally:
        for uploads in files.values():
            for upload in uploads:
                with contextlib.suppress(Exception):
                    await upload.close()

    return batch


def collect_form_files(form: Iterable[Tuple[str, object]]) -> Dict[str, List[UploadFile]]:
    """Group the file parts of a parsed multipart form by field name."""

    grouped: Dict[str, List[UploadFile]] = {}
    for key, value in form:
        if isinstance(value, UploadFile):
            grouped.setdefault(key, []).append(value)
    return grouped


__all__ = [
    "AUDIO_TYPES",
    "CULTURE_ENTRY_UPLOADS",
    "CULTURE_TOPIC_UPLOADS",
    "ENTRY_UPLOADS",
    "FieldRule",
    "IMAGE_TYPES",
    "StoredUpload",
    "UploadBatch",
    "UploadPolicy",
    "UploadRejected",
    "VIDEO_MAX_BYTES",
    "VIDEO_TYPES",
    "collect_form_files",
    "store_uploads",
    "validate_uploads",
]
