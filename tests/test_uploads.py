from __future__ import annotations

import asyncio
import io
from pathlib import Path
from typing import Dict, List

import pytest

pytest.importorskip("starlette")

from starlette.datastructures import Headers, UploadFile

from kosakata.services import uploads as uploads_module
from kosakata.services.naming import build_upload_name
from kosakata.services.uploads import (
    CULTURE_ENTRY_UPLOADS,
    ENTRY_UPLOADS,
    UploadRejected,
    collect_form_files,
    store_uploads,
)


def _upload(filename: str, content_type: str, content: bytes = b"payload") -> UploadFile:
    return UploadFile(
        io.BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


def _files_on_disk(root: Path) -> List[Path]:
    return sorted(path for path in root.rglob("*") if path.is_file())


def test_store_uploads_writes_files_below_field_directories(tmp_path: Path) -> None:
    files: Dict[str, List[UploadFile]] = {
        "entryImage": [_upload("Cat.PNG", "image/png")],
        "audioFiles": [_upload("kucing.mp3", "audio/mpeg"), _upload("ucing.wav", "audio/wav")],
    }

    batch = asyncio.run(store_uploads(ENTRY_UPLOADS, files, root=tmp_path))

    assert len(batch) == 3
    image = batch.first("entryImage")
    assert image is not None
    assert image.relative_path.startswith("images/entries/entryImage-")
    assert image.relative_path.endswith(".png")
    assert image.path.read_bytes() == b"payload"
    audio = batch.get("audioFiles")
    assert [item.original_name for item in audio] == ["kucing.mp3", "ucing.wav"]
    assert all(item.relative_path.startswith("audio/entries/audioFiles-") for item in audio)


def test_store_uploads_rejects_wrong_type_before_writing(tmp_path: Path) -> None:
    files = {
        "entryImage": [_upload("cat.png", "image/png")],
        "audioFiles": [_upload("notes.txt", "text/plain")],
    }

    with pytest.raises(UploadRejected) as excinfo:
        asyncio.run(store_uploads(ENTRY_UPLOADS, files, root=tmp_path))

    assert "text/plain" in str(excinfo.value)
    assert _files_on_disk(tmp_path) == []


def test_store_uploads_rejects_unknown_field_and_extra_files(tmp_path: Path) -> None:
    with pytest.raises(UploadRejected):
        asyncio.run(
            store_uploads(ENTRY_UPLOADS, {"poster": [_upload("a.png", "image/png")]}, root=tmp_path)
        )
    with pytest.raises(UploadRejected):
        asyncio.run(
            store_uploads(
                ENTRY_UPLOADS,
                {"entryImage": [_upload("a.png", "image/png"), _upload("b.png", "image/png")]},
                root=tmp_path,
            )
        )
    assert _files_on_disk(tmp_path) == []


def test_oversized_file_rolls_back_the_whole_batch(tmp_path: Path) -> None:
    files = {
        "entryImage": [_upload("a.png", "image/png", b"small")],
        "audioFiles": [_upload("big.mp3", "audio/mpeg", b"x" * 64)],
    }

    with pytest.raises(UploadRejected) as excinfo:
        asyncio.run(store_uploads(ENTRY_UPLOADS, files, root=tmp_path, default_max_bytes=32))

    assert "maximum size" in str(excinfo.value)
    assert _files_on_disk(tmp_path) == []


def test_io_failure_is_reported_as_rejection(tmp_path: Path, monkeypatch) -> None:
    calls = {"count": 0}
    original_copy = uploads_module._copy_with_limit

    def failing_copy(upload, target, max_bytes):
        calls["count"] += 1
        if calls["count"] == 2:
            raise OSError("disk full")
        return original_copy(upload, target, max_bytes)

    monkeypatch.setattr(uploads_module, "_copy_with_limit", failing_copy)
    files = {
        "entryImage": [_upload("a.png", "image/png")],
        "entryVideo": [_upload("clip.mp4", "video/mp4")],
    }

    with pytest.raises(UploadRejected) as excinfo:
        asyncio.run(store_uploads(CULTURE_ENTRY_UPLOADS, files, root=tmp_path))

    assert "disk full" in str(excinfo.value)
    assert _files_on_disk(tmp_path) == []


def test_video_policy_caps_size_independently_of_default() -> None:
    assert CULTURE_ENTRY_UPLOADS.max_bytes == 50 * 1024 * 1024
    assert ENTRY_UPLOADS.max_bytes is None


def test_collect_form_files_ignores_text_fields() -> None:
    image = _upload("a.png", "image/png")
    grouped = collect_form_files([("entryData", "{}"), ("entryImage", image)])

    assert grouped == {"entryImage": [image]}


def test_build_upload_name_uses_field_timestamp_and_extension() -> None:
    class FixedRandom:
        def randrange(self, stop: int) -> int:
            return 42

    name = build_upload_name("entryVideo", "Tari Jaipong.MP4", timestamp_ms=1700000000000, rng=FixedRandom())

    assert name == "entryVideo-1700000000000-42.mp4"
