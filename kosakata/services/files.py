"""Best-effort removal of uploaded media files."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from .events import emit_file_event

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]


def resolve_media_path(path: PathLike, root: Optional[Path] = None) -> Optional[Path]:
    """Resolve *path* against *root*; ``None`` when it escapes the root."""

    candidate = Path(path)
    if root is None:
        return candidate.resolve()
    base = root.resolve()
    if not candidate.is_absolute():
        candidate = base / str(path).lstrip("/\\")
    candidate = candidate.resolve()
    try:
        candidate.relative_to(base)
    except ValueError:
        return None
    if candidate == base:
        return None
    return candidate


def cleanup_files(paths: Iterable[Optional[PathLike]], *, root: Optional[Path] = None) -> int:
    """Delete every existing file in *paths* and return how many were removed.

    Missing files are skipped silently and failures are logged, so callers can
    use this both to roll back fresh uploads and to drop replaced media after a
    database commit.
    """

    removed = 0
    seen = set()
    for raw in paths:
        if not raw:
            continue
        target = resolve_media_path(raw, root)
        if target is None:
            LOGGER.warning("Refusing to delete '%s' outside of %s", raw, root)
            continue
        if target in seen:
            continue
        seen.add(target)

        start = time.perf_counter()
        try:
            target.unlink()
        except FileNotFoundError:
            continue
        except OSError as error:
            LOGGER.error("Failed to delete file %s: %s", target, error)
            continue
        removed += 1
        emit_file_event(
            "delete",
            target,
            duration_ms=(time.perf_counter() - start) * 1000.0,
            level=logging.DEBUG,
        )

    if removed:
        LOGGER.info("Removed %d file(s)", removed)
    return removed


def cleanup_uploads(batch: Any) -> int:
    """Remove every file written for an upload batch."""

    return cleanup_files(batch.paths(), root=batch.root)


__all__ = ["cleanup_files", "cleanup_uploads", "resolve_media_path"]
