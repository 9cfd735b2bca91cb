"""Utility helpers for consistent upload naming."""

from __future__ import annotations

import random
import re
import time
from pathlib import PurePath
from typing import Optional

__all__ = [
    "build_upload_name",
    "normalize_extension",
    "safe_stem",
]

_RANDOM_CEILING = 1_000_000_000


def safe_stem(value: str) -> str:
    """Return *value* reduced to letters, digits and single dashes."""

    value = re.sub(r"[^A-Za-z0-9]+", "-", value.strip())
    return value.strip("-") or "file"


def normalize_extension(filename: Optional[str]) -> str:
    """Return the lower-cased extension of *filename* including the dot."""

    suffix = PurePath(filename or "").suffix.lower()
    if not re.fullmatch(r"\.[a-z0-9]{1,10}", suffix):
        return ""
    return suffix


def build_upload_name(
    field_name: str,
    original_name: Optional[str] = None,
    *,
    timestamp_ms: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> str:
    """Return ``<field>-<epoch ms>-<random>`` plus the original extension."""

    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    suffix = (rng or random).randrange(_RANDOM_CEILING)
    return f"{safe_stem(field_name)}-{stamp}-{suffix}{normalize_extension(original_name)}"
