"""Time bucketing for dashboard statistics.

Every statistic is reported for one of four periods. A period defines the
date range that is queried, the bucket key each visit falls into, and the
complete list of buckets the dashboard shows (so days, weeks, months or
years without visits still appear with a zero count).

Bucket keys:

* ``daily``   -> ``YYYY-MM-DD``
* ``weekly``  -> ``GGGG-VV`` (ISO-8601 week-year and week number)
* ``monthly`` -> ``YYYY-MM``
* ``yearly``  -> ``YYYY``
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Tuple, Union

Period = Literal["daily", "weekly", "monthly", "yearly"]

PERIODS: Tuple[str, ...] = ("daily", "weekly", "monthly", "yearly")
DEFAULT_PERIOD: Period = "monthly"

MONTH_NAMES: Tuple[str, ...] = (
    "Januari",
    "Februari",
    "Maret",
    "April",
    "Mei",
    "Juni",
    "Juli",
    "Agustus",
    "September",
    "Oktober",
    "November",
    "Desember",
)
SHORT_MONTH_NAMES: Tuple[str, ...] = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "Mei",
    "Jun",
    "Jul",
    "Agu",
    "Sep",
    "Okt",
    "Nov",
    "Des",
)

_DAILY_SPAN = 7
_MONTHLY_SPAN = 6
_YEARLY_SPAN = 5


def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def _shift_month(year: int, month: int, offset: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def validate_period(period: str) -> Period:
    if period not in PERIODS:
        raise ValueError(f"Unknown period '{period}'. Expected one of: {', '.join(PERIODS)}.")
    return period  # type: ignore[return-value]


def date_range(period: str, today: Union[date, datetime]) -> Tuple[datetime, datetime]:
    """Return the inclusive ``(start, end)`` datetimes covered by *period*."""

    period = validate_period(period)
    current = _as_date(today)
    if period == "daily":
        start = current - timedelta(days=_DAILY_SPAN - 1)
    elif period == "weekly":
        start = current.replace(day=1)
    elif period == "monthly":
        year, month = _shift_month(current.year, current.month, -(_MONTHLY_SPAN - 1))
        start = date(year, month, 1)
    else:
        start = date(current.year - (_YEARLY_SPAN - 1), 1, 1)
    return datetime.combine(start, time.min), datetime.combine(current, time.max)


def iso_week_key(value: Union[date, datetime]) -> str:
    iso_year, iso_week, _ = _as_date(value).isocalendar()
    return f"{iso_year:04d}-{iso_week:02d}"


def bucket_key(period: str, moment: Union[date, datetime, str]) -> str:
    """Return the bucket key *moment* falls into for *period*."""

    if isinstance(moment, str):
        moment = datetime.fromisoformat(moment)
    day = _as_date(moment)
    period = validate_period(period)
    if period == "daily":
        return day.isoformat()
    if period == "weekly":
        return iso_week_key(day)
    if period == "monthly":
        return f"{day.year:04d}-{day.month:02d}"
    return f"{day.year:04d}"


def sqlite_bucket_key(period: Optional[str], timestamp: Optional[str]) -> Optional[str]:
    """Adapter registered on SQLite connections as ``bucket_key(period, ts)``."""

    if not period or not timestamp:
        return None
    try:
        return bucket_key(period, timestamp)
    except ValueError:
        return None


def generate_complete_range(period: str, today: Union[date, datetime]) -> List[Dict[str, Any]]:
    """Return every bucket of *period* in chronological order with a zero count."""

    period = validate_period(period)
    current = _as_date(today)
    ranges: List[Dict[str, Any]] = []

    if period == "daily":
        for offset in range(_DAILY_SPAN - 1, -1, -1):
            day = current - timedelta(days=offset)
            label = f"{day.day} {SHORT_MONTH_NAMES[day.month - 1]}"
            ranges.append({"key": day.isoformat(), "label": label, "count": 0})

    elif period == "weekly":
        # ISO weeks touched so far this month, renumbered from 1 within the month.
        month_name = MONTH_NAMES[current.month - 1]
        seen: List[str] = []
        day = current.replace(day=1)
        while day <= current:
            key = iso_week_key(day)
            if key not in seen:
                seen.append(key)
            day += timedelta(days=1)
        for index, key in enumerate(seen, start=1):
            ranges.append({"key": key, "label": f"{month_name}-Minggu {index}", "count": 0})

    elif period == "monthly":
        for offset in range(_MONTHLY_SPAN - 1, -1, -1):
            year, month = _shift_month(current.year, current.month, -offset)
            ranges.append(
                {
                    "key": f"{year:04d}-{month:02d}",
                    "label": f"{MONTH_NAMES[month - 1]} {year}",
                    "count": 0,
                }
            )

    else:
        for offset in range(_YEARLY_SPAN - 1, -1, -1):
            year = current.year - offset
            ranges.append({"key": f"{year:04d}", "label": str(year), "count": 0})

    return ranges


def merge_with_complete_range(
    raw: Iterable[Mapping[str, Any]],
    period: str,
    today: Union[date, datetime],
) -> List[Dict[str, Any]]:
    """Project sparse ``{key, count}`` rows onto the complete bucket list.

    The result has exactly one ``{label, count}`` item per bucket of the
    period, in chronological order; buckets missing from *raw* count 0 and
    rows whose key is outside the period are ignored.
    """

    counts: Dict[str, int] = {}
    for row in raw:
        key = row.get("key")
        if key is None:
            continue
        counts[str(key)] = int(row.get("count") or 0)
    return [
        {"label": bucket["label"], "count": counts.get(bucket["key"], 0)}
        for bucket in generate_complete_range(period, today)
    ]


__all__ = [
    "DEFAULT_PERIOD",
    "MONTH_NAMES",
    "PERIODS",
    "Period",
    "SHORT_MONTH_NAMES",
    "bucket_key",
    "date_range",
    "generate_complete_range",
    "iso_week_key",
    "merge_with_complete_range",
    "sqlite_bucket_key",
    "validate_period",
]
