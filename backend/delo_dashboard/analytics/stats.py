"""Small aggregation primitives shared by the dashboard views."""

from __future__ import annotations

import math
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Mapping, Sequence

UNKNOWN = "unknown"


def percentile(values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile; 0 for an empty sequence."""
    if not values:
        return 0
    ordered = sorted(values)
    idx = math.ceil((p / 100) * len(ordered)) - 1
    return ordered[max(0, min(idx, len(ordered) - 1))]


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up."""
    return math.floor(value + 0.5)


def mean(values: Sequence[float]) -> float | None:
    if not values:
        return None
    return sum(values) / len(values)


def rate_percent(part: int | float, whole: int | float) -> int:
    """Whole-number percentage, 0 when ``whole`` is zero."""
    if not whole:
        return 0
    return round_half_up(part / whole * 100)


def format_ms(value: float | None) -> str:
    return "N/A" if value is None else f"{round_half_up(value)}ms"


def count_by(
    rows: Iterable[Mapping[str, Any]],
    key: str | Callable[[Mapping[str, Any]], Any],
    default: str = UNKNOWN,
) -> dict[Any, int]:
    """Count rows per value of ``key``; missing values count under ``default``."""
    getter = key if callable(key) else (lambda row: row.get(key))
    counts: Counter[Any] = Counter()
    for row in rows:
        value = getter(row)
        counts[default if value is None else value] += 1
    return dict(counts)


def ranked(counts: Mapping[Any, int | float], limit: int | None = None) -> list[tuple[Any, int | float]]:
    """Sort counts descending by value, keeping insertion order for ties."""
    ordered = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return ordered if limit is None else ordered[:limit]


def utc_today(now: datetime | None = None) -> date:
    now = now or datetime.now(tz=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).date()


def day_label(day: date) -> str:
    return f"{day:%b} {day.day}"


def window_days(days: int, now: datetime | None = None) -> list[date]:
    """The ``days`` calendar days ending today (UTC), oldest first."""
    today = utc_today(now)
    return [today - timedelta(days=days - 1 - offset) for offset in range(days)]


def to_day(value: datetime) -> date:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).date()


def daily_buckets(
    timestamps: Iterable[datetime],
    days: int = 30,
    now: datetime | None = None,
) -> list[tuple[date, int]]:
    """Zero-filled per-day counts over the trailing window."""
    grouped: dict[date, int] = {day: 0 for day in window_days(days, now)}
    for stamp in timestamps:
        day = to_day(stamp)
        if day in grouped:
            grouped[day] += 1
    return list(grouped.items())


def daily_average(
    samples: Iterable[tuple[datetime, float]],
    days: int = 30,
    now: datetime | None = None,
) -> list[tuple[date, int]]:
    """Zero-filled per-day rounded means over the trailing window."""
    sums: dict[date, list[float]] = {day: [0.0, 0] for day in window_days(days, now)}
    for stamp, value in samples:
        day = to_day(stamp)
        if day in sums:
            sums[day][0] += value
            sums[day][1] += 1
    return [(day, round_half_up(total / count) if count else 0) for day, (total, count) in sums.items()]


def since(days: int, now: datetime | None = None) -> datetime:
    now = now or datetime.now(tz=timezone.utc)
    return now - timedelta(days=days)


__all__ = [
    "UNKNOWN",
    "count_by",
    "daily_average",
    "daily_buckets",
    "day_label",
    "format_ms",
    "mean",
    "percentile",
    "rate_percent",
    "ranked",
    "round_half_up",
    "since",
    "to_day",
    "utc_today",
    "window_days",
]
