"""Calendar bucketing of tagged log entries for the tag charts.

Period keys:
- week:  ISO date of the Sunday starting the entry's week (YYYY-MM-DD)
- month: YYYY-MM
- year:  YYYY

The trailing window (8 weeks / 12 months / 5 years, ending at "now") is
always present, oldest first, even when empty. Entries falling outside the
window are left out of the bucket view but still count in rank_tags().
"""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from craftboard.ingestion.record_types import LogEntry

WEEK = "week"
MONTH = "month"
YEAR = "year"

WINDOW_SIZES = {WEEK: 8, MONTH: 12, YEAR: 5}

Buckets = Dict[str, Dict[str, int]]


def parse_timestamp(value: Any, tz: tzinfo = timezone.utc) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        s = str(value).strip()
        if not s:
            return None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(s)
        except ValueError:
            return None
    # Naive timestamps are taken to be in the display timezone
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def _week_start(d: date) -> date:
    # Monday=0 .. Sunday=6; Sunday starts the week
    return d - timedelta(days=(d.weekday() + 1) % 7)


def period_key(moment: datetime, granularity: str, tz: tzinfo = timezone.utc) -> str:
    local = moment.astimezone(tz)
    if granularity == WEEK:
        return _week_start(local.date()).isoformat()
    if granularity == MONTH:
        return f"{local.year:04d}-{local.month:02d}"
    if granularity == YEAR:
        return f"{local.year:04d}"
    raise ValueError(f"Unknown granularity={granularity}, must be one of {list(WINDOW_SIZES)}")


def trailing_period_keys(granularity: str, now: datetime, tz: tzinfo = timezone.utc) -> List[str]:
    """The window's period keys, oldest first, ending with the period containing ``now``."""
    if granularity not in WINDOW_SIZES:
        raise ValueError(f"Unknown granularity={granularity}, must be one of {list(WINDOW_SIZES)}")
    n = WINDOW_SIZES[granularity]
    local = now.astimezone(tz)

    if granularity == WEEK:
        start = _week_start(local.date())
        return [(start - timedelta(weeks=i)).isoformat() for i in range(n - 1, -1, -1)]

    if granularity == MONTH:
        keys: List[str] = []
        year, month = local.year, local.month
        for _ in range(n):
            keys.append(f"{year:04d}-{month:02d}")
            month -= 1
            if month == 0:
                year, month = year - 1, 12
        return list(reversed(keys))

    return [f"{local.year - i:04d}" for i in range(n - 1, -1, -1)]


def bucketize(
    entries: Iterable[LogEntry],
    granularity: str,
    *,
    now: Optional[datetime] = None,
    tz: tzinfo = timezone.utc,
) -> Buckets:
    now = now or datetime.now(timezone.utc)
    buckets: Buckets = {key: {} for key in trailing_period_keys(granularity, now, tz)}

    for entry in entries:
        moment = parse_timestamp(entry.date, tz)
        if moment is None:
            continue
        bucket = buckets.get(period_key(moment, granularity, tz))
        if bucket is None:
            continue
        for tag in entry.tags:
            bucket[tag] = bucket.get(tag, 0) + 1
    return buckets


def rank_tags(entries: Iterable[LogEntry]) -> List[Tuple[str, int]]:
    """Tag counts over all entries, most common first."""
    counts: Counter = Counter()
    for entry in entries:
        counts.update(entry.tags)
    return counts.most_common()


def filter_buckets(buckets: Buckets, selected_tags: Sequence[str]) -> Buckets:
    """Keep only the selected tags in each bucket. No selection keeps everything."""
    if not selected_tags:
        return {k: dict(v) for k, v in buckets.items()}
    selected = set(selected_tags)
    return {k: {t: c for t, c in v.items() if t in selected} for k, v in buckets.items()}


def bucket_totals(buckets: Buckets) -> Dict[str, int]:
    return {k: sum(v.values()) for k, v in buckets.items()}


def max_bucket_total(buckets: Buckets) -> int:
    """Largest per-period total, never below 1."""
    return max([1] + list(bucket_totals(buckets).values()))


def bar_heights(buckets: Buckets, scale: float = 100.0) -> Dict[str, float]:
    peak = max_bucket_total(buckets)
    return {k: total / peak * scale for k, total in bucket_totals(buckets).items()}
