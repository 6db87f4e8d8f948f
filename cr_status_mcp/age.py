"""Relative-age parsing shared by sorting, date filtering and timeline grouping.

Ages are the compact strings Kubernetes tooling prints (``"49m"``, ``"1d2h"``).
Everything here works in epoch milliseconds; pass ``now`` explicitly when the
result has to be reproducible.
"""

import re
import time
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional, TypeVar

UNPARSEABLE_AGE = 0

_AGE_TOKEN = re.compile(r"(\d+)([smhd])")

_UNIT_MS = {
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
}

TIMELINE_RECENT = "Recent"
TIMELINE_TODAY = "Today"
TIMELINE_YESTERDAY = "Yesterday"
TIMELINE_OLDER = "Older"

_RECENT_WINDOW_MS = _UNIT_MS["h"]

T = TypeVar("T")


def now_ms() -> int:
    return int(time.time() * 1000)


def parse_age(age: Optional[str], now: Optional[int] = None) -> int:
    """Convert an age string into the epoch-millisecond time it denotes.

    Every ``<integer><unit>`` token contributes, so ``"1d2h"`` and ``"26h"``
    are the same instant. Strings without a single token return
    ``UNPARSEABLE_AGE`` (0), which sorts after every real timestamp in a
    newest-first ordering.
    """
    if not age or not isinstance(age, str):
        return UNPARSEABLE_AGE

    tokens = _AGE_TOKEN.findall(age)
    if not tokens:
        return UNPARSEABLE_AGE

    total = sum(int(value) * _UNIT_MS[unit] for value, unit in tokens)
    if now is None:
        now = now_ms()
    return now - total


def format_age(timestamp: int, now: Optional[int] = None) -> str:
    """Render the time elapsed since ``timestamp`` in its largest whole unit."""
    if now is None:
        now = now_ms()
    seconds = max(now - timestamp, 0) // 1000

    days = seconds // 86400
    if days > 0:
        return f"{days}d"
    hours = seconds // 3600
    if hours > 0:
        return f"{hours}h"
    minutes = seconds // 60
    if minutes > 0:
        return f"{minutes}m"
    return f"{seconds}s"


def format_duration(duration_ms: int) -> str:
    """Render a run duration as ``"1h 5m"``, ``"4m 12s"`` or ``"9s"``."""
    seconds = max(duration_ms, 0) // 1000
    minutes = seconds // 60
    hours = minutes // 60
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def parse_timestamp(value: Any) -> Optional[int]:
    """Parse an RFC 3339 timestamp (``creationTimestamp``) into epoch ms."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def _utc_day(timestamp: int) -> date:
    return datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).date()


def age_bucket(age: Optional[str], now: Optional[int] = None) -> str:
    """Group an age into Recent / Today / Yesterday / Older.

    Calendar days are UTC days. Unparseable ages land in Older.
    """
    if now is None:
        now = now_ms()
    timestamp = parse_age(age, now)
    if timestamp == UNPARSEABLE_AGE:
        return TIMELINE_OLDER

    if now - timestamp <= _RECENT_WINDOW_MS:
        return TIMELINE_RECENT

    today = _utc_day(now)
    day = _utc_day(timestamp)
    if day == today:
        return TIMELINE_TODAY
    if day == today - timedelta(days=1):
        return TIMELINE_YESTERDAY
    return TIMELINE_OLDER


def _day_start_ms(day: date) -> int:
    return int(datetime(day.year, day.month, day.day, tzinfo=timezone.utc).timestamp() * 1000)


def within_date_range(
    age: Optional[str],
    start: Optional[date] = None,
    end: Optional[date] = None,
    now: Optional[int] = None,
) -> bool:
    """Check whether a resource age falls between two UTC dates, inclusive.

    Ages that cannot be parsed are kept.
    """
    if start is None and end is None:
        return True

    timestamp = parse_age(age, now)
    if timestamp == UNPARSEABLE_AGE:
        return True

    if start is not None and timestamp < _day_start_ms(start):
        return False
    if end is not None and timestamp >= _day_start_ms(end + timedelta(days=1)):
        return False
    return True


def sort_by_age(
    resources: Iterable[T],
    descending: bool = True,
    now: Optional[int] = None,
) -> List[T]:
    """Order items exposing an ``age`` attribute, newest first by default.

    A single reference time is used for the whole sort. Items whose age
    cannot be parsed always come last, in their input order.
    """
    if now is None:
        now = now_ms()

    keyed = [(parse_age(getattr(r, "age", None), now), r) for r in resources]
    dated = [pair for pair in keyed if pair[0] != UNPARSEABLE_AGE]
    undated = [r for ts, r in keyed if ts == UNPARSEABLE_AGE]

    dated.sort(key=lambda pair: pair[0], reverse=descending)
    return [r for _, r in dated] + undated
