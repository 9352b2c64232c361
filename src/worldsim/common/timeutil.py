from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

DAY = timedelta(days=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Normalise to the UTC second-precision string every table stores."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def parse_ts(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def whole_days_between(start: datetime, end: datetime) -> int:
    return int((end - start) // DAY)


def day_key(value: datetime) -> str:
    return value.astimezone(timezone.utc).date().isoformat()


def start_of_day(value: datetime) -> datetime:
    value = value.astimezone(timezone.utc)
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def week_start(value: datetime) -> str:
    """Sunday that opens the week containing ``value``."""
    current: date = value.astimezone(timezone.utc).date()
    offset = (current.weekday() + 1) % 7
    return (current - timedelta(days=offset)).isoformat()
