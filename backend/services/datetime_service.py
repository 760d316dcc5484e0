"""Datetime helpers: lax input -> timezone-aware UTC values."""

from __future__ import annotations

from datetime import UTC, datetime

import pendulum


def parse_datetime(value: str | datetime, default_tz: str = "UTC") -> datetime:
    """Parse a lax datetime string into a timezone-aware datetime.

    Accepts various formats:
    - 2026-02-02 22:21:29+00
    - 2026-02-02 22:21
    - 2026-02-02
    - ISO 8601 variants with T separator

    Missing timezone defaults to default_tz.
    Missing time components default to zeros.

    Raises ValueError for unparsable input.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            tz = pendulum.timezone(default_tz)
            value = value.replace(tzinfo=tz)  # type: ignore[arg-type]
        return value

    value_str = value.strip()
    try:
        parsed = pendulum.parse(value_str, tz=default_tz, strict=False)
    except ValueError as exc:
        msg = f"Invalid datetime: {value_str!r}"
        raise ValueError(msg) from exc
    if isinstance(parsed, pendulum.DateTime):
        return parsed
    if isinstance(parsed, pendulum.Date):
        # pendulum.parse returns Date for date-only strings
        return pendulum.datetime(parsed.year, parsed.month, parsed.day, tz=default_tz)
    msg = f"Invalid datetime: {value_str!r}"
    raise ValueError(msg)


def from_timestamp(seconds: int) -> datetime:
    """Convert a Unix timestamp (as reported by mod.io) to an aware UTC datetime."""
    return datetime.fromtimestamp(seconds, tz=UTC)


def to_utc_naive(dt: datetime) -> datetime:
    """Normalize to naive UTC, the form SQLite stores and compares."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(UTC)


def format_iso(dt: datetime) -> str:
    """Format datetime as ISO 8601 for JSON serialization."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.isoformat()
