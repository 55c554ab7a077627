"""UTC timestamp helpers shared by the store and the pipeline.

All timestamps are persisted as ``%Y-%m-%dT%H:%M:%SZ`` strings so that
lexicographic comparison in SQL matches chronological order.
"""

from __future__ import annotations

from datetime import UTC, datetime

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(tz=UTC)


def format_ts(value: datetime) -> str:
    """Format an aware (or naive, assumed UTC) datetime for storage."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(TIMESTAMP_FORMAT)


def parse_ts(value: str | None) -> datetime | None:
    """Parse a stored or provider ISO 8601 timestamp into an aware UTC datetime.

    Returns ``None`` for empty input.  Naive values are taken as UTC.
    """
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def from_epoch_ms(value: str | int | None) -> datetime:
    """Convert milliseconds since the epoch (Gmail ``internalDate``) to UTC."""
    return datetime.fromtimestamp(int(value or 0) / 1000, tz=UTC)
