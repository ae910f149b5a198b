"""Shared UTC time helpers.

Every component that stamps messages, memories or task configs goes through
``utc_now`` so tests can reason about a single clock source, and through
``ensure_utc`` when reading timestamps back from disk.
"""

from __future__ import annotations

from datetime import UTC, datetime

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def utc_now() -> datetime:
    """Return the current UTC timestamp."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps, convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(raw: str | None) -> datetime | None:
    """Parse an ISO timestamp from persisted state, ``None`` stays ``None``."""
    if not raw:
        return None
    return ensure_utc(datetime.fromisoformat(raw))
