"""
Raw Log Segmentation

Splits an un-sessioned message log (e.g. an imported transcript) into
``ChatSession`` objects. A new session starts only when the current segment
is long enough AND there is a time- or marker-based reason to split, so brief
pauses never produce tiny sessions.
"""

from __future__ import annotations

import re
from datetime import timedelta
from typing import Iterable

import structlog

from chatmind.core.domain.config_schema import SessionSettings
from chatmind.core.domain.session import ChatSession, Message, MessageRole
from chatmind.core.utils.time import EPOCH, ensure_utc

logger = structlog.get_logger(__name__)

_TIME_ANNOUNCEMENT = re.compile(r"^\*We're \d+")

_GREETING_PREFIXES = (
    "Hello ",
    "Hi!",
    "Hi ",
    "*A few days later",
    "*We're a day later",
    "*We're a week",
)


def is_malformed_timestamp(message: Message) -> bool:
    """Missing or default (epoch or earlier) timestamps cannot be trusted."""
    return message.timestamp is None or message.timestamp <= EPOCH


def repair_timestamps(messages: list[Message], offset_seconds: int = 15) -> int:
    """Fix malformed timestamps in place, keeping chronological order.

    A malformed timestamp becomes the previous message's timestamp plus
    ``offset_seconds``. Leading malformed entries take the first valid
    timestamp in the log. Naive timestamps are read as UTC. Returns the
    number of repaired messages.
    """
    for message in messages:
        if message.timestamp is not None:
            message.timestamp = ensure_utc(message.timestamp)
    first_valid = next(
        (m.timestamp for m in messages if not is_malformed_timestamp(m)), None
    )
    if first_valid is None:
        return 0

    offset = timedelta(seconds=offset_seconds)
    repaired = 0
    previous = None
    for message in messages:
        if is_malformed_timestamp(message):
            message.timestamp = first_valid if previous is None else previous + offset
            repaired += 1
        previous = message.timestamp
    return repaired


def is_session_start(message: Message, user_name: str = "") -> bool:
    """Whether a user/system message looks like the opener of a new chat."""
    if message.role not in (MessageRole.USER, MessageRole.SYSTEM):
        return False
    text = message.text
    if _TIME_ANNOUNCEMENT.match(text) or text.startswith(_GREETING_PREFIXES):
        return True
    if user_name:
        return text.startswith(f"*{user_name} comes back ") or text.startswith(
            f"*{user_name} logged in."
        )
    return False


def segment_raw_log(
    messages: Iterable[Message],
    settings: SessionSettings | None = None,
    *,
    user_name: str = "",
) -> list[ChatSession]:
    """Divide a chronological message list into sessions.

    Args:
        messages: Messages in logical order. Timestamps are repaired in place.
        settings: Thresholds; defaults to ``SessionSettings()``.
        user_name: Display name of the user, for "comes back" style markers.

    Returns:
        Sessions in order. All but the last are marked archived.
    """
    settings = settings or SessionSettings()
    items = list(messages)
    if not items:
        return []

    repaired = repair_timestamps(items, settings.timestamp_repair_seconds)
    if repaired:
        logger.info("segmentation.timestamps_repaired", count=repaired)

    gap_limit = timedelta(days=settings.segment_gap_days)
    long_span = timedelta(days=settings.segment_long_span_days)

    sessions: list[ChatSession] = []
    current = ChatSession(messages=[items[0]], started_at=items[0].timestamp)
    previous = items[0]

    for message in items[1:]:
        count = len(current.messages)
        gap = _delta(previous, message)
        span = (
            message.timestamp - current.started_at
            if message.timestamp and current.started_at
            else timedelta(0)
        )
        split_reason = (
            gap >= gap_limit
            or (span > long_span and count > settings.segment_long_count)
            or is_session_start(message, user_name)
        )
        if count >= settings.segment_min_messages and split_reason:
            current.ended_at = previous.timestamp
            sessions.append(current)
            current = ChatSession(messages=[], started_at=message.timestamp)
        current.messages.append(message)
        previous = message

    current.ended_at = previous.timestamp
    sessions.append(current)

    for session in sessions[:-1]:
        session.archived = True

    logger.info(
        "segmentation.completed",
        message_count=len(items),
        session_count=len(sessions),
    )
    return sessions


def _delta(earlier: Message, later: Message) -> timedelta:
    if earlier.timestamp is None or later.timestamp is None:
        return timedelta(0)
    return later.timestamp - earlier.timestamp
