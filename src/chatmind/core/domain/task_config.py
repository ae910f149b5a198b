"""Persisted configuration for background agent tasks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from chatmind.core.utils.time import parse_timestamp, utc_now


@dataclass
class TaskConfig:
    """Arbitrary key/value settings for one agent task, kept across runs.

    Tasks use it for their own bookkeeping (last run, cooldowns, counters).
    Values must be JSON serializable; timestamps go through
    ``get_datetime`` / ``set_datetime``.
    """

    task_id: str
    settings: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.settings.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.settings[key] = value

    def get_datetime(self, key: str) -> datetime | None:
        return parse_timestamp(self.settings.get(key))

    def set_datetime(self, key: str, value: datetime) -> None:
        self.settings[key] = value.isoformat()

    def within(self, key: str, minutes: float, now: datetime | None = None) -> bool:
        """Whether the timestamp under ``key`` is less than ``minutes`` old."""
        stamp = self.get_datetime(key)
        if stamp is None:
            return False
        return (now or utc_now()) - stamp < timedelta(minutes=minutes)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage."""
        return {"task_id": self.task_id, "settings": dict(self.settings)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskConfig:
        """Deserialize from stored dict."""
        return cls(task_id=str(data["task_id"]), settings=dict(data.get("settings") or {}))
