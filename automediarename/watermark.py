from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from automediarename.models import TimeWindow
from automediarename.time_utils import DAY_MS, MINUTE_MS, local_timestamp_str, ms_to_iso, now_ms

LOGGER = logging.getLogger(__name__)

# Lookback kept after each run, in case of clock or time zone shifts.
LOOKBACK_MS = DAY_MS


class WatermarkStore:
    """Persists the lower bound of the "new since last run" window."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def read_minimum_timestamp(self) -> int | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return int(data["minimum_timestamp_ms"])
        except (OSError, ValueError, KeyError, TypeError) as exc:
            LOGGER.warning("Ignoring unreadable watermark %s: %s", self.path, exc)
            return None

    def write_minimum_timestamp(self, value: int) -> int:
        """Store ``value`` unless a larger one is already stored.

        Returns the value that ends up persisted.
        """
        current = self.read_minimum_timestamp()
        if current is not None and current > value:
            LOGGER.warning("Stored watermark %s is ahead of %s; keeping it", ms_to_iso(current), ms_to_iso(value))
            value = current

        payload = {
            "minimum_timestamp_ms": value,
            "minimum_timestamp": ms_to_iso(value),
            "updated_at": local_timestamp_str(),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)
        return value


def initial_minimum_timestamp(now: int) -> int:
    """First run: leave anything older than one day alone."""
    return now - DAY_MS


def compute_window(stored_minimum: int | None, *, now: int | None = None, lag_minutes: int = 10) -> TimeWindow:
    now = now_ms() if now is None else now
    minimum = initial_minimum_timestamp(now) if stored_minimum is None else stored_minimum
    return TimeWindow(minimum_timestamp=minimum, maximum_timestamp=now - lag_minutes * MINUTE_MS)


def next_minimum_timestamp(previous: int, *, now: int | None = None) -> int:
    now = now_ms() if now is None else now
    return max(now - LOOKBACK_MS, previous)


def advance(store: WatermarkStore, previous: int, *, now: int | None = None) -> int:
    """Move the watermark forward after a completed run. Never moves it back."""
    return store.write_minimum_timestamp(next_minimum_timestamp(previous, now=now))
