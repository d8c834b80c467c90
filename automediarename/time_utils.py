from __future__ import annotations

from datetime import datetime, timezone

MINUTE_MS = 60 * 1000
DAY_MS = 24 * 60 * MINUTE_MS


def now_local() -> datetime:
    return datetime.now().astimezone()


def now_ms() -> int:
    return int(datetime.now(tz=timezone.utc).timestamp() * 1000)


def local_date_str() -> str:
    return now_local().strftime("%Y-%m-%d")


def local_timestamp_str() -> str:
    return now_local().isoformat(timespec="seconds")


def ms_to_iso(value: int) -> str:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).astimezone().isoformat(timespec="seconds")
