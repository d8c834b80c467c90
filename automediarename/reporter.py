from __future__ import annotations

import logging
from pathlib import Path

from automediarename.time_utils import local_date_str, local_timestamp_str

LOGGER = logging.getLogger(__name__)


class ActivityLog:
    """User-facing progress lines, one per meaningful event.

    Lines go to the module logger and to ``logs/activity_<date>.txt``. A
    failing write never interrupts the run.
    """

    def __init__(self, root: Path | None) -> None:
        self.root = root
        self.lines: list[str] = []

    def _path(self) -> Path | None:
        if self.root is None:
            return None
        return self.root / "logs" / f"activity_{local_date_str()}.txt"

    def add_line(self, text: str, *, level: int = logging.INFO) -> None:
        self.lines.append(text)
        LOGGER.log(level, text)
        path = self._path()
        if path is None:
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as fh:
                fh.write(f"{local_timestamp_str()} {text}\n")
        except OSError as exc:
            LOGGER.warning("Could not write activity log %s: %s", path, exc)


def write_summary(root: Path, lines: list[str]) -> Path | None:
    summary_text = "\n".join(lines) + "\n"
    summary_path = root / "logs" / f"summary_{local_date_str()}.txt"
    try:
        summary_path.parent.mkdir(parents=True, exist_ok=True)
        with summary_path.open("a", encoding="utf-8") as fh:
            fh.write(summary_text)
    except OSError as exc:
        LOGGER.warning("Failed to write summary log: %s", exc)
        return None
    return summary_path
