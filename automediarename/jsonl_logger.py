from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

LOGGER = logging.getLogger(__name__)


class JsonlLogger:
    """Append-only JSON lines file. Write failures are logged, never raised."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def append(self, data: dict[str, Any]) -> None:
        line = json.dumps(data, ensure_ascii=False, default=str)
        try:
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        except OSError as exc:
            LOGGER.warning("Could not append to %s: %s", self.path, exc)
