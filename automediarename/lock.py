from __future__ import annotations

import logging
import os
from pathlib import Path
from types import TracebackType

from automediarename.errors import RunLockedError

LOGGER = logging.getLogger(__name__)


def _is_process_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class RunLock:
    """Pid file that keeps two runs from working on the same tree at once."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.held = False

    def _read_pid(self) -> int:
        try:
            return int(self.path.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return -1

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.path.exists():
            existing_pid = self._read_pid()
            if existing_pid > 0 and existing_pid != os.getpid() and _is_process_alive(existing_pid):
                raise RunLockedError(f"another run is active (pid={existing_pid})")
            LOGGER.info("Reclaiming stale run lock %s (pid=%s)", self.path, existing_pid)
            self.path.unlink(missing_ok=True)

        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError as exc:
            raise RunLockedError(f"run lock {self.path} was taken concurrently") from exc
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(str(os.getpid()))
        self.held = True

    def release(self) -> None:
        if self.held:
            self.path.unlink(missing_ok=True)
            self.held = False

    def __enter__(self) -> "RunLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
