from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Iterator

from automediarename.errors import StorageUnavailableError, TraversalError
from automediarename.models import DocumentNode
from automediarename.storage import StorageAdapter

LOGGER = logging.getLogger(__name__)


def _never() -> bool:
    return False


class TreeWalker:
    """Breadth-first walk over a storage tree, yielding files only.

    Directories are kept on an explicit worklist, so depth never grows the
    call stack. A directory that cannot be listed is recorded in
    ``failures`` and its subtree skipped; the walk goes on with its
    siblings. ``should_cancel`` is polled between files and between
    directories. The root itself is the exception: if it cannot be listed
    the whole walk fails with ``StorageUnavailableError``.
    """

    def __init__(
        self,
        storage: StorageAdapter,
        *,
        should_cancel: Callable[[], bool] | None = None,
    ) -> None:
        self.storage = storage
        self.should_cancel = should_cancel or _never
        self.failures: list[TraversalError] = []
        self.directories_listed = 0
        self.cancelled = False

    def _list(self, dir_id: str) -> list[DocumentNode]:
        try:
            return self.storage.list_children(dir_id)
        except Exception as exc:  # noqa: BLE001
            raise TraversalError(dir_id, f"{type(exc).__name__}: {exc}") from exc

    def walk(self, root_id: str) -> Iterator[DocumentNode]:
        pending: deque[str] = deque([root_id])
        seen: set[str] = {root_id}

        while pending:
            if self.should_cancel():
                self.cancelled = True
                LOGGER.info("Walk cancelled with %d directories pending", len(pending))
                return

            dir_id = pending.popleft()
            try:
                children = self._list(dir_id)
            except TraversalError as exc:
                if dir_id == root_id:
                    raise StorageUnavailableError(f"cannot list media root: {exc.detail}") from exc
                self.failures.append(exc)
                LOGGER.warning("Skipping subtree: %s", exc)
                continue
            self.directories_listed += 1

            for node in children:
                if node.is_directory:
                    if node.id not in seen:
                        seen.add(node.id)
                        pending.append(node.id)
                    continue

                if self.should_cancel():
                    self.cancelled = True
                    LOGGER.info("Walk cancelled inside %s", dir_id)
                    return
                yield node
