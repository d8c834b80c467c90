"""Swap a file for its processed form without ever losing the original.

Plain rename is a single storage rename. Replacing content takes three
steps, always in this order, and only once ``new_name`` is known to be free:

1. ``name`` -> ``name + FILE_BACKUP_SUFFIX``
2. ``temp candidate`` -> ``new_name``
3. delete the backup, unless backups are kept

The final name is only created once the original sits safely under its
backup name, and the backup is only removed once the final name exists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from automediarename.errors import AttributeCopyError, CommitError
from automediarename.models import DocumentNode, FileTimes
from automediarename.selection import FILE_BACKUP_SUFFIX, FILE_TEMP_SUFFIX
from automediarename.storage import StorageAdapter

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommitResult:
    new_id: str
    backup_id: str | None = None
    backup_removed: bool = False


def temp_name(name: str) -> str:
    return name + FILE_TEMP_SUFFIX


def backup_name(name: str) -> str:
    return name + FILE_BACKUP_SUFFIX


def _describe(exc: Exception) -> str:
    return f"{type(exc).__name__}: {exc}"


def _discard(storage: StorageAdapter, node_id: str) -> None:
    try:
        storage.delete(node_id)
    except Exception as exc:  # noqa: BLE001
        LOGGER.warning("Could not remove leftover %s: %s", node_id, _describe(exc))


def _name_taken(storage: StorageAdapter, node: DocumentNode, new_name: str) -> bool:
    if new_name == node.name or node.parent_id is None:
        return False
    return any(child.name == new_name for child in storage.list_children(node.parent_id))


def write_candidate(storage: StorageAdapter, node: DocumentNode, data: bytes) -> str:
    """Write ``data`` beside ``node`` under the reserved temp name."""
    if node.parent_id is None:
        raise CommitError("write", f"{node.id} has no parent")

    candidate_id: str | None = None
    try:
        candidate_id = storage.create_file(node.parent_id, node.mime_type, temp_name(node.name))
        with storage.open_write(candidate_id) as sink:
            sink.write(data)
    except Exception as exc:  # noqa: BLE001
        if candidate_id is not None:
            _discard(storage, candidate_id)
        raise CommitError("write", _describe(exc)) from exc
    return candidate_id


def rename_only(storage: StorageAdapter, node: DocumentNode, new_name: str) -> CommitResult:
    try:
        new_id = storage.rename(node.id, new_name)
    except Exception as exc:  # noqa: BLE001
        raise CommitError("rename", _describe(exc)) from exc
    return CommitResult(new_id=new_id)


def replace_with_candidate(
    storage: StorageAdapter,
    node: DocumentNode,
    new_name: str,
    candidate_id: str,
    *,
    keep_backup: bool = False,
) -> CommitResult:
    # The target must be free before the original is moved aside.
    try:
        taken = _name_taken(storage, node, new_name)
    except Exception as exc:  # noqa: BLE001
        _discard(storage, candidate_id)
        raise CommitError("rename", _describe(exc)) from exc
    if taken:
        _discard(storage, candidate_id)
        raise CommitError("rename", f"{new_name} already exists")

    try:
        backup_id = storage.rename(node.id, backup_name(node.name))
    except Exception as exc:  # noqa: BLE001
        _discard(storage, candidate_id)
        raise CommitError("backup", _describe(exc)) from exc

    try:
        new_id = storage.rename(candidate_id, new_name)
    except Exception as exc:  # noqa: BLE001
        # Not retried: the candidate may be stale by the next attempt.
        raise CommitError("promote", _describe(exc), backup_id=backup_id) from exc

    if keep_backup:
        return CommitResult(new_id=new_id, backup_id=backup_id)

    try:
        storage.delete(backup_id)
    except Exception as exc:  # noqa: BLE001
        LOGGER.warning("Committed %s but could not delete backup %s: %s", new_id, backup_id, _describe(exc))
        return CommitResult(new_id=new_id, backup_id=backup_id)
    return CommitResult(new_id=new_id, backup_id=backup_id, backup_removed=True)


def apply_times(storage: StorageAdapter, node_id: str, times: FileTimes) -> None:
    try:
        storage.set_attributes(node_id, times)
    except Exception as exc:  # noqa: BLE001
        raise AttributeCopyError(_describe(exc)) from exc


def commit(
    storage: StorageAdapter,
    node: DocumentNode,
    new_name: str,
    candidate_id: str | None = None,
    *,
    keep_backup: bool = False,
) -> CommitResult | None:
    """Finalize ``node`` under ``new_name``.

    Returns ``None`` when there is nothing to do (no candidate and the name
    is unchanged). Raises ``CommitError`` when a step fails; ``backup_id``
    on the error tells where the original went if it is no longer under its
    own name.
    """
    if candidate_id is None:
        if new_name == node.name:
            return None
        return rename_only(storage, node, new_name)
    return replace_with_candidate(storage, node, new_name, candidate_id, keep_backup=keep_backup)
