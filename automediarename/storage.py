from __future__ import annotations

import mimetypes
import os
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Protocol

from automediarename.errors import StorageUnavailableError
from automediarename.models import MIME_DIRECTORY, DocumentNode, FileTimes

ROOT_ID = "."


class StorageAdapter(Protocol):
    """Tree-shaped document store addressed by opaque ids."""

    def root_id(self) -> str: ...

    def list_children(self, dir_id: str) -> list[DocumentNode]: ...

    def open_read(self, node_id: str) -> BinaryIO: ...

    def create_file(self, parent_id: str, mime_type: str, name: str) -> str: ...

    def open_write(self, node_id: str) -> BinaryIO: ...

    def rename(self, node_id: str, new_name: str) -> str: ...

    def delete(self, node_id: str) -> None: ...

    def get_attributes(self, node_id: str) -> FileTimes: ...

    def set_attributes(self, node_id: str, times: FileTimes) -> None: ...


def read_bytes(storage: StorageAdapter, node_id: str) -> bytes:
    with storage.open_read(node_id) as fh:
        return fh.read()


def guess_mime_type(name: str) -> str:
    mime, _ = mimetypes.guess_type(name)
    return mime or "application/octet-stream"


class LocalStorage:
    """StorageAdapter over a directory on disk.

    Ids are POSIX paths relative to the root, ``"."`` being the root itself.
    """

    def __init__(self, root: Path) -> None:
        root = Path(root).expanduser()
        if not root.is_dir():
            raise StorageUnavailableError(f"media root is not a directory: {root}")
        self.root = root.resolve()

    def root_id(self) -> str:
        return ROOT_ID

    def _path(self, node_id: str) -> Path:
        path = (self.root / node_id).resolve()
        if path != self.root and self.root not in path.parents:
            raise ValueError(f"id escapes media root: {node_id}")
        return path

    def _id(self, path: Path) -> str:
        rel = path.relative_to(self.root)
        return str(PurePosixPath(*rel.parts)) if rel.parts else ROOT_ID

    def _node(self, entry: os.DirEntry[str], parent_id: str) -> DocumentNode:
        is_dir = entry.is_dir(follow_symlinks=False)
        stat = entry.stat(follow_symlinks=False)
        return DocumentNode(
            id=self._id(Path(entry.path)),
            name=entry.name,
            mime_type=MIME_DIRECTORY if is_dir else guess_mime_type(entry.name),
            last_modified=int(stat.st_mtime * 1000),
            is_directory=is_dir,
            parent_id=parent_id,
        )

    def list_children(self, dir_id: str) -> list[DocumentNode]:
        with os.scandir(self._path(dir_id)) as it:
            nodes = [self._node(entry, dir_id) for entry in it if not entry.is_symlink()]
        nodes.sort(key=lambda node: node.name)
        return nodes

    def open_read(self, node_id: str) -> BinaryIO:
        return self._path(node_id).open("rb")

    def create_file(self, parent_id: str, mime_type: str, name: str) -> str:
        path = self._path(parent_id) / name
        # A leftover under the reserved name is reused; open_write truncates it.
        path.touch()
        return self._id(path)

    def open_write(self, node_id: str) -> BinaryIO:
        return self._path(node_id).open("wb")

    def rename(self, node_id: str, new_name: str) -> str:
        src = self._path(node_id)
        dst = src.with_name(new_name)
        if dst.exists():
            raise FileExistsError(f"target already exists: {self._id(dst)}")
        src.rename(dst)
        return self._id(dst)

    def delete(self, node_id: str) -> None:
        self._path(node_id).unlink()

    def get_attributes(self, node_id: str) -> FileTimes:
        stat = self._path(node_id).stat()
        created = getattr(stat, "st_birthtime", None)
        return FileTimes(
            modified=int(stat.st_mtime * 1000),
            accessed=int(stat.st_atime * 1000),
            created=int(created * 1000) if created is not None else None,
        )

    def set_attributes(self, node_id: str, times: FileTimes) -> None:
        # Creation time cannot be set portably; only access and modification are applied.
        os.utime(self._path(node_id), ns=(times.accessed * 1_000_000, times.modified * 1_000_000))
