"""Shared fixtures: an in-memory storage tree and JPEG samples."""

from __future__ import annotations

import io
import itertools
import sys
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from PIL import Image

PROJECT_ROOT = Path(__file__).resolve().parent.parent
PROJECT_ROOT_STR = str(PROJECT_ROOT)

if PROJECT_ROOT_STR not in sys.path:
    sys.path.insert(0, PROJECT_ROOT_STR)

from automediarename.models import MIME_DIRECTORY, DocumentNode, FileTimes  # noqa: E402
from automediarename.storage import guess_mime_type  # noqa: E402

NOW_MS = 1_700_000_000_000
MINUTE_MS = 60 * 1000
DAY_MS = 24 * 60 * MINUTE_MS


@dataclass
class _Entry:
    name: str
    parent: str | None
    is_dir: bool
    mime_type: str
    mtime: int
    data: bytes = b""
    atime: int = 0


class _Sink(io.BytesIO):
    def __init__(self, on_close) -> None:
        super().__init__()
        self._on_close = on_close

    def close(self) -> None:
        if not self.closed:
            self._on_close(self.getvalue())
        super().close()


@dataclass
class MemoryStorage:
    """StorageAdapter test double with per-operation failure injection.

    ``fail(op, key)`` makes ``op`` raise ``OSError`` when called with an id or
    name equal to ``key``. Ids are stable across renames.
    """

    now: int = NOW_MS
    entries: dict[str, _Entry] = field(default_factory=dict)
    failures: set[tuple[str, str]] = field(default_factory=set)
    calls: list[tuple[str, str]] = field(default_factory=list)
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1))

    def __post_init__(self) -> None:
        self.entries["root"] = _Entry("", None, True, MIME_DIRECTORY, self.now)

    # -- building the tree -------------------------------------------------

    def add_dir(self, parent_id: str, name: str) -> str:
        node_id = f"d{next(self._ids)}"
        self.entries[node_id] = _Entry(name, parent_id, True, MIME_DIRECTORY, self.now)
        return node_id

    def add_file(self, parent_id: str, name: str, data: bytes = b"x", *, mtime: int | None = None) -> str:
        node_id = f"f{next(self._ids)}"
        when = self.now if mtime is None else mtime
        self.entries[node_id] = _Entry(name, parent_id, False, guess_mime_type(name), when, data, when)
        return node_id

    def fail(self, op: str, key: str) -> None:
        self.failures.add((op, key))

    def names_in(self, dir_id: str) -> list[str]:
        return sorted(e.name for e in self.entries.values() if e.parent == dir_id)

    def find(self, dir_id: str, name: str) -> str | None:
        for node_id, entry in self.entries.items():
            if entry.parent == dir_id and entry.name == name:
                return node_id
        return None

    def content(self, dir_id: str, name: str) -> bytes:
        node_id = self.find(dir_id, name)
        assert node_id is not None, f"{name} not found"
        return self.entries[node_id].data

    def _check(self, op: str, *keys: str) -> None:
        self.calls.append((op, keys[0]))
        for key in keys:
            if (op, key) in self.failures:
                raise OSError(f"injected {op} failure on {key}")

    # -- StorageAdapter ----------------------------------------------------

    def root_id(self) -> str:
        return "root"

    def list_children(self, dir_id: str) -> list[DocumentNode]:
        self._check("list", dir_id)
        nodes = [
            DocumentNode(
                id=node_id,
                name=entry.name,
                mime_type=entry.mime_type,
                last_modified=entry.mtime,
                is_directory=entry.is_dir,
                parent_id=dir_id,
            )
            for node_id, entry in self.entries.items()
            if entry.parent == dir_id
        ]
        return sorted(nodes, key=lambda node: node.name)

    def open_read(self, node_id: str):
        self._check("read", node_id, self.entries[node_id].name)
        return io.BytesIO(self.entries[node_id].data)

    def create_file(self, parent_id: str, mime_type: str, name: str) -> str:
        self._check("create", parent_id, name)
        existing = self.find(parent_id, name)
        if existing is not None:
            return existing
        node_id = f"f{next(self._ids)}"
        self.entries[node_id] = _Entry(name, parent_id, False, mime_type, self.now, b"", self.now)
        return node_id

    def open_write(self, node_id: str):
        self._check("write", node_id, self.entries[node_id].name)

        def _store(data: bytes) -> None:
            self.entries[node_id].data = data

        return _Sink(_store)

    def rename(self, node_id: str, new_name: str) -> str:
        entry = self.entries[node_id]
        self._check("rename", node_id, entry.name, new_name)
        if self.find(entry.parent, new_name) is not None:
            raise FileExistsError(new_name)
        entry.name = new_name
        return node_id

    def delete(self, node_id: str) -> None:
        self._check("delete", node_id, self.entries[node_id].name)
        del self.entries[node_id]

    def get_attributes(self, node_id: str) -> FileTimes:
        entry = self.entries[node_id]
        self._check("get_attributes", node_id, entry.name)
        return FileTimes(modified=entry.mtime, accessed=entry.atime)

    def set_attributes(self, node_id: str, times: FileTimes) -> None:
        entry = self.entries[node_id]
        self._check("set_attributes", node_id, entry.name)
        entry.mtime = times.modified
        entry.atime = times.accessed


def make_jpeg(
    size: tuple[int, int] = (128, 96),
    *,
    quality: int = 95,
    orientation: int | None = 6,
    noisy: bool = True,
) -> bytes:
    """Build a JPEG; noisy pixels keep it large at high quality."""
    img = Image.new("RGB", size)
    if noisy:
        img.putdata([((x * 37 + y * 11) % 256, (x * y) % 256, (x ^ y) % 256) for y in range(size[1]) for x in range(size[0])])
    out = io.BytesIO()
    kwargs = {"format": "JPEG", "quality": quality}
    if orientation is not None:
        exif = Image.Exif()
        exif[0x0112] = orientation  # Orientation
        exif[0x010F] = "TestCam"  # Make
        kwargs["exif"] = exif.tobytes()
    img.save(out, **kwargs)
    return out.getvalue()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_jpeg()


@pytest.fixture
def state_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    root = tmp_path / "state"
    monkeypatch.setenv("MEDIA_RENAME_HOME", str(root))
    monkeypatch.delenv("MEDIA_ROOT", raising=False)
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    monkeypatch.delenv("TELEGRAM_CHAT_ID", raising=False)
    monkeypatch.delenv("NOTIFY_WEBHOOK_URL", raising=False)
    (root / "meta").mkdir(parents=True)
    (root / "logs").mkdir(parents=True)
    return root
