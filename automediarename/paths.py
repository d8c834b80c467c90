from __future__ import annotations

import os
from pathlib import Path

APP_DIR_NAME = "automediarename"


def _expand(path_str: str) -> Path:
    return Path(path_str.replace("$HOME", str(Path.home())).replace('"', "")).expanduser()


def detect_state_base() -> Path:
    """Where run state lives unless MEDIA_RENAME_HOME says otherwise.

    Follows XDG: ``$XDG_STATE_HOME/automediarename``, falling back to
    ``~/.local/state/automediarename``.
    """
    xdg = os.getenv("XDG_STATE_HOME")
    if xdg:
        return (_expand(xdg) / APP_DIR_NAME).resolve()
    return (Path.home() / ".local" / "state" / APP_DIR_NAME).resolve()


def get_state_root() -> Path:
    override = os.getenv("MEDIA_RENAME_HOME")
    root = _expand(override).resolve() if override else detect_state_base()
    (root / "meta").mkdir(parents=True, exist_ok=True)
    (root / "logs").mkdir(parents=True, exist_ok=True)
    return root


def default_config_path(root: Path) -> Path:
    return root / "config.json"


def status_path(root: Path) -> Path:
    return root / "meta" / "status.json"


def watermark_path(root: Path) -> Path:
    return root / "meta" / "watermark.json"


def outcomes_path(root: Path) -> Path:
    return root / "meta" / "outcomes.jsonl"


def lock_path(root: Path) -> Path:
    return root / "meta" / "run.lock"
