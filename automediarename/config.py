from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from automediarename.errors import ConfigurationError
from automediarename.models import SelectionRule
from automediarename.selection import compile_rules

DEFAULT_JPEG_QUALITY = 80
DEFAULT_OVERWRITE_RATIO = 0.75
DEFAULT_KEEP_BACKUP = False
DEFAULT_COPY_TIMESTAMPS = True

# Files younger than this are left alone; another app may still be writing them.
MAXIMUM_AGE_LAG_MINUTES = 10


@dataclass(frozen=True)
class RunConfig:
    """Read-only snapshot taken once at run start."""

    media_root: Path
    selection_rules: tuple[SelectionRule, ...] = ()
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
    overwrite_ratio: float = DEFAULT_OVERWRITE_RATIO
    keep_backup: bool = DEFAULT_KEEP_BACKUP
    copy_timestamps: bool = DEFAULT_COPY_TIMESTAMPS
    lag_minutes: int = MAXIMUM_AGE_LAG_MINUTES

    dry_run: bool = False

    def __post_init__(self) -> None:
        if not 0 <= self.jpeg_quality <= 100:
            raise ConfigurationError(f"jpeg_quality must be within 0-100, got {self.jpeg_quality}")
        if self.overwrite_ratio <= 0:
            raise ConfigurationError(f"overwrite_ratio must be positive, got {self.overwrite_ratio}")
        if self.lag_minutes < 0:
            raise ConfigurationError(f"lag_minutes must not be negative, got {self.lag_minutes}")


@dataclass
class RawSettings:
    """Mutable settings document as stored on disk."""

    media_root: str | None = None
    selection_rules: list[dict[str, str]] = field(default_factory=list)
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
    overwrite_ratio: float = DEFAULT_OVERWRITE_RATIO
    keep_backup: bool = DEFAULT_KEEP_BACKUP
    copy_timestamps: bool = DEFAULT_COPY_TIMESTAMPS

    def to_dict(self) -> dict[str, Any]:
        return {
            "media_root": self.media_root,
            "selection_rules": list(self.selection_rules),
            "jpeg_quality": self.jpeg_quality,
            "overwrite_ratio": self.overwrite_ratio,
            "keep_backup": self.keep_backup,
            "copy_timestamps": self.copy_timestamps,
        }


def read_settings(path: Path) -> RawSettings:
    if not path.exists():
        raise ConfigurationError(f"config file not found: {path} (run `automediarename init`)")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"cannot read config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"config {path} must hold a JSON object")

    rules = data.get("selection_rules") or []
    if not isinstance(rules, list):
        raise ConfigurationError("selection_rules must be a list")

    try:
        return RawSettings(
            media_root=data.get("media_root"),
            selection_rules=rules,
            jpeg_quality=int(data.get("jpeg_quality", DEFAULT_JPEG_QUALITY)),
            overwrite_ratio=float(data.get("overwrite_ratio", DEFAULT_OVERWRITE_RATIO)),
            keep_backup=bool(data.get("keep_backup", DEFAULT_KEEP_BACKUP)),
            copy_timestamps=bool(data.get("copy_timestamps", DEFAULT_COPY_TIMESTAMPS)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"invalid value in {path}: {exc}") from exc


def write_settings(path: Path, settings: RawSettings) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")


def build_run_config(
    settings: RawSettings,
    *,
    media_root: str | None = None,
    dry_run: bool = False,
) -> RunConfig:
    """Freeze settings into a RunConfig.

    ``media_root`` wins over ``MEDIA_ROOT`` from the environment, which wins
    over the settings file.
    """
    root_str = media_root or os.getenv("MEDIA_ROOT") or settings.media_root
    if not root_str:
        raise ConfigurationError("no media root configured")

    pairs: list[tuple[str, str]] = []
    for index, item in enumerate(settings.selection_rules):
        if not isinstance(item, dict) or "pattern" not in item:
            raise ConfigurationError(f"selection rule #{index} needs a pattern")
        pairs.append((str(item["pattern"]), str(item.get("prefix", ""))))

    return RunConfig(
        media_root=Path(root_str).expanduser(),
        selection_rules=compile_rules(pairs),
        jpeg_quality=settings.jpeg_quality,
        overwrite_ratio=settings.overwrite_ratio,
        keep_backup=settings.keep_backup,
        copy_timestamps=settings.copy_timestamps,
        dry_run=dry_run,
    )


def load_config(path: Path, *, media_root: str | None = None, dry_run: bool = False) -> RunConfig:
    return build_run_config(read_settings(path), media_root=media_root, dry_run=dry_run)
