from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

MIME_DIRECTORY = "inode/directory"
MIME_JPEG = "image/jpeg"


@dataclass(frozen=True, slots=True)
class DocumentNode:
    id: str
    name: str
    mime_type: str
    last_modified: int  # epoch milliseconds
    is_directory: bool = False
    parent_id: str | None = None


@dataclass(frozen=True, slots=True)
class SelectionRule:
    pattern: re.Pattern[str]
    prefix: str

    def matches(self, name: str) -> bool:
        return self.pattern.fullmatch(name) is not None


@dataclass(frozen=True, slots=True)
class TimeWindow:
    minimum_timestamp: int
    maximum_timestamp: int


@dataclass(frozen=True, slots=True)
class FileTimes:
    modified: int
    accessed: int
    created: int | None = None


@dataclass(frozen=True, slots=True)
class Renamed:
    node_id: str
    from_name: str
    to_name: str

    kind = "RENAMED"


@dataclass(frozen=True, slots=True)
class Recompressed:
    node_id: str
    from_name: str
    to_name: str
    ratio: float

    kind = "RECOMPRESSED"


@dataclass(frozen=True, slots=True)
class Skipped:
    node_id: str
    name: str
    reason: str

    kind = "SKIPPED"


@dataclass(frozen=True, slots=True)
class Failed:
    node_id: str
    name: str
    reason: str

    kind = "FAILED"


ProcessingOutcome = Union[Renamed, Recompressed, Skipped, Failed]


def outcome_record(outcome: ProcessingOutcome) -> dict[str, object]:
    """Flatten an outcome into a JSON-friendly dict for the outcome stream."""
    record: dict[str, object] = {"kind": outcome.kind, "node_id": outcome.node_id}
    if isinstance(outcome, (Renamed, Recompressed)):
        record["from"] = outcome.from_name
        record["to"] = outcome.to_name
        if isinstance(outcome, Recompressed):
            record["ratio"] = round(outcome.ratio, 4)
    else:
        record["name"] = outcome.name
        record["reason"] = outcome.reason
    return record
