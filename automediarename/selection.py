from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Sequence

from automediarename.errors import ConfigurationError
from automediarename.models import DocumentNode, SelectionRule, TimeWindow

# Reserved suffixes for the pipeline's own in-flight artifacts.
FILE_TEMP_SUFFIX = "_automediarename_temp.jpg"
FILE_BACKUP_SUFFIX = "_automediarename_backup.jpg"
RESERVED_SUFFIXES = (FILE_TEMP_SUFFIX, FILE_BACKUP_SUFFIX)

SKIP_DIRECTORY = "directory"
SKIP_TOO_OLD = "too old"
SKIP_TOO_RECENT = "too recent"
SKIP_RESERVED = "reserved suffix"
SKIP_NO_RULE = "no rule matched"


@dataclass(frozen=True, slots=True)
class Selection:
    rule: SelectionRule
    new_name: str


@dataclass(frozen=True, slots=True)
class SelectionSkip:
    reason: str


def compile_rules(pairs: Iterable[tuple[str, str]]) -> tuple[SelectionRule, ...]:
    """Compile ``(pattern, prefix)`` pairs, keeping their order."""
    rules: list[SelectionRule] = []
    for index, (pattern, prefix) in enumerate(pairs):
        try:
            compiled = re.compile(pattern)
        except re.error as exc:
            raise ConfigurationError(f"rule #{index}: bad pattern {pattern!r}: {exc}") from exc
        rules.append(SelectionRule(pattern=compiled, prefix=prefix))
    return tuple(rules)


def is_reserved_name(name: str) -> bool:
    return name.endswith(RESERVED_SUFFIXES)


def match_rule(name: str, rules: Sequence[SelectionRule]) -> SelectionRule | None:
    for rule in rules:
        if rule.matches(name):
            return rule
    return None


def select(
    node: DocumentNode,
    window: TimeWindow,
    rules: Sequence[SelectionRule],
) -> Selection | SelectionSkip:
    """Decide whether ``node`` gets processed and under which new name.

    Checks run cheapest first. The reserved-suffix guard runs before rule
    matching so that temp and backup files are never picked up again.
    """
    if node.is_directory:
        return SelectionSkip(SKIP_DIRECTORY)
    if node.last_modified < window.minimum_timestamp:
        return SelectionSkip(SKIP_TOO_OLD)
    if node.last_modified > window.maximum_timestamp:
        return SelectionSkip(SKIP_TOO_RECENT)
    if is_reserved_name(node.name):
        return SelectionSkip(SKIP_RESERVED)

    rule = match_rule(node.name, rules)
    if rule is None:
        return SelectionSkip(SKIP_NO_RULE)
    return Selection(rule=rule, new_name=rule.prefix + node.name)
