from __future__ import annotations


class MediaRenameError(Exception):
    """Base class for every error raised by the pipeline."""


class ConfigurationError(MediaRenameError):
    """Malformed configuration. Fatal to the run, raised before traversal."""


class StorageUnavailableError(MediaRenameError):
    """The media root cannot be reached at all. Fatal to the run."""


class RunLockedError(MediaRenameError):
    """Another run already holds the run token."""


class TraversalError(MediaRenameError):
    """Listing one directory failed. The walk skips that subtree."""

    def __init__(self, dir_id: str, detail: str) -> None:
        super().__init__(f"cannot list {dir_id}: {detail}")
        self.dir_id = dir_id
        self.detail = detail


class CodecError(MediaRenameError):
    """Decode, encode or metadata transplant failed for one file."""


class CommitError(MediaRenameError):
    """A rename, write or delete step of the commit protocol failed.

    ``stage`` is one of ``write``, ``rename``, ``backup``, ``promote``.
    ``backup_id`` is set when the original is only reachable under its
    backup name.
    """

    def __init__(self, stage: str, detail: str, *, backup_id: str | None = None) -> None:
        message = f"{stage} failed: {detail}"
        if backup_id is not None:
            message += f" (original kept as {backup_id})"
        super().__init__(message)
        self.stage = stage
        self.detail = detail
        self.backup_id = backup_id


class AttributeCopyError(MediaRenameError):
    """Copying timestamps onto the new file failed. Warning only."""
