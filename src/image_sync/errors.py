# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.17
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# image-sync/src/image_sync/errors.py

"""Exceptions raised while syncing an archive onto a disk partition."""


class SyncError(RuntimeError):
    """Base class for all sync failures."""


class ArchiveError(SyncError):
    """The archive stream is truncated or has an unreadable header."""


class UnsupportedEntryError(SyncError):
    """The archive holds an entry that is not a file, directory or link."""


class DiskError(SyncError):
    """A filesystem operation on the partition failed."""

    def __init__(self, op: str, path: str, reason: object = None):
        self.op = op
        self.path = path
        message = f"failed to {op}: {path}"
        if reason is not None:
            message = f"{message}: {reason}"
        super().__init__(message)


class NotMountedError(SyncError):
    """No partition is mounted at the filesystem root."""
