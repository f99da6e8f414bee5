# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.17
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# image-sync/src/image_sync/summary.py

"""Counting and formatting of sync change records."""

from dataclasses import dataclass
from datetime import datetime, timezone

from .types import PathUpdate


def format_mtime(mtime_ns: int) -> str:
    dt = datetime.fromtimestamp(mtime_ns / 1_000_000_000, tz=timezone.utc)
    return dt.strftime('%Y-%m-%d %H:%M:%S')


def format_update(upd: PathUpdate) -> str:
    """One line per change: '+' added, '-' deleted, '~' metadata only."""
    u = upd.update
    if u.deleted:
        return f"- {upd.path}"

    marker = '+' if u.added else '~'
    parts = [f"{marker} {upd.path}"]
    if u.perm is not None:
        parts.append(f"mode={u.perm:04o}")
    if u.uid is not None:
        parts.append(f"uid={u.uid}")
    if u.gid is not None:
        parts.append(f"gid={u.gid}")
    if u.mtime_ns is not None:
        parts.append(f"mtime={format_mtime(u.mtime_ns)}")
    return ' '.join(parts)


@dataclass
class SyncSummary:
    """Observer that tallies change records by type."""
    added: int = 0
    deleted: int = 0
    modified: int = 0

    def __call__(self, upd: PathUpdate) -> None:
        if upd.update.added:
            self.added += 1
        elif upd.update.deleted:
            self.deleted += 1
        else:
            self.modified += 1

    @property
    def total(self) -> int:
        return self.added + self.deleted + self.modified

    def __str__(self) -> str:
        return f"{self.added} added, {self.deleted} deleted, {self.modified} modified"
