# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.17
# Copyright (C) 2025 HRDAG https://hrdag.org
#
# This program is free software; you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation; either version 2 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License along
# with this program; if not, see <https://www.gnu.org/licenses/>.
#
# ------
# image-sync/src/image_sync/types.py

"""Type definitions for archive-to-disk sync operations."""

from dataclasses import dataclass, field
from typing import BinaryIO, Literal


EntryKind = Literal["regular", "directory", "symlink", "hardlink"]
DiskKind = Literal["regular", "directory", "symlink", "other"]

# Permission bits including setuid, setgid and sticky.
PERM_MASK = 0o7777


@dataclass(frozen=True)
class ArchiveEntry:
    """One unit of desired state read from the archive stream."""
    path: str
    kind: EntryKind
    size: int = 0
    uid: int = 0
    gid: int = 0
    perm: int = 0o644
    mtime_ns: int = 0
    linkname: str | None = None
    reader: BinaryIO | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class DiskStat:
    """State of a single path on the disk partition."""
    kind: DiskKind
    size: int
    mtime_ns: int
    perm: int
    uid: int
    gid: int
    inode: int

    @property
    def is_dir(self) -> bool:
        return self.kind == "directory"

    @property
    def is_symlink(self) -> bool:
        return self.kind == "symlink"

    @property
    def is_regular(self) -> bool:
        return self.kind == "regular"


@dataclass
class Update:
    """Changes applied to a single path.

    `added` and `deleted` are mutually exclusive. The optional fields are set
    only when the corresponding attribute had to be changed on disk.
    """
    added: bool = False
    deleted: bool = False
    perm: int | None = None
    uid: int | None = None
    gid: int | None = None
    mtime_ns: int | None = None

    def is_empty(self) -> bool:
        return self == Update()


@dataclass(frozen=True)
class PathUpdate:
    """A change record as delivered to observers."""
    path: str
    update: Update

    def to_dict(self) -> dict:
        return {
            'path': self.path,
            'added': self.update.added,
            'deleted': self.update.deleted,
            'perm': self.update.perm,
            'uid': self.update.uid,
            'gid': self.update.gid,
            'mtime_ns': self.update.mtime_ns,
        }
