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
# image-sync/src/image_sync/__init__.py

"""Sync tar archives onto disk image partitions."""

from .disk import DiskFilesystem, GuestfsFilesystem, LocalFilesystem
from .errors import (
    ArchiveError,
    DiskError,
    NotMountedError,
    SyncError,
    UnsupportedEntryError
)
from .stream import TarStream
from .summary import SyncSummary, format_update
from .sync import BaseDirKeeper, TarSync, build_inventory, files_equal, sync_tar
from .types import ArchiveEntry, DiskStat, EntryKind, PathUpdate, Update

__version__ = "0.1.0"

__all__ = [
    "TarSync",
    "sync_tar",
    "build_inventory",
    "files_equal",
    "BaseDirKeeper",
    "TarStream",
    "DiskFilesystem",
    "LocalFilesystem",
    "GuestfsFilesystem",
    "SyncSummary",
    "format_update",
    "ArchiveEntry",
    "DiskStat",
    "EntryKind",
    "PathUpdate",
    "Update",
    "SyncError",
    "ArchiveError",
    "UnsupportedEntryError",
    "DiskError",
    "NotMountedError",
]
