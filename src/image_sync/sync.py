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
# image-sync/src/image_sync/sync.py

"""Sync a tar archive onto a mounted disk partition.

The disk is brought in line with the archive in a single pass: each archive
entry is compared with what is on disk and only the differences are applied.
Paths found on disk but not in the archive are deleted at the end.
"""

import logging
import posixpath
from pathlib import Path
from typing import BinaryIO, Callable, Iterable

from .disk import DiskFilesystem
from .errors import DiskError, NotMountedError, UnsupportedEntryError
from .stream import TarStream
from .summary import SyncSummary
from .types import ArchiveEntry, DiskStat, PathUpdate, Update

logger = logging.getLogger(__name__)

Hook = Callable[[PathUpdate], None]


def files_equal(entry: ArchiveEntry, disk: DiskStat) -> bool:
    """Quick check: same size and modification time. Content is not compared."""
    return entry.size == disk.size and entry.mtime_ns == disk.mtime_ns


def parent_dir(path: str) -> str:
    return posixpath.dirname(path) or '/'


def build_inventory(fs: DiskFilesystem) -> set[str]:
    """Every path currently on the partition."""
    if not fs.is_mounted():
        raise NotMountedError("nothing mounted at root")
    paths = fs.walk_all()
    logger.debug("disk inventory: %d paths", len(paths))
    return paths


class BaseDirKeeper:
    """Keeps one directory's modification time from drifting.

    Creating or removing an entry bumps the mtime of its parent directory.
    Before such a change the parent is opened here, which records its
    current mtime; when another directory is opened, or on `flush`, the
    recorded mtime is written back. This only works when all changes under
    a directory happen together, as they do for depth-first archives.
    """

    def __init__(self, fs: DiskFilesystem):
        self.fs = fs
        self.path: str | None = None
        self.mtime_ns: int | None = None
        self.opened: set[str] = set()

    def open(self, path: str) -> None:
        if path == self.path:
            return
        self.flush()

        st = self.fs.stat(path)
        if st is None:
            raise DiskError('stat base dir', path, "no such directory")
        self.path = path
        self.mtime_ns = st.mtime_ns
        self.opened.add(path)

    def retime(self, path: str, mtime_ns: int) -> None:
        """Record an mtime that was set explicitly on the open directory."""
        if path == self.path:
            self.mtime_ns = mtime_ns

    def flush(self) -> None:
        if self.path is None:
            return
        try:
            self.fs.chtimes(self.path, self.mtime_ns, self.mtime_ns)
        except DiskError as e:
            raise DiskError('preserve base dir modtime', self.path, e) from e
        self.path = None
        self.mtime_ns = None


class TarSync:
    """Apply the entries of an archive stream to a disk partition."""

    def __init__(self, stream: Iterable[ArchiveEntry], fs: DiskFilesystem,
                 hooks: Iterable[Hook] = (), warn_unordered: bool = True):
        self.stream = stream
        self.fs = fs
        self.hooks = list(hooks)
        self.warn_unordered = warn_unordered

    def add_hook(self, hook: Hook) -> None:
        self.hooks.append(hook)

    def _notify(self, upd: PathUpdate) -> None:
        for hook in self.hooks:
            hook(upd)

    def run(self) -> None:
        """Run one sync pass. Raises on the first failure, without rollback."""
        inventory = build_inventory(self.fs)
        keeper = BaseDirKeeper(self.fs)

        for entry in self.stream:
            update = self._sync_entry(entry, keeper)
            if not update.is_empty():
                self._notify(PathUpdate(entry.path, update))
            inventory.discard(entry.path)

        self._delete_paths(inventory, keeper)
        keeper.flush()

    def _sync_entry(self, entry: ArchiveEntry, keeper: BaseDirKeeper) -> Update:
        update = Update()
        disk = self.fs.lstat(entry.path)

        if (self.warn_unordered and entry.kind == 'directory'
                and entry.path in keeper.opened):
            logger.warning(
                "directory listed after its contents: %s "
                "(its modification time may be wrong)", entry.path
            )

        self._add_if_new(entry, disk, keeper, update)
        if update.added:
            disk = self.fs.lstat(entry.path)
            if disk is None:
                raise DiskError('lstat', entry.path, "missing after create")

        if entry.kind != 'hardlink' or update.added:
            self._update_stat_if_diff(entry, disk, keeper, update)

        return update

    def _remove(self, path: str, disk: DiskStat) -> None:
        if disk.is_dir:
            self.fs.remove_all(path)
        else:
            self.fs.remove(path)

    def _add_if_new(self, entry: ArchiveEntry, disk: DiskStat | None,
                    keeper: BaseDirKeeper, update: Update) -> None:
        path = entry.path
        parent = parent_dir(path)

        if entry.kind == 'hardlink':
            if disk is not None:
                target = self.fs.stat(entry.linkname)
                if target is None:
                    raise DiskError('stat link target', path,
                                    f"no such file: {entry.linkname}")
                if disk.inode != target.inode:
                    keeper.open(parent)
                    self._remove(path, disk)
                    disk = None

            if disk is None:
                keeper.open(parent)
                self.fs.link(entry.linkname, path)
                logger.debug("linked %s -> %s", path, entry.linkname)
                update.added = True

        elif entry.kind == 'regular':
            if disk is None or not disk.is_regular or not files_equal(entry, disk):
                keeper.open(parent)
                # Writing in place would also change any other hard link
                # to the old inode.
                if disk is not None:
                    self._remove(path, disk)
                self.fs.write_file(path, entry.reader)
                logger.debug("wrote %s (%d bytes)", path, entry.size)
                update.added = True

        elif entry.kind == 'directory':
            if disk is not None and not disk.is_dir:
                keeper.open(parent)
                self._remove(path, disk)
                disk = None

            if disk is None:
                keeper.open(parent)
                self.fs.mkdir(path, entry.perm)
                logger.debug("created directory %s", path)
                update.added = True

        elif entry.kind == 'symlink':
            if disk is not None:
                if not disk.is_symlink or self.fs.readlink(path) != entry.linkname:
                    keeper.open(parent)
                    self._remove(path, disk)
                    disk = None

            if disk is None:
                keeper.open(parent)
                self.fs.symlink(entry.linkname, path)
                logger.debug("symlinked %s -> %s", path, entry.linkname)
                update.added = True

        else:
            raise UnsupportedEntryError(f"unexpected file type: {path}: {entry.kind}")

    def _update_stat_if_diff(self, entry: ArchiveEntry, disk: DiskStat,
                             keeper: BaseDirKeeper, update: Update) -> None:
        path = entry.path
        parent = parent_dir(path)
        is_symlink = entry.kind == 'symlink'

        if entry.uid != disk.uid or entry.gid != disk.gid:
            keeper.open(parent)
            if is_symlink:
                self.fs.lchown(path, entry.uid, entry.gid)
            else:
                self.fs.chown(path, entry.uid, entry.gid)
            update.uid = entry.uid
            update.gid = entry.gid

        if not is_symlink and entry.perm != disk.perm:
            keeper.open(parent)
            self.fs.chmod(path, entry.perm)
            update.perm = entry.perm

        if entry.mtime_ns != disk.mtime_ns:
            keeper.open(parent)
            self.fs.chtimes(path, entry.mtime_ns, entry.mtime_ns)
            keeper.retime(path, entry.mtime_ns)
            update.mtime_ns = entry.mtime_ns

    def _delete_paths(self, inventory: set[str], keeper: BaseDirKeeper) -> None:
        for path in sorted(inventory):
            if path == '/':
                continue

            # Some walk results cannot be looked up on their own, e.g.
            # /$OrphanFiles or names holding control characters.
            if self.fs.lstat(path) is None:
                logger.debug("skipping unreachable path %r", path)
                continue

            keeper.open(parent_dir(path))
            self.fs.remove_all(path)
            logger.debug("deleted %s", path)
            self._notify(PathUpdate(path, Update(deleted=True)))


def sync_tar(archive: Path | str | BinaryIO, fs: DiskFilesystem,
             hooks: Iterable[Hook] = (), warn_unordered: bool = True) -> SyncSummary:
    """Sync a tar archive (file path, '-' for stdin, or binary file object) onto `fs`."""
    summary = SyncSummary()
    if isinstance(archive, (str, Path)):
        stream = TarStream.open(archive)
    else:
        stream = TarStream(archive)

    with stream:
        sync = TarSync(stream, fs, hooks=[*hooks, summary],
                       warn_unordered=warn_unordered)
        sync.run()
    return summary
