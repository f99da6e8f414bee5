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
# image-sync/src/image_sync/disk.py

"""Filesystem handles for a single mounted disk partition.

All paths are absolute paths inside the partition ('/' is the partition
root). `lstat` and `stat` return None for missing paths; every other
failure is raised as `DiskError`.
"""

import errno
import logging
import os
import posixpath
import shutil
import stat
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator

from .errors import DiskError, NotMountedError, SyncError
from .types import DiskKind, DiskStat, PERM_MASK

logger = logging.getLogger(__name__)

_MISSING_ERRNOS = (errno.ENOENT, errno.ENOTDIR)


def _kind(mode: int) -> DiskKind:
    if stat.S_ISREG(mode):
        return 'regular'
    if stat.S_ISDIR(mode):
        return 'directory'
    if stat.S_ISLNK(mode):
        return 'symlink'
    return 'other'


class DiskFilesystem(ABC):
    """Operations the sync engine needs from a mounted partition.

    Handles are not safe for concurrent use; callers run at most one sync
    pass against a handle at a time.
    """

    def __enter__(self) -> "DiskFilesystem":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        """Release the handle."""

    @abstractmethod
    def is_mounted(self) -> bool:
        """Whether a partition is mounted at '/'."""

    @abstractmethod
    def walk_all(self) -> set[str]:
        """Every path on the partition, including ones a directory walk misses."""

    @abstractmethod
    def lstat(self, path: str) -> DiskStat | None:
        """State of `path` itself, or None if it does not exist."""

    @abstractmethod
    def stat(self, path: str) -> DiskStat | None:
        """Like `lstat` but follows symlinks."""

    @abstractmethod
    def mkdir(self, path: str, perm: int) -> None:
        """Create a directory with permission bits `perm`."""

    @abstractmethod
    def remove(self, path: str) -> None:
        """Remove a file, symlink or empty directory."""

    @abstractmethod
    def remove_all(self, path: str) -> None:
        """Remove a path and everything below it."""

    @abstractmethod
    def link(self, target: str, path: str) -> None:
        """Create `path` as a hard link to `target`."""

    @abstractmethod
    def symlink(self, target: str, path: str) -> None:
        """Create `path` as a symlink pointing at `target`."""

    @abstractmethod
    def readlink(self, path: str) -> str:
        """Target of the symlink at `path`."""

    @abstractmethod
    def chown(self, path: str, uid: int, gid: int) -> None:
        """Set owner and group, following symlinks."""

    @abstractmethod
    def lchown(self, path: str, uid: int, gid: int) -> None:
        """Set owner and group of a symlink itself."""

    @abstractmethod
    def chmod(self, path: str, perm: int) -> None:
        """Set permission bits. Never called for symlinks."""

    @abstractmethod
    def chtimes(self, path: str, atime_ns: int, mtime_ns: int) -> None:
        """Set access and modification times without following symlinks."""

    @abstractmethod
    def write_file(self, path: str, reader: BinaryIO) -> None:
        """Replace the contents of `path` with everything `reader` yields."""


@contextmanager
def _translate(op: str, path: str) -> Iterator[None]:
    try:
        yield
    except OSError as e:
        raise DiskError(op, path, e.strerror or e) from e


class LocalFilesystem(DiskFilesystem):
    """A partition (or plain directory tree) visible in the host filesystem.

    Used for partitions loop-mounted on the host and for tests. The host
    offers no lower-level enumeration than a directory walk, so `walk_all`
    cannot see orphaned inodes.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root)
        self._real_root = os.path.realpath(self.root)

    def _host(self, path: str) -> str:
        """Host path for `path`, refusing parents that resolve outside the root."""
        host = os.path.join(self.root, path.lstrip('/'))
        parent = os.path.realpath(os.path.dirname(host))
        if os.path.commonpath([self._real_root, parent]) != self._real_root:
            raise DiskError('resolve', path, "outside the partition root")
        return host

    def _partition_path(self, host: str) -> str:
        rel = os.path.relpath(host, self.root)
        return '/' if rel == '.' else '/' + rel

    def _walk_error(self, e: OSError) -> None:
        raise DiskError('walk', self._partition_path(e.filename), e.strerror) from e

    def _stat(self, path: str, follow: bool) -> DiskStat | None:
        try:
            st = os.stat(self._host(path), follow_symlinks=follow)
        except OSError as e:
            if e.errno in _MISSING_ERRNOS:
                return None
            raise DiskError('stat' if follow else 'lstat', path, e.strerror) from e
        return DiskStat(
            kind=_kind(st.st_mode),
            size=st.st_size,
            mtime_ns=st.st_mtime_ns,
            perm=stat.S_IMODE(st.st_mode),
            uid=st.st_uid,
            gid=st.st_gid,
            inode=st.st_ino,
        )

    def is_mounted(self) -> bool:
        return self.root.is_dir()

    def walk_all(self) -> set[str]:
        if not self.is_mounted():
            raise NotMountedError(f"nothing mounted at root: {self.root}")

        paths = {'/'}
        with _translate('walk', '/'):
            for dirpath, dirnames, filenames in os.walk(self.root,
                                                        onerror=self._walk_error):
                base = self._partition_path(dirpath)
                for name in dirnames + filenames:
                    paths.add(posixpath.join(base, name))
        return paths

    def lstat(self, path: str) -> DiskStat | None:
        return self._stat(path, follow=False)

    def stat(self, path: str) -> DiskStat | None:
        return self._stat(path, follow=True)

    def mkdir(self, path: str, perm: int) -> None:
        with _translate('mkdir', path):
            os.mkdir(self._host(path), perm)

    def remove(self, path: str) -> None:
        host = self._host(path)
        with _translate('remove', path):
            if os.path.isdir(host) and not os.path.islink(host):
                os.rmdir(host)
            else:
                os.unlink(host)

    def remove_all(self, path: str) -> None:
        host = self._host(path)
        with _translate('remove', path):
            if os.path.isdir(host) and not os.path.islink(host):
                shutil.rmtree(host)
            else:
                os.unlink(host)

    def link(self, target: str, path: str) -> None:
        with _translate('link', path):
            os.link(self._host(target), self._host(path), follow_symlinks=False)

    def symlink(self, target: str, path: str) -> None:
        with _translate('symlink', path):
            os.symlink(target, self._host(path))

    def readlink(self, path: str) -> str:
        with _translate('readlink', path):
            return os.readlink(self._host(path))

    def chown(self, path: str, uid: int, gid: int) -> None:
        with _translate('chown', path):
            os.chown(self._host(path), uid, gid)

    def lchown(self, path: str, uid: int, gid: int) -> None:
        with _translate('lchown', path):
            os.lchown(self._host(path), uid, gid)

    def chmod(self, path: str, perm: int) -> None:
        with _translate('chmod', path):
            os.chmod(self._host(path), perm & PERM_MASK)

    def chtimes(self, path: str, atime_ns: int, mtime_ns: int) -> None:
        with _translate('chtimes', path):
            os.utime(self._host(path), ns=(atime_ns, mtime_ns),
                     follow_symlinks=False)

    def write_file(self, path: str, reader: BinaryIO) -> None:
        with _translate('write file', path):
            with open(self._host(path), 'wb') as f:
                shutil.copyfileobj(reader, f)


class GuestfsFilesystem(DiskFilesystem):
    """A partition inside a disk image, accessed through libguestfs.

    Opening the handle launches the libguestfs appliance and mounts
    `partition` at '/'. `walk_all` uses the Sleuth Kit walk that libguestfs
    exposes, which also reports orphaned and otherwise unreachable entries.
    """

    def __init__(self, image: Path | str, partition: str = '/dev/sda2',
                 readonly: bool = False):
        try:
            import guestfs
        except ImportError as e:
            raise SyncError(
                "libguestfs Python bindings (guestfs) are required for disk images"
            ) from e

        self.image = Path(image)
        self.partition = partition
        self.g = guestfs.GuestFS(python_return_dict=True)
        try:
            self.g.add_drive_opts(str(self.image), readonly=readonly)
            self.g.launch()
            if readonly:
                self.g.mount_ro(partition, '/')
            else:
                self.g.mount(partition, '/')
        except RuntimeError as e:
            self.g.close()
            raise DiskError('open partition', f"{image}:{partition}", e) from e
        logger.debug("mounted %s from %s", partition, image)

    def close(self) -> None:
        try:
            self.g.umount_all()
            self.g.shutdown()
        finally:
            self.g.close()

    @contextmanager
    def _call(self, op: str, path: str) -> Iterator[None]:
        try:
            yield
        except RuntimeError as e:
            raise DiskError(op, path, e) from e

    def _root_device(self) -> str | None:
        with self._call('get mount points', '/'):
            mountpoints = self.g.mountpoints()
        for device, mountpoint in mountpoints.items():
            if mountpoint == '/':
                return device
        return None

    def is_mounted(self) -> bool:
        return self._root_device() is not None

    def walk_all(self) -> set[str]:
        device = self._root_device()
        if device is None:
            raise NotMountedError("nothing mounted at root")

        with self._call('walk disk', device):
            entries = self.g.filesystem_walk(device)
        return {
            posixpath.normpath(posixpath.join('/', e['tsk_name']))
            for e in entries
        }

    def _stat(self, path: str, follow: bool) -> DiskStat | None:
        try:
            st = self.g.statns(path) if follow else self.g.lstatns(path)
        except RuntimeError as e:
            if self.g.last_errno() in _MISSING_ERRNOS:
                return None
            raise DiskError('stat' if follow else 'lstat', path, e) from e
        return DiskStat(
            kind=_kind(st['st_mode']),
            size=st['st_size'],
            mtime_ns=st['st_mtime_sec'] * 1_000_000_000 + st['st_mtime_nsec'],
            perm=stat.S_IMODE(st['st_mode']),
            uid=st['st_uid'],
            gid=st['st_gid'],
            inode=st['st_ino'],
        )

    def lstat(self, path: str) -> DiskStat | None:
        return self._stat(path, follow=False)

    def stat(self, path: str) -> DiskStat | None:
        return self._stat(path, follow=True)

    def mkdir(self, path: str, perm: int) -> None:
        with self._call('mkdir', path):
            self.g.mkdir_mode(path, perm & PERM_MASK)

    def remove(self, path: str) -> None:
        with self._call('remove', path):
            if self.g.is_dir(path, followsymlinks=False):
                self.g.rmdir(path)
            else:
                self.g.rm(path)

    def remove_all(self, path: str) -> None:
        with self._call('remove', path):
            self.g.rm_rf(path)

    def link(self, target: str, path: str) -> None:
        with self._call('link', path):
            self.g.ln(target, path)

    def symlink(self, target: str, path: str) -> None:
        with self._call('symlink', path):
            self.g.ln_s(target, path)

    def readlink(self, path: str) -> str:
        with self._call('readlink', path):
            return self.g.readlink(path)

    def chown(self, path: str, uid: int, gid: int) -> None:
        with self._call('chown', path):
            self.g.chown(uid, gid, path)

    def lchown(self, path: str, uid: int, gid: int) -> None:
        with self._call('lchown', path):
            self.g.lchown(uid, gid, path)

    def chmod(self, path: str, perm: int) -> None:
        with self._call('chmod', path):
            self.g.chmod(perm & PERM_MASK, path)

    def chtimes(self, path: str, atime_ns: int, mtime_ns: int) -> None:
        atime_sec, atime_nsec = divmod(atime_ns, 1_000_000_000)
        mtime_sec, mtime_nsec = divmod(mtime_ns, 1_000_000_000)
        with self._call('chtimes', path):
            self.g.utimens(path, atime_sec, atime_nsec, mtime_sec, mtime_nsec)

    def write_file(self, path: str, reader: BinaryIO) -> None:
        # upload only takes a host file name
        with tempfile.NamedTemporaryFile(prefix='image-sync-') as tmp:
            with _translate('buffer file', path):
                shutil.copyfileobj(reader, tmp)
                tmp.flush()
            with self._call('write file', path):
                self.g.upload(tmp.name, path)
