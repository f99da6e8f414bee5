# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.17
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/fixtures/memory_fs.py
"""In-memory partition for exercising the sync engine without a disk image.

Hard links share one `Node` object, so they share an inode number and all
metadata. Creating or removing an entry bumps the parent directory's mtime
from a fake clock, the way a real filesystem does, so tests can check that
directory timestamps are put back.
"""

import posixpath
from dataclasses import dataclass
from typing import BinaryIO

from image_sync.disk import DiskFilesystem
from image_sync.errors import DiskError, NotMountedError
from image_sync.types import DiskStat

SECOND = 1_000_000_000
ROOT_MTIME = 1_600_000_000 * SECOND
CLOCK_START = 2_000_000_000 * SECOND


@dataclass
class Node:
    """One inode."""
    kind: str
    perm: int
    inode: int
    mtime_ns: int
    uid: int = 0
    gid: int = 0
    data: bytes = b''
    target: str = ''


class MemoryFilesystem(DiskFilesystem):
    """Fake partition keyed by absolute path."""

    def __init__(self, mounted: bool = True):
        self.mounted = mounted
        self.nodes: dict[str, Node] = {
            '/': Node('directory', 0o755, inode=1, mtime_ns=ROOT_MTIME)
        }
        # paths a low-level walk reports but lstat cannot find
        self.walk_artifacts: set[str] = set()
        self.fail_ops: set[str] = set()
        self.writes: list[str] = []
        self._next_inode = 2
        self._clock = CLOCK_START

    # test helpers

    def _new_node(self, kind: str, perm: int, **kwargs) -> Node:
        node = Node(kind, perm, inode=self._next_inode, mtime_ns=self._tick(),
                    **kwargs)
        self._next_inode += 1
        return node

    def _tick(self) -> int:
        self._clock += SECOND
        return self._clock

    def put_dir(self, path: str, perm: int = 0o755, mtime_ns: int = 0,
                uid: int = 0, gid: int = 0) -> Node:
        node = self._new_node('directory', perm, uid=uid, gid=gid)
        node.mtime_ns = mtime_ns
        self.nodes[path] = node
        return node

    def put_file(self, path: str, data: bytes | str = b'', perm: int = 0o644,
                 mtime_ns: int = 0, uid: int = 0, gid: int = 0) -> Node:
        if isinstance(data, str):
            data = data.encode()
        node = self._new_node('regular', perm, uid=uid, gid=gid, data=data)
        node.mtime_ns = mtime_ns
        self.nodes[path] = node
        return node

    def put_symlink(self, path: str, target: str, mtime_ns: int = 0,
                    uid: int = 0, gid: int = 0) -> Node:
        node = self._new_node('symlink', 0o777, uid=uid, gid=gid, target=target)
        node.mtime_ns = mtime_ns
        self.nodes[path] = node
        return node

    def put_link(self, target: str, path: str) -> Node:
        self.nodes[path] = self.nodes[target]
        return self.nodes[path]

    def mtime(self, path: str) -> int:
        return self.nodes[path].mtime_ns

    def paths(self) -> set[str]:
        return set(self.nodes)

    # internals

    def _check(self, op: str, path: str) -> None:
        if op in self.fail_ops:
            raise DiskError(op, path, "injected failure")

    def _parent(self, op: str, path: str) -> Node:
        parent = self.nodes.get(posixpath.dirname(path))
        if parent is None or parent.kind != 'directory':
            raise DiskError(op, path, "No such file or directory")
        return parent

    def _touch_parent(self, path: str) -> None:
        self.nodes[posixpath.dirname(path)].mtime_ns = self._tick()

    def _resolve(self, path: str) -> str | None:
        for _ in range(40):
            node = self.nodes.get(path)
            if node is None or node.kind != 'symlink':
                return path if node is not None else None
            path = posixpath.normpath(
                posixpath.join(posixpath.dirname(path), node.target)
            )
        return None

    def _get(self, op: str, path: str, follow: bool = False) -> Node:
        key = self._resolve(path) if follow else path
        node = self.nodes.get(key) if key is not None else None
        if node is None:
            raise DiskError(op, path, "No such file or directory")
        return node

    @staticmethod
    def _to_stat(node: Node) -> DiskStat:
        return DiskStat(
            kind=node.kind,
            size=len(node.data) if node.kind == 'regular' else 0,
            mtime_ns=node.mtime_ns,
            perm=node.perm,
            uid=node.uid,
            gid=node.gid,
            inode=node.inode,
        )

    # DiskFilesystem

    def is_mounted(self) -> bool:
        return self.mounted

    def walk_all(self) -> set[str]:
        if not self.mounted:
            raise NotMountedError("nothing mounted at root")
        return set(self.nodes) | self.walk_artifacts

    def lstat(self, path: str) -> DiskStat | None:
        self._check('lstat', path)
        node = self.nodes.get(path)
        return self._to_stat(node) if node is not None else None

    def stat(self, path: str) -> DiskStat | None:
        self._check('stat', path)
        key = self._resolve(path)
        return self._to_stat(self.nodes[key]) if key is not None else None

    def mkdir(self, path: str, perm: int) -> None:
        self._check('mkdir', path)
        self._parent('mkdir', path)
        if path in self.nodes:
            raise DiskError('mkdir', path, "File exists")
        self.nodes[path] = self._new_node('directory', perm)
        self._touch_parent(path)

    def remove(self, path: str) -> None:
        self._check('remove', path)
        self._get('remove', path)
        if any(p.startswith(path.rstrip('/') + '/') for p in self.nodes):
            raise DiskError('remove', path, "Directory not empty")
        del self.nodes[path]
        self._touch_parent(path)

    def remove_all(self, path: str) -> None:
        self._check('remove_all', path)
        self._get('remove', path)
        prefix = path.rstrip('/') + '/'
        for p in [p for p in self.nodes if p == path or p.startswith(prefix)]:
            del self.nodes[p]
        self._touch_parent(path)

    def link(self, target: str, path: str) -> None:
        self._check('link', path)
        self._parent('link', path)
        node = self._get('link', target)
        if path in self.nodes:
            raise DiskError('link', path, "File exists")
        self.nodes[path] = node
        self._touch_parent(path)

    def symlink(self, target: str, path: str) -> None:
        self._check('symlink', path)
        self._parent('symlink', path)
        if path in self.nodes:
            raise DiskError('symlink', path, "File exists")
        self.nodes[path] = self._new_node('symlink', 0o777, target=target)
        self._touch_parent(path)

    def readlink(self, path: str) -> str:
        self._check('readlink', path)
        node = self._get('readlink', path)
        if node.kind != 'symlink':
            raise DiskError('readlink', path, "Invalid argument")
        return node.target

    def chown(self, path: str, uid: int, gid: int) -> None:
        self._check('chown', path)
        node = self._get('chown', path, follow=True)
        node.uid, node.gid = uid, gid

    def lchown(self, path: str, uid: int, gid: int) -> None:
        self._check('lchown', path)
        node = self._get('lchown', path)
        node.uid, node.gid = uid, gid

    def chmod(self, path: str, perm: int) -> None:
        self._check('chmod', path)
        node = self._get('chmod', path, follow=True)
        node.perm = perm

    def chtimes(self, path: str, atime_ns: int, mtime_ns: int) -> None:
        self._check('chtimes', path)
        node = self._get('chtimes', path)
        node.mtime_ns = mtime_ns

    def write_file(self, path: str, reader: BinaryIO) -> None:
        self._check('write_file', path)
        self._parent('write file', path)
        data = reader.read()
        self.writes.append(path)

        node = self.nodes.get(path)
        if node is not None and node.kind != 'regular':
            raise DiskError('write file', path, "Is a directory")
        # a fresh inode, so other hard links to the old one keep their data
        self.nodes[path] = self._new_node('regular', 0o644, data=data)
        self._touch_parent(path)
