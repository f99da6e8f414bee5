# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.17
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# image-sync/src/image_sync/stream.py

"""Forward-only tar archive stream.

Entries are read with `tarfile` in streaming mode, so the archive can come
from a pipe and is never rewound.
"""

import posixpath
import sys
import tarfile
from pathlib import Path
from typing import BinaryIO, Final, Iterator

from .errors import ArchiveError, UnsupportedEntryError
from .types import ArchiveEntry, EntryKind


def normalize_path(name: str) -> str:
    """Map an archive member name to an absolute path under the partition root."""
    return posixpath.normpath(posixpath.join('/', name.lstrip('/')))


def _to_ns(mtime: int | float) -> int:
    if isinstance(mtime, int):
        return mtime * 1_000_000_000
    return int(round(mtime * 1_000_000_000))


class _EntryReader:
    """Content reader that reports truncated archives as `ArchiveError`."""

    def __init__(self, fileobj: BinaryIO, path: str):
        self._fileobj = fileobj
        self._path = path

    def read(self, size: int = -1) -> bytes:
        try:
            return self._fileobj.read(size)
        except (tarfile.TarError, EOFError) as e:
            raise ArchiveError(f"failed to read file in tar: {self._path}: {e}") from e

    def close(self) -> None:
        self._fileobj.close()


class TarStream:
    """Sequential reader over the members of a tar archive."""

    KINDS: Final[dict[bytes, EntryKind]] = {
        tarfile.REGTYPE: 'regular',
        tarfile.AREGTYPE: 'regular',
        tarfile.CONTTYPE: 'regular',
        tarfile.GNUTYPE_SPARSE: 'regular',
        tarfile.DIRTYPE: 'directory',
        tarfile.SYMTYPE: 'symlink',
        tarfile.LNKTYPE: 'hardlink',
    }

    def __init__(self, fileobj: BinaryIO, close_file: bool = False):
        self.fileobj = fileobj
        self.close_file = close_file
        try:
            # r|* auto-detects gzip, bz2 and xz compression
            self.tar = tarfile.open(fileobj=fileobj, mode='r|*')
        except (tarfile.TarError, EOFError) as e:
            raise ArchiveError(f"failed to read tar: {e}") from e
        self._consumed = False

    @classmethod
    def open(cls, path: Path | str) -> "TarStream":
        """Open an archive file, or standard input when `path` is '-'."""
        if str(path) == '-':
            return cls(sys.stdin.buffer)
        f = open(path, 'rb')
        try:
            return cls(f, close_file=True)
        except ArchiveError:
            f.close()
            raise

    def __enter__(self) -> "TarStream":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self.tar.close()
        if self.close_file:
            self.fileobj.close()

    def _to_entry(self, member: tarfile.TarInfo) -> ArchiveEntry:
        path = normalize_path(member.name)
        kind = self.KINDS.get(member.type)
        if kind is None:
            raise UnsupportedEntryError(
                f"unexpected file type: {path}: {member.type!r}"
            )

        linkname = None
        reader = None
        if kind == 'hardlink':
            linkname = normalize_path(member.linkname)
        elif kind == 'symlink':
            linkname = member.linkname
        elif kind == 'regular':
            reader = _EntryReader(self.tar.extractfile(member), path)

        return ArchiveEntry(
            path=path,
            kind=kind,
            size=member.size if kind == 'regular' else 0,
            uid=member.uid,
            gid=member.gid,
            perm=member.mode & 0o7777,
            mtime_ns=_to_ns(member.mtime),
            linkname=linkname,
            reader=reader,
        )

    def __iter__(self) -> Iterator[ArchiveEntry]:
        if self._consumed:
            raise ArchiveError("tar stream can only be read once")
        self._consumed = True

        while True:
            try:
                member = self.tar.next()
            except (tarfile.TarError, EOFError) as e:
                raise ArchiveError(f"failed to get next file in tar: {e}") from e
            if member is None:
                return
            yield self._to_entry(member)
