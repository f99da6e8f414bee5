#!/usr/bin/env python3

# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.17
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# examples/sync_example.py

"""
Example: keep a directory tree in step with a series of root filesystem
tarballs, logging every change as a JSON line.

Run it against a scratch directory, or a loop-mounted partition:

    python examples/sync_example.py /mnt/part rootfs-*.tar.gz
"""

import json
import sys
from pathlib import Path

from image_sync import LocalFilesystem, PathUpdate, SyncError, sync_tar


def sync_series(root: Path, archives: list[Path]) -> int:
    """Sync each archive in turn; later archives win."""
    log_path = root.parent / f"{root.name}-changes.jsonl"

    with open(log_path, "a") as log, LocalFilesystem(root) as fs:
        def record(upd: PathUpdate) -> None:
            log.write(json.dumps(upd.to_dict()) + "\n")

        for archive in archives:
            print(f"Syncing {archive.name} -> {root}")
            try:
                summary = sync_tar(archive, fs, hooks=[record])
            except SyncError as e:
                print(f"  failed: {e}")
                return 1
            print(f"  {summary}")

    print(f"\nChange log written to: {log_path}")
    return 0


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print(f"usage: {sys.argv[0]} ROOT ARCHIVE...")
        sys.exit(2)

    sys.exit(sync_series(Path(sys.argv[1]), [Path(a) for a in sys.argv[2:]]))
