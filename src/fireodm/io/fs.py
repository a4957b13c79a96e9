"""
Filesystem helpers for the JSON file storage driver.

Responsibilities
- Provide a minimal stdlib-only abstraction for the file operations FileStorage needs:
  directory creation, write handles, fsync, atomic renames, listing and removal.
- Establish clear semantics for the atomic write path: tmp write -> fsync -> atomic rename.

Notes
- Atomicity via os.replace is guaranteed only when src and dst reside on the same filesystem.
- All helpers are synchronous; FileStorage runs them in worker threads.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import BinaryIO

JSON_SUFFIX = ".json"
TMP_SUFFIX = ".tmp"


def makedirs(path: str, exist_ok: bool = True) -> None:
    """Create directories recursively."""
    os.makedirs(path, exist_ok=exist_ok)


@contextmanager
def open_write(path: str) -> Iterator[BinaryIO]:
    """
    Open a file for binary write as a context manager.

    Notes:
        Caller is responsible for the atomic os.replace of the temporary file to its
        final path.
    """
    fh = open(path, "wb")
    try:
        yield fh
    finally:
        fh.close()


def fsync_file(fh: BinaryIO) -> None:
    """Flush and fsync an open file handle."""
    fh.flush()
    os.fsync(fh.fileno())


def rename_atomic(src: str, dst: str) -> None:
    """
    Atomically rename src -> dst on the same filesystem.

    Notes:
        Uses os.replace; tmp and final must live under the same mount/volume.
    """
    os.replace(src, dst)


def write_atomic(path: str, payload: bytes) -> None:
    """
    Write bytes to `path` via tmp file, fsync and atomic rename.

    Notes:
        A failed write leaves no tmp file behind (best effort) and never a partial `path`.
    """
    makedirs(os.path.dirname(path) or ".")
    tmp = path + TMP_SUFFIX
    try:
        with open_write(tmp) as fh:
            fh.write(payload)
            fsync_file(fh)
        rename_atomic(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.remove(tmp)
        raise


def remove(path: str) -> bool:
    """Remove a file; return False if it did not exist."""
    try:
        os.remove(path)
    except FileNotFoundError:
        return False
    return True


def list_json_files(path: str) -> list[str]:
    """
    List *.json files in a directory (non-recursive), sorted by name.

    Returns:
        list[str]: Full paths; [] if the directory does not exist.
    """
    try:
        names = os.listdir(path)
    except FileNotFoundError:
        return []
    return [os.path.join(path, n) for n in sorted(names) if n.endswith(JSON_SUFFIX)]
