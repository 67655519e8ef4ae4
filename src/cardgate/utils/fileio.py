"""Owner-only, crash-safe file helpers shared by the vault and the ledger.

Every persisted file is written to a temporary sibling first and moved into
place with :func:`os.replace`, so readers see either the previous contents
or the new contents, never a torn write.  Writers take an advisory
``fcntl.flock`` on a ``<name>.lock`` sibling so two processes sharing the
same home directory do not interleave read-modify-write cycles.
"""

from __future__ import annotations

import fcntl
import os
import stat
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

OWNER_RW = stat.S_IRUSR | stat.S_IWUSR  # 0600
OWNER_RWX = stat.S_IRWXU  # 0700


def ensure_private_dir(path: Path) -> Path:
    """Create *path* (and parents) with 0700 permissions if missing."""
    path.mkdir(mode=OWNER_RWX, parents=True, exist_ok=True)
    return path


def _lock_path(path: Path) -> Path:
    return path.parent / f"{path.name}.lock"


@contextmanager
def file_lock(path: Path) -> Iterator[None]:
    """Hold an exclusive advisory lock associated with *path*."""
    lock_path = _lock_path(path)
    ensure_private_dir(lock_path.parent)
    fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, OWNER_RW)
    try:
        fcntl.flock(fd, fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


def atomic_write(path: Path, data: bytes) -> None:
    """Replace *path* with *data*, mode 0600, without a destructive overwrite."""
    ensure_private_dir(path.parent)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        tmp_path.chmod(OWNER_RW)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def shred(path: Path, *, min_size: int = 1024) -> bool:
    """Overwrite *path* with random bytes, then remove it.

    Returns ``False`` when there was nothing to remove.
    """
    try:
        size = path.stat().st_size
    except FileNotFoundError:
        return False
    with path.open("r+b") as handle:
        handle.write(os.urandom(max(size, min_size)))
        handle.flush()
        os.fsync(handle.fileno())
    path.unlink()
    return True
