"""
Run lock — one installer run per host at a time.

The runner assumes exclusive access to the package database, the
filesystem paths it manages and the service manager. A non-blocking
``flock`` on a per-installer lock file turns a concurrent second run
into an immediate PreconditionFailed instead of interleaved mutations.

The lock is advisory and released by the kernel when the process exits,
so a killed run never leaves a stale lock behind.
"""

from __future__ import annotations

import fcntl
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from hostconverge.core.errors import PreconditionFailed

logger = logging.getLogger(__name__)

DEFAULT_LOCK_DIR = Path("/run/lock")


def default_lock_path(installer: str, lock_dir: Path | None = None) -> Path:
    return (lock_dir or DEFAULT_LOCK_DIR) / f"hostconverge-{installer}.lock"


@contextmanager
def run_lock(path: Path) -> Iterator[Path]:
    """Hold an exclusive advisory lock on ``path`` for the block.

    Raises:
        PreconditionFailed: Another process holds the lock, or the lock
            file cannot be opened.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
    except OSError as e:
        raise PreconditionFailed(f"Cannot open lock file {path}: {e}") from e

    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            holder = _read_holder(fd)
            raise PreconditionFailed(
                f"Another run holds {path}" + (f" (pid {holder})" if holder else "")
            ) from None

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        logger.debug("Acquired run lock %s", path)
        try:
            yield path
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug("Released run lock %s", path)
    finally:
        os.close(fd)


def _read_holder(fd: int) -> str:
    try:
        os.lseek(fd, 0, os.SEEK_SET)
        return os.read(fd, 32).decode(errors="replace").strip()
    except OSError:
        return ""
