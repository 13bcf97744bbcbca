"""
Filesystem adapter — atomic writes, links, directories, ownership.

All mutations that replace something visible under a final name go
through a temporary sibling and ``os.replace``, so a crash never leaves
a half-written file or a dangling half-made link at the destination.
"""

from __future__ import annotations

import grp
import logging
import os
import pwd
import shutil
import stat
import tempfile
import time
from pathlib import Path

logger = logging.getLogger(__name__)


# ── Ownership helpers ───────────────────────────────────────────


def _uid(owner: str | int | None) -> int:
    if owner is None:
        return -1
    if isinstance(owner, int):
        return owner
    return pwd.getpwnam(owner).pw_uid


def _gid(group: str | int | None) -> int:
    if group is None:
        return -1
    if isinstance(group, int):
        return group
    return grp.getgrnam(group).gr_gid


def owner_matches(path: Path, owner: str | int | None, group: str | int | None) -> bool:
    """Whether ``path`` has the given owner/group (None = don't care).

    An owner or group that does not exist yet cannot own anything, so
    the answer is False rather than a lookup error.
    """
    st = path.lstat()
    try:
        if owner is not None and st.st_uid != _uid(owner):
            return False
        if group is not None and st.st_gid != _gid(group):
            return False
    except KeyError:
        return False
    return True


def mode_of(path: Path) -> int:
    return stat.S_IMODE(path.lstat().st_mode)


def set_owner(path: Path, owner: str | int | None, group: str | int | None) -> None:
    if owner is None and group is None:
        return
    os.chown(path, _uid(owner), _gid(group), follow_symlinks=False)


def chown_tree(root: Path, owner: str | int | None, group: str | int | None) -> None:
    """Recursive chown, not following symlinks."""
    set_owner(root, owner, group)
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            set_owner(Path(dirpath) / name, owner, group)


def restrict_tree(root: Path) -> None:
    """Make a tree group-readable (``g+rX``) and closed to others (``o-rwx``).

    Directories and files that are executable by the owner also become
    group-executable, so a service account in the group can run them.
    """
    for path in [root, *root.rglob("*")]:
        if path.is_symlink():
            continue
        mode = mode_of(path)
        mode |= stat.S_IRGRP
        if path.is_dir() or mode & stat.S_IXUSR:
            mode |= stat.S_IXGRP
        mode &= ~(stat.S_IROTH | stat.S_IWOTH | stat.S_IXOTH)
        os.chmod(path, mode)


def tree_restricted(root: Path, owner: str | int | None, group: str | int | None) -> bool:
    """Probe counterpart of ``chown_tree`` + ``restrict_tree``."""
    for path in [root, *root.rglob("*")]:
        if path.is_symlink():
            continue
        if not owner_matches(path, owner, group):
            return False
        mode = mode_of(path)
        if mode & (stat.S_IROTH | stat.S_IWOTH | stat.S_IXOTH):
            return False
        if not mode & stat.S_IRGRP:
            return False
        if (path.is_dir() or mode & stat.S_IXUSR) and not mode & stat.S_IXGRP:
            return False
    return True


# ── Directories ─────────────────────────────────────────────────


def dir_matches(
    path: Path,
    mode: int | None = None,
    owner: str | int | None = None,
    group: str | int | None = None,
) -> bool:
    if not path.is_dir() or path.is_symlink():
        return False
    if mode is not None and mode_of(path) != mode:
        return False
    return owner_matches(path, owner, group)


def ensure_dir(
    path: Path,
    mode: int = 0o755,
    owner: str | int | None = None,
    group: str | int | None = None,
) -> None:
    """Create ``path`` (and parents) and set its mode and ownership."""
    path.mkdir(parents=True, exist_ok=True)
    os.chmod(path, mode)
    set_owner(path, owner, group)


# ── Files ───────────────────────────────────────────────────────


def read_bytes_or_none(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
        return None


def file_matches(
    path: Path,
    content: str | bytes,
    mode: int | None = None,
    owner: str | int | None = None,
    group: str | int | None = None,
) -> bool:
    """Byte-for-byte content comparison plus optional metadata."""
    data = content.encode("utf-8") if isinstance(content, str) else content
    if path.is_symlink() or read_bytes_or_none(path) != data:
        return False
    if mode is not None and mode_of(path) != mode:
        return False
    return owner_matches(path, owner, group)


def atomic_write(
    path: Path,
    content: str | bytes,
    mode: int = 0o644,
    owner: str | int | None = None,
    group: str | int | None = None,
) -> None:
    """Write ``content`` to ``path`` atomically.

    The data goes to a temp file in the same directory, which gets its
    final mode and ownership before being renamed over ``path``.
    """
    data = content.encode("utf-8") if isinstance(content, str) else content
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.chmod(tmp, mode)
        set_owner(tmp, owner, group)
        os.replace(tmp, path)
        logger.debug("Wrote %s (%d bytes)", path, len(data))
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def backup_file(path: Path) -> Path | None:
    """Copy ``path`` to ``PATH.bak.YYYYMMDD_HHMMSS`` preserving metadata.

    Returns:
        The backup path, or None when ``path`` does not exist.
    """
    if not path.exists():
        logger.debug("backup: path does not exist, skipping: %s", path)
        return None
    ts = time.strftime("%Y%m%d_%H%M%S")
    dest = path.with_name(f"{path.name}.bak.{ts}")
    n = 1
    while dest.exists():
        dest = path.with_name(f"{path.name}.bak.{ts}.{n}")
        n += 1
    shutil.copy2(path, dest)
    logger.info("Backed up %s → %s", path, dest)
    return dest


# ── Symlinks ────────────────────────────────────────────────────


def link_points_to(link: Path, target: Path) -> bool:
    """Whether ``link`` is a symlink that resolves to ``target``."""
    if not link.is_symlink():
        return False
    return os.path.realpath(link) == os.path.realpath(target)


def atomic_symlink(target: Path, link: Path) -> None:
    """Point ``link`` at ``target``, replacing whatever is there atomically."""
    link.parent.mkdir(parents=True, exist_ok=True)
    tmp = link.with_name(f".{link.name}.{os.getpid()}.tmp")
    tmp.unlink(missing_ok=True)
    os.symlink(target, tmp)
    try:
        os.replace(tmp, link)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    logger.debug("Linked %s → %s", link, target)


def is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)
