"""
File steps — directories, templated files, managed blocks, links, modes.

Content is compared byte-for-byte against what the step would write;
identical means no-op, different means an atomic replace through a
temp file in the same directory. Files the installer does not fully own
(``backup=True``) get a timestamped copy before they are rewritten.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from pathlib import Path

from hostconverge.adapters.shell import filesystem as fs
from hostconverge.core.errors import ApplyFailed
from hostconverge.core.models.action import Receipt
from hostconverge.core.models.state import RepairPolicy, SatisfiedState
from hostconverge.core.models.step import Step
from hostconverge.core.steps.base import state_of

logger = logging.getLogger(__name__)

Owner = str | int | None


# ── Directories ─────────────────────────────────────────────────


def directory_step(
    path: Path,
    mode: int = 0o755,
    owner: Owner = None,
    group: Owner = None,
    name: str | None = None,
    depends_on: tuple[str, ...] = (),
) -> Step:
    """A directory with exact mode and ownership.

    Anything that is not a real directory at ``path`` (a file, a
    symlink) is broken and gets removed before the directory is made.
    """
    name = name or f"dir:{path}"

    def probe() -> SatisfiedState:
        if path.is_symlink() or (path.exists() and not path.is_dir()):
            return SatisfiedState.BROKEN
        return state_of(fs.dir_matches(path, mode, owner, group))

    def repair() -> None:
        path.unlink()

    def apply() -> Receipt:
        fs.ensure_dir(path, mode, owner, group)
        return Receipt.success(name, f"{path} ({oct(mode)})")

    return Step(
        name=name,
        probe=probe,
        apply=apply,
        on_mismatch=RepairPolicy.RECREATE_IF_BROKEN,
        repair=repair,
        depends_on=depends_on,
        description=f"Directory {path}",
    )


# ── Files ───────────────────────────────────────────────────────


def file_step(
    path: Path,
    render: Callable[[], str],
    mode: int = 0o644,
    owner: Owner = None,
    group: Owner = None,
    only_if_missing: bool = False,
    backup: bool = False,
    name: str | None = None,
    depends_on: tuple[str, ...] = (),
) -> Step:
    """A file whose content is produced by ``render``.

    With ``only_if_missing`` the file is seeded once and never
    overwritten afterwards (operator-edited defaults).
    """
    name = name or f"file:{path}"

    def probe() -> SatisfiedState:
        if path.is_dir():
            return SatisfiedState.BROKEN
        if only_if_missing:
            return state_of(path.exists())
        return state_of(fs.file_matches(path, render(), mode, owner, group))

    def apply() -> Receipt:
        if path.is_dir():
            raise ApplyFailed(f"{path} is a directory", step=name)
        saved = fs.backup_file(path) if backup else None
        fs.atomic_write(path, render(), mode=mode, owner=owner, group=group)
        detail = f"Wrote {path}" + (f" (backup: {saved})" if saved else "")
        return Receipt.success(name, detail, metadata={"backup": str(saved) if saved else None})

    return Step(
        name=name,
        probe=probe,
        apply=apply,
        depends_on=depends_on,
        description=f"File {path}",
    )


def path_mode_step(
    path: Path,
    mode: int,
    owner: Owner = None,
    group: Owner = None,
    name: str | None = None,
    depends_on: tuple[str, ...] = (),
) -> Step:
    """Mode and ownership of an existing path."""
    name = name or f"mode:{path}"

    def probe() -> SatisfiedState:
        if not path.exists():
            return SatisfiedState.MISSING
        return state_of(fs.mode_of(path) == mode and fs.owner_matches(path, owner, group))

    def apply() -> Receipt:
        if not path.exists():
            raise ApplyFailed(f"{path} does not exist", step=name)
        path.chmod(mode)
        fs.set_owner(path, owner, group)
        return Receipt.success(name, f"{path} → {oct(mode)} {owner or ''}:{group or ''}")

    return Step(name=name, probe=probe, apply=apply, depends_on=depends_on)


def tree_owner_step(
    root: Path,
    owner: Owner,
    group: Owner,
    name: str | None = None,
    depends_on: tuple[str, ...] = (),
) -> Step:
    """Recursive ownership of a directory tree."""
    name = name or f"owner:{root}"

    def probe() -> SatisfiedState:
        if not root.exists():
            return SatisfiedState.MISSING
        paths = [root, *root.rglob("*")]
        return state_of(all(p.is_symlink() or fs.owner_matches(p, owner, group) for p in paths))

    def apply() -> Receipt:
        fs.chown_tree(root, owner, group)
        return Receipt.success(name, f"{root} owned by {owner}:{group}")

    return Step(name=name, probe=probe, apply=apply, depends_on=depends_on)


def tree_permissions_step(
    root: Path,
    owner: Owner,
    group: Owner,
    name: str | None = None,
    depends_on: tuple[str, ...] = (),
) -> Step:
    """Tree owned by ``owner:group``, group-readable, closed to others.

    Lets a service account in ``group`` read and execute a root-owned
    install (e.g. a venv) without being able to modify it.
    """
    name = name or f"perms:{root}"

    def probe() -> SatisfiedState:
        if not root.exists():
            return SatisfiedState.MISSING
        return state_of(fs.tree_restricted(root, owner, group))

    def apply() -> Receipt:
        fs.chown_tree(root, owner, group)
        fs.restrict_tree(root)
        return Receipt.success(name, f"{root} → {owner}:{group} g+rX o-rwx")

    return Step(name=name, probe=probe, apply=apply, depends_on=depends_on)


# ── Managed blocks and line edits ───────────────────────────────


def _markers(block_id: str) -> tuple[str, str]:
    return f"# BEGIN hostconverge {block_id}", f"# END hostconverge {block_id}"


def merge_block(existing: str, block_id: str, body: str) -> str:
    """Return ``existing`` with the marked block set to ``body``.

    The block is replaced in place when present, appended otherwise.
    """
    begin, end = _markers(block_id)
    block = f"{begin}\n{body.rstrip()}\n{end}\n"
    pattern = re.compile(
        rf"^{re.escape(begin)}\n.*?^{re.escape(end)}\n?", re.MULTILINE | re.DOTALL,
    )
    if pattern.search(existing):
        return pattern.sub(lambda _m: block, existing, count=1)
    if existing and not existing.endswith("\n"):
        existing += "\n"
    separator = "\n" if existing else ""
    return f"{existing}{separator}{block}"


def managed_block_step(
    path: Path,
    block_id: str,
    body: str,
    backup: bool = True,
    name: str | None = None,
    depends_on: tuple[str, ...] = (),
) -> Step:
    """A marker-delimited block inside a file the installer shares."""
    name = name or f"block:{path}:{block_id}"

    def current() -> str:
        data = fs.read_bytes_or_none(path)
        return data.decode("utf-8") if data is not None else ""

    def probe() -> SatisfiedState:
        text = current()
        return state_of(bool(text) and merge_block(text, block_id, body) == text)

    def apply() -> Receipt:
        text = current()
        mode = fs.mode_of(path) if path.exists() else 0o644
        saved = fs.backup_file(path) if backup else None
        fs.atomic_write(path, merge_block(text, block_id, body), mode=mode)
        return Receipt.success(
            name,
            f"Updated [{block_id}] in {path}" + (f" (backup: {saved})" if saved else ""),
        )

    return Step(name=name, probe=probe, apply=apply, depends_on=depends_on)


def line_normalize_step(
    path: Path,
    pattern: str,
    replacement: str,
    backup: bool = True,
    name: str | None = None,
    depends_on: tuple[str, ...] = (),
) -> Step:
    """Rewrite lines matching ``pattern`` to ``replacement``.

    A missing file has nothing to normalise and counts as satisfied.
    """
    name = name or f"normalize:{path}"
    regex = re.compile(pattern, re.MULTILINE)

    def probe() -> SatisfiedState:
        data = fs.read_bytes_or_none(path)
        if data is None:
            return SatisfiedState.SATISFIED
        return state_of(not regex.search(data.decode("utf-8")))

    def apply() -> Receipt:
        text = path.read_text(encoding="utf-8")
        st = path.stat()
        saved = fs.backup_file(path) if backup else None
        fs.atomic_write(
            path,
            regex.sub(lambda _m: replacement, text),
            mode=fs.mode_of(path),
            owner=st.st_uid,
            group=st.st_gid,
        )
        return Receipt.success(
            name, f"Normalised {path}" + (f" (backup: {saved})" if saved else ""),
        )

    return Step(name=name, probe=probe, apply=apply, depends_on=depends_on)


# ── Links ───────────────────────────────────────────────────────


def symlink_step(
    link: Path,
    target: Path,
    name: str | None = None,
    depends_on: tuple[str, ...] = (),
) -> Step:
    """A symlink at ``link`` resolving to the executable ``target``."""
    name = name or f"link:{link}"

    def apply() -> Receipt:
        if not fs.is_executable(target):
            raise ApplyFailed(f"Link target not found or not executable: {target}", step=name)
        fs.atomic_symlink(target, link)
        return Receipt.success(name, f"{link} → {target}")

    return Step(
        name=name,
        probe=lambda: state_of(fs.link_points_to(link, target)),
        apply=apply,
        depends_on=depends_on,
        description=f"Link {link} → {target}",
    )
