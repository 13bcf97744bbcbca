"""
Tests for the filesystem adapter — atomic writes, backups, links, trees.
"""

import os
import stat
from pathlib import Path

import pytest

from hostconverge.adapters.shell import filesystem as fs
from hostconverge.core.steps.files import merge_block

# ── Atomic writes ────────────────────────────────────────────────────


class TestAtomicWrite:
    def test_creates_parents_and_sets_mode(self, tmp_path: Path):
        target = tmp_path / "etc" / "app" / "app.conf"
        fs.atomic_write(target, "key = 1\n", mode=0o640)
        assert target.read_text() == "key = 1\n"
        assert fs.mode_of(target) == 0o640

    def test_replaces_existing(self, tmp_path: Path):
        target = tmp_path / "unit.service"
        target.write_text("old")
        fs.atomic_write(target, b"new")
        assert target.read_bytes() == b"new"

    def test_failure_keeps_original_and_cleans_temp(self, tmp_path: Path, monkeypatch):
        target = tmp_path / "smb.conf"
        target.write_text("[global]\n")

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(fs.os, "replace", broken_replace)
        with pytest.raises(OSError, match="disk full"):
            fs.atomic_write(target, "[homes]\n")

        assert target.read_text() == "[global]\n"
        assert [p.name for p in tmp_path.iterdir()] == ["smb.conf"]

    def test_file_matches(self, tmp_path: Path):
        target = tmp_path / "f"
        fs.atomic_write(target, "abc", mode=0o600)
        assert fs.file_matches(target, "abc")
        assert fs.file_matches(target, b"abc", mode=0o600)
        assert not fs.file_matches(target, "abc", mode=0o644)
        assert not fs.file_matches(target, "abcd")
        assert not fs.file_matches(tmp_path / "missing", "abc")


# ── Backups ──────────────────────────────────────────────────────────


class TestBackup:
    def test_missing_file(self, tmp_path: Path):
        assert fs.backup_file(tmp_path / "nope") is None

    def test_timestamped_copy(self, tmp_path: Path):
        original = tmp_path / "motioneye.conf"
        original.write_text("log_path /var/log\n")
        saved = fs.backup_file(original)
        assert saved is not None
        assert saved.name.startswith("motioneye.conf.bak.")
        assert saved.read_text() == "log_path /var/log\n"

    def test_same_second_does_not_clobber(self, tmp_path: Path):
        original = tmp_path / "smb.conf"
        original.write_text("one")
        first = fs.backup_file(original)
        original.write_text("two")
        second = fs.backup_file(original)
        assert first != second
        assert first.read_text() == "one"
        assert second.read_text() == "two"


# ── Symlinks ─────────────────────────────────────────────────────────


class TestSymlinks:
    def test_create_and_probe(self, tmp_path: Path):
        target = tmp_path / "venv" / "bin" / "mavproxy.py"
        target.parent.mkdir(parents=True)
        target.write_text("#!/bin/sh\n")
        link = tmp_path / "bin" / "mavproxy.py"

        fs.atomic_symlink(target, link)
        assert fs.link_points_to(link, target)

    def test_replaces_regular_file(self, tmp_path: Path):
        target = tmp_path / "real"
        target.write_text("x")
        link = tmp_path / "link"
        link.write_text("stale copy")

        fs.atomic_symlink(target, link)
        assert link.is_symlink()
        assert fs.link_points_to(link, target)

    def test_wrong_target(self, tmp_path: Path):
        a, b = tmp_path / "a", tmp_path / "b"
        a.write_text("a")
        b.write_text("b")
        link = tmp_path / "link"
        link.symlink_to(a)
        assert not fs.link_points_to(link, b)
        assert not fs.link_points_to(a, a)


# ── Directories and trees ────────────────────────────────────────────


class TestDirectories:
    def test_unknown_owner_does_not_match(self, tmp_path: Path):
        d = tmp_path / "media"
        d.mkdir(mode=0o750)
        d.chmod(0o750)
        assert not fs.owner_matches(d, "hc-no-such-user", None)
        assert not fs.owner_matches(d, None, "hc-no-such-group")
        assert not fs.dir_matches(d, 0o750, "hc-no-such-user", "hc-no-such-group")

    def test_ensure_dir_mode(self, tmp_path: Path):
        d = tmp_path / "var" / "lib" / "motioneye"
        fs.ensure_dir(d, mode=0o750)
        assert fs.dir_matches(d, 0o750)
        assert not fs.dir_matches(d, 0o755)

    def test_symlink_is_not_a_directory(self, tmp_path: Path):
        real = tmp_path / "real"
        real.mkdir()
        link = tmp_path / "link"
        link.symlink_to(real)
        assert not fs.dir_matches(link)


class TestRestrictTree:
    def _tree(self, root: Path) -> Path:
        (root / "bin").mkdir(parents=True)
        exe = root / "bin" / "python3"
        exe.write_text("#!/bin/sh\n")
        exe.chmod(0o755)
        data = root / "pyvenv.cfg"
        data.write_text("home = /usr/bin\n")
        data.chmod(0o644)
        return root

    def test_restrict_closes_others(self, tmp_path: Path):
        root = self._tree(tmp_path / "venv")
        assert not fs.tree_restricted(root, None, None)

        fs.restrict_tree(root)

        assert fs.tree_restricted(root, None, None)
        exe_mode = fs.mode_of(root / "bin" / "python3")
        assert exe_mode & stat.S_IXGRP
        assert not exe_mode & stat.S_IROTH
        assert fs.mode_of(root / "pyvenv.cfg") == 0o640

    def test_group_read_is_required(self, tmp_path: Path):
        root = self._tree(tmp_path / "venv")
        fs.restrict_tree(root)
        (root / "pyvenv.cfg").chmod(0o600)
        assert not fs.tree_restricted(root, None, None)

    def test_owner_check(self, tmp_path: Path):
        root = self._tree(tmp_path / "venv")
        fs.restrict_tree(root)
        assert fs.tree_restricted(root, os.getuid(), os.getgid())
        assert not fs.tree_restricted(root, os.getuid() + 1, None)


# ── Managed blocks ───────────────────────────────────────────────────


class TestMergeBlock:
    BODY = "[homes]\n   browseable = no\n"

    def test_append_to_existing(self):
        merged = merge_block("[global]\n   workgroup = WORKGROUP", "homes", self.BODY)
        assert merged.startswith("[global]\n   workgroup = WORKGROUP\n\n# BEGIN hostconverge homes\n")
        assert merged.endswith("# END hostconverge homes\n")

    def test_replace_in_place(self):
        first = merge_block("[global]\n", "homes", "[homes]\n   browseable = yes\n")
        first += "[printers]\n"
        second = merge_block(first, "homes", self.BODY)
        assert "browseable = yes" not in second
        assert "browseable = no" in second
        assert second.endswith("[printers]\n")
        assert second.count("# BEGIN hostconverge homes") == 1

    def test_stable(self):
        once = merge_block("", "homes", self.BODY)
        assert merge_block(once, "homes", self.BODY) == once
