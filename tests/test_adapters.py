"""
Tests for adapters — mock runner, package managers, systemd, venv, accounts.
"""

from pathlib import Path

from hostconverge.adapters.languages.python import SMOKE_SCRIPT, VirtualEnv
from hostconverge.adapters.mock import MockCommandRunner
from hostconverge.adapters.shell.command import CommandResult, CommandRunner
from hostconverge.adapters.system.accounts import AccountManager
from hostconverge.adapters.system.packages import (
    AptPackageManager,
    DnfPackageManager,
    PacmanPackageManager,
    detect_package_manager,
)
from hostconverge.adapters.system.systemd import SystemdManager

# ── Command runner ───────────────────────────────────────────────────


class TestCommandRunner:
    def test_missing_binary_is_127(self):
        result = CommandRunner().run(["definitely-not-a-real-binary-xyz"])
        assert result.returncode == 127
        assert not result.ok

    def test_error_text(self):
        result = CommandResult(argv=["apt-get", "install"], returncode=100, stderr="E: nope\n")
        assert result.error_text() == "`apt-get install` exited with code 100: E: nope"


class TestMockCommandRunner:
    def test_default_success(self):
        runner = MockCommandRunner()
        assert runner.run(["anything"]).ok
        assert runner.call_count == 1

    def test_longest_prefix_wins(self):
        runner = MockCommandRunner()
        runner.set_response("systemctl", stdout="generic")
        runner.set_response("systemctl is-active", returncode=3)
        assert runner.run(["systemctl", "is-active", "x"]).returncode == 3
        assert runner.run(["systemctl", "status", "x"]).stdout == "generic"

    def test_unknown_binary_when_restricted(self):
        runner = MockCommandRunner(binaries={"apt-get"})
        assert runner.run(["dnf", "install"]).returncode == 127
        assert runner.which("apt-get") == "/usr/bin/apt-get"
        assert runner.which("dnf") is None

    def test_paths_bypass_binary_restriction(self):
        runner = MockCommandRunner(binaries=set())
        assert runner.run(["/opt/venv/bin/python", "-V"]).ok

    def test_effect_override(self):
        runner = MockCommandRunner()
        runner.set_response(
            "echo", effect=lambda argv: CommandResult(argv=argv, stdout=" ".join(argv[1:])),
        )
        assert runner.run(["echo", "hi", "there"]).stdout == "hi there"

    def test_inputs_and_matching(self):
        runner = MockCommandRunner()
        runner.run(["smbpasswd", "-s", "-a", "alice"], input="pw\npw\n")
        assert runner.inputs == ["pw\npw\n"]
        assert runner.was_called("smbpasswd -s")
        assert not runner.was_called("smbpasswd -e")

    def test_set_failure_and_reset(self):
        runner = MockCommandRunner()
        runner.set_failure("ufw", stderr="inactive")
        assert runner.run(["ufw", "allow"]).stderr == "inactive"
        runner.reset()
        assert runner.call_count == 0
        assert runner.run(["ufw", "allow"]).ok


# ── Package managers ─────────────────────────────────────────────────


def _policy(candidate: str) -> str:
    return f"pkg:\n  Installed: (none)\n  Candidate: {candidate}\n  Version table:\n"


class TestAptPackageManager:
    def test_available_parses_candidate(self):
        runner = MockCommandRunner()
        runner.set_response("apt-cache policy python3-opencv", stdout=_policy("4.6.0+dfsg-12"))
        runner.set_response("apt-cache policy python3-wxgtk4.0", stdout=_policy("(none)"))
        apt = AptPackageManager(runner)
        assert apt.available("python3-opencv")
        assert not apt.available("python3-wxgtk4.0")

    def test_unknown_package_has_no_candidate(self):
        runner = MockCommandRunner()
        runner.set_response("apt-cache policy", stdout="")
        assert not AptPackageManager(runner).available("nope")

    def test_installed(self):
        runner = MockCommandRunner()
        runner.set_response(["dpkg-query", "-W", "-f=${Status}", "curl"], stdout="install ok installed")
        runner.set_response(["dpkg-query", "-W", "-f=${Status}", "gone"], stdout="deinstall ok config-files")
        apt = AptPackageManager(runner)
        assert apt.installed("curl")
        assert not apt.installed("gone")

    def test_install_is_noninteractive(self):
        runner = MockCommandRunner()
        AptPackageManager(runner).install(["samba", "smbclient"])
        assert runner.call_log[-1] == [
            "apt-get", "install", "-y", "--no-install-recommends", "samba", "smbclient",
        ]

    def test_name_is_apt(self):
        assert AptPackageManager(MockCommandRunner()).name == "apt"


class TestInstallOptional:
    def test_filters_unavailable(self, runner, fake):
        fake.available = {"python3-lxml"}
        outcome = AptPackageManager(runner).install_optional(["python3-lxml", "python3-opencv"])
        assert outcome.installed == ["python3-lxml"]
        assert outcome.unavailable == ["python3-opencv"]
        assert outcome.warnings == ["Optional package not available: python3-opencv"]
        install = runner.calls_matching("apt-get install")[-1]
        assert "python3-opencv" not in install

    def test_nothing_available_runs_nothing(self, runner, fake):
        outcome = AptPackageManager(runner).install_optional(["a", "b"])
        assert outcome.installed == []
        assert not runner.was_called("apt-get install")
        assert len(outcome.warnings) == 2

    def test_install_failure_becomes_warning(self):
        runner = MockCommandRunner()
        runner.set_response("apt-cache policy", stdout=_policy("1.0"))
        runner.set_failure("apt-get install", stderr="E: dpkg was interrupted")
        outcome = AptPackageManager(runner).install_optional(["motion"])
        assert outcome.installed == []
        assert "Optional install failed" in outcome.warnings[-1]


class TestPackageManagerTable:
    def test_detect_prefers_apt(self):
        runner = MockCommandRunner(binaries={"apt-get", "dnf"})
        assert detect_package_manager(runner).name == "apt"

    def test_detect_dnf(self):
        runner = MockCommandRunner(binaries={"dnf", "yum"})
        assert isinstance(detect_package_manager(runner), DnfPackageManager)

    def test_detect_none(self):
        assert detect_package_manager(MockCommandRunner(binaries=set())) is None

    def test_pacman_install_is_needed_only(self):
        runner = MockCommandRunner()
        PacmanPackageManager(runner).install(["python"])
        assert runner.call_log[-1] == ["pacman", "-S", "--noconfirm", "--needed", "python"]


# ── systemd ──────────────────────────────────────────────────────────


class TestSystemdManager:
    def test_active_since_parses_unix_timestamp(self):
        runner = MockCommandRunner()
        runner.set_response("systemctl show motioneye", stdout="ActiveEnterTimestamp=@1700000000\n")
        assert SystemdManager(runner).active_since("motioneye") == 1700000000.0

    def test_active_since_never_started(self):
        runner = MockCommandRunner()
        runner.set_response("systemctl show motioneye", stdout="ActiveEnterTimestamp=\n")
        assert SystemdManager(runner).active_since("motioneye") is None

    def test_show_property(self):
        runner = MockCommandRunner()
        runner.set_response("systemctl show motioneye", stdout="User=motioneye\n")
        assert SystemdManager(runner).show_property("motioneye", "User") == "motioneye"

    def test_show_property_error_is_empty(self):
        runner = MockCommandRunner()
        runner.set_failure("systemctl show motioneye", stderr="Failed to connect to bus")
        assert SystemdManager(runner).show_property("motioneye", "User") == ""
        assert SystemdManager(runner).active_since("motioneye") is None

    def test_reset_failed(self):
        runner = MockCommandRunner()
        SystemdManager(runner).reset_failed("smbd", "nmbd")
        assert runner.call_log[-1] == ["systemctl", "reset-failed", "smbd", "nmbd"]

    def test_wait_active_returns_pending(self, runner, fake):
        fake.start_unit("smbd")
        pending = SystemdManager(runner).wait_active(["smbd", "nmbd"], timeout=0.05, interval=0.01)
        assert pending == ["nmbd"]

    def test_wait_active_all_up(self, runner, fake):
        fake.start_unit("smbd")
        assert SystemdManager(runner).wait_active(["smbd"], timeout=0.05) == []

    def test_restart_multiple_units(self):
        runner = MockCommandRunner()
        SystemdManager(runner).restart("smbd", "nmbd")
        assert runner.call_log[-1] == ["systemctl", "restart", "smbd", "nmbd"]


# ── venv ─────────────────────────────────────────────────────────────


class TestVirtualEnv:
    def test_paths(self, tmp_path: Path):
        venv = VirtualEnv(tmp_path / "v", MockCommandRunner())
        assert venv.python == tmp_path / "v" / "bin" / "python3"
        assert venv.pip_python == tmp_path / "v" / "bin" / "python"
        assert venv.binary("meyectl") == tmp_path / "v" / "bin" / "meyectl"

    def test_create_then_interpreter(self, tmp_path: Path, runner, fake):
        venv = VirtualEnv(tmp_path / "v", runner)
        assert not venv.has_interpreter()
        assert venv.create().ok
        assert venv.has_interpreter()

    def test_smoke_check_sends_script_on_stdin(self, tmp_path: Path):
        runner = MockCommandRunner()
        VirtualEnv(tmp_path / "v", runner).smoke_check()
        assert runner.call_log[-1] == [str(tmp_path / "v" / "bin" / "python3"), "-"]
        assert runner.inputs[-1] == SMOKE_SCRIPT

    def test_pip_show_parses_metadata(self, tmp_path: Path):
        runner = MockCommandRunner()
        venv = VirtualEnv(tmp_path / "v", runner)
        runner.set_response(
            [str(venv.pip_python), "-m", "pip", "show"],
            stdout="Name: motioneye\nVersion: 0.43.1b4\nLocation: /x\n",
        )
        assert venv.installed_version("motioneye") == "0.43.1b4"

    def test_pip_show_missing(self, tmp_path: Path):
        runner = MockCommandRunner()
        venv = VirtualEnv(tmp_path / "v", runner)
        runner.set_failure([str(venv.pip_python), "-m", "pip", "show"])
        assert venv.pip_show("motioneye") is None

    def test_pip_install_flags(self, tmp_path: Path):
        runner = MockCommandRunner()
        venv = VirtualEnv(tmp_path / "v", runner)
        venv.pip_install(["motioneye"], upgrade=True, pre=True, force_reinstall=True)
        assert runner.call_log[-1] == [
            str(venv.pip_python), "-m", "pip", "install", "--disable-pip-version-check",
            "--upgrade", "--pre", "--force-reinstall", "motioneye",
        ]

    def test_remove(self, tmp_path: Path, runner, fake):
        venv = VirtualEnv(tmp_path / "v", runner)
        venv.create()
        venv.remove()
        assert not venv.path.exists()
        venv.remove()  # already gone


# ── Accounts ─────────────────────────────────────────────────────────


class TestAccountManager:
    def test_root_exists(self):
        accounts = AccountManager(MockCommandRunner())
        assert accounts.user_exists("root")
        assert accounts.home_of("root") is not None

    def test_unknown_user(self):
        accounts = AccountManager(MockCommandRunner())
        assert not accounts.user_exists("no-such-user-hc")
        assert accounts.home_of("no-such-user-hc") is None
        assert accounts.primary_group_of("no-such-user-hc") is None

    def test_system_user_argv(self):
        runner = MockCommandRunner()
        AccountManager(runner).create_system_user("motioneye", "motioneye", "/var/lib/motioneye")
        assert runner.call_log[-1] == [
            "useradd", "--system", "--no-create-home", "--home-dir", "/var/lib/motioneye",
            "--shell", "/usr/sbin/nologin", "-g", "motioneye", "motioneye",
        ]

    def test_login_user_argv(self):
        runner = MockCommandRunner()
        AccountManager(runner).create_login_user("alice")
        assert runner.call_log[-1] == ["adduser", "--gecos", "", "--disabled-password", "alice"]

    def test_run_as(self):
        runner = MockCommandRunner()
        AccountManager(runner).run_as("motioneye", "test -x /opt/motioneye/bin/meyectl")
        assert runner.call_log[-1][:5] == ["su", "-s", "/bin/sh", "-", "motioneye"]
