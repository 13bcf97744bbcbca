"""
Systemd adapter — service manager operations.

Wraps ``systemctl`` for unit reload, enable, start/restart, failed-state
reset and status queries. Unit *files* are written by the filesystem adapter;
this adapter only talks to the manager.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from hostconverge.adapters.base import Adapter
from hostconverge.adapters.shell.command import CommandResult

logger = logging.getLogger(__name__)


class SystemdManager(Adapter):
    """Service manager backed by systemctl."""

    @property
    def name(self) -> str:
        return "systemd"

    def is_available(self) -> bool:
        return self.runner.which("systemctl") is not None

    def is_running_as_init(self) -> bool:
        """Whether systemd is PID 1 on this host."""
        return Path("/run/systemd/system").exists()

    def daemon_reload(self) -> CommandResult:
        return self.run(["systemctl", "daemon-reload"], timeout=60)

    def enable(self, *units: str) -> CommandResult:
        return self.run(["systemctl", "enable", *units], timeout=60)

    def start(self, *units: str) -> CommandResult:
        return self.run(["systemctl", "start", *units], timeout=120)

    def restart(self, *units: str) -> CommandResult:
        return self.run(["systemctl", "restart", *units], timeout=120)

    def reset_failed(self, *units: str) -> CommandResult:
        return self.run(["systemctl", "reset-failed", *units], timeout=30)

    def is_active(self, unit: str) -> bool:
        return self.run(["systemctl", "is-active", "--quiet", unit], timeout=10).ok

    def is_enabled(self, unit: str) -> bool:
        return self.run(["systemctl", "is-enabled", "--quiet", unit], timeout=10).ok

    def show_property(self, unit: str, prop: str, *extra: str) -> str:
        """Read one unit property, e.g. ``ActiveState`` (empty on error)."""
        result = self.run(["systemctl", "show", unit, f"--property={prop}", *extra], timeout=10)
        if not result.ok:
            return ""
        _key, _, value = result.stdout.strip().partition("=")
        return value.strip()

    def active_since(self, unit: str) -> float | None:
        """Epoch seconds when ``unit`` last entered the active state."""
        value = self.show_property(unit, "ActiveEnterTimestamp", "--timestamp=unix").lstrip("@")
        if not value:
            return None
        try:
            return float(value)
        except ValueError:
            return None

    def wait_active(self, units: list[str], timeout: float = 10.0, interval: float = 0.5) -> list[str]:
        """Poll until every unit is active or ``timeout`` elapses.

        Returns:
            Units still not active (empty = all active).
        """
        deadline = time.monotonic() + timeout
        pending = list(units)
        while True:
            pending = [u for u in pending if not self.is_active(u)]
            if not pending or time.monotonic() >= deadline:
                break
            time.sleep(interval)
        if pending:
            logger.debug("Units not active after %.1fs: %s", timeout, ", ".join(pending))
        return pending
