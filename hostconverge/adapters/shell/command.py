"""
Shell command runner — the single place where subprocesses are spawned.

Every adapter builds argv lists and hands them to a CommandRunner.
The runner NEVER raises for command failures: a missing binary is
return code 127, a timeout is 124, and callers interpret the result.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time

from pydantic import BaseModel

logger = logging.getLogger(__name__)

# Return codes synthesised when the process could not run to completion
RC_NOT_FOUND = 127
RC_TIMEOUT = 124


class CommandResult(BaseModel):
    """Captured outcome of one command."""

    argv: list[str]
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command(self) -> str:
        return " ".join(self.argv)

    def error_text(self) -> str:
        """Short human-readable failure reason."""
        detail = (self.stderr or self.stdout).strip()
        if detail:
            detail = detail.splitlines()[-1][:300]
            return f"`{self.command}` exited with code {self.returncode}: {detail}"
        return f"`{self.command}` exited with code {self.returncode}"


class CommandRunner:
    """Run external commands and capture their output.

    Args:
        default_timeout: Seconds before a command is killed.
        base_env: Extra environment merged into every call.
    """

    def __init__(
        self,
        default_timeout: int = 600,
        base_env: dict[str, str] | None = None,
    ):
        self._default_timeout = default_timeout
        self._base_env = dict(base_env or {})

    def which(self, name: str) -> str | None:
        """Resolve a binary on PATH."""
        return shutil.which(name)

    def run(
        self,
        argv: list[str],
        *,
        env: dict[str, str] | None = None,
        input: str | None = None,
        timeout: int | None = None,
        cwd: str | None = None,
    ) -> CommandResult:
        """Execute ``argv`` and return its result. Never raises."""
        timeout = timeout or self._default_timeout
        full_env = os.environ.copy()
        full_env.update(self._base_env)
        if env:
            full_env.update(env)

        logger.debug("Executing: %s", " ".join(argv))
        start = time.monotonic()

        try:
            proc = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                input=input,
                timeout=timeout,
                env=full_env,
                cwd=cwd,
            )
        except FileNotFoundError:
            return CommandResult(
                argv=argv,
                returncode=RC_NOT_FOUND,
                stderr=f"{argv[0]}: command not found",
                duration_ms=int((time.monotonic() - start) * 1000),
            )
        except subprocess.TimeoutExpired:
            return CommandResult(
                argv=argv,
                returncode=RC_TIMEOUT,
                stderr=f"Command timed out after {timeout}s",
                duration_ms=int((time.monotonic() - start) * 1000),
            )
        except OSError as e:
            return CommandResult(
                argv=argv,
                returncode=RC_NOT_FOUND,
                stderr=f"Command execution error: {e}",
                duration_ms=int((time.monotonic() - start) * 1000),
            )

        result = CommandResult(
            argv=argv,
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        if not result.ok:
            logger.debug("Command failed (%d): %s", result.returncode, result.command)
        return result
