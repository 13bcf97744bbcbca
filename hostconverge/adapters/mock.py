"""
Mock command runner — universal test double for every adapter.

Scripts external tools without touching the host. By default every
command succeeds with empty output; responses are configured per argv
prefix (the longest matching prefix wins), optionally with a side
effect that mutates a temporary filesystem the way the real tool would.
"""

from __future__ import annotations

import shlex
from collections.abc import Callable

from hostconverge.adapters.shell.command import RC_NOT_FOUND, CommandResult, CommandRunner

Effect = Callable[[list[str]], "CommandResult | None"]


def _as_prefix(prefix: str | list[str] | tuple[str, ...]) -> tuple[str, ...]:
    if isinstance(prefix, str):
        return tuple(shlex.split(prefix))
    return tuple(prefix)


class MockCommandRunner(CommandRunner):
    """Command runner that records calls and returns scripted results.

    Args:
        binaries: Names ``which()`` reports as present. ``None`` means
            every binary is present.
        default_returncode: Return code for unscripted commands.
    """

    def __init__(
        self,
        binaries: set[str] | None = None,
        default_returncode: int = 0,
    ):
        super().__init__()
        self._binaries = binaries
        self._default_returncode = default_returncode
        self._responses: dict[tuple[str, ...], tuple[int, str, str, Effect | None]] = {}
        self._call_log: list[list[str]] = []
        self._inputs: list[str | None] = []

    # ── Scripting ────────────────────────────────────────────────

    def set_response(
        self,
        prefix: str | list[str] | tuple[str, ...],
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        effect: Effect | None = None,
    ) -> None:
        """Script the result of every command starting with ``prefix``."""
        self._responses[_as_prefix(prefix)] = (returncode, stdout, stderr, effect)

    def set_failure(
        self,
        prefix: str | list[str] | tuple[str, ...],
        stderr: str = "Mock failure",
        returncode: int = 1,
    ) -> None:
        """Configure commands starting with ``prefix`` to fail."""
        self.set_response(prefix, returncode=returncode, stderr=stderr)

    def set_binary(self, name: str, present: bool = True) -> None:
        """Add or remove a binary from what ``which()`` reports."""
        if self._binaries is None:
            self._binaries = set()
        if present:
            self._binaries.add(name)
        else:
            self._binaries.discard(name)

    # ── Introspection ────────────────────────────────────────────

    @property
    def call_log(self) -> list[list[str]]:
        """Every argv this runner has received, in order."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def inputs(self) -> list[str | None]:
        """Stdin payloads, aligned with ``call_log``."""
        return self._inputs

    def calls_matching(self, prefix: str | list[str] | tuple[str, ...]) -> list[list[str]]:
        wanted = _as_prefix(prefix)
        return [c for c in self._call_log if tuple(c[: len(wanted)]) == wanted]

    def was_called(self, prefix: str | list[str] | tuple[str, ...]) -> bool:
        return bool(self.calls_matching(prefix))

    def reset(self) -> None:
        """Clear call log and scripted responses."""
        self._call_log.clear()
        self._inputs.clear()
        self._responses.clear()

    # ── CommandRunner interface ──────────────────────────────────

    def which(self, name: str) -> str | None:
        if self._binaries is None or name in self._binaries:
            return f"/usr/bin/{name}"
        return None

    def run(
        self,
        argv: list[str],
        *,
        env: dict[str, str] | None = None,
        input: str | None = None,
        timeout: int | None = None,
        cwd: str | None = None,
    ) -> CommandResult:
        argv = [str(a) for a in argv]
        self._call_log.append(argv)
        self._inputs.append(input)

        if self._binaries is not None and "/" not in argv[0] and argv[0] not in self._binaries:
            return CommandResult(
                argv=argv, returncode=RC_NOT_FOUND, stderr=f"{argv[0]}: command not found",
            )

        match: tuple[str, ...] | None = None
        for prefix in self._responses:
            if tuple(argv[: len(prefix)]) == prefix:
                if match is None or len(prefix) > len(match):
                    match = prefix

        if match is None:
            return CommandResult(argv=argv, returncode=self._default_returncode)

        returncode, stdout, stderr, effect = self._responses[match]
        if effect is not None:
            override = effect(argv)
            if override is not None:
                return override
        return CommandResult(argv=argv, returncode=returncode, stdout=stdout, stderr=stderr)
