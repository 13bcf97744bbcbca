"""
Adapter base — the contract between steps and host tools.

Steps never spawn processes or parse tool output themselves; they call
adapters. Every adapter wraps one external tool family and talks to it
only through a CommandRunner, so tests can swap in the mock runner.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from hostconverge.adapters.shell.command import CommandResult, CommandRunner


class Adapter(ABC):
    """Abstract base class for all adapters.

    Command failures are returned as CommandResult values, never raised.
    Read-only queries (``is_available``, probes) return plain values.

    To create a new adapter:
        1. Subclass Adapter
        2. Implement name and is_available
        3. Build argv lists and pass them to ``self.run``
    """

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'apt', 'systemd', 'venv')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this adapter's underlying tool is available.

        Should be fast and never raise.
        """

    def run(self, argv: list[str], **kwargs) -> CommandResult:
        return self.runner.run(argv, **kwargs)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
