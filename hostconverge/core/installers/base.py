"""
Installer descriptor — what the CLI and use cases know about a recipe.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from pydantic import BaseModel

from hostconverge.core.context import Host
from hostconverge.core.models.step import Plan


def _no_preconditions(host: Host, settings: BaseModel) -> None:
    return None


@dataclass(frozen=True)
class Installer:
    """A named provisioning recipe.

    Args:
        name: CLI name (``hostconverge install <name>``).
        description: One-line summary for ``hostconverge list``.
        settings_model: Frozen pydantic model holding the recipe's settings.
        build_plan: Builds the Plan from a detected Host and settings.
        check_preconditions: Raises PreconditionFailed before anything runs.
        takes_target_user: Whether the recipe accepts a TARGET_USER argument.
    """

    name: str
    description: str
    settings_model: type[BaseModel]
    build_plan: Callable[[Host, BaseModel], Plan]
    check_preconditions: Callable[[Host, BaseModel], None] = _no_preconditions
    takes_target_user: bool = False
