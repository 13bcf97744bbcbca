"""
Configuration loader — settings for one installer run.

Precedence, lowest to highest:

    model defaults
    config file   (--config PATH or HC_CONFIG; ``installers.<name>`` mapping)
    environment   (installer-specific variables, e.g. ME_PRE=0)
    overrides     (CLI arguments such as the samba target user)

The result is validated against the installer's frozen settings model.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ValidationError

from hostconverge.core.models.settings import (
    MavproxySettings,
    MotioneyeSettings,
    SambaSettings,
)

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "HC_CONFIG"

SETTINGS_MODELS: dict[str, type[BaseModel]] = {
    "mavproxy": MavproxySettings,
    "motioneye": MotioneyeSettings,
    "samba": SambaSettings,
}

# Shared by every installer
_COMMON_ENV = {
    "HC_NETWORK_ATTEMPTS": "network_attempts",
    "HC_SERVICE_WAIT": "service_wait_s",
}

# env var → settings field
ENV_VARS: dict[str, dict[str, str]] = {
    "mavproxy": {
        "MAVPROXY_VENV": "venv_dir",
        "MAVPROXY_GUI": "install_gui",
    },
    "motioneye": {
        "ME_PRE": "pre",
        "ME_UPGRADE": "upgrade",
        "ME_REINSTALL": "reinstall",
    },
    "samba": {
        "SUDO_USER": "target_user",
        "SMB_PASSWORD": "password",
    },
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class ConfigError(Exception):
    """Raised when installer configuration is invalid or missing."""


def parse_flag(name: str, raw: str) -> bool:
    """Shell-style boolean: ``1``/``0`` (also true/false, yes/no, on/off)."""
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{name} must be 0 or 1, got {raw!r}")


def read_config_file(path: Path) -> dict[str, Any]:
    """Load the YAML config file.

    Raises:
        ConfigError: If the file is missing, unreadable or not a mapping.
    """
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data


def _file_section(data: Mapping[str, Any], installer: str, path: Path) -> dict[str, Any]:
    installers = data.get("installers") or {}
    if not isinstance(installers, dict):
        raise ConfigError(f"'installers' in {path} must be a mapping")
    section = installers.get(installer) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'installers.{installer}' in {path} must be a mapping")
    return dict(section)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _env_values(installer: str, model: type[BaseModel], env: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    mapping = {**_COMMON_ENV, **ENV_VARS.get(installer, {})}
    for var, field in mapping.items():
        # set-but-empty counts as unset, like ${VAR:-default}
        if not env.get(var):
            continue
        raw = env[var]
        annotation = model.model_fields[field].annotation
        if annotation is bool:
            values[field] = parse_flag(var, raw)
        else:
            values[field] = raw
    return values


def load_settings(
    installer: str,
    env: Mapping[str, str] | None = None,
    config_path: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> BaseModel:
    """Build the validated settings for ``installer``.

    Args:
        installer: Installer name (``mavproxy``, ``motioneye``, ``samba``).
        env: Environment mapping (default: ``os.environ``).
        config_path: Explicit config file; falls back to ``HC_CONFIG``.
        overrides: Highest-precedence values (None and blank entries are
            ignored).

    Raises:
        ConfigError: Unknown installer, unreadable file, or invalid values.
    """
    env = os.environ if env is None else env
    model = SETTINGS_MODELS.get(installer)
    if model is None:
        raise ConfigError(
            f"Unknown installer '{installer}'. Available: {', '.join(sorted(SETTINGS_MODELS))}"
        )

    if config_path is None and env.get(CONFIG_ENV_VAR):
        config_path = Path(env[CONFIG_ENV_VAR])

    values: dict[str, Any] = {}
    if config_path is not None:
        values.update(_file_section(read_config_file(config_path), installer, config_path))
    values.update(_env_values(installer, model, env))
    values.update({k: v for k, v in (overrides or {}).items() if not _blank(v)})

    try:
        settings = model.model_validate(values)
    except ValidationError as e:
        raise ConfigError(f"Invalid {installer} configuration: {e}") from e

    logger.debug("Settings for %s: %s", installer, settings.model_dump(mode="json"))
    return settings
