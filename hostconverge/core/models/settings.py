"""
Installer settings — typed, frozen configuration per installer.

Values come from defaults, then the config file's ``installers.<name>``
mapping, then environment variables (see ``core.config.loader``).
Settings are immutable once loaded; a plan is built from one snapshot.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, SecretStr, field_validator


def _require_absolute(v: Path) -> Path:
    if not v.is_absolute():
        raise ValueError(f"must be an absolute path, got '{v}'")
    return v


AbsolutePath = Annotated[Path, AfterValidator(_require_absolute)]


class InstallerSettings(BaseModel):
    """Fields every installer understands."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    network_attempts: int = Field(default=3, ge=1, le=10)
    service_wait_s: float = Field(default=10.0, gt=0)


class MavproxySettings(InstallerSettings):
    venv_dir: AbsolutePath = Path("/opt/mavproxy")
    install_gui: bool = False
    link_dir: AbsolutePath = Path("/usr/local/bin")
    serial_group: str = "dialout"


class MotioneyeSettings(InstallerSettings):
    venv_dir: AbsolutePath = Path("/opt/motioneye")
    user: str = "motioneye"
    group: str = "motioneye"
    venv_owner: str = "root"
    config_dir: AbsolutePath = Path("/etc/motioneye")
    media_dir: AbsolutePath = Path("/var/lib/motioneye")
    log_dir: AbsolutePath = Path("/var/log/motioneye")
    unit_path: AbsolutePath = Path("/etc/systemd/system/motioneye.service")
    logrotate_path: AbsolutePath = Path("/etc/logrotate.d/motioneye")
    port: int = Field(default=8765, ge=1, le=65535)
    pre: bool = True
    upgrade: bool = True
    reinstall: bool = False

    @property
    def config_file(self) -> Path:
        return self.config_dir / "motioneye.conf"


class SambaSettings(InstallerSettings):
    target_user: str | None = None
    password: SecretStr | None = None
    smb_conf: AbsolutePath = Path("/etc/samba/smb.conf")
    firewall_source: str = "192.168.0.0/24"

    @field_validator("target_user")
    @classmethod
    def _blank_is_unset(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v
