"""systemd service registration for the morph-bang daemon.

The daemon must run as root to read and re-own files in every user's
tree, so it is installed as a system unit (not a user unit). All names
come from conventions.py.
"""

from __future__ import annotations

import shutil
import subprocess
import sys
from pathlib import Path

from pydantic import BaseModel, Field

from . import conventions
from .fileutil import atomic_write


class ServiceResult(BaseModel):
    """Result of a service install/uninstall/status operation."""

    success: bool
    platform: str = "linux"
    message: str = ""
    details: list[str] = Field(default_factory=list)


def unit_path(unit_dir: Path | None = None) -> Path:
    directory = unit_dir or Path(conventions.SYSTEMD_UNIT_DIR)
    return directory / f"{conventions.SERVICE_NAME}.service"


def find_daemon_binary() -> str:
    """Absolute path to the ``morph-bang`` entry point."""
    found = shutil.which(conventions.APP_NAME)
    if found:
        return found
    return str(Path(sys.executable).parent / conventions.APP_NAME)


def _generate_systemd_unit(daemon_bin: str) -> str:
    """Generate the system unit running the daemon in the foreground."""
    return f"""\
[Unit]
Description=Universal File Data Morphing Daemon ({conventions.APP_DISPLAY_NAME})
After=network.target

[Service]
Type=simple
User=root
ExecStart={daemon_bin} run
Restart=always
Nice=-15
IOSchedulingClass=realtime
Environment=PATH={Path(daemon_bin).parent}:/usr/local/bin:/usr/bin:/bin

[Install]
WantedBy=multi-user.target
"""


def _systemctl(*args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        ["systemctl", *args],
        capture_output=True,
        text=True,
        timeout=30,
    )


def install_service(
    daemon_bin: str | None = None, unit_dir: Path | None = None
) -> ServiceResult:
    """Write the unit file, reload systemd, and enable + start the unit."""
    path = unit_path(unit_dir)
    content = _generate_systemd_unit(daemon_bin or find_daemon_binary())
    try:
        atomic_write(path, content)
    except OSError as exc:
        return ServiceResult(success=False, message=f"Cannot write {path}: {exc}")

    details = [f"Unit file: {path}"]
    try:
        _systemctl("daemon-reload")
        result = _systemctl("enable", "--now", f"{conventions.SERVICE_NAME}.service")
    except (FileNotFoundError, subprocess.TimeoutExpired) as exc:
        return ServiceResult(
            success=False, message=f"systemctl error: {exc}", details=details
        )
    if result.returncode != 0:
        details.append(result.stderr.strip())
        return ServiceResult(
            success=False, message="systemctl enable failed", details=details
        )
    details.append("Enabled and started")
    return ServiceResult(success=True, message="Service installed", details=details)


def uninstall_service(unit_dir: Path | None = None) -> ServiceResult:
    """Stop and disable the unit, then remove its file."""
    path = unit_path(unit_dir)
    try:
        _systemctl("disable", "--now", f"{conventions.SERVICE_NAME}.service")
    except (FileNotFoundError, subprocess.TimeoutExpired) as exc:
        return ServiceResult(success=False, message=f"systemctl error: {exc}")

    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        return ServiceResult(success=False, message=f"Cannot remove {path}: {exc}")
    _systemctl("daemon-reload")
    return ServiceResult(
        success=True, message="Service removed", details=[f"Removed {path}"]
    )


def service_status(unit_dir: Path | None = None) -> ServiceResult:
    """Report whether the unit is installed and active."""
    path = unit_path(unit_dir)
    if not path.exists():
        return ServiceResult(success=False, message="Not installed")
    try:
        result = _systemctl("is-active", f"{conventions.SERVICE_NAME}.service")
    except (FileNotFoundError, subprocess.TimeoutExpired) as exc:
        return ServiceResult(success=False, message=f"systemctl error: {exc}")
    state = result.stdout.strip() or "unknown"
    return ServiceResult(
        success=state == "active",
        message=f"Installed ({state})",
        details=[f"Unit file: {path}"],
    )
