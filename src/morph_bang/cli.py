"""morph-bang CLI - rename-triggered conversion daemon.

Usage:
    morph-bang run [--watch-root PATH] [--config PATH]   # foreground daemon
    morph-bang status | stop                              # PID-file control
    morph-bang check                                      # pre-flight report
    morph-bang parse NAME                                 # explain a trigger
    morph-bang history PATH [--uid N]                     # list versions
    morph-bang config init|show                           # config file
    morph-bang service install|uninstall|status|show      # systemd unit
"""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime
from pathlib import Path

import click
from pydantic import ValidationError

from . import conventions
from .config import config_path, dump_config, load_config, save_config
from .daemon import (
    MorphDaemon,
    cleanup_pid,
    is_running,
    pid_file_path,
    read_pid,
    stop_process,
)
from .errors import MorphError
from .preflight import PreflightReport, run_preflight
from .schema import DaemonConfig
from .startup import log_startup_info, run_startup_checks, setup_logging
from .tools import SystemToolbox
from .trigger import clean_path, trigger_from_path
from .versions import VersionStore

logger = logging.getLogger(__name__)

_config_option = click.option(
    "--config",
    "config_file",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help=f"Config file (default: {conventions.CONFIG_FILE})",
)


def _load(config_file: Path | None, watch_root: str | None = None) -> DaemonConfig:
    config = load_config(config_file or config_path())
    if watch_root:
        config = config.model_copy(update={"watch_root": watch_root})
    return config


@click.group(
    help="Rename a file to <name>.!<ext> to convert it; <name>.!!<ext> skips "
    "the backup. Earlier versions are restored instead of re-converted."
)
@click.version_option(package_name="morph-bang")
def main() -> None:
    """morph-bang command group."""


# ── Daemon commands ──────────────────────────────────────────────


@main.command()
@click.option("--watch-root", default=None, help="Directory tree to watch")
@_config_option
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.option("--no-pid-file", is_flag=True, help="Do not write the PID file")
def run(
    watch_root: str | None,
    config_file: Path | None,
    verbose: bool,
    no_pid_file: bool,
) -> None:
    """Run the daemon in the foreground (what the service executes)."""
    config = _load(config_file, watch_root)
    level = logging.DEBUG if verbose else getattr(logging, config.log_level)
    setup_logging(Path(config.log_file), level=level)
    log_startup_info(config)
    run_startup_checks(config)

    pid_file = None if no_pid_file else pid_file_path()
    if pid_file is not None and is_running(pid_file):
        click.echo("Daemon is already running.", err=True)
        raise SystemExit(1)

    try:
        MorphDaemon(config).run(pid_file=pid_file)
    except MorphError as exc:
        click.echo(f"Cannot start: {exc}", err=True)
        raise SystemExit(1) from None


@main.command()
def status() -> None:
    """Check daemon status via its PID file."""
    pid_file = pid_file_path()
    pid = read_pid(pid_file)
    if is_running(pid_file) and pid is not None:
        click.echo(f"Daemon is running (PID {pid})")
    elif pid is not None:
        click.echo(f"Daemon is NOT running (stale PID file for PID {pid})")
        cleanup_pid(pid_file)
    else:
        click.echo("Daemon is not running (no PID file)")


@main.command()
def stop() -> None:
    """Stop a daemon started with `morph-bang run`."""
    pid_file = pid_file_path()
    pid = read_pid(pid_file)
    if pid is None:
        click.echo("No PID file found; daemon may not be running.")
        return
    click.echo(f"Stopping daemon (PID {pid})...")
    if stop_process(pid_file):
        click.echo("Daemon stopped.")
    else:
        click.echo("Could not stop daemon.", err=True)
        raise SystemExit(1)


@main.command()
@_config_option
def check(config_file: Path | None) -> None:
    """Run pre-flight checks (tools, privileges, watch root)."""
    report = run_preflight(_load(config_file))
    _print_report(report)
    if not report.passed:
        raise SystemExit(1)


# ── Inspection commands ──────────────────────────────────────────


@main.command()
@click.argument("name")
def parse(name: str) -> None:
    """Explain how a renamed file NAME would be interpreted."""
    path = Path(name)
    trigger = trigger_from_path(path)
    if trigger is None:
        click.echo(f"{name}: not a command")
        return
    mode = "destructive (no backup)" if trigger.destructive else "with backup"
    click.echo(f"{name}: -> {clean_path(path, trigger).name} [{mode}]")


@main.command()
@click.argument("path", type=click.Path(path_type=Path))
@click.option("--uid", type=int, default=None, help="Owner uid (default: you)")
def history(path: Path, uid: int | None) -> None:
    """List stored versions for the logical PATH (e.g. ~/notes.pdf)."""
    uid = os.getuid() if uid is None else uid
    store = VersionStore(SystemToolbox())
    try:
        version_dir = store.version_dir_for(path.expanduser().absolute(), uid)
    except MorphError as exc:
        click.echo(str(exc), err=True)
        raise SystemExit(1) from None

    versions = store.history(version_dir)
    if not versions:
        click.echo(f"No versions for {path}")
        return
    click.echo(f"{version_dir}")
    for version in versions:
        click.echo(f"  {_describe_version(version)}")


def _describe_version(version: Path) -> str:
    stamp = version.name.split("-", 1)[0]
    try:
        when = datetime.fromtimestamp(int(stamp) / 1e9, tz=UTC).isoformat(
            timespec="seconds"
        )
    except ValueError:
        when = "?"
    size = version.stat().st_size
    return f"{when}  {size:>10}  {version.name}"


# ── Config commands ──────────────────────────────────────────────


@main.group("config")
def config_group() -> None:
    """Inspect or write the config file."""


@config_group.command("init")
@_config_option
@click.option("--watch-root", default=None, help="Directory tree to watch")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def config_init(
    config_file: Path | None, watch_root: str | None, force: bool
) -> None:
    """Write a config file holding the defaults."""
    path = config_file or config_path()
    if path.exists() and not force:
        click.echo(f"{path} already exists (use --force to overwrite)", err=True)
        raise SystemExit(1)
    overrides = {"watch_root": watch_root} if watch_root else {}
    try:
        config = DaemonConfig(**overrides)
    except ValidationError as exc:
        click.echo(f"Invalid setting: {exc}", err=True)
        raise SystemExit(1) from None
    save_config(config, path)
    click.echo(f"Wrote {path}")


@config_group.command("show")
@_config_option
def config_show(config_file: Path | None) -> None:
    """Print the effective configuration as YAML."""
    click.echo(dump_config(_load(config_file)), nl=False)


# ── Service commands ─────────────────────────────────────────────


@main.group("service")
def service_group() -> None:
    """Manage the systemd unit."""


@service_group.command("install")
@click.option("--binary", default=None, help="Path to the morph-bang executable")
def service_install(binary: str | None) -> None:
    """Install, enable and start the systemd unit (needs root)."""
    from .service import install_service

    result = install_service(daemon_bin=binary)
    if result.success:
        click.echo(result.message)
        for detail in result.details:
            click.echo(f"  {detail}")
    else:
        click.echo(f"Failed: {result.message}", err=True)
        for detail in result.details:
            click.echo(f"  {detail}", err=True)
        raise SystemExit(1)


@service_group.command("uninstall")
def service_uninstall() -> None:
    """Stop, disable and remove the systemd unit."""
    from .service import uninstall_service

    result = uninstall_service()
    if result.success:
        click.echo(result.message)
        for detail in result.details:
            click.echo(f"  {detail}")
    else:
        click.echo(f"Failed: {result.message}", err=True)
        raise SystemExit(1)


@service_group.command("status")
def service_cmd_status() -> None:
    """Check whether the unit is installed and active."""
    from .service import service_status

    result = service_status()
    click.echo(f"Status: {result.message}")
    for detail in result.details:
        click.echo(f"  {detail}")


@service_group.command("show")
@click.option("--binary", default=None, help="Path to the morph-bang executable")
def service_show(binary: str | None) -> None:
    """Print the unit file that `service install` would write."""
    from .service import _generate_systemd_unit, find_daemon_binary

    click.echo(_generate_systemd_unit(binary or find_daemon_binary()), nl=False)


# ── Internal helpers ─────────────────────────────────────────────


def _print_report(report: PreflightReport) -> None:
    """Format and print a preflight report."""
    for check_result in report.checks:
        if check_result.passed:
            mark = "ok"
        elif check_result.severity == "warning":
            mark = "!!"
        else:
            mark = "FAIL"
        click.echo(f"  [{mark:>4}] {check_result.name}: {check_result.message}")
