"""Daemon startup utilities: structured logging, banner, pre-flight logging.

Handles initialization tasks that run before the event loop:
- Structured logging (JSON to file, human-readable to console)
- Version and watch configuration logging
- Pre-flight checks with result logging (never blocking)
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from importlib.metadata import PackageNotFoundError
from logging.handlers import RotatingFileHandler
from pathlib import Path

from . import conventions
from .schema import DaemonConfig

logger = logging.getLogger(__name__)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured file logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a JSON string."""
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(log_file: Path | None = None, level: int = logging.INFO) -> None:
    """Configure structured logging: JSON to file, human-readable to console.

    The console stream ends up in the journal under systemd. If the log file
    cannot be opened (e.g. not running as root) only the console is used.
    """
    root = logging.getLogger()
    root.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(console_handler)

    if log_file is None:
        return
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_file), maxBytes=5 * 1024 * 1024, backupCount=2
        )
    except OSError as exc:
        logger.warning("File logging disabled (%s): %s", log_file, exc)
        return
    file_handler.setFormatter(JSONFormatter())
    root.addHandler(file_handler)


def package_version() -> str:
    try:
        from importlib.metadata import version as pkg_version

        return pkg_version(conventions.APP_NAME)
    except (ImportError, PackageNotFoundError):
        return "0.0.0"


def log_startup_info(config: DaemonConfig, log: logging.Logger = logger) -> None:
    """Log daemon version and the effective watch settings."""
    log.info("%s v%s", conventions.APP_DISPLAY_NAME, package_version())
    log.info(
        "Global filesystem watch established on %s (lock_ttl=%.1fs, tool_timeout=%s)",
        config.watch_root,
        config.lock_ttl,
        f"{config.tool_timeout:g}s" if config.tool_timeout else "none",
    )
    if not config.notifications_enabled:
        log.info("Desktop notifications disabled")


def run_startup_checks(config: DaemonConfig, log: logging.Logger = logger) -> None:
    """Run pre-flight checks and log results. Never blocks startup."""
    from .preflight import run_preflight

    report = run_preflight(config)
    for check in report.checks:
        if check.passed:
            log.debug("Preflight %-14s OK: %s", check.name, check.message)
        elif check.severity == "warning":
            log.warning("Preflight %-14s WARN: %s", check.name, check.message)
        else:
            log.error("Preflight %-14s FAIL: %s", check.name, check.message)
    if not report.passed:
        log.warning("Pre-flight checks have failures (daemon will continue)")
