"""Config I/O for /etc/morph-bang/config.yaml."""

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from . import conventions
from .fileutil import atomic_write
from .schema import DaemonConfig

logger = logging.getLogger(__name__)


def config_path() -> Path:
    """Return the path to the system-wide config file."""
    return Path(conventions.CONFIG_FILE)


def load_config(path: Path | None = None) -> DaemonConfig:
    """Load and parse config.yaml, returning defaults if missing or invalid.

    If the file contains invalid values (e.g. a relative watch_root), logs a
    warning and returns defaults so the daemon can still start.
    """
    path = path or config_path()
    if not path.exists():
        return DaemonConfig()

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        logger.warning("Unreadable config at %s: %s. Using defaults.", path, exc)
        return DaemonConfig()
    if not data:
        return DaemonConfig()

    if not isinstance(data, dict):
        logger.warning("Config at %s is not a mapping. Using defaults.", path)
        return DaemonConfig()

    try:
        return DaemonConfig(**data)
    except ValidationError as exc:
        logger.warning("Invalid config at %s: %s. Using defaults.", path, exc)
        return DaemonConfig()


def dump_config(config: DaemonConfig) -> str:
    """Render config as the YAML text save_config writes."""
    return yaml.dump(config.model_dump(), default_flow_style=False, sort_keys=False)


def save_config(config: DaemonConfig, path: Path | None = None) -> None:
    """Write config to config.yaml."""
    path = path or config_path()
    atomic_write(path, dump_config(config))
