"""Pydantic schema for /etc/morph-bang/config.yaml

Default values here MUST match the canonical constants in conventions.py.
A missing config file yields exactly these defaults, so the daemon behaves
the same with or without one.
"""

from pydantic import BaseModel, Field, field_validator

from . import conventions


class DaemonConfig(BaseModel):
    watch_root: str = conventions.WATCH_DIR
    lock_ttl: float = Field(default=conventions.LOCK_TTL_SECONDS, gt=0)
    # Seconds before an external tool is killed; 0 disables the bound.
    tool_timeout: float = Field(default=conventions.TOOL_TIMEOUT_SECONDS, ge=0)
    log_file: str = conventions.LOG_FILE
    log_level: str = "INFO"
    notifications_enabled: bool = True

    @field_validator("watch_root")
    @classmethod
    def _watch_root_absolute(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError(f"watch_root must be an absolute path, got {value!r}")
        return value.rstrip("/") or "/"

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        upper = value.upper()
        if upper not in {"DEBUG", "INFO", "WARNING", "ERROR"}:
            raise ValueError(f"unknown log level {value!r}")
        return upper

    def timeout_or_none(self) -> float | None:
        return self.tool_timeout or None
