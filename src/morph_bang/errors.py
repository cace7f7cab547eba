"""Exception hierarchy for morph-bang.

Everything raised while handling a single event derives from MorphError
(or is a plain OSError from the filesystem). The event loop catches both,
logs them against the event path, and moves on to the next event.
"""

from __future__ import annotations


class MorphError(Exception):
    """Base class for per-event failures."""


class ToolError(MorphError):
    """An external tool could not run, timed out, or exited non-zero."""

    def __init__(self, tool: str, detail: str = "") -> None:
        self.tool = tool
        self.detail = detail
        message = f"{tool} failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class UnsupportedConversionError(MorphError):
    """The request was understood but no engine handles this pairing."""


class VersionAllocationError(MorphError):
    """No free version filename within the collision-retry budget."""


class OwnershipError(MorphError):
    """Re-owning a derived artifact to the subject's owner failed."""
