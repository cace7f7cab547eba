"""Per-event state machine: ignore, restore, convert, aggregate, or split.

One call to Dispatcher.handle() processes one ``moved_to`` path to
completion. Exceptions (MorphError, OSError) propagate to the event loop,
which logs them and continues; the subject is never removed before its
replacement is in place.
"""

from __future__ import annotations

import enum
import logging
from pathlib import Path

from .debounce import DebounceTable
from .engine import ConversionEngine
from .fileutil import remove_path, temp_sibling
from .folder import FolderAggregator
from .formats import detect_mime, detect_source_ext, is_valid_target
from .notifier import Notifier
from .ownership import Owner, copy_owner_and_perms
from .tools import Toolbox
from .trigger import Trigger, clean_path, trigger_from_path
from .versions import VersionStore

logger = logging.getLogger(__name__)


class DispatchOutcome(enum.Enum):
    IGNORED = "ignored"
    LOCKED = "locked"
    RESTORED = "restored"
    CONVERTED = "converted"
    SPLIT = "split"
    AGGREGATED = "aggregated"
    FAILED = "failed"


class Dispatcher:
    """Routes trigger renames to the version store and conversion engine."""

    def __init__(
        self,
        tools: Toolbox,
        locks: DebounceTable,
        notifier: Notifier | None = None,
    ) -> None:
        self.tools = tools
        self.locks = locks
        self.notifier = notifier or Notifier(tools)
        self.store = VersionStore(tools)
        self.engine = ConversionEngine(tools)
        self.aggregator = FolderAggregator(tools, self.notifier)

    def handle(self, path: Path) -> DispatchOutcome:
        trigger = trigger_from_path(path)
        if trigger is None:
            return DispatchOutcome.IGNORED
        destination = clean_path(path, trigger)

        if self.locks.is_locked(destination):
            logger.debug("Debounced %s", path)
            return DispatchOutcome.LOCKED
        self.locks.claim(destination)

        if not path.exists():
            return DispatchOutcome.IGNORED

        owner = Owner.capture(path)
        version_dir = self.store.prepare(destination, owner)

        if path.is_dir():
            handler = self._handle_directory
        elif path.is_file():
            handler = self._handle_file
        else:
            return DispatchOutcome.IGNORED
        return handler(path, destination, trigger, version_dir, owner)

    # -- directories -------------------------------------------------------

    def _handle_directory(
        self,
        path: Path,
        destination: Path,
        trigger: Trigger,
        version_dir: Path,
        owner: Owner,
    ) -> DispatchOutcome:
        if trigger.target_ext != "pdf":
            return DispatchOutcome.IGNORED

        if not trigger.destructive:
            self.store.store_directory(path, version_dir, owner.uid, owner.gid)

        existing = self.store.find_latest(version_dir, trigger.target_ext)
        if existing is not None:
            self.store.restore(existing, destination, owner)
            remove_path(path)
            self.notifier.restored(owner.uid, path.name, trigger.target_ext)
            return DispatchOutcome.RESTORED

        if not self.aggregator.aggregate(path, destination):
            return DispatchOutcome.IGNORED
        return DispatchOutcome.AGGREGATED

    # -- files -------------------------------------------------------------

    def _handle_file(
        self,
        path: Path,
        destination: Path,
        trigger: Trigger,
        version_dir: Path,
        owner: Owner,
    ) -> DispatchOutcome:
        target = trigger.target_ext
        mime = detect_mime(path, self.tools)
        source_ext = detect_source_ext(path, self.tools)
        if not is_valid_target(mime, target):
            logger.debug("No route for %s (%s) -> %s", path, mime, target)
            return DispatchOutcome.IGNORED

        existing = self.store.find_latest(version_dir, target)
        if not trigger.destructive:
            self.store.store(path, version_dir, source_ext, owner.uid, owner.gid)

        if existing is not None:
            self.store.restore(existing, destination, owner, mode_override=owner.mode)
            path.unlink(missing_ok=True)
            self.notifier.restored(owner.uid, path.name, target)
            return DispatchOutcome.RESTORED

        self.notifier.syncing(owner.uid, path.name, target)
        with temp_sibling(path, target) as tmp:
            result = self.engine.convert(path, tmp, target, source_ext, mime)
            if result.status == "handled_externally":
                return DispatchOutcome.SPLIT
            if result.status != "replaced":
                logger.warning(
                    "Conversion of %s to %s failed (%s): %s",
                    path,
                    target,
                    result.status,
                    result.detail,
                )
                return DispatchOutcome.FAILED
            copy_owner_and_perms(path, tmp)
            tmp.rename(destination)
        path.unlink(missing_ok=True)
        logger.info("Converted %s -> %s", path, destination)
        return DispatchOutcome.CONVERTED
