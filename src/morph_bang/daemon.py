"""Event feed, event loop, and daemon lifecycle.

The daemon is a single sequential consumer: ``inotifywait`` streams one
path per ``moved_to`` event, and each path is dispatched to completion
before the next line is read. Per-event failures are logged and never end
the loop. PID file handling mirrors the usual start/stop/status pattern.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from collections.abc import Iterable, Iterator
from pathlib import Path

from . import conventions
from .debounce import DebounceTable
from .dispatcher import Dispatcher, DispatchOutcome
from .errors import MorphError, ToolError
from .notifier import Notifier
from .schema import DaemonConfig
from .tools import SystemToolbox, Toolbox

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# PID file management
# ---------------------------------------------------------------------------


def pid_file_path() -> Path:
    return Path(conventions.PID_FILE)


def write_pid(pid_file: Path, pid: int | None = None) -> None:
    """Write a PID to a file, creating parent directories as needed."""
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    pid_file.write_text(str(pid if pid is not None else os.getpid()))


def read_pid(pid_file: Path) -> int | None:
    """Read PID from a file; None if the file is missing or invalid."""
    if not pid_file.exists():
        return None
    try:
        return int(pid_file.read_text().strip())
    except (ValueError, OSError):
        return None


def is_running(pid_file: Path) -> bool:
    """Check if the process referenced by a PID file is alive."""
    pid = read_pid(pid_file)
    if pid is None:
        return False
    try:
        os.kill(pid, 0)  # Signal 0 checks existence without killing
        return True
    except ProcessLookupError:
        return False
    except PermissionError:
        return True  # Process exists but we can't signal it


def cleanup_pid(pid_file: Path) -> None:
    """Remove a PID file if it exists."""
    try:
        pid_file.unlink(missing_ok=True)
    except OSError:
        pass


def stop_process(pid_file: Path, timeout: float = 10.0) -> bool:
    """SIGTERM the PID-file process, escalating to SIGKILL after *timeout*.

    Returns:
        True if the process was stopped (or was already gone).
        False if the PID file was missing/unreadable or permission denied.
    """
    pid = read_pid(pid_file)
    if pid is None:
        return False

    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        cleanup_pid(pid_file)
        return True
    except PermissionError:
        return False

    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            os.kill(pid, 0)
            time.sleep(0.1)
        except ProcessLookupError:
            cleanup_pid(pid_file)
            return True

    try:
        os.kill(pid, signal.SIGKILL)
    except ProcessLookupError:
        pass

    cleanup_pid(pid_file)
    return True


# ---------------------------------------------------------------------------
# Event feed
# ---------------------------------------------------------------------------


def watch_command(watch_root: str) -> list[str]:
    """inotifywait argv: recursive ``moved_to`` events, dotfiles excluded."""
    return [
        "inotifywait",
        "-q",
        "-m",
        "-r",
        "-e",
        "moved_to",
        "--format",
        "%w%f",
        "--exclude",
        conventions.WATCH_EXCLUDE,
        watch_root,
    ]


def iter_event_paths(lines: Iterable[bytes | str]) -> Iterator[Path]:
    """Yield one Path per non-blank feed line.

    Lines are decoded with the filesystem encoding so undecodable names
    still round-trip to the same on-disk path.
    """
    for raw in lines:
        line = os.fsdecode(raw) if isinstance(raw, bytes) else raw
        line = line.strip()
        if line:
            yield Path(line)


def spawn_feed(watch_root: str) -> subprocess.Popen[bytes]:
    """Start inotifywait; raises ToolError if it cannot be started."""
    try:
        return subprocess.Popen(
            watch_command(watch_root),
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
        )
    except OSError as exc:
        raise ToolError("inotifywait", f"failed to start: {exc}") from exc


# ---------------------------------------------------------------------------
# Event loop
# ---------------------------------------------------------------------------


def dispatch_event(dispatcher: Dispatcher, path: Path) -> DispatchOutcome:
    """Handle one path; log and swallow per-event failures."""
    try:
        outcome = dispatcher.handle(path)
    except (MorphError, OSError) as exc:
        logger.error("morph-bang error for %s: %s", path, exc)
        return DispatchOutcome.FAILED
    if outcome not in (DispatchOutcome.IGNORED, DispatchOutcome.LOCKED):
        logger.info("%s: %s", outcome.value, path)
    return outcome


def run_event_loop(
    lines: Iterable[bytes | str],
    dispatcher: Dispatcher,
    locks: DebounceTable,
) -> int:
    """Consume *lines* until EOF, one event at a time. Returns events seen."""
    count = 0
    stream = iter(lines)
    while True:
        locks.prune()
        try:
            raw = next(stream)
        except StopIteration:
            break
        except OSError as exc:
            logger.error("inotify read error: %s", exc)
            continue
        for path in iter_event_paths([raw]):
            count += 1
            dispatch_event(dispatcher, path)
    return count


class MorphDaemon:
    """Owns the feed process, debounce table, and dispatcher for one run."""

    def __init__(self, config: DaemonConfig, tools: Toolbox | None = None) -> None:
        self.config = config
        self.tools = tools or SystemToolbox(timeout=config.timeout_or_none())
        self.locks = DebounceTable(ttl=config.lock_ttl)
        self.dispatcher = Dispatcher(
            self.tools,
            self.locks,
            Notifier(self.tools, enabled=config.notifications_enabled),
        )
        self._feed: subprocess.Popen[bytes] | None = None

    def run(self, pid_file: Path | None = None) -> None:
        """Run in the foreground until the feed ends or a signal arrives."""
        signal.signal(signal.SIGTERM, self._on_signal)
        signal.signal(signal.SIGINT, self._on_signal)
        if pid_file is not None:
            write_pid(pid_file)

        self._feed = spawn_feed(self.config.watch_root)
        stdout = self._feed.stdout or iter(())
        try:
            handled = run_event_loop(stdout, self.dispatcher, self.locks)
        finally:
            self.stop()
            if pid_file is not None:
                cleanup_pid(pid_file)
        logger.info("Event feed closed after %d events", handled)

    def stop(self) -> None:
        """Terminate the feed; the loop ends at the next read."""
        feed = self._feed
        if feed is None or feed.poll() is not None:
            return
        feed.terminate()
        try:
            feed.wait(timeout=5)
        except subprocess.TimeoutExpired:
            feed.kill()

    def _on_signal(self, signum: int, frame: object) -> None:
        logger.info("Received signal %d, shutting down...", signum)
        self.stop()
