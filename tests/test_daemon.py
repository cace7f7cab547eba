"""Tests for daemon lifecycle management and startup utilities.

Tests cover:
1. PID file creation, reading, and cleanup
2. Process liveness checking
3. inotifywait command line and feed decoding
4. Event loop: per-event failures never end the loop
5. MorphDaemon run/stop with a mocked feed
6. Structured logging setup
"""

import json
import logging
import os
import signal
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from conftest import FakeClock, MemoryToolbox

from morph_bang import conventions
from morph_bang.daemon import (
    MorphDaemon,
    cleanup_pid,
    dispatch_event,
    is_running,
    iter_event_paths,
    pid_file_path,
    read_pid,
    run_event_loop,
    spawn_feed,
    stop_process,
    watch_command,
    write_pid,
)
from morph_bang.debounce import DebounceTable
from morph_bang.dispatcher import DispatchOutcome
from morph_bang.errors import ToolError
from morph_bang.schema import DaemonConfig
from morph_bang.startup import JSONFormatter, log_startup_info, setup_logging

# ---------------------------------------------------------------------------
# PID file management
# ---------------------------------------------------------------------------


class TestWritePid:
    """Verify write_pid creates a correct PID file."""

    def test_writes_current_pid_by_default(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "test.pid"
        write_pid(pid_file)
        assert pid_file.read_text().strip() == str(os.getpid())

    def test_writes_explicit_pid(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "test.pid"
        write_pid(pid_file, pid=12345)
        assert pid_file.read_text().strip() == "12345"

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "deep" / "nested" / "test.pid"
        write_pid(pid_file, pid=1)
        assert pid_file.exists()


class TestReadPid:
    """Verify read_pid handles all file states correctly."""

    def test_reads_valid_pid(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "test.pid"
        pid_file.write_text("42")
        assert read_pid(pid_file) == 42

    def test_returns_none_for_missing_file(self, tmp_path: Path) -> None:
        assert read_pid(tmp_path / "nonexistent.pid") is None

    def test_returns_none_for_invalid_content(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "test.pid"
        pid_file.write_text("not-a-number")
        assert read_pid(pid_file) is None

    def test_strips_whitespace(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "test.pid"
        pid_file.write_text("  99\n")
        assert read_pid(pid_file) == 99


class TestCleanupPid:
    def test_removes_existing_file(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "test.pid"
        pid_file.write_text("1")
        cleanup_pid(pid_file)
        assert not pid_file.exists()

    def test_no_error_on_missing_file(self, tmp_path: Path) -> None:
        cleanup_pid(tmp_path / "nonexistent.pid")


class TestIsRunning:
    def test_returns_true_for_current_process(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "test.pid"
        write_pid(pid_file)
        assert is_running(pid_file) is True

    def test_returns_false_for_dead_pid(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "test.pid"
        write_pid(pid_file, pid=4_000_000)
        with patch("morph_bang.daemon.os.kill", side_effect=ProcessLookupError):
            assert is_running(pid_file) is False

    def test_returns_false_for_missing_file(self, tmp_path: Path) -> None:
        assert is_running(tmp_path / "nonexistent.pid") is False


class TestStopProcess:
    def test_missing_pid_file(self, tmp_path: Path) -> None:
        assert stop_process(tmp_path / "nope.pid") is False

    def test_already_gone_cleans_up(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "test.pid"
        write_pid(pid_file, pid=4_000_000)
        with patch("morph_bang.daemon.os.kill", side_effect=ProcessLookupError):
            assert stop_process(pid_file) is True
        assert not pid_file.exists()

    def test_permission_denied(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "test.pid"
        write_pid(pid_file, pid=1)
        with patch("morph_bang.daemon.os.kill", side_effect=PermissionError):
            assert stop_process(pid_file) is False
        assert pid_file.exists()


class TestPathConstruction:
    def test_pid_file_path_uses_conventions(self) -> None:
        assert pid_file_path() == Path(conventions.PID_FILE)


# ---------------------------------------------------------------------------
# Event feed
# ---------------------------------------------------------------------------


class TestWatchCommand:
    def test_recursive_moved_to_only(self) -> None:
        argv = watch_command("/home")
        assert argv[0] == "inotifywait"
        assert argv[argv.index("-e") + 1] == "moved_to"
        assert {"-q", "-m", "-r"} <= set(argv)
        assert argv[-1] == "/home"

    def test_full_path_format_and_dotfile_exclude(self) -> None:
        argv = watch_command("/srv")
        assert argv[argv.index("--format") + 1] == "%w%f"
        assert argv[argv.index("--exclude") + 1] == conventions.WATCH_EXCLUDE

    def test_spawn_failure_is_tool_error(self) -> None:
        with (
            patch("morph_bang.daemon.subprocess.Popen", side_effect=OSError("ENOENT")),
            pytest.raises(ToolError, match="inotifywait failed"),
        ):
            spawn_feed("/home")


class TestIterEventPaths:
    def test_decodes_and_strips(self) -> None:
        lines = [b"/home/a/notes.!pdf\n", "  /home/a/b.!md  \n"]
        assert list(iter_event_paths(lines)) == [
            Path("/home/a/notes.!pdf"),
            Path("/home/a/b.!md"),
        ]

    def test_skips_blank_lines(self) -> None:
        assert list(iter_event_paths([b"\n", b"   \n", ""])) == []

    def test_undecodable_bytes_round_trip(self) -> None:
        raw = b"/home/a/caf\xe9.!pdf\n"
        (path,) = iter_event_paths([raw])
        assert os.fsencode(path) == raw.strip()


# ---------------------------------------------------------------------------
# Event loop
# ---------------------------------------------------------------------------


class _RecordingDispatcher:
    def __init__(self, failures: dict[str, Exception] | None = None) -> None:
        self.seen: list[Path] = []
        self.failures = failures or {}

    def handle(self, path: Path) -> DispatchOutcome:
        self.seen.append(path)
        if path.name in self.failures:
            raise self.failures[path.name]
        return DispatchOutcome.CONVERTED


class _FlakyFeed:
    """Iterator that raises OSError at chosen positions, then continues."""

    def __init__(self, items: list) -> None:
        self.items = list(items)

    def __iter__(self):
        return self

    def __next__(self):
        if not self.items:
            raise StopIteration
        item = self.items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class TestEventLoop:
    def test_dispatches_in_order(self) -> None:
        dispatcher = _RecordingDispatcher()
        locks = DebounceTable(clock=FakeClock())
        count = run_event_loop([b"/a.!pdf\n", b"/b.!png\n"], dispatcher, locks)
        assert count == 2
        assert dispatcher.seen == [Path("/a.!pdf"), Path("/b.!png")]

    def test_failures_do_not_stop_the_loop(self, caplog) -> None:
        dispatcher = _RecordingDispatcher(
            {
                "a.!pdf": ToolError("pandoc", "boom"),
                "b.!pdf": PermissionError("denied"),
            }
        )
        locks = DebounceTable(clock=FakeClock())
        with caplog.at_level(logging.ERROR):
            count = run_event_loop(
                [b"/a.!pdf\n", b"/b.!pdf\n", b"/c.!pdf\n"], dispatcher, locks
            )
        assert count == 3
        assert dispatcher.seen[-1] == Path("/c.!pdf")
        assert "morph-bang error for /a.!pdf: pandoc failed: boom" in caplog.text

    def test_read_errors_are_logged_and_skipped(self, caplog) -> None:
        dispatcher = _RecordingDispatcher()
        feed = _FlakyFeed([b"/a.!pdf\n", OSError("EIO"), b"/b.!pdf\n"])
        locks = DebounceTable(clock=FakeClock())
        with caplog.at_level(logging.ERROR):
            count = run_event_loop(feed, dispatcher, locks)
        assert count == 2
        assert "inotify read error" in caplog.text

    def test_expired_locks_pruned_between_events(self) -> None:
        clock = FakeClock()
        locks = DebounceTable(ttl=2.0, clock=clock)
        locks.claim(Path("/old.pdf"))
        clock.advance(5)
        run_event_loop([b"/a.!pdf\n"], _RecordingDispatcher(), locks)
        assert len(locks) == 0

    def test_dispatch_event_reports_failed(self) -> None:
        dispatcher = _RecordingDispatcher({"x.!pdf": ToolError("vips")})
        assert dispatch_event(dispatcher, Path("/x.!pdf")) is DispatchOutcome.FAILED


class TestMorphDaemon:
    @pytest.fixture
    def restore_signals(self):
        saved = {
            sig: signal.getsignal(sig) for sig in (signal.SIGTERM, signal.SIGINT)
        }
        yield
        for sig, handler in saved.items():
            signal.signal(sig, handler)

    def test_builds_from_config(self, tmp_path: Path) -> None:
        config = DaemonConfig(lock_ttl=3.5, notifications_enabled=False)
        daemon = MorphDaemon(config, tools=MemoryToolbox(tmp_path))
        assert daemon.locks.ttl == 3.5
        assert daemon.dispatcher.notifier.enabled is False

    def test_system_toolbox_uses_configured_timeout(self) -> None:
        daemon = MorphDaemon(DaemonConfig(tool_timeout=0))
        assert daemon.tools.timeout is None

    def test_run_consumes_feed_and_cleans_pid(
        self, tmp_path: Path, restore_signals
    ) -> None:
        feed = MagicMock()
        feed.stdout = [f"{tmp_path}/gone.!pdf\n".encode()]
        feed.poll.return_value = 0
        pid_file = tmp_path / "morph-bang.pid"
        daemon = MorphDaemon(
            DaemonConfig(watch_root=str(tmp_path)), tools=MemoryToolbox(tmp_path)
        )

        with patch("morph_bang.daemon.spawn_feed", return_value=feed) as spawn:
            daemon.run(pid_file=pid_file)

        spawn.assert_called_once_with(str(tmp_path))
        assert not pid_file.exists()

    def test_stop_terminates_live_feed(self, tmp_path: Path) -> None:
        daemon = MorphDaemon(DaemonConfig(), tools=MemoryToolbox(tmp_path))
        feed = MagicMock()
        feed.poll.return_value = None
        daemon._feed = feed
        daemon.stop()
        feed.terminate.assert_called_once()
        feed.wait.assert_called_once_with(timeout=5)


# ---------------------------------------------------------------------------
# Structured logging setup
# ---------------------------------------------------------------------------


class TestStructuredLogging:
    """Verify structured logging creates both handlers correctly."""

    def test_setup_creates_log_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "morph-bang.log"
        root = logging.getLogger()
        before = list(root.handlers)
        setup_logging(log_file=log_file)
        try:
            file_handlers = [
                h
                for h in root.handlers
                if isinstance(h, logging.FileHandler)
                and Path(h.baseFilename) == log_file
            ]
            assert len(file_handlers) == 1
            assert isinstance(file_handlers[0].formatter, JSONFormatter)
        finally:
            for h in list(root.handlers):
                if h not in before:
                    root.removeHandler(h)
                    h.close()

    def test_unwritable_log_falls_back_to_console(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        root = logging.getLogger()
        before = list(root.handlers)
        setup_logging(log_file=blocker / "morph-bang.log")
        try:
            added = [h for h in root.handlers if h not in before]
            assert [type(h) for h in added] == [logging.StreamHandler]
        finally:
            for h in list(root.handlers):
                if h not in before:
                    root.removeHandler(h)
                    h.close()

    def test_json_formatter_produces_valid_json(self) -> None:
        formatter = JSONFormatter()
        record = logging.LogRecord(
            name="test",
            level=logging.INFO,
            pathname="test.py",
            lineno=1,
            msg="hello %s",
            args=("world",),
            exc_info=None,
        )
        data = json.loads(formatter.format(record))
        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "hello world"
        assert "timestamp" in data

    def test_json_formatter_includes_exception(self) -> None:
        formatter = JSONFormatter()
        try:
            raise ValueError("boom")
        except ValueError:
            exc_info = sys.exc_info()
        record = logging.LogRecord(
            name="test",
            level=logging.ERROR,
            pathname="test.py",
            lineno=1,
            msg="failed",
            args=(),
            exc_info=exc_info,
        )
        data = json.loads(formatter.format(record))
        assert "ValueError: boom" in data["exception"]

    def test_startup_banner(self, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="morph_bang.startup"):
            log_startup_info(DaemonConfig(watch_root="/srv"))
        assert "Global filesystem watch established on /srv" in caplog.text
