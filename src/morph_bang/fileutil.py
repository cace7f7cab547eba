"""File utilities for morph-bang.

Provides atomic_write() for crash-safe config/unit persistence and
temp_sibling() for conversion artifacts that must never outlive the
event that created them.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
from collections.abc import Iterator
from pathlib import Path

from . import conventions


def atomic_write(path: Path, content: str, mode: int = 0o644) -> None:
    """Write content to *path* atomically via temp-file + rename.

    Guarantees that *path* is never left in a truncated or partially-written
    state.  On success the file contains exactly *content* with permission
    bits *mode*; on any failure the previous file (if any) is untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            fd = -1  # os.fdopen owns the fd now
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        if fd >= 0:
            os.close(fd)
        with contextlib.suppress(OSError):
            os.unlink(tmp)
        raise


def temp_sibling_path(subject: Path, target_ext: str) -> Path:
    """Return ``<stem>.morph_tmp.<target_ext>`` next to *subject*.

    The temp file shares the target extension so converters that pick an
    output format from the file name (vips, ffmpeg, pandoc) see the right one.
    """
    return subject.with_suffix(f".{conventions.TEMP_MARKER}.{target_ext}")


@contextlib.contextmanager
def temp_sibling(subject: Path, target_ext: str) -> Iterator[Path]:
    """Yield a temp artifact path beside *subject*, removed on every exit.

    If the caller renames the artifact into place the cleanup is a no-op.
    """
    tmp = temp_sibling_path(subject, target_ext)
    try:
        yield tmp
    finally:
        remove_path(tmp)


def remove_path(path: Path) -> None:
    """Remove a file or directory tree if present (best-effort)."""
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink(missing_ok=True)
    except OSError:
        pass
