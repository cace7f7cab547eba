"""Append-only, content-addressed version history.

Each (uid, logical destination path) pair maps to one directory under the
user's home:

    <home>/.local/share/morph-bang/versions/<64-hex key>/

holding immutable snapshots named

    <20-digit ns timestamp>-<pid>-<4-digit seq>.<ext>

so that lexicographic order equals creation order. Files are only ever
created and read; nothing here modifies or deletes a version.

The key is derived from the clean destination path the trigger names
(``notes.pdf`` for ``notes.!pdf``), not from the subject's current name.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import shutil
import stat
import time
from pathlib import Path

from . import conventions
from .errors import VersionAllocationError
from .ownership import Owner, chown_path
from .tools import Toolbox

logger = logging.getLogger(__name__)

_UNSAFE_EXT_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def stable_path_key(path: Path, uid: int) -> str:
    """Deterministic 64-hex-char key for (uid, path)."""
    hasher = hashlib.blake2b(digest_size=32)
    hasher.update(conventions.VERSION_KEY_DOMAIN)
    hasher.update(uid.to_bytes(4, "big"))
    hasher.update(b"\0")
    hasher.update(os.fsencode(path))
    return hasher.hexdigest()


def sanitize_ext(ext: str) -> str:
    sanitized = _UNSAFE_EXT_CHARS.sub("_", ext)
    return sanitized or conventions.VERSION_FALLBACK_EXT


def version_filename(ts_ns: int, pid: int, seq: int, ext: str) -> str:
    return f"{ts_ns:020d}-{pid:05d}-{seq:04d}.{ext}"


def app_data_dir(home: Path) -> Path:
    return home / conventions.VERSIONS_PARENT / conventions.APP_NAME


class VersionStore:
    """Per-user version directories, resolved through a Toolbox."""

    def __init__(self, tools: Toolbox) -> None:
        self.tools = tools

    # -- directories -------------------------------------------------------

    def version_dir_for(self, path: Path, uid: int) -> Path:
        home = self.tools.home_dir(uid)
        key = stable_path_key(path, uid)
        return app_data_dir(home) / conventions.VERSIONS_DIR / key

    def ensure_owned(self, version_dir: Path, uid: int, gid: int) -> None:
        """Create the app root, versions root and key dir; chown all three.

        Safe to repeat: creation is create-if-absent and the chown is
        unconditional, which also heals a tree bootstrapped as root.
        """
        versions_root = version_dir.parent
        app_root = versions_root.parent
        for directory in (app_root, versions_root, version_dir):
            directory.mkdir(parents=True, exist_ok=True)
        for directory in (app_root, versions_root, version_dir):
            chown_path(directory, uid, gid)

    def prepare(self, path: Path, owner: Owner) -> Path:
        version_dir = self.version_dir_for(path, owner.uid)
        self.ensure_owned(version_dir, owner.uid, owner.gid)
        return version_dir

    # -- writing -----------------------------------------------------------

    def next_version_path(self, version_dir: Path, ext: str) -> Path:
        ts_ns = time.time_ns()
        pid = os.getpid()
        for seq in range(conventions.VERSION_SEQ_LIMIT):
            candidate = version_dir / version_filename(ts_ns, pid, seq, ext)
            if not candidate.exists():
                return candidate
        raise VersionAllocationError(
            f"failed to allocate unique version filename in {version_dir}"
        )

    def store(
        self,
        subject: Path,
        version_dir: Path,
        source_ext: str,
        uid: int,
        gid: int,
    ) -> Path:
        """Snapshot the current content of *subject* into history."""
        version_file = self.next_version_path(version_dir, sanitize_ext(source_ext))
        shutil.copyfile(subject, version_file)
        shutil.copymode(subject, version_file)
        chown_path(version_file, uid, gid)
        logger.info("Stored %s as %s", subject, version_file.name)
        return version_file

    def store_directory(
        self, subject_dir: Path, version_dir: Path, uid: int, gid: int
    ) -> Path:
        """Archive the whole directory tree into one ``dir.tar`` version."""
        version_file = self.next_version_path(
            version_dir, conventions.DIRECTORY_VERSION_EXT
        )
        self.tools.archive_directory(subject_dir, version_file)
        chown_path(version_file, uid, gid)
        logger.info("Archived %s as %s", subject_dir, version_file.name)
        return version_file

    # -- reading -----------------------------------------------------------

    def history(self, version_dir: Path) -> list[Path]:
        """All version files, oldest first."""
        if not version_dir.is_dir():
            return []
        return sorted(p for p in version_dir.iterdir() if p.is_file())

    def find_latest(self, version_dir: Path, ext: str) -> Path | None:
        """Most recent version whose final extension matches *ext*."""
        wanted = ext.lower()
        matches = [
            p for p in self.history(version_dir) if p.suffix[1:].lower() == wanted
        ]
        return matches[-1] if matches else None

    def restore(
        self,
        version_file: Path,
        destination: Path,
        owner: Owner,
        mode_override: int | None = None,
    ) -> None:
        """Copy *version_file* over *destination*, owned by *owner*.

        Mode is *mode_override* if given, else the version file's own mode.
        """
        shutil.copyfile(version_file, destination)
        if mode_override is None:
            try:
                mode = stat.S_IMODE(version_file.stat().st_mode)
            except OSError:
                mode = 0o644
        else:
            mode = mode_override
        owner.apply(destination, mode)
        logger.info("Restored %s from %s", destination, version_file.name)
