"""Ownership snapshot and propagation across the privilege boundary.

The daemon runs as root and writes into users' trees. Every artifact it
derives from a subject (conversion output, restored version, merged or
split PDFs, version files) is re-owned to the subject's original uid/gid
so the user never ends up with root-owned files.
"""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path

from .errors import OwnershipError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Owner:
    uid: int
    gid: int
    mode: int

    @classmethod
    def capture(cls, path: Path) -> Owner:
        """Snapshot *path*'s owner and permission bits (follows symlinks)."""
        st = path.stat()
        return cls(uid=st.st_uid, gid=st.st_gid, mode=stat.S_IMODE(st.st_mode))

    def chown(self, path: Path) -> None:
        chown_path(path, self.uid, self.gid)

    def apply(self, path: Path, mode: int | None = None) -> None:
        """Re-own *path* and set its mode (this owner's mode by default)."""
        self.chown(path)
        os.chmod(path, self.mode if mode is None else mode)


def chown_path(path: Path, uid: int, gid: int) -> None:
    """chown that raises OwnershipError naming the path."""
    try:
        os.chown(path, uid, gid)
    except OSError as exc:
        raise OwnershipError(
            f"failed to set ownership on {path}: {exc.strerror or exc}"
        ) from exc


def copy_owner_and_perms(src: Path, dst: Path) -> None:
    """Copy uid/gid and mode from *src* onto *dst*.

    A failed chown is tolerated (logged); a failed chmod propagates.
    """
    st = src.stat()
    try:
        os.chown(dst, st.st_uid, st.st_gid)
    except OSError as exc:
        logger.debug("chown %s -> %s skipped: %s", src, dst, exc)
    os.chmod(dst, stat.S_IMODE(st.st_mode))
