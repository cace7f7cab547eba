"""External tool abstraction.

Provides a Protocol with one method per external capability the daemon
relies on, and SystemToolbox, which implements it by shelling out to the
real binaries. The dispatcher and engine only ever talk to a Toolbox, so
their branching is testable with an in-memory fake.

Every invocation is bounded by ``timeout`` seconds; a timeout, a missing
binary, or a non-zero exit all raise ToolError.
"""

from __future__ import annotations

import logging
import pwd
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from . import conventions
from .errors import ToolError

logger = logging.getLogger(__name__)


@runtime_checkable
class Toolbox(Protocol):
    """Protocol for the external collaborators the core depends on."""

    def mime_type(self, path: Path) -> str:
        """``file --mime-type``: the sniffed MIME type of *path*."""
        ...

    def extension_guess(self, path: Path) -> str:
        """``file --extension``: raw extension candidates, e.g. ``jpeg/jpg/jpe``."""
        ...

    def pdf_page_count(self, path: Path) -> int | None:
        """``pdfinfo``: page count, or None if it cannot be determined."""
        ...

    def rasterize(self, source: str, output: Path) -> None:
        """``vips copy``; *source* may carry ``[dpi=..,page=..]`` modifiers."""
        ...

    def image_to_pdf(self, source: Path, output: Path) -> None:
        """``magick``: wrap one image as a single-page PDF."""
        ...

    def transcode(self, source: Path, output: Path, *, stream_copy: bool) -> None:
        """``ffmpeg``: remux when *stream_copy*, otherwise full re-encode."""
        ...

    def convert_document(
        self,
        source: Path,
        output: Path,
        *,
        from_format: str,
        pdf_engine: str | None = None,
    ) -> None:
        """``pandoc``: PDF output through *pdf_engine*, else with ``--mathjax``."""
        ...

    def merge_pdfs(self, pages: Sequence[Path], output: Path) -> None:
        """``pdfunite``: concatenate *pages* in order into *output*."""
        ...

    def archive_directory(self, directory: Path, archive: Path) -> None:
        """``tar -C <parent> -cf <archive> <name>``."""
        ...

    def username(self, uid: int) -> str | None:
        """``id -nu <uid>``, or None if the uid has no user."""
        ...

    def home_dir(self, uid: int) -> Path:
        """Home directory of *uid*; raises ToolError if unknown."""
        ...

    def send_notification(self, username: str, uid: int, body: str) -> None:
        """notify-send as *username* on that user's session bus."""
        ...


class SystemToolbox:
    """Toolbox backed by the real binaries on PATH. Implements Toolbox."""

    def __init__(self, timeout: float | None = conventions.TOOL_TIMEOUT_SECONDS):
        self.timeout = timeout

    # -- helpers -----------------------------------------------------------

    def _run(self, argv: Sequence[str | Path]) -> subprocess.CompletedProcess[str]:
        """Run *argv*, returning the completed process or raising ToolError."""
        cmd = [str(a) for a in argv]
        tool = cmd[0]
        logger.debug("exec: %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise ToolError(tool, "not installed") from exc
        except subprocess.TimeoutExpired as exc:
            raise ToolError(tool, f"timed out after {self.timeout}s") from exc
        except OSError as exc:
            raise ToolError(tool, str(exc)) from exc
        if result.returncode != 0:
            raise ToolError(tool, result.stderr.strip())
        return result

    # -- classification ----------------------------------------------------

    def mime_type(self, path: Path) -> str:
        return self._run(["file", "--mime-type", "-b", path]).stdout.strip()

    def extension_guess(self, path: Path) -> str:
        return self._run(["file", "--extension", "-b", path]).stdout.strip()

    def pdf_page_count(self, path: Path) -> int | None:
        try:
            out = self._run(["pdfinfo", path]).stdout
        except ToolError:
            return None
        for line in out.splitlines():
            if line.startswith("Pages:"):
                try:
                    return int(line.removeprefix("Pages:").strip())
                except ValueError:
                    return None
        return None

    # -- conversion --------------------------------------------------------

    def rasterize(self, source: str, output: Path) -> None:
        self._run(["vips", "copy", source, output])

    def image_to_pdf(self, source: Path, output: Path) -> None:
        self._run(["magick", source, output])

    def transcode(self, source: Path, output: Path, *, stream_copy: bool) -> None:
        cmd: list[str | Path] = ["ffmpeg", "-y", "-i", source]
        if stream_copy:
            cmd += ["-c", "copy", "-map", "0"]
        cmd += ["-hide_banner", "-loglevel", "error", output]
        self._run(cmd)

    def convert_document(
        self,
        source: Path,
        output: Path,
        *,
        from_format: str,
        pdf_engine: str | None = None,
    ) -> None:
        cmd: list[str | Path] = ["pandoc", "-f", from_format, source, "-s"]
        if pdf_engine:
            cmd.append(f"--pdf-engine={pdf_engine}")
        else:
            cmd.append("--mathjax")
        cmd += ["-o", output]
        self._run(cmd)

    def merge_pdfs(self, pages: Sequence[Path], output: Path) -> None:
        self._run(["pdfunite", *pages, output])

    def archive_directory(self, directory: Path, archive: Path) -> None:
        self._run(["tar", "-C", directory.parent, "-cf", archive, directory.name])

    # -- identity & notification ------------------------------------------

    def username(self, uid: int) -> str | None:
        try:
            name = self._run(["id", "-nu", str(uid)]).stdout.strip()
        except ToolError:
            return None
        return name or None

    def home_dir(self, uid: int) -> Path:
        try:
            return Path(pwd.getpwuid(uid).pw_dir)
        except KeyError as exc:
            raise ToolError("getpwuid", f"no user entry for uid {uid}") from exc

    def send_notification(self, username: str, uid: int, body: str) -> None:
        bus = conventions.SESSION_BUS_TEMPLATE.format(uid=uid)
        self._run(
            [
                "sudo",
                "-u",
                username,
                "env",
                f"DBUS_SESSION_BUS_ADDRESS={bus}",
                "notify-send",
                "-a",
                conventions.APP_DISPLAY_NAME,
                "-i",
                conventions.NOTIFY_ICON,
                conventions.NOTIFY_SUMMARY,
                body,
            ]
        )
