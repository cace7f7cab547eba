"""Shared test fixtures for morph-bang.

MemoryToolbox stands in for every external binary. It sniffs content by
magic prefix, writes plausible outputs, and records each call so tests can
assert on routing without vips/ffmpeg/pandoc installed.
"""

from __future__ import annotations

import re
import tarfile
from collections.abc import Sequence
from pathlib import Path

import pytest

from morph_bang.debounce import DebounceTable
from morph_bang.dispatcher import Dispatcher
from morph_bang.errors import ToolError
from morph_bang.notifier import Notifier

PNG = b"\x89PNG\r\n\x1a\nfake"
MP4 = b"\x00\x00\x00\x18ftypmp42fake"
MP3 = b"ID3fake"
ELF = b"\x7fELFfake"

_PAGES = re.compile(rb"^%PDF-pages:(\d+)")


def pdf_bytes(pages: int = 1, tag: str = "") -> bytes:
    return f"%PDF-pages:{pages} {tag}".encode()


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MemoryToolbox:
    """In-memory Toolbox for tests. Implements the Toolbox protocol."""

    def __init__(self, home: Path) -> None:
        self.home = home
        self.calls: list[tuple] = []
        self.notifications: list[tuple[str, int, str]] = []
        self.users: dict[int, str] = {}
        self.fail_remux = False
        self.fail_transcode = False
        self.fail_documents = False
        self.fail_rasterize = False
        self.fail_scaled = False
        self.fail_mime = False

    # -- classification ----------------------------------------------------

    def _sniff(self, path: Path) -> tuple[str, str]:
        head = path.read_bytes()[:32]
        if head.startswith(b"%PDF"):
            return "application/pdf", "pdf"
        if head.startswith(b"\x89PNG"):
            return "image/png", "png"
        if head[4:8] == b"ftyp":
            return "video/mp4", "mp4"
        if head.startswith(b"ID3"):
            return "audio/mpeg", "mp3"
        if head.startswith(b"\x7fELF"):
            return "application/x-executable", "???"
        return "text/plain", "???"

    def mime_type(self, path: Path) -> str:
        self.calls.append(("mime_type", path))
        if self.fail_mime:
            raise ToolError("file", "cannot open")
        return self._sniff(path)[0]

    def extension_guess(self, path: Path) -> str:
        return self._sniff(path)[1]

    def pdf_page_count(self, path: Path) -> int | None:
        match = _PAGES.match(path.read_bytes())
        return int(match.group(1)) if match else None

    # -- conversion --------------------------------------------------------

    def rasterize(self, source: str, output: Path) -> None:
        self.calls.append(("rasterize", source, output))
        if self.fail_rasterize or (self.fail_scaled and "scale=" in source):
            raise ToolError("vips", "unable to load")
        if output.suffix == ".pdf":
            output.write_bytes(pdf_bytes(1, source))
        else:
            output.write_bytes(PNG + source.encode())

    def image_to_pdf(self, source: Path, output: Path) -> None:
        self.calls.append(("image_to_pdf", source, output))
        if self.fail_rasterize:
            raise ToolError("magick", "no decode delegate")
        output.write_bytes(pdf_bytes(1, source.name))

    def transcode(self, source: Path, output: Path, *, stream_copy: bool) -> None:
        self.calls.append(("transcode", source, output, stream_copy))
        if (stream_copy and self.fail_remux) or self.fail_transcode:
            raise ToolError("ffmpeg", "codec not supported")
        output.write_bytes(MP4)

    def convert_document(
        self,
        source: Path,
        output: Path,
        *,
        from_format: str,
        pdf_engine: str | None = None,
    ) -> None:
        self.calls.append(("convert_document", source, output, from_format, pdf_engine))
        if self.fail_documents:
            output.write_bytes(b"partial")
            raise ToolError("pandoc", "xelatex not found")
        if output.suffix == ".pdf":
            output.write_bytes(pdf_bytes(1, source.name))
        else:
            output.write_text(f"converted from {from_format}")

    def merge_pdfs(self, pages: Sequence[Path], output: Path) -> None:
        self.calls.append(("merge_pdfs", [p.name for p in pages], output))
        output.write_bytes(pdf_bytes(len(pages), ",".join(p.name for p in pages)))

    def archive_directory(self, directory: Path, archive: Path) -> None:
        self.calls.append(("archive_directory", directory, archive))
        with tarfile.open(archive, "w") as tar:
            tar.add(directory, arcname=directory.name)

    # -- identity & notification ------------------------------------------

    def username(self, uid: int) -> str | None:
        return self.users.get(uid, "tester")

    def home_dir(self, uid: int) -> Path:
        return self.home

    def send_notification(self, username: str, uid: int, body: str) -> None:
        self.notifications.append((username, uid, body))

    # -- helpers for assertions -------------------------------------------

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    @property
    def bodies(self) -> list[str]:
        return [body for _, _, body in self.notifications]


@pytest.fixture
def home(tmp_path: Path) -> Path:
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def watch(tmp_path: Path) -> Path:
    """Directory standing in for a user's watched tree."""
    path = tmp_path / "tree"
    path.mkdir()
    return path


@pytest.fixture
def tools(home: Path) -> MemoryToolbox:
    return MemoryToolbox(home)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dispatcher(tools: MemoryToolbox, clock: FakeClock) -> Dispatcher:
    return Dispatcher(tools, DebounceTable(ttl=2.0, clock=clock), Notifier(tools))
