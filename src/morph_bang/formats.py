"""Format classification and routing tables.

A file's on-disk extension is not trusted: the source format comes from
content sniffing (``file``), with a MIME-derived fallback. The routing
tables decide which target extensions are meaningful for each MIME family;
anything else is simply not a command for that content.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .errors import ToolError
from .tools import Toolbox

logger = logging.getLogger(__name__)

IMAGE_OUTPUTS = frozenset(
    {
        "png", "jpg", "jpeg", "jpe", "jfif", "webp", "avif", "heic", "heif",
        "tiff", "tif", "gif", "jxl", "jp2", "j2k", "jpc", "jpt", "j2c", "hdr",
        "ppm", "pgm", "pbm", "pfm", "pnm", "fits", "fit", "fts", "bmp", "ico",
        "psd", "tga", "pcx", "pdf", "eps", "dds",
    }
)  # fmt: skip

MEDIA_OUTPUTS = frozenset(
    {
        "mp4", "mkv", "mov", "avi", "mp3", "wav", "flac", "ogg", "m4a", "aac",
        "webm", "opus", "m4v", "ts", "mts", "flv", "gif", "mpg", "mpeg", "vob",
        "ogv", "oga", "wv", "ac3", "dts", "aiff", "au", "amr", "3gp", "3g2",
        "mka", "mxf", "asf", "wmv", "rm", "rmvb", "adts", "spx",
    }
)  # fmt: skip

DOC_OUTPUTS = frozenset(
    {
        "md", "markdown", "txt", "html", "htm", "docx", "odt", "epub", "latex",
        "tex", "rst", "rtf", "org", "wiki", "textile", "fb2", "ipynb", "jira",
        "opml", "json", "typst", "djot", "man", "pdf", "pptx", "beamer", "icml",
        "tei", "texinfo", "context", "ms", "adoc", "asciidoc",
    }
)  # fmt: skip

# Document types accepted as pages when a folder is aggregated into a PDF.
DOC_FOLDER_INPUTS = frozenset(
    {
        "md", "txt", "html", "htm", "docx", "odt", "epub", "tex", "rst", "rtf",
        "org", "textile", "ipynb", "typst",
    }
)  # fmt: skip

# Vector/page sources that are rendered at RASTER_DPI instead of copied.
RASTERIZE_SOURCES = frozenset({"svg", "svgz", "eps", "ai", "pdf"})

_PANDOC_READERS = {
    "html": "html",
    "htm": "html",
    "docx": "docx",
    "odt": "odt",
    "epub": "epub",
    "latex": "latex",
    "tex": "latex",
    "rst": "rst",
    "rtf": "rtf",
    "org": "org",
    "wiki": "mediawiki",
    "textile": "textile",
    "fb2": "fb2",
    "ipynb": "ipynb",
    "jira": "jira",
    "opml": "opml",
    "json": "json",
    "typst": "typst",
    "djot": "djot",
    "csv": "csv",
    "tsv": "tsv",
    "t2t": "t2t",
    "creole": "creole",
    "twiki": "twiki",
    "xml": "docbook",
    "man": "man",
    **{str(section): "man" for section in range(1, 10)},
}


def detect_mime(path: Path, tools: Toolbox) -> str:
    """Sniffed MIME type of *path*; raises ToolError if the sniffer fails."""
    return tools.mime_type(path)


def detect_source_ext(path: Path, tools: Toolbox) -> str:
    """Canonical source-format token for *path*, or "" if unknown.

    Prefers the sniffer's extension guess (first candidate, ``?`` stripped);
    falls back to the MIME table when the sniffer has no guess.
    """
    try:
        guess = tools.extension_guess(path)
    except ToolError as exc:
        logger.debug("extension guess failed for %s: %s", path, exc)
        guess = ""
    ext = guess.split("/", 1)[0].strip().rstrip("?").lower()
    if ext:
        return ext
    try:
        return source_ext_from_mime(detect_mime(path, tools))
    except ToolError:
        return ""


def source_ext_from_mime(mime: str) -> str:
    if mime == "application/pdf":
        return "pdf"
    if mime.startswith("image/"):
        return "png"
    if mime.startswith("video/"):
        return "mp4"
    if mime.startswith("audio/"):
        return "mp3"
    if "officedocument.wordprocessingml.document" in mime:
        return "docx"
    if mime == "application/vnd.oasis.opendocument.text":
        return "odt"
    if mime.startswith("application/epub"):
        return "epub"
    if mime == "text/html":
        return "html"
    if mime.startswith("text/"):
        return "md"
    if mime == "application/rtf":
        return "rtf"
    if mime == "application/json":
        return "json"
    return ""


def is_image_family(mime: str) -> bool:
    return mime.startswith("image/") or mime in (
        "application/pdf",
        "application/postscript",
    )


def is_media_family(mime: str) -> bool:
    return mime.startswith(("video/", "audio/"))


def is_document_family(mime: str) -> bool:
    return (
        mime.startswith(("text/", "application/epub"))
        or mime in ("application/pdf", "application/json")
        or "officedocument" in mime
    )


def is_valid_target(mime: str, ext: str) -> bool:
    """Whether converting content of type *mime* to *ext* is a command."""
    if is_image_family(mime):
        return ext in IMAGE_OUTPUTS or ext in DOC_OUTPUTS
    if mime.startswith("video/"):
        return ext in MEDIA_OUTPUTS or ext in IMAGE_OUTPUTS
    if mime.startswith("audio/"):
        return ext in MEDIA_OUTPUTS
    if is_document_family(mime):
        return ext in DOC_OUTPUTS
    return False


def pandoc_from_ext(ext: str) -> str:
    """pandoc reader name for a source extension (markdown by default)."""
    return _PANDOC_READERS.get(ext, "markdown")


def is_supported_folder_input(path: Path, tools: Toolbox) -> bool:
    """Images and common document types can become pages of a folder PDF."""
    try:
        mime = detect_mime(path, tools)
    except ToolError:
        return False
    if mime.startswith("image/"):
        return True
    return detect_source_ext(path, tools) in DOC_FOLDER_INPUTS
