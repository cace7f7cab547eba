"""Conversion engine: format-specific routing to external converters.

The engine writes into the *output* path it is given (a temp sibling of the
subject) and reports what happened as a ConversionResult. It never touches
the destination; placing the artifact is the dispatcher's job. The one
exception is a multi-page PDF split, where the engine itself produces the
final page files and reports ``handled_externally``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from pydantic import BaseModel

from . import conventions
from .errors import ToolError, UnsupportedConversionError
from .fileutil import remove_path
from .formats import (
    DOC_OUTPUTS,
    RASTERIZE_SOURCES,
    is_image_family,
    is_media_family,
    pandoc_from_ext,
)
from .ownership import copy_owner_and_perms
from .tools import Toolbox

logger = logging.getLogger(__name__)

ConversionStatus = Literal[
    "replaced", "handled_externally", "unsupported", "tool_failure"
]


class ConversionResult(BaseModel):
    """Result of one conversion attempt."""

    status: ConversionStatus
    detail: str = ""
    outputs: list[str] = []


class ConversionEngine:
    def __init__(self, tools: Toolbox) -> None:
        self.tools = tools

    def convert(
        self,
        source: Path,
        output: Path,
        target_ext: str,
        source_ext: str,
        mime: str,
    ) -> ConversionResult:
        """Convert *source* into *output*; never raises for tool failures."""
        try:
            return self._route(source, output, target_ext, source_ext, mime)
        except UnsupportedConversionError as exc:
            return ConversionResult(status="unsupported", detail=str(exc))
        except ToolError as exc:
            return ConversionResult(status="tool_failure", detail=str(exc))

    def _route(
        self,
        source: Path,
        output: Path,
        target_ext: str,
        source_ext: str,
        mime: str,
    ) -> ConversionResult:
        if is_image_family(mime):
            if source_ext == "pdf":
                split = self._split_pages(source, target_ext)
                if split is not None:
                    return split
            self._rasterize(source, output, source_ext)
            return ConversionResult(status="replaced")

        if is_media_family(mime):
            self._transcode(source, output)
            return ConversionResult(status="replaced")

        if target_ext in DOC_OUTPUTS:
            pdf_engine = conventions.PDF_ENGINE if target_ext == "pdf" else None
            self.tools.convert_document(
                source,
                output,
                from_format=pandoc_from_ext(source_ext),
                pdf_engine=pdf_engine,
            )
            return ConversionResult(status="replaced")

        raise UnsupportedConversionError(
            f"unsupported conversion {source_ext or mime} -> {target_ext}"
        )

    def _rasterize(self, source: Path, output: Path, source_ext: str) -> None:
        if source_ext in RASTERIZE_SOURCES:
            scaled = (
                f"{source}[dpi={conventions.RASTER_DPI},"
                f"scale={conventions.RASTER_SCALE}]"
            )
            try:
                self.tools.rasterize(scaled, output)
                return
            except ToolError as exc:
                logger.debug("scaled render of %s failed, copying: %s", source, exc)
        self.tools.rasterize(str(source), output)

    def _transcode(self, source: Path, output: Path) -> None:
        try:
            self.tools.transcode(source, output, stream_copy=True)
        except ToolError as exc:
            logger.info("Remux of %s failed, re-encoding: %s", source.name, exc)
            self.tools.transcode(source, output, stream_copy=False)

    def _split_pages(self, source: Path, target_ext: str) -> ConversionResult | None:
        """Render each page of a multi-page PDF into ``<stem>/NNN.<ext>``.

        Returns None (fall through to a single-file conversion) for one-page
        documents or when not a single page could be rendered.
        """
        pages = self.tools.pdf_page_count(source) or 1
        if pages <= 1:
            return None

        page_dir = source.with_suffix("")
        created = not page_dir.exists()
        page_dir.mkdir(parents=True, exist_ok=True)
        if created:
            try:
                copy_owner_and_perms(source.parent, page_dir)
            except OSError as exc:
                logger.debug("could not re-own %s: %s", page_dir, exc)

        written: list[str] = []
        digits = conventions.SPLIT_PAGE_DIGITS
        for index in range(pages):
            page_file = page_dir / f"{index + 1:0{digits}d}.{target_ext}"
            spec = f"{source}[dpi={conventions.RASTER_DPI},page={index}]"
            try:
                self.tools.rasterize(spec, page_file)
            except ToolError as exc:
                logger.warning("Page %d of %s failed: %s", index + 1, source, exc)
                continue
            try:
                copy_owner_and_perms(source, page_file)
            except OSError as exc:
                logger.debug("could not re-own %s: %s", page_file, exc)
            written.append(page_file.name)

        if not written:
            if created:
                remove_path(page_dir)
            return None

        source.unlink(missing_ok=True)
        logger.info("Split %s into %d pages under %s", source, len(written), page_dir)
        return ConversionResult(status="handled_externally", outputs=written)
