"""Folder-to-PDF aggregation.

Renaming ``album`` to ``album.!pdf`` turns every image and supported
document directly inside it into one page run of ``album.pdf``, in sorted
filename order. Work happens in sibling temp paths; the source directory
is only removed once the merged PDF exists.
"""

from __future__ import annotations

import logging
from pathlib import Path

from . import conventions
from .errors import ToolError
from .fileutil import remove_path
from .formats import (
    detect_mime,
    detect_source_ext,
    is_supported_folder_input,
    pandoc_from_ext,
)
from .notifier import Notifier
from .ownership import Owner
from .tools import Toolbox

logger = logging.getLogger(__name__)


def gather_folder_inputs(directory: Path, tools: Toolbox) -> list[Path]:
    """Immediate child files of *directory* that can become PDF pages."""
    return sorted(
        child
        for child in directory.iterdir()
        if child.is_file() and is_supported_folder_input(child, tools)
    )


class FolderAggregator:
    def __init__(self, tools: Toolbox, notifier: Notifier) -> None:
        self.tools = tools
        self.notifier = notifier

    def aggregate(self, input_dir: Path, output_pdf: Path) -> bool:
        """Build *output_pdf* from *input_dir*.

        Returns False when there was nothing to aggregate (the directory is
        left alone). Tool failures propagate as ToolError, and a failed move
        into place as OSError, with the source directory untouched.
        """
        owner = Owner.capture(input_dir)
        base = input_dir.with_suffix("")
        pages_dir = Path(f"{base}{conventions.FOLDER_PAGES_SUFFIX}")
        merged_tmp = Path(f"{base}.{conventions.TEMP_MARKER}.pdf")

        files = gather_folder_inputs(input_dir, self.tools)
        if not files:
            return False

        self.notifier.aggregating(owner.uid, len(files))
        pages_dir.mkdir(parents=True, exist_ok=True)
        try:
            pages = self._render_pages(files, pages_dir)
            self.tools.merge_pdfs(pages, merged_tmp)
            owner.apply(merged_tmp, conventions.AGGREGATE_PDF_MODE)
            merged_tmp.rename(output_pdf)
            remove_path(input_dir)
        finally:
            remove_path(pages_dir)
            remove_path(merged_tmp)

        logger.info(
            "Aggregated %d files from %s into %s", len(pages), input_dir, output_pdf
        )
        return True

    def _render_pages(self, files: list[Path], pages_dir: Path) -> list[Path]:
        digits = conventions.FOLDER_PAGE_DIGITS
        pages: list[Path] = []
        for index, file in enumerate(files, start=1):
            page = pages_dir / f"{index:0{digits}d}.pdf"
            try:
                mime = detect_mime(file, self.tools)
            except ToolError:
                mime = ""
            if mime.startswith("image/"):
                self.tools.image_to_pdf(file, page)
            else:
                self.tools.convert_document(
                    file,
                    page,
                    from_format=pandoc_from_ext(detect_source_ext(file, self.tools)),
                    pdf_engine=conventions.PDF_ENGINE,
                )
            pages.append(page)
        return sorted(pages)

