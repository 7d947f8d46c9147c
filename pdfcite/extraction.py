"""
Page text extraction backed by PyMuPDF.

Produces the same shape a browser PDF text layer reports: one run per span
with a 6-element transform whose last two entries are the baseline origin in
PDF user space (origin bottom-left), plus the run width and height.
"""

import asyncio
from typing import List, Sequence

import fitz  # PyMuPDF

from pdfcite.errors import ExtractionError
from pdfcite.logging import get_logger
from pdfcite.models import PageText, TextRun

logger = get_logger(__name__)


def page_runs(page) -> List[TextRun]:
    """Convert the spans of a fitz page into TextRuns in PDF coordinates."""
    page_height = page.rect.height
    runs = []
    for block in page.get_text("dict").get("blocks", []):
        if block.get("type") != 0:
            continue  # only text blocks
        for line in block.get("lines", []):
            for span in line.get("spans", []):
                text = span.get("text", "")
                if not text:
                    continue
                x0, _, x1, _ = span["bbox"]
                origin_x, origin_y = span["origin"]
                size = float(span.get("size", 0.0))
                runs.append(
                    TextRun(
                        text=text,
                        transform=(size, 0.0, 0.0, size, origin_x, page_height - origin_y),
                        width=x1 - x0,
                        height=size,
                    )
                )
    return runs


class FitzPageSource:
    """
    Page/text collaborator over a PDF file on disk.

    Page numbers are 1-indexed. The document is opened per call so the
    source can be shared between threads.
    """

    def __init__(self, file_path: str):
        self.file_path = file_path

    def page_count(self) -> int:
        try:
            doc = fitz.open(self.file_path)
        except Exception as exc:
            raise ExtractionError(f"Cannot open {self.file_path}: {exc}") from exc
        try:
            return len(doc)
        finally:
            doc.close()

    def extract_page(self, page_number: int) -> PageText:
        try:
            doc = fitz.open(self.file_path)
        except Exception as exc:
            raise ExtractionError(
                f"Cannot open {self.file_path}: {exc}", page_number
            ) from exc
        try:
            if not 1 <= page_number <= len(doc):
                raise ExtractionError(
                    f"Page {page_number} out of range (1-{len(doc)})", page_number
                )
            try:
                page = doc[page_number - 1]
                runs = page_runs(page)
                rect = page.rect
            except Exception as exc:
                raise ExtractionError(
                    f"Cannot read text of page {page_number}: {exc}", page_number
                ) from exc
            return PageText(
                page_number=page_number,
                width=rect.width,
                height=rect.height,
                runs=tuple(runs),
            )
        finally:
            doc.close()

    async def get_page(self, page_number: int) -> PageText:
        return await asyncio.to_thread(self.extract_page, page_number)


def extract_pages(source, page_numbers: Sequence[int]) -> List[PageText]:
    """
    Extract several pages synchronously, skipping pages that fail.

    A failing page contributes nothing; the remaining pages are still returned.
    """
    pages = []
    for page_number in page_numbers:
        try:
            pages.append(source.extract_page(page_number))
        except ExtractionError as exc:
            logger.warning("page_extraction_failed", page=page_number, error=str(exc))
    return pages
