"""
Page rendering for the viewer.

- PixmapCache: LRU cache of rendered pages bounded by an estimated byte budget
- PageRenderer: rasterizes pages with PyMuPDF and converts page-space
  highlight geometry into widget coordinates
"""

from collections import OrderedDict
from typing import List, Optional, Tuple

import fitz
from PyQt6.QtCore import QRectF
from PyQt6.QtGui import QImage, QPixmap

from pdfcite.models import HighlightRegion


def render_image(page, zoom: float) -> QImage:
    """Rasterize a fitz page into a QImage that owns its buffer."""
    pix = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom))
    return QImage(
        pix.samples,
        pix.width,
        pix.height,
        pix.stride,
        QImage.Format.Format_RGB888,
    ).copy()


class PixmapCache:
    """
    LRU cache keyed by (file_path, page_number, zoom).

    Entries are evicted oldest-first once the estimated footprint exceeds
    `max_bytes`. A single oversized entry is still kept.
    """

    DEFAULT_MAX_BYTES: int = 256 * 1024 * 1024

    def __init__(self, max_bytes: int = DEFAULT_MAX_BYTES):
        self.max_bytes = max_bytes
        self._entries: "OrderedDict[tuple, QPixmap]" = OrderedDict()
        self._used_bytes = 0

    @staticmethod
    def footprint(pixmap: QPixmap) -> int:
        if pixmap.isNull():
            return 0
        return pixmap.width() * pixmap.height() * 4

    def get(self, key: tuple) -> Optional[QPixmap]:
        pixmap = self._entries.get(key)
        if pixmap is not None:
            self._entries.move_to_end(key)
        return pixmap

    def put(self, key: tuple, pixmap: QPixmap) -> None:
        if key in self._entries:
            self._used_bytes -= self.footprint(self._entries.pop(key))

        size = self.footprint(pixmap)
        while self._entries and self._used_bytes + size > self.max_bytes:
            _, evicted = self._entries.popitem(last=False)
            self._used_bytes -= self.footprint(evicted)

        self._entries[key] = pixmap
        self._used_bytes += size

    def drop_file(self, file_path: str) -> None:
        for key in [k for k in self._entries if k[0] == file_path]:
            self._used_bytes -= self.footprint(self._entries.pop(key))

    def clear(self) -> None:
        self._entries.clear()
        self._used_bytes = 0

    @property
    def used_bytes(self) -> int:
        return self._used_bytes

    def __len__(self) -> int:
        return len(self._entries)


class PageRenderer:
    """Rendering and coordinate conversion for one open document."""

    def __init__(self, max_bytes: int = PixmapCache.DEFAULT_MAX_BYTES):
        self.cache = PixmapCache(max_bytes=max_bytes)
        self.file_path: Optional[str] = None
        self.page_sizes: List[Tuple[float, float]] = []

    def open(self, file_path: str) -> List[Tuple[float, float]]:
        """Load page sizes (points) of a document and make it current."""
        doc = fitz.open(file_path)
        try:
            self.page_sizes = [(p.rect.width, p.rect.height) for p in doc]
        finally:
            doc.close()
        if self.file_path and self.file_path != file_path:
            self.cache.drop_file(self.file_path)
        self.file_path = file_path
        return self.page_sizes

    @property
    def page_count(self) -> int:
        return len(self.page_sizes)

    def fit_width_zoom(self, available_width: float, margin: float = 24.0) -> float:
        """Zoom at which the widest page fills `available_width`."""
        if not self.page_sizes:
            return 1.0
        widest = max(w for w, _ in self.page_sizes)
        return max(0.1, round((available_width - margin) / widest, 2))

    def cached(self, page_number: int, zoom: float) -> Optional[QPixmap]:
        return self.cache.get((self.file_path, page_number, round(zoom, 2)))

    def store(self, page_number: int, zoom: float, image: QImage) -> QPixmap:
        pixmap = QPixmap.fromImage(image)
        self.cache.put((self.file_path, page_number, round(zoom, 2)), pixmap)
        return pixmap

    def page_height(self, page_number: int) -> float:
        if 1 <= page_number <= len(self.page_sizes):
            return self.page_sizes[page_number - 1][1]
        return 0.0

    def widget_rects(self, region: HighlightRegion, zoom: float) -> List[QRectF]:
        """
        Convert a region's rects from PDF space (origin bottom-left) to widget
        space (origin top-left) at `zoom`.
        """
        height = region.page_height or self.page_height(region.page_number)
        return [
            QRectF(r.x1 * zoom, (height - r.y2) * zoom, r.width * zoom, r.height * zoom)
            for r in region.rects
        ]

    def widget_top(self, region: HighlightRegion, zoom: float) -> float:
        height = region.page_height or self.page_height(region.page_number)
        return (height - region.bounding_rect.y2) * zoom

    def stats(self) -> dict:
        return {"cached_pages": len(self.cache), "used_bytes": self.cache.used_bytes}
