"""
Background workers for the viewer.

- PipelineWorker: runs an asyncio loop on a QThread hosting the
  HighlightPipeline and ResizeMonitor
- QtHighlightRenderer: the pipeline's renderer, bridging to the GUI thread
  through the worker's signals
- PageRenderWorker: rasterizes pages into QImages on a QThreadPool
"""

import asyncio
import threading
from typing import List, Optional, Sequence

import fitz
from PyQt6.QtCore import QObject, QRunnable, pyqtSignal

from pdfcite.config import AppConfig
from pdfcite.extraction import FitzPageSource
from pdfcite.gui.pdf_renderer import render_image
from pdfcite.logging import get_logger
from pdfcite.metadata import ChunkMetadataClient
from pdfcite.models import Citation, HighlightRegion
from pdfcite.pipeline import HighlightPipeline
from pdfcite.resize import ResizeMonitor

logger = get_logger(__name__)

TEXT_LAYER_TIMEOUT = 2.0


class ContainerProxy:
    """Last viewport size reported by the GUI thread."""

    def __init__(self):
        self._lock = threading.Lock()
        self._size = (0.0, 0.0)

    def update(self, width: float, height: float) -> None:
        with self._lock:
            self._size = (float(width), float(height))

    def size(self):
        with self._lock:
            return self._size


class QtHighlightRenderer:
    """
    Renderer used from the loop thread. Paint and page readiness are
    reported back by the GUI through PipelineWorker.
    """

    def __init__(self, worker: "PipelineWorker"):
        self.worker = worker
        self._painted = asyncio.Event()
        self._pages_ready = {}

    def set_painted(self, painted: bool) -> None:
        if painted:
            self._painted.set()
        else:
            self._painted.clear()

    def reset_pages(self) -> None:
        self._pages_ready.clear()

    def page_ready(self, page_number: int) -> None:
        self._pages_ready.setdefault(page_number, asyncio.Event()).set()

    async def wait_painted(self) -> None:
        await self._painted.wait()

    async def wait_until_ready(self) -> None:
        await self._painted.wait()

    async def ensure_text_layer(self, page_number: int) -> None:
        event = self._pages_ready.setdefault(page_number, asyncio.Event())
        if event.is_set():
            return
        self.worker.pageRequested.emit(page_number)
        try:
            await asyncio.wait_for(event.wait(), TEXT_LAYER_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("text_layer_timeout", page=page_number)

    def set_highlights(self, regions: Sequence[HighlightRegion]) -> None:
        self.worker.highlightsReady.emit(list(regions))

    def clear_highlights(self) -> None:
        self.worker.highlightsCleared.emit()

    def scroll_to(self, region: HighlightRegion) -> None:
        self.worker.scrollRequested.emit(region)


class PipelineWorker(QObject):
    """
    Hosts the highlight pipeline on its own asyncio loop.

    Move to a QThread and connect `QThread.started` to `run`. Every public
    method is safe to call from the GUI thread.
    """

    ready = pyqtSignal()
    stageChanged = pyqtSignal(str)
    highlightsReady = pyqtSignal(list)
    highlightsCleared = pyqtSignal()
    scrollRequested = pyqtSignal(object)
    pageRequested = pyqtSignal(int)

    def __init__(self, config: AppConfig):
        super().__init__()
        self.config = config
        self.container = ContainerProxy()
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.pipeline: Optional[HighlightPipeline] = None
        self.monitor: Optional[ResizeMonitor] = None
        self.renderer: Optional[QtHighlightRenderer] = None

    def run(self):
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)

        self.renderer = QtHighlightRenderer(self)
        metadata_source = None
        if self.config.fetch_enabled:
            metadata_source = ChunkMetadataClient(
                self.config.chunk_api_url, timeout=self.config.http_timeout
            )
        self.pipeline = HighlightPipeline(
            container=self.container,
            renderer=self.renderer,
            page_source=None,
            metadata_source=metadata_source,
            config=self.config,
        )
        self.pipeline.add_listener(lambda snap: self.stageChanged.emit(snap.state.value))
        self.monitor = ResizeMonitor(
            self.pipeline,
            debounce=self.config.resize_debounce,
            threshold=self.config.resize_threshold,
        )

        self.ready.emit()
        try:
            self.loop.run_forever()
        finally:
            self.loop.close()

    def _call(self, callback, *args) -> None:
        if self.loop is None or self.loop.is_closed():
            return
        self.loop.call_soon_threadsafe(callback, *args)

    def open_document(self, file_path: str) -> None:
        self._call(self._open_document, file_path)

    def _open_document(self, file_path: str) -> None:
        self.pipeline.page_source = FitzPageSource(file_path)
        self.renderer.reset_pages()

    # The pipeline, monitor and renderer are built by run() on the worker
    # thread, so they are looked up only once the callback runs there.

    def select(self, citation: Citation) -> None:
        self._call(lambda: self.pipeline.select(citation))

    def resized(self, width: float, height: float) -> None:
        self.container.update(width, height)
        self._call(lambda: self.monitor.observe(width, height))

    def set_painted(self, painted: bool) -> None:
        self._call(lambda: self.renderer.set_painted(painted))

    def page_ready(self, page_number: int) -> None:
        self._call(lambda: self.renderer.page_ready(page_number))

    def stop(self) -> None:
        if self.loop is not None and not self.loop.is_closed():
            self.loop.call_soon_threadsafe(self.loop.stop)


class PageRenderSignals(QObject):
    # list of (page_number, QImage), plus the zoom the render was for
    finished = pyqtSignal(list, float)


class PageRenderWorker(QRunnable):
    """
    Rasterize pages in the background.

    Produces QImage (thread-safe); the GUI thread converts to QPixmap.
    """

    def __init__(self, file_path: str, page_numbers: List[int], zoom: float):
        super().__init__()
        self.file_path = file_path
        self.page_numbers = page_numbers
        self.zoom = round(zoom, 2)
        self.signals = PageRenderSignals()
        self._cancelled = False
        self.setAutoDelete(True)

    def cancel(self) -> None:
        self._cancelled = True

    def run(self) -> None:
        if self._cancelled:
            return

        results = []
        doc = fitz.open(self.file_path)
        try:
            for page_number in self.page_numbers:
                if self._cancelled:
                    return
                results.append((page_number, render_image(doc[page_number - 1], self.zoom)))
        finally:
            doc.close()

        if not self._cancelled:
            self.signals.finished.emit(results, self.zoom)
