"""
Main window of the citation viewer.

- Renders the open PDF page by page, fitted to the viewport width
- Accepts citation link text and hands it to the highlight pipeline
- Paints the pipeline's highlight regions and scrolls to the first one
- Reports viewport resizes so stale highlights get recomputed
"""

import os

import psutil
from PyQt6.QtCore import Qt, QThread, QThreadPool, QTimer
from PyQt6.QtGui import QColor, QPalette
from PyQt6.QtWidgets import (
    QFileDialog,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QScrollArea,
    QVBoxLayout,
    QWidget,
)

from pdfcite.citation import parse_citation
from pdfcite.config import AppConfig
from pdfcite.gui.pdf_renderer import PageRenderer
from pdfcite.gui.widgets import PDFPageLabel
from pdfcite.gui.workers import PageRenderWorker, PipelineWorker
from pdfcite.logging import get_logger

logger = get_logger(__name__)

PAGE_SPACING = 10
SCROLL_MARGIN = 40


class Theme:
    """Dark theme colors (Catppuccin Mocha)."""

    BASE = "#1e1e2e"
    MANTLE = "#181825"
    SURFACE0 = "#313244"
    SURFACE1 = "#45475a"
    TEXT = "#cdd6f4"
    SUBTEXT0 = "#a6adc8"
    BLUE = "#89b4fa"
    MAUVE = "#cba6f7"
    CRUST = "#11111b"


class MainWindow(QMainWindow):
    def __init__(self, config: AppConfig):
        super().__init__()
        self.config = config
        self.setWindowTitle("pdfcite")
        self.resize(1100, 900)
        self.apply_theme()

        self.renderer = PageRenderer(max_bytes=256 * 1024 * 1024)
        self.process = psutil.Process(os.getpid())
        self.file_path = None
        self.zoom = 1.0
        self.page_labels = []
        self.regions = []
        self._pending_render = None

        self._render_pool = QThreadPool()
        self._render_pool.setMaxThreadCount(1)

        # Re-fit pages to the viewport 150 ms after the last resize
        self._relayout_timer = QTimer()
        self._relayout_timer.setSingleShot(True)
        self._relayout_timer.setInterval(150)
        self._relayout_timer.timeout.connect(self._relayout)

        self.init_ui()
        self.start_pipeline()

        self.stats_timer = QTimer()
        self.stats_timer.timeout.connect(self.update_stats)
        self.stats_timer.start(2000)

    def apply_theme(self):
        palette = QPalette()
        palette.setColor(QPalette.ColorRole.Window, QColor(Theme.BASE))
        palette.setColor(QPalette.ColorRole.WindowText, QColor(Theme.TEXT))
        palette.setColor(QPalette.ColorRole.Base, QColor(Theme.MANTLE))
        palette.setColor(QPalette.ColorRole.Text, QColor(Theme.TEXT))
        palette.setColor(QPalette.ColorRole.Button, QColor(Theme.SURFACE0))
        palette.setColor(QPalette.ColorRole.ButtonText, QColor(Theme.TEXT))
        palette.setColor(QPalette.ColorRole.Highlight, QColor(Theme.MAUVE))
        palette.setColor(QPalette.ColorRole.HighlightedText, QColor(Theme.CRUST))
        self.setPalette(palette)
        self.setStyleSheet(f"""
            QPushButton {{
                background-color: {Theme.SURFACE0};
                border: 1px solid {Theme.SURFACE1};
                border-radius: 6px;
                padding: 6px 14px;
            }}
            QPushButton:hover {{ border-color: {Theme.BLUE}; }}
            QLineEdit {{
                background-color: {Theme.MANTLE};
                border: 1px solid {Theme.SURFACE1};
                border-radius: 6px;
                padding: 6px;
            }}
            QStatusBar QLabel {{ color: {Theme.SUBTEXT0}; padding: 0 8px; }}
        """)

    def init_ui(self):
        central = QWidget()
        layout = QVBoxLayout(central)
        layout.setContentsMargins(8, 8, 8, 8)
        self.setCentralWidget(central)

        toolbar = QHBoxLayout()
        self.btn_open = QPushButton("Open PDF...")
        self.btn_open.clicked.connect(self.choose_file)
        toolbar.addWidget(self.btn_open)

        self.citation_input = QLineEdit()
        self.citation_input.setPlaceholderText(
            "Document.pdf - Page 3 - Chunk 47 - [cited text]  or plain passage text"
        )
        self.citation_input.returnPressed.connect(self.highlight_citation)
        toolbar.addWidget(self.citation_input, stretch=1)

        self.btn_highlight = QPushButton("Highlight")
        self.btn_highlight.setEnabled(False)
        self.btn_highlight.clicked.connect(self.highlight_citation)
        toolbar.addWidget(self.btn_highlight)
        layout.addLayout(toolbar)

        self.scroll = QScrollArea()
        self.scroll.setWidgetResizable(True)
        self.scroll.setAlignment(Qt.AlignmentFlag.AlignHCenter)
        self.pages_widget = QWidget()
        self.pages_layout = QVBoxLayout(self.pages_widget)
        self.pages_layout.setAlignment(Qt.AlignmentFlag.AlignHCenter)
        self.pages_layout.setSpacing(PAGE_SPACING)
        self.scroll.setWidget(self.pages_widget)
        layout.addWidget(self.scroll, stretch=1)

        self.status_bar = self.statusBar()
        self.lbl_stage = QLabel("Stage: idle")
        self.lbl_cache = QLabel("Cache: 0 pages")
        self.lbl_mem = QLabel("Memory: -")
        self.status_bar.addPermanentWidget(self.lbl_stage)
        self.status_bar.addPermanentWidget(self.lbl_cache)
        self.status_bar.addPermanentWidget(self.lbl_mem)
        self.status_bar.showMessage("Open a PDF to start.")

    # -- pipeline thread ------------------------------------------------------

    def start_pipeline(self):
        self.pipeline_thread = QThread()
        self.pipeline_worker = PipelineWorker(self.config)
        self.pipeline_worker.moveToThread(self.pipeline_thread)
        self.pipeline_thread.started.connect(self.pipeline_worker.run)
        self.pipeline_worker.ready.connect(self.on_pipeline_ready)
        self.pipeline_worker.stageChanged.connect(self.on_stage_changed)
        self.pipeline_worker.highlightsReady.connect(self.on_highlights_ready)
        self.pipeline_worker.highlightsCleared.connect(self.on_highlights_cleared)
        self.pipeline_worker.scrollRequested.connect(self.on_scroll_requested)
        self.pipeline_worker.pageRequested.connect(self.on_page_requested)
        self.pipeline_thread.start()

    def on_pipeline_ready(self):
        self._report_viewport()
        if self.file_path:
            self.pipeline_worker.open_document(self.file_path)
            self.btn_highlight.setEnabled(True)

    def on_stage_changed(self, stage: str):
        self.lbl_stage.setText(f"Stage: {stage.replace('_', ' ')}")

    def on_highlights_ready(self, regions: list):
        self.regions = regions
        self.apply_highlights()
        total = sum(len(r.rects) for r in regions)
        pages = ", ".join(str(r.page_number) for r in regions)
        self.status_bar.showMessage(f"Highlighted {total} line(s) on page(s) {pages}", 8000)

    def on_highlights_cleared(self):
        self.regions = []
        for label in self.page_labels:
            label.clear_highlights()

    def on_scroll_requested(self, region):
        index = region.page_number - 1
        if not 0 <= index < len(self.page_labels):
            return
        label = self.page_labels[index]
        top = label.y() + self.renderer.widget_top(region, self.zoom) - SCROLL_MARGIN
        self.scroll.verticalScrollBar().setValue(max(0, int(top)))

    def on_page_requested(self, page_number: int):
        index = page_number - 1
        if 0 <= index < len(self.page_labels) and self.page_labels[index].original_pixmap:
            self.pipeline_worker.page_ready(page_number)

    # -- document -------------------------------------------------------------

    def choose_file(self):
        path, _ = QFileDialog.getOpenFileName(self, "Open PDF", "", "PDF files (*.pdf)")
        if path:
            self.open_file(path)

    def open_file(self, path: str):
        try:
            self.renderer.open(path)
        except Exception as exc:
            logger.error("document_open_failed", path=path, error=str(exc))
            QMessageBox.warning(self, "Error", f"Cannot open {path}:\n{exc}")
            return

        self.file_path = path
        self.regions = []
        self.setWindowTitle(f"pdfcite - {os.path.basename(path)}")
        self.pipeline_worker.open_document(path)
        self.btn_highlight.setEnabled(self.pipeline_worker.loop is not None)
        self.zoom = self.renderer.fit_width_zoom(self.scroll.viewport().width())
        self.render_pages()
        self.status_bar.showMessage(f"Opened {path} ({self.renderer.page_count} pages)", 5000)

    def render_pages(self):
        """Lay out page slots at the current zoom and rasterize uncached pages."""
        if self._pending_render is not None:
            self._pending_render.cancel()
            self._pending_render = None
        self.pipeline_worker.set_painted(False)

        while self.pages_layout.count():
            item = self.pages_layout.takeAt(0)
            if item.widget():
                item.widget().deleteLater()

        self.page_labels = []
        uncached = []
        for number, (width, height) in enumerate(self.renderer.page_sizes, start=1):
            label = PDFPageLabel(number, int(width * self.zoom), int(height * self.zoom))
            pixmap = self.renderer.cached(number, self.zoom)
            if pixmap is not None:
                label.set_page_pixmap(pixmap)
            else:
                uncached.append(number)
            self.page_labels.append(label)
            self.pages_layout.addWidget(label)

        if uncached:
            worker = PageRenderWorker(self.file_path, uncached, self.zoom)
            worker.signals.finished.connect(self._on_pages_rendered)
            self._pending_render = worker
            self._render_pool.start(worker)
        else:
            self._pages_painted()

    def _on_pages_rendered(self, results: list, zoom: float):
        self._pending_render = None
        if zoom != round(self.zoom, 2):
            return  # superseded by a newer layout
        for number, image in results:
            pixmap = self.renderer.store(number, zoom, image)
            if number - 1 < len(self.page_labels):
                self.page_labels[number - 1].set_page_pixmap(pixmap)
        self._pages_painted()

    def _pages_painted(self):
        self.apply_highlights()
        self.pipeline_worker.set_painted(True)
        for label in self.page_labels:
            self.pipeline_worker.page_ready(label.page_number)
        self.update_stats()

    def apply_highlights(self):
        by_page = {r.page_number: r for r in self.regions}
        for label in self.page_labels:
            region = by_page.get(label.page_number)
            if region is None:
                label.clear_highlights()
            else:
                label.set_highlights(
                    self.renderer.widget_rects(region, self.zoom), region.source_text
                )

    def highlight_citation(self):
        text = self.citation_input.text().strip()
        if not text or not self.file_path:
            return
        citation = parse_citation(text)
        if citation.filename and os.path.basename(self.file_path) != citation.filename:
            self.status_bar.showMessage(
                f"Citation refers to {citation.filename}; searching the open document", 5000
            )
        self.pipeline_worker.select(citation)

    # -- resize ---------------------------------------------------------------

    def _report_viewport(self):
        viewport = self.scroll.viewport().size()
        self.pipeline_worker.resized(viewport.width(), viewport.height())

    def _relayout(self):
        if not self.file_path:
            return
        zoom = self.renderer.fit_width_zoom(self.scroll.viewport().width())
        if zoom != self.zoom:
            self.zoom = zoom
            self.render_pages()

    def resizeEvent(self, event):
        super().resizeEvent(event)
        self._report_viewport()
        self._relayout_timer.start()

    def update_stats(self):
        self.lbl_mem.setText(
            f"Memory: {self.process.memory_info().rss / 1024 / 1024:.1f} MB"
        )
        stats = self.renderer.stats()
        self.lbl_cache.setText(
            f"Cache: {stats['cached_pages']} pages / {stats['used_bytes'] / 1024 / 1024:.0f} MB"
        )

    def closeEvent(self, event):
        self.pipeline_worker.stop()
        self.pipeline_thread.quit()
        self.pipeline_thread.wait()
        self.renderer.cache.clear()
        super().closeEvent(event)
