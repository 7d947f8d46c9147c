from PyQt6.QtCore import QRectF, Qt
from PyQt6.QtGui import QColor, QMouseEvent, QPainter, QPixmap
from PyQt6.QtWidgets import QLabel

HIGHLIGHT_COLOR = QColor(249, 226, 175, 110)


class PDFPageLabel(QLabel):
    """One rendered page with citation highlight rects painted on top."""

    def __init__(self, page_number: int, width: int, height: int):
        super().__init__()
        self.page_number = page_number
        self.original_pixmap = None
        self.highlight_rects = []
        self.highlight_text = ""
        self.color = HIGHLIGHT_COLOR
        self.setFixedSize(width, height)
        self.setStyleSheet("background-color: #313244;")
        self.setMouseTracking(True)

    def set_page_pixmap(self, pixmap: QPixmap):
        self.original_pixmap = pixmap
        self.setFixedSize(pixmap.width(), pixmap.height())
        self.draw_highlights()

    def set_highlights(self, rects, text=""):
        self.highlight_rects = list(rects)
        self.highlight_text = text
        self.draw_highlights()

    def clear_highlights(self):
        self.set_highlights([])

    def draw_highlights(self):
        if self.original_pixmap is None:
            return
        if not self.highlight_rects:
            self.setPixmap(self.original_pixmap)
            return

        canvas = self.original_pixmap.copy()
        painter = QPainter(canvas)
        painter.setBrush(self.color)
        painter.setPen(Qt.PenStyle.NoPen)
        for rect in self.highlight_rects:
            painter.drawRect(QRectF(rect))
        painter.end()
        self.setPixmap(canvas)

    def mouseMoveEvent(self, event: QMouseEvent):
        pos = event.position()
        if any(r.contains(pos) for r in self.highlight_rects):
            self.setCursor(Qt.CursorShape.PointingHandCursor)
            self.setToolTip(self.highlight_text[:300])
        else:
            self.setCursor(Qt.CursorShape.ArrowCursor)
            self.setToolTip("")
        super().mouseMoveEvent(event)
