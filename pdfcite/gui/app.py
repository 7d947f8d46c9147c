"""Viewer entry point."""

import sys
from typing import Optional

from PyQt6.QtWidgets import QApplication

from pdfcite.config import load_config
from pdfcite.gui.main_window import MainWindow
from pdfcite.logging import configure_logging


def run(pdf_path: Optional[str] = None) -> int:
    config = load_config()
    configure_logging(config.log_level)

    app = QApplication.instance() or QApplication(sys.argv)
    window = MainWindow(config)
    window.show()
    if pdf_path:
        window.open_file(pdf_path)
    return app.exec()


if __name__ == "__main__":
    sys.exit(run(sys.argv[1] if len(sys.argv) > 1 else None))
