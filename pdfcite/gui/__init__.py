"""PyQt6 viewer that renders PDF pages and paints citation highlights."""
