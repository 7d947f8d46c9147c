"""
Citation highlighting for rendered PDFs.

Given a retrieval chunk and the positioned text of one or more PDF pages,
locate the on-page words that correspond to the chunk and produce the
rectangles a viewer should highlight.
"""

__version__ = "0.1.0"
