"""Exception types raised at the collaborator boundaries."""

from typing import Optional


class PdfCiteError(Exception):
    """Base class for all pdfcite errors."""


class RecoverableFetchError(PdfCiteError):
    """Chunk metadata could not be fetched or decoded.

    The pipeline logs it and continues with the data embedded in the citation.
    """

    def __init__(self, message: str, chunk_id: Optional[str] = None):
        super().__init__(message)
        self.chunk_id = chunk_id


class ExtractionError(PdfCiteError):
    """A page, or the text content of a page, could not be read."""

    def __init__(self, message: str, page_number: Optional[int] = None):
        super().__init__(message)
        self.page_number = page_number


class ConfigError(PdfCiteError, ValueError):
    """A PDFCITE_* (or LOG_LEVEL) environment variable holds an unusable value."""

    def __init__(self, key: str, expected: str, value: Optional[str] = None):
        detail = f" (got {value!r})" if value is not None else ""
        super().__init__(f"{key} must be {expected}{detail}")
        self.key = key
