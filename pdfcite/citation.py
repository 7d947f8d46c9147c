"""Parsing of citation link text produced by the chat answer renderer."""

import re
from typing import Optional

from pdfcite.models import Citation

# "Tropical.pdf - Page 3 - Chunk 47 - [Source text...]"
BRACKETED = re.compile(
    r"^(.+?\.pdf)\s*-\s*Page\s*(\d+)\s*-\s*Chunk\s*(\d+)\s*-\s*\[(.+)\]$",
    re.IGNORECASE | re.DOTALL,
)
# Same without the brackets around the source text
PLAIN = re.compile(
    r"^(.+?\.pdf)\s*-\s*Page\s*(\d+)\s*-\s*Chunk\s*(\d+)\s*-\s*(.+)$",
    re.IGNORECASE | re.DOTALL,
)


def parse_citation(text: str, url: Optional[str] = None) -> Citation:
    """
    Parse link text into a Citation.

    Falls back to using the whole (trimmed) text as the search passage, with
    no page or chunk hint, when the text is not in citation format.
    """
    text = (text or "").strip()
    match = BRACKETED.match(text) or PLAIN.match(text)
    if match is None:
        return Citation(source_text=text, url=url)

    filename, page, chunk, source = match.groups()
    return Citation(
        source_text=source.strip(),
        filename=filename.strip(),
        page_number=int(page),
        chunk_id=chunk,
        url=f"{url}#page={page}" if url else None,
    )
