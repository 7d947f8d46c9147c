"""
Data model shared by the tokenizer, matcher, rect synthesizer and pipeline.

All geometry is expressed in page space at scale 1.0 with the PDF origin
(bottom-left, y growing upwards). Converting to screen space is the
renderer's job.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple


@dataclass(frozen=True, slots=True)
class TextRun:
    """One raw positioned text item as reported by the page text extractor."""

    text: str
    transform: Tuple[float, float, float, float, float, float]
    width: float
    height: float = 0.0

    @property
    def x(self) -> float:
        return self.transform[4]

    @property
    def y(self) -> float:
        return self.transform[5]

    @property
    def box_height(self) -> float:
        return self.height or abs(self.transform[3])

    @classmethod
    def from_dict(cls, item: dict) -> "TextRun":
        return cls(
            text=item.get("str", "") or "",
            transform=tuple(float(v) for v in item["transform"]),
            width=float(item.get("width", 0.0) or 0.0),
            height=float(item.get("height", 0.0) or 0.0),
        )


@dataclass(frozen=True, slots=True)
class PageText:
    """Everything the extraction collaborator returns for one page."""

    page_number: int
    width: float
    height: float
    runs: Tuple[TextRun, ...] = ()


@dataclass(frozen=True, slots=True)
class PageToken:
    text: str
    normalized: str
    x: float
    y: float
    width: float
    height: float
    source_index: int
    page_number: int = 1


@dataclass(frozen=True, slots=True)
class PageLine:
    """A Y-banded group of runs, used when line granularity suffices."""

    text: str
    normalized: str
    x: float
    y: float
    width: float
    height: float
    band_y: float
    source_indices: Tuple[int, ...]
    page_number: int = 1


@dataclass(frozen=True, slots=True)
class ChunkBlock:
    index: int
    text: str


@dataclass(frozen=True, slots=True)
class ChunkPassage:
    raw_text: str
    blocks: Tuple[ChunkBlock, ...]

    @property
    def is_empty(self) -> bool:
        return not self.blocks


class MatchStrategy(enum.Enum):
    SEQUENTIAL = "sequential"
    PROXIMITY = "proximity"
    LINE_WINDOW = "line_window"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class MatchResult:
    block_index: int
    matched_indices: Tuple[int, ...]
    score: float
    strategy: MatchStrategy

    @property
    def accepted(self) -> bool:
        return self.strategy is not MatchStrategy.NONE


@dataclass(frozen=True, slots=True)
class Rect:
    x1: float
    y1: float
    x2: float
    y2: float
    page_number: int = 1

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    def to_dict(self) -> dict:
        return {
            "x1": self.x1,
            "y1": self.y1,
            "x2": self.x2,
            "y2": self.y2,
            "width": self.width,
            "height": self.height,
            "pageNumber": self.page_number,
        }


@dataclass(frozen=True, slots=True)
class HighlightRegion:
    rects: Tuple[Rect, ...]
    page_number: int
    bounding_rect: Rect
    source_text: str
    page_width: float = 0.0
    page_height: float = 0.0

    def to_dict(self) -> dict:
        return {
            "pageNumber": self.page_number,
            "boundingRect": self.bounding_rect.to_dict(),
            "rects": [r.to_dict() for r in self.rects],
            "pageSize": {"width": self.page_width, "height": self.page_height},
            "text": self.source_text,
        }


@dataclass(frozen=True, slots=True)
class Citation:
    """A citation reference parsed out of chat link text."""

    source_text: str
    filename: Optional[str] = None
    page_number: Optional[int] = None
    chunk_id: Optional[str] = None
    url: Optional[str] = None

    @property
    def key(self) -> str:
        return self.chunk_id if self.chunk_id else self.source_text


@dataclass(frozen=True, slots=True)
class ChunkMetadata:
    chunk_context: str
    page_numbers: Tuple[int, ...] = (1,)
    pdf_url: Optional[str] = None


@dataclass(slots=True)
class LocateOutcome:
    """Complete matcher output for one passage: never partial."""

    passage: ChunkPassage
    results: List[MatchResult] = field(default_factory=list)
    regions: List[HighlightRegion] = field(default_factory=list)

    @property
    def accepted(self) -> List[MatchResult]:
        return [r for r in self.results if r.accepted]


def page_numbers_or_default(values: Optional[Sequence[int]]) -> Tuple[int, ...]:
    pages = tuple(int(v) for v in (values or ()) if int(v) >= 1)
    return pages or (1,)
