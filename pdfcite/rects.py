"""
Rect synthesis: turn matched token/line indices into highlight geometry.

Each matched box becomes a rectangle shifted down by a fraction of its
height (PDF baselines sit above the visual bottom of descenders). Boxes on
the same visual line collapse into one rectangle spanning the leftmost to
the rightmost match, so gaps between matched words are filled.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from pdfcite.logging import get_logger
from pdfcite.models import HighlightRegion, PageLine, PageToken, Rect

logger = get_logger(__name__)

Box = Union[PageToken, PageLine]


class RectSynthesizer:
    def __init__(self, baseline_offset: float = 0.15, line_tolerance: float = 5.0):
        self.baseline_offset = baseline_offset
        self.line_tolerance = line_tolerance

    def box_rect(self, box: Box) -> Rect:
        y_offset = box.height * self.baseline_offset
        return Rect(
            x1=box.x,
            y1=box.y - y_offset,
            x2=box.x + box.width,
            y2=box.y + box.height - y_offset,
            page_number=box.page_number,
        )

    def group_lines(self, rects: Iterable[Rect]) -> List[List[Rect]]:
        """Cluster rects into visual lines by their y1 (within `line_tolerance`)."""
        ordered = sorted(rects, key=lambda r: (r.y1, r.x1))
        if not ordered:
            return []
        lines = [[ordered[0]]]
        for rect in ordered[1:]:
            if abs(rect.y1 - lines[-1][0].y1) < self.line_tolerance:
                lines[-1].append(rect)
            else:
                lines.append([rect])
        return lines

    def merge_lines(self, rects: Iterable[Rect]) -> List[Rect]:
        """One rect per visual line, the envelope of its rects."""
        merged = []
        for line in self.group_lines(rects):
            coords = np.array([(r.x1, r.y1, r.x2, r.y2) for r in line], dtype=float)
            merged.append(
                Rect(
                    x1=float(coords[:, 0].min()),
                    y1=float(coords[:, 1].min()),
                    x2=float(coords[:, 2].max()),
                    y2=float(coords[:, 3].max()),
                    page_number=line[0].page_number,
                )
            )
            logger.debug(
                "line_merged",
                page=line[0].page_number,
                tokens=len(line),
                x1=round(merged[-1].x1, 1),
                x2=round(merged[-1].x2, 1),
            )
        return merged

    @staticmethod
    def bounding_rect(rects: Sequence[Rect]) -> Rect:
        coords = np.array([(r.x1, r.y1, r.x2, r.y2) for r in rects], dtype=float)
        return Rect(
            x1=float(coords[:, 0].min()),
            y1=float(coords[:, 1].min()),
            x2=float(coords[:, 2].max()),
            y2=float(coords[:, 3].max()),
            page_number=rects[0].page_number,
        )

    def synthesize(
        self,
        indices: Iterable[int],
        boxes: Sequence[Box],
        source_text: str,
        page_sizes: Optional[Mapping[int, Tuple[float, float]]] = None,
    ) -> List[HighlightRegion]:
        """
        Build highlight regions from indices pooled across a passage's blocks.

        One region per page that received matched geometry, in page order.
        """
        page_sizes = page_sizes or {}
        by_page: Dict[int, List[Rect]] = {}
        for idx in sorted(set(indices)):
            if 0 <= idx < len(boxes):
                rect = self.box_rect(boxes[idx])
                by_page.setdefault(rect.page_number, []).append(rect)

        regions = []
        for page_number in sorted(by_page):
            merged = self.merge_lines(by_page[page_number])
            width, height = page_sizes.get(page_number, (0.0, 0.0))
            regions.append(
                HighlightRegion(
                    rects=tuple(merged),
                    page_number=page_number,
                    bounding_rect=self.bounding_rect(merged),
                    source_text=source_text,
                    page_width=width,
                    page_height=height,
                )
            )
        return regions
