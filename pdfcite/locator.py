"""
Citation locator.

This module ties the pieces of the matching stage together:
- Tokenize the target pages (word tokens or Y-banded lines)
- Align every chunk block with the BlockMatcher
- Pool the accepted blocks' indices and synthesize highlight regions

`CitationLocator.locate` is a pure function of its inputs: it never touches
pipeline state, it only returns a complete LocateOutcome.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from pdfcite.logging import get_logger
from pdfcite.matcher import BlockMatcher
from pdfcite.models import LocateOutcome, PageLine, PageText
from pdfcite.rects import RectSynthesizer
from pdfcite.tokenizer import group_page_lines, split_blocks, tokenize_pages

logger = get_logger(__name__)


@dataclass(frozen=True)
class QualityReport:
    total_blocks: int
    matched_blocks: int
    average_score: float
    coverage: float

    @property
    def match_rate(self) -> float:
        return self.matched_blocks / self.total_blocks if self.total_blocks else 0.0

    @property
    def passed(self) -> bool:
        return self.match_rate >= 0.8 and self.average_score >= 0.85 and self.coverage >= 0.75


@dataclass(frozen=True)
class DuplicateReport:
    block_index: int
    block_text: str
    windows: Tuple[Tuple[int, int, float], ...]


class CitationLocator:
    """
    Locate a chunk passage inside one or more PDF pages.

    Uses either word-token alignment (sequential/proximity) or line-window
    scoring, selected by `granularity`.
    """

    def __init__(
        self,
        granularity: str = "tokens",
        matcher: Optional[BlockMatcher] = None,
        synthesizer: Optional[RectSynthesizer] = None,
    ):
        if granularity not in ("tokens", "lines"):
            raise ValueError(f"Unknown granularity: {granularity}")
        self.granularity = granularity
        self.matcher = matcher or BlockMatcher()
        self.synthesizer = synthesizer or RectSynthesizer()

    def locate(self, passage_text: str, pages: Sequence[PageText]) -> LocateOutcome:
        """
        Match a passage against the given pages and build highlight regions.

        Pages are searched in the given order as one concatenated sequence.
        An empty passage or a passage with no accepted block yields no regions.
        """
        passage = split_blocks(passage_text)
        outcome = LocateOutcome(passage=passage)
        if passage.is_empty or not pages:
            return outcome

        if self.granularity == "lines":
            boxes = group_page_lines(pages)
            outcome.results = self.matcher.match_passage_lines(passage, boxes)
        else:
            boxes = tokenize_pages(pages)
            outcome.results = self.matcher.match_passage(passage, boxes)

        pooled = [i for r in outcome.accepted for i in r.matched_indices]
        outcome.regions = self.synthesizer.synthesize(
            pooled,
            boxes,
            passage.raw_text,
            page_sizes=self._page_sizes(pages),
        )

        logger.info(
            "passage_located",
            granularity=self.granularity,
            pages=[p.page_number for p in pages],
            boxes=len(boxes),
            blocks=len(passage.blocks),
            accepted=len(outcome.accepted),
            regions=len(outcome.regions),
        )
        return outcome

    @staticmethod
    def _page_sizes(pages: Sequence[PageText]) -> Dict[int, Tuple[float, float]]:
        return {p.page_number: (p.width, p.height) for p in pages}

    def quality(self, outcome: LocateOutcome) -> QualityReport:
        """Block match rate, average score and character coverage of a passage."""
        results = outcome.results
        accepted = {r.block_index for r in outcome.accepted}
        blocks = outcome.passage.blocks
        matched_text = " ".join(b.text for b in blocks if b.index in accepted)
        raw_len = len(outcome.passage.raw_text)
        return QualityReport(
            total_blocks=len(results),
            matched_blocks=len(accepted),
            average_score=(sum(r.score for r in results) / len(results)) if results else 0.0,
            coverage=(len(matched_text) / raw_len) if raw_len else 0.0,
        )

    def find_duplicates(
        self, passage_text: str, pages: Sequence[PageText]
    ) -> List[DuplicateReport]:
        """Blocks whose text is accepted at more than one distinct line window."""
        passage = split_blocks(passage_text)
        lines: List[PageLine] = group_page_lines(pages)
        reports = []
        for block in passage.blocks:
            windows = self.matcher.find_duplicate_windows(block, lines)
            if len(windows) > 1:
                reports.append(
                    DuplicateReport(
                        block_index=block.index,
                        block_text=block.text,
                        windows=tuple(windows),
                    )
                )
        return reports
