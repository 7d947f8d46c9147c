"""
PDF page tokenizer.

Turns the raw positioned text runs of a page into word-level PageTokens or
Y-banded PageLines. Runs only carry a baseline origin and a total width, so
word boxes are reconstructed by assuming a uniform character width per run.
"""

import re
from typing import Iterable, List, Sequence, Tuple

from pdfcite.models import ChunkBlock, ChunkPassage, PageLine, PageText, PageToken, TextRun
from pdfcite.text import merge_split_words, normalize, normalize_token

WORD = re.compile(r"\S+")

LINE_TOLERANCE = 5.0
MIN_BLOCK_LENGTH = 10


def dedupe_runs(runs: Iterable[TextRun]) -> List[Tuple[int, TextRun]]:
    """
    Drop blank runs and runs repeating an earlier (x, y, text) triple.

    Text layers commonly emit the same item twice (selection and
    accessibility layers). Positions are compared at 0.1pt precision.
    Returns (original_index, run) pairs in input order.
    """
    seen = set()
    kept = []
    for idx, run in enumerate(runs):
        if not run.text or not run.text.strip():
            continue
        key = (round(run.x, 1), round(run.y, 1), run.text)
        if key in seen:
            continue
        seen.add(key)
        kept.append((idx, run))
    return kept


def tokenize_runs(runs: Sequence[TextRun], page_number: int = 1) -> List[PageToken]:
    """Split every run on whitespace and estimate a box for each word."""
    tokens = []
    for idx, run in dedupe_runs(runs):
        char_width = run.width / len(run.text) if run.text else 0.0
        height = run.box_height
        for m in WORD.finditer(run.text):
            word = m.group(0)
            tokens.append(
                PageToken(
                    text=word,
                    normalized=normalize_token(word),
                    x=run.x + m.start() * char_width,
                    y=run.y,
                    width=len(word) * char_width,
                    height=height,
                    source_index=idx,
                    page_number=page_number,
                )
            )
    return tokens


def group_lines(
    runs: Sequence[TextRun],
    page_number: int = 1,
    tolerance: float = LINE_TOLERANCE,
) -> List[PageLine]:
    """
    Group runs into visual lines.

    Runs are visited top-down (y descending, x ascending) and each joins the
    first existing line whose anchor y is within `tolerance`. Line text is the
    left-to-right concatenation with single-letter splits rejoined.
    """
    items = dedupe_runs(runs)
    items.sort(key=lambda pair: (-pair[1].y, pair[1].x))

    groups: List[List[Tuple[int, TextRun]]] = []
    anchors: List[float] = []
    for pair in items:
        y = pair[1].y
        for g_idx, anchor in enumerate(anchors):
            if abs(anchor - y) < tolerance:
                groups[g_idx].append(pair)
                break
        else:
            anchors.append(y)
            groups.append([pair])

    lines = []
    for anchor, group in zip(anchors, groups):
        group.sort(key=lambda pair: pair[1].x)
        text = " ".join(run.text for _, run in group)
        text = " ".join(merge_split_words(text).split())

        x1 = min(run.x for _, run in group)
        y1 = min(run.y for _, run in group)
        x2 = max(run.x + run.width for _, run in group)
        y2 = max(run.y + run.box_height for _, run in group)
        lines.append(
            PageLine(
                text=text,
                normalized=normalize(text),
                x=x1,
                y=y1,
                width=x2 - x1,
                height=y2 - y1,
                band_y=anchor,
                source_indices=tuple(idx for idx, _ in group),
                page_number=page_number,
            )
        )
    return lines


def tokenize_pages(pages: Iterable[PageText]) -> List[PageToken]:
    tokens = []
    for page in pages:
        tokens.extend(tokenize_runs(page.runs, page.page_number))
    return tokens


def group_page_lines(pages: Iterable[PageText]) -> List[PageLine]:
    lines = []
    for page in pages:
        lines.extend(group_lines(page.runs, page.page_number))
    return lines


def page_full_text(lines: Sequence[PageLine]) -> str:
    """Reconstruct readable page text, one visual line per row."""
    return merge_split_words("\n".join(line.text for line in lines)).strip()


def split_blocks(text: str, min_length: int = MIN_BLOCK_LENGTH) -> ChunkPassage:
    """Split a passage into blocks: trimmed lines longer than `min_length`."""
    text = text or ""
    blocks = []
    for line in text.split("\n"):
        line = line.strip()
        if len(line) > min_length:
            blocks.append(ChunkBlock(index=len(blocks), text=line))
    return ChunkPassage(raw_text=text, blocks=tuple(blocks))


def tokenize_block(text: str) -> List[str]:
    """Normalized word tokens of a chunk block; words that normalize to "" are dropped."""
    return [t for t in (normalize_token(w) for w in text.split()) if t]
