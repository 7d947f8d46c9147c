"""
Block matcher.

Aligns each block of a chunk passage against a tokenized page. Two
word-level strategies share one decision point in `match_block`:
- Sequential: bounded two-pointer alignment preserving reading order
- Proximity: order-independent pairing inside a Y band (short blocks,
  headers whose words are laid out out of reading order)

A third, line-level strategy scores windows of consecutive PageLines and is
used when the pipeline runs at line granularity.
"""

from typing import List, Optional, Sequence, Tuple

from pdfcite.logging import get_logger
from pdfcite.models import ChunkBlock, ChunkPassage, MatchResult, MatchStrategy, PageLine, PageToken
from pdfcite.text import edit_ratio, normalize, tokens_match
from pdfcite.tokenizer import tokenize_block

logger = get_logger(__name__)

ACCEPT_THRESHOLD = 0.75


class BlockMatcher:
    """
    Match chunk blocks against page tokens or page lines.

    Tunables are plain attributes so callers (and tests) can adjust them
    per instance.
    """

    def __init__(self, accept_threshold: float = ACCEPT_THRESHOLD):
        self.accept_threshold = accept_threshold

        # Proximity strategy
        self.proximity_max_tokens = 15
        self.proximity_min_coverage = 0.6
        self.y_tolerance = 20.0

        # Sequential strategy
        self.max_page_skip = 20
        self.max_chunk_skip = 20
        self.max_merge = 3

        # Line windows
        self.max_window = 5
        self.min_contained_chars = 10
        self.word_bag_max_chars = 60
        self.word_bag_min_word = 3
        self.word_bag_max_ratio = 2.0
        self.word_bag_score = 0.85

    def is_accepted(self, score: float) -> bool:
        """Hard cutoff: a score equal to the threshold is accepted."""
        return score >= self.accept_threshold

    # ------------------------------------------------------------------
    # Token-level matching
    # ------------------------------------------------------------------

    def match_passage(
        self, passage: ChunkPassage, tokens: Sequence[PageToken]
    ) -> List[MatchResult]:
        results = []
        for block in passage.blocks:
            result = self.match_block(block, tokens)
            if result is not None:
                results.append(result)
        return results

    def match_block(
        self, block: ChunkBlock, tokens: Sequence[PageToken]
    ) -> Optional[MatchResult]:
        """
        Match one block, or return None when it has no tokens after normalization.

        Sequential alignment always runs. Short blocks that did not align
        perfectly also try proximity; proximity wins only when it covers
        enough of the block and scores strictly higher. The result always
        carries the best score of the strategies tried.
        """
        chunk = tokenize_block(block.text)
        if not chunk:
            logger.debug("block_skipped_empty", block=block.index)
            return None

        indices, matched = self.sequential_match(chunk, tokens)
        score = matched / len(chunk)
        strategy = MatchStrategy.SEQUENTIAL

        if score < 1.0 and len(chunk) <= self.proximity_max_tokens:
            prox_indices, prox_matched = self.proximity_match(chunk, tokens)
            prox_score = prox_matched / len(chunk)
            if prox_score >= self.proximity_min_coverage and prox_score > score:
                indices = prox_indices
                strategy = MatchStrategy.PROXIMITY
            # The reported score is the best one found, even when its indices are not used
            score = max(score, prox_score)

        if not self.is_accepted(score):
            strategy = MatchStrategy.NONE

        logger.debug(
            "block_matched",
            block=block.index,
            tokens=len(chunk),
            matched=len(indices),
            score=round(score, 4),
            strategy=strategy.value,
        )
        return MatchResult(
            block_index=block.index,
            matched_indices=tuple(indices),
            score=score,
            strategy=strategy,
        )

    def proximity_match(
        self, chunk: Sequence[str], tokens: Sequence[PageToken]
    ) -> Tuple[List[int], int]:
        """
        Pair page tokens in the anchor's Y band with unused chunk tokens.

        The anchor is the first page token matching the block's first token.
        Returns (page token indices, number of chunk tokens paired).
        """
        if not chunk or not tokens:
            return [], 0

        anchor = next(
            (tok for tok in tokens if tokens_match(chunk[0], tok.normalized)), None
        )
        if anchor is None:
            return [], 0

        matched = []
        used = set()
        for i, tok in enumerate(tokens):
            if tok.page_number != anchor.page_number:
                continue
            if abs(tok.y - anchor.y) > self.y_tolerance:
                continue
            for j, word in enumerate(chunk):
                if j in used:
                    continue
                if tokens_match(word, tok.normalized):
                    matched.append(i)
                    used.add(j)
                    break
        return matched, len(used)

    def sequential_match(
        self, chunk: Sequence[str], tokens: Sequence[PageToken]
    ) -> Tuple[List[int], int]:
        """
        Align the block in reading order from every plausible start position.

        Keeps the start whose alignment pairs the most chunk tokens; ties go
        to the more compact span, then to the earlier start.
        Returns (page token indices, number of chunk tokens paired).
        """
        if not chunk or not tokens:
            return [], 0

        best_indices: List[int] = []
        best_key = (0, 0)
        for start in range(len(tokens)):
            if not self._match_with_merge(chunk[0], tokens, start):
                continue
            indices, matched = self._align_from(chunk, tokens, start)
            span = indices[-1] - indices[0] if indices else 0
            key = (matched, -span)
            if matched and (not best_indices or key > best_key):
                best_indices, best_key = indices, key
                if matched == len(chunk) and span == len(indices) - 1:
                    break
        return best_indices, best_key[0]

    def _align_from(
        self, chunk: Sequence[str], tokens: Sequence[PageToken], start: int
    ) -> Tuple[List[int], int]:
        indices: List[int] = []
        matched = 0
        page_idx = start
        chunk_idx = 0
        chunk_skips = 0

        while chunk_idx < len(chunk) and page_idx < len(tokens):
            hit = None
            # Skip ahead over page tokens first (styled runs split oddly)
            for skip in range(self.max_page_skip + 1):
                pos = page_idx + skip
                if pos >= len(tokens):
                    break
                consumed = self._match_with_merge(chunk[chunk_idx], tokens, pos)
                if consumed:
                    hit = (pos, consumed)
                    break

            if hit is not None:
                pos, consumed = hit
                indices.extend(range(pos, pos + consumed))
                page_idx = pos + consumed
                matched += 1
                chunk_skips = 0
            else:
                # Then give up on this chunk token (duplicated/corrupted text)
                chunk_skips += 1
                if chunk_skips > self.max_chunk_skip:
                    break
            chunk_idx += 1

        return indices, matched

    def _match_with_merge(
        self, word: str, tokens: Sequence[PageToken], pos: int
    ) -> int:
        """
        Match a chunk word at `pos`, merging up to `max_merge` page tokens.

        Returns the number of page tokens consumed, 0 on no match.
        """
        if pos >= len(tokens):
            return 0
        if tokens_match(word, tokens[pos].normalized):
            return 1
        merged = tokens[pos].normalized
        # A split word starts with its first fragment
        if not word.startswith(merged):
            return 0
        page_number = tokens[pos].page_number
        for count in range(2, self.max_merge + 1):
            nxt = pos + count - 1
            if nxt >= len(tokens) or tokens[nxt].page_number != page_number:
                break
            merged += tokens[nxt].normalized
            if tokens_match(word, merged):
                return count
        return 0

    # ------------------------------------------------------------------
    # Line-level matching
    # ------------------------------------------------------------------

    def window_score(self, block_norm: str, window_norm: str) -> float:
        """
        Score a window of lines against a normalized block.

        Containment either way scores 1.0 (the contained side must be at
        least `min_contained_chars` long). Otherwise the edit-distance ratio;
        short blocks falling below the threshold get a word-bag chance.
        """
        if not block_norm or not window_norm:
            return 0.0

        if block_norm in window_norm and len(block_norm) >= self.min_contained_chars:
            return 1.0
        if window_norm in block_norm and len(window_norm) >= self.min_contained_chars:
            return 1.0

        score = edit_ratio(block_norm, window_norm)

        if len(block_norm) < self.word_bag_max_chars and score < self.accept_threshold:
            block_words = [
                w for w in block_norm.split(" ") if len(w) >= self.word_bag_min_word
            ]
            window_words = window_norm.split(" ")
            ratio = len(window_norm) / len(block_norm)
            if (
                block_words
                and ratio <= self.word_bag_max_ratio
                and all(any(w in ww for ww in window_words) for w in block_words)
            ):
                score = max(score, self.word_bag_score)

        return score

    def iter_windows(self, lines: Sequence[PageLine]):
        """Yield (start, size, normalized text) for windows of 1..max_window lines."""
        for size in range(1, min(self.max_window, len(lines)) + 1):
            for start in range(len(lines) - size + 1):
                text = normalize(" ".join(l.text for l in lines[start : start + size]))
                yield start, size, text

    def match_block_lines(
        self, block: ChunkBlock, lines: Sequence[PageLine]
    ) -> Optional[MatchResult]:
        if not tokenize_block(block.text):
            return None

        block_norm = normalize(block.text)
        best_score = 0.0
        best_window: Tuple[int, int] = (0, 0)
        for start, size, text in self.iter_windows(lines):
            score = self.window_score(block_norm, text)
            if score > best_score:
                best_score, best_window = score, (start, size)

        start, size = best_window
        strategy = (
            MatchStrategy.LINE_WINDOW
            if self.is_accepted(best_score)
            else MatchStrategy.NONE
        )
        logger.debug(
            "block_matched",
            block=block.index,
            window_start=start,
            window_size=size,
            score=round(best_score, 4),
            strategy=strategy.value,
        )
        return MatchResult(
            block_index=block.index,
            matched_indices=tuple(range(start, start + size)),
            score=best_score,
            strategy=strategy,
        )

    def match_passage_lines(
        self, passage: ChunkPassage, lines: Sequence[PageLine]
    ) -> List[MatchResult]:
        results = []
        for block in passage.blocks:
            result = self.match_block_lines(block, lines)
            if result is not None:
                results.append(result)
        return results

    def find_duplicate_windows(
        self, block: ChunkBlock, lines: Sequence[PageLine]
    ) -> List[Tuple[int, int, float]]:
        """
        Every distinct accepted location of a block among the lines.

        All windows at or above the threshold, ordered by (score desc,
        size asc, start asc), reduced greedily to non-overlapping windows.
        Returns (start, size, score) triples.
        """
        block_norm = normalize(block.text)
        hits = [
            (start, size, score)
            for start, size, text in self.iter_windows(lines)
            for score in (self.window_score(block_norm, text),)
            if self.is_accepted(score)
        ]
        hits.sort(key=lambda h: (-h[2], h[1], h[0]))

        distinct: List[Tuple[int, int, float]] = []
        for start, size, score in hits:
            end = start + size - 1
            overlaps = any(
                not (start > s + z - 1 or end < s) for s, z, _ in distinct
            )
            if not overlaps:
                distinct.append((start, size, score))
        return distinct
