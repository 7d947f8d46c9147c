"""
Text normalization and similarity scoring.

Everything here is a pure function over strings:
- normalize / normalize_token canonicalize text for comparison
- edit_ratio and bigram_similarity score two normalized strings in [0, 1]
- tokens_match is the three-tier word equality used by the block matcher
"""

import re

import Levenshtein

SINGLE_LETTER_SPLIT = re.compile(r"\b([a-zA-Z])\s+([a-z]+\w*)")
MULTI_SPACE = re.compile(r" {2,}")

BIGRAM_MATCH_THRESHOLD = 0.8


def normalize(text: str) -> str:
    """Lowercase, collapse whitespace runs to one space and trim."""
    return " ".join(text.lower().split())


def normalize_token(text: str) -> str:
    """Normalize a single word to lowercase alphanumeric characters."""
    return "".join(c for c in text if c.isalnum()).lower()


def merge_split_words(text: str) -> str:
    """Rejoin words a PDF producer split into a single letter plus remainder.

    "o wner" -> "owner", "K eys" -> "Keys".
    """
    text = SINGLE_LETTER_SPLIT.sub(r"\1\2", text)
    return MULTI_SPACE.sub(" ", text)


def edit_ratio(a: str, b: str) -> float:
    """1 - levenshtein(a, b) / max(len(a), len(b)); two empty strings score 1."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(a, b) / longest


def _bigrams(text: str) -> set:
    return {text[i : i + 2] for i in range(len(text) - 1)}


def bigram_similarity(a: str, b: str) -> float:
    """Dice coefficient over the sets of 2-character substrings."""
    if a == b:
        return 1.0
    grams_a = _bigrams(a)
    grams_b = _bigrams(b)
    total = len(grams_a) + len(grams_b)
    if total == 0:
        return 0.0
    return 2 * len(grams_a & grams_b) / total


def tokens_match(a: str, b: str) -> bool:
    """Return True when two normalized words should be treated as the same.

    Exact equality always matches. From three characters up, containment
    either way matches (extraction merges/splits short words). From four
    characters up on both sides, a bigram score of at least 0.8 matches.
    """
    if a == b:
        return True
    if len(a) >= 3 and len(b) >= 3:
        if a in b or b in a:
            return True
        if len(a) >= 4 and len(b) >= 4:
            return bigram_similarity(a, b) >= BIGRAM_MATCH_THRESHOLD
    return False
