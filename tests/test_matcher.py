import unittest
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from builders import run
from pdfcite.matcher import BlockMatcher
from pdfcite.models import ChunkBlock, MatchStrategy
from pdfcite.tokenizer import group_lines, tokenize_runs


class TestTokenMatching(unittest.TestCase):
    def setUp(self):
        self.matcher = BlockMatcher()

    def test_contiguous_sentence_is_sequential(self):
        tokens = tokenize_runs([run("The quick brown fox jumps over the lazy dog", 100, 700)])
        result = self.matcher.match_block(
            ChunkBlock(0, "quick brown fox jumps over the"), tokens
        )
        self.assertEqual(result.strategy, MatchStrategy.SEQUENTIAL)
        self.assertEqual(result.score, 1.0)
        self.assertEqual(result.matched_indices, (1, 2, 3, 4, 5, 6))

    def test_reordered_header_uses_proximity(self):
        tokens = tokenize_runs([
            run("Summary", 400, 700),
            run("Discussion", 250, 700),
            run("and", 200, 700),
            run("Results", 100, 700),
            run("Summary of results follows below", 100, 600),
        ])
        result = self.matcher.match_block(
            ChunkBlock(0, "Results and Discussion Summary"), tokens
        )
        self.assertEqual(result.strategy, MatchStrategy.PROXIMITY)
        self.assertEqual(result.score, 1.0)
        self.assertEqual(sorted(result.matched_indices), [0, 1, 2, 3])

    def test_score_at_threshold_is_accepted(self):
        tokens = tokenize_runs([run("alpha bravo charlie zulu", 0, 500)])
        result = self.matcher.match_block(
            ChunkBlock(0, "alpha bravo charlie delta"), tokens
        )
        self.assertEqual(result.score, 0.75)
        self.assertEqual(result.strategy, MatchStrategy.SEQUENTIAL)
        self.assertTrue(result.accepted)
        self.assertFalse(self.matcher.is_accepted(0.7499))

    def test_below_threshold_keeps_indices(self):
        tokens = tokenize_runs([run("alpha bravo zulu yankee", 0, 500)])
        result = self.matcher.match_block(
            ChunkBlock(0, "alpha bravo charlie delta"), tokens
        )
        self.assertEqual(result.score, 0.5)
        self.assertEqual(result.strategy, MatchStrategy.NONE)
        self.assertFalse(result.accepted)
        self.assertEqual(result.matched_indices, (0, 1))

    def test_rejected_proximity_still_reports_best_score(self):
        tokens = tokenize_runs([run("alpha echo delta charlie bravo", 0, 500)])
        result = self.matcher.match_block(
            ChunkBlock(
                0, "alpha bravo charlie delta echo foxtrot golf hotel india juliet"
            ),
            tokens,
        )
        self.assertEqual(result.score, 0.5)
        self.assertEqual(result.strategy, MatchStrategy.NONE)
        # Proximity covered too little, so the sequential indices are kept
        self.assertEqual(len(result.matched_indices), 2)

    def test_split_word_merges_page_tokens(self):
        tokens = tokenize_runs([run("the in formation age", 0, 500)])
        indices, matched = self.matcher.sequential_match(
            ["the", "information", "age"], tokens
        )
        self.assertEqual(matched, 3)
        self.assertEqual(indices, [0, 1, 2, 3])

    def test_merge_does_not_absorb_preceding_word(self):
        tokens = tokenize_runs([run("The quick brown fox", 0, 500)])
        indices, matched = self.matcher.sequential_match(["quick", "brown"], tokens)
        self.assertEqual(indices, [1, 2])

    def test_extra_page_tokens_are_skipped(self):
        tokens = tokenize_runs([run("results were [12] strongly significant", 0, 500)])
        indices, matched = self.matcher.sequential_match(
            ["results", "were", "strongly", "significant"], tokens
        )
        self.assertEqual(matched, 4)
        self.assertEqual(indices, [0, 1, 3, 4])

    def test_block_without_tokens_is_skipped(self):
        tokens = tokenize_runs([run("anything", 0, 0)])
        self.assertIsNone(self.matcher.match_block(ChunkBlock(0, "-- -- -- -- --"), tokens))

    def test_no_page_tokens(self):
        result = self.matcher.match_block(ChunkBlock(0, "some words here"), [])
        self.assertEqual(result.score, 0.0)
        self.assertEqual(result.strategy, MatchStrategy.NONE)


class TestLineWindows(unittest.TestCase):
    def setUp(self):
        self.matcher = BlockMatcher()
        self.lines = group_lines([
            run("The quick brown fox", 50, 700),
            run("jumps over the lazy dog", 50, 685),
            run("Completely unrelated text", 50, 670),
        ])

    def test_window_spanning_two_lines(self):
        result = self.matcher.match_block_lines(
            ChunkBlock(0, "quick brown fox jumps over"), self.lines
        )
        self.assertEqual(result.strategy, MatchStrategy.LINE_WINDOW)
        self.assertEqual(result.score, 1.0)
        self.assertEqual(result.matched_indices, (0, 1))

    def test_containment_needs_minimum_length(self):
        self.assertLess(self.matcher.window_score("the quick brown fox", "quick"), 1.0)
        self.assertEqual(self.matcher.window_score("quick brown", "the quick brown fox"), 1.0)

    def test_word_bag_rescues_reordered_short_block(self):
        score = self.matcher.window_score("fox brown quick", "quick brown fox")
        self.assertEqual(score, 0.85)

    def test_duplicates_reported_once_per_location(self):
        lines = group_lines([
            run("Repeated sentence here", 50, 700),
            run("Something else entirely", 50, 680),
            run("Repeated sentence here", 50, 660),
        ])
        windows = self.matcher.find_duplicate_windows(
            ChunkBlock(0, "Repeated sentence here"), lines
        )
        self.assertEqual([(s, z) for s, z, _ in windows], [(0, 1), (2, 1)])


if __name__ == "__main__":
    unittest.main()
