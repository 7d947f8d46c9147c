import unittest
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from pdfcite.citation import parse_citation


class TestParseCitation(unittest.TestCase):
    def test_bracketed_citation(self):
        citation = parse_citation(
            "Tropical.pdf - Page 3 - Chunk 47 - [Rainforests cover six percent]",
            url="http://files/Tropical.pdf",
        )
        self.assertEqual(citation.filename, "Tropical.pdf")
        self.assertEqual(citation.page_number, 3)
        self.assertEqual(citation.chunk_id, "47")
        self.assertEqual(citation.source_text, "Rainforests cover six percent")
        self.assertEqual(citation.url, "http://files/Tropical.pdf#page=3")
        self.assertEqual(citation.key, "47")

    def test_plain_citation(self):
        citation = parse_citation("report.PDF - page 12 - chunk 5 - Revenue grew by 4%")
        self.assertEqual(citation.page_number, 12)
        self.assertEqual(citation.chunk_id, "5")
        self.assertEqual(citation.source_text, "Revenue grew by 4%")
        self.assertIsNone(citation.url)

    def test_multiline_source_text(self):
        citation = parse_citation("a.pdf - Page 1 - Chunk 2 - [line one\nline two]")
        self.assertEqual(citation.source_text, "line one\nline two")

    def test_free_text_falls_back(self):
        citation = parse_citation("  just some quoted text  ")
        self.assertEqual(citation.source_text, "just some quoted text")
        self.assertIsNone(citation.page_number)
        self.assertIsNone(citation.chunk_id)
        self.assertEqual(citation.key, "just some quoted text")


if __name__ == "__main__":
    unittest.main()
