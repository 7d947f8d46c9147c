import unittest
import asyncio
import os
import shutil
import sys
import tempfile

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from builders import write_pdf
from pdfcite.errors import ExtractionError
from pdfcite.extraction import FitzPageSource, extract_pages
from pdfcite.tokenizer import group_lines


class TestFitzPageSource(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.tmp_dir = tempfile.mkdtemp()
        cls.pdf_path = os.path.join(cls.tmp_dir, "two_pages.pdf")
        write_pdf(
            cls.pdf_path,
            [
                [(50, 100, "First page heading"), (50, 130, "Body text on page one")],
                [(50, 100, "Second page text")],
            ],
        )

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(cls.tmp_dir, ignore_errors=True)

    def setUp(self):
        self.source = FitzPageSource(self.pdf_path)

    def test_runs_use_pdf_coordinates(self):
        page = self.source.extract_page(1)
        self.assertEqual(page.page_number, 1)
        self.assertEqual(self.source.page_count(), 2)

        heading = next(r for r in page.runs if r.text.startswith("First"))
        body = next(r for r in page.runs if r.text.startswith("Body"))
        self.assertAlmostEqual(heading.y, page.height - 100, places=1)
        # Lower on the page means a smaller y
        self.assertLess(body.y, heading.y)
        self.assertGreater(heading.width, 0)
        self.assertGreater(heading.box_height, 0)

    def test_lines_read_top_down(self):
        lines = group_lines(self.source.extract_page(1).runs)
        self.assertEqual([l.text for l in lines], ["First page heading", "Body text on page one"])

    def test_out_of_range_page(self):
        with self.assertRaises(ExtractionError) as ctx:
            self.source.extract_page(5)
        self.assertEqual(ctx.exception.page_number, 5)

    def test_missing_file(self):
        source = FitzPageSource(os.path.join(self.tmp_dir, "missing.pdf"))
        with self.assertRaises(ExtractionError):
            source.extract_page(1)

    def test_extract_pages_skips_failures(self):
        pages = extract_pages(self.source, [1, 7, 2])
        self.assertEqual([p.page_number for p in pages], [1, 2])

    def test_async_get_page(self):
        page = asyncio.run(self.source.get_page(2))
        self.assertEqual(page.runs[0].text, "Second page text")


if __name__ == "__main__":
    unittest.main()
