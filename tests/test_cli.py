import unittest
import json
import os
import shutil
import sys
import tempfile
from unittest import mock

import structlog
from typer.testing import CliRunner

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from builders import write_pdf
from pdfcite.cli import app

FOX_PASSAGE = "quick brown fox jumps over the"


class TestCli(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.tmp_dir = tempfile.mkdtemp()
        cls.fox_pdf = os.path.join(cls.tmp_dir, "fox.pdf")
        write_pdf(cls.fox_pdf, [[(50, 100, "The quick brown fox jumps over the lazy dog.")]])

        cls.dup_pdf = os.path.join(cls.tmp_dir, "dup.pdf")
        write_pdf(
            cls.dup_pdf,
            [[
                (50, 100, "Repeated sentence here"),
                (50, 130, "Something else entirely"),
                (50, 160, "Repeated sentence here"),
            ]],
        )

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(cls.tmp_dir, ignore_errors=True)

    def setUp(self):
        # Keep log lines out of the captured command output
        structlog.configure(logger_factory=structlog.PrintLoggerFactory(sys.stderr))
        patcher = mock.patch("pdfcite.cli.configure_logging")
        patcher.start()
        self.addCleanup(patcher.stop)
        self.addCleanup(structlog.reset_defaults)
        self.runner = CliRunner()
        self.env = {"PDFCITE_CHUNK_API_URL": None, "PDFCITE_GRANULARITY": None}

    def invoke(self, *args):
        return self.runner.invoke(app, list(args), env=self.env)

    def test_lines_prints_page_text(self):
        result = self.invoke("lines", self.fox_pdf, "--pages", "1")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("[p1] The quick brown fox jumps over the lazy dog.", result.stdout)

    def test_lines_writes_json_output(self):
        target = os.path.join(self.tmp_dir, "lines.json")
        result = self.invoke("lines", self.dup_pdf, "--output", target)
        self.assertEqual(result.exit_code, 0, result.output)
        with open(target, encoding="utf-8") as f:
            data = json.load(f)
        self.assertEqual(data["pages"], [1])
        self.assertEqual(
            [line["text"] for line in data["lines"]],
            ["Repeated sentence here", "Something else entirely", "Repeated sentence here"],
        )
        self.assertTrue(all(line["page"] == 1 for line in data["lines"]))

    def test_match_prints_rows_and_verdict(self):
        result = self.invoke("match", self.fox_pdf, "--text", FOX_PASSAGE)
        self.assertEqual(result.exit_code, 0, result.output)
        rows = result.stdout.splitlines()
        self.assertTrue(rows[0].startswith("✓ block   0  sequential"))
        self.assertEqual(rows[-1], "PASS")

    def test_match_json_report(self):
        result = self.invoke("match", self.fox_pdf, "--text", FOX_PASSAGE, "--json")
        self.assertEqual(result.exit_code, 0, result.output)

        report = json.loads(result.stdout)
        self.assertEqual(report["granularity"], "tokens")
        self.assertEqual(report["blocks"][0]["strategy"], "sequential")
        self.assertEqual(len(report["regions"]), 1)
        self.assertEqual(report["regions"][0]["pageNumber"], 1)
        self.assertTrue(report["quality"]["passed"])

    def test_match_line_granularity(self):
        result = self.invoke(
            "match", self.fox_pdf, "--text", FOX_PASSAGE, "--granularity", "lines", "--json"
        )
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(json.loads(result.stdout)["blocks"][0]["strategy"], "line_window")

    def test_match_failure_exit_code(self):
        result = self.invoke(
            "match", self.fox_pdf, "--text", "Mitochondria produce cellular energy efficiently"
        )
        self.assertEqual(result.exit_code, 1)
        self.assertTrue(result.stdout.splitlines()[0].startswith("✗"))
        self.assertEqual(result.stdout.splitlines()[-1], "FAIL")

    def test_match_needs_exactly_one_passage_source(self):
        self.assertEqual(self.invoke("match", self.fox_pdf).exit_code, 2)
        result = self.invoke("match", self.fox_pdf, "--text", FOX_PASSAGE, "--chunk-id", "4")
        self.assertEqual(result.exit_code, 2)

    def test_chunk_id_needs_endpoint(self):
        result = self.invoke("match", self.fox_pdf, "--chunk-id", "4")
        self.assertEqual(result.exit_code, 2)

    def test_malformed_environment_is_a_usage_error(self):
        self.env["PDFCITE_AUTO_SCROLL"] = "maybe"
        result = self.invoke("lines", self.fox_pdf)
        self.assertEqual(result.exit_code, 2)
        self.assertNotIn("Traceback", result.output)
        self.assertIn("PDFCITE_AUTO_SCROLL", result.output)

    def test_invalid_pages(self):
        result = self.invoke("match", self.fox_pdf, "--text", FOX_PASSAGE, "--pages", "one")
        self.assertEqual(result.exit_code, 2)

    def test_duplicates(self):
        result = self.invoke(
            "duplicates", self.dup_pdf, "--text", "Repeated sentence here"
        )
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Block 0", result.stdout)
        self.assertEqual(result.stdout.count("score="), 2)

    def test_no_duplicates(self):
        result = self.invoke("duplicates", self.fox_pdf, "--text", FOX_PASSAGE)
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("No duplicated blocks", result.stdout)


if __name__ == "__main__":
    unittest.main()
