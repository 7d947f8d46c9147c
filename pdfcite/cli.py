"""Command-line interface for pdfcite."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import List, Optional

import typer

from .config import GRANULARITIES, load_config
from .errors import ConfigError, PdfCiteError
from .extraction import FitzPageSource, extract_pages
from .locator import CitationLocator
from .logging import configure_logging, get_logger
from .metadata import ChunkMetadataClient
from .models import page_numbers_or_default
from .tokenizer import group_page_lines, page_full_text

logger = get_logger(__name__)

app = typer.Typer(add_completion=False, help="Locate cited passages inside PDF pages")


@app.callback()
def _setup() -> None:
    try:
        config = load_config()
    except ConfigError as exc:
        raise typer.BadParameter(str(exc), param_hint=exc.key) from exc
    configure_logging(config.log_level)


@app.command("lines")
def lines_command(
    pdf: Path = typer.Argument(..., exists=True, dir_okay=False, help="PDF file"),
    pages_value: str = typer.Option("1", "--pages", help="Comma-separated 1-indexed pages"),
    output: Optional[Path] = typer.Option(None, "--output", help="Also write the lines as JSON"),
) -> None:
    """Print the reconstructed lines of the given pages."""
    source = FitzPageSource(str(pdf))
    pages = extract_pages(source, _parse_pages(pages_value))
    if not pages:
        typer.echo("No readable pages", err=True)
        raise typer.Exit(code=1)

    lines = group_page_lines(pages)
    for line in lines:
        typer.echo(f"[p{line.page_number}] {line.text}")

    if output is not None:
        output.write_text(json.dumps({
            "pdf": str(pdf),
            "pages": [p.page_number for p in pages],
            "text": page_full_text(lines),
            "lines": [
                {
                    "page": line.page_number,
                    "text": line.text,
                    "x": round(line.x, 2),
                    "y": round(line.y, 2),
                    "width": round(line.width, 2),
                    "height": round(line.height, 2),
                }
                for line in lines
            ],
        }, ensure_ascii=False, indent=2), encoding="utf-8")
        typer.echo(f"Wrote {len(lines)} lines to {output}", err=True)


@app.command("match")
def match_command(
    pdf: Path = typer.Argument(..., exists=True, dir_okay=False, help="PDF file"),
    pages_value: Optional[str] = typer.Option(None, "--pages", help="Comma-separated 1-indexed pages"),
    chunk_file: Optional[Path] = typer.Option(None, "--chunk-file", exists=True, dir_okay=False),
    chunk_id: Optional[str] = typer.Option(None, "--chunk-id", help="Fetch the chunk from the metadata endpoint"),
    text: Optional[str] = typer.Option(None, "--text", help="Passage text"),
    granularity: Optional[str] = typer.Option(None, "--granularity", help="tokens or lines"),
    as_json: bool = typer.Option(False, "--json", help="Print the full report as JSON"),
) -> None:
    """Match a passage and report blocks, regions and quality. Exits 1 when quality fails."""
    config = load_config()
    granularity = (granularity or config.granularity).lower()
    if granularity not in GRANULARITIES:
        raise typer.BadParameter(f"--granularity must be one of {', '.join(GRANULARITIES)}")

    passage, page_numbers = _resolve_passage(config, chunk_file, chunk_id, text)
    if pages_value:
        page_numbers = _parse_pages(pages_value)

    pages = extract_pages(FitzPageSource(str(pdf)), page_numbers)
    locator = CitationLocator(granularity=granularity)
    outcome = locator.locate(passage, pages)
    report = locator.quality(outcome)

    if as_json:
        typer.echo(json.dumps({
            "granularity": granularity,
            "pages": [p.page_number for p in pages],
            "blocks": [
                {
                    "index": r.block_index,
                    "score": round(r.score, 4),
                    "strategy": r.strategy.value,
                    "indices": list(r.matched_indices),
                }
                for r in outcome.results
            ],
            "regions": [region.to_dict() for region in outcome.regions],
            "quality": {
                "total_blocks": report.total_blocks,
                "matched_blocks": report.matched_blocks,
                "match_rate": round(report.match_rate, 4),
                "average_score": round(report.average_score, 4),
                "coverage": round(report.coverage, 4),
                "passed": report.passed,
            },
        }, ensure_ascii=False, indent=2))
    else:
        for result in outcome.results:
            mark = "✓" if result.accepted else "✗"
            typer.echo(
                f"{mark} block {result.block_index:>3}  {result.strategy.value:<11}"
                f" score={result.score:.3f}"
            )
        typer.echo(
            f"blocks {report.matched_blocks}/{report.total_blocks}"
            f"  match_rate={report.match_rate:.1%}"
            f"  avg_score={report.average_score:.3f}"
            f"  coverage={report.coverage:.1%}"
        )
        typer.echo("PASS" if report.passed else "FAIL")

    if not report.passed:
        raise typer.Exit(code=1)


@app.command("duplicates")
def duplicates_command(
    pdf: Path = typer.Argument(..., exists=True, dir_okay=False, help="PDF file"),
    pages_value: Optional[str] = typer.Option(None, "--pages", help="Comma-separated 1-indexed pages"),
    chunk_file: Optional[Path] = typer.Option(None, "--chunk-file", exists=True, dir_okay=False),
    chunk_id: Optional[str] = typer.Option(None, "--chunk-id"),
    text: Optional[str] = typer.Option(None, "--text"),
) -> None:
    """List passage blocks that are found at more than one place."""
    config = load_config()
    passage, page_numbers = _resolve_passage(config, chunk_file, chunk_id, text)
    if pages_value:
        page_numbers = _parse_pages(pages_value)

    pages = extract_pages(FitzPageSource(str(pdf)), page_numbers)
    lines = group_page_lines(pages)
    reports = CitationLocator(granularity="lines").find_duplicates(passage, pages)
    if not reports:
        typer.echo("No duplicated blocks")
        return

    for report in reports:
        typer.echo(f"Block {report.block_index}: {report.block_text[:60]!r}")
        for start, size, score in report.windows:
            first = lines[start]
            typer.echo(
                f"  lines {start}-{start + size - 1} (page {first.page_number})"
                f" score={score:.3f}: {first.text[:60]!r}"
            )


@app.command("view")
def view_command(
    pdf: Optional[Path] = typer.Argument(None, exists=True, dir_okay=False, help="PDF to open"),
) -> None:
    """Open the desktop viewer."""
    from .gui.app import run

    raise typer.Exit(code=run(str(pdf) if pdf else None))


def _parse_pages(value: str) -> List[int]:
    try:
        pages = [int(part) for part in value.split(",") if part.strip()]
    except ValueError as exc:
        raise typer.BadParameter("--pages must be comma-separated integers") from exc
    if not pages or any(p < 1 for p in pages):
        raise typer.BadParameter("--pages must list 1-indexed page numbers")
    return pages


def _resolve_passage(config, chunk_file, chunk_id, text):
    given = [v for v in (chunk_file, chunk_id, text) if v]
    if len(given) != 1:
        raise typer.BadParameter("Exactly one of --chunk-file, --chunk-id, --text is required")

    if chunk_file is not None:
        return chunk_file.read_text(encoding="utf-8"), [1]
    if text:
        return text, [1]

    if not config.fetch_enabled:
        raise typer.BadParameter("--chunk-id needs PDFCITE_CHUNK_API_URL to be set")
    client = ChunkMetadataClient(config.chunk_api_url, timeout=config.http_timeout)
    try:
        metadata = asyncio.run(client.fetch(chunk_id))
    except PdfCiteError as exc:
        logger.error("metadata_fetch_failed", chunk_id=chunk_id, error=str(exc))
        typer.echo(f"Could not fetch chunk {chunk_id}: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    return metadata.chunk_context, list(page_numbers_or_default(metadata.page_numbers))


def main():
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
