"""
Chunk metadata client.

Fetches the full chunk text and page numbers for a citation from the
retrieval backend:

    GET <endpoint>?chunkID=<id>
    -> {"chunk_context": str, "page_numbers": [int], "pdf_url": str?}

`chunk_context` is sometimes a JSON-encoded string and needs one extra
decode. Every failure surfaces as RecoverableFetchError; nothing is retried.
"""

import json
from typing import Any, Optional

import httpx

from pdfcite.errors import RecoverableFetchError
from pdfcite.logging import get_logger
from pdfcite.models import ChunkMetadata, page_numbers_or_default

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 15.0


def parse_metadata(payload: Any, chunk_id: Optional[str] = None) -> ChunkMetadata:
    """Validate and decode a metadata JSON payload."""
    if not isinstance(payload, dict):
        raise RecoverableFetchError("Metadata payload is not an object", chunk_id)

    context = payload.get("chunk_context") or ""
    if not isinstance(context, str):
        raise RecoverableFetchError("chunk_context is not a string", chunk_id)
    if len(context) >= 2 and context.startswith('"') and context.endswith('"'):
        try:
            context = json.loads(context)
        except json.JSONDecodeError as exc:
            raise RecoverableFetchError(
                f"chunk_context is not valid JSON: {exc}", chunk_id
            ) from exc
        if not isinstance(context, str):
            raise RecoverableFetchError("chunk_context did not decode to text", chunk_id)

    raw_pages = payload.get("page_numbers")
    if raw_pages is not None and not isinstance(raw_pages, list):
        raise RecoverableFetchError("page_numbers is not a list", chunk_id)
    try:
        pages = page_numbers_or_default(raw_pages)
    except (TypeError, ValueError) as exc:
        raise RecoverableFetchError(f"Invalid page_numbers: {exc}", chunk_id) from exc

    pdf_url = payload.get("pdf_url")
    return ChunkMetadata(
        chunk_context=context,
        page_numbers=pages,
        pdf_url=pdf_url if isinstance(pdf_url, str) else None,
    )


class ChunkMetadataClient:
    """Async client for the chunk metadata endpoint."""

    def __init__(
        self,
        endpoint: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self._transport = transport

    async def fetch(self, chunk_id: str) -> ChunkMetadata:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(self.endpoint, params={"chunkID": chunk_id})
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise RecoverableFetchError(
                f"Metadata request failed: {exc}", chunk_id
            ) from exc

        text = response.text
        if not text.strip():
            raise RecoverableFetchError("Empty metadata response", chunk_id)
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise RecoverableFetchError(
                f"Malformed metadata JSON: {exc}", chunk_id
            ) from exc

        metadata = parse_metadata(payload, chunk_id)
        logger.info(
            "metadata_fetched",
            chunk_id=chunk_id,
            chars=len(metadata.chunk_context),
            pages=list(metadata.page_numbers),
        )
        return metadata
