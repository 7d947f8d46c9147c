"""In-memory collaborators for driving the highlight pipeline in tests."""

import asyncio
from datetime import timedelta

from pdfcite.config import AppConfig
from pdfcite.errors import ExtractionError, RecoverableFetchError


def fast_config(**overrides):
    values = dict(
        first_load_settle=timedelta(0),
        resize_settle=timedelta(0),
        layout_poll_interval=timedelta(milliseconds=1),
        resize_debounce=timedelta(milliseconds=10),
    )
    values.update(overrides)
    return AppConfig(**values)


class FakeContainer:
    def __init__(self, width=800.0, height=600.0):
        self.current = (width, height)

    def size(self):
        return self.current


class FakeRenderer:
    def __init__(self):
        self.painted = asyncio.Event()
        self.painted.set()
        self.calls = []
        self.highlights = []
        self.scrolled = []

    async def wait_painted(self):
        self.calls.append("wait_painted")
        await self.painted.wait()

    async def wait_until_ready(self):
        self.calls.append("wait_until_ready")

    async def ensure_text_layer(self, page_number):
        self.calls.append(("text_layer", page_number))

    def set_highlights(self, regions):
        self.calls.append("set_highlights")
        self.highlights = list(regions)

    def clear_highlights(self):
        self.calls.append("clear_highlights")
        self.highlights = []

    def scroll_to(self, region):
        self.scrolled.append(region.page_number)


class FakePages:
    def __init__(self, pages, failing=()):
        self.pages = {p.page_number: p for p in pages}
        self.failing = set(failing)
        self.requested = []

    async def get_page(self, page_number):
        self.requested.append(page_number)
        if page_number in self.failing or page_number not in self.pages:
            raise ExtractionError(f"cannot read page {page_number}", page_number)
        return self.pages[page_number]


class FailingMetadata:
    def __init__(self):
        self.calls = 0

    async def fetch(self, chunk_id):
        self.calls += 1
        raise RecoverableFetchError("service unavailable", chunk_id)


class GatedMetadata:
    """Holds every fetch until `gate` is set."""

    def __init__(self, metadata):
        self.metadata = metadata
        self.gate = asyncio.Event()

    async def fetch(self, chunk_id):
        await self.gate.wait()
        return self.metadata
