"""
Highlight pipeline.

One pipeline instance serves one viewer. Selecting a citation runs, in order:

    AWAITING_LAYOUT -> FETCHING_METADATA -> AWAITING_RENDER_STABILITY
        -> MATCHING -> AWAITING_VIEWER -> COMPLETE

State lives in an immutable PipelineSnapshot and only changes through
`transition(snapshot, event)`, a pure reducer. The asyncio driver performs the
stage work and feeds the results back as events.

Everything in flight is keyed by the snapshot epoch that was current when it
was scheduled. Selecting another citation (or re-entering after a resize)
bumps the epoch, and continuations that wake up under an older epoch discard
their results instead of being cancelled.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

from pdfcite.config import AppConfig
from pdfcite.logging import get_logger
from pdfcite.locator import CitationLocator
from pdfcite.models import ChunkMetadata, Citation, HighlightRegion, PageText

logger = get_logger(__name__)


class PipelineState(enum.Enum):
    IDLE = "idle"
    AWAITING_LAYOUT = "awaiting_layout"
    FETCHING_METADATA = "fetching_metadata"
    AWAITING_RENDER_STABILITY = "awaiting_render_stability"
    MATCHING = "matching"
    AWAITING_VIEWER = "awaiting_viewer"
    COMPLETE = "complete"


# ----------------------------------------------------------------------------
# Collaborator boundaries
# ----------------------------------------------------------------------------


class HostContainer(Protocol):
    def size(self) -> Tuple[float, float]: ...


class PageSource(Protocol):
    async def get_page(self, page_number: int) -> PageText: ...


class MetadataSource(Protocol):
    async def fetch(self, chunk_id: str) -> ChunkMetadata: ...


class HighlightRenderer(Protocol):
    async def wait_painted(self) -> None: ...

    async def wait_until_ready(self) -> None: ...

    async def ensure_text_layer(self, page_number: int) -> None: ...

    def set_highlights(self, regions: Sequence[HighlightRegion]) -> None: ...

    def clear_highlights(self) -> None: ...

    def scroll_to(self, region: HighlightRegion) -> None: ...


# ----------------------------------------------------------------------------
# Events and reducer
# ----------------------------------------------------------------------------


@dataclass(frozen=True)
class CitationSelected:
    citation: Citation


@dataclass(frozen=True)
class LayoutReady:
    needs_fetch: bool


@dataclass(frozen=True)
class MetadataResolved:
    metadata: Optional[ChunkMetadata]


@dataclass(frozen=True)
class RenderSettled:
    pass


@dataclass(frozen=True)
class MatchFinished:
    regions: Tuple[HighlightRegion, ...]


@dataclass(frozen=True)
class ViewerScrolled:
    scrolled: bool


@dataclass(frozen=True)
class ContainerResized:
    width: float
    height: float


@dataclass(frozen=True)
class PipelineSnapshot:
    state: PipelineState = PipelineState.IDLE
    citation: Optional[Citation] = None
    epoch: int = 0
    passage_text: str = ""
    page_numbers: Tuple[int, ...] = ()
    metadata: Optional[ChunkMetadata] = None
    first_load: bool = True
    highlights: Tuple[HighlightRegion, ...] = ()
    has_scrolled: bool = False

    @property
    def citation_key(self) -> Optional[str]:
        return self.citation.key if self.citation else None


def transition(snapshot: PipelineSnapshot, event) -> PipelineSnapshot:
    """
    Return the snapshot that follows `event`.

    Events that do not apply to the current state return `snapshot` itself
    (identity), which callers use to detect an ignored event.
    """
    state = snapshot.state

    if isinstance(event, CitationSelected):
        citation = event.citation
        return PipelineSnapshot(
            state=PipelineState.AWAITING_LAYOUT,
            citation=citation,
            epoch=snapshot.epoch + 1,
            passage_text=citation.source_text,
            page_numbers=(citation.page_number or 1,),
        )

    if isinstance(event, LayoutReady) and state is PipelineState.AWAITING_LAYOUT:
        target = (
            PipelineState.FETCHING_METADATA
            if event.needs_fetch
            else PipelineState.AWAITING_RENDER_STABILITY
        )
        return replace(snapshot, state=target)

    if isinstance(event, MetadataResolved) and state is PipelineState.FETCHING_METADATA:
        metadata = event.metadata
        if metadata is None:
            return replace(snapshot, state=PipelineState.AWAITING_RENDER_STABILITY)
        return replace(
            snapshot,
            state=PipelineState.AWAITING_RENDER_STABILITY,
            metadata=metadata,
            passage_text=metadata.chunk_context or snapshot.passage_text,
            page_numbers=tuple(metadata.page_numbers) or snapshot.page_numbers,
        )

    if isinstance(event, RenderSettled) and state is PipelineState.AWAITING_RENDER_STABILITY:
        return replace(snapshot, state=PipelineState.MATCHING)

    if isinstance(event, MatchFinished) and state is PipelineState.MATCHING:
        return replace(
            snapshot,
            state=PipelineState.AWAITING_VIEWER,
            highlights=tuple(event.regions),
        )

    if isinstance(event, ViewerScrolled) and state is PipelineState.AWAITING_VIEWER:
        return replace(
            snapshot,
            state=PipelineState.COMPLETE,
            has_scrolled=snapshot.has_scrolled or event.scrolled,
            first_load=False,
        )

    if isinstance(event, ContainerResized) and state is PipelineState.COMPLETE:
        # Layout readiness and fetched metadata stay valid; geometry does not.
        return replace(
            snapshot,
            state=PipelineState.AWAITING_RENDER_STABILITY,
            epoch=snapshot.epoch + 1,
            highlights=(),
            first_load=False,
        )

    return snapshot


# ----------------------------------------------------------------------------
# Driver
# ----------------------------------------------------------------------------


class HighlightPipeline:
    """
    Asyncio driver for the highlight state machine.

    All methods must be called from the event loop thread. Only the pipeline
    (and the resize monitor through `on_container_resized`) writes the
    snapshot; the locator it calls is pure.
    """

    def __init__(
        self,
        container: HostContainer,
        renderer: HighlightRenderer,
        page_source: PageSource,
        metadata_source: Optional[MetadataSource] = None,
        config: Optional[AppConfig] = None,
        locator: Optional[CitationLocator] = None,
    ):
        self.container = container
        self.renderer = renderer
        self.page_source = page_source
        self.metadata_source = metadata_source
        self.config = config or AppConfig()
        self.locator = locator or CitationLocator(granularity=self.config.granularity)
        self.snapshot = PipelineSnapshot()
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[Callable[[PipelineSnapshot], None]] = []

    @property
    def state(self) -> PipelineState:
        return self.snapshot.state

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def add_listener(self, callback: Callable[[PipelineSnapshot], None]) -> None:
        self._listeners.append(callback)

    def _log(self, epoch: Optional[int] = None):
        return logger.bind(
            citation=self.snapshot.citation_key,
            epoch=self.snapshot.epoch if epoch is None else epoch,
            stage=self.snapshot.state.value,
        )

    def dispatch(self, event, trigger: str = "") -> PipelineSnapshot:
        before = self.snapshot
        after = transition(before, event)
        if after is before:
            self._log().debug("event_ignored", event=type(event).__name__)
            return before

        self.snapshot = after
        if before.state is not after.state:
            self._log().info(
                "pipeline_transition",
                source=before.state.value,
                target=after.state.value,
                trigger=trigger or type(event).__name__,
            )
        for callback in self._listeners:
            callback(after)
        return after

    # -- external inputs ----------------------------------------------------

    def select(self, citation: Citation) -> asyncio.Task:
        """Start highlighting `citation`, superseding any in-flight run."""
        self.dispatch(CitationSelected(citation), trigger="citation_selected")
        self._renderer_call("clear_highlights")
        return self._start()

    def on_container_resized(self, width: float, height: float) -> Optional[asyncio.Task]:
        """Re-enter at render stability when a completed highlight's geometry went stale."""
        if self.snapshot.state is not PipelineState.COMPLETE:
            self._log().debug("resize_ignored", width=width, height=height)
            return None
        self._renderer_call("clear_highlights")
        self.dispatch(ContainerResized(width, height), trigger="container_resized")
        self._log().info("resize_reentry", width=width, height=height)
        return self._start()

    def _start(self) -> asyncio.Task:
        self._task = asyncio.get_running_loop().create_task(self._run(self.snapshot.epoch))
        return self._task

    def is_stale(self, epoch: int) -> bool:
        return epoch != self.snapshot.epoch

    def _discard(self, epoch: int, what: str) -> None:
        self._log(epoch).info("stale_result_discarded", result=what)

    def _renderer_call(self, name: str, *args) -> bool:
        try:
            getattr(self.renderer, name)(*args)
        except Exception as exc:
            self._log().error("renderer_failed", call=name, error=str(exc))
            return False
        return True

    # -- stages -------------------------------------------------------------

    async def _run(self, epoch: int) -> None:
        stages = {
            PipelineState.AWAITING_LAYOUT: self._await_layout,
            PipelineState.FETCHING_METADATA: self._fetch_metadata,
            PipelineState.AWAITING_RENDER_STABILITY: self._await_render_stability,
            PipelineState.MATCHING: self._match,
            PipelineState.AWAITING_VIEWER: self._await_viewer,
        }
        while not self.is_stale(epoch):
            stage = stages.get(self.snapshot.state)
            if stage is None:
                return
            await stage(epoch)

    async def _await_layout(self, epoch: int) -> None:
        interval = self.config.layout_poll_interval.total_seconds()
        while True:
            width, height = self.container.size()
            if width > 0 and height > 0:
                break
            await asyncio.sleep(interval)
            if self.is_stale(epoch):
                self._discard(epoch, "layout")
                return

        citation = self.snapshot.citation
        needs_fetch = bool(
            self.metadata_source is not None and citation is not None and citation.chunk_id
        )
        self.dispatch(LayoutReady(needs_fetch), trigger="layout_ready")

    async def _fetch_metadata(self, epoch: int) -> None:
        chunk_id = self.snapshot.citation.chunk_id
        metadata = None
        try:
            metadata = await self.metadata_source.fetch(chunk_id)
        except Exception as exc:
            if self.is_stale(epoch):
                self._discard(epoch, "metadata_error")
                return
            self._log(epoch).warning(
                "metadata_fetch_failed",
                chunk_id=chunk_id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
        if self.is_stale(epoch):
            self._discard(epoch, "metadata")
            return
        self.dispatch(MetadataResolved(metadata), trigger="metadata_resolved")

    async def _await_render_stability(self, epoch: int) -> None:
        try:
            await self.renderer.wait_painted()
        except Exception as exc:
            self._log(epoch).error("renderer_failed", call="wait_painted", error=str(exc))
        if self.is_stale(epoch):
            self._discard(epoch, "first_paint")
            return

        settle = (
            self.config.first_load_settle
            if self.snapshot.first_load
            else self.config.resize_settle
        )
        await asyncio.sleep(settle.total_seconds())
        if self.is_stale(epoch):
            self._discard(epoch, "settle_delay")
            return
        self.dispatch(RenderSettled(), trigger="render_settled")

    async def _match(self, epoch: int) -> None:
        page_numbers = self.snapshot.page_numbers
        pages = []
        for page_number in page_numbers:
            try:
                page = await self.page_source.get_page(page_number)
            except Exception as exc:
                self._log(epoch).warning(
                    "page_extraction_failed", page=page_number, error=str(exc)
                )
                page = None
            if self.is_stale(epoch):
                self._discard(epoch, "page_text")
                return
            if page is not None:
                pages.append(page)

        regions: Tuple[HighlightRegion, ...] = ()
        try:
            outcome = self.locator.locate(self.snapshot.passage_text, pages)
            regions = tuple(outcome.regions)
        except Exception as exc:
            self._log(epoch).error("matching_failed", error=str(exc), exc_info=True)

        if not regions:
            self._log(epoch).info(
                "no_match_found",
                pages=list(page_numbers),
                chars=len(self.snapshot.passage_text),
            )
        self.dispatch(MatchFinished(regions), trigger="match_finished")
        if regions:
            self._renderer_call("set_highlights", list(regions))

    async def _await_viewer(self, epoch: int) -> None:
        scrolled = False
        try:
            await self.renderer.wait_until_ready()
            if self.is_stale(epoch):
                self._discard(epoch, "viewer_ready")
                return

            snapshot = self.snapshot
            if self.config.auto_scroll and snapshot.highlights and not snapshot.has_scrolled:
                region = snapshot.highlights[0]
                await self.renderer.ensure_text_layer(region.page_number)
                if self.is_stale(epoch):
                    self._discard(epoch, "text_layer")
                    return
                self.renderer.scroll_to(region)
                scrolled = True
                self._log(epoch).info("scroll_triggered", page=region.page_number)
        except Exception as exc:
            self._log(epoch).error("renderer_failed", call="scroll", error=str(exc))

        if self.is_stale(epoch):
            self._discard(epoch, "scroll")
            return
        self.dispatch(ViewerScrolled(scrolled), trigger="viewer_ready")
