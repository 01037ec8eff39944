"""
Proof Viewer - Layer 4: Shows the evidence behind the open citation.

Subscribes to a ProofSession and presents the current source: its document
page (or image) with the cited region highlighted, or the snippet alone when
there is no file to show.
Responsibilities:
- Pick a viewer strategy from the document-kind table
- Load evidence through the file resolver, dropping results that arrive
  after the user has moved on to another citation
- Zoom (50-200% in 25% steps) and page through paged documents
- Map percentage coordinates to a pixel overlay for the rendered page
- Request one auto-scroll to the cited region once the document is ready

Rules:
- ✅ Load results apply only while their source is still the session's source
- ✅ Overlay recomputed on every read (zoom / page / box may all change)
- ✅ Load failures become the error state, never an exception to the caller
- ❌ No proof-open state of its own (the session owns it)
"""

import base64
import logging
import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from typing import Callable, Optional

from markupsafe import Markup

from provenance.citation.document_loader import LoadedDocument, load_document
from provenance.citation.errors import EvidenceLoadError
from provenance.citation.proof_session import ProofSession, ProofSnapshot
from provenance.citation.source_model import CitationSource, Coordinates
from provenance.citation.templating import render_component
from provenance.config import RegistrySettings, settings as default_settings
from provenance.services.file_resolver import FileResolver, build_default_resolver
from provenance.types import OverlayRecord, ProofStateRecord, ScrollTargetRecord
from provenance.utils.bbox import summarize_coordinates

logger = logging.getLogger(__name__)

STATE_IDLE = 'idle'
STATE_LOADING = 'loading'
STATE_READY = 'ready'
STATE_ERROR = 'error'
STATE_FALLBACK = 'fallback'

STRATEGY_IMAGE = 'image'
STRATEGY_PAGED = 'paged'
STRATEGY_TEXT = 'text'
STRATEGY_AUTO = 'auto'

DEFAULT_ZOOM = 100


@dataclass(frozen=True)
class LoadTicket:
    """Identifies one load attempt; a newer ticket makes older ones stale."""
    sequence: int
    source: CitationSource
    strategy: str


@dataclass(frozen=True)
class ScrollTarget:
    """Where the host should scroll once the document is on screen."""
    page: int
    anchor: str
    # Vertical centre of the highlight in percent of the page, if known
    center_y: Optional[float]
    delay: float

    def to_dict(self) -> ScrollTargetRecord:
        return {'page': self.page, 'anchor': self.anchor, 'centerY': self.center_y, 'delay': self.delay}


@dataclass(frozen=True)
class RenderBox:
    """Rendered page size in pixels at 100% zoom."""
    width: float
    height: float


@dataclass(frozen=True)
class OverlayBox:
    """Highlight rectangle in pixels, relative to the rendered page."""
    left: float
    top: float
    width: float
    height: float

    def to_dict(self) -> OverlayRecord:
        return {'left': self.left, 'top': self.top, 'width': self.width, 'height': self.height}


def compute_overlay(
    coordinates: Optional[Coordinates],
    source_page: Optional[int],
    current_page: int,
    zoom: int,
    box: RenderBox,
) -> Optional[OverlayBox]:
    """
    Pixel rectangle for a highlight, or None when there is nothing to draw on
    this page.

    Args:
        coordinates: Percentage rectangle of the citation
        source_page: Page the citation points at (None means the first page)
        current_page: Page being shown
        zoom: Zoom percentage
        box: Page size in pixels at 100% zoom
    """
    if coordinates is None:
        return None
    if (source_page or 1) != current_page:
        return None

    scale = zoom / 100.0
    page_width = box.width * scale
    page_height = box.height * scale
    return OverlayBox(
        left=round(coordinates.x / 100.0 * page_width, 2),
        top=round(coordinates.y / 100.0 * page_height, 2),
        width=round(coordinates.width / 100.0 * page_width, 2),
        height=round(coordinates.height / 100.0 * page_height, 2),
    )


def choose_strategy(source: CitationSource) -> str:
    """Viewer strategy for a source; 'auto' is settled by the loaded bytes."""
    if not source.file_path:
        return STRATEGY_TEXT

    strategy = source.kind.viewer_strategy
    if strategy == STRATEGY_AUTO:
        path = source.file_path.split('?', 1)[0].lower()
        if path.endswith('.pdf'):
            return STRATEGY_PAGED
    return strategy


ScrollCallback = Callable[[ScrollTarget], None]


class ProofViewer:
    """Evidence panel driven by one ProofSession."""

    def __init__(
        self,
        session: ProofSession,
        resolver: Optional[FileResolver] = None,
        config: Optional[RegistrySettings] = None,
        on_scroll: Optional[ScrollCallback] = None,
    ):
        self.session = session
        self.config = config or default_settings
        self.resolver = resolver or build_default_resolver(self.config)
        self.on_scroll = on_scroll

        self._lock = threading.RLock()
        self._source: Optional[CitationSource] = None
        self._is_open = False
        self._state = STATE_IDLE
        self._error: Optional[str] = None
        self._document: Optional[LoadedDocument] = None
        self._strategy: Optional[str] = None
        self._page = 1
        self._zoom = DEFAULT_ZOOM
        self._sequence = 0
        self._scroll_pending = False
        self._scroll_target: Optional[ScrollTarget] = None

        self._unsubscribe = session.subscribe(self._on_session_change)
        self._on_session_change(session.snapshot())

    # ------------------------------------------------------------------
    # Session tracking
    # ------------------------------------------------------------------

    def _on_session_change(self, snapshot: ProofSnapshot) -> None:
        with self._lock:
            if snapshot.is_open and snapshot.source is not None:
                same_source = self._source is not None and self._source.id == snapshot.source.id
                if self._is_open and same_source:
                    return
                self._reset(snapshot.source)
                self._is_open = True
                logger.info(
                    f"[PROOF_VIEWER] Showing [{snapshot.source.source_id}] "
                    f"({self._strategy}, page {self._page})"
                )
                return

            self._is_open = False
            if snapshot.source is None and self._source is not None:
                # Deferred clear fired; anything in flight is now stale
                self._reset(None)

    def _reset(self, source: Optional[CitationSource]) -> None:
        self._close_document()
        self._sequence += 1
        self._source = source
        self._state = STATE_IDLE
        self._error = None
        self._strategy = choose_strategy(source) if source is not None else None
        self._page = (source.page_number or 1) if source is not None else 1
        self._zoom = DEFAULT_ZOOM
        self._scroll_pending = source is not None
        self._scroll_target = None

    def _close_document(self) -> None:
        if self._document is not None:
            self._document.close()
            self._document = None

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def source(self) -> Optional[CitationSource]:
        with self._lock:
            return self._source

    @property
    def state(self) -> str:
        with self._lock:
            return self._state

    @property
    def error(self) -> Optional[str]:
        with self._lock:
            return self._error

    @property
    def strategy(self) -> Optional[str]:
        with self._lock:
            if self._document is not None:
                return self._document.kind
            return self._strategy

    @property
    def document(self) -> Optional[LoadedDocument]:
        with self._lock:
            return self._document

    @property
    def page(self) -> int:
        with self._lock:
            return self._page

    @property
    def page_count(self) -> int:
        with self._lock:
            return self._document.page_count if self._document is not None else 1

    @property
    def zoom(self) -> int:
        with self._lock:
            return self._zoom

    @property
    def rendered_width(self) -> float:
        return self.config.base_page_width * self.zoom / 100.0

    @property
    def scroll_pending(self) -> bool:
        with self._lock:
            return self._scroll_pending

    @property
    def scroll_target(self) -> Optional[ScrollTarget]:
        """Last auto-scroll emitted in this open session, kept for pull-based hosts."""
        with self._lock:
            return self._scroll_target

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def begin_load(self) -> Optional[LoadTicket]:
        """
        Start loading the current source.

        Returns:
            A ticket for fetch()/complete_load(), or None when there is nothing
            to fetch (no source, or a text-only source shown as a fallback)
        """
        with self._lock:
            source = self._source
            if source is None:
                return None

            self._close_document()
            self._sequence += 1
            self._error = None

            if self._strategy == STRATEGY_TEXT:
                self._state = STATE_FALLBACK
                ticket = None
            else:
                self._state = STATE_LOADING
                ticket = LoadTicket(self._sequence, source, self._strategy)

        if ticket is None:
            self._flush_scroll()
        return ticket

    def fetch(self, ticket: LoadTicket) -> LoadedDocument:
        """
        Resolve and decode the ticket's evidence. Safe to run off-thread.

        Raises:
            EvidenceLoadError: If the file cannot be fetched or decoded
        """
        file_path = ticket.source.file_path
        resolved = self.resolver.resolve(file_path)
        try:
            return load_document(resolved, ticket.strategy)
        except EvidenceLoadError as e:
            if e.file_path is None:
                e.file_path = file_path
            raise

    def complete_load(
        self,
        ticket: LoadTicket,
        document: Optional[LoadedDocument] = None,
        error: Optional[BaseException] = None,
    ) -> bool:
        """
        Apply a load result.

        Returns:
            False when the result is stale (another citation was opened, the
            session was cleared, or a newer load started) and was discarded
        """
        with self._lock:
            stale = ticket.sequence != self._sequence or not self.session.is_current(ticket.source)
            if stale:
                logger.warning(
                    f"[PROOF_VIEWER] Discarding stale load for [{ticket.source.source_id}] "
                    f"(ticket {ticket.sequence}, current {self._sequence})"
                )
                if document is not None:
                    document.close()
                return False

            if error is not None or document is None:
                self._state = STATE_ERROR
                self._error = str(error) if error is not None else 'Document could not be loaded'
                self._scroll_pending = False
                logger.error(
                    f"[PROOF_VIEWER] ❌ Failed to load [{ticket.source.source_id}] "
                    f"{ticket.source.document_name}: {self._error}",
                    exc_info=error,
                )
                return True

            self._document = document
            self._page = min(max(self._page, 1), document.page_count)
            self._state = STATE_READY
            logger.info(
                f"[PROOF_VIEWER] ✅ Loaded [{ticket.source.source_id}] "
                f"({document.page_count} page(s), showing page {self._page})"
            )

        self._flush_scroll()
        return True

    def load(self) -> str:
        """Load the current source synchronously; returns the resulting state."""
        ticket = self.begin_load()
        if ticket is not None:
            try:
                document = self.fetch(ticket)
            except Exception as e:
                self.complete_load(ticket, error=self._as_load_error(ticket, e))
            else:
                self.complete_load(ticket, document=document)
        return self.state

    def load_in_background(self, executor: Executor) -> Optional[Future]:
        """Fetch on ``executor``; the result is applied when the future finishes."""
        ticket = self.begin_load()
        if ticket is None:
            return None

        future = executor.submit(self.fetch, ticket)
        future.add_done_callback(lambda done: self._finish_background_load(ticket, done))
        return future

    def _finish_background_load(self, ticket: LoadTicket, future: Future) -> None:
        error = future.exception()
        if error is None:
            self.complete_load(ticket, document=future.result())
            return
        self.complete_load(ticket, error=self._as_load_error(ticket, error))

    @staticmethod
    def _as_load_error(ticket: LoadTicket, error: BaseException) -> EvidenceLoadError:
        if isinstance(error, EvidenceLoadError):
            return error
        wrapped = EvidenceLoadError(f"Unexpected error loading evidence: {error}", ticket.source.file_path)
        wrapped.__cause__ = error
        return wrapped

    # ------------------------------------------------------------------
    # Auto-scroll
    # ------------------------------------------------------------------

    def _flush_scroll(self) -> None:
        with self._lock:
            if not self._scroll_pending or self._source is None:
                return
            self._scroll_pending = False
            coordinates = self._source.coordinates
            target = ScrollTarget(
                page=self._page,
                anchor=f"page-{self._page}",
                center_y=(coordinates.y + coordinates.height / 2) if coordinates else None,
                delay=self.config.scroll_delay_ms / 1000.0,
            )
            self._scroll_target = target

        logger.debug(
            f"[PROOF_VIEWER] Auto-scroll to {target.anchor} "
            f"(highlight: {summarize_coordinates(coordinates.model_dump() if coordinates else None)})"
        )
        if self.on_scroll is not None:
            self.on_scroll(target)

    # ------------------------------------------------------------------
    # Zoom and paging
    # ------------------------------------------------------------------

    def set_zoom(self, zoom: int) -> int:
        """Clamp to the zoom range and snap to the zoom step."""
        zoom_min, zoom_max, step = self.config.zoom_min, self.config.zoom_max, self.config.zoom_step
        snapped = zoom_min + round((zoom - zoom_min) / step) * step
        with self._lock:
            self._zoom = int(min(max(snapped, zoom_min), zoom_max))
            return self._zoom

    def zoom_in(self) -> int:
        return self.set_zoom(self.zoom + self.config.zoom_step)

    def zoom_out(self) -> int:
        return self.set_zoom(self.zoom - self.config.zoom_step)

    @property
    def can_zoom_in(self) -> bool:
        return self.zoom < self.config.zoom_max

    @property
    def can_zoom_out(self) -> bool:
        return self.zoom > self.config.zoom_min

    def go_to_page(self, page: int) -> int:
        with self._lock:
            self._page = min(max(int(page), 1), self.page_count)
            return self._page

    def next_page(self) -> int:
        return self.go_to_page(self.page + 1)

    def previous_page(self) -> int:
        return self.go_to_page(self.page - 1)

    # ------------------------------------------------------------------
    # Overlay and rendering
    # ------------------------------------------------------------------

    @property
    def overlay(self) -> Optional[OverlayBox]:
        with self._lock:
            source, document = self._source, self._document
            if source is None or document is None or source.coordinates is None:
                return None

            page_width, page_height = document.page_size(self._page)
            base_width = float(self.config.base_page_width)
            box = RenderBox(base_width, base_width * page_height / page_width)

            if document.kind == STRATEGY_IMAGE:
                return compute_overlay(source.coordinates, None, 1, self._zoom, box)
            return compute_overlay(source.coordinates, source.page_number, self._page, self._zoom, box)

    def render_page_png(self) -> Optional[bytes]:
        """Rasterize the current page at the current zoom; None until a document is loaded."""
        with self._lock:
            if self._document is None:
                return None
            return self._document.render_png(self._page, self.rendered_width)

    def to_state(self) -> ProofStateRecord:
        with self._lock:
            source = self._source
            overlay = self.overlay
            return {
                'state': self._state,
                'strategy': self.strategy,
                'source': source.to_record() if source is not None else None,
                'error': self._error,
                'page': self._page,
                'pageCount': self.page_count,
                'zoom': self._zoom,
                'canZoomIn': self.can_zoom_in,
                'canZoomOut': self.can_zoom_out,
                'renderedWidth': self.rendered_width,
                'overlay': overlay.to_dict() if overlay is not None else None,
                'scrollPending': self._scroll_pending,
                'scrollTarget': self._scroll_target.to_dict() if self._scroll_target is not None else None,
            }

    def render(self, page_url: Optional[str] = None) -> Markup:
        """
        Proof panel HTML.

        Args:
            page_url: Where the page image is served (e.g. the page.png route);
                without one the current page is inlined as a PNG data URI
        """
        with self._lock:
            source = self._source
            if source is None:
                return Markup('')

            image_src = None
            if self._state == STATE_READY:
                image_src = page_url or self._page_data_uri()

            file_path = source.file_path or ''
            return render_component(
                'proof_panel.html',
                source=source,
                state=self._state,
                error=self._error,
                page=self._page,
                page_count=self.page_count,
                zoom=self._zoom,
                can_zoom_in=self.can_zoom_in,
                can_zoom_out=self.can_zoom_out,
                overlay=self.overlay,
                rendered_width=self.rendered_width,
                image_src=image_src,
                is_open=self._is_open,
                link=file_path if file_path.startswith(('http://', 'https://')) else None,
                extracted_on=source.timestamp.strftime('%b %d, %Y'),
            )

    def _page_data_uri(self) -> Optional[str]:
        png = self.render_page_png()
        if png is None:
            return None
        return 'data:image/png;base64,' + base64.b64encode(png).decode('ascii')

    def dispose(self) -> None:
        self._unsubscribe()
        with self._lock:
            self._sequence += 1
            self._close_document()
