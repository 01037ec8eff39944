"""
Content views and the shared store that keeps them addressable.

A content view is one piece of generated content (an analysis panel, a chat
answer) together with the registry of its citations, its own proof session
and the viewer that follows that session. Two views never share a session.

The HTTP layer creates a view, registers it under a unique key and hands the
key to the client; later requests look the view up by key.
"""
import logging
import threading
import time
import uuid
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional

from provenance.citation.errors import UnknownViewError
from provenance.citation.proof_session import ProofSession, Scheduler
from provenance.citation.proof_viewer import ProofViewer, ScrollCallback
from provenance.citation.registry import CitationRegistry, RecordOrSource
from provenance.citation.source_model import CitationSource
from provenance.config import RegistrySettings, settings as default_settings
from provenance.services.clipboard import ClipboardSink, InMemoryClipboard
from provenance.services.file_resolver import FileResolver

logger = logging.getLogger(__name__)


class ContentView:
    """Registry, proof session and viewer owned by one content view."""

    def __init__(
        self,
        citations: Optional[Iterable[RecordOrSource]] = None,
        clipboard: Optional[ClipboardSink] = None,
        resolver: Optional[FileResolver] = None,
        scheduler: Optional[Scheduler] = None,
        config: Optional[RegistrySettings] = None,
        on_scroll: Optional[ScrollCallback] = None,
    ):
        config = config or default_settings
        self.clipboard = clipboard if clipboard is not None else InMemoryClipboard()
        self.registry = CitationRegistry(citations, clipboard=self.clipboard)
        self.session = ProofSession(clear_delay=config.proof_clear_delay, scheduler=scheduler)
        self.viewer = ProofViewer(self.session, resolver=resolver, config=config, on_scroll=on_scroll)

    def open_proof(self, citation_id: str) -> Optional[CitationSource]:
        """Open the proof for a registered citation; unknown ids are a no-op."""
        source = self.registry.get(citation_id)
        if source is None:
            logger.debug(f"[CONTENT_VIEW] open_proof ignored, citation {citation_id} not found")
            return None
        self.session.open(source)
        return source

    def open_source(self, source: CitationSource) -> None:
        """Open-proof callback handed to source tags and reference rows."""
        self.session.open(source)

    def close_proof(self) -> None:
        self.session.close()

    def dispose(self) -> None:
        self.viewer.dispose()
        self.session.dispose()


# Key -> content view, in least-recently-used order
_views: "OrderedDict[str, ContentView]" = OrderedDict()
_last_access: Dict[str, float] = {}
_lock = threading.Lock()


def _evict_locked(config: RegistrySettings) -> List[ContentView]:
    """Pop views idle past the TTL, then the least recently used beyond the cap."""
    now = time.monotonic()
    evicted = []
    ttl = config.view_idle_ttl_seconds
    if ttl > 0:
        for key in [k for k, seen in _last_access.items() if now - seen > ttl]:
            evicted.append(_views.pop(key))
            del _last_access[key]
    while config.max_views > 0 and len(_views) > config.max_views:
        key, view = _views.popitem(last=False)
        del _last_access[key]
        evicted.append(view)
    return evicted


def register_view(view: ContentView, config: Optional[RegistrySettings] = None) -> str:
    """Register a content view; return the unique key clients address it by."""
    key = str(uuid.uuid4())
    with _lock:
        _views[key] = view
        _last_access[key] = time.monotonic()
        evicted = _evict_locked(config or default_settings)
    for stale in evicted:
        stale.dispose()
    if evicted:
        logger.info(f"[VIEW_STORE] Evicted {len(evicted)} idle view(s)")
    logger.info(f"[VIEW_STORE] Registered view {key} ({len(view.registry)} citation(s))")
    return key


def get_view(key: Optional[str]) -> ContentView:
    """
    Return the content view for this key.

    Raises:
        UnknownViewError: If no view is registered under ``key``
    """
    with _lock:
        view = _views.get(key) if key else None
        if view is not None:
            _views.move_to_end(key)
            _last_access[key] = time.monotonic()
    if view is None:
        raise UnknownViewError(key or '')
    return view


def unregister_view(key: str) -> Optional[ContentView]:
    """Remove and dispose the view (call when the content view unmounts)."""
    with _lock:
        view = _views.pop(key, None)
        _last_access.pop(key, None)
    if view is not None:
        view.dispose()
        logger.info(f"[VIEW_STORE] Disposed view {key}")
    return view
