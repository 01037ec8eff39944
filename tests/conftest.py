"""
Shared test fixtures and configuration for the citation registry test suite.

Provides: Citation factories, a manual scheduler for deferred-clear timing,
in-memory evidence (PDF via PyMuPDF, PNG via Pillow), a stub file resolver,
and a Flask test client.
Dependencies: pytest, pymupdf, pillow, flask
"""

import io
from typing import Callable, Dict, List

import fitz
import pytest
from PIL import Image

from provenance.citation import content_view
from provenance.citation.errors import EvidenceLoadError
from provenance.citation.proof_session import ProofSession
from provenance.citation.proof_viewer import ProofViewer
from provenance.citation.registry import CitationRegistry
from provenance.citation.source_model import CitationSource
from provenance.config import RegistrySettings
from provenance.services.clipboard import InMemoryClipboard
from provenance.services.file_resolver import ResolvedFile, detect_content_type


class ManualCall:
    """Scheduled callback that only fires when the test says so."""

    def __init__(self, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler double: records call_later() and runs callbacks on demand."""

    def __init__(self):
        self.calls: List[ManualCall] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualCall:
        call = ManualCall(delay, callback)
        self.calls.append(call)
        return call

    @property
    def pending(self) -> List[ManualCall]:
        return [call for call in self.calls if not call.cancelled and not call.fired]

    def run_pending(self) -> int:
        """Fire every pending callback (the delay elapsing). Returns how many fired."""
        due = self.pending
        for call in due:
            call.fired = True
            call.callback()
        return len(due)


class StubResolver:
    """File resolver serving in-memory bytes keyed by file path."""

    def __init__(self, files: Dict[str, bytes]):
        self.files = files
        self.calls: List[str] = []

    def resolve(self, file_path: str) -> ResolvedFile:
        self.calls.append(file_path)
        if file_path not in self.files:
            raise EvidenceLoadError(f"File not found: {file_path}", file_path)
        content = self.files[file_path]
        name = file_path.rsplit('/', 1)[-1]
        return ResolvedFile(content, detect_content_type(content, name), name)


def build_pdf(pages: int = 3, width: float = 612, height: float = 792) -> bytes:
    document = fitz.open()
    for number in range(1, pages + 1):
        page = document.new_page(width=width, height=height)
        page.insert_text((72, 72), f"Inspection report page {number}")
    data = document.tobytes()
    document.close()
    return data


def build_png(width: int = 400, height: int = 300) -> bytes:
    buffer = io.BytesIO()
    Image.new('RGB', (width, height), 'white').save(buffer, format='PNG')
    return buffer.getvalue()


@pytest.fixture
def make_source() -> Callable[..., CitationSource]:
    """Factory for CitationSource records with sensible defaults."""

    def _make(**overrides) -> CitationSource:
        record = {
            'documentName': 'Inspection Report.pdf',
            'documentType': 'pdf',
            'contextSnippet': 'Foundation walls measured at 8 inches thick.',
        }
        record.update(overrides)
        return CitationSource.from_record(record)

    return _make


@pytest.fixture
def config() -> RegistrySettings:
    return RegistrySettings(
        proof_clear_delay_ms=300,
        preview_max_chars=160,
        zoom_min=50,
        zoom_max=200,
        zoom_step=25,
        base_page_width=550,
        scroll_delay_ms=500,
    )


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def session(scheduler, config) -> ProofSession:
    return ProofSession(clear_delay=config.proof_clear_delay, scheduler=scheduler)


@pytest.fixture
def pdf_bytes() -> bytes:
    return build_pdf()


@pytest.fixture
def png_bytes() -> bytes:
    return build_png()


@pytest.fixture
def resolver(pdf_bytes, png_bytes) -> StubResolver:
    return StubResolver({
        'evidence/report.pdf': pdf_bytes,
        'evidence/site.png': png_bytes,
        'evidence/floorplan.pdf': pdf_bytes,
        'evidence/floorplan.png': png_bytes,
        'evidence/corrupt.pdf': b'%PDF-1.4 this is not really a pdf',
    })


@pytest.fixture
def scroll_targets() -> list:
    return []


@pytest.fixture
def viewer(session, resolver, config, scroll_targets) -> ProofViewer:
    viewer = ProofViewer(session, resolver=resolver, config=config, on_scroll=scroll_targets.append)
    yield viewer
    viewer.dispose()


@pytest.fixture
def clipboard() -> InMemoryClipboard:
    return InMemoryClipboard()


@pytest.fixture
def registry(clipboard) -> CitationRegistry:
    return CitationRegistry(clipboard=clipboard)


@pytest.fixture(autouse=True)
def clear_view_store():
    """Content views are registered in a module-level store; isolate tests."""
    yield
    for key in list(content_view._views):
        content_view.unregister_view(key)


@pytest.fixture
def app(resolver, scheduler):
    from provenance import create_app

    app = create_app({
        'TESTING': True,
        'EVIDENCE_RESOLVER': resolver,
        'PROOF_SCHEDULER': scheduler,
    })
    return app


@pytest.fixture
def client(app):
    return app.test_client()
