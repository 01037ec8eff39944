"""Tests for the proof viewer: loading, stale-load guard, zoom, paging, overlay."""

import io
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest
from PIL import Image

from provenance.citation.proof_viewer import (
    STATE_ERROR,
    STATE_FALLBACK,
    STATE_IDLE,
    STATE_LOADING,
    STATE_READY,
    RenderBox,
    ProofViewer,
    compute_overlay,
)
from provenance.citation.source_model import Coordinates


class DeferredExecutor(Executor):
    """Executor whose jobs run only when the test says so, in any order."""

    def __init__(self):
        self.jobs = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.jobs.append((future, fn, args, kwargs))
        return future

    def run(self, index: int) -> None:
        future, fn, args, kwargs = self.jobs[index]
        try:
            result = fn(*args, **kwargs)
        except Exception as e:
            future.set_exception(e)
        else:
            future.set_result(result)


@pytest.fixture
def pdf_source(make_source):
    return make_source(
        sourceId='D-001',
        filePath='evidence/report.pdf',
        pageNumber=2,
        coordinates={'x': 10, 'y': 20, 'width': 30, 'height': 10},
    )


@pytest.fixture
def photo_source(make_source):
    return make_source(
        sourceId='P-001',
        documentType='site_photo',
        documentName='site.png',
        filePath='evidence/site.png',
        coordinates={'x': 50, 'y': 50, 'width': 25, 'height': 20},
    )


class TestComputeOverlay:
    """Pure coordinate -> pixel mapping."""

    def test_maps_percentages_to_pixels(self) -> None:
        coordinates = Coordinates(x=10, y=20, width=30, height=10)

        overlay = compute_overlay(coordinates, 1, 1, 100, RenderBox(550, 700))

        assert (overlay.left, overlay.top, overlay.width, overlay.height) == (55, 140, 165, 70)

    def test_scales_with_zoom(self) -> None:
        coordinates = Coordinates(x=10, y=20, width=30, height=10)

        overlay = compute_overlay(coordinates, 1, 1, 200, RenderBox(550, 700))

        assert overlay.left == 110
        assert overlay.height == 140

    def test_none_on_other_page(self) -> None:
        coordinates = Coordinates(x=10, y=20, width=30, height=10)

        assert compute_overlay(coordinates, 2, 1, 100, RenderBox(550, 700)) is None

    def test_missing_page_means_first_page(self) -> None:
        coordinates = Coordinates(x=0, y=0, width=10, height=10)

        assert compute_overlay(coordinates, None, 1, 100, RenderBox(100, 100)) is not None

    def test_none_without_coordinates(self) -> None:
        assert compute_overlay(None, 1, 1, 100, RenderBox(550, 700)) is None


class TestLoading:

    def test_open_resets_page_and_requests_scroll(self, session, viewer, pdf_source) -> None:
        session.open(pdf_source)

        assert viewer.source == pdf_source
        assert viewer.state == STATE_IDLE
        assert viewer.page == 2
        assert viewer.scroll_pending

    def test_load_pdf(self, session, viewer, pdf_source, scroll_targets) -> None:
        """
        Test a paged document loads and scrolls once to the cited page.

        Arrange: Open a 3-page PDF citation on page 2
        Act: load()
        Assert: ready, page count 3, one scroll target for page 2
        """
        session.open(pdf_source)

        assert viewer.load() == STATE_READY

        assert viewer.page_count == 3
        assert viewer.strategy == 'paged'
        assert len(scroll_targets) == 1
        target = scroll_targets[0]
        assert target.page == 2
        assert target.anchor == 'page-2'
        assert target.center_y == pytest.approx(25)
        assert target.delay == pytest.approx(0.5)
        assert not viewer.scroll_pending

    def test_scroll_waits_for_load(self, session, viewer, pdf_source, scroll_targets) -> None:
        session.open(pdf_source)
        ticket = viewer.begin_load()

        assert viewer.state == STATE_LOADING
        assert scroll_targets == []

        viewer.complete_load(ticket, document=viewer.fetch(ticket))

        assert len(scroll_targets) == 1

    def test_scroll_emitted_once(self, session, viewer, pdf_source, scroll_targets) -> None:
        session.open(pdf_source)
        viewer.load()
        viewer.load()

        assert len(scroll_targets) == 1

    def test_page_beyond_document_clamped_on_load(self, session, viewer, make_source) -> None:
        session.open(make_source(filePath='evidence/report.pdf', pageNumber=9))

        viewer.load()

        assert viewer.page == 3

    def test_missing_file_shows_error(self, session, viewer, make_source, scroll_targets) -> None:
        source = make_source(documentName='Lost Report.pdf', filePath='evidence/lost.pdf')
        session.open(source)

        assert viewer.load() == STATE_ERROR

        assert 'File not found' in viewer.error
        assert scroll_targets == []
        html = str(viewer.render())
        assert 'Could not load Lost Report.pdf' in html
        assert session.current == source

    def test_corrupt_pdf_shows_error(self, session, viewer, make_source) -> None:
        session.open(make_source(filePath='evidence/corrupt.pdf'))

        assert viewer.load() == STATE_ERROR

    def test_source_without_file_uses_fallback(self, session, viewer, make_source, scroll_targets, resolver) -> None:
        session.open(make_source(contextSnippet='Setback is 3 metres.'))

        assert viewer.load() == STATE_FALLBACK

        assert resolver.calls == []
        assert len(scroll_targets) == 1
        html = str(viewer.render())
        assert 'Setback is 3 metres.' in html
        assert 'proof-panel__snippet--highlighted' in html

    def test_log_with_file_is_text_only(self, session, viewer, make_source) -> None:
        session.open(make_source(documentType='log', filePath='evidence/site-log.txt'))

        assert viewer.load() == STATE_FALLBACK


    def test_oversized_image_shows_error(self, session, viewer, make_source, monkeypatch) -> None:
        """
        Test evidence past Pillow's pixel limit (large-format blueprint scan).

        Arrange: Pixel limit below the fixture image size
        Act: load()
        Assert: error state with the document name, no exception escapes
        """
        monkeypatch.setattr(Image, 'MAX_IMAGE_PIXELS', 1000)
        session.open(make_source(documentName='Site Scan.png', documentType='blueprint', filePath='evidence/floorplan.png'))

        assert viewer.load() == STATE_ERROR

        assert 'too large' in viewer.error
        assert 'Could not load Site Scan.png' in str(viewer.render())

    def test_unexpected_resolver_error_shows_error(self, session, config, make_source, scroll_targets) -> None:
        resolver = MagicMock()
        resolver.resolve.side_effect = ValueError('embedded null byte')
        viewer = ProofViewer(session, resolver=resolver, config=config, on_scroll=scroll_targets.append)
        session.open(make_source(filePath='evidence/a.pdf'))

        assert viewer.load() == STATE_ERROR

        assert 'embedded null byte' in viewer.error
        assert scroll_targets == []
        viewer.dispose()


class TestStaleLoads:
    """A late result for a citation the user has left must not render."""

    def test_late_result_for_previous_source_discarded(self, session, viewer, pdf_source, photo_source) -> None:
        """
        Test A's load finishing after B was opened.

        Arrange: open(A), begin A's load, open(B), begin B's load
        Act: B finishes, then A finishes
        Assert: viewer shows B; A's result rejected
        """
        session.open(pdf_source)
        ticket_a = viewer.begin_load()
        document_a = viewer.fetch(ticket_a)

        session.open(photo_source)
        ticket_b = viewer.begin_load()
        assert viewer.complete_load(ticket_b, document=viewer.fetch(ticket_b)) is True

        assert viewer.complete_load(ticket_a, document=document_a) is False

        assert viewer.source == photo_source
        assert viewer.strategy == 'image'
        assert viewer.state == STATE_READY

    def test_early_stale_result_leaves_new_load_pending(self, session, viewer, pdf_source, photo_source) -> None:
        session.open(pdf_source)
        ticket_a = viewer.begin_load()
        session.open(photo_source)
        viewer.begin_load()

        assert viewer.complete_load(ticket_a, document=viewer.fetch(ticket_a)) is False

        assert viewer.state == STATE_LOADING
        assert viewer.document is None

    def test_stale_error_ignored(self, session, viewer, pdf_source, photo_source) -> None:
        session.open(pdf_source)
        ticket_a = viewer.begin_load()
        session.open(photo_source)
        viewer.load()

        assert viewer.complete_load(ticket_a, error=RuntimeError('network down')) is False
        assert viewer.state == STATE_READY

    def test_result_after_clear_discarded(self, session, scheduler, viewer, pdf_source) -> None:
        session.open(pdf_source)
        ticket = viewer.begin_load()
        session.close()
        scheduler.run_pending()

        assert viewer.complete_load(ticket, document=viewer.fetch(ticket)) is False
        assert viewer.source is None

    def test_result_during_close_window_still_applies(self, session, viewer, pdf_source) -> None:
        session.open(pdf_source)
        ticket = viewer.begin_load()
        session.close()

        assert viewer.complete_load(ticket, document=viewer.fetch(ticket)) is True
        assert 'proof-panel--closing' in str(viewer.render())

    def test_background_loads_out_of_order(self, session, viewer, pdf_source, photo_source) -> None:
        executor = DeferredExecutor()
        session.open(pdf_source)
        viewer.load_in_background(executor)
        session.open(photo_source)
        viewer.load_in_background(executor)

        executor.run(1)
        executor.run(0)

        assert viewer.source == photo_source
        assert viewer.state == STATE_READY
        assert viewer.page_count == 1

    def test_background_load_with_thread_pool(self, session, viewer, pdf_source) -> None:
        session.open(pdf_source)

        with ThreadPoolExecutor(max_workers=1) as executor:
            future = viewer.load_in_background(executor)

        assert future is not None
        assert viewer.state == STATE_READY

    def test_background_failure_becomes_error_state(self, session, viewer, make_source) -> None:
        executor = DeferredExecutor()
        session.open(make_source(filePath='evidence/lost.pdf'))
        viewer.load_in_background(executor)

        executor.run(0)

        assert viewer.state == STATE_ERROR


class TestZoomAndPaging:

    def test_zoom_steps_and_bounds(self, session, viewer, pdf_source) -> None:
        session.open(pdf_source)

        assert viewer.zoom == 100
        assert viewer.zoom_in() == 125
        for _ in range(10):
            viewer.zoom_in()
        assert viewer.zoom == 200
        assert not viewer.can_zoom_in
        for _ in range(10):
            viewer.zoom_out()
        assert viewer.zoom == 50
        assert not viewer.can_zoom_out

    @pytest.mark.parametrize('requested,expected', [(137, 125), (140, 150), (10, 50), (999, 200)])
    def test_set_zoom_clamps_and_snaps(self, session, viewer, pdf_source, requested, expected) -> None:
        session.open(pdf_source)

        assert viewer.set_zoom(requested) == expected

    def test_zoom_persists_across_pages(self, session, viewer, pdf_source) -> None:
        session.open(pdf_source)
        viewer.load()
        viewer.zoom_in()

        viewer.next_page()

        assert viewer.page == 3
        assert viewer.zoom == 125

    def test_new_open_resets_zoom(self, session, viewer, pdf_source, photo_source) -> None:
        session.open(pdf_source)
        viewer.zoom_in()

        session.open(photo_source)

        assert viewer.zoom == 100

    def test_reopening_same_source_after_close_resets(self, session, viewer, pdf_source) -> None:
        session.open(pdf_source)
        viewer.load()
        viewer.set_zoom(175)
        session.close()

        session.open(pdf_source)

        assert viewer.zoom == 100
        assert viewer.page == 2

    def test_paging_clamps(self, session, viewer, pdf_source) -> None:
        session.open(pdf_source)
        viewer.load()

        assert viewer.go_to_page(10) == 3
        assert viewer.next_page() == 3
        assert viewer.go_to_page(1) == 1
        assert viewer.previous_page() == 1


class TestOverlay:

    def test_overlay_on_cited_page(self, session, viewer, pdf_source) -> None:
        session.open(pdf_source)
        viewer.load()

        overlay = viewer.overlay

        assert overlay.left == pytest.approx(55)
        assert overlay.width == pytest.approx(165)
        assert overlay.top == pytest.approx(0.2 * 550 * 792 / 612, abs=0.01)

    def test_overlay_recomputed_on_zoom(self, session, viewer, pdf_source) -> None:
        session.open(pdf_source)
        viewer.load()
        before = viewer.overlay

        viewer.set_zoom(200)

        assert viewer.overlay.left == pytest.approx(before.left * 2)

    def test_overlay_hidden_on_other_pages(self, session, viewer, pdf_source) -> None:
        session.open(pdf_source)
        viewer.load()

        viewer.go_to_page(1)

        assert viewer.overlay is None

    def test_image_overlay_ignores_page_number(self, session, viewer, photo_source) -> None:
        session.open(photo_source)
        viewer.load()

        overlay = viewer.overlay

        assert overlay.left == pytest.approx(275)
        assert overlay.top == pytest.approx(0.5 * 550 * 300 / 400)

    def test_no_overlay_before_load(self, session, viewer, pdf_source) -> None:
        session.open(pdf_source)

        assert viewer.overlay is None


class TestStrategies:

    @pytest.mark.parametrize('file_path,strategy', [
        ('evidence/floorplan.pdf', 'paged'),
        ('evidence/floorplan.png', 'image'),
    ])
    def test_blueprint_strategy_follows_file(self, session, viewer, make_source, file_path, strategy) -> None:
        session.open(make_source(documentType='blueprint', filePath=file_path))

        viewer.load()

        assert viewer.state == STATE_READY
        assert viewer.strategy == strategy

    def test_blueprint_image_strategy_unsettled_before_load(self, session, viewer, make_source) -> None:
        session.open(make_source(documentType='blueprint', filePath='evidence/floorplan.png'))

        assert viewer.strategy == 'auto'


class TestRendering:

    def test_render_page_png_matches_zoom(self, session, viewer, photo_source) -> None:
        session.open(photo_source)
        viewer.load()
        viewer.set_zoom(50)

        png = viewer.render_page_png()

        image = Image.open(io.BytesIO(png))
        assert image.format == 'PNG'
        assert image.size == (275, 206)

    def test_render_pdf_page(self, session, viewer, pdf_source) -> None:
        session.open(pdf_source)
        viewer.load()

        png = viewer.render_page_png()

        assert png.startswith(b'\x89PNG')
        assert abs(Image.open(io.BytesIO(png)).width - 550) <= 1

    def test_render_page_png_before_load(self, session, viewer, pdf_source) -> None:
        session.open(pdf_source)

        assert viewer.render_page_png() is None

    def test_render_ready_panel(self, session, viewer, make_source) -> None:
        session.open(make_source(
            sourceId='D-007',
            filePath='evidence/report.pdf',
            pageNumber=1,
            coordinates={'x': 1, 'y': 1, 'width': 5, 'height': 5},
        ))
        viewer.load()

        html = str(viewer.render())

        assert '[D-007]' in html
        assert '100%' in html
        assert '1 / 3' in html
        assert 'proof-panel__highlight' in html
        assert 'Source ID: D-007' in html
        assert 'src="data:image/png;base64,' in html

    def test_render_uses_page_url(self, session, viewer, pdf_source) -> None:
        session.open(pdf_source)
        assert 'src=' not in str(viewer.render(page_url='/pages/current.png'))

        viewer.load()

        assert 'src="/pages/current.png"' in str(viewer.render(page_url='/pages/current.png'))

    def test_render_without_source(self, viewer) -> None:
        assert str(viewer.render()) == ''

    def test_to_state(self, session, viewer, pdf_source) -> None:
        session.open(pdf_source)
        viewer.load()

        state = viewer.to_state()

        assert state['state'] == STATE_READY
        assert state['pageCount'] == 3
        assert state['renderedWidth'] == 550
        assert state['source']['sourceId'] == 'D-001'
        assert state['overlay']['left'] == pytest.approx(55)
        assert state['scrollPending'] is False
        assert state['scrollTarget'] == {'page': 2, 'anchor': 'page-2', 'centerY': 25, 'delay': 0.5}
