from flask import Blueprint, request, jsonify, current_app, Response, url_for
import logging

from .citation.content_view import ContentView, register_view, get_view, unregister_view
from .citation.reference_list import ReferencesSection
from .citation.reference_renderer import annotate_text, extract_markers, verification_status
from .services.response_formatter import APIResponseFormatter

logger = logging.getLogger(__name__)

views = Blueprint('views', __name__)


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _registry_response(view_id, view, message=None, status=200):
    response = APIResponseFormatter.format_registry_response(view.registry.to_payload(), view_id)
    if message:
        response['message'] = message
    return jsonify(response), status


def _proof_response(view_id, view):
    viewer = view.viewer
    # Distinct URL per page and zoom
    page_url = url_for('views.proof_page_image', view_id=view_id, page=viewer.page, zoom=viewer.zoom)
    return jsonify(APIResponseFormatter.format_proof_response(
        view.session.state,
        viewer.to_state(),
        str(viewer.render(page_url=page_url))
    )), 200


# ============================================================================
# CONTENT VIEWS
# ============================================================================

@views.route('/api/views', methods=['POST'])
def create_view():
    """Create a content view with its own registry, proof session and viewer"""
    data = _json_body()
    view = ContentView(
        resolver=current_app.config.get('EVIDENCE_RESOLVER'),
        scheduler=current_app.config.get('PROOF_SCHEDULER'),
    )
    if data.get('extracting'):
        view.registry.begin_extraction()
    view.registry.add_many(data.get('citations') or [])

    view_id = register_view(view)
    return _registry_response(view_id, view, 'View created', 201)


@views.route('/api/views/<view_id>', methods=['DELETE'])
def delete_view(view_id):
    """Dispose a content view (proof timers cancelled, viewer released)"""
    get_view(view_id)
    unregister_view(view_id)
    return jsonify(APIResponseFormatter.format_success_response(
        {'view_id': view_id}, 'View disposed'
    )), 200


# ============================================================================
# CITATION REGISTRY
# ============================================================================

@views.route('/api/views/<view_id>/citations', methods=['GET'])
def get_citations(view_id):
    """Grouped registry payload; ?format=html adds the rendered registry card"""
    view = get_view(view_id)
    if request.args.get('format') == 'html':
        response = APIResponseFormatter.format_registry_response(view.registry.to_payload(), view_id)
        response['html'] = str(view.registry.render(view.open_source))
        response['references_html'] = str(ReferencesSection(view.registry.citations, view.open_source).render())
        return jsonify(response), 200
    return _registry_response(view_id, view)


@views.route('/api/views/<view_id>/citations', methods=['POST'])
def add_citations(view_id):
    """
    Add citations to a view.

    Body is a single record (optionally with ``seedHint``), a list of records,
    or ``{"citations": [...], "extractionComplete": true}``.
    """
    view = get_view(view_id)
    data = request.get_json(silent=True)
    if not isinstance(data, (list, dict)):
        return jsonify(APIResponseFormatter.format_error_response(
            'Request body must be JSON', 'INVALID_BODY', 400
        )), 400

    if isinstance(data, list):
        added = view.registry.add_many(data)
    elif 'citations' in data:
        added = view.registry.add_many(data.get('citations') or [])
        if data.get('extractionComplete'):
            view.registry.finish_extraction()
    else:
        record = dict(data)
        seed_hint = record.pop('seedHint', None)
        added = [view.registry.add(record, seed_hint=seed_hint)]

    response = APIResponseFormatter.format_registry_response(view.registry.to_payload(), view_id)
    response['added'] = [citation.to_record() for citation in added]
    return jsonify(response), 201


@views.route('/api/views/<view_id>/uploads', methods=['POST'])
def register_uploads(view_id):
    """Register uploaded site photos and documents as auto-linked citations"""
    view = get_view(view_id)
    data = _json_body()
    site_images = data.get('siteImages') or []
    documents = data.get('documents') or []
    if not isinstance(site_images, list) or not all(isinstance(p, str) for p in site_images) \
            or not isinstance(documents, list) or not all(isinstance(d, dict) for d in documents):
        return jsonify(APIResponseFormatter.format_error_response(
            'siteImages must be a list of paths and documents a list of upload records', 'INVALID_UPLOADS', 400
        )), 400

    added = view.registry.register_uploads(site_images, documents)

    response = APIResponseFormatter.format_registry_response(view.registry.to_payload(), view_id)
    response['added'] = [citation.to_record() for citation in added]
    return jsonify(response), 201


@views.route('/api/views/<view_id>/citations/<citation_id>/pillar', methods=['POST'])
def link_pillar(view_id, citation_id):
    """Link a citation to a pillar; ``{"pillar": null}`` unlinks"""
    view = get_view(view_id)
    pillar = _json_body().get('pillar')

    try:
        citation = view.registry.link_to_pillar(citation_id, pillar)
    except ValueError as e:
        return jsonify(APIResponseFormatter.format_error_response(
            str(e), 'UNKNOWN_PILLAR', 400
        )), 400

    if citation is None:
        return jsonify(APIResponseFormatter.format_error_response(
            f'Citation {citation_id} not found', 'CITATION_NOT_FOUND', 404
        )), 404

    return jsonify(APIResponseFormatter.format_success_response(
        citation.to_record(),
        'Pillar linked' if pillar else 'Pillar unlinked',
        {'linkedCount': view.registry.linked_count, 'unlinkedCount': view.registry.unlinked_count}
    )), 200


@views.route('/api/views/<view_id>/citations/copy', methods=['GET'])
def copy_citations(view_id):
    """Copy one ``[sourceId]`` (``?source_id=``) or all references"""
    view = get_view(view_id)
    source_id = request.args.get('source_id')
    text = view.registry.copy_reference(source_id) if source_id else view.registry.copy_all()
    return jsonify(APIResponseFormatter.format_success_response({'text': text})), 200


@views.route('/api/views/<view_id>/citations/duplicates', methods=['GET'])
def get_duplicates(view_id):
    """Citations pointing at the same evidence"""
    view = get_view(view_id)
    duplicates = [
        [citation.to_record() for citation in group]
        for group in view.registry.find_duplicates()
    ]
    return jsonify(APIResponseFormatter.format_success_response(
        duplicates, metadata={'groups': len(duplicates)}
    )), 200


@views.route('/api/views/<view_id>/annotate', methods=['POST'])
def annotate(view_id):
    """Render generated text with its [sourceId] markers as source tags"""
    view = get_view(view_id)
    text = _json_body().get('text') or ''
    return jsonify(APIResponseFormatter.format_success_response({
        'html': str(annotate_text(text, view.registry, view.open_source)),
        'markers': extract_markers(text),
        'verification': verification_status(text, view.registry),
    })), 200


# ============================================================================
# PROOF SESSION & VIEWER
# ============================================================================

@views.route('/api/views/<view_id>/proof', methods=['POST'])
def open_proof(view_id):
    """Open the proof for ``citation_id`` and load its evidence"""
    view = get_view(view_id)
    citation_id = _json_body().get('citation_id')
    if not citation_id:
        return jsonify(APIResponseFormatter.format_error_response(
            'citation_id is required', 'MISSING_CITATION_ID', 400
        )), 400

    if view.open_proof(citation_id) is None:
        return jsonify(APIResponseFormatter.format_error_response(
            f'Citation {citation_id} not found', 'CITATION_NOT_FOUND', 404
        )), 404

    view.viewer.load()
    return _proof_response(view_id, view)


@views.route('/api/views/<view_id>/proof', methods=['DELETE'])
def close_proof(view_id):
    view = get_view(view_id)
    view.close_proof()
    return _proof_response(view_id, view)


@views.route('/api/views/<view_id>/proof', methods=['GET'])
def get_proof(view_id):
    view = get_view(view_id)
    return _proof_response(view_id, view)


@views.route('/api/views/<view_id>/proof/zoom', methods=['POST'])
def zoom_proof(view_id):
    """``{"action": "in"|"out"}`` or ``{"zoom": 150}``"""
    view = get_view(view_id)
    data = _json_body()
    action = data.get('action')

    if action == 'in':
        view.viewer.zoom_in()
    elif action == 'out':
        view.viewer.zoom_out()
    elif isinstance(data.get('zoom'), (int, float)):
        view.viewer.set_zoom(data['zoom'])
    else:
        return jsonify(APIResponseFormatter.format_error_response(
            'Provide action "in"/"out" or a numeric zoom', 'INVALID_ZOOM', 400
        )), 400
    return _proof_response(view_id, view)


@views.route('/api/views/<view_id>/proof/page', methods=['POST'])
def page_proof(view_id):
    """``{"action": "next"|"previous"}`` or ``{"page": 3}``"""
    view = get_view(view_id)
    data = _json_body()
    action = data.get('action')

    if action == 'next':
        view.viewer.next_page()
    elif action == 'previous':
        view.viewer.previous_page()
    elif isinstance(data.get('page'), int):
        view.viewer.go_to_page(data['page'])
    else:
        return jsonify(APIResponseFormatter.format_error_response(
            'Provide action "next"/"previous" or an integer page', 'INVALID_PAGE', 400
        )), 400
    return _proof_response(view_id, view)


@views.route('/api/views/<view_id>/proof/page.png', methods=['GET'])
def proof_page_image(view_id):
    """Current page of the open proof, rasterized at the current zoom"""
    view = get_view(view_id)
    png = view.viewer.render_page_png()
    if png is None:
        return jsonify(APIResponseFormatter.format_error_response(
            'No document loaded for this view', 'NO_DOCUMENT', 404
        )), 404

    return Response(
        png,
        mimetype='image/png',
        headers={'Cache-Control': 'no-store'}
    )
