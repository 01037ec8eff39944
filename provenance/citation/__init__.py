"""
Citation Architecture - Layered System

This package implements the citation & provenance registry:
- source_model / id_minting: Evidence records and their source IDs
- reference_renderer: Inline source tags inside generated text
- reference_list: Grouped "References" list per piece of content
- registry: Per-view collection, pillar linkage, copy/export
- proof_session: Which citation's proof is open (single slot)
- proof_viewer: Loads and shows the evidence behind the open citation
- content_view: Bundles the above for one content view
"""

from provenance.citation.source_model import (
    CitationSource,
    Coordinates,
    DocumentKind,
    DOCUMENT_KINDS,
    PILLAR_LABELS,
    get_document_kind,
    get_pillar_label
)

from provenance.citation.id_minting import SourceIdMinter

from provenance.citation.auto_link import (
    is_likely_blueprint,
    suggest_pillar
)

from provenance.citation.reference_renderer import (
    SourceTag,
    annotate_text,
    extract_markers,
    verification_status
)

from provenance.citation.reference_list import (
    ReferenceGroup,
    ReferencesSection,
    group_references
)

from provenance.citation.registry import (
    CitationRegistry,
    RegistryGrouping,
    format_reference
)

from provenance.citation.proof_session import (
    ProofSession,
    ProofSnapshot,
    ThreadingScheduler
)

from provenance.citation.proof_viewer import (
    LoadTicket,
    OverlayBox,
    ProofViewer,
    RenderBox,
    ScrollTarget,
    compute_overlay
)

from provenance.citation.content_view import (
    ContentView,
    get_view,
    register_view,
    unregister_view
)

from provenance.citation.errors import (
    EvidenceLoadError,
    ProvenanceError,
    UnknownViewError
)

__all__ = [
    # Source Record Model
    'CitationSource',
    'Coordinates',
    'DocumentKind',
    'DOCUMENT_KINDS',
    'PILLAR_LABELS',
    'get_document_kind',
    'get_pillar_label',
    'SourceIdMinter',
    'is_likely_blueprint',
    'suggest_pillar',
    # Reference Renderer
    'SourceTag',
    'annotate_text',
    'extract_markers',
    'verification_status',
    # Reference List Builder
    'ReferenceGroup',
    'ReferencesSection',
    'group_references',
    # Citation Registry
    'CitationRegistry',
    'RegistryGrouping',
    'format_reference',
    # Proof Session Controller
    'ProofSession',
    'ProofSnapshot',
    'ThreadingScheduler',
    # Proof Viewer
    'LoadTicket',
    'OverlayBox',
    'ProofViewer',
    'RenderBox',
    'ScrollTarget',
    'compute_overlay',
    # Content views
    'ContentView',
    'get_view',
    'register_view',
    'unregister_view',
    # Errors
    'EvidenceLoadError',
    'ProvenanceError',
    'UnknownViewError',
]
