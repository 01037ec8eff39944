"""
Reference Renderer - Layer 2: Inline citation markers.

Renders one citation as a small clickable ``[sourceId]`` badge inside
generated prose, plus its hover/focus preview.
Responsibilities:
- Render the badge and the preview (document name, page, truncated snippet)
- Forward activation (click / Enter / Space) to the open-proof callback
- Find ``[sourceId]`` markers in generated text and swap in rendered badges

Rules:
- ✅ Holds no proof-open state (the proof session owns the single slot)
- ✅ Unknown markers stay as plain, escaped text
- ❌ No grouping (that's reference_list's job)
"""

import logging
import re
from typing import Any, Callable, Dict, List, Optional

from markupsafe import Markup, escape

from provenance.citation.source_model import CitationSource
from provenance.citation.templating import render_component
from provenance.config import settings

logger = logging.getLogger(__name__)

OpenProofCallback = Callable[[CitationSource], None]

ACTIVATION_KEYS = ('Enter', ' ', 'Space', 'Spacebar')

# "[D-102]", "[OBC 3.4]", "[OBC 3.4-2]", "[LOG-045]"; not "[1]" style numbered refs
MARKER_PATTERN = re.compile(r'\[([A-Za-z][A-Za-z0-9 .\-]{0,38}[A-Za-z0-9])\]')

ELLIPSIS = '…'


def truncate_snippet(text: str, max_chars: int) -> str:
    """
    Truncate a context snippet to ``max_chars`` with an ellipsis.

    Cuts at the last word boundary when one exists in the second half of the
    allowed length, so previews don't end mid-word.
    """
    text = ' '.join((text or '').split())
    if max_chars <= 0 or len(text) <= max_chars:
        return text

    cut = text[:max_chars]
    boundary = cut.rfind(' ')
    if boundary >= max_chars // 2:
        cut = cut[:boundary]
    return cut.rstrip(' ,;:.') + ELLIPSIS


class SourceTag:
    """One inline citation badge."""

    def __init__(
        self,
        source: CitationSource,
        on_open_proof: Optional[OpenProofCallback] = None,
        preview_chars: Optional[int] = None,
    ):
        self.source = source
        self.on_open_proof = on_open_proof
        self.preview_chars = preview_chars if preview_chars is not None else settings.preview_max_chars

    @property
    def label(self) -> str:
        return f"[{self.source.source_id}]"

    def preview(self) -> Dict[str, Any]:
        kind = self.source.kind
        return {
            'sourceId': self.source.source_id,
            'documentName': self.source.document_name,
            'documentLabel': kind.label,
            'icon': kind.icon,
            'pageNumber': self.source.page_number,
            'snippet': truncate_snippet(self.source.context_snippet, self.preview_chars),
        }

    def render(self) -> Markup:
        return render_component('source_tag.html', source=self.source, label=self.label)

    def render_preview(self) -> Markup:
        return render_component('source_tag_preview.html', preview=self.preview())

    def activate(self) -> bool:
        """Ask the proof session to open this citation. Returns False without a callback."""
        if self.on_open_proof is None:
            return False
        self.on_open_proof(self.source)
        return True

    def handle_key(self, key: str) -> bool:
        if key in ACTIVATION_KEYS:
            return self.activate()
        return False


def extract_markers(text: str) -> List[str]:
    """
    Extract source-ID markers from generated text (e.g., [D-102], [OBC 3.4]).

    Returns:
        Marker IDs in order of first appearance, without duplicates
    """
    seen = set()
    markers = []
    for match in MARKER_PATTERN.finditer(text or ''):
        marker = match.group(1)
        if marker not in seen:
            seen.add(marker)
            markers.append(marker)
    return markers


def annotate_text(
    text: str,
    registry: Any,
    on_open_proof: Optional[OpenProofCallback] = None,
) -> Markup:
    """
    Render generated prose with every resolvable ``[sourceId]`` marker
    replaced by a clickable badge.

    Args:
        text: Generated claim text
        registry: Anything with ``get_by_source_id(source_id)`` (a CitationRegistry)
        on_open_proof: Callback wired to the proof session's ``open``
    """
    parts = []
    position = 0
    unresolved = []

    for match in MARKER_PATTERN.finditer(text or ''):
        source = registry.get_by_source_id(match.group(1))
        if source is None:
            unresolved.append(match.group(1))
            continue
        parts.append(escape(text[position:match.start()]))
        parts.append(SourceTag(source, on_open_proof).render())
        position = match.end()

    parts.append(escape((text or '')[position:]))

    if unresolved:
        logger.warning(f"[REFERENCE_RENDERER] {len(unresolved)} marker(s) not in registry: {unresolved}")

    return Markup('').join(parts)


def verification_status(text: str, registry: Any) -> str:
    """
    'verified' when every marker resolves, 'partial' when some do,
    'unverified' when none do (or the text has no markers).
    """
    markers = extract_markers(text)
    if not markers:
        return 'unverified'

    resolved = sum(1 for marker in markers if registry.get_by_source_id(marker) is not None)
    if resolved == len(markers):
        return 'verified'
    if resolved:
        return 'partial'
    return 'unverified'
