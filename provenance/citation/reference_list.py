"""
Reference List Builder - Layer 2: Grouped evidence lists.

Groups the citations behind a piece of generated content by document kind and
renders the collapsible "References" list.
Responsibilities:
- Bucket citations in a fixed priority order (site photos, documents,
  other images, regulations, project logs, other)
- Count per group and in total
- Forward row activation to the open-proof callback

Rules:
- ✅ Group membership is a pure function of document_type
- ✅ Duplicates (same source cited by several claims) are kept as rows
- ✅ Empty input renders nothing; empty state is the caller's call
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from markupsafe import Markup

from provenance.citation.reference_renderer import OpenProofCallback, truncate_snippet
from provenance.citation.source_model import BUCKETS, CitationSource
from provenance.citation.templating import render_component
from provenance.config import settings
from provenance.types import ReferenceGroupRecord

logger = logging.getLogger(__name__)


@dataclass
class ReferenceGroup:
    """One display bucket and the citations that fall into it."""
    key: str
    title: str
    icon: str
    items: List[CitationSource] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.items)

    def to_record(self) -> ReferenceGroupRecord:
        return {
            'key': self.key,
            'title': self.title,
            'icon': self.icon,
            'count': self.count,
            'items': [item.to_record() for item in self.items],
        }


def group_references(citations: Iterable[CitationSource]) -> List[ReferenceGroup]:
    """
    Group citations into display buckets.

    Args:
        citations: Ordered citations (may contain duplicates)

    Returns:
        Non-empty groups in bucket priority order. Inside the merged
        "Documents" bucket, blueprints list before PDFs; otherwise input
        order is preserved.
    """
    groups = {bucket.key: ReferenceGroup(bucket.key, bucket.title, bucket.icon) for bucket in BUCKETS}

    for citation in citations:
        groups[citation.kind.bucket].items.append(citation)

    for group in groups.values():
        # sort() is stable, so equal ranks keep input order
        group.items.sort(key=lambda c: c.kind.bucket_rank)

    return [groups[bucket.key] for bucket in BUCKETS if groups[bucket.key].items]


class ReferencesSection:
    """Collapsible list of all evidence behind one piece of generated content."""

    def __init__(
        self,
        references: Iterable[CitationSource],
        on_open_proof: Optional[OpenProofCallback] = None,
        default_expanded: bool = True,
        snippet_chars: Optional[int] = None,
    ):
        self.references: List[CitationSource] = list(references)
        self.on_open_proof = on_open_proof
        self.is_expanded = default_expanded
        self.snippet_chars = snippet_chars if snippet_chars is not None else settings.preview_max_chars
        self._rows = [citation for group in self.groups for citation in group.items]

    @property
    def groups(self) -> List[ReferenceGroup]:
        return group_references(self.references)

    @property
    def total(self) -> int:
        return len(self.references)

    @property
    def rows(self) -> List[CitationSource]:
        """Rows in display order (the order ``activate`` indexes into)."""
        return list(self._rows)

    def toggle(self) -> bool:
        self.is_expanded = not self.is_expanded
        return self.is_expanded

    def activate(self, index: int) -> bool:
        """Open the proof for the row at ``index``; out-of-range rows are ignored."""
        if self.on_open_proof is None or not 0 <= index < len(self._rows):
            return False
        self.on_open_proof(self._rows[index])
        return True

    def render(self) -> Markup:
        if not self.references:
            return Markup('')

        index = 0
        groups = []
        for group in self.groups:
            rows = []
            for citation in group.items:
                rows.append({
                    'index': index,
                    'source': citation,
                    'snippet': truncate_snippet(citation.context_snippet, self.snippet_chars),
                })
                index += 1
            groups.append({'key': group.key, 'title': group.title, 'icon': group.icon,
                           'count': group.count, 'rows': rows})

        return render_component(
            'references_section.html',
            groups=groups,
            total=self.total,
            expanded=self.is_expanded,
        )
