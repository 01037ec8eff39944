"""
Citation Registry - Layer 3: Aggregate view over one content unit's citations.

Owns the citations collected for one AI analysis run.
Responsibilities:
- Add citations (minting source IDs that are missing or colliding)
- Register project uploads as citations with an auto-linked pillar
- Group citations and partition linked vs unlinked
- Link citations to audited pillars
- Format references for the clipboard / export
- Detect citations that point at the same evidence
- Expose an explicit empty state, distinct from "still extracting"

Rules:
- ✅ sourceId unique within the registry at all times
- ✅ Stale ids are silent no-ops, never exceptions
- ✅ Records are replaced, never mutated (pillar link is the only change)
- ❌ No persistence (accepts and emits plain records)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from markupsafe import Markup

from provenance.citation.auto_link import is_likely_blueprint, suggest_pillar
from provenance.citation.id_minting import COUNTER_WIDTH, SourceIdMinter
from provenance.citation.reference_list import ReferenceGroup, group_references
from provenance.citation.reference_renderer import OpenProofCallback
from provenance.citation.source_model import PILLAR_LABELS, CitationSource, get_document_kind
from provenance.citation.templating import render_component
from provenance.services.clipboard import ClipboardSink
from provenance.types import CitationRecord, GroupedCitationsRecord

logger = logging.getLogger(__name__)

RecordOrSource = Union[CitationSource, Dict[str, Any]]

STATE_LOADING = 'loading'
STATE_EMPTY = 'empty'
STATE_READY = 'ready'


def _upload_source_id(document_type: str, index: int) -> str:
    kind = get_document_kind(document_type)
    return f"{kind.id_prefix}{kind.id_separator}{index + 1:0{COUNTER_WIDTH}d}"


def format_reference(source_id: str) -> str:
    return f"[{source_id}]"


@dataclass
class RegistryGrouping:
    """Grouped view of the registry plus linkage totals."""
    groups: List[ReferenceGroup] = field(default_factory=list)
    # Per document type, before display buckets merge blueprints and PDFs
    by_type: Dict[str, List[CitationSource]] = field(default_factory=dict)
    total: int = 0
    linked_count: int = 0
    unlinked_count: int = 0

    def to_record(self) -> GroupedCitationsRecord:
        return {
            'groups': [group.to_record() for group in self.groups],
            'byType': {document_type: len(items) for document_type, items in self.by_type.items()},
            'total': self.total,
            'linkedCount': self.linked_count,
            'unlinkedCount': self.unlinked_count,
        }


class CitationRegistry:
    """Ordered, duplicate-safe collection of CitationSource records."""

    def __init__(
        self,
        citations: Optional[Iterable[RecordOrSource]] = None,
        clipboard: Optional[ClipboardSink] = None,
        minter: Optional[SourceIdMinter] = None,
    ):
        self.clipboard = clipboard
        self.minter = minter or SourceIdMinter()
        self._citations: List[CitationSource] = []
        self._positions: Dict[str, int] = {}
        self._extracting = False

        for citation in citations or ():
            self.add(citation)

    # ------------------------------------------------------------------
    # Collection access
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._citations)

    def __iter__(self) -> Iterator[CitationSource]:
        return iter(list(self._citations))

    @property
    def citations(self) -> Tuple[CitationSource, ...]:
        return tuple(self._citations)

    def get(self, citation_id: str) -> Optional[CitationSource]:
        position = self._positions.get(citation_id)
        return self._citations[position] if position is not None else None

    def get_by_source_id(self, source_id: str) -> Optional[CitationSource]:
        for citation in self._citations:
            if citation.source_id == source_id:
                return citation
        return None

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add(self, source: RecordOrSource, seed_hint: Optional[str] = None) -> CitationSource:
        """
        Register a citation.

        Args:
            source: CitationSource or plain record from the claim-generation step
            seed_hint: The document's own numbering, used when minting a missing sourceId

        Returns:
            The stored citation (with its final sourceId)

        Raises:
            pydantic.ValidationError: If a plain record is malformed
        """
        citation = CitationSource.from_record(source)

        existing = self.get(citation.id)
        if existing is not None:
            logger.debug(f"[CITATION_REGISTRY] Citation {citation.id} already registered as {existing.source_id}")
            return existing

        if citation.source_id:
            source_id = self.minter.disambiguate(citation.source_id)
        else:
            source_id = self.minter.mint(citation.document_type, seed_hint)

        if source_id != citation.source_id:
            citation = citation.with_source_id(source_id)

        self._positions[citation.id] = len(self._citations)
        self._citations.append(citation)
        logger.info(
            f"[CITATION_REGISTRY] Registered [{citation.source_id}] "
            f"({citation.document_type}) {citation.document_name}"
        )
        return citation

    def add_many(self, records: Iterable[RecordOrSource]) -> List[CitationSource]:
        """
        Bulk-register citations, skipping records whose supplied sourceId is
        already registered (re-uploads of the same evidence).
        """
        added = []
        skipped = 0
        for record in records:
            citation = CitationSource.from_record(record)
            if citation.source_id and self.get_by_source_id(citation.source_id) is not None:
                skipped += 1
                continue
            added.append(self.add(citation))

        if skipped:
            logger.info(f"[CITATION_REGISTRY] Skipped {skipped} already-registered citation(s)")
        return added

    def register_uploads(
        self,
        site_images: Optional[Iterable[str]] = None,
        documents: Optional[Iterable[Dict[str, Any]]] = None,
    ) -> List[CitationSource]:
        """
        Register project uploads as citations with an auto-linked pillar.

        Site photos become ``P-NNN``; documents become ``B-NNN`` when the name
        looks like a blueprint and ``D-NNN`` otherwise, numbered by upload
        position. Re-registering the same uploads adds nothing.

        Args:
            site_images: Storage paths of site photos
            documents: Upload records with ``file_name``, ``file_path`` and
                optionally ``id`` and ``uploaded_at``
        """
        records: List[Dict[str, Any]] = []

        for index, path in enumerate(site_images or ()):
            file_name = path.rsplit('/', 1)[-1] or f"Site Photo {index + 1}"
            records.append({
                'sourceId': _upload_source_id('site_photo', index),
                'documentName': f"Site Photo {index + 1}",
                'documentType': 'site_photo',
                'contextSnippet': 'Site photo uploaded during project creation',
                'filePath': path,
                'linkedPillar': suggest_pillar(file_name, 'site_photo'),
            })

        for index, document in enumerate(documents or ()):
            file_name = document.get('file_name') or ''
            if is_likely_blueprint(file_name):
                document_type = 'blueprint'
            elif file_name.lower().endswith('.pdf'):
                document_type = 'pdf'
            else:
                document_type = 'image'

            record = {
                'sourceId': _upload_source_id('blueprint' if document_type == 'blueprint' else 'pdf', index),
                'documentName': file_name,
                'documentType': document_type,
                'contextSnippet': f"Uploaded document: {file_name}",
                'filePath': document.get('file_path'),
                'linkedPillar': suggest_pillar(file_name, document_type),
            }
            if document.get('id'):
                record['id'] = str(document['id'])
            if document.get('uploaded_at'):
                record['timestamp'] = document['uploaded_at']
            records.append(record)

        added = self.add_many(records)
        logger.info(f"[CITATION_REGISTRY] Registered {len(added)} upload(s) as citations")
        return added

    # ------------------------------------------------------------------
    # Extraction state
    # ------------------------------------------------------------------

    def begin_extraction(self) -> None:
        self._extracting = True

    def finish_extraction(self) -> None:
        self._extracting = False

    @property
    def is_extracting(self) -> bool:
        return self._extracting

    @property
    def is_empty(self) -> bool:
        return not self._citations

    @property
    def state(self) -> str:
        """'loading' while extraction runs with nothing yet, 'empty' for zero citations, else 'ready'."""
        if not self._citations:
            return STATE_LOADING if self._extracting else STATE_EMPTY
        return STATE_READY

    # ------------------------------------------------------------------
    # Grouping and pillars
    # ------------------------------------------------------------------

    @property
    def linked_count(self) -> int:
        return sum(1 for c in self._citations if c.linked_pillar is not None)

    @property
    def unlinked_count(self) -> int:
        return len(self._citations) - self.linked_count

    def grouped(self) -> RegistryGrouping:
        return RegistryGrouping(
            groups=group_references(self._citations),
            by_type=self._partition_by_type(),
            total=len(self._citations),
            linked_count=self.linked_count,
            unlinked_count=self.unlinked_count,
        )

    def _partition_by_type(self) -> Dict[str, List[CitationSource]]:
        partition: Dict[str, List[CitationSource]] = {}
        for citation in self._citations:
            partition.setdefault(citation.kind.document_type, []).append(citation)
        return partition

    def link_to_pillar(self, citation_id: str, pillar: Optional[str]) -> Optional[CitationSource]:
        """
        Link a citation to an audited pillar (``None`` clears the link).

        Re-linking to the same pillar is a no-op; a different pillar
        overwrites. Unknown citation ids leave the registry unchanged.

        Raises:
            ValueError: If ``pillar`` is not a known pillar
        """
        if pillar is not None and (not isinstance(pillar, str) or pillar not in PILLAR_LABELS):
            raise ValueError(f"Unknown pillar: {pillar!r}")

        position = self._positions.get(citation_id)
        if position is None:
            logger.debug(f"[CITATION_REGISTRY] link_to_pillar ignored, citation {citation_id} not found")
            return None

        citation = self._citations[position]
        if citation.linked_pillar == pillar:
            return citation

        linked = citation.with_pillar(pillar)
        self._citations[position] = linked
        logger.info(
            f"[CITATION_REGISTRY] [{linked.source_id}] pillar {citation.linked_pillar} → {pillar}"
        )
        return linked

    def unlink(self, citation_id: str) -> Optional[CitationSource]:
        return self.link_to_pillar(citation_id, None)

    def citations_for_pillar(self, pillar: str) -> List[CitationSource]:
        return [c for c in self._citations if c.linked_pillar == pillar]

    def pillar_summary(self) -> Dict[str, List[str]]:
        """Bracketed source IDs per linked pillar, in pillar order."""
        summary = {}
        for pillar in PILLAR_LABELS:
            linked = self.citations_for_pillar(pillar)
            if linked:
                summary[pillar] = [format_reference(c.source_id) for c in linked]
        return summary

    # ------------------------------------------------------------------
    # Copy / export
    # ------------------------------------------------------------------

    def copy_reference(self, source_id: str) -> Optional[str]:
        """Copy ``[sourceId]`` to the clipboard sink. Unknown ids are a no-op."""
        if self.get_by_source_id(source_id) is None:
            logger.debug(f"[CITATION_REGISTRY] copy_reference ignored, {source_id} not found")
            return None

        text = format_reference(source_id)
        self._write_clipboard(text)
        return text

    def copy_all(self) -> str:
        """Comma-joined bracketed source IDs in registration order."""
        text = ', '.join(format_reference(c.source_id) for c in self._citations)
        if text:
            self._write_clipboard(text)
        return text

    def _write_clipboard(self, text: str) -> None:
        if self.clipboard is not None:
            self.clipboard.write(text)

    def find_duplicates(self) -> List[List[CitationSource]]:
        """
        Citations that point at the same evidence: same document name, page
        and (whitespace/case-normalized) snippet.

        Returns:
            Groups of two or more citations, in order of first appearance
        """
        buckets: Dict[Tuple, List[CitationSource]] = {}
        for citation in self._citations:
            key = (
                citation.document_name.strip().lower(),
                citation.page_number,
                ' '.join(citation.context_snippet.lower().split()),
            )
            buckets.setdefault(key, []).append(citation)

        duplicates = [group for group in buckets.values() if len(group) > 1]
        if duplicates:
            logger.info(f"[CITATION_REGISTRY] Found {len(duplicates)} duplicate evidence group(s)")
        return duplicates

    # ------------------------------------------------------------------
    # Records and rendering
    # ------------------------------------------------------------------

    def to_records(self) -> List[CitationRecord]:
        return [citation.to_record() for citation in self._citations]

    @classmethod
    def from_records(
        cls,
        records: Iterable[RecordOrSource],
        clipboard: Optional[ClipboardSink] = None,
    ) -> "CitationRegistry":
        return cls(records, clipboard=clipboard)

    def to_payload(self) -> GroupedCitationsRecord:
        payload = self.grouped().to_record()
        payload['isEmpty'] = self.is_empty
        payload['state'] = self.state
        payload['pillarSummary'] = self.pillar_summary()
        return payload

    def render(self, on_open_proof: Optional[OpenProofCallback] = None) -> Markup:
        grouping = self.grouped()
        return render_component(
            'citation_registry.html',
            state=self.state,
            groups=grouping.groups,
            total=grouping.total,
            linked_count=grouping.linked_count,
            pillar_summary=[(PILLAR_LABELS[p], ids) for p, ids in self.pillar_summary().items()],
            copy_all=', '.join(format_reference(c.source_id) for c in self._citations),
            interactive=on_open_proof is not None,
        )
