"""
Source Record Model - Layer 1: Evidence value types.

Defines the CitationSource record every other layer consumes, plus the single
document-kind lookup table that drives icon, grouping bucket, viewer strategy
and ID prefix.
Responsibilities:
- Validate records handed over by the claim-generation step
- Enforce the coordinate bound (a highlight never overflows the page)
- Keep records immutable (pillar link/unlink produces a replacement copy)
- Map document kinds and pillars to their display metadata

Rules:
- ✅ Pure value types (no IO)
- ✅ Unknown document types degrade to the generic "document" kind
- ❌ No ID minting (that's id_minting's job)
- ❌ No grouping (that's reference_list's job)
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from provenance.types import CitationRecord
from provenance.utils.bbox import coordinates_within_page, ensure_coordinates_dict

logger = logging.getLogger(__name__)

ViewerStrategy = Literal["image", "paged", "text", "auto"]

DOCUMENT_TYPES = ('pdf', 'image', 'blueprint', 'regulation', 'log', 'site_photo')
GENERIC_DOCUMENT_TYPE = 'document'

Pillar = Literal['area', 'materials', 'blueprint', 'obc', 'conflict', 'mode', 'size', 'confidence']

# Ordered: pillar summaries list pillars in this order
PILLAR_LABELS: Dict[str, str] = {
    'area': 'Confirmed Area',
    'materials': 'Materials',
    'blueprint': 'Blueprint',
    'obc': 'OBC Compliance',
    'conflict': 'Conflict Check',
    'mode': 'Project Mode',
    'size': 'Project Size',
    'confidence': 'Confidence',
}
NOT_LINKED_LABEL = 'Not Linked'


@dataclass(frozen=True)
class ReferenceBucket:
    """Display bucket used by the reference list and the registry card."""
    key: str
    title: str
    icon: str


# Fixed priority order of display buckets
BUCKETS = (
    ReferenceBucket('site_photos', 'Site Photos', 'image'),
    ReferenceBucket('documents', 'Documents', 'file-text'),
    ReferenceBucket('images', 'Other Images', 'image'),
    ReferenceBucket('regulations', 'OBC References', 'shield'),
    ReferenceBucket('logs', 'Project Logs', 'book-open'),
    ReferenceBucket('other', 'Other', 'file'),
)
BUCKET_ORDER = tuple(bucket.key for bucket in BUCKETS)


@dataclass(frozen=True)
class DocumentKind:
    """Everything that depends on a document type, in one row."""
    document_type: str
    label: str
    icon: str
    bucket: str
    viewer_strategy: ViewerStrategy
    id_prefix: str
    id_separator: str = '-'
    # Order inside a merged bucket (blueprints list before PDFs)
    bucket_rank: int = 0


DOCUMENT_KINDS: Dict[str, DocumentKind] = {
    'site_photo': DocumentKind('site_photo', 'Site Photo', 'image', 'site_photos', 'image', 'P'),
    'blueprint': DocumentKind('blueprint', 'Blueprint', 'file-code', 'documents', 'auto', 'B', bucket_rank=0),
    'pdf': DocumentKind('pdf', 'PDF Document', 'file-text', 'documents', 'paged', 'D', bucket_rank=1),
    'image': DocumentKind('image', 'Image', 'image', 'images', 'image', 'IMG'),
    'regulation': DocumentKind('regulation', 'Regulation', 'scroll-text', 'regulations', 'paged', 'OBC', id_separator=' '),
    'log': DocumentKind('log', 'Project Log', 'book-open', 'logs', 'text', 'LOG'),
}
GENERIC_KIND = DocumentKind(GENERIC_DOCUMENT_TYPE, 'Document', 'file', 'other', 'text', 'DOC')


def get_document_kind(document_type: Optional[str]) -> DocumentKind:
    """Look up the kind row for a document type; unknown types get the generic row."""
    return DOCUMENT_KINDS.get((document_type or '').strip().lower(), GENERIC_KIND)


def get_pillar_label(pillar: Optional[str]) -> str:
    return PILLAR_LABELS.get(pillar or '', NOT_LINKED_LABEL)


class Coordinates(BaseModel):
    """Highlight rectangle in percentage units (0-100) of the page or image."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    width: float
    height: float

    @model_validator(mode="after")
    def _check_bounds(self) -> "Coordinates":
        if not coordinates_within_page(self.x, self.y, self.width, self.height):
            raise ValueError(
                f"coordinates overflow the page canvas: x={self.x}, y={self.y}, "
                f"width={self.width}, height={self.height}"
            )
        return self


class CitationSource(BaseModel):
    """
    One piece of evidence backing a generated claim.

    Field names are snake_case in Python; plain records use the camelCase keys
    the claim-generation step produces (``sourceId``, ``contextSnippet``...).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source_id: Optional[str] = Field(default=None, alias='sourceId')
    document_name: str = Field(alias='documentName')
    document_type: str = Field(alias='documentType')
    page_number: Optional[int] = Field(default=None, alias='pageNumber', ge=1)
    context_snippet: str = Field(alias='contextSnippet')
    coordinates: Optional[Coordinates] = None
    file_path: Optional[str] = Field(default=None, alias='filePath')
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    linked_pillar: Optional[Pillar] = Field(default=None, alias='linkedPillar')

    @field_validator('document_type', mode='before')
    @classmethod
    def _normalize_document_type(cls, value: Any) -> str:
        document_type = str(value or '').strip().lower()
        if document_type not in DOCUMENT_TYPES and document_type != GENERIC_DOCUMENT_TYPE:
            logger.warning(
                f"[SOURCE_MODEL] Unknown document type {value!r}, using generic '{GENERIC_DOCUMENT_TYPE}' kind"
            )
        return document_type or GENERIC_DOCUMENT_TYPE

    @field_validator('coordinates', mode='before')
    @classmethod
    def _normalize_coordinates(cls, value: Any) -> Any:
        if value is None or isinstance(value, Coordinates):
            return value
        normalized = ensure_coordinates_dict(value)
        # Keep unparseable payloads so validation reports them
        return normalized if normalized is not None else value

    @property
    def kind(self) -> DocumentKind:
        return get_document_kind(self.document_type)

    @property
    def has_positional_evidence(self) -> bool:
        return self.coordinates is not None

    @property
    def pillar_label(self) -> str:
        return get_pillar_label(self.linked_pillar)

    def with_source_id(self, source_id: str) -> "CitationSource":
        return self.model_copy(update={'source_id': source_id})

    def with_pillar(self, pillar: Optional[str]) -> "CitationSource":
        """Return a copy linked to ``pillar`` (``None`` clears the link)."""
        if pillar is not None and pillar not in PILLAR_LABELS:
            raise ValueError(f"Unknown pillar: {pillar!r}")
        return self.model_copy(update={'linked_pillar': pillar})

    @classmethod
    def from_record(cls, record: Union[Dict[str, Any], "CitationSource"]) -> "CitationSource":
        if isinstance(record, CitationSource):
            return record
        return cls.model_validate(record)

    def to_record(self) -> CitationRecord:
        return self.model_dump(by_alias=True, mode='json')
