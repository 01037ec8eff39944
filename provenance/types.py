"""
Shared TypedDict definitions for plain citation records exchanged with collaborators.
"""

from typing import TypedDict, Optional


class CoordinatesRecord(TypedDict):
    """Highlight rectangle in percentage units (0-100) of the page/image"""
    x: float
    y: float
    width: float
    height: float


class CitationRecord(TypedDict, total=False):
    """Plain record form of a CitationSource (camelCase keys, as produced by claim generation)"""
    id: str
    sourceId: str
    documentName: str
    documentType: str
    pageNumber: Optional[int]
    contextSnippet: str
    coordinates: Optional[CoordinatesRecord]
    filePath: Optional[str]
    timestamp: str
    linkedPillar: Optional[str]


class ReferenceGroupRecord(TypedDict):
    """One display bucket of grouped citations"""
    key: str
    title: str
    icon: str
    count: int
    items: list[CitationRecord]


class GroupedCitationsRecord(TypedDict, total=False):
    """Registry grouping payload"""
    groups: list[ReferenceGroupRecord]
    total: int
    linkedCount: int
    unlinkedCount: int
    isEmpty: bool
    state: str
    byType: dict[str, int]
    pillarSummary: dict[str, list[str]]


class OverlayRecord(TypedDict):
    """Highlight rectangle in pixels relative to the rendered page"""
    left: float
    top: float
    width: float
    height: float


class ScrollTargetRecord(TypedDict):
    """Auto-scroll request for the host: page anchor and highlight centre (percent)"""
    page: int
    anchor: str
    centerY: Optional[float]
    delay: float


class ProofStateRecord(TypedDict):
    """Proof viewer state for one content view"""
    state: str
    strategy: Optional[str]
    source: Optional[CitationRecord]
    error: Optional[str]
    page: int
    pageCount: int
    zoom: int
    canZoomIn: bool
    canZoomOut: bool
    renderedWidth: float
    overlay: Optional[OverlayRecord]
    scrollPending: bool
    scrollTarget: Optional[ScrollTargetRecord]
