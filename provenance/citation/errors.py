"""
Exceptions raised by the citation layer.

Only evidence loading and view lookup can fail; everything else degrades
(unknown types, collisions) or is a silent no-op (stale ids).
"""

from typing import Optional


class ProvenanceError(Exception):
    """Base class for citation registry errors."""


class EvidenceLoadError(ProvenanceError):
    """The evidence behind a citation could not be fetched or decoded."""

    def __init__(self, message: str, file_path: Optional[str] = None):
        super().__init__(message)
        self.file_path = file_path


class UnknownViewError(ProvenanceError, KeyError):
    """No content view is registered under the given key."""

    def __init__(self, view_id: str):
        super().__init__(view_id)
        self.view_id = view_id

    def __str__(self) -> str:
        return f"Unknown content view: {self.view_id}"
