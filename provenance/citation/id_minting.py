"""
ID Minting - Layer 1: Human-legible source identifiers.

Mints the short labels shown inline in generated prose ("D-102", "OBC 3.4",
"LOG-045", "IMG-023").
Responsibilities:
- Map document kinds to their prefix (via the kind table)
- Prefer the document's own numbering (seed hint) when it is free
- Fall back to a per-prefix counter, zero-padded to three digits
- Disambiguate collisions with a numeric suffix ("OBC 3.4-2")

Rules:
- ✅ Deterministic (same call sequence → same IDs)
- ✅ Never raises for unknown types (generic "DOC" prefix)
- ❌ No registry state beyond the set of minted IDs
"""

import logging
from typing import Dict, Iterable, Optional, Set

from provenance.citation.source_model import DOCUMENT_KINDS, get_document_kind

logger = logging.getLogger(__name__)

COUNTER_WIDTH = 3


class SourceIdMinter:
    """Collision-free source ID generator scoped to one registry."""

    def __init__(self, taken: Optional[Iterable[str]] = None):
        self._taken: Set[str] = set(taken or ())
        self._counters: Dict[str, int] = {}

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._taken

    def is_taken(self, source_id: str) -> bool:
        return source_id in self._taken

    def reserve(self, source_id: str) -> bool:
        """Record an externally supplied ID. Returns False if it was already taken."""
        if source_id in self._taken:
            return False
        self._taken.add(source_id)
        return True

    def mint(self, document_type: Optional[str], seed_hint: Optional[str] = None) -> str:
        """
        Mint a new source ID for ``document_type``.

        Args:
            document_type: Document kind ("pdf", "regulation", ...); unknown kinds mint under "DOC"
            seed_hint: The document's own numbering (e.g. a regulation section "3.4").
                Used verbatim when free, otherwise suffixed "-2", "-3", ...

        Returns:
            The minted source ID (already reserved)
        """
        normalized_type = (document_type or '').strip().lower()
        if normalized_type not in DOCUMENT_KINDS:
            logger.warning(f"[ID_MINTER] Unknown document type {document_type!r}, minting generic DOC id")

        kind = get_document_kind(normalized_type)
        prefix = f"{kind.id_prefix}{kind.id_separator}"

        seed = str(seed_hint).strip() if seed_hint is not None else ''
        if seed:
            # "OBC 3.4" as seed for a regulation means "3.4"
            if seed.startswith(prefix):
                seed = seed[len(prefix):].strip()
            if seed:
                return self.disambiguate(f"{prefix}{seed}")

        counter = self._counters.get(prefix, 0)
        while True:
            counter += 1
            candidate = f"{prefix}{counter:0{COUNTER_WIDTH}d}"
            if candidate not in self._taken:
                break
        self._counters[prefix] = counter
        self._taken.add(candidate)
        return candidate

    def disambiguate(self, source_id: str) -> str:
        """Reserve ``source_id`` or the first free ``source_id-N`` (N >= 2)."""
        if self.reserve(source_id):
            return source_id

        suffix = 2
        while not self.reserve(f"{source_id}-{suffix}"):
            suffix += 1
        minted = f"{source_id}-{suffix}"
        logger.info(f"[ID_MINTER] {source_id} already taken, minted {minted}")
        return minted
