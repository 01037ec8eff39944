"""
Document loading for the proof viewer.

Decodes resolved evidence bytes into something the viewer can page through
and rasterize: PDFs through PyMuPDF, images through Pillow.
"""

import io
import logging
from typing import Tuple, Union

import fitz  # PyMuPDF
from PIL import Image, UnidentifiedImageError

from provenance.citation.errors import EvidenceLoadError
from provenance.services.file_resolver import ResolvedFile

logger = logging.getLogger(__name__)


class PagedDocument:
    """A PDF opened with PyMuPDF."""

    kind = 'paged'

    def __init__(self, pdf_document: "fitz.Document", name: str):
        self._pdf = pdf_document
        self.name = name

    @classmethod
    def from_bytes(cls, content: bytes, name: str = 'document.pdf') -> "PagedDocument":
        try:
            pdf_document = fitz.open(stream=content, filetype="pdf")
        except (RuntimeError, ValueError) as e:
            raise EvidenceLoadError(f"Could not open PDF {name}: {e}") from e

        if len(pdf_document) == 0:
            pdf_document.close()
            raise EvidenceLoadError(f"PDF {name} has no pages")
        return cls(pdf_document, name)

    @property
    def page_count(self) -> int:
        return len(self._pdf)

    def page_size(self, page_number: int) -> Tuple[float, float]:
        """(width, height) of a 1-based page in PDF points."""
        rect = self._pdf[self._index(page_number)].rect
        return rect.width, rect.height

    def render_png(self, page_number: int, target_width: float) -> bytes:
        page = self._pdf[self._index(page_number)]
        scale = target_width / page.rect.width
        pixmap = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
        return pixmap.tobytes("png")

    def _index(self, page_number: int) -> int:
        return min(max(page_number, 1), self.page_count) - 1

    def close(self) -> None:
        self._pdf.close()


class ImageDocument:
    """A single-page image opened with Pillow."""

    kind = 'image'
    page_count = 1

    def __init__(self, image: Image.Image, name: str):
        self._image = image
        self.name = name

    @classmethod
    def from_bytes(cls, content: bytes, name: str = 'image') -> "ImageDocument":
        try:
            image = Image.open(io.BytesIO(content))
            image.load()
        except Image.DecompressionBombError as e:
            raise EvidenceLoadError(f"Image {name} is too large to preview: {e}") from e
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise EvidenceLoadError(f"Could not decode image {name}: {e}") from e
        return cls(image, name)

    def page_size(self, page_number: int = 1) -> Tuple[float, float]:
        width, height = self._image.size
        return float(width), float(height)

    def render_png(self, page_number: int, target_width: float) -> bytes:
        width, height = self._image.size
        target_height = max(1, round(height * target_width / width))
        image = self._image
        if image.mode not in ('RGB', 'RGBA', 'L'):
            image = image.convert('RGBA')
        resized = image.resize((max(1, round(target_width)), target_height))

        buffer = io.BytesIO()
        resized.save(buffer, format='PNG')
        return buffer.getvalue()

    def close(self) -> None:
        self._image.close()


LoadedDocument = Union[PagedDocument, ImageDocument]


def load_document(resolved: ResolvedFile, strategy: str) -> LoadedDocument:
    """
    Decode evidence bytes for a viewer strategy.

    Args:
        resolved: Bytes and metadata from the file resolver
        strategy: 'paged', 'image' or 'auto' (PDF bytes page, anything else is an image)

    Raises:
        EvidenceLoadError: If the bytes cannot be decoded
    """
    if strategy == 'auto':
        strategy = 'paged' if resolved.is_pdf else 'image'

    if strategy == 'paged':
        if not resolved.is_pdf:
            raise EvidenceLoadError(f"{resolved.name} is not a PDF ({resolved.content_type})")
        document = PagedDocument.from_bytes(resolved.content, resolved.name)
    elif strategy == 'image':
        document = ImageDocument.from_bytes(resolved.content, resolved.name)
    else:
        raise EvidenceLoadError(f"No document loader for strategy '{strategy}'")

    logger.info(f"[DOCUMENT_LOADER] Loaded {resolved.name} as {document.kind} ({document.page_count} page(s))")
    return document
