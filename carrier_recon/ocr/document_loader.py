"""Loads incoming documents and builds their local text layer.

The text layer is best effort: when OCR is disabled or fails, the document is
still returned with ``text=None`` so carrier identification can fall back to
the oracle and filename heuristics.
"""

import asyncio
import hashlib
import io
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
import pytesseract
from PIL import Image

from carrier_recon.utils.config import OCRConfig
from carrier_recon.utils.logger import get_logger

from .pdf_handler import PDFHandler
from .tesseract_engine import PageText, TesseractEngine

logger = get_logger(__name__)

PAGE_SEPARATOR = "\n\n--- Page Break ---\n\n"
IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp"}


@dataclass
class Document:
    """A document ready for reconciliation."""

    document_id: str
    filename: str
    payload: bytes
    content_type: str
    text: str | None = None
    page_count: int | None = None
    pages: list[PageText] = field(default_factory=list)

    @property
    def has_text(self) -> bool:
        return bool(self.text and self.text.strip())


def document_id_for(payload: bytes) -> str:
    """Stable id derived from the document bytes."""
    return hashlib.sha256(payload).hexdigest()[:16]


def detect_content_type(payload: bytes, filename: str) -> str:
    if payload[:4] == b"%PDF":
        return "pdf"
    suffix = Path(filename).suffix.lower()
    if suffix == ".pdf":
        return "pdf"
    if suffix in IMAGE_SUFFIXES:
        return "image"
    if suffix in {".txt", ".text"}:
        return "text"
    return "image"


class DocumentLoader:
    """Reads documents from disk or bytes and OCRs their leading pages.

    Args:
        config: OCR configuration.
    """

    def __init__(self, config: OCRConfig | None = None) -> None:
        self.config = config or OCRConfig()
        self.pdf_handler = PDFHandler(dpi=self.config.pdf_dpi)
        self.ocr_engine = TesseractEngine(
            tesseract_cmd=self.config.tesseract_cmd,
            default_lang=self.config.default_lang,
            psm=self.config.psm,
        )

    async def load(self, source: Path | bytes, filename: str | None = None) -> Document:
        """Load a document without blocking the event loop."""
        return await asyncio.to_thread(self.load_sync, source, filename)

    def load_sync(self, source: Path | bytes, filename: str | None = None) -> Document:
        """Load a document and build its text layer.

        Args:
            source: Path to the document, or its raw bytes.
            filename: Display name; defaults to the path's name.

        Returns:
            The loaded document.

        Raises:
            FileNotFoundError: If a path is given and the file does not exist.
        """
        if isinstance(source, bytes):
            payload = source
            filename = filename or "document"
        else:
            path = Path(source)
            if not path.exists():
                raise FileNotFoundError(f"Document not found: {path}")
            payload = path.read_bytes()
            filename = filename or path.name

        content_type = detect_content_type(payload, filename)
        document = Document(
            document_id=document_id_for(payload),
            filename=filename,
            payload=payload,
            content_type=content_type,
        )

        if content_type == "text":
            document.text = payload.decode("utf-8", errors="replace")
            document.page_count = max(document.text.count("\f") + 1, 1)
            return document

        if content_type == "pdf":
            try:
                document.page_count = self.pdf_handler.get_page_count(payload)
            except RuntimeError as exc:
                logger.warning("Could not read page count of %s: %s", filename, exc)
        else:
            document.page_count = 1

        if self.config.enabled:
            self._attach_text(document)

        logger.info(
            "Loaded %s (%s, pages=%s, text=%s)",
            filename,
            content_type,
            document.page_count,
            "yes" if document.has_text else "no",
        )
        return document

    def _attach_text(self, document: Document) -> None:
        try:
            images = self._leading_images(document)
            document.pages = [
                self.ocr_engine.read_page(image, page_number=i + 1)
                for i, image in enumerate(images)
            ]
        except (RuntimeError, OSError, pytesseract.TesseractError) as exc:
            logger.warning("OCR failed for %s: %s", document.filename, exc)
            document.pages = []
            return
        text = PAGE_SEPARATOR.join(p.text for p in document.pages)
        document.text = text if text.strip() else None

    def _leading_images(self, document: Document) -> list[np.ndarray]:
        if document.content_type == "pdf":
            return self.pdf_handler.pdf_to_images(
                document.payload, max_pages=self.config.text_pages
            )
        img = Image.open(io.BytesIO(document.payload))
        return [np.array(img.convert("RGB"))]
