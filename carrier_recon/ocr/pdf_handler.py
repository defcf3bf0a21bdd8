"""PDF rasterization and page counting via poppler (pdf2image)."""

from pathlib import Path

import numpy as np
from pdf2image import convert_from_bytes, convert_from_path
from pdf2image.pdf2image import pdfinfo_from_bytes, pdfinfo_from_path

from carrier_recon.utils.logger import get_logger

logger = get_logger(__name__)


class PDFHandler:
    """Renders leading PDF pages to images and reads page counts.

    Args:
        dpi: Resolution for PDF rendering.
    """

    def __init__(self, dpi: int = 200) -> None:
        self.dpi = dpi

    def pdf_to_images(
        self, pdf_source: Path | bytes, max_pages: int | None = None
    ) -> list[np.ndarray]:
        """Convert the first ``max_pages`` pages of a PDF to images.

        Args:
            pdf_source: Path to a PDF file or raw PDF bytes.
            max_pages: Last page to render; ``None`` renders every page.

        Returns:
            List of RGB images as numpy arrays.

        Raises:
            FileNotFoundError: If a path is given and the file does not exist.
            RuntimeError: If PDF conversion fails.
        """
        kwargs = {"dpi": self.dpi}
        if max_pages is not None:
            kwargs.update(first_page=1, last_page=max_pages)

        try:
            if isinstance(pdf_source, str | Path):
                path = Path(pdf_source)
                if not path.exists():
                    raise FileNotFoundError(f"PDF file not found: {path}")
                pil_images = convert_from_path(str(path), **kwargs)
            else:
                pil_images = convert_from_bytes(pdf_source, **kwargs)
        except FileNotFoundError:
            raise
        except Exception as exc:
            raise RuntimeError(f"PDF conversion failed: {exc}") from exc

        images = [np.array(img) for img in pil_images]
        logger.info("Rendered %d PDF pages at %d DPI", len(images), self.dpi)
        return images

    def get_page_count(self, pdf_source: Path | bytes) -> int:
        """Number of pages in a PDF, read without rendering.

        Raises:
            RuntimeError: If poppler cannot read the document.
        """
        try:
            if isinstance(pdf_source, str | Path):
                info = pdfinfo_from_path(str(pdf_source))
            else:
                info = pdfinfo_from_bytes(pdf_source)
        except Exception as exc:
            raise RuntimeError(f"PDF info failed: {exc}") from exc
        count = int(info["Pages"])
        logger.debug("PDF has %d pages", count)
        return count
