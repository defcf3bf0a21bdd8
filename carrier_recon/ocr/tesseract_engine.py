"""Tesseract OCR wrapper producing the local text layer of a page."""

from dataclasses import dataclass

import numpy as np
import pytesseract
from PIL import Image

from carrier_recon.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class PageText:
    """OCR text of one page with the mean word confidence."""

    page_number: int
    text: str
    confidence: float


class TesseractEngine:
    """Thin wrapper around pytesseract.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        default_lang: OCR language code.
        psm: Tesseract page segmentation mode.
    """

    def __init__(
        self,
        tesseract_cmd: str | None = None,
        default_lang: str = "eng",
        psm: int = 3,
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.default_lang = default_lang
        self.psm = psm

    def read_page(self, image: np.ndarray, page_number: int = 1) -> PageText:
        """OCR a single page image.

        Args:
            image: Page image as a numpy array.
            page_number: 1-based page index, carried into the result.

        Returns:
            Page text and mean confidence in [0, 1].
        """
        config = f"--psm {self.psm}"
        pil_image = Image.fromarray(image)
        text = pytesseract.image_to_string(
            pil_image, lang=self.default_lang, config=config
        )
        data = pytesseract.image_to_data(
            pil_image,
            lang=self.default_lang,
            config=config,
            output_type=pytesseract.Output.DICT,
        )

        confidences = [
            float(conf)
            for conf, word in zip(data["conf"], data["text"])
            if float(conf) > 0 and str(word).strip()
        ]
        avg_conf = sum(confidences) / len(confidences) / 100.0 if confidences else 0.0

        logger.debug(
            "OCR page %d: %d words, confidence %.2f",
            page_number,
            len(confidences),
            avg_conf,
        )
        return PageText(page_number=page_number, text=text, confidence=avg_conf)
