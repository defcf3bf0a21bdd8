"""Tests for the Tesseract text layer."""

from unittest.mock import MagicMock, patch

import numpy as np

from carrier_recon.ocr.tesseract_engine import PageText, TesseractEngine


def _mock_tesseract_data() -> dict:
    """Create mock pytesseract output data."""
    return {
        "text": ["", "DHL", "Express", "", "Invoice", "  "],
        "conf": [-1, 95, 88, -1, "72", 60],
    }


class TestTesseractEngine:
    """Tests for the TesseractEngine class (mocked)."""

    @patch("carrier_recon.ocr.tesseract_engine.pytesseract")
    def test_read_page(self, mock_pytesseract: MagicMock) -> None:
        mock_pytesseract.image_to_string.return_value = "DHL Express\nInvoice"
        mock_pytesseract.image_to_data.return_value = _mock_tesseract_data()

        engine = TesseractEngine(default_lang="eng", psm=6)
        result = engine.read_page(np.zeros((100, 200), dtype=np.uint8), page_number=2)

        assert isinstance(result, PageText)
        assert result.page_number == 2
        assert result.text == "DHL Express\nInvoice"
        assert abs(result.confidence - 0.85) < 1e-9
        _, kwargs = mock_pytesseract.image_to_string.call_args
        assert kwargs["lang"] == "eng"
        assert kwargs["config"] == "--psm 6"

    @patch("carrier_recon.ocr.tesseract_engine.pytesseract")
    def test_read_empty_page(self, mock_pytesseract: MagicMock) -> None:
        mock_pytesseract.image_to_string.return_value = ""
        mock_pytesseract.image_to_data.return_value = {"text": [], "conf": []}

        result = TesseractEngine().read_page(np.zeros((100, 200, 3), dtype=np.uint8))

        assert result.text == ""
        assert result.confidence == 0.0
        assert result.page_number == 1

    @patch("carrier_recon.ocr.tesseract_engine.pytesseract")
    def test_custom_lang(self, mock_pytesseract: MagicMock) -> None:
        mock_pytesseract.image_to_string.return_value = "Facture"
        mock_pytesseract.image_to_data.return_value = {"text": ["Facture"], "conf": [90]}

        result = TesseractEngine(default_lang="fra").read_page(
            np.zeros((50, 50), dtype=np.uint8)
        )

        assert result.confidence == 0.9
        _, kwargs = mock_pytesseract.image_to_data.call_args
        assert kwargs["lang"] == "fra"

    @patch("carrier_recon.ocr.tesseract_engine.pytesseract")
    def test_custom_tesseract_cmd(self, mock_pytesseract: MagicMock) -> None:
        TesseractEngine(tesseract_cmd="/opt/tesseract/bin/tesseract")
        assert mock_pytesseract.pytesseract.tesseract_cmd == "/opt/tesseract/bin/tesseract"
