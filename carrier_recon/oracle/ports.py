"""Port interface for the document-understanding oracle."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from carrier_recon.ocr.document_loader import Document


class OracleTask(str, Enum):
    """Closed set of questions the engine asks the oracle."""

    SURVEY = "survey"
    IDENTIFY_CARRIER = "identify_carrier"
    DETECT_LOGO = "detect_logo"
    CLASSIFY_FORMAT = "classify_format"
    EXTRACT_FULL = "extract_full"
    EXTRACT_HEADER = "extract_header"
    EXTRACT_BULK = "extract_bulk"
    LEARN_PATTERNS = "learn_patterns"
    EXTRACT_BATCH = "extract_batch"
    EXTRACT_CHUNK = "extract_chunk"


@dataclass
class OracleRequest:
    """A single oracle call.

    Attributes:
        task: What is being asked.
        prompt: Instruction text for the oracle.
        pages: 1-based pages to consider; ``None`` means the whole document.
        context: Extra hints (carrier, learned layout, ...).
    """

    task: OracleTask
    prompt: str
    pages: list[int] | None = None
    context: dict[str, Any] = field(default_factory=dict)


class DocumentOracle(ABC):
    """Port for the document-understanding service.

    Implementations must raise:
    - ``OracleTimeout`` when the call does not complete in time
    - ``OracleMalformedResponse`` for empty, truncated or non-JSON output
    """

    @abstractmethod
    async def analyze(self, document: Document, request: OracleRequest) -> dict[str, Any]:
        """Answer ``request`` about ``document``.

        Returns:
            Parsed JSON object produced by the oracle.
        """
