"""Rule-based fallback extraction from the local text layer.

Used when the oracle's extraction output is unusable. Records built here are
flagged ``fallback=True`` and always routed to manual review downstream.
"""

import re
from dataclasses import dataclass
from datetime import date

from carrier_recon.carriers.profiles import CarrierProfile
from carrier_recon.identifiers.resolver import (
    DEFAULT_STRUCTURED_PATTERN,
    StructuredIdPattern,
    find_structured_ids,
)
from carrier_recon.utils.logger import get_logger

from .models import ExtractedShipmentRecord, parse_amount, parse_date

logger = get_logger(__name__)


@dataclass
class ExtractedField:
    """A field value extracted by a regex rule."""

    field_name: str
    value: str
    start_pos: int


_DATE_PATTERNS: list[tuple[str, int]] = [
    (r"\b(\d{4}[/\-]\d{1,2}[/\-]\d{1,2})\b", 0),
    (r"\b(\d{1,2}[/\-]\d{1,2}[/\-]\d{4})\b", 0),
    (
        r"\b((?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)"
        r"[a-z]*\s+\d{1,2},?\s+\d{4})\b",
        re.IGNORECASE,
    ),
]

_TOTAL_PATTERNS: list[str] = [
    r"(?:Grand\s*Total|Total\s*Due|Amount\s*Due|Total\s*Amount)[^\d\n]{0,12}([\d,]+\.\d{2})",
    r"(?:Total)[:\s]*\$?\s*([\d,]+\.\d{2})",
]

_INVOICE_PATTERN = r"(?:Invoice|Inv)\s*(?:No\.?|Number|#)?[\s#:]*([A-Z]*\d[A-Z0-9\-]{2,})"


class RuleExtractor:
    """Synthesizes shipment records from document text with regexes.

    Args:
        structured_pattern: Structured shipment id format scanned for in the
            text.
    """

    def __init__(
        self, structured_pattern: StructuredIdPattern = DEFAULT_STRUCTURED_PATTERN
    ) -> None:
        self.structured_pattern = structured_pattern

    def find(
        self,
        pattern: str | re.Pattern[str],
        text: str,
        field_name: str,
        flags: int = 0,
    ) -> list[ExtractedField]:
        regex = pattern if isinstance(pattern, re.Pattern) else re.compile(pattern, flags)
        results = []
        for match in regex.finditer(text):
            value = match.group(1) if match.groups() else match.group(0)
            results.append(ExtractedField(field_name, value.strip(), match.start()))
        return results

    def extract_total_amount(self, text: str) -> float | None:
        for pattern in _TOTAL_PATTERNS:
            match = re.search(pattern, text, re.IGNORECASE)
            if match:
                return parse_amount(match.group(1))
        return None

    def extract_date(self, text: str) -> date | None:
        for pattern, flags in _DATE_PATTERNS:
            for extracted in self.find(pattern, text, "date", flags):
                parsed = parse_date(extracted.value)
                if parsed is not None:
                    return parsed
        return None

    def extract_records(
        self, text: str, profile: CarrierProfile | None = None
    ) -> list[ExtractedShipmentRecord]:
        """Build fallback records from document text.

        One record is produced per distinct tracking number found with the
        carrier's ``tracking_number`` pattern; when none is found, a single
        record carries whatever document-level fields could be read.

        Args:
            text: Local text layer.
            profile: Identified carrier, if known.

        Returns:
            Records flagged as fallback; empty if the text is blank.
        """
        if not text or not text.strip():
            return []

        tracking: list[str] = []
        if profile is not None and profile.pattern("tracking_number") is not None:
            seen: dict[str, None] = {}
            tracking_pattern = profile.pattern("tracking_number")
            for extracted in self.find(tracking_pattern, text, "tracking_number"):
                seen.setdefault(extracted.value, None)
            tracking = list(seen)

        structured = find_structured_ids([text], self.structured_pattern)
        invoice = self.find(_INVOICE_PATTERN, text, "invoice_number", re.IGNORECASE)
        if profile is not None and profile.pattern("invoice_number") is not None:
            carrier_invoice = self.find(
                profile.pattern("invoice_number"), text, "invoice_number"
            )
            invoice = carrier_invoice or invoice

        service = None
        if profile is not None and profile.pattern("service_type") is not None:
            found = self.find(profile.pattern("service_type"), text, "service_type")
            service = found[0].value if found else None

        shared = {
            "references": {
                "invoice_ref": invoice[0].value if invoice else None,
                "other": structured,
            },
            "shipment_date": self.extract_date(text),
            "service_type": service,
            "carrier": profile.name if profile else None,
            "fallback": True,
        }
        total = self.extract_total_amount(text)

        if tracking:
            records = [
                ExtractedShipmentRecord(
                    tracking_number=number,
                    total_amount=total if len(tracking) == 1 else None,
                    **shared,
                )
                for number in tracking
            ]
        else:
            records = [
                ExtractedShipmentRecord(
                    shipment_id=structured[0] if structured else None,
                    total_amount=total,
                    **shared,
                )
            ]

        logger.info("Rule extraction synthesized %d fallback record(s)", len(records))
        return records
