"""Validation and enrichment of extracted shipment records.

Computes an aggregate confidence for a document's records by applying a
closed set of penalty rules, and attaches carrier context to the result.
Validation never fails a document: internal errors produce a degraded
report instead.
"""

from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from carrier_recon.carriers.consensus import CarrierConsensus
from carrier_recon.extraction.models import ExtractedShipmentRecord
from carrier_recon.utils.logger import get_logger

logger = get_logger(__name__)

CONFIDENCE_FLOOR = 0.1
DEGRADED_CONFIDENCE = 0.5
DEGRADED_ISSUE = "Validation process failed"


class RuleType(str, Enum):
    """Validation rules. ``NO_RECORDS`` applies per document, the rest per record."""

    NO_RECORDS = "no_records"
    MISSING_IDENTIFIER = "missing_identifier"
    INCOMPLETE_ADDRESS = "incomplete_address"
    NON_POSITIVE_TOTAL = "non_positive_total"


DEFAULT_PENALTIES: dict[RuleType, float] = {
    RuleType.NO_RECORDS: 0.3,
    RuleType.MISSING_IDENTIFIER: 0.1,
    RuleType.INCOMPLETE_ADDRESS: 0.1,
    RuleType.NON_POSITIVE_TOTAL: 0.1,
}

RECORD_RULES = (
    RuleType.MISSING_IDENTIFIER,
    RuleType.INCOMPLETE_ADDRESS,
    RuleType.NON_POSITIVE_TOTAL,
)


class ValidationFinding(BaseModel):
    """One rule violation."""

    rule: RuleType
    message: str
    penalty: float
    record_index: int | None = None


class ValidationReport(BaseModel):
    """Aggregate validation outcome for a document's records."""

    confidence: float
    issues: list[str] = Field(default_factory=list)
    findings: list[ValidationFinding] = Field(default_factory=list)
    enrichment: dict[str, Any] = Field(default_factory=dict)
    degraded: bool = False


class ShipmentValidator:
    """Applies penalty rules to extracted records.

    Args:
        rules_path: YAML file overriding rule penalties, e.g.
            ``penalties: {missing_identifier: 0.15}`` and ``floor: 0.1``.
    """

    def __init__(self, rules_path: Path = Path("configs/validation_rules.yaml")) -> None:
        self.penalties, self.floor = self._load_rules(rules_path)

    def _load_rules(self, path: Path) -> tuple[dict[RuleType, float], float]:
        penalties = dict(DEFAULT_PENALTIES)
        floor = CONFIDENCE_FLOOR
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}
            for name, value in (data.get("penalties") or {}).items():
                penalties[RuleType(name)] = float(value)
            floor = float(data.get("floor", floor))
            logger.info("Loaded validation rules from %s", path)
        else:
            logger.debug("Using default validation rules")
        return penalties, floor

    def validate(
        self,
        records: list[ExtractedShipmentRecord],
        carrier: CarrierConsensus | None = None,
    ) -> ValidationReport:
        """Score a document's records.

        Args:
            records: Extracted records.
            carrier: Carrier consensus attached as enrichment.

        Returns:
            The report; confidence 0.5 with a single failure issue if the
            rules themselves could not be evaluated.
        """
        try:
            return self._validate(records, carrier)
        except Exception:
            logger.exception("Validation failed, returning degraded report")
            return ValidationReport(
                confidence=DEGRADED_CONFIDENCE,
                issues=[DEGRADED_ISSUE],
                degraded=True,
            )

    def _validate(
        self,
        records: list[ExtractedShipmentRecord],
        carrier: CarrierConsensus | None,
    ) -> ValidationReport:
        findings: list[ValidationFinding] = []

        if not records:
            findings.append(self._finding(RuleType.NO_RECORDS, "No shipments extracted"))

        for index, record in enumerate(records):
            for rule in RECORD_RULES:
                message = self._check(rule, record)
                if message:
                    findings.append(self._finding(rule, message, index))

        confidence = 1.0 - sum(f.penalty for f in findings)
        confidence = max(self.floor, min(confidence, 1.0))

        report = ValidationReport(
            confidence=round(confidence, 4),
            issues=[f.message for f in findings],
            findings=findings,
            enrichment=self._enrich(records, carrier),
        )
        logger.info(
            "Validated %d records: confidence %.2f, %d issue(s)",
            len(records),
            report.confidence,
            len(findings),
        )
        return report

    def _finding(
        self, rule: RuleType, message: str, index: int | None = None
    ) -> ValidationFinding:
        return ValidationFinding(
            rule=rule, message=message, penalty=self.penalties[rule], record_index=index
        )

    @staticmethod
    def _check(rule: RuleType, record: ExtractedShipmentRecord) -> str | None:
        match rule:
            case RuleType.MISSING_IDENTIFIER:
                if not record.identifiers():
                    return "Shipment has no identifier"
            case RuleType.INCOMPLETE_ADDRESS:
                if not record.has_complete_addresses():
                    return "Shipment address is incomplete"
            case RuleType.NON_POSITIVE_TOTAL:
                if record.total_amount is None or record.total_amount <= 0:
                    return f"Invalid total amount: {record.total_amount}"
            case RuleType.NO_RECORDS:
                return None
        return None

    @staticmethod
    def _enrich(
        records: list[ExtractedShipmentRecord], carrier: CarrierConsensus | None
    ) -> dict[str, Any]:
        carrier = carrier or CarrierConsensus()
        return {
            "carrier_id": carrier.carrier_id,
            "carrier_name": carrier.name,
            "record_count": len(records),
            "has_fallback_records": any(r.fallback for r in records),
        }
