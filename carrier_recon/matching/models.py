"""Types produced by the matching engine."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from carrier_recon.extraction.models import ExtractedShipmentRecord

from .store import StoreRecord

CONFIDENCE_CAP = 0.99


class Strategy(str, Enum):
    """Candidate generation strategies, highest weight first."""

    EXACT_SHIPMENT_ID = "exact_shipment_id"
    EXACT_TRACKING_NUMBER = "exact_tracking_number"
    EXACT_BOOKING_REFERENCE = "exact_booking_reference"
    REFERENCE_NUMBER_MATCH = "reference_number_match"
    DATE_AMOUNT_MATCH = "date_amount_match"
    FUZZY_REFERENCE_MATCH = "fuzzy_reference_match"
    CARRIER_DATE_MATCH = "carrier_date_match"

    @property
    def weight(self) -> int:
        """Priority used to decide which strategy owns a deduplicated record."""
        match self:
            case Strategy.EXACT_SHIPMENT_ID:
                return 100
            case Strategy.EXACT_TRACKING_NUMBER:
                return 90
            case Strategy.EXACT_BOOKING_REFERENCE:
                return 85
            case Strategy.REFERENCE_NUMBER_MATCH:
                return 70
            case Strategy.DATE_AMOUNT_MATCH:
                return 60
            case Strategy.FUZZY_REFERENCE_MATCH:
                return 40
            case Strategy.CARRIER_DATE_MATCH:
                return 30

    @property
    def base_confidence(self) -> float:
        match self:
            case Strategy.EXACT_SHIPMENT_ID:
                return 0.98
            case Strategy.EXACT_TRACKING_NUMBER:
                return 0.95
            case Strategy.EXACT_BOOKING_REFERENCE:
                return 0.92
            case Strategy.REFERENCE_NUMBER_MATCH:
                return 0.80
            case Strategy.DATE_AMOUNT_MATCH:
                return 0.75
            case Strategy.FUZZY_REFERENCE_MATCH:
                return 0.65
            case Strategy.CARRIER_DATE_MATCH:
                return 0.55


class MatchStatus(str, Enum):
    EXCELLENT = "EXCELLENT_MATCH"
    GOOD = "GOOD_MATCH"
    FAIR = "FAIR_MATCH"
    POOR = "POOR_MATCH"
    NO_MATCH = "NO_MATCH"

    @classmethod
    def from_confidence(cls, confidence: float | None) -> "MatchStatus":
        if confidence is None:
            return cls.NO_MATCH
        if confidence >= 0.95:
            return cls.EXCELLENT
        if confidence >= 0.85:
            return cls.GOOD
        if confidence >= 0.70:
            return cls.FAIR
        if confidence >= 0.50:
            return cls.POOR
        return cls.NO_MATCH

    @property
    def auto_applicable(self) -> bool:
        return self in (MatchStatus.EXCELLENT, MatchStatus.GOOD)


@dataclass(frozen=True)
class MatchCandidate:
    """A store record proposed by one strategy."""

    record: StoreRecord
    strategy: Strategy
    field: str
    value: str
    ocr_corrected: bool = False

    @property
    def record_id(self) -> str:
        return self.record.record_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "record": self.record.to_dict(),
            "strategy": self.strategy.value,
            "field": self.field,
            "value": self.value,
            "ocr_corrected": self.ocr_corrected,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MatchCandidate":
        return cls(
            record=StoreRecord.from_dict(data["record"]),
            strategy=Strategy(data["strategy"]),
            field=data["field"],
            value=data["value"],
            ocr_corrected=bool(data.get("ocr_corrected", False)),
        )


@dataclass
class ScoredMatch:
    """A deduplicated candidate with its final confidence."""

    candidate: MatchCandidate
    confidence: float
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def record_id(self) -> str:
        return self.candidate.record_id

    @property
    def strategy(self) -> Strategy:
        return self.candidate.strategy

    def to_dict(self) -> dict[str, Any]:
        return {
            "candidate": self.candidate.to_dict(),
            "confidence": self.confidence,
            "details": dict(self.details),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScoredMatch":
        return cls(
            candidate=MatchCandidate.from_dict(data["candidate"]),
            confidence=float(data["confidence"]),
            details=dict(data.get("details") or {}),
        )


@dataclass
class MatchResult:
    """Outcome of matching one extracted record."""

    record: ExtractedShipmentRecord
    matches: list[ScoredMatch]
    status: MatchStatus
    review_required: bool

    @property
    def best_match(self) -> ScoredMatch | None:
        return self.matches[0] if self.matches else None

    def to_dict(self) -> dict[str, Any]:
        best = self.best_match
        return {
            "record": self.record.model_dump(mode="json"),
            "matches": [m.to_dict() for m in self.matches],
            "best_match_id": best.record_id if best else None,
            "confidence": best.confidence if best else None,
            "status": self.status.value,
            "review_required": self.review_required,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MatchResult":
        return cls(
            record=ExtractedShipmentRecord.model_validate(data["record"]),
            matches=[ScoredMatch.from_dict(m) for m in data.get("matches", [])],
            status=MatchStatus(data["status"]),
            review_required=bool(data["review_required"]),
        )


@dataclass
class MatchingStats:
    """Aggregate statistics over a set of match results."""

    total_records: int = 0
    excellent: int = 0
    good: int = 0
    fair: int = 0
    poor: int = 0
    no_match: int = 0
    auto_applicable: int = 0
    requires_review: int = 0
    average_confidence: float = 0.0

    @classmethod
    def from_results(cls, results: list[MatchResult]) -> "MatchingStats":
        stats = cls(total_records=len(results))
        confidences: list[float] = []
        for result in results:
            match result.status:
                case MatchStatus.EXCELLENT:
                    stats.excellent += 1
                case MatchStatus.GOOD:
                    stats.good += 1
                case MatchStatus.FAIR:
                    stats.fair += 1
                case MatchStatus.POOR:
                    stats.poor += 1
                case MatchStatus.NO_MATCH:
                    stats.no_match += 1
            if result.review_required:
                stats.requires_review += 1
            else:
                stats.auto_applicable += 1
            if result.best_match is not None:
                confidences.append(result.best_match.confidence)
        if confidences:
            stats.average_confidence = round(sum(confidences) / len(confidences), 4)
        return stats
