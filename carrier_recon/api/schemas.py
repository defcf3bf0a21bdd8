"""Pydantic request/response schemas for the FastAPI endpoints."""

from pydantic import BaseModel

from carrier_recon.carriers.consensus import CarrierConsensus
from carrier_recon.dispatch.complexity import ComplexityAssessment
from carrier_recon.matching.models import MatchResult, MatchingStats, ScoredMatch
from carrier_recon.pipeline.processor import DocumentReport


class MatchResponse(BaseModel):
    """A scored store-side candidate."""

    record_id: str
    strategy: str
    confidence: float
    field: str
    value: str
    ocr_corrected: bool = False

    @classmethod
    def from_match(cls, match: ScoredMatch) -> "MatchResponse":
        return cls(
            record_id=match.record_id,
            strategy=match.strategy.value,
            confidence=match.confidence,
            field=match.candidate.field,
            value=match.candidate.value,
            ocr_corrected=match.candidate.ocr_corrected,
        )


class RecordResultResponse(BaseModel):
    """Matching outcome for one extracted shipment."""

    shipment_id: str | None = None
    tracking_number: str | None = None
    status: str
    confidence: float | None = None
    review_required: bool
    fallback: bool = False
    best_match: MatchResponse | None = None
    matches: list[MatchResponse]

    @classmethod
    def from_result(cls, result: MatchResult) -> "RecordResultResponse":
        best = result.best_match
        return cls(
            shipment_id=result.record.shipment_id,
            tracking_number=result.record.tracking_number,
            status=result.status.value,
            confidence=best.confidence if best else None,
            review_required=result.review_required,
            fallback=result.record.fallback,
            best_match=MatchResponse.from_match(best) if best else None,
            matches=[MatchResponse.from_match(m) for m in result.matches],
        )


class StatsResponse(BaseModel):
    total_records: int
    excellent: int
    good: int
    fair: int
    poor: int
    no_match: int
    auto_applicable: int
    requires_review: int
    average_confidence: float

    @classmethod
    def from_stats(cls, stats: MatchingStats) -> "StatsResponse":
        return cls(**vars(stats))


class ReconcileResponse(BaseModel):
    """Response schema for a single-document reconciliation."""

    success: bool
    document_id: str
    filename: str
    carrier: CarrierConsensus
    complexity: ComplexityAssessment
    validation_confidence: float
    issues: list[str]
    warnings: list[str]
    fallback: bool
    records: list[RecordResultResponse]
    stats: StatsResponse
    steps: dict[str, str]
    processing_time_ms: float

    @classmethod
    def from_report(cls, report: DocumentReport, elapsed_ms: float) -> "ReconcileResponse":
        return cls(
            success=True,
            document_id=report.document_id,
            filename=report.filename,
            carrier=report.consensus,
            complexity=report.assessment,
            validation_confidence=report.validation.confidence,
            issues=report.validation.issues,
            warnings=report.extraction.warnings,
            fallback=report.fallback,
            records=[RecordResultResponse.from_result(r) for r in report.results],
            stats=StatsResponse.from_stats(report.stats),
            steps=report.steps,
            processing_time_ms=elapsed_ms,
        )


class BatchItemResponse(BaseModel):
    """Response schema for a single item in a batch reconciliation."""

    filename: str
    result: ReconcileResponse | None = None
    error: str | None = None
    failed_step: str | None = None


class BatchReconcileResponse(BaseModel):
    """Response schema for batch reconciliation of multiple documents."""

    success: bool
    total_documents: int
    successful: int
    failed: int
    results: list[BatchItemResponse]


class CarrierInfo(BaseModel):
    """A registered carrier profile."""

    id: str
    name: str
    document_format: str
    confidence_ceiling: float
    aliases: list[str]


class CarriersResponse(BaseModel):
    carriers: list[CarrierInfo]


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool
    carriers_loaded: int
