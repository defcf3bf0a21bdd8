"""End-to-end reconciliation of a single document.

Steps, journaled per document with a fingerprint of their inputs:

1. ``classification`` and ``carrier_detection`` (concurrently)
2. ``extraction`` through the tier pipeline, with local fallback
3. ``validation``
4. ``matching``
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from carrier_recon.carriers.consensus import CarrierConsensus
from carrier_recon.carriers.identification import CarrierIdentificationEngine
from carrier_recon.carriers.profiles import CarrierRegistry, load_registry
from carrier_recon.dispatch.complexity import ComplexityAssessment, ComplexityClassifier
from carrier_recon.dispatch.pipelines import (
    PipelineContext,
    ProgressCallback,
    run_tier_pipeline,
)
from carrier_recon.errors import (
    DocumentProcessingError,
    OracleMalformedResponse,
    ReconciliationError,
)
from carrier_recon.extraction.models import ExtractionOutput
from carrier_recon.extraction.rule_extractor import RuleExtractor
from carrier_recon.matching.access import IdentityService, StaticIdentityService
from carrier_recon.matching.engine import MatchingEngine
from carrier_recon.matching.models import MatchingStats, MatchResult
from carrier_recon.matching.store import InMemoryRecordStore, RecordStore
from carrier_recon.ocr.document_loader import Document
from carrier_recon.oracle.gateway import OracleGateway, policy_from_config
from carrier_recon.oracle.ports import DocumentOracle
from carrier_recon.utils.config import AppConfig, ReconciliationSettings
from carrier_recon.utils.logger import get_logger
from carrier_recon.validation.enrichment import ShipmentValidator, ValidationReport

from .journal import InMemoryJournal, JsonFileJournal, StepJournal, StepStatus

logger = get_logger(__name__)

T = TypeVar("T")


class Step(str, Enum):
    CLASSIFICATION = "classification"
    CARRIER_DETECTION = "carrier_detection"
    EXTRACTION = "extraction"
    VALIDATION = "validation"
    MATCHING = "matching"


@dataclass
class DocumentReport:
    """Everything produced for one document."""

    document_id: str
    filename: str
    consensus: CarrierConsensus
    assessment: ComplexityAssessment
    extraction: ExtractionOutput
    validation: ValidationReport
    results: list[MatchResult]
    stats: MatchingStats
    steps: dict[str, str] = field(default_factory=dict)

    @property
    def fallback(self) -> bool:
        return self.extraction.fallback

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "filename": self.filename,
            "carrier": self.consensus.model_dump(mode="json"),
            "complexity": self.assessment.model_dump(mode="json"),
            "extraction": {
                "records": len(self.extraction.records),
                "pages_processed": self.extraction.pages_processed,
                "requests": self.extraction.requests,
                "warnings": list(self.extraction.warnings),
                "fallback": self.extraction.fallback,
            },
            "validation": self.validation.model_dump(mode="json"),
            "results": [r.to_dict() for r in self.results],
            "stats": vars(self.stats).copy(),
            "steps": dict(self.steps),
            "fallback": self.fallback,
        }


def _dump_model(model: Any) -> Any:
    return model.model_dump(mode="json")


def _fingerprint(**parts: Any) -> str:
    """Stable key for the inputs a step depends on besides the document."""
    return ";".join(f"{name}={parts[name]}" for name in sorted(parts))


class DocumentReconciler:
    """Runs the reconciliation pipeline for single documents.

    Args:
        registry: Carrier profiles.
        gateway: Oracle gateway.
        matcher: Matching engine.
        identity: Identity service resolving principals to scopes.
        validator: Record validator.
        journal: Step journal; in-memory when omitted.
        settings: Default run settings.
    """

    def __init__(
        self,
        registry: CarrierRegistry,
        gateway: OracleGateway,
        matcher: MatchingEngine,
        identity: IdentityService,
        validator: ShipmentValidator | None = None,
        journal: StepJournal | None = None,
        settings: ReconciliationSettings | None = None,
    ) -> None:
        self.registry = registry
        self.gateway = gateway
        self.matcher = matcher
        self.identity = identity
        self.validator = validator or ShipmentValidator()
        self.journal = journal or InMemoryJournal()
        self.settings = settings or ReconciliationSettings()
        self.classifier = ComplexityClassifier(gateway)
        self.identifier = CarrierIdentificationEngine(registry, gateway)
        self.rule_extractor = RuleExtractor(matcher.pattern)

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        oracle: DocumentOracle,
        store: RecordStore | None = None,
        identity: IdentityService | None = None,
    ) -> "DocumentReconciler":
        """Wire a reconciler from application configuration."""
        registry = load_registry(config.carriers.profiles_path)
        store = store or InMemoryRecordStore.from_json(config.store.records_path)
        journal: StepJournal = (
            JsonFileJournal(config.journal.state_dir)
            if config.journal.state_dir
            else InMemoryJournal()
        )
        return cls(
            registry=registry,
            gateway=OracleGateway(oracle, policy_from_config(config.oracle)),
            matcher=MatchingEngine(store, registry, config.matching),
            identity=identity or StaticIdentityService(config.access),
            validator=ShipmentValidator(config.validation.rules_path),
            journal=journal,
            settings=config.reconciliation,
        )

    async def process(
        self,
        document: Document,
        principal: str,
        settings: ReconciliationSettings | None = None,
        progress: ProgressCallback | None = None,
    ) -> DocumentReport:
        """Reconcile one document.

        Args:
            document: The loaded document.
            principal: Caller whose access scope filters matches.
            settings: Run settings; defaults to the reconciler's.
            progress: Optional progress callback for the tier pipeline.

        Returns:
            The document report.

        Raises:
            DocumentProcessingError: If extraction could not produce records
                (oracle unavailable, or malformed output without local text).
        """
        settings = settings or self.settings
        logger.info("Reconciling %s (%s)", document.filename, document.document_id)

        assessment, consensus = await asyncio.gather(
            self._run_step(
                document,
                Step.CLASSIFICATION,
                lambda: self.classifier.classify(document),
                ComplexityAssessment.model_validate,
                _dump_model,
            ),
            self._run_step(
                document,
                Step.CARRIER_DETECTION,
                lambda: self.identifier.identify(document, settings),
                CarrierConsensus.model_validate,
                _dump_model,
                _fingerprint(
                    override=settings.carrier_override,
                    multi_source=settings.enable_multi_source_analysis,
                ),
            ),
        )

        extraction_key = _fingerprint(carrier=consensus.carrier_id, tier=assessment.tier.value)
        extraction = await self._run_step(
            document,
            Step.EXTRACTION,
            lambda: self._extract(document, assessment, consensus, progress),
            ExtractionOutput.model_validate,
            _dump_model,
            extraction_key,
        )

        async def validate() -> ValidationReport:
            return self.validator.validate(extraction.records, consensus)

        validation = await self._run_step(
            document,
            Step.VALIDATION,
            validate,
            ValidationReport.model_validate,
            _dump_model,
            extraction_key,
        )

        scope = await self.identity.resolve_scope(principal)

        async def match() -> list[MatchResult]:
            return await self.matcher.match_records(
                extraction.records, consensus, scope, settings.strict_access_filtering
            )

        results = await self._run_step(
            document,
            Step.MATCHING,
            match,
            lambda data: [MatchResult.from_dict(item) for item in data],
            lambda items: [r.to_dict() for r in items],
            _fingerprint(
                records=extraction_key,
                role=scope.role.value,
                companies=",".join(sorted(scope.companies)),
                strict=settings.strict_access_filtering,
            ),
        )

        report = DocumentReport(
            document_id=document.document_id,
            filename=document.filename,
            consensus=consensus,
            assessment=assessment,
            extraction=extraction,
            validation=validation,
            results=results,
            stats=MatchingStats.from_results(results),
            steps=self.journal.statuses(document.document_id),
        )
        logger.info(
            "Reconciled %s: %d records, %d auto-applicable, %d for review",
            document.filename,
            report.stats.total_records,
            report.stats.auto_applicable,
            report.stats.requires_review,
        )
        return report

    async def _run_step(
        self,
        document: Document,
        step: Step,
        produce: Callable[[], Awaitable[T]],
        restore: Callable[[Any], T],
        dump: Callable[[T], Any],
        fingerprint: str | None = None,
    ) -> T:
        doc_id = document.document_id
        done, output = self.journal.completed_output(doc_id, step.value, fingerprint)
        if done:
            logger.info("%s: restored %s from journal", document.filename, step.value)
            return restore(output)

        self.journal.record(doc_id, step.value, StepStatus.RUNNING, fingerprint=fingerprint)
        try:
            result = await produce()
        except DocumentProcessingError as exc:
            self.journal.record(doc_id, step.value, StepStatus.FAILED, error=str(exc))
            raise
        except ReconciliationError as exc:
            self.journal.record(doc_id, step.value, StepStatus.FAILED, error=str(exc))
            raise DocumentProcessingError(step.value, str(exc)) from exc

        self.journal.record(
            doc_id, step.value, StepStatus.COMPLETED, output=dump(result), fingerprint=fingerprint
        )
        return result

    async def _extract(
        self,
        document: Document,
        assessment: ComplexityAssessment,
        consensus: CarrierConsensus,
        progress: ProgressCallback | None,
    ) -> ExtractionOutput:
        ctx = PipelineContext(
            document=document,
            gateway=self.gateway,
            assessment=assessment,
            carrier_hint=consensus.name if consensus.is_known else None,
            validator=self.validator,
            progress=progress,
        )
        try:
            return await run_tier_pipeline(assessment.tier, ctx)
        except OracleMalformedResponse as exc:
            if not document.has_text:
                raise DocumentProcessingError(
                    Step.EXTRACTION.value,
                    f"oracle output unusable and no local text: {exc}",
                ) from exc
            logger.warning(
                "Falling back to rule extraction for %s: %s", document.filename, exc
            )
            records = self.rule_extractor.extract_records(
                document.text, self.registry.get(consensus.carrier_id)
            )
            return ExtractionOutput(
                records=records,
                carrier_hint=ctx.carrier_hint,
                pages_processed=len(document.pages),
                requests=ctx.requests,
                warnings=[*ctx.warnings, f"Oracle output unusable, used local fallback: {exc}"],
                fallback=True,
            )
