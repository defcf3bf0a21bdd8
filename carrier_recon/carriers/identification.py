"""Multi-source carrier identification.

Three independent analyses (document text, logo, layout format) each yield a
:class:`DetectionSignal`; the signals are fused by weighted consensus. The
logo and format analyses are oracle calls whose failures degrade to neutral
signals without affecting the others.
"""

import asyncio

from pydantic import BaseModel, ConfigDict, field_validator

from carrier_recon.errors import OracleError
from carrier_recon.ocr.document_loader import Document
from carrier_recon.oracle.gateway import OracleGateway
from carrier_recon.oracle.ports import OracleTask
from carrier_recon.oracle.prompts import build_request
from carrier_recon.utils.config import ReconciliationSettings
from carrier_recon.utils.logger import get_logger
from carrier_recon.utils.retry import RetryPolicy

from .consensus import (
    CarrierConsensus,
    DetectionSignal,
    SignalSource,
    build_consensus,
    override_consensus,
)
from .profiles import CarrierRegistry, normalize_carrier_name
from .template_scorer import UNKNOWN_CONFIDENCE, TemplateScorer

logger = get_logger(__name__)

FILENAME_CONFIDENCE = 0.3
SAMPLE_PAGES = (1, 2)
SAMPLE_RETRY = RetryPolicy(max_attempts=2, backoff=(1.0,))


class CarrierAnswer(BaseModel):
    """Oracle answer to a carrier question."""

    model_config = ConfigDict(extra="ignore")

    carrier: str | None = None
    confidence: float = 0.5

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, v: object) -> float:
        if v is None:
            return 0.5
        return max(0.0, min(float(v), 1.0))


class CarrierIdentificationEngine:
    """Identifies the carrier that issued a document.

    Args:
        registry: Known carrier profiles.
        gateway: Oracle gateway used for sample, logo and format analyses.
        scorer: Template scorer; built from ``registry`` when omitted.
    """

    def __init__(
        self,
        registry: CarrierRegistry,
        gateway: OracleGateway,
        scorer: TemplateScorer | None = None,
    ) -> None:
        self.registry = registry
        self.gateway = gateway
        self.scorer = scorer or TemplateScorer(registry)

    async def identify(
        self, document: Document, settings: ReconciliationSettings | None = None
    ) -> CarrierConsensus:
        """Identify the carrier of a document.

        Args:
            document: The loaded document.
            settings: Run options; ``carrier_override`` short-circuits all
                analysis and ``enable_multi_source_analysis`` toggles the
                logo and format analyses.

        Returns:
            The fused consensus (never ``None``).
        """
        settings = settings or ReconciliationSettings()
        if settings.carrier_override:
            return self.override(settings.carrier_override)

        signals = await self.collect_signals(
            document, settings.enable_multi_source_analysis
        )
        consensus = build_consensus(signals)
        logger.info(
            "Carrier for %s: %s (confidence=%.3f, strength=%s)",
            document.filename,
            consensus.carrier_id,
            consensus.confidence,
            consensus.strength,
        )
        return consensus

    def override(self, carrier: str) -> CarrierConsensus:
        profile = self.registry.get(carrier) or self.registry.resolve(carrier)
        if profile is None:
            logger.warning("Carrier override %r is not a registered carrier", carrier)
            return override_consensus(normalize_carrier_name(carrier), carrier)
        return override_consensus(profile.id, profile.name)

    async def collect_signals(
        self, document: Document, multi_source: bool = True
    ) -> list[DetectionSignal]:
        """Run the text analysis and, optionally, logo and format analyses concurrently."""
        analyses = [self.text_signal(document)]
        if multi_source:
            analyses.append(
                self._oracle_signal(document, SignalSource.LOGO, OracleTask.DETECT_LOGO)
            )
            analyses.append(
                self._oracle_signal(
                    document, SignalSource.FORMAT, OracleTask.CLASSIFY_FORMAT
                )
            )
        return list(await asyncio.gather(*analyses))

    async def text_signal(self, document: Document) -> DetectionSignal:
        """Template scoring over the local text, or the fallback chain without it."""
        if document.has_text:
            return self.scorer.score(document.text, document.filename)

        logger.info("No text layer for %s, sampling pages via oracle", document.filename)
        pages = [
            p for p in SAMPLE_PAGES if document.page_count is None or p <= document.page_count
        ]
        try:
            answer = await self.gateway.request(
                document,
                build_request(OracleTask.IDENTIFY_CARRIER, pages=pages or [1]),
                CarrierAnswer,
                policy=SAMPLE_RETRY,
            )
        except OracleError as exc:
            logger.warning("Oracle page sample failed for %s: %s", document.filename, exc)
        else:
            signal = self._signal_from_answer(SignalSource.TEXT, answer, "oracle_sample")
            if signal.is_known:
                return signal

        signal = self.filename_signal(document.filename)
        if signal is not None:
            return signal
        return DetectionSignal.unknown(SignalSource.TEXT, UNKNOWN_CONFIDENCE)

    def filename_signal(self, filename: str | None) -> DetectionSignal | None:
        profile = self.registry.resolve(filename)
        if profile is None:
            return None
        logger.info("Carrier %s guessed from filename %s", profile.id, filename)
        return DetectionSignal(
            source=SignalSource.TEXT,
            carrier_id=profile.id,
            carrier_name=profile.name,
            confidence=FILENAME_CONFIDENCE,
            method="filename",
        )

    async def _oracle_signal(
        self, document: Document, source: SignalSource, task: OracleTask
    ) -> DetectionSignal:
        try:
            answer = await self.gateway.request(
                document, build_request(task, pages=[1]), CarrierAnswer
            )
        except OracleError as exc:
            logger.warning(
                "%s analysis failed for %s: %s", source.value, document.filename, exc
            )
            return DetectionSignal.unknown(source, 0.0, method="unavailable")
        return self._signal_from_answer(source, answer, f"oracle_{source.value}")

    def _signal_from_answer(
        self, source: SignalSource, answer: CarrierAnswer, method: str
    ) -> DetectionSignal:
        profile = self.registry.resolve(answer.carrier)
        if profile is not None:
            return DetectionSignal(
                source=source,
                carrier_id=profile.id,
                carrier_name=profile.name,
                confidence=answer.confidence,
                method=method,
            )
        carrier_id = normalize_carrier_name(answer.carrier)
        if not carrier_id or carrier_id == "unknown":
            return DetectionSignal.unknown(source, answer.confidence, method=method)
        return DetectionSignal(
            source=source,
            carrier_id=carrier_id,
            carrier_name=answer.carrier.strip(),
            confidence=answer.confidence,
            method=method,
        )
