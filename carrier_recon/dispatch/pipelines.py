"""Tier-specific extraction pipelines.

Each tier trades request count against fidelity:

- small: one full-document request
- medium: header pages first, then the rest in sequential page batches
- large: learn the row layout from a few sample pages, then extract 20-page
  batches with bounded concurrency
- massive: stream 50-page chunks with a quality checkpoint every 100 records

Malformed answers for the primary request (full, header, learn) propagate so
the caller can fall back to local extraction. A malformed follow-up batch is
skipped and recorded as a warning; if no large-tier batch or massive-tier
chunk was usable, the pipeline raises as if the primary request had failed.
"""

import asyncio
import inspect
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from carrier_recon.errors import OracleMalformedResponse
from carrier_recon.extraction.models import (
    ExtractedShipmentRecord,
    ExtractionOutput,
    ExtractionResponse,
)
from carrier_recon.ocr.document_loader import Document
from carrier_recon.oracle.gateway import OracleGateway
from carrier_recon.oracle.ports import OracleTask
from carrier_recon.oracle.prompts import build_request
from carrier_recon.utils.logger import get_logger
from carrier_recon.validation.enrichment import ShipmentValidator

from .complexity import ComplexityAssessment, ProcessingTier

logger = get_logger(__name__)

LARGE_SAMPLE_PAGES = 5
LARGE_BATCH_PAGES = 20
LARGE_MAX_CONCURRENT = 3
MASSIVE_CHUNK_PAGES = 50
MASSIVE_CHECKPOINT_RECORDS = 100
CHECKPOINT_MIN_CONFIDENCE = 0.5


@dataclass
class ProgressEvent:
    """Progress notification emitted by tier pipelines."""

    document_id: str
    tier: ProcessingTier
    stage: str
    completed: int
    total: int
    records: int = 0


ProgressCallback = Callable[[ProgressEvent], Any]

_pending_callbacks: set[asyncio.Task] = set()


def _callback_done(task: asyncio.Task) -> None:
    _pending_callbacks.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.warning("Progress callback failed: %s", task.exception())


def emit_progress(callback: ProgressCallback | None, event: ProgressEvent) -> None:
    """Notify ``callback`` without waiting for it or letting it fail the caller."""
    if callback is None:
        return
    try:
        result = callback(event)
    except Exception as exc:
        logger.warning("Progress callback failed: %s", exc)
        return
    if inspect.isawaitable(result):
        task = asyncio.ensure_future(result)
        _pending_callbacks.add(task)
        task.add_done_callback(_callback_done)


@dataclass
class PipelineContext:
    """Everything a tier pipeline needs for one document."""

    document: Document
    gateway: OracleGateway
    assessment: ComplexityAssessment
    carrier_hint: str | None = None
    validator: ShipmentValidator | None = None
    progress: ProgressCallback | None = None
    warnings: list[str] = field(default_factory=list)
    requests: int = 0

    @property
    def total_pages(self) -> int:
        return max(self.document.page_count or self.assessment.estimated_pages, 1)

    def emit(self, stage: str, completed: int, total: int, records: int = 0) -> None:
        emit_progress(
            self.progress,
            ProgressEvent(
                document_id=self.document.document_id,
                tier=self.assessment.tier,
                stage=stage,
                completed=completed,
                total=total,
                records=records,
            ),
        )

    async def ask(
        self, task: OracleTask, pages: list[int] | None = None, **context: Any
    ) -> ExtractionResponse:
        if self.carrier_hint and "carrier" not in context:
            context["carrier"] = self.carrier_hint
        self.requests += 1
        return await self.gateway.request(
            self.document, build_request(task, pages=pages, **context), ExtractionResponse
        )

    async def ask_optional(
        self, task: OracleTask, pages: list[int], **context: Any
    ) -> ExtractionResponse | None:
        """Like :meth:`ask`, but a malformed answer is recorded and skipped."""
        try:
            return await self.ask(task, pages, **context)
        except OracleMalformedResponse as exc:
            message = f"{task.value} pages {pages[0]}-{pages[-1]} skipped: {exc}"
            logger.warning("%s: %s", self.document.filename, message)
            self.warnings.append(message)
            return None


def page_batches(pages: Iterable[int], size: int) -> list[list[int]]:
    """Split pages into consecutive batches of at most ``size``."""
    pages = list(pages)
    size = max(size, 1)
    return [pages[i : i + size] for i in range(0, len(pages), size)]


async def run_tier_pipeline(tier: ProcessingTier, ctx: PipelineContext) -> ExtractionOutput:
    """Extract a document's records with the pipeline for ``tier``.

    Args:
        tier: Processing tier selected for the document.
        ctx: Pipeline context.

    Returns:
        Extracted records with request accounting and warnings.

    Raises:
        OracleUnavailable: If the oracle kept timing out.
        OracleMalformedResponse: If the primary request's answer was unusable.
    """
    logger.info(
        "Running %s pipeline for %s (%d pages)",
        tier.value,
        ctx.document.filename,
        ctx.total_pages,
    )
    match tier:
        case ProcessingTier.SMALL:
            output = await _small_pipeline(ctx)
        case ProcessingTier.MEDIUM:
            output = await _medium_pipeline(ctx)
        case ProcessingTier.LARGE:
            output = await _large_pipeline(ctx)
        case ProcessingTier.MASSIVE:
            output = await _massive_pipeline(ctx)

    output.requests = ctx.requests
    output.warnings.extend(ctx.warnings)
    logger.info(
        "%s pipeline extracted %d records from %s in %d request(s)",
        tier.value,
        len(output.records),
        ctx.document.filename,
        output.requests,
    )
    return output


async def _small_pipeline(ctx: PipelineContext) -> ExtractionOutput:
    response = await ctx.ask(OracleTask.EXTRACT_FULL)
    ctx.emit("extract_full", 1, 1, len(response.shipments))
    return ExtractionOutput(
        records=response.shipments,
        carrier_hint=response.carrier or ctx.carrier_hint,
        pages_processed=ctx.total_pages,
    )


async def _medium_pipeline(ctx: PipelineContext) -> ExtractionOutput:
    total = ctx.total_pages
    priority = [p for p in ctx.assessment.priority_pages if 1 <= p <= total] or [1]
    header = await ctx.ask(OracleTask.EXTRACT_HEADER, pages=priority)
    carrier = header.carrier or ctx.carrier_hint
    records = list(header.shipments)

    remaining = [p for p in range(1, total + 1) if p not in priority]
    batches = page_batches(remaining, ctx.assessment.batch_size)
    ctx.emit("extract_header", 1, len(batches) + 1, len(records))

    for done, batch in enumerate(batches, start=2):
        response = await ctx.ask_optional(
            OracleTask.EXTRACT_BULK, batch, layout=header.layout, carrier=carrier
        )
        if response is not None:
            records.extend(response.shipments)
        ctx.emit("extract_bulk", done, len(batches) + 1, len(records))

    return ExtractionOutput(records=records, carrier_hint=carrier, pages_processed=total)


async def _large_pipeline(ctx: PipelineContext) -> ExtractionOutput:
    total = ctx.total_pages
    sample = list(range(1, min(total, LARGE_SAMPLE_PAGES) + 1))
    learned = await ctx.ask(OracleTask.LEARN_PATTERNS, pages=sample)
    carrier = learned.carrier or ctx.carrier_hint

    batches = page_batches(range(1, total + 1), LARGE_BATCH_PAGES)
    semaphore = asyncio.Semaphore(LARGE_MAX_CONCURRENT)
    completed = 0

    async def extract(batch: list[int]) -> list[ExtractedShipmentRecord] | None:
        nonlocal completed
        async with semaphore:
            response = await ctx.ask_optional(
                OracleTask.EXTRACT_BATCH, batch, layout=learned.layout, carrier=carrier
            )
        completed += 1
        ctx.emit("extract_batch", completed, len(batches))
        return response.shipments if response is not None else None

    results = await asyncio.gather(*(extract(batch) for batch in batches))
    _require_usable(ctx, OracleTask.EXTRACT_BATCH, results)
    records = [record for batch_records in results if batch_records for record in batch_records]
    return ExtractionOutput(records=records, carrier_hint=carrier, pages_processed=total)


async def _massive_pipeline(ctx: PipelineContext) -> ExtractionOutput:
    total = ctx.total_pages
    chunks = page_batches(range(1, total + 1), MASSIVE_CHUNK_PAGES)
    records: list[ExtractedShipmentRecord] = []
    answers: list[ExtractionResponse | None] = []
    next_checkpoint = MASSIVE_CHECKPOINT_RECORDS

    for done, chunk in enumerate(chunks, start=1):
        response = await ctx.ask_optional(OracleTask.EXTRACT_CHUNK, chunk)
        answers.append(response)
        if response is not None:
            records.extend(response.shipments)
        ctx.emit("extract_chunk", done, len(chunks), len(records))

        while len(records) >= next_checkpoint:
            _quality_checkpoint(ctx, records, next_checkpoint)
            next_checkpoint += MASSIVE_CHECKPOINT_RECORDS

    _require_usable(ctx, OracleTask.EXTRACT_CHUNK, answers)
    return ExtractionOutput(
        records=records, carrier_hint=ctx.carrier_hint, pages_processed=total
    )


def _quality_checkpoint(
    ctx: PipelineContext, records: list[ExtractedShipmentRecord], upto: int
) -> None:
    if ctx.validator is None:
        return
    window = records[upto - MASSIVE_CHECKPOINT_RECORDS : upto]
    report = ctx.validator.validate(window)
    logger.info(
        "Quality checkpoint at %d records for %s: confidence %.2f",
        upto,
        ctx.document.filename,
        report.confidence,
    )
    if report.confidence < CHECKPOINT_MIN_CONFIDENCE:
        ctx.warnings.append(
            f"Quality checkpoint at {upto} records: confidence {report.confidence:.2f}"
        )


def _require_usable(ctx: PipelineContext, task: OracleTask, results: list[Any]) -> None:
    """Raise if not one of ``results`` came back usable."""
    if any(result is not None for result in results):
        return
    raise OracleMalformedResponse(
        f"all {len(results)} {task.value} answers for {ctx.document.filename} were unusable"
    )
