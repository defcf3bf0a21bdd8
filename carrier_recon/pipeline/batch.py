"""Batch reconciliation of many documents in bounded waves."""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from carrier_recon.errors import DocumentProcessingError
from carrier_recon.matching.models import MatchingStats
from carrier_recon.ocr.document_loader import Document, DocumentLoader
from carrier_recon.utils.config import ReconciliationSettings
from carrier_recon.utils.logger import get_logger

from .processor import DocumentReconciler, DocumentReport

logger = get_logger(__name__)


@dataclass
class DocumentOutcome:
    """Result or failure for one document of a batch."""

    filename: str
    report: DocumentReport | None = None
    error: str | None = None
    failed_step: str | None = None

    @property
    def ok(self) -> bool:
        return self.report is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "ok": self.ok,
            "error": self.error,
            "failed_step": self.failed_step,
            "report": self.report.to_dict() if self.report else None,
        }


@dataclass
class BatchReport:
    outcomes: list[DocumentOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded

    def stats(self) -> MatchingStats:
        results = [r for o in self.outcomes if o.report for r in o.report.results]
        return MatchingStats.from_results(results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "documents": len(self.outcomes),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "stats": vars(self.stats()).copy(),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class BatchProcessor:
    """Reconciles documents in waves of ``batch_size``.

    Documents within a wave run concurrently; a failing document is recorded
    in its outcome and never affects the others.

    Args:
        reconciler: Single-document reconciler.
        loader: Loader used for path inputs.
    """

    def __init__(
        self, reconciler: DocumentReconciler, loader: DocumentLoader | None = None
    ) -> None:
        self.reconciler = reconciler
        self.loader = loader or DocumentLoader()

    async def process(
        self,
        sources: list[Path | Document],
        principal: str,
        settings: ReconciliationSettings | None = None,
    ) -> BatchReport:
        """Reconcile ``sources`` (paths or loaded documents).

        Args:
            sources: Documents to process, in output order.
            principal: Caller principal for access filtering.
            settings: Run settings; ``batch_size`` bounds each wave.

        Returns:
            One outcome per source, in input order.
        """
        settings = settings or self.reconciler.settings
        size = max(settings.batch_size, 1)
        report = BatchReport()

        for start in range(0, len(sources), size):
            wave = sources[start : start + size]
            logger.info(
                "Batch wave %d: %d document(s)", start // size + 1, len(wave)
            )
            results = await asyncio.gather(
                *(self._one(source, principal, settings) for source in wave),
                return_exceptions=True,
            )
            for source, result in zip(wave, results):
                if isinstance(result, DocumentOutcome):
                    report.outcomes.append(result)
                elif isinstance(result, Exception):
                    logger.error("Unexpected failure on %s: %r", _name(source), result)
                    report.outcomes.append(
                        DocumentOutcome(filename=_name(source), error=repr(result))
                    )
                else:
                    raise result

        logger.info(
            "Batch finished: %d succeeded, %d failed", report.succeeded, report.failed
        )
        return report

    async def _one(
        self,
        source: Path | Document,
        principal: str,
        settings: ReconciliationSettings,
    ) -> DocumentOutcome:
        name = _name(source)
        try:
            document = (
                source if isinstance(source, Document) else await self.loader.load(source)
            )
            report = await self.reconciler.process(document, principal, settings)
        except DocumentProcessingError as exc:
            logger.error("Document %s failed at %s: %s", name, exc.step, exc)
            return DocumentOutcome(filename=name, error=str(exc), failed_step=exc.step)
        except OSError as exc:
            logger.error("Could not load %s: %s", name, exc)
            return DocumentOutcome(filename=name, error=str(exc), failed_step="load")
        return DocumentOutcome(filename=name, report=report)


def _name(source: Path | Document) -> str:
    return source.filename if isinstance(source, Document) else Path(source).name
