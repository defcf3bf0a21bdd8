"""FastAPI application for the carrier invoice reconciliation API.

Provides REST endpoints for single and batch reconciliation, carrier
profile listing, and health checks.
"""

import shutil
import time
from typing import Annotated

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from carrier_recon import __version__
from carrier_recon.carriers.profiles import load_registry
from carrier_recon.errors import DocumentProcessingError
from carrier_recon.ocr.document_loader import Document, DocumentLoader
from carrier_recon.oracle.http_oracle import HttpDocumentOracle
from carrier_recon.pipeline.batch import BatchProcessor
from carrier_recon.pipeline.processor import DocumentReconciler
from carrier_recon.utils.config import ReconciliationSettings, load_config
from carrier_recon.utils.logger import get_logger

from .schemas import (
    BatchItemResponse,
    BatchReconcileResponse,
    CarrierInfo,
    CarriersResponse,
    HealthResponse,
    ReconcileResponse,
)

logger = get_logger(__name__)

app = FastAPI(
    title="Carrier Invoice Reconciliation API",
    description="Identify carriers, extract shipments and match them to booked records",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_ALLOWED_CONTENT_TYPES = {
    "image/png",
    "image/jpeg",
    "image/tiff",
    "application/pdf",
    "text/plain",
    "application/octet-stream",
}


def _get_components() -> tuple[DocumentLoader, DocumentReconciler, ReconciliationSettings]:
    """Build the loader, reconciler and default settings from configuration."""
    config = load_config()
    loader = DocumentLoader(config.ocr)
    reconciler = DocumentReconciler.from_config(config, HttpDocumentOracle(config.oracle))
    return loader, reconciler, config.reconciliation


def _settings(
    defaults: ReconciliationSettings,
    carrier_override: str | None,
    multi_source: bool | None,
) -> ReconciliationSettings:
    update: dict[str, object] = {}
    if carrier_override:
        update["carrier_override"] = carrier_override
    if multi_source is not None:
        update["enable_multi_source_analysis"] = multi_source
    return defaults.model_copy(update=update)


def _check_content_type(file: UploadFile) -> None:
    if file.content_type and file.content_type not in _ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {file.content_type}",
        )


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return system health status."""
    config = load_config()
    return HealthResponse(
        status="healthy",
        version=__version__,
        tesseract_available=shutil.which("tesseract") is not None,
        carriers_loaded=len(load_registry(config.carriers.profiles_path)),
    )


@app.get("/carriers", response_model=CarriersResponse)
async def list_carriers() -> CarriersResponse:
    """List the registered carrier profiles."""
    config = load_config()
    registry = load_registry(config.carriers.profiles_path)
    return CarriersResponse(
        carriers=[
            CarrierInfo(
                id=p.id,
                name=p.name,
                document_format=p.document_format,
                confidence_ceiling=p.confidence_ceiling,
                aliases=list(p.aliases),
            )
            for p in registry
        ]
    )


@app.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_document(
    file: Annotated[UploadFile, File(...)],
    principal: Annotated[str, Query(min_length=1)],
    carrier_override: Annotated[str | None, Query()] = None,
    multi_source: Annotated[bool | None, Query()] = None,
) -> ReconcileResponse:
    """Reconcile an uploaded carrier document.

    Args:
        file: Uploaded document (PDF, image or plain text).
        principal: Caller whose access scope filters matches.
        carrier_override: Skip carrier identification and use this carrier.
        multi_source: Enable or disable the logo and format analyses.

    Returns:
        Carrier, complexity, validation and per-shipment match results.
    """
    start_time = time.time()
    _check_content_type(file)

    try:
        loader, reconciler, defaults = _get_components()
        content = await file.read()
        document = await loader.load(content, file.filename or "document")
        report = await reconciler.process(
            document, principal, _settings(defaults, carrier_override, multi_source)
        )
        processing_time = (time.time() - start_time) * 1000
        return ReconcileResponse.from_report(report, processing_time)

    except HTTPException:
        raise
    except DocumentProcessingError as exc:
        logger.error("Reconciliation failed at %s: %s", exc.step, exc)
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except Exception as exc:
        logger.error("Reconciliation failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@app.post("/reconcile/batch", response_model=BatchReconcileResponse)
async def reconcile_batch(
    files: Annotated[list[UploadFile], File(...)],
    principal: Annotated[str, Query(min_length=1)],
) -> BatchReconcileResponse:
    """Reconcile several uploaded documents in bounded waves.

    Args:
        files: Uploaded documents.
        principal: Caller whose access scope filters matches.

    Returns:
        Per-file results; one failing file does not fail the batch.
    """
    loader, reconciler, defaults = _get_components()
    documents: list[Document] = []
    load_errors: dict[str, str] = {}

    for file in files:
        name = file.filename or "unknown"
        try:
            _check_content_type(file)
            documents.append(await loader.load(await file.read(), name))
        except HTTPException as exc:
            load_errors[name] = str(exc.detail)
        except OSError as exc:
            load_errors[name] = str(exc)

    start_time = time.time()
    batch = await BatchProcessor(reconciler, loader).process(documents, principal, defaults)
    elapsed = (time.time() - start_time) * 1000

    results = [
        BatchItemResponse(filename=name, error=error, failed_step="load")
        for name, error in load_errors.items()
    ]
    for outcome in batch.outcomes:
        results.append(
            BatchItemResponse(
                filename=outcome.filename,
                result=(
                    ReconcileResponse.from_report(outcome.report, elapsed)
                    if outcome.report
                    else None
                ),
                error=outcome.error,
                failed_step=outcome.failed_step,
            )
        )

    successful = batch.succeeded
    return BatchReconcileResponse(
        success=successful > 0,
        total_documents=len(files),
        successful=successful,
        failed=len(files) - successful,
        results=results,
    )
