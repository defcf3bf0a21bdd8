"""Command-line interface for reconciling carrier documents.

Provides subcommands for reconciling a single document and for processing a
folder of documents in batch, with JSON output.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from carrier_recon.ocr.document_loader import DocumentLoader
from carrier_recon.oracle.http_oracle import HttpDocumentOracle
from carrier_recon.pipeline.batch import BatchProcessor, BatchReport
from carrier_recon.pipeline.processor import DocumentReconciler
from carrier_recon.utils.config import AppConfig, load_config
from carrier_recon.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = ("*.png", "*.jpg", "*.jpeg", "*.tiff", "*.tif", "*.pdf", "*.txt")


def _find_documents(input_dir: Path) -> list[Path]:
    """Find all supported document files in a directory.

    Args:
        input_dir: Directory to scan for documents.

    Returns:
        Sorted list of document file paths.
    """
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
        files.extend(input_dir.glob(ext.upper()))
    return sorted(set(files))


def _build_components(config: AppConfig) -> tuple[DocumentLoader, DocumentReconciler]:
    loader = DocumentLoader(config.ocr)
    reconciler = DocumentReconciler.from_config(config, HttpDocumentOracle(config.oracle))
    return loader, reconciler


def reconcile_single(
    file_path: Path,
    principal: str,
    config: AppConfig | None = None,
    carrier_override: str | None = None,
) -> dict[str, object]:
    """Reconcile one document and return its report as a dict.

    Args:
        file_path: Path to the document file.
        principal: Caller principal for access filtering.
        config: Application configuration; loaded from disk when omitted.
        carrier_override: Carrier to use instead of identification.

    Returns:
        The serialized document report.
    """
    config = config or load_config()
    loader, reconciler = _build_components(config)
    settings = config.reconciliation
    if carrier_override:
        settings = settings.model_copy(update={"carrier_override": carrier_override})

    async def run() -> dict[str, object]:
        document = await loader.load(file_path)
        report = await reconciler.process(document, principal, settings)
        return report.to_dict()

    return asyncio.run(run())


def process_folder(
    input_dir: Path,
    principal: str,
    config: AppConfig | None = None,
    batch_size: int | None = None,
) -> BatchReport:
    """Reconcile every supported document in a folder.

    Args:
        input_dir: Directory containing document files.
        principal: Caller principal for access filtering.
        config: Application configuration; loaded from disk when omitted.
        batch_size: Documents per concurrent wave; config default when omitted.

    Returns:
        The batch report.
    """
    config = config or load_config()
    files = _find_documents(input_dir)
    if not files:
        logger.warning("No documents found in %s", input_dir)
        return BatchReport()

    logger.info("Found %d documents to process", len(files))
    loader, reconciler = _build_components(config)
    settings = config.reconciliation
    if batch_size:
        settings = settings.model_copy(update={"batch_size": batch_size})

    processor = BatchProcessor(reconciler, loader)
    return asyncio.run(processor.process(list(files), principal, settings))


def _print_summary(report: BatchReport, output: Path | None) -> None:
    """Print batch processing summary to stdout."""
    stats = report.stats()
    print(f"\n{'=' * 50}")
    print("Batch Reconciliation Complete")
    print(f"{'=' * 50}")
    print(f"Documents:       {len(report.outcomes)}")
    print(f"Succeeded:       {report.succeeded}")
    print(f"Failed:          {report.failed}")
    print(f"Records:         {stats.total_records}")
    print(f"Auto-applicable: {stats.auto_applicable}")
    print(f"Needs review:    {stats.requires_review}")
    if output:
        print(f"Output:          {output}")


def _emit(payload: dict[str, object], output: Path | None) -> None:
    output_str = json.dumps(payload, indent=2, default=str)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(output_str)
        print(f"Output written to {output}")
    else:
        print(output_str)


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Carrier invoice reconciliation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-c", "--config", type=Path, help="YAML configuration file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    single_parser = subparsers.add_parser("reconcile", help="Reconcile a single document")
    single_parser.add_argument("file", type=Path, help="Document file to process")
    single_parser.add_argument("--principal", required=True, help="Caller principal id")
    single_parser.add_argument("--carrier", help="Carrier override")
    single_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    batch_parser = subparsers.add_parser("batch", help="Reconcile a folder of documents")
    batch_parser.add_argument("input_dir", type=Path, help="Input directory with documents")
    batch_parser.add_argument("--principal", required=True, help="Caller principal id")
    batch_parser.add_argument(
        "-b", "--batch-size", type=int, help="Documents per concurrent wave"
    )
    batch_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "reconcile":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        result = reconcile_single(args.file, args.principal, config, args.carrier)
        _emit(result, args.output)
    elif args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        report = process_folder(args.input_dir, args.principal, config, args.batch_size)
        if args.output:
            _emit(report.to_dict(), args.output)
        _print_summary(report, args.output)
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
