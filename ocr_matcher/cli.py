"""Command-line interface for batch reconciliation and CSV export.

Provides subcommands for comparing a folder of invoices against a folder
of delivery orders and for checking whether a single document looks like
a product listing.
"""

import argparse
import asyncio
import csv
import json
import sys
from dataclasses import asdict
from pathlib import Path

from ocr_matcher.extraction.factory import create_extractor
from ocr_matcher.pipeline.batch import BatchProcessingPipeline, SubmitReceipt
from ocr_matcher.pipeline.uploads import UploadedFile, cleanup_files, save_upload
from ocr_matcher.storage.base import SessionInfo
from ocr_matcher.text.quality_gate import DocumentQualityGate, GateOptions
from ocr_matcher.utils.config import AppConfig, load_config
from ocr_matcher.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = ("*.png", "*.jpg", "*.jpeg", "*.tiff", "*.tif", "*.pdf")
_META_COLUMNS = [
    "pair",
    "session_id",
    "invoice_filename",
    "delivery_order_filename",
    "status",
    "match_count",
    "warning_count",
    "error_count",
    "error",
]


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


def _stage(paths: list[Path], temp_dir: Path) -> list[UploadedFile]:
    # The pipeline deletes what it processes, so it only ever sees copies
    return [save_upload(p.read_bytes(), p.name, temp_dir) for p in paths]


async def _run_batch(
    pipeline: BatchProcessingPipeline,
    invoices: list[UploadedFile],
    deliveries: list[UploadedFile],
) -> SubmitReceipt:
    receipt = pipeline.submit(invoices, deliveries)
    await pipeline.wait()
    return receipt


def compare_folders(
    invoice_dir: Path,
    delivery_dir: Path,
    output_csv: Path,
    config: AppConfig | None = None,
    pipeline: BatchProcessingPipeline | None = None,
    verbose: bool = False,
) -> dict[str, int]:
    """Compare invoices against delivery orders and export sessions to CSV.

    Documents are paired by sorted filename position within each folder.

    Args:
        invoice_dir: Directory containing invoice documents.
        delivery_dir: Directory containing delivery order documents.
        output_csv: Path for the output CSV file.
        config: Application configuration; loaded from disk by default.
        pipeline: Pre-built pipeline; built from ``config`` by default.
        verbose: Whether to print one line per pair.

    Returns:
        Summary dict with total, completed, and failed pair counts.
    """
    config = config or load_config()
    pipeline = pipeline or BatchProcessingPipeline.from_config(config)

    invoice_paths = _find_documents(invoice_dir)
    delivery_paths = _find_documents(delivery_dir)
    if not invoice_paths or not delivery_paths:
        logger.warning(
            "Need at least one document in each of %s and %s",
            invoice_dir,
            delivery_dir,
        )
        return {"total": 0, "completed": 0, "failed": 0}

    logger.info(
        "Found %d invoices and %d delivery orders",
        len(invoice_paths),
        len(delivery_paths),
    )

    temp_dir = Path(config.uploads.temp_dir)
    invoices = _stage(invoice_paths, temp_dir)
    try:
        deliveries = _stage(delivery_paths, temp_dir)
    except OSError:
        cleanup_files([f.path for f in invoices])
        raise

    receipt = asyncio.run(_run_batch(pipeline, invoices, deliveries))
    pair_count = receipt.accepted_pair_count
    batch_error = pipeline.status_snapshot().error

    rows: list[dict[str, object]] = []
    for index, session_id in enumerate(receipt.session_ids):
        session = (
            pipeline.store.get_session(session_id) if session_id is not None else None
        )
        if session is None:
            rows.append(
                _missing_row(index + 1, invoices[index], deliveries[index], batch_error)
            )
        else:
            rows.append(_session_row(index + 1, session))
    if verbose:
        for row in rows:
            print(
                f"[{row['pair']}/{pair_count}] {row['invoice_filename']} + "
                f"{row['delivery_order_filename']}: {row['status']}"
            )

    _write_csv(rows, output_csv)
    logger.info("Results written to %s", output_csv)

    completed = sum(1 for row in rows if row["status"] == "completed")
    summary = {
        "total": pair_count,
        "completed": completed,
        "failed": pair_count - completed,
    }
    _print_summary(summary, output_csv)
    return summary


def _session_row(pair: int, session: SessionInfo) -> dict[str, object]:
    return {
        "pair": pair,
        "session_id": session.id,
        "invoice_filename": session.invoice_filename,
        "delivery_order_filename": session.delivery_order_filename,
        "status": session.status.value,
        "match_count": session.match_count,
        "warning_count": session.warning_count,
        "error_count": session.error_count,
        "error": session.error_message,
        "completed_at": (
            session.completed_at.isoformat() if session.completed_at else None
        ),
    }


def _missing_row(
    pair: int,
    invoice: UploadedFile,
    delivery: UploadedFile,
    batch_error: str | None,
) -> dict[str, object]:
    """Row for a pair that ended without a stored session."""
    prefix = f"Error in pair {pair}: "
    if batch_error and batch_error.startswith(prefix):
        error = batch_error[len(prefix):]
    else:
        error = "No session was recorded for this pair"
    return {
        "pair": pair,
        "session_id": None,
        "invoice_filename": invoice.name,
        "delivery_order_filename": delivery.name,
        "status": "error",
        "match_count": 0,
        "warning_count": 0,
        "error_count": 0,
        "error": error,
        "completed_at": None,
    }


def _write_csv(results: list[dict[str, object]], output_path: Path) -> None:
    """Write session rows to a CSV file.

    Args:
        results: List of row dictionaries.
        output_path: Path for the output CSV file.
    """
    if not results:
        return

    all_keys: set[str] = set()
    for r in results:
        all_keys.update(r.keys())

    extra_columns = sorted(all_keys - set(_META_COLUMNS))
    columns = [c for c in _META_COLUMNS if c in all_keys] + extra_columns

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(results)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    print(f"\n{'=' * 50}")
    print("Batch Comparison Complete")
    print(f"{'=' * 50}")
    print(f"Pairs:      {summary['total']}")
    print(f"Completed:  {summary['completed']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output_csv}")


def assess_document(
    file_path: Path, config: AppConfig | None = None
) -> dict[str, object]:
    """Run the quality gate over one document.

    Plain ``.txt`` files are assessed as-is; anything else goes through
    the configured OCR backend first.

    Args:
        file_path: Document or text file to assess.
        config: Application configuration; loaded from disk by default.

    Returns:
        Dictionary with filename and the gate's assessment.

    Raises:
        RuntimeError: If text extraction fails.
    """
    config = config or load_config()
    if file_path.suffix.lower() == ".txt":
        text = file_path.read_text(encoding="utf-8")
    else:
        outcome = asyncio.run(create_extractor(config.ocr).extract(file_path))
        if outcome.error:
            raise RuntimeError(outcome.error)
        text = outcome.text

    gate = DocumentQualityGate(
        GateOptions(
            min_product_lines=config.quality_gate.min_product_lines,
            repetition_limit=config.quality_gate.repetition_limit,
            pass_score=config.quality_gate.pass_score,
        )
    )
    return {"filename": file_path.name, **asdict(gate.assess(text))}


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Invoice / Delivery Order Matcher",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-c", "--config", type=Path, default=None, help="YAML configuration file"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    compare_parser = subparsers.add_parser(
        "compare", help="Compare a folder of invoices with a folder of delivery orders"
    )
    compare_parser.add_argument(
        "invoice_dir", type=Path, help="Directory with invoice documents"
    )
    compare_parser.add_argument(
        "delivery_dir", type=Path, help="Directory with delivery order documents"
    )
    compare_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("comparisons.csv"),
        help="Output CSV file (default: comparisons.csv)",
    )
    compare_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    assess_parser = subparsers.add_parser(
        "assess", help="Check whether a document looks like a product listing"
    )
    assess_parser.add_argument("file", type=Path, help="Document or .txt file")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command == "compare":
        for directory in (args.invoice_dir, args.delivery_dir):
            if not directory.is_dir():
                print(f"Error: {directory} is not a directory", file=sys.stderr)
                sys.exit(1)
        compare_folders(
            args.invoice_dir,
            args.delivery_dir,
            args.output,
            config=config,
            verbose=args.verbose,
        )
    elif args.command == "assess":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        try:
            report = assess_document(args.file, config)
        except RuntimeError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        print(json.dumps(report, indent=2))


if __name__ == "__main__":
    main()
