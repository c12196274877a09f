"""Command-line interface for single-image and batch recognition.

Provides subcommands for recognizing one image to JSON and for
recognizing a folder of images with results exported to CSV. Source
images are never deleted by the CLI.
"""

import argparse
import csv
import json
import sys
import time
from pathlib import Path
from typing import Any

from src.pipeline.errors import PipelineError
from src.pipeline.orchestrator import RecognitionPipeline, RecognitionRequest
from src.recognition.models import RecognitionKind
from src.utils.config import load_config
from src.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = ("*.png", "*.jpg", "*.jpeg")
_META_COLUMNS = [
    "filename",
    "status",
    "kind",
    "processing_time_s",
    "error",
]
_KIND_CHOICES = [kind.value for kind in RecognitionKind]


def _find_images(input_dir: Path) -> list[Path]:
    """Find all supported image files in a directory.

    Args:
        input_dir: Directory to scan for images.

    Returns:
        Sorted list of image file paths.
    """
    files: list[Path] = []
    for ext in _SUPPORTED_EXTENSIONS:
        files.extend(input_dir.glob(ext))
        files.extend(input_dir.glob(ext.upper()))
    return sorted(set(files))


def _flatten(data: dict[str, Any], prefix: str = "") -> dict[str, object]:
    """Flatten a result mapping into CSV-friendly columns.

    Nested mappings become ``parent.child`` columns; lists of scalars are
    joined with ``"; "`` and lists of mappings are stored as JSON.
    """
    flat: dict[str, object] = {}
    for key, value in data.items():
        column = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, f"{column}."))
        elif isinstance(value, list):
            if any(isinstance(item, (dict, list)) for item in value):
                flat[column] = json.dumps(value, ensure_ascii=False)
            else:
                flat[column] = "; ".join(str(item) for item in value)
        else:
            flat[column] = value
    return flat


def recognize_file(
    file_path: Path,
    kind: str,
    pipeline: RecognitionPipeline | None = None,
) -> dict[str, Any]:
    """Recognize a single image and return structured results.

    Args:
        file_path: Path to the image file.
        kind: Recognition kind.
        pipeline: Pipeline to use; built from the loaded config if omitted.

    Returns:
        Dictionary with filename, kind, and the recognition data.
    """
    pipeline = pipeline or RecognitionPipeline(load_config())
    result = pipeline.run(RecognitionRequest(source_image_path=file_path, kind=kind))
    return {
        "filename": file_path.name,
        "kind": result.kind.value,
        "data": result.to_dict(),
    }


def process_folder(
    input_dir: Path,
    output_csv: Path,
    kind: str = RecognitionKind.GENERAL.value,
    verbose: bool = False,
) -> dict[str, int]:
    """Recognize all images in a folder and export results to CSV.

    Args:
        input_dir: Directory containing image files.
        output_csv: Path for the output CSV file.
        kind: Recognition kind applied to every image.
        verbose: Whether to print per-file progress.

    Returns:
        Summary dict with total, successful, and failed counts.
    """
    pipeline = RecognitionPipeline(load_config())

    files = _find_images(input_dir)
    if not files:
        logger.warning("No images found in %s", input_dir)
        return {"total": 0, "successful": 0, "failed": 0}

    logger.info("Found %d images to process", len(files))

    results: list[dict[str, object]] = []
    successful = 0
    failed = 0

    for i, file_path in enumerate(files, 1):
        if verbose:
            print(f"Processing [{i}/{len(files)}]: {file_path.name}")

        start_time = time.time()
        try:
            outcome = recognize_file(file_path, kind, pipeline)
            row: dict[str, object] = {
                "filename": file_path.name,
                "status": "success",
                "kind": outcome["kind"],
                "processing_time_s": round(time.time() - start_time, 2),
                "error": None,
            }
            row.update(_flatten(outcome["data"]))
            results.append(row)
            successful += 1
        except PipelineError as exc:
            logger.error("Failed to process %s: %s", file_path.name, exc.message)
            results.append(
                {
                    "filename": file_path.name,
                    "status": "failed",
                    "kind": kind,
                    "error": f"{exc.classification}: {exc.message}",
                }
            )
            failed += 1

    _write_csv(results, output_csv)
    logger.info("Results written to %s", output_csv)

    summary = {"total": len(files), "successful": successful, "failed": failed}
    _print_summary(summary, output_csv)
    return summary


def _write_csv(results: list[dict[str, object]], output_path: Path) -> None:
    """Write recognition results to a CSV file.

    Args:
        results: List of result dictionaries.
        output_path: Path for the output CSV file.
    """
    if not results:
        return

    all_keys: set[str] = set()
    for r in results:
        all_keys.update(r.keys())

    field_columns = sorted(all_keys - set(_META_COLUMNS))
    columns = [c for c in _META_COLUMNS if c in all_keys] + field_columns

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(results)


def _print_summary(summary: dict[str, int], output_csv: Path) -> None:
    """Print batch processing summary to stdout."""
    print(f"\n{'=' * 50}")
    print("Batch Recognition Complete")
    print(f"{'=' * 50}")
    print(f"Total:      {summary['total']}")
    print(f"Successful: {summary['successful']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output_csv}")


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Vehicle Document Recognition",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    batch_parser = subparsers.add_parser("batch", help="Recognize a folder of images")
    batch_parser.add_argument(
        "input_dir", type=Path, help="Input directory with images"
    )
    batch_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("results.csv"),
        help="Output CSV file (default: results.csv)",
    )
    batch_parser.add_argument(
        "-k",
        "--kind",
        choices=_KIND_CHOICES,
        default=RecognitionKind.GENERAL.value,
        help="Recognition kind (default: general)",
    )
    batch_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose output"
    )

    single_parser = subparsers.add_parser("recognize", help="Recognize a single image")
    single_parser.add_argument("file", type=Path, help="Image file to recognize")
    single_parser.add_argument(
        "-k",
        "--kind",
        choices=_KIND_CHOICES,
        default=RecognitionKind.GENERAL.value,
        help="Recognition kind (default: general)",
    )
    single_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    args = parser.parse_args(argv)

    setup_logging()

    if args.command == "batch":
        if not args.input_dir.is_dir():
            print(f"Error: {args.input_dir} is not a directory", file=sys.stderr)
            sys.exit(1)
        process_folder(args.input_dir, args.output, args.kind, args.verbose)
    elif args.command == "recognize":
        if not args.file.exists():
            print(f"Error: {args.file} does not exist", file=sys.stderr)
            sys.exit(1)
        try:
            result = recognize_file(args.file, args.kind)
        except PipelineError as exc:
            print(f"Error: {exc.classification}: {exc.message}", file=sys.stderr)
            sys.exit(2)
        output_str = json.dumps(result, indent=2, ensure_ascii=False)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output_str, encoding="utf-8")
            print(f"Output written to {args.output}")
        else:
            print(output_str)
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
