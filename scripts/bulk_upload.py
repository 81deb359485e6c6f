#!/usr/bin/env python3
"""
Bulk inventory upload from the command line.

Runs a file through decode, automatic mapping, validation and upload,
printing progress and a summary along the way.

Usage:
    python scripts/bulk_upload.py productos.xlsx --org-id ORG
    python scripts/bulk_upload.py productos.csv --org-id ORG --actor USER
    python scripts/bulk_upload.py productos.csv --org-id ORG --dry-run
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from exceptions import AppError
from models.bulk_upload import ProcessingResult, UploadProgress
from models.upload_log import UploadOutcome
from services.upload_session_service import UploadSession

# Row errors printed before "... and N more"
MAX_PRINTED_ERRORS = 20


def print_progress(label: str, pct: int) -> None:
    print(f"\r{label}: {pct:3d}%", end="", flush=True)


def print_batch(progress: UploadProgress) -> None:
    print(
        f"\rBatch {progress.current_batch}/{progress.total_batches}  "
        f"ok={progress.success_count} failed={progress.error_count}",
        end="",
        flush=True
    )


def print_validation(result: ProcessingResult) -> None:
    print("\n" + "-" * 60)
    print(f"Rows:        {result.total_rows}")
    print(f"Valid:       {result.valid_count}")
    print(f"With errors: {result.error_row_count}")
    for warning in result.warnings:
        print(f"WARNING: {warning}")
    for error in result.errors[:MAX_PRINTED_ERRORS]:
        print(f"  row {error.row_number:>5}  {error.field:<12} {error.message} [{error.value}]")
    if len(result.errors) > MAX_PRINTED_ERRORS:
        print(f"  ... and {len(result.errors) - MAX_PRINTED_ERRORS} more")


def print_outcome(outcome: UploadOutcome) -> None:
    progress = outcome.progress
    print("\n" + "-" * 60)
    print(f"Inserted: {progress.success_count}")
    print(f"Failed:   {progress.error_count}")
    for error in progress.errors[:MAX_PRINTED_ERRORS]:
        print(f"  row {error.row_number:>5}  {error.message}")
    if outcome.lot is not None:
        print(f"Lot:      {outcome.lot.lot_number} ({outcome.lot.total_stock} units)")
    for warning in outcome.warnings:
        print(f"WARNING: {warning}")


async def run(path: Path, org_id: str, actor: str, dry_run: bool) -> int:
    session = UploadSession(org_id, actor=actor)

    decoded = await session.decode(
        path.read_bytes(), path.name, on_progress=lambda p: print_progress("Reading", p)
    )
    print(f"\n{decoded.total_rows} rows, {len(decoded.headers)} columns (sheet {decoded.sheet_name})")

    mapping = await session.suggest_mapping()
    print("\nColumn mapping" + (" (AI assisted)" if mapping.used_external else "") + ":")
    for explanation in mapping.explanations:
        print(f"  {explanation.file_header:<25} -> {explanation.target_field.value:<12} {explanation.reason}")
    for header in mapping.unmapped_headers:
        print(f"  {header:<25} -> (ignored)")

    result = await session.validate(on_progress=lambda p: print_progress("Validating", p))
    print_validation(result)

    if dry_run:
        print("\nDry run: nothing was uploaded")
        return 0 if result.can_upload else 1

    outcome = await session.upload(on_progress=print_batch)
    print_outcome(outcome)
    return 0 if outcome.progress.success_count else 1


def main():
    parser = argparse.ArgumentParser(
        description="Bulk inventory upload",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/bulk_upload.py productos.xlsx --org-id ORG
  python scripts/bulk_upload.py productos.csv --org-id ORG --dry-run
        """
    )
    parser.add_argument("file", type=Path, help="CSV, TSV, TXT, XLS, XLSX or ODS file")
    parser.add_argument("--org-id", required=True, help="Owner organization ID")
    parser.add_argument("--actor", default=None, help="User ID recorded in the upload log")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Stop after validation and print the summary"
    )

    args = parser.parse_args()

    if not args.file.is_file():
        print(f"Error: file not found: {args.file}")
        sys.exit(1)

    try:
        code = asyncio.run(run(args.file, args.org_id, args.actor, args.dry_run))
    except AppError as e:
        print(f"\nError [{e.code}]: {e.message}")
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
