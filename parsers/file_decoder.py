"""
File decoder for inventory uploads.

Turns an uploaded CSV/TSV/TXT/XLS/XLSX/ODS file into ordered headers and
raw string rows, plus a first-pass column mapping from the header alias
table.

Delimited text is read in chunks and reports progress after each one.
Workbooks are read whole (files are capped at settings.max_upload_mb) and
only the first sheet is used.
"""

import asyncio
import csv
from io import BytesIO, StringIO
from typing import Callable, Optional
import structlog

import pandas as pd

from config import settings
from config.inventory_fields import (
    HEADER_ALIASES,
    HEADER_SCAN_ROWS,
    SUPPORTED_EXTENSIONS,
)
from exceptions import DecodeError
from models.bulk_upload import CanonicalField, ColumnMapping, DecodedFile, RawRow
from utils.text_utils import cell_to_str, normalize_header

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int], None]

DELIMITED_EXTENSIONS = ("csv", "tsv", "txt")

EXCEL_ENGINES = {
    "xlsx": "openpyxl",
    "xls": "xlrd",
    "ods": "odf",
}

# Latin American supplier files are often latin-1
TEXT_ENCODINGS = ("utf-8-sig", "utf-8", "latin-1")

SNIFF_DELIMITERS = ",;\t|"


def file_extension(file_name: str) -> str:
    """Lowercase extension without the dot ("" if there is none)."""
    if "." not in file_name:
        return ""
    return file_name.rsplit(".", 1)[-1].lower().strip()


async def decode_file(
    content: bytes,
    file_name: str,
    on_progress: Optional[ProgressCallback] = None,
    chunk_size: Optional[int] = None,
) -> DecodedFile:
    """
    Decode an uploaded file.

    Args:
        content: Raw file bytes
        file_name: Original file name; its extension selects the format
        on_progress: Called with 0-100 while decoding
        chunk_size: Rows per progress step (defaults to settings)

    Returns:
        DecodedFile with headers, rows and alias-based mappings

    Raises:
        DecodeError: Unsupported extension, empty/oversized/unreadable
            file, or no header row
    """
    ext = file_extension(file_name)
    chunk_size = chunk_size or settings.decode_chunk_size

    if ext not in SUPPORTED_EXTENSIONS:
        raise DecodeError(
            message=f"Unsupported file type '.{ext}'" if ext else "File has no extension",
            code="UNSUPPORTED_FILE_TYPE",
            details={"file_name": file_name, "supported": list(SUPPORTED_EXTENSIONS)}
        )
    if not content:
        raise DecodeError(
            message="The file is empty",
            code="EMPTY_FILE",
            details={"file_name": file_name}
        )
    if len(content) > settings.max_upload_bytes:
        raise DecodeError(
            message=f"File exceeds the {settings.max_upload_mb} MB limit",
            code="FILE_TOO_LARGE",
            details={"file_name": file_name, "size_bytes": len(content)}
        )

    logger.info("decoding_file", file_name=file_name, extension=ext, size_bytes=len(content))

    if ext in DELIMITED_EXTENSIONS:
        headers, rows = await _decode_delimited(content, ext, on_progress, chunk_size)
        sheet_name = "CSV"
    else:
        headers, rows, sheet_name = await _decode_workbook(content, ext, on_progress, chunk_size)

    mappings = detect_alias_mappings(headers)
    await _report(on_progress, 100)

    logger.info(
        "file_decoded",
        file_name=file_name,
        sheet=sheet_name,
        columns=len(headers),
        rows=len(rows),
        alias_mapped=sum(1 for m in mappings if m.target_field)
    )

    return DecodedFile(
        file_name=file_name,
        sheet_name=sheet_name,
        headers=headers,
        rows=rows,
        mappings=mappings,
    )


# ===================
# HEADER ALIASES
# ===================

def match_alias(header: str) -> Optional[CanonicalField]:
    """Exact alias lookup on the normalized header."""
    return HEADER_ALIASES.get(normalize_header(header))


def detect_alias_mappings(headers: list[str]) -> list[ColumnMapping]:
    """
    First-pass mapping: one entry per header, alias matches only.

    When two headers alias the same field, the first one keeps it.
    """
    claimed: set[CanonicalField] = set()
    mappings = []
    for header in headers:
        field = match_alias(header)
        if field is not None and field in claimed:
            field = None
        if field is not None:
            claimed.add(field)
        mappings.append(ColumnMapping(
            file_header=header,
            target_field=field,
            auto_detected=field is not None,
        ))
    return mappings


# ===================
# DELIMITED TEXT
# ===================

async def _decode_delimited(
    content: bytes,
    ext: str,
    on_progress: Optional[ProgressCallback],
    chunk_size: int,
) -> tuple[list[str], list[RawRow]]:
    """Stream a CSV/TSV/TXT file in chunks."""
    text = _decode_text(content)
    sep = "\t" if ext == "tsv" else _sniff_delimiter(text)

    header_cells = _first_record(text, sep)
    if not any(cell.strip() for cell in header_cells):
        raise DecodeError(
            message="The first row (column headers) is empty",
            code="MISSING_HEADERS"
        )
    width = len(header_cells)
    total_lines = max(1, text.count("\n") + (0 if text.endswith("\n") else 1))

    logger.debug("csv_decoding", separator=sep, columns=width, lines=total_lines)

    headers: Optional[list[str]] = None
    rows: list[RawRow] = []
    lines_seen = 0

    try:
        reader = pd.read_csv(
            StringIO(text),
            sep=sep,
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            engine="python",
            chunksize=chunk_size,
            # Rows longer than the header are truncated to its width
            on_bad_lines=lambda bad_line: bad_line[:width],
        )
        for chunk in reader:
            for values in chunk.itertuples(index=False, name=None):
                cells = [cell_to_str(v) for v in values][:width]
                cells += [""] * (width - len(cells))
                if headers is None:
                    headers = build_headers(cells)
                    continue
                if not any(cells):
                    continue
                rows.append(RawRow(
                    row_number=len(rows) + 1,
                    data=dict(zip(headers, cells)),
                ))
            lines_seen += len(chunk)
            await _report(on_progress, min(99, round(lines_seen / total_lines * 100)))

    except Exception as e:
        logger.error("csv_read_failed", error=str(e), error_type=type(e).__name__)
        raise DecodeError(
            message="Failed to read file",
            details={"original_error": str(e)}
        ) from e

    if headers is None:
        raise DecodeError(
            message="The first row (column headers) is empty",
            code="MISSING_HEADERS"
        )

    return headers, rows


def _decode_text(content: bytes) -> str:
    """Decode bytes trying each known encoding in order."""
    for encoding in TEXT_ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise DecodeError(message="Could not detect the file's text encoding")


def _sniff_delimiter(text: str) -> str:
    """Detect the delimiter from the first lines; comma if unsure."""
    sample_lines = [line for line in text.splitlines()[:10] if line.strip()]
    if not sample_lines:
        return ","
    try:
        dialect = csv.Sniffer().sniff("\n".join(sample_lines[:5]), delimiters=SNIFF_DELIMITERS)
        return dialect.delimiter
    except csv.Error:
        return ","


def _first_record(text: str, sep: str) -> list[str]:
    """Cells of the first non-blank record."""
    for record in csv.reader(StringIO(text), delimiter=sep):
        if record:
            return record
    return []


# ===================
# WORKBOOKS
# ===================

async def _decode_workbook(
    content: bytes,
    ext: str,
    on_progress: Optional[ProgressCallback],
    chunk_size: int,
) -> tuple[list[str], list[RawRow], str]:
    """Read the first sheet of an XLS/XLSX/ODS workbook."""
    engine = EXCEL_ENGINES[ext]
    await _report(on_progress, 5)

    try:
        excel = pd.ExcelFile(BytesIO(content), engine=engine)
        await _report(on_progress, 25)

        if not excel.sheet_names:
            raise DecodeError(message="The workbook has no sheets", code="EMPTY_FILE")
        sheet_name = str(excel.sheet_names[0])

        df = excel.parse(sheet_name, header=None, dtype=str, keep_default_na=False)

    except DecodeError:
        raise
    except Exception as e:
        logger.error("excel_read_failed", error=str(e), engine=engine)
        raise DecodeError(
            message="Failed to read spreadsheet",
            details={"original_error": str(e), "engine": engine}
        ) from e

    await _report(on_progress, 50)

    grid = [
        [cell_to_str(v) for v in values]
        for values in df.itertuples(index=False, name=None)
    ]
    await _report(on_progress, 65)

    header_index = find_header_row(grid)
    if header_index is None:
        raise DecodeError(
            message="The sheet has no column headers",
            code="MISSING_HEADERS",
            details={"sheet": sheet_name}
        )

    headers = build_headers(grid[header_index])
    width = len(headers)
    data_rows = [cells for cells in grid[header_index + 1:] if any(cells)]
    total = len(data_rows)

    rows: list[RawRow] = []
    for start in range(0, total, chunk_size):
        for cells in data_rows[start:start + chunk_size]:
            cells = cells[:width] + [""] * (width - len(cells))
            rows.append(RawRow(
                row_number=len(rows) + 1,
                data=dict(zip(headers, cells)),
            ))
        done = min(start + chunk_size, total)
        await _report(on_progress, 65 + round(done / total * 25))

    logger.debug(
        "workbook_decoded",
        sheet=sheet_name,
        header_row=header_index,
        rows=len(rows)
    )

    return headers, rows, sheet_name


def find_header_row(grid: list[list[str]]) -> Optional[int]:
    """
    Locate the header row of a sheet.

    The first of the top HEADER_SCAN_ROWS rows with at least two non-empty
    cells, so title rows above the table are skipped. Falls back to the
    first non-empty row in that range.
    """
    scan = grid[:HEADER_SCAN_ROWS]
    for index, cells in enumerate(scan):
        if sum(1 for c in cells if c) >= 2:
            return index
    for index, cells in enumerate(scan):
        if any(cells):
            return index
    return None


def build_headers(cells: list[str]) -> list[str]:
    """
    Turn header cells into unique, non-empty column keys.

    ["SKU", "", "SKU"] -> ["SKU", "Column 2", "SKU (3)"]
    """
    seen: set[str] = set()
    headers = []
    for index, cell in enumerate(cells):
        name = cell.strip() or f"Column {index + 1}"
        while name in seen:
            name = f"{name} ({index + 1})"
        seen.add(name)
        headers.append(name)
    return headers


async def _report(on_progress: Optional[ProgressCallback], pct: int) -> None:
    """Report progress and yield to the event loop."""
    if on_progress is not None:
        on_progress(pct)
    await asyncio.sleep(0)
