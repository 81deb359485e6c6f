"""
Row validation service.

Applies the product business rules to every decoded row and splits the
file into typed records ready to insert and per-field row errors.

Every rule is evaluated for every row, so one pass reports all of a row's
problems. Any error keeps the row out of the valid records.
"""

import asyncio
import re
import secrets
import time
from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional
import structlog

from config import settings
from config.inventory_fields import VALID_STATUSES
from models.bulk_upload import (
    CanonicalField,
    ColumnMapping,
    ProcessingResult,
    ProductStatus,
    RawRow,
    RowError,
    ValidatedRecord,
)
from services.column_mapping_service import ensure_unique_targets

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int], None]

_WHITESPACE = re.compile(r"\s")


# ===================
# NUMBER PARSING
# ===================

def parse_decimal(raw: str) -> Optional[Decimal]:
    """
    Parse a spreadsheet number.

    "1 250.50" -> 1250.50, "10,5" -> 10.5 (lone comma as decimal separator).
    Returns None for blanks, text, NaN and infinity.
    """
    text = _WHITESPACE.sub("", raw or "")
    if not text:
        return None
    if "." not in text and text.count(",") == 1:
        text = text.replace(",", ".")
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def parse_int(raw: str) -> Optional[int]:
    """
    Parse a whole number. "5" and "5.0" -> 5, "5.5" -> None.
    """
    value = parse_decimal(raw)
    if value is None or value != value.to_integral_value():
        return None
    return int(value)


# ===================
# PLACEHOLDER SKUS
# ===================

@dataclass(frozen=True)
class PlaceholderSkus:
    """
    Generates SKU-<timestamp>-<seed>-<row> codes for rows without a SKU.

    Create one per upload session: the same row always gets the same
    placeholder, so validating twice gives identical results.
    """
    stamp: int = field(default_factory=lambda: int(time.time() * 1000))
    seed: str = field(default_factory=lambda: secrets.token_hex(4))

    def for_row(self, row: RawRow) -> str:
        # Row numbers are unique within a file
        return f"SKU-{self.stamp}-{self.seed}-{row.row_number}"


# ===================
# SERVICE
# ===================

class RowValidationService:
    """
    Validate decoded rows against a column mapping.
    """

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        default_min_stock: Optional[int] = None,
    ):
        self.chunk_size = chunk_size or settings.validation_chunk_size
        self.default_min_stock = (
            settings.default_min_stock if default_min_stock is None else default_min_stock
        )

    async def validate(
        self,
        rows: list[RawRow],
        mappings: list[ColumnMapping],
        on_progress: Optional[ProgressCallback] = None,
        placeholders: Optional[PlaceholderSkus] = None,
    ) -> ProcessingResult:
        """
        Validate all rows, yielding to the event loop between chunks.

        Args:
            rows: Decoded rows
            mappings: Accepted column mapping
            on_progress: Called with 0-100 after each chunk
            placeholders: SKU generator for rows without one (pass the
                session's generator to make re-validation repeatable)

        Returns:
            A new ProcessingResult

        Raises:
            MappingConflictError: If two columns share a target field
        """
        ensure_unique_targets(mappings)
        placeholders = placeholders or PlaceholderSkus()

        columns = {m.target_field: m.file_header for m in mappings if m.target_field}
        sku_header = columns.get(CanonicalField.SKU)

        # Count first so every occurrence of a repeated SKU is flagged
        sku_counts = Counter(
            sku for sku in (row.get(sku_header).strip() for row in rows) if sku
        )

        total = len(rows)
        valid_records: list[ValidatedRecord] = []
        errors: list[RowError] = []
        duplicate_skus: list[str] = []

        logger.info("validation_started", rows=total, mapped_columns=len(columns))

        for start in range(0, total, self.chunk_size):
            for row in rows[start:start + self.chunk_size]:
                record, row_errors = self._validate_row(row, columns, sku_counts, placeholders)
                if row_errors:
                    errors.extend(row_errors)
                    duplicate_skus.extend(
                        e.value for e in row_errors if e.field == CanonicalField.SKU.value
                    )
                else:
                    valid_records.append(record)

            processed = min(start + self.chunk_size, total)
            if on_progress is not None:
                on_progress(round(processed / total * 100))
            await asyncio.sleep(0)

        if total == 0 and on_progress is not None:
            on_progress(100)

        warnings = []
        distinct_duplicates = len(set(duplicate_skus))
        if distinct_duplicates:
            warnings.append(
                f"Found {distinct_duplicates} duplicate SKU(s) in the file. "
                "Rows sharing a SKU were rejected."
            )
        unmapped = sum(1 for m in mappings if m.target_field is None)
        if unmapped:
            warnings.append(f"{unmapped} column(s) were not mapped and will be ignored.")

        result = ProcessingResult(
            total_rows=total,
            valid_records=valid_records,
            errors=errors,
            duplicate_skus=duplicate_skus,
            warnings=warnings,
        )

        logger.info(
            "validation_completed",
            rows=total,
            valid=result.valid_count,
            error_rows=result.error_row_count,
            errors=len(errors),
            duplicate_skus=distinct_duplicates
        )

        return result

    def _validate_row(
        self,
        row: RawRow,
        columns: dict[CanonicalField, str],
        sku_counts: Counter,
        placeholders: PlaceholderSkus,
    ) -> tuple[Optional[ValidatedRecord], list[RowError]]:
        """Apply every rule to one row."""
        errors: list[RowError] = []

        def value(target: CanonicalField) -> str:
            return row.get(columns.get(target)).strip()

        def fail(target: CanonicalField, raw: str, message: str) -> None:
            errors.append(RowError(
                row_number=row.row_number,
                field=target.value,
                value=raw,
                message=message,
            ))

        name = value(CanonicalField.NAME)
        if not name:
            fail(CanonicalField.NAME, name, "Name is required")

        price_raw = value(CanonicalField.PRICE)
        price = parse_decimal(price_raw)
        if not price_raw:
            fail(CanonicalField.PRICE, price_raw, "Price is required")
        elif price is None or price < 0:
            fail(CanonicalField.PRICE, price_raw, "Price must be a non-negative number")

        stock_raw = value(CanonicalField.STOCK)
        stock = parse_int(stock_raw)
        if not stock_raw:
            fail(CanonicalField.STOCK, stock_raw, "Stock is required")
        elif stock is None or stock < 0:
            fail(CanonicalField.STOCK, stock_raw, "Stock must be a non-negative whole number")

        cost_raw = value(CanonicalField.COST)
        cost = parse_decimal(cost_raw) if cost_raw else None
        if cost_raw and (cost is None or cost < 0):
            fail(CanonicalField.COST, cost_raw, "Cost must be a non-negative number")
            cost = None

        min_stock_raw = value(CanonicalField.MIN_STOCK)
        min_stock = self.default_min_stock
        if min_stock_raw:
            parsed = parse_int(min_stock_raw)
            if parsed is None or parsed < 0:
                fail(CanonicalField.MIN_STOCK, min_stock_raw, "Minimum stock must be a non-negative whole number")
            else:
                min_stock = parsed

        sku = value(CanonicalField.SKU)
        if sku:
            if sku_counts[sku] > 1:
                fail(CanonicalField.SKU, sku, "Duplicate SKU in file")
        else:
            sku = placeholders.for_row(row)

        status = value(CanonicalField.STATUS).lower()
        if status not in VALID_STATUSES:
            status = ProductStatus.ACTIVE.value

        if errors:
            return None, errors

        return ValidatedRecord(
            row_number=row.row_number,
            name=name,
            sku=sku,
            description=value(CanonicalField.DESCRIPTION) or None,
            brand=value(CanonicalField.BRAND) or None,
            external_ref=value(CanonicalField.EXTERNAL_REF) or None,
            price=price,
            cost=cost,
            stock=stock,
            min_stock=min_stock,
            status=status,
        ), []


# Singleton instance
_row_validation_service: Optional[RowValidationService] = None


def get_row_validation_service() -> RowValidationService:
    """Get or create RowValidationService instance."""
    global _row_validation_service
    if _row_validation_service is None:
        _row_validation_service = RowValidationService()
    return _row_validation_service
