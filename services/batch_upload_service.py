"""
Batch upload service.

Inserts validated records into the products table in fixed-size batches.
A batch that fails as a whole is retried one record at a time, so a single
bad row (usually a SKU that already exists) never blocks the rest.

Batches run sequentially. Completed batches stay persisted if the run is
interrupted.
"""

import asyncio
from typing import Any, Callable, Optional
import structlog

from supabase import Client

from config import get_supabase_client, settings
from config.inventory_fields import FIELD_COLUMNS
from exceptions import PersistenceError
from models.bulk_upload import (
    CanonicalField,
    InsertedRecord,
    UploadProgress,
    UploadRowError,
    ValidatedRecord,
)

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[UploadProgress], None]

# PostgreSQL unique_violation
UNIQUE_VIOLATION = "23505"


def is_unique_violation(error: Exception) -> bool:
    """True if a store error comes from a unique constraint."""
    if getattr(error, "code", None) == UNIQUE_VIOLATION:
        return True
    return "duplicate" in str(error).lower()


def record_to_row(record: ValidatedRecord, org_id: str) -> dict[str, Any]:
    """Products table row for a validated record."""
    return {
        "org_id": org_id,
        FIELD_COLUMNS[CanonicalField.SKU]: record.sku,
        FIELD_COLUMNS[CanonicalField.NAME]: record.name,
        FIELD_COLUMNS[CanonicalField.DESCRIPTION]: record.description,
        FIELD_COLUMNS[CanonicalField.BRAND]: record.brand,
        FIELD_COLUMNS[CanonicalField.EXTERNAL_REF]: record.external_ref,
        FIELD_COLUMNS[CanonicalField.PRICE]: float(record.price),
        FIELD_COLUMNS[CanonicalField.COST]: float(record.cost) if record.cost is not None else None,
        FIELD_COLUMNS[CanonicalField.STOCK]: record.stock,
        FIELD_COLUMNS[CanonicalField.MIN_STOCK]: record.min_stock,
        FIELD_COLUMNS[CanonicalField.STATUS]: record.status.value,
    }


def _inserted(record: ValidatedRecord, product_id: str) -> InsertedRecord:
    return InsertedRecord(
        product_id=str(product_id),
        row_number=record.row_number,
        sku=record.sku,
        stock=record.stock,
        cost=record.cost,
        price=record.price,
    )


class BatchUploadService:
    """
    Insert validated records with per-record fallback.
    """

    def __init__(
        self,
        db: Optional[Client] = None,
        batch_size: Optional[int] = None,
    ):
        self.db = db or get_supabase_client()
        self.table = "products"
        self.batch_size = batch_size or settings.upload_batch_size

    async def upload(
        self,
        records: list[ValidatedRecord],
        org_id: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> tuple[UploadProgress, list[InsertedRecord]]:
        """
        Insert all records for an organization.

        Args:
            records: Valid records from the validation stage
            org_id: Owner organization
            on_progress: Receives a snapshot when each batch starts and ends

        Returns:
            (final progress, records the store accepted)

        Per-record failures end up in progress.errors; nothing is raised
        for them.
        """
        batches = [
            records[i:i + self.batch_size]
            for i in range(0, len(records), self.batch_size)
        ]
        progress = UploadProgress(total_batches=len(batches))
        inserted: list[InsertedRecord] = []

        logger.info(
            "product_upload_started",
            org_id=org_id,
            records=len(records),
            batches=len(batches),
            batch_size=self.batch_size
        )

        for index, batch in enumerate(batches, start=1):
            progress.current_batch = index
            self._emit(on_progress, progress)

            batch_inserted, batch_errors = self._insert_batch(batch, org_id, index)

            inserted.extend(batch_inserted)
            progress.success_count += len(batch_inserted)
            progress.error_count += len(batch_errors)
            progress.errors = progress.errors + batch_errors
            progress.completed_batches = index
            self._emit(on_progress, progress)

            await asyncio.sleep(0)

        logger.info(
            "product_upload_completed",
            org_id=org_id,
            success=progress.success_count,
            errors=progress.error_count
        )

        return progress, inserted

    def _insert_batch(
        self,
        batch: list[ValidatedRecord],
        org_id: str,
        index: int,
    ) -> tuple[list[InsertedRecord], list[UploadRowError]]:
        """One bulk insert, falling back to record-by-record."""
        try:
            result = (
                self.db.table(self.table)
                .insert([record_to_row(r, org_id) for r in batch])
                .execute()
            )
            ids_by_sku = {row["sku"]: row["id"] for row in result.data}
            inserted, missing = [], []
            for record in batch:
                if record.sku in ids_by_sku:
                    inserted.append(_inserted(record, ids_by_sku[record.sku]))
                else:
                    missing.append(UploadRowError(
                        row_number=record.row_number,
                        message="Insert returned no data"
                    ))

            logger.info("batch_inserted", batch=index, count=len(inserted))

            return inserted, missing

        except Exception as e:
            logger.warning(
                "batch_insert_failed",
                batch=index,
                count=len(batch),
                error=str(e)
            )

        inserted, errors = [], []
        for record in batch:
            try:
                inserted.append(self._insert_one(record, org_id))
            except PersistenceError as e:
                errors.append(UploadRowError(row_number=e.row_number, message=e.to_row_message()))

        logger.info(
            "batch_retried_individually",
            batch=index,
            inserted=len(inserted),
            failed=len(errors)
        )

        return inserted, errors

    def _insert_one(self, record: ValidatedRecord, org_id: str) -> InsertedRecord:
        """
        Insert a single record.

        Raises:
            PersistenceError: If the store rejects the record
        """
        try:
            result = (
                self.db.table(self.table)
                .insert(record_to_row(record, org_id))
                .execute()
            )
        except Exception as e:
            duplicate = is_unique_violation(e)
            logger.debug(
                "product_insert_failed",
                row_number=record.row_number,
                sku=record.sku,
                duplicate=duplicate,
                error=str(e)
            )
            raise PersistenceError(record.row_number, record.sku, str(e), duplicate=duplicate) from e

        if not result.data:
            raise PersistenceError(record.row_number, record.sku, "Insert returned no data")

        return _inserted(record, result.data[0]["id"])

    @staticmethod
    def _emit(on_progress: Optional[ProgressCallback], progress: UploadProgress) -> None:
        if on_progress is not None:
            on_progress(progress.model_copy(deep=True))
