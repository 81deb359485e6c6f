"""
Inventory lot service.

Creates one numbered lot per upload that inserted at least one product,
and deletes lots together with their products when no order references
them.

Lot numbers are LOT-<year>-<seq>. The sequence is read from existing lots
and the insert relies on the unique (org_id, lot_number) constraint: if a
concurrent upload took the number first, it is recomputed and retried.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
import structlog

from supabase import Client

from config import get_supabase_client
from config.inventory_fields import (
    LOT_NUMBER_MAX_ATTEMPTS,
    LOT_NUMBER_PREFIX,
    LOT_SEQUENCE_DIGITS,
    LOT_WRITE_BATCH_SIZE,
)
from exceptions import (
    AppError,
    DatabaseError,
    LotNotFoundError,
    ReferencedInventoryError,
)
from models.bulk_upload import InsertedRecord
from models.inventory_lot import (
    LotCreate,
    LotDeleteResponse,
    LotEntryCreate,
    LotListResponse,
    LotResponse,
)
from services.batch_upload_service import is_unique_violation

logger = structlog.get_logger(__name__)


def _chunks(items: list, size: int):
    for i in range(0, len(items), size):
        yield items[i:i + size]


class LotService:
    """
    Inventory lot operations.
    """

    def __init__(self, db: Optional[Client] = None):
        self.db = db or get_supabase_client()
        self.table = "inventory_lots"
        self.items_table = "inventory_lot_items"
        self.products_table = "products"
        self.order_items_table = "order_items"

    # ===================
    # NUMBERING
    # ===================

    def next_lot_number(self, org_id: str, year: Optional[int] = None) -> str:
        """
        Next free lot number for an organization and year.

        LOT-2025-0007 follows LOT-2025-0006; the first lot of a year is 0001.
        """
        year = year or datetime.now(timezone.utc).year
        prefix = f"{LOT_NUMBER_PREFIX}-{year}-"

        # Zero-padded sequences sort lexically
        result = (
            self.db.table(self.table)
            .select("lot_number")
            .eq("org_id", org_id)
            .like("lot_number", f"{prefix}%")
            .order("lot_number", desc=True)
            .limit(1)
            .execute()
        )

        highest = 0
        if result.data:
            suffix = str(result.data[0]["lot_number"])[len(prefix):]
            if suffix.isdigit():
                highest = int(suffix)

        return f"{prefix}{highest + 1:0{LOT_SEQUENCE_DIGITS}d}"

    # ===================
    # CREATE
    # ===================

    def create_lot(
        self,
        org_id: str,
        file_name: str,
        inserted_records: list[InsertedRecord],
        created_by: Optional[str] = None,
    ) -> Optional[LotResponse]:
        """
        Create the lot for an upload and its entries.

        Args:
            org_id: Owner organization
            file_name: Uploaded file name
            inserted_records: Products the upload created
            created_by: Acting user

        Returns:
            The lot, or None when nothing was inserted

        Raises:
            DatabaseError: If the lot itself cannot be written
        """
        if not inserted_records:
            logger.info("lot_skipped_no_products", org_id=org_id, file_name=file_name)
            return None

        total_stock = sum(r.stock for r in inserted_records)
        total_cost = sum((r.stock * (r.cost or Decimal("0")) for r in inserted_records), Decimal("0"))
        total_retail = sum((r.stock * r.price for r in inserted_records), Decimal("0"))

        result = None
        for attempt in range(1, LOT_NUMBER_MAX_ATTEMPTS + 1):
            lot_number = self.next_lot_number(org_id)
            payload = LotCreate(
                org_id=org_id,
                lot_number=lot_number,
                file_name=file_name,
                total_products=len(inserted_records),
                total_stock=total_stock,
                total_cost=total_cost,
                total_retail_value=total_retail,
                created_by=created_by,
            ).model_dump(mode="json")

            try:
                result = self.db.table(self.table).insert(payload).execute()
                break
            except Exception as e:
                if is_unique_violation(e) and attempt < LOT_NUMBER_MAX_ATTEMPTS:
                    logger.warning(
                        "lot_number_taken",
                        org_id=org_id,
                        lot_number=lot_number,
                        attempt=attempt
                    )
                    continue
                logger.error("create_lot_failed", org_id=org_id, lot_number=lot_number, error=str(e))
                raise DatabaseError("insert", str(e))

        if not result.data:
            logger.error("create_lot_no_data", org_id=org_id, lot_number=lot_number)
            raise DatabaseError("insert", "no data returned")

        lot = LotResponse(**result.data[0])

        logger.info(
            "lot_created",
            lot_id=lot.id,
            lot_number=lot.lot_number,
            products=lot.total_products,
            total_stock=lot.total_stock
        )

        self._insert_entries(lot.id, inserted_records)

        return lot

    def _insert_entries(self, lot_id: str, inserted_records: list[InsertedRecord]) -> int:
        """Write lot entries in batches. Failures are logged, not raised."""
        written = 0
        for batch in _chunks(inserted_records, LOT_WRITE_BATCH_SIZE):
            rows = [
                LotEntryCreate(
                    lot_id=lot_id,
                    product_id=r.product_id,
                    initial_stock=r.stock,
                    remaining_stock=r.stock,
                    unit_cost=r.cost,
                    unit_price=r.price,
                ).model_dump(mode="json")
                for r in batch
            ]
            try:
                self.db.table(self.items_table).insert(rows).execute()
                written += len(rows)
            except Exception as e:
                logger.error(
                    "lot_entries_insert_failed",
                    lot_id=lot_id,
                    count=len(rows),
                    error=str(e)
                )

        logger.info("lot_entries_written", lot_id=lot_id, written=written, expected=len(inserted_records))
        return written

    # ===================
    # READ
    # ===================

    def get_lot(self, lot_id: str) -> LotResponse:
        """
        Get a lot by ID.

        Raises:
            LotNotFoundError: If the lot doesn't exist
            DatabaseError: If the query fails
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", lot_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_lot_failed", lot_id=lot_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise LotNotFoundError(lot_id)

        return LotResponse(**result.data[0])

    def list_lots(self, org_id: str, limit: int = 50) -> LotListResponse:
        """Lots for an organization, newest first."""
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("org_id", org_id)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error("list_lots_failed", org_id=org_id, error=str(e))
            raise DatabaseError("select", str(e))

        lots = [LotResponse(**row) for row in result.data]
        return LotListResponse(data=lots, total=len(lots))

    # ===================
    # DELETE
    # ===================

    def delete_lot(self, lot_id: str) -> LotDeleteResponse:
        """
        Delete a lot and the products it created.

        Refused when any of the lot's products is on an order. The check and
        the deletes are separate statements: an order placed in between is a
        known, accepted race for this admin-only action.

        Raises:
            LotNotFoundError: If the lot doesn't exist
            ReferencedInventoryError: If orders reference its products
            DatabaseError: If a query fails
        """
        lot = self.get_lot(lot_id)

        logger.info("deleting_lot", lot_id=lot_id, lot_number=lot.lot_number)

        try:
            items = (
                self.db.table(self.items_table)
                .select("product_id")
                .eq("lot_id", lot_id)
                .execute()
            )
            product_ids = list(dict.fromkeys(row["product_id"] for row in items.data))

            referenced = self._referenced_products(product_ids)
            if referenced:
                logger.warning(
                    "lot_delete_blocked",
                    lot_id=lot_id,
                    blocked_count=len(referenced)
                )
                raise ReferencedInventoryError(lot_id, len(referenced))

            deleted = 0
            for batch in _chunks(product_ids, LOT_WRITE_BATCH_SIZE):
                result = (
                    self.db.table(self.products_table)
                    .delete()
                    .eq("org_id", lot.org_id)
                    .in_("id", batch)
                    .execute()
                )
                deleted += len(result.data or [])

            # Entries go with the lot (on delete cascade)
            self.db.table(self.table).delete().eq("id", lot_id).execute()

        except AppError:
            raise
        except Exception as e:
            logger.error("delete_lot_failed", lot_id=lot_id, error=str(e))
            raise DatabaseError("delete", str(e))

        logger.info("lot_deleted", lot_id=lot_id, deleted_products=deleted)

        return LotDeleteResponse(lot_id=lot_id, deleted_products=deleted)

    def _referenced_products(self, product_ids: list[str]) -> set[str]:
        """Products that appear on at least one order line."""
        referenced: set[str] = set()
        for batch in _chunks(product_ids, LOT_WRITE_BATCH_SIZE):
            result = (
                self.db.table(self.order_items_table)
                .select("product_id")
                .in_("product_id", batch)
                .execute()
            )
            referenced.update(row["product_id"] for row in result.data)
        return referenced


# Singleton instance
_lot_service: Optional[LotService] = None


def get_lot_service() -> LotService:
    """Get or create LotService instance."""
    global _lot_service
    if _lot_service is None:
        _lot_service = LotService()
    return _lot_service
