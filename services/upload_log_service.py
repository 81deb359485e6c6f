"""
Upload audit log.

Records every upload attempt in bulk_uploads, append-only. A failed audit
write never fails the upload: it is logged and reported as None.
"""
import structlog
from decimal import Decimal
from typing import Optional, Sequence, Union

from supabase import Client

from config import get_supabase_client
from config.inventory_fields import MAX_LOGGED_ERRORS
from exceptions import DatabaseError
from models.bulk_upload import RowError, UploadRowError
from models.upload_log import UploadHistoryResponse, UploadLogEntry, UploadLogStatus

logger = structlog.get_logger(__name__)

LoggedError = Union[RowError, UploadRowError]


class UploadLogService:
    def __init__(self, db: Optional[Client] = None):
        self.db = db or get_supabase_client()
        self.table = "bulk_uploads"

    def log_attempt(
        self,
        org_id: str,
        actor: Optional[str],
        file_name: str,
        total_rows: int,
        success_rows: int,
        error_rows: int,
        errors: Sequence[LoggedError],
        lot_id: Optional[str] = None,
        total_stock: int = 0,
        inventory_value: Decimal = Decimal("0"),
    ) -> Optional[UploadLogEntry]:
        """Record one upload attempt. Returns None if the write failed."""
        status = UploadLogStatus.COMPLETED if success_rows > 0 else UploadLogStatus.FAILED
        errors_json = [e.model_dump(mode="json") for e in errors[:MAX_LOGGED_ERRORS]]

        try:
            result = self.db.table(self.table).insert({
                "org_id": org_id,
                "uploaded_by": actor,
                "file_name": file_name,
                "total_rows": total_rows,
                "success_rows": success_rows,
                "error_rows": error_rows,
                "status": status.value,
                "errors_json": errors_json,
                "lot_id": lot_id,
                "total_stock": total_stock,
                "inventory_value": float(inventory_value),
            }).execute()
            entry = UploadLogEntry(**result.data[0])
        except Exception as e:
            # Never let audit logging break the upload response
            logger.warning(
                "upload_log_write_failed",
                org_id=org_id,
                file_name=file_name,
                error=str(e),
            )
            return None

        logger.info(
            "upload_logged",
            upload_id=entry.id,
            org_id=org_id,
            file_name=file_name,
            status=status.value,
            success_rows=success_rows,
            error_rows=error_rows,
            errors_truncated=len(errors) > MAX_LOGGED_ERRORS,
        )
        return entry

    def list_recent(self, org_id: str, limit: int = 20) -> UploadHistoryResponse:
        """Most recent uploads for an organization, with their lot number."""
        try:
            result = (
                self.db.table(self.table)
                .select("*, inventory_lots(lot_number)")
                .eq("org_id", org_id)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error("list_uploads_failed", org_id=org_id, error=str(e))
            raise DatabaseError("select", str(e))

        entries = []
        for row in result.data:
            row = dict(row)
            lot = row.pop("inventory_lots", None) or {}
            if isinstance(lot, list):
                lot = lot[0] if lot else {}
            entries.append(UploadLogEntry(**row, lot_number=lot.get("lot_number")))

        return UploadHistoryResponse(data=entries, total=len(entries))


# Singleton instance
_upload_log_service: Optional[UploadLogService] = None


def get_upload_log_service() -> UploadLogService:
    """Get or create UploadLogService instance."""
    global _upload_log_service
    if _upload_log_service is None:
        _upload_log_service = UploadLogService()
    return _upload_log_service
