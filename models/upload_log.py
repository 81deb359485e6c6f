"""
Upload log schemas.

One append-only record per upload attempt, plus the combined outcome
returned to the caller after the upload stage.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from models.base import BaseSchema, TimestampMixin
from models.bulk_upload import UploadProgress
from models.inventory_lot import LotResponse


class UploadLogStatus(str, Enum):
    """Outcome recorded for an upload attempt."""
    COMPLETED = "completed"
    FAILED = "failed"


class UploadLogEntry(TimestampMixin, BaseSchema):
    """Stored upload attempt."""

    id: str
    org_id: str
    uploaded_by: Optional[str] = None
    file_name: str
    total_rows: int
    success_rows: int
    error_rows: int
    status: UploadLogStatus
    errors_json: Optional[list[dict[str, Any]]] = None
    lot_id: Optional[str] = None
    lot_number: Optional[str] = None
    total_stock: int = 0
    inventory_value: Decimal = Decimal("0")


class UploadHistoryResponse(BaseSchema):
    """Recent uploads for one organization."""

    data: list[UploadLogEntry]
    total: int


class UploadOutcome(BaseSchema):
    """Everything the upload stage produced."""

    progress: UploadProgress
    lot: Optional[LotResponse] = None
    log_entry: Optional[UploadLogEntry] = None
    audit_logged: bool = False
    warnings: list[str] = []
