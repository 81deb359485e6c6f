"""
Custom exception classes for the application.

Per-row problems are never raised: they are collected as RowError /
UploadRowError entries in the stage results. The classes below cover
failures that abort an operation.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "LOT_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# FILE DECODING
# ===================

class DecodeError(ValidationError):
    """File cannot be decoded. Fatal to the upload session."""

    def __init__(
        self,
        message: str,
        code: str = "DECODE_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            details=details
        )


# ===================
# COLUMN MAPPING
# ===================

class MappingConflictError(AppError):
    """Two columns claim the same target field. Indicates a bug, not bad input."""

    def __init__(self, field: str, headers: list[str]):
        super().__init__(
            code="MAPPING_CONFLICT",
            message=f"Field '{field}' is mapped by more than one column",
            status_code=500,
            details={"field": field, "headers": headers}
        )


# ===================
# UPLOAD
# ===================

class PersistenceError(AppError):
    """A single product insert failed during the row-by-row retry."""

    def __init__(
        self,
        row_number: int,
        sku: str,
        message: str,
        duplicate: bool = False
    ):
        self.row_number = row_number
        self.sku = sku
        self.duplicate = duplicate
        super().__init__(
            code="PRODUCT_SKU_EXISTS" if duplicate else "PRODUCT_INSERT_FAILED",
            message=message,
            status_code=500,
            details={"row_number": row_number, "sku": sku}
        )

    def to_row_message(self) -> str:
        """User-facing message for the row this error belongs to."""
        if self.duplicate:
            return f'SKU "{self.sku}" already exists'
        return self.message


class UploadBlockedError(ValidationError):
    """The session cannot move to the upload stage."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="UPLOAD_BLOCKED",
            message=message,
            details=details
        )


# ===================
# LOTS
# ===================

class LotNotFoundError(NotFoundError):
    """Inventory lot not found."""

    def __init__(self, lot_id: str):
        super().__init__(
            resource="Lot",
            identifier=lot_id,
            code="LOT_NOT_FOUND"
        )


class ReferencedInventoryError(ConflictError):
    """Lot cannot be deleted: some of its products are on orders."""

    def __init__(self, lot_id: str, blocked_count: int):
        self.blocked_count = blocked_count
        super().__init__(
            code="LOT_HAS_ORDERS",
            message=(
                f"Cannot delete lot: {blocked_count} product(s) "
                "are referenced by existing orders"
            ),
            details={"lot_id": lot_id, "blocked_count": blocked_count}
        )
