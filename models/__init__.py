"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    FrozenSchema,
    TimestampMixin,
)
from models.bulk_upload import (
    CanonicalField,
    ProductStatus,
    RawRow,
    ColumnMapping,
    DecodedFile,
    MappingExplanation,
    MappingSuggestion,
    MappingResult,
    RowError,
    ValidatedRecord,
    ProcessingResult,
    UploadRowError,
    UploadProgress,
    InsertedRecord,
    MappingRequest,
    AssignFieldRequest,
    ValidateRequest,
    UploadRequest,
)
from models.inventory_lot import (
    LotStatus,
    LotCreate,
    LotResponse,
    LotEntryCreate,
    LotDeleteResponse,
    LotListResponse,
)
from models.upload_log import (
    UploadLogStatus,
    UploadLogEntry,
    UploadHistoryResponse,
    UploadOutcome,
)

__all__ = [
    # Base
    "BaseSchema",
    "FrozenSchema",
    "TimestampMixin",

    # Bulk upload
    "CanonicalField",
    "ProductStatus",
    "RawRow",
    "ColumnMapping",
    "DecodedFile",
    "MappingExplanation",
    "MappingSuggestion",
    "MappingResult",
    "RowError",
    "ValidatedRecord",
    "ProcessingResult",
    "UploadRowError",
    "UploadProgress",
    "InsertedRecord",
    "MappingRequest",
    "AssignFieldRequest",
    "ValidateRequest",
    "UploadRequest",

    # Lots
    "LotStatus",
    "LotCreate",
    "LotResponse",
    "LotEntryCreate",
    "LotDeleteResponse",
    "LotListResponse",

    # Upload log
    "UploadLogStatus",
    "UploadLogEntry",
    "UploadHistoryResponse",
    "UploadOutcome",
]
