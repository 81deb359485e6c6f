"""
Business logic services.

One service per upload pipeline stage, plus the session that drives them.
"""

from services.column_mapping_service import (
    ColumnMappingService,
    get_column_mapping_service,
    assign_field,
    ensure_unique_targets,
)
from services.mapping_classifier_service import (
    MappingClassifierService,
    get_mapping_classifier_service,
)
from services.row_validation_service import (
    RowValidationService,
    get_row_validation_service,
    PlaceholderSkus,
)
from services.batch_upload_service import BatchUploadService
from services.lot_service import LotService, get_lot_service
from services.upload_log_service import UploadLogService, get_upload_log_service
from services.upload_session_service import UploadSession

__all__ = [
    "ColumnMappingService",
    "get_column_mapping_service",
    "assign_field",
    "ensure_unique_targets",
    "MappingClassifierService",
    "get_mapping_classifier_service",
    "RowValidationService",
    "get_row_validation_service",
    "PlaceholderSkus",
    "BatchUploadService",
    "LotService",
    "get_lot_service",
    "UploadLogService",
    "get_upload_log_service",
    "UploadSession",
]
