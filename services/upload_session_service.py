"""
Upload session.

Drives one bulk-upload wizard run through its stages:

    decode -> suggest_mapping -> override_mapping* -> validate -> upload

Nothing is persisted before upload(), so a session can be discarded at any
earlier point. upload() runs at most once: completed batches stay in the
store even if a later step fails.
"""

from decimal import Decimal
from typing import Callable, Optional
import structlog

from supabase import Client

from config.inventory_fields import HEURISTIC_SAMPLE_ROWS
from exceptions import AppError, ConflictError, UploadBlockedError, ValidationError
from models.bulk_upload import (
    CanonicalField,
    ColumnMapping,
    DecodedFile,
    MappingResult,
    ProcessingResult,
    UploadProgress,
)
from models.upload_log import UploadOutcome
from parsers.file_decoder import decode_file
from services.batch_upload_service import BatchUploadService
from services.column_mapping_service import ColumnMappingService, assign_field
from services.lot_service import LotService
from services.mapping_classifier_service import get_mapping_classifier_service
from services.row_validation_service import PlaceholderSkus, RowValidationService
from services.upload_log_service import UploadLogService

logger = structlog.get_logger(__name__)


class UploadSession:
    """
    State of one upload run for one organization.

    Store-backed services are created on first use, so decoding, mapping
    and validating never touch the database.
    """

    def __init__(
        self,
        org_id: str,
        actor: Optional[str] = None,
        db: Optional[Client] = None,
        mapper: Optional[ColumnMappingService] = None,
        validator: Optional[RowValidationService] = None,
        uploader: Optional[BatchUploadService] = None,
        lot_service: Optional[LotService] = None,
        log_service: Optional[UploadLogService] = None,
    ):
        self.org_id = org_id
        self.actor = actor
        self.db = db
        self.mapper = mapper or ColumnMappingService(classifier=get_mapping_classifier_service())
        self.validator = validator or RowValidationService()
        self._uploader = uploader
        self._lot_service = lot_service
        self._log_service = log_service
        self.discard()

    # Lazily built store services

    @property
    def uploader(self) -> BatchUploadService:
        if self._uploader is None:
            self._uploader = BatchUploadService(self.db)
        return self._uploader

    @property
    def lot_service(self) -> LotService:
        if self._lot_service is None:
            self._lot_service = LotService(self.db)
        return self._lot_service

    @property
    def log_service(self) -> UploadLogService:
        if self._log_service is None:
            self._log_service = UploadLogService(self.db)
        return self._log_service

    # ===================
    # STAGES
    # ===================

    async def decode(
        self,
        content: bytes,
        file_name: str,
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> DecodedFile:
        """
        Decode a new file, dropping any previous state.

        Raises:
            DecodeError: The file cannot be read; the session stays empty
        """
        self.discard()
        decoded = await decode_file(content, file_name, on_progress=on_progress)
        self.file = decoded
        self.mappings = [m.model_copy() for m in decoded.mappings]
        return decoded

    def load(
        self,
        decoded: DecodedFile,
        mappings: Optional[list[ColumnMapping]] = None,
    ) -> None:
        """Resume from a file decoded earlier, e.g. one an API client sent back."""
        self.discard()
        self.file = decoded
        source = mappings if mappings is not None else decoded.mappings
        self.mappings = [m.model_copy() for m in source]

    async def suggest_mapping(self) -> MappingResult:
        """Complete the current mapping automatically."""
        decoded = self._require_file()
        result = await self.mapper.suggest_mapping(
            decoded.headers,
            decoded.rows[:HEURISTIC_SAMPLE_ROWS],
            prior_mappings=self.mappings,
        )
        self.mappings = result.mappings
        self.result = None
        return result

    def override_mapping(
        self,
        header: str,
        field: Optional[CanonicalField],
    ) -> list[ColumnMapping]:
        """Manually map a column (None unmaps it). Invalidates validation."""
        self._require_file()
        self.mappings = assign_field(self.mappings, header, field)
        self.result = None
        return self.mappings

    async def validate(
        self,
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> ProcessingResult:
        """Validate all rows against the current mapping."""
        decoded = self._require_file()
        self.result = await self.validator.validate(
            decoded.rows,
            self.mappings,
            on_progress=on_progress,
            placeholders=self.placeholders,
        )
        return self.result

    async def upload(
        self,
        on_progress: Optional[Callable[[UploadProgress], None]] = None,
    ) -> UploadOutcome:
        """
        Insert valid records, create the lot and log the attempt.

        Raises:
            UploadBlockedError: Not validated, or no valid records
            ConflictError: This session already uploaded
        """
        if self.outcome is not None or self._upload_started:
            raise ConflictError(
                message="This upload session has already been submitted",
                code="UPLOAD_ALREADY_SUBMITTED"
            )
        decoded = self._require_file()
        if self.result is None:
            raise UploadBlockedError("Validate the file before uploading")
        if not self.result.can_upload:
            raise UploadBlockedError(
                f"No valid rows to upload: all {self.result.total_rows} row(s) have errors",
                details={
                    "total_rows": self.result.total_rows,
                    "error_rows": self.result.error_row_count,
                }
            )

        self._upload_started = True
        result = self.result
        warnings = list(result.warnings)

        logger.info(
            "session_upload_started",
            org_id=self.org_id,
            file_name=decoded.file_name,
            records=result.valid_count
        )

        progress, inserted = await self.uploader.upload(
            result.valid_records, self.org_id, on_progress=on_progress
        )

        lot = None
        try:
            lot = self.lot_service.create_lot(
                self.org_id, decoded.file_name, inserted, created_by=self.actor
            )
        except AppError as e:
            logger.error("session_lot_failed", org_id=self.org_id, error=e.message)
            warnings.append(f"Products were saved but the lot could not be created: {e.message}")

        total_stock = sum(r.stock for r in inserted)
        inventory_value = (
            lot.total_retail_value if lot is not None
            else sum((r.stock * r.price for r in inserted), Decimal("0"))
        )
        success_rows = progress.success_count

        log_entry = self.log_service.log_attempt(
            org_id=self.org_id,
            actor=self.actor,
            file_name=decoded.file_name,
            total_rows=result.total_rows,
            success_rows=success_rows,
            error_rows=result.total_rows - success_rows,
            errors=[*result.errors, *progress.errors],
            lot_id=lot.id if lot is not None else None,
            total_stock=total_stock,
            inventory_value=inventory_value,
        )
        if log_entry is None:
            warnings.append("The upload could not be recorded in the upload history")

        self.outcome = UploadOutcome(
            progress=progress,
            lot=lot,
            log_entry=log_entry,
            audit_logged=log_entry is not None,
            warnings=warnings,
        )

        logger.info(
            "session_upload_completed",
            org_id=self.org_id,
            success=progress.success_count,
            errors=progress.error_count,
            lot_number=lot.lot_number if lot is not None else None
        )

        return self.outcome

    def discard(self) -> None:
        """Drop all session state. Only meaningful before upload()."""
        self.file: Optional[DecodedFile] = None
        self.mappings: list[ColumnMapping] = []
        self.result: Optional[ProcessingResult] = None
        self.outcome: Optional[UploadOutcome] = None
        self.placeholders = PlaceholderSkus()
        self._upload_started = False

    def _require_file(self) -> DecodedFile:
        if self.file is None:
            raise ValidationError("No file has been decoded in this session", code="NO_FILE")
        return self.file
