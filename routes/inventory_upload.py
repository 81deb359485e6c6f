"""
Inventory bulk upload API routes.

The wizard is stateless over HTTP: the client keeps the decoded rows and
the mapping between calls and sends them back to each stage. The upload
stage validates the rows again before inserting.
"""

from fastapi import APIRouter, Query, UploadFile, File
from fastapi.responses import JSONResponse
import structlog

from config import get_supabase_client
from config.inventory_fields import HEURISTIC_SAMPLE_ROWS
from exceptions import AppError, MappingConflictError, ValidationError
from models.bulk_upload import (
    AssignFieldRequest,
    ColumnMapping,
    DecodedFile,
    MappingRequest,
    MappingResult,
    ProcessingResult,
    UploadRequest,
    ValidateRequest,
)
from models.upload_log import UploadHistoryResponse, UploadOutcome
from parsers.file_decoder import decode_file
from services.column_mapping_service import (
    assign_field,
    ensure_unique_targets,
    get_column_mapping_service,
)
from services.row_validation_service import get_row_validation_service
from services.upload_log_service import UploadLogService
from services.upload_session_service import UploadSession

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


def check_client_mappings(mappings: list[ColumnMapping]) -> None:
    """A conflicting mapping sent by a client is bad input, not a server bug."""
    try:
        ensure_unique_targets(mappings)
    except MappingConflictError as e:
        raise ValidationError(
            message=e.message,
            code="INVALID_MAPPING",
            details=e.details
        )


# ===================
# WIZARD STAGES
# ===================

@router.post("/decode", response_model=DecodedFile)
async def decode_upload(file: UploadFile = File(...)):
    """
    Decode a CSV/TSV/XLS/XLSX/ODS file.

    Returns headers, rows and the alias-based first-pass mapping.

    Raises:
        422: Unsupported, empty, oversized or unreadable file
    """
    logger.info(
        "decode_requested",
        filename=file.filename,
        content_type=file.content_type
    )

    try:
        content = await file.read()
        return await decode_file(content, file.filename or "")

    except Exception as e:
        return handle_error(e)


@router.post("/mapping", response_model=MappingResult)
async def suggest_mapping(request: MappingRequest):
    """
    Suggest a field for every unmapped column.

    Columns already mapped in the request are kept.
    """
    try:
        if request.mappings is not None:
            check_client_mappings(request.mappings)
        mapper = get_column_mapping_service()
        return await mapper.suggest_mapping(
            request.headers,
            request.sample_rows[:HEURISTIC_SAMPLE_ROWS],
            prior_mappings=request.mappings,
        )

    except Exception as e:
        return handle_error(e)


@router.post("/mapping/assign", response_model=list[ColumnMapping])
async def assign_mapping(request: AssignFieldRequest):
    """
    Manually map one column.

    The column that held the field before (if any) is unmapped.

    Raises:
        422: Unknown column or conflicting mapping
    """
    try:
        check_client_mappings(request.mappings)
        return assign_field(request.mappings, request.file_header, request.target_field)

    except Exception as e:
        return handle_error(e)


@router.post("/validate", response_model=ProcessingResult)
async def validate_rows(request: ValidateRequest):
    """Validate rows against the accepted mapping."""
    try:
        check_client_mappings(request.mappings)
        validator = get_row_validation_service()
        return await validator.validate(request.rows, request.mappings)

    except Exception as e:
        return handle_error(e)


@router.post("/upload", response_model=UploadOutcome)
async def upload_products(request: UploadRequest):
    """
    Validate again, insert valid rows, create the lot and log the attempt.

    Raises:
        422: No valid rows or conflicting mapping
    """
    logger.info(
        "upload_requested",
        org_id=request.org_id,
        file_name=request.file_name,
        rows=len(request.rows)
    )

    try:
        check_client_mappings(request.mappings)

        session = UploadSession(request.org_id, actor=request.actor, db=get_supabase_client())
        session.load(
            DecodedFile(
                file_name=request.file_name,
                sheet_name="",
                headers=request.headers,
                rows=request.rows,
                mappings=request.mappings,
            )
        )
        await session.validate()
        return await session.upload()

    except Exception as e:
        return handle_error(e)


# ===================
# HISTORY
# ===================

@router.get("/history", response_model=UploadHistoryResponse)
async def upload_history(
    org_id: str = Query(..., min_length=1, description="Organization"),
    limit: int = Query(20, ge=1, le=100, description="Max uploads to return"),
):
    """Recent uploads for an organization, newest first."""
    try:
        return UploadLogService(get_supabase_client()).list_recent(org_id, limit=limit)

    except Exception as e:
        return handle_error(e)
