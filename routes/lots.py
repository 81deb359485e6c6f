"""
Inventory lot API routes.
"""

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
import structlog

from config import get_supabase_client
from exceptions import AppError
from models.inventory_lot import LotDeleteResponse, LotListResponse, LotResponse
from services.lot_service import LotService

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


@router.get("/", response_model=LotListResponse)
async def list_lots(
    org_id: str = Query(..., min_length=1, description="Organization"),
    limit: int = Query(50, ge=1, le=200, description="Max lots to return"),
):
    """List lots for an organization, newest first."""
    try:
        return LotService(get_supabase_client()).list_lots(org_id, limit=limit)

    except Exception as e:
        return handle_error(e)


@router.get("/{lot_id}", response_model=LotResponse)
async def get_lot(lot_id: str):
    """
    Get a lot by ID.

    Raises:
        404: Lot not found
    """
    try:
        return LotService(get_supabase_client()).get_lot(lot_id)

    except Exception as e:
        return handle_error(e)


@router.delete("/{lot_id}", response_model=LotDeleteResponse)
async def delete_lot(lot_id: str):
    """
    Delete a lot and the products it created.

    Raises:
        404: Lot not found
        409: Some of the lot's products are on orders (nothing is deleted)
    """
    logger.info("lot_delete_requested", lot_id=lot_id)

    try:
        return LotService(get_supabase_client()).delete_lot(lot_id)

    except Exception as e:
        return handle_error(e)
