"""
Inventory lot schemas.

A lot groups every product created by one upload and snapshots its
stock and value. Lot entries track how much of each product's initial
stock is left as orders consume it.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import Field

from models.base import BaseSchema, TimestampMixin


class LotStatus(str, Enum):
    """Lot lifecycle status."""
    ACTIVE = "active"


class LotCreate(BaseSchema):
    """Schema for creating an inventory lot record."""

    org_id: str = Field(..., description="Owner organization")
    lot_number: str = Field(..., max_length=50, description="LOT-<year>-<seq>")
    file_name: str = Field(..., max_length=255, description="Uploaded file name")
    total_products: int = Field(..., ge=0)
    total_stock: int = Field(..., ge=0)
    total_cost: Decimal = Field(..., ge=0, description="Sum of stock x cost")
    total_retail_value: Decimal = Field(..., ge=0, description="Sum of stock x price")
    status: LotStatus = LotStatus.ACTIVE
    created_by: Optional[str] = None


class LotResponse(TimestampMixin, BaseSchema):
    """Schema for inventory lot response."""

    id: str
    org_id: str
    lot_number: str
    file_name: str
    total_products: int
    total_stock: int
    total_cost: Decimal
    total_retail_value: Decimal
    status: LotStatus = LotStatus.ACTIVE
    created_by: Optional[str] = None


class LotEntryCreate(BaseSchema):
    """Link between a lot and one inserted product."""

    lot_id: str
    product_id: str
    initial_stock: int = Field(..., ge=0)
    remaining_stock: int = Field(..., ge=0)
    unit_cost: Optional[Decimal] = Field(None, ge=0)
    unit_price: Decimal = Field(..., ge=0)


class LotDeleteResponse(BaseSchema):
    """Result of a lot deletion."""

    lot_id: str
    deleted_products: int


class LotListResponse(BaseSchema):
    """Lots for one organization, newest first."""

    data: list[LotResponse]
    total: int
