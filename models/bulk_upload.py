"""
Bulk upload schemas.

Session-scoped types that flow between the pipeline stages:
decode -> map -> validate -> upload.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import Field

from models.base import BaseSchema, FrozenSchema


class CanonicalField(str, Enum):
    """Product fields a file column can be mapped to."""
    NAME = "name"
    SKU = "sku"
    DESCRIPTION = "description"
    BRAND = "brand"
    EXTERNAL_REF = "external_ref"
    PRICE = "price"
    COST = "cost"
    STOCK = "stock"
    MIN_STOCK = "min_stock"
    STATUS = "status"


class ProductStatus(str, Enum):
    """Product status accepted from files."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    OUT_OF_STOCK = "out_of_stock"


# ===================
# DECODING
# ===================

class RawRow(FrozenSchema):
    """One data row as read from the file, every cell a trimmed string."""

    row_number: int = Field(..., ge=1, description="1-based, header excluded")
    data: dict[str, str] = Field(default_factory=dict)

    def get(self, header: Optional[str]) -> str:
        if not header:
            return ""
        return self.data.get(header, "")


class ColumnMapping(BaseSchema):
    """File header -> canonical field assignment."""

    file_header: str
    target_field: Optional[CanonicalField] = None
    auto_detected: bool = False


class DecodedFile(BaseSchema):
    """Output of the file decoder."""

    file_name: str
    sheet_name: str
    headers: list[str]
    rows: list[RawRow]
    mappings: list[ColumnMapping]

    @property
    def total_rows(self) -> int:
        return len(self.rows)


# ===================
# MAPPING
# ===================

class MappingExplanation(BaseSchema):
    """Why a column was mapped to a field, shown to the user for review."""

    file_header: str
    target_field: CanonicalField
    reason: str


class MappingSuggestion(BaseSchema):
    """One suggestion returned by the external column classifier."""

    file_header: str
    target_field: CanonicalField
    reason: str = ""


class MappingResult(BaseSchema):
    """Output of the column mapper."""

    mappings: list[ColumnMapping]
    explanations: list[MappingExplanation] = []
    used_external: bool = False
    unmapped_headers: list[str] = []


# ===================
# VALIDATION
# ===================

class RowError(FrozenSchema):
    """A business-rule violation for one field of one row."""

    row_number: int
    field: str
    value: str = ""
    message: str


class ValidatedRecord(FrozenSchema):
    """A row that passed every rule, typed and ready to insert."""

    row_number: int
    name: str = Field(..., min_length=1)
    sku: str = Field(..., min_length=1)
    description: Optional[str] = None
    brand: Optional[str] = None
    external_ref: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    cost: Optional[Decimal] = Field(None, ge=0)
    stock: int = Field(..., ge=0)
    min_stock: int = Field(5, ge=0)
    status: ProductStatus = ProductStatus.ACTIVE


class ProcessingResult(FrozenSchema):
    """Output of one validation pass. Re-validation builds a new one."""

    total_rows: int
    valid_records: list[ValidatedRecord] = []
    errors: list[RowError] = []
    duplicate_skus: list[str] = []
    warnings: list[str] = []

    @property
    def valid_count(self) -> int:
        return len(self.valid_records)

    @property
    def error_row_count(self) -> int:
        """Number of distinct rows with at least one error."""
        return len({e.row_number for e in self.errors})

    @property
    def can_upload(self) -> bool:
        return self.valid_count > 0


# ===================
# UPLOAD
# ===================

class UploadRowError(BaseSchema):
    """Insert failure attributed to a file row."""

    row_number: int
    message: str


class UploadProgress(BaseSchema):
    """Batch upload progress. A copy is handed to the caller after every batch."""

    total_batches: int = 0
    completed_batches: int = 0
    current_batch: int = 0
    success_count: int = 0
    error_count: int = 0
    errors: list[UploadRowError] = []


class InsertedRecord(BaseSchema):
    """A product the store accepted, with what lot bookkeeping needs."""

    product_id: str
    row_number: int
    sku: str
    stock: int
    cost: Optional[Decimal] = None
    price: Decimal


# ===================
# API REQUESTS
# ===================

class MappingRequest(BaseSchema):
    """Ask for mapping suggestions for a decoded file."""

    headers: list[str]
    sample_rows: list[RawRow] = []
    mappings: Optional[list[ColumnMapping]] = None


class AssignFieldRequest(BaseSchema):
    """Manually map one column (target_field null to unmap it)."""

    mappings: list[ColumnMapping]
    file_header: str
    target_field: Optional[CanonicalField] = None


class ValidateRequest(BaseSchema):
    """Rows and the accepted mapping."""

    rows: list[RawRow]
    mappings: list[ColumnMapping]


class UploadRequest(BaseSchema):
    """Everything the upload stage needs; rows are validated again server-side."""

    org_id: str = Field(..., min_length=1)
    actor: Optional[str] = None
    file_name: str = Field(..., min_length=1)
    headers: list[str]
    rows: list[RawRow]
    mappings: list[ColumnMapping]
