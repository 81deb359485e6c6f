"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,
    DatabaseError,

    # File decoding
    DecodeError,

    # Column mapping
    MappingConflictError,

    # Upload
    PersistenceError,
    UploadBlockedError,

    # Lots
    LotNotFoundError,
    ReferencedInventoryError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "DatabaseError",

    # File decoding
    "DecodeError",

    # Column mapping
    "MappingConflictError",

    # Upload
    "PersistenceError",
    "UploadBlockedError",

    # Lots
    "LotNotFoundError",
    "ReferencedInventoryError",
]
