"""
Test data factories.

Uses factory pattern to generate consistent test data.
"""

from decimal import Decimal
from typing import Optional
from uuid import uuid4

from models.bulk_upload import (
    CanonicalField,
    ColumnMapping,
    InsertedRecord,
    RawRow,
    ValidatedRecord,
)


class RawRowFactory:
    """
    Factory for decoded rows keyed by the standard headers.

    Usage:
        row = RawRowFactory.create(price="")
        rows = RawRowFactory.create_batch(5)
    """

    HEADERS = ["sku", "name", "price", "stock"]

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create(
        cls,
        row_number: Optional[int] = None,
        **values: str
    ) -> RawRow:
        """
        Create a single row.

        Args:
            row_number: 1-based row number (auto-incremented if not provided)
            **values: Cell overrides by header; extra headers are added

        Returns:
            RawRow with sku/name/price/stock filled in
        """
        counter = cls._next_counter()
        data = {
            "sku": f"PART-{counter:04d}",
            "name": f"Brake pad set {counter}",
            "price": "25.50",
            "stock": "10",
        }
        data.update(values)
        return RawRow(row_number=row_number or counter, data=data)

    @classmethod
    def create_batch(cls, count: int, **overrides) -> list[RawRow]:
        """Create `count` rows numbered 1..count."""
        return [cls.create(row_number=i, **overrides) for i in range(1, count + 1)]

    @classmethod
    def mappings(cls, headers: Optional[list[str]] = None) -> list[ColumnMapping]:
        """Identity mapping for headers named after canonical fields."""
        return [
            ColumnMapping(file_header=h, target_field=CanonicalField(h), auto_detected=True)
            for h in (headers or cls.HEADERS)
        ]


class ValidatedRecordFactory:
    """
    Factory for records that passed validation.

    Usage:
        records = ValidatedRecordFactory.create_batch(250)
    """

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create(
        cls,
        row_number: Optional[int] = None,
        sku: Optional[str] = None,
        price: Decimal = Decimal("25.50"),
        cost: Optional[Decimal] = Decimal("15.00"),
        stock: int = 10,
        **overrides
    ) -> ValidatedRecord:
        counter = cls._next_counter()
        return ValidatedRecord(
            row_number=row_number or counter,
            name=overrides.pop("name", f"Oil filter {counter}"),
            sku=sku or f"FIL-{counter:05d}",
            price=price,
            cost=cost,
            stock=stock,
            **overrides
        )

    @classmethod
    def create_batch(cls, count: int, **overrides) -> list[ValidatedRecord]:
        """Create `count` records numbered 1..count with unique SKUs."""
        return [cls.create(row_number=i, **overrides) for i in range(1, count + 1)]


class InsertedRecordFactory:
    """Factory for records the store accepted."""

    @classmethod
    def create(
        cls,
        row_number: int = 1,
        stock: int = 10,
        cost: Optional[Decimal] = Decimal("4.00"),
        price: Decimal = Decimal("9.00"),
        product_id: Optional[str] = None,
        sku: Optional[str] = None,
    ) -> InsertedRecord:
        return InsertedRecord(
            product_id=product_id or str(uuid4()),
            row_number=row_number,
            sku=sku or f"SKU-{row_number:04d}",
            stock=stock,
            cost=cost,
            price=price,
        )

    @classmethod
    def create_batch(cls, count: int, **overrides) -> list[InsertedRecord]:
        return [cls.create(row_number=i, **overrides) for i in range(1, count + 1)]
