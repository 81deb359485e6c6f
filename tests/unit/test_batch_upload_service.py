"""
Unit tests for BatchUploadService.

Runs against the in-memory Supabase mock, which enforces the products
(org_id, sku) unique constraint.
"""

from decimal import Decimal
import pytest

from models.bulk_upload import CanonicalField
from services.batch_upload_service import BatchUploadService, is_unique_violation, record_to_row
from tests.conftest import MockAPIError
from tests.factories import ValidatedRecordFactory

ORG = "org-1"


@pytest.fixture
def uploader(mock_supabase):
    return BatchUploadService(db=mock_supabase, batch_size=100)


class TestBatching:
    """Tests for the happy path."""

    async def test_250_records_in_3_batches(self, uploader, mock_supabase):
        """250 records with batch size 100: batches of 100, 100 and 50."""
        records = ValidatedRecordFactory.create_batch(250)

        progress, inserted = await uploader.upload(records, ORG)

        assert progress.total_batches == 3
        assert progress.completed_batches == 3
        assert progress.success_count == 250
        assert progress.error_count == 0
        assert len(inserted) == 250
        assert mock_supabase.calls_for("products", "insert") == [100, 100, 50]
        assert len(mock_supabase.rows("products")) == 250

    async def test_inserted_records_carry_store_ids(self, uploader, mock_supabase):
        records = ValidatedRecordFactory.create_batch(3)

        _, inserted = await uploader.upload(records, ORG)

        stored = {row["sku"]: row["id"] for row in mock_supabase.rows("products")}
        assert [r.row_number for r in inserted] == [1, 2, 3]
        for record in inserted:
            assert record.product_id == stored[record.sku]

    async def test_progress_snapshots(self, uploader):
        """A snapshot at the start and end of every batch, advancing monotonically."""
        snapshots = []

        await uploader.upload(ValidatedRecordFactory.create_batch(250), ORG, on_progress=snapshots.append)

        assert [(s.current_batch, s.completed_batches) for s in snapshots] == [
            (1, 0), (1, 1), (2, 1), (2, 2), (3, 2), (3, 3),
        ]
        assert [s.success_count for s in snapshots] == [0, 100, 100, 200, 200, 250]

    async def test_snapshots_are_copies(self, uploader, mock_supabase):
        records = ValidatedRecordFactory.create_batch(2)
        mock_supabase.fail("products", "insert", when=lambda rows: rows[-1]["sku"] == records[1].sku)
        snapshots = []

        await uploader.upload(records, ORG, on_progress=snapshots.append)

        assert snapshots[0].errors == []
        assert len(snapshots[-1].errors) == 1

    async def test_empty_upload(self, uploader, mock_supabase):
        progress, inserted = await uploader.upload([], ORG)

        assert progress.total_batches == 0
        assert inserted == []
        assert mock_supabase.calls_for("products", "insert") == []


class TestBatchFailures:
    """Tests for the per-record fallback."""

    async def test_existing_sku_fails_only_its_row(self, uploader, mock_supabase):
        """One of 100 records collides with a stored SKU: 99 succeed, 1 fails."""
        records = ValidatedRecordFactory.create_batch(100)
        taken = records[41]
        mock_supabase.set_table_data("products", [{"id": "p-old", "org_id": ORG, "sku": taken.sku}])

        progress, inserted = await uploader.upload(records, ORG)

        assert progress.success_count == 99
        assert progress.error_count == 1
        assert progress.errors[0].row_number == taken.row_number
        assert "already exists" in progress.errors[0].message
        assert taken.sku in progress.errors[0].message
        assert len(inserted) == 99
        # one bulk attempt, then one insert per record
        assert mock_supabase.calls_for("products", "insert") == [100] + [1] * 100

    async def test_same_sku_in_other_org_is_allowed(self, uploader, mock_supabase):
        records = ValidatedRecordFactory.create_batch(2)
        mock_supabase.set_table_data("products", [{"id": "p-old", "org_id": "org-2", "sku": records[0].sku}])

        progress, _ = await uploader.upload(records, ORG)

        assert progress.success_count == 2

    async def test_other_errors_keep_their_message(self, uploader, mock_supabase):
        records = ValidatedRecordFactory.create_batch(3)
        mock_supabase.fail(
            "products", "insert",
            error=MockAPIError('new row violates check constraint "products_price_check"', code="23514"),
            when=lambda rows: any(r["sku"] == records[2].sku for r in rows)
        )

        progress, inserted = await uploader.upload(records, ORG)

        assert [r.row_number for r in inserted] == [1, 2]
        assert progress.errors[0].row_number == 3
        assert "check constraint" in progress.errors[0].message

    async def test_counts_add_up_across_mixed_failures(self, mock_supabase):
        """success + error == records, whatever fails."""
        uploader = BatchUploadService(db=mock_supabase, batch_size=10)
        records = ValidatedRecordFactory.create_batch(35)
        mock_supabase.set_table_data("products", [
            {"id": "a", "org_id": ORG, "sku": records[3].sku},
            {"id": "b", "org_id": ORG, "sku": records[27].sku},
        ])
        mock_supabase.fail(
            "products", "insert",
            when=lambda rows: any(r["sku"] == records[15].sku for r in rows)
        )

        progress, inserted = await uploader.upload(records, ORG)

        assert progress.success_count + progress.error_count == len(records)
        assert progress.error_count == 3
        assert len(inserted) == progress.success_count


class TestHelpers:
    """Tests for row building and error detection."""

    def test_record_to_row(self):
        record = ValidatedRecordFactory.create(
            sku="TOY-001", price=Decimal("25.50"), cost=None, stock=4, external_ref="04465"
        )

        row = record_to_row(record, ORG)

        assert row["org_id"] == ORG
        assert row["sku"] == "TOY-001"
        assert row["oem_number"] == "04465"
        assert CanonicalField.EXTERNAL_REF.value not in row
        assert row["price"] == 25.5
        assert row["cost"] is None
        assert row["status"] == "active"

    def test_unique_violation_detection(self):
        assert is_unique_violation(MockAPIError("whatever", code="23505"))
        assert is_unique_violation(Exception("Duplicate entry"))
        assert not is_unique_violation(MockAPIError("timeout", code="57014"))
