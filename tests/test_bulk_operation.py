import asyncio

import pytest

from college_portal.core.exceptions import BulkOperationAborted
from college_portal.services.bulk_operation import (
    BulkOperationProgress,
    bulk_delete,
    bulk_insert,
    bulk_update,
    is_duplicate_error,
    process_batch,
    validate_bulk_data,
)


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class TestProcessBatch:
    """Chunked processing, retries and failure collection."""

    @pytest.mark.asyncio
    async def test_partial_failure_is_collected(self):
        """Item 2 of five fails; the rest are processed and the index is reported."""

        async def operation(item, index):
            if index == 2:
                raise ValueError("boom")
            return item * 10

        result = await process_batch([1, 2, 3, 4, 5], operation, batch_size=2)

        assert result.success is False
        assert result.processed == 4
        assert result.failed == 1
        assert result.data == [10, 20, None, 40, 50]
        assert len(result.details) == 1
        assert result.details[0].id == 2
        assert result.details[0].error == "boom"

    @pytest.mark.asyncio
    async def test_counts_add_up_to_input_size(self):
        async def operation(item, index):
            if item % 3 == 0:
                raise RuntimeError(f"bad {item}")
            return item

        items = list(range(1, 11))
        result = await process_batch(items, operation, batch_size=4)

        assert result.processed + result.failed == len(items)
        assert [d.id for d in result.details] == [2, 5, 8]

    @pytest.mark.asyncio
    async def test_retry_then_success(self):
        attempts = {}

        async def flaky(item, index):
            attempts[index] = attempts.get(index, 0) + 1
            if attempts[index] < 3:
                raise ConnectionError("transient")
            return item

        result = await process_batch(["a", "b"], flaky, retry_attempts=2, retry_delay=0)

        assert result.success is True
        assert result.processed == 2
        assert attempts == {0: 3, 1: 3}

    @pytest.mark.asyncio
    async def test_retry_exhaustion_records_one_error(self):
        calls = []

        async def always_fails(item, index):
            calls.append(index)
            raise ConnectionError("still down")

        result = await process_batch(["a"], always_fails, retry_attempts=2, retry_delay=0)

        assert len(calls) == 3
        assert result.failed == 1
        assert len(result.details) == 1
        assert result.details[0].error == "still down"

    @pytest.mark.asyncio
    async def test_chunks_run_sequentially(self):
        """No more than batch_size operations are ever in flight."""
        in_flight = 0
        peak = 0

        async def operation(item, index):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return item

        result = await process_batch(list(range(25)), operation, batch_size=5)

        assert result.processed == 25
        assert peak == 5

    @pytest.mark.asyncio
    async def test_abort_stops_after_current_chunk(self):
        seen = []

        async def operation(item, index):
            seen.append(index)
            if index == 1:
                raise ValueError("stop here")
            return item

        with pytest.raises(BulkOperationAborted) as exc_info:
            await process_batch(list(range(6)), operation, batch_size=3, continue_on_error=False)

        assert sorted(seen) == [0, 1, 2]
        partial = exc_info.value.result
        assert partial.processed == 2
        assert partial.failed == 4
        assert partial.error == "stop here"

    @pytest.mark.asyncio
    async def test_batch_size_must_be_positive(self):
        async def operation(item, index):
            return item

        with pytest.raises(ValueError):
            await process_batch([1], operation, batch_size=0)

    @pytest.mark.asyncio
    async def test_empty_input(self):
        async def operation(item, index):
            return item

        result = await process_batch([], operation)

        assert result.success is True
        assert result.processed == 0
        assert result.data == []


class TestBulkInsert:

    @pytest.mark.asyncio
    async def test_duplicates_are_ignored(self):
        async def insert(item):
            if item == "dup":
                raise Exception("UNIQUE constraint failed: exam_marks.student_id")
            return item.upper()

        result = await bulk_insert(["a", "dup", "b"], insert, ignore_duplicates=True)

        assert result.success is True
        assert result.processed == 3
        assert result.data == ["A", "dup", "B"]

    @pytest.mark.asyncio
    async def test_duplicates_fail_without_flag(self):
        async def insert(item):
            raise Exception("duplicate key value violates unique constraint")

        result = await bulk_insert(["a"], insert)

        assert result.failed == 1
        assert "duplicate key" in result.details[0].error

    @pytest.mark.asyncio
    async def test_update_on_duplicate_calls_insert_again(self):
        calls = []

        async def insert(item):
            calls.append(item)
            if len(calls) == 1:
                raise Exception("Duplicate entry")
            return "updated"

        result = await bulk_insert(["a"], insert, update_on_duplicate=True)

        assert result.data == ["updated"]
        assert calls == ["a", "a"]

    @pytest.mark.asyncio
    async def test_other_errors_are_retried(self):
        calls = []

        async def insert(item):
            calls.append(item)
            raise TimeoutError("lock wait timeout")

        result = await bulk_insert(["a"], insert, ignore_duplicates=True, retry_attempts=1, retry_delay=0)

        assert len(calls) == 2
        assert result.failed == 1

    def test_duplicate_detection_is_case_insensitive(self):
        assert is_duplicate_error(Exception("UNIQUE constraint failed"))
        assert is_duplicate_error(Exception("Duplicate entry '1' for key"))
        assert not is_duplicate_error(Exception("connection reset"))


class TestBulkUpdate:

    @pytest.mark.asyncio
    async def test_missing_fields_short_circuit(self):
        called = []

        async def update(item):
            called.append(item)
            return item

        items = [{"id": 1, "value": 2}, {"id": 2}, {"value": 3}]
        result = await bulk_update(items, update, validate_fields=("id", "value"))

        assert result.success is False
        assert result.processed == 0
        assert result.failed == 2
        assert "id, value" in result.error
        assert called == []

    @pytest.mark.asyncio
    async def test_present_none_field_counts_as_present(self):
        async def update(item):
            return item

        result = await bulk_update([{"id": 1, "value": None}], update, validate_fields=("id", "value"))

        assert result.success is True
        assert result.processed == 1

    @pytest.mark.asyncio
    async def test_upsert_retries_once(self):
        calls = []

        async def update(item):
            calls.append(item)
            if len(calls) == 1:
                raise LookupError("no row")
            return item

        result = await bulk_update([{"id": 1}], update, upsert=True)

        assert result.success is True
        assert len(calls) == 2


class TestBulkDelete:

    @pytest.mark.asyncio
    async def test_none_items_rejected_before_processing(self):
        async def delete(item):
            return True

        result = await bulk_delete([1, None, 3], delete)

        assert result.success is False
        assert result.failed == 1
        assert result.processed == 0

    @pytest.mark.asyncio
    async def test_falsy_delete_is_failure(self):
        async def delete(item):
            return item != 2

        result = await bulk_delete([1, 2, 3], delete)

        assert result.processed == 2
        assert result.failed == 1
        assert result.details[0].error == "Failed to delete item at index 1"


class TestValidateBulkData:

    def test_partitions_items(self):
        items = [
            {"enrollment_no": "E1", "marks": 10},
            {"enrollment_no": None, "marks": 5},
            {"enrollment_no": "E3", "marks": -1},
        ]
        result = validate_bulk_data(
            items,
            required_fields=("enrollment_no", "marks"),
            custom_validator=lambda item: item["marks"] >= 0,
        )

        assert result.valid is False
        assert result.valid_items == [items[0]]
        assert result.invalid_items == [items[1], items[2]]
        assert "Item at index 1 is missing required field: enrollment_no" in result.errors
        assert "Item at index 2 failed custom validation" in result.errors

    def test_empty_input_is_invalid(self):
        result = validate_bulk_data([])

        assert result.valid is False
        assert result.errors == ["Items array cannot be empty"]

    def test_does_not_mutate_input(self):
        items = [{"id": 1}]
        validate_bulk_data(items, required_fields=("id",))
        assert items == [{"id": 1}]


class TestBulkOperationProgress:

    def test_progress_snapshot(self):
        clock = FakeClock()
        reports = []
        progress = BulkOperationProgress(10, on_progress=reports.append, clock=clock)

        clock.now += 2.0
        info = progress.update(4, 1)

        assert info.percentage == 50
        assert info.remaining == 5
        assert info.rate == pytest.approx(2.0)
        assert info.elapsed == pytest.approx(2000.0)
        assert info.estimated_time == pytest.approx(2500.0)
        assert reports == [info]

    def test_zero_total_and_zero_elapsed(self):
        progress = BulkOperationProgress(0, clock=FakeClock())
        info = progress.get_progress()

        assert info.percentage == 100
        assert info.rate == 0
        assert info.estimated_time == 0
