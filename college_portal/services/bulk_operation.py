"""Batched, retryable bulk operations.

Items are processed in sequential chunks. All items of a chunk run
concurrently and the chunk settles completely before the next one starts, so
the chunk size is the concurrency bound. Failed items are retried with a fixed
delay and, once retries are exhausted, collected instead of aborting the job
(unless ``continue_on_error`` is off).
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from typing import Any, TypeVar

from college_portal.core.exceptions import BulkOperationAborted
from college_portal.schemas.bulk import (
    BulkItemError,
    BulkOperationResult,
    BulkValidationResult,
    ProgressInfo,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DUPLICATE_ERROR_MARKERS = ("duplicate", "unique")


def _error_message(error: BaseException) -> str:
    return str(error) or error.__class__.__name__


def _has_field(item: Any, field: str) -> bool:
    if isinstance(item, Mapping):
        return item.get(field) is not None
    return getattr(item, field, None) is not None


def _field_present(item: Any, field: str) -> bool:
    if isinstance(item, Mapping):
        return field in item
    return hasattr(item, field)


def is_duplicate_error(error: BaseException) -> bool:
    """Whether an error reports a duplicate key / unique constraint violation."""
    message = _error_message(error).lower()
    return any(marker in message for marker in DUPLICATE_ERROR_MARKERS)


async def process_batch(
    items: Sequence[T],
    operation: Callable[[T, int], Awaitable[R]],
    *,
    batch_size: int = 50,
    concurrency: int = 5,
    continue_on_error: bool = True,
    retry_attempts: int = 0,
    retry_delay: float = 1.0,
) -> BulkOperationResult:
    """Run ``operation(item, index)`` for every item in bounded chunks.

    ``concurrency`` is accepted for interface compatibility only; each chunk
    of ``batch_size`` items runs fully concurrent.

    Raises:
        BulkOperationAborted: an item exhausted its retries while
            ``continue_on_error`` is false. The current chunk is allowed to
            settle first; no later chunk is started.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    results: list[Any] = [None] * len(items)
    errors: list[tuple[int, str]] = []
    processed = 0
    abort_error: BaseException | None = None

    async def run_item(item: T, index: int) -> None:
        nonlocal processed, abort_error
        for attempt in range(retry_attempts + 1):
            try:
                results[index] = await operation(item, index)
                processed += 1
                return
            except Exception as e:
                if attempt < retry_attempts:
                    logger.debug(
                        f"[BULK] Item {index} failed on attempt {attempt + 1}/{retry_attempts + 1}: {e}"
                    )
                    await asyncio.sleep(retry_delay)
                    continue

                errors.append((index, _error_message(e)))
                logger.warning(f"[BULK] Item {index} failed after {attempt + 1} attempt(s): {e}")
                if not continue_on_error and abort_error is None:
                    abort_error = e

    for start in range(0, len(items), batch_size):
        chunk = items[start:start + batch_size]
        await asyncio.gather(
            *(run_item(item, start + offset) for offset, item in enumerate(chunk))
        )
        logger.debug(
            f"[BULK] Chunk {start // batch_size + 1} settled: processed={processed}, failed={len(errors)}"
        )

        if abort_error is not None:
            partial = BulkOperationResult(
                success=False,
                data=results,
                error=_error_message(abort_error),
                processed=processed,
                failed=len(items) - processed,
                details=_details(errors),
            )
            raise BulkOperationAborted(_error_message(abort_error), result=partial)

    return BulkOperationResult(
        success=not errors,
        data=results,
        processed=processed,
        failed=len(errors),
        details=_details(errors),
    )


def _details(errors: list[tuple[int, str]]) -> list[BulkItemError]:
    return [BulkItemError(id=index, error=error) for index, error in sorted(errors)]


async def bulk_insert(
    items: Sequence[T],
    insert_fn: Callable[[T], Awaitable[T]],
    *,
    ignore_duplicates: bool = False,
    update_on_duplicate: bool = False,
    batch_size: int = 40,
    continue_on_error: bool = True,
    retry_attempts: int = 0,
    retry_delay: float = 1.0,
) -> BulkOperationResult:
    """Insert items in batches, optionally tolerating duplicates.

    A duplicate is any error whose message mentions "duplicate" or "unique".
    With ``ignore_duplicates`` the original item counts as inserted. With
    ``update_on_duplicate`` the insert function is called once more; real
    upsert logic belongs to ``insert_fn``.
    """

    async def insert(item: T, index: int) -> T:
        try:
            return await insert_fn(item)
        except Exception as e:
            if is_duplicate_error(e):
                if ignore_duplicates:
                    logger.warning(f"[BULK INSERT] Duplicate found for item {index}, ignoring")
                    return item
                if update_on_duplicate:
                    logger.warning(f"[BULK INSERT] Duplicate found for item {index}, attempting update")
                    return await insert_fn(item)
            raise

    return await process_batch(
        items,
        insert,
        batch_size=batch_size,
        continue_on_error=continue_on_error,
        retry_attempts=retry_attempts,
        retry_delay=retry_delay,
    )


async def bulk_update(
    items: Sequence[T],
    update_fn: Callable[[T], Awaitable[T]],
    *,
    validate_fields: Iterable[str] = (),
    upsert: bool = False,
    batch_size: int = 30,
    continue_on_error: bool = True,
    retry_attempts: int = 0,
    retry_delay: float = 1.0,
) -> BulkOperationResult:
    """Update items in batches after checking required fields are present."""
    required = list(validate_fields)
    if required:
        invalid = [item for item in items if not all(_field_present(item, f) for f in required)]
        if invalid:
            return BulkOperationResult(
                success=False,
                error=f"Found {len(invalid)} items missing required fields: {', '.join(required)}",
                processed=0,
                failed=len(invalid),
            )

    async def update(item: T, index: int) -> T:
        try:
            return await update_fn(item)
        except Exception:
            if not upsert:
                raise
            logger.warning(f"[BULK UPDATE] Update failed for item {index}, attempting upsert")
            return await update_fn(item)

    return await process_batch(
        items,
        update,
        batch_size=batch_size,
        continue_on_error=continue_on_error,
        retry_attempts=retry_attempts,
        retry_delay=retry_delay,
    )


async def bulk_delete(
    items: Sequence[T],
    delete_fn: Callable[[T], Awaitable[bool]],
    *,
    validate_before_process: bool = True,
    batch_size: int = 20,
    continue_on_error: bool = True,
    retry_attempts: int = 0,
    retry_delay: float = 1.0,
) -> BulkOperationResult:
    """Delete items in batches; a falsy return from ``delete_fn`` is a failure."""
    if validate_before_process:
        invalid_count = sum(1 for item in items if item is None)
        if invalid_count:
            return BulkOperationResult(
                success=False,
                error=f"Found {invalid_count} invalid items",
                processed=0,
                failed=invalid_count,
            )

    async def delete(item: T, index: int) -> bool:
        deleted = await delete_fn(item)
        if not deleted:
            raise LookupError(f"Failed to delete item at index {index}")
        return deleted

    return await process_batch(
        items,
        delete,
        batch_size=batch_size,
        continue_on_error=continue_on_error,
        retry_attempts=retry_attempts,
        retry_delay=retry_delay,
    )


def validate_bulk_data(
    items: Sequence[T],
    required_fields: Iterable[str] = (),
    custom_validator: Callable[[T], bool] | None = None,
) -> BulkValidationResult:
    """Partition items into valid and invalid without touching storage."""
    errors: list[str] = []
    valid_items: list[T] = []
    invalid_items: list[T] = []
    required = list(required_fields)

    if not isinstance(items, Sequence) or isinstance(items, (str, bytes)):
        return BulkValidationResult(valid=False, errors=["Items must be a list"])

    if not items:
        return BulkValidationResult(valid=False, errors=["Items array cannot be empty"])

    for index, item in enumerate(items):
        item_errors: list[str] = []

        if item is None or isinstance(item, (str, bytes, int, float, bool)):
            item_errors.append(f"Item at index {index} is not a valid object")
        else:
            for field in required:
                if not _has_field(item, field):
                    item_errors.append(f"Item at index {index} is missing required field: {field}")

            if custom_validator is not None and not custom_validator(item):
                item_errors.append(f"Item at index {index} failed custom validation")

        if item_errors:
            errors.extend(item_errors)
            invalid_items.append(item)
        else:
            valid_items.append(item)

    return BulkValidationResult(
        valid=not errors,
        errors=errors,
        valid_items=valid_items,
        invalid_items=invalid_items,
    )


class BulkOperationProgress:
    """Progress bookkeeping for a bulk operation of known size."""

    def __init__(
        self,
        total: int,
        on_progress: Callable[[ProgressInfo], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.total = total
        self.completed = 0
        self.failed = 0
        self._clock = clock
        self._start = clock()
        self._on_progress = on_progress

    def update(self, completed: int, failed: int = 0) -> ProgressInfo:
        """Record absolute completed/failed counts and notify the callback."""
        self.completed = completed
        self.failed = failed
        progress = self.get_progress()
        if self._on_progress is not None:
            self._on_progress(progress)
        return progress

    def get_progress(self) -> ProgressInfo:
        elapsed_seconds = max(self._clock() - self._start, 0.0)
        remaining = max(self.total - self.completed - self.failed, 0)
        rate = self.completed / elapsed_seconds if elapsed_seconds > 0 else 0.0
        estimated_seconds = remaining / rate if remaining > 0 and rate > 0 else 0.0
        if self.total > 0:
            percentage = round((self.completed + self.failed) / self.total * 100)
        else:
            percentage = 100

        return ProgressInfo(
            total=self.total,
            completed=self.completed,
            failed=self.failed,
            remaining=remaining,
            percentage=percentage,
            elapsed=elapsed_seconds * 1000,
            estimated_time=estimated_seconds * 1000,
            rate=rate,
        )
