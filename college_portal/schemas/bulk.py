"""Bulk operation result schemas."""

from typing import Any

from college_portal.schemas.common import BaseSchema


class BulkItemError(BaseSchema):
    """Failure of one item in a bulk operation."""

    id: int | str
    success: bool = False
    error: str


class BulkOperationResult(BaseSchema):
    """Outcome of a bulk operation; returned to the caller, never persisted."""

    success: bool
    data: list[Any] = []
    error: str | None = None
    processed: int = 0
    failed: int = 0
    details: list[BulkItemError] = []


class BulkValidationResult(BaseSchema):
    """Partition of bulk input into valid and invalid items."""

    valid: bool
    errors: list[str] = []
    valid_items: list[Any] = []
    invalid_items: list[Any] = []


class ProgressInfo(BaseSchema):
    """Snapshot of a long-running bulk operation."""

    total: int
    completed: int
    failed: int
    remaining: int
    percentage: int
    elapsed: float  # milliseconds
    estimated_time: float  # milliseconds
    rate: float  # items per second
