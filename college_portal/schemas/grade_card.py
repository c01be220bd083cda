"""Grade card schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import Field, field_validator

from college_portal.core.config import settings
from college_portal.models.batch import ClassType
from college_portal.schemas.common import BaseSchema


# ==========================================
# Internal Marks Import
# ==========================================

class InternalMarkRow(BaseSchema):
    """One internal-marks sheet row after coercion."""

    enrollment_no: str = Field(..., min_length=1)
    internal_marks: Decimal = Field(..., ge=0, le=settings.INTERNAL_MARKS_MAX)

    @field_validator("enrollment_no", mode="before")
    @classmethod
    def coerce_enrollment_no(cls, v: Any) -> str:
        if v is None:
            return ""
        if isinstance(v, float) and v.is_integer():
            v = int(v)
        return str(v).strip()

    @field_validator("internal_marks", mode="before")
    @classmethod
    def blank_marks_are_zero(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return Decimal("0")
        if isinstance(v, float):
            return Decimal(str(v))
        return v


class ResolvedInternalMark(BaseSchema):
    """A clean internal-marks row bound to a student record."""

    row_number: int
    enrollment_no: str
    student_id: int
    internal_marks: Decimal


class RowIssue(BaseSchema):
    """A rejected sheet row."""

    row: int | None = None
    enrollment_no: str | None = None
    error: str


class InternalMarkImportRejection(BaseSchema):
    """Why an internal-marks sheet was rejected before anything was written."""

    errors: list[RowIssue] = []
    missing_students: list[RowIssue] = []
    existing_records: list[RowIssue] = []
    not_assigned_students: list[RowIssue] = []

    @property
    def has_rejects(self) -> bool:
        return bool(
            self.errors
            or self.missing_students
            or self.existing_records
            or self.not_assigned_students
        )


class ChunkFailure(BaseSchema):
    """A commit chunk that was rolled back."""

    chunk: int
    error: str
    affected_records: int


class InternalMarkImportResult(BaseSchema):
    """Outcome of a committed internal-marks import."""

    message: str
    success_count: int
    card_numbers: list[str] = []
    errors: list[ChunkFailure] | None = None


# ==========================================
# Batch-wide Grade Calculations
# ==========================================

class BatchRequest(BaseSchema):
    """Request body naming a batch."""

    batch_id: int


class GradeCalculationRejection(BaseSchema):
    """Problems that blocked a batch-wide calculation."""

    message: str
    errors: list[str]


class GradeCalculationResult(BaseSchema):
    """Outcome of a batch-wide calculation."""

    message: str
    updated: int
    failed: int = 0
    errors: list[str] = []


# ==========================================
# Grade Card Views
# ==========================================

class SubjectGradeDetailResponse(BaseSchema):
    """Subject line on a grade card."""

    id: int
    batch_subject_id: int
    subject_name: str
    subject_code: str
    class_type: ClassType
    internal_marks: Decimal | None
    external_marks: Decimal | None
    credit: int
    grade: str | None
    grade_point: int | None
    quality_point: int | None


class GradeCardResponse(BaseSchema):
    """Grade card with its subject lines."""

    id: int
    card_no: str
    student_id: int
    student_name: str
    enrollment_no: str
    batch_id: int
    semester_id: int
    semester_name: str
    total_graded_credit: int | None
    total_quality_point: int | None
    gpa: Decimal | None
    cgpa: Decimal | None
    subject_grades: list[SubjectGradeDetailResponse] = []
    created_at: datetime
