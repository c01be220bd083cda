"""Exam mark schemas."""

from decimal import Decimal
from typing import Any

from pydantic import Field, field_validator

from college_portal.schemas.common import BaseSchema


# ==========================================
# Spreadsheet Row Schemas
# ==========================================

class ExamMarkRow(BaseSchema):
    """One exam-marks sheet row after coercion."""

    student_name: str | None = None
    enrollment_no: str = Field(..., min_length=1)
    achieved_marks: Decimal = Field(Decimal("0"), ge=0)
    was_absent: bool = False
    debarred: bool = False
    malpractice: bool = False

    @field_validator("student_name", mode="before")
    @classmethod
    def coerce_student_name(cls, v: Any) -> str | None:
        # Display-only column
        if v is None:
            return None
        if isinstance(v, float) and v.is_integer():
            v = int(v)
        return str(v).strip()

    @field_validator("enrollment_no", mode="before")
    @classmethod
    def coerce_enrollment_no(cls, v: Any) -> str:
        if v is None:
            return ""
        if isinstance(v, float) and v.is_integer():
            v = int(v)
        return str(v).strip()

    @field_validator("achieved_marks", mode="before")
    @classmethod
    def blank_marks_are_zero(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return Decimal("0")
        if isinstance(v, float):
            return Decimal(str(v))
        return v


class ResolvedExamMark(BaseSchema):
    """A clean exam-mark row bound to a student record."""

    row_number: int
    enrollment_no: str
    student_id: int
    exam_type_id: int
    batch_subject_id: int
    achieved_marks: Decimal
    was_absent: bool = False
    debarred: bool = False
    malpractice: bool = False


# ==========================================
# Import Responses
# ==========================================

class ImportSummary(BaseSchema):
    """Row counts of a committed import."""

    total: int
    successful: int
    failed: int


class ExamMarkImportFailure(BaseSchema):
    """A row that failed to persist after the gate."""

    record: dict[str, Any]
    error: str


class ExamMarkImportRejection(BaseSchema):
    """Why an exam-marks sheet was rejected before anything was written."""

    errors: list[str] = []
    missing_rows: list[int] = []
    existing_rows: list[int] = []
    exceeded_marks_rows: list[int] = []
    not_assigned_rows: list[int] = []

    @property
    def has_rejects(self) -> bool:
        return bool(
            self.errors
            or self.missing_rows
            or self.existing_rows
            or self.exceeded_marks_rows
            or self.not_assigned_rows
        )


class ExamMarkImportResult(BaseSchema):
    """Outcome of a committed exam-marks import."""

    message: str
    summary: ImportSummary
    success_count: int
    errors: list[ExamMarkImportFailure] | None = None


# ==========================================
# Bulk Delete
# ==========================================

class ExamMarkBulkDelete(BaseSchema):
    """Exam mark IDs to delete."""

    ids: list[int] = Field(..., min_length=1)


class ExamMarkBulkDeleteResult(BaseSchema):
    """Outcome of a bulk delete."""

    message: str
    deleted: int
    failed: int
    errors: list[dict[str, Any]] = []
