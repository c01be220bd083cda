"""Exam marks spreadsheet import.

All-or-nothing at the validation gate: if any row is rejected nothing is
written. Clean rows are then inserted through ``bulk_insert``; rows that still
fail after retries are reported as a partial success.
"""

import logging

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from college_portal.core.config import settings
from college_portal.core.exceptions import AppException, InternalError
from college_portal.models.exam import ExamMark, ExamType
from college_portal.schemas.common import ImportOutcome, ImportStatus
from college_portal.schemas.exam_mark import (
    ExamMarkImportFailure,
    ExamMarkImportRejection,
    ExamMarkImportResult,
    ExamMarkRow,
    ImportSummary,
    ResolvedExamMark,
)
from college_portal.services.bulk_operation import BulkOperationProgress, bulk_insert
from college_portal.services.roster import (
    batch_member_ids,
    get_batch_subject,
    get_exam_type,
    students_by_enrollment,
)
from college_portal.services.spreadsheet import (
    EXAM_MARK_COLUMNS,
    SheetRow,
    cell_flag,
    describe_row_errors,
    read_sheet_rows,
)

logger = logging.getLogger(__name__)


class ExamMarkImportService:
    """Validates and commits exam-mark sheets."""

    def __init__(self, db: Session):
        self.db = db

    async def import_marks(
        self,
        college_id: int,
        exam_type_id: int,
        batch_subject_id: int,
        file_content: bytes,
    ) -> ImportOutcome:
        """Import one exam-marks sheet for an exam type and batch subject."""
        logger.info(
            f"[EXAM MARK IMPORT] Starting import: college={college_id}, "
            f"exam_type={exam_type_id}, batch_subject={batch_subject_id}, size={len(file_content)} bytes"
        )
        try:
            exam_type = get_exam_type(self.db, college_id, exam_type_id)
            batch_subject = get_batch_subject(self.db, college_id, batch_subject_id)
            rows = read_sheet_rows(file_content, EXAM_MARK_COLUMNS)
            rejection, clean = self.validate_rows(
                college_id, exam_type, batch_subject.id, batch_subject.batch_id, rows
            )

            if rejection.has_rejects:
                logger.warning(
                    f"[EXAM MARK IMPORT] Rejected: {len(rejection.errors)} errors, "
                    f"missing={rejection.missing_rows}, existing={rejection.existing_rows}, "
                    f"exceeded={rejection.exceeded_marks_rows}, not_assigned={rejection.not_assigned_rows}"
                )
                return ImportOutcome(ImportStatus.REJECTED, rejection)

            return await self.commit_marks(clean)

        except AppException:
            raise
        except Exception as e:
            logger.exception("[EXAM MARK IMPORT] Unexpected failure")
            self.db.rollback()
            raise InternalError(
                "An unexpected error occurred while importing exam marks.",
                details={"error": str(e)},
            )

    def validate_rows(
        self,
        college_id: int,
        exam_type: ExamType,
        batch_subject_id: int,
        batch_id: int,
        rows: list[SheetRow],
    ) -> tuple[ExamMarkImportRejection, list[ResolvedExamMark]]:
        """Run schema and domain checks; nothing is written."""
        rejection = ExamMarkImportRejection()
        parsed: list[tuple[int, ExamMarkRow]] = []

        for sheet_row in rows:
            values = sheet_row.values
            try:
                row = ExamMarkRow.model_validate({
                    "student_name": values.get("student_name"),
                    "enrollment_no": values.get("enrollment_no"),
                    "achieved_marks": values.get("achieved_marks"),
                    "was_absent": cell_flag(values.get("was_absent")),
                    "debarred": cell_flag(values.get("debarred")),
                    "malpractice": cell_flag(values.get("malpractice")),
                })
            except PydanticValidationError as e:
                rejection.errors.append(
                    f"Validation error in row {sheet_row.row_number}: {describe_row_errors(e)}"
                )
                continue
            parsed.append((sheet_row.row_number, row))

        students = students_by_enrollment(self.db, college_id, (row.enrollment_no for _, row in parsed))
        members = batch_member_ids(self.db, batch_id)
        already_marked = self._students_with_marks(exam_type.id, batch_subject_id)

        clean: list[ResolvedExamMark] = []
        seen: set[int] = set()
        for row_number, row in parsed:
            student = students.get(row.enrollment_no)
            if not student:
                rejection.missing_rows.append(row_number)
                continue

            if student.id not in members:
                rejection.not_assigned_rows.append(row_number)
                continue

            if row.achieved_marks > exam_type.total_marks:
                rejection.exceeded_marks_rows.append(row_number)
                rejection.errors.append(
                    f"Achieved marks in row {row_number} should not exceed the total marks of "
                    f"{exam_type.total_marks} in exam type {exam_type.exam_name}"
                )
                continue

            if student.id in already_marked or student.id in seen:
                rejection.existing_rows.append(row_number)
                continue

            seen.add(student.id)
            clean.append(ResolvedExamMark(
                row_number=row_number,
                enrollment_no=row.enrollment_no,
                student_id=student.id,
                exam_type_id=exam_type.id,
                batch_subject_id=batch_subject_id,
                achieved_marks=row.achieved_marks,
                was_absent=row.was_absent,
                debarred=row.debarred,
                malpractice=row.malpractice,
            ))

        if rejection.missing_rows:
            rejection.errors.append(
                "Missing or invalid student enrollment numbers in rows: "
                + ", ".join(str(n) for n in rejection.missing_rows)
            )
        if rejection.not_assigned_rows:
            rejection.errors.append(
                "Students not assigned to this batch in rows: "
                + ", ".join(str(n) for n in rejection.not_assigned_rows)
            )
        if rejection.existing_rows:
            rejection.errors.append(
                "Existing entries found in rows: "
                + ", ".join(str(n) for n in rejection.existing_rows)
            )

        logger.info(
            f"[EXAM MARK IMPORT] Validated {len(rows)} rows: {len(clean)} clean, "
            f"{len(rows) - len(clean)} rejected"
        )
        return rejection, clean

    def _students_with_marks(self, exam_type_id: int, batch_subject_id: int) -> set[int]:
        result = self.db.execute(
            select(ExamMark.student_id).where(
                ExamMark.exam_type_id == exam_type_id,
                ExamMark.batch_subject_id == batch_subject_id,
            )
        )
        return set(result.scalars().all())

    async def commit_marks(self, marks: list[ResolvedExamMark]) -> ImportOutcome:
        """Insert validated marks in batches, one savepoint per row."""
        progress = BulkOperationProgress(
            len(marks),
            on_progress=lambda p: logger.info(
                f"[EXAM MARK IMPORT] Progress: {p.percentage}% "
                f"({p.completed} saved, {p.failed} failed of {p.total})"
            ),
        )

        async def insert_mark(mark: ResolvedExamMark) -> ResolvedExamMark:
            with self.db.begin_nested():
                self.db.add(ExamMark(
                    exam_type_id=mark.exam_type_id,
                    student_id=mark.student_id,
                    batch_subject_id=mark.batch_subject_id,
                    achieved_marks=mark.achieved_marks,
                    was_absent=mark.was_absent,
                    debarred=mark.debarred,
                    malpractice=mark.malpractice,
                ))
                self.db.flush()
            return mark

        result = await bulk_insert(
            marks,
            insert_mark,
            ignore_duplicates=True,
            batch_size=settings.EXAM_MARK_IMPORT_BATCH_SIZE,
            retry_attempts=settings.EXAM_MARK_IMPORT_RETRY_ATTEMPTS,
            retry_delay=settings.BULK_RETRY_DELAY_SECONDS,
        )
        progress.update(result.processed, result.failed)
        self.db.commit()

        summary = ImportSummary(
            total=len(marks),
            successful=result.processed,
            failed=result.failed,
        )

        if result.failed:
            failures = [
                ExamMarkImportFailure(
                    record={
                        "row": marks[int(detail.id)].row_number,
                        "enrollmentNo": marks[int(detail.id)].enrollment_no,
                    },
                    error=detail.error,
                )
                for detail in result.details[:settings.IMPORT_ERROR_REPORT_LIMIT]
            ]
            return ImportOutcome(
                ImportStatus.PARTIAL,
                ExamMarkImportResult(
                    message=f"Partially completed. Successfully created {result.processed} exam marks.",
                    errors=failures,
                    summary=summary,
                    success_count=result.processed,
                ),
            )

        logger.info(f"[EXAM MARK IMPORT] Imported {result.processed} exam marks")
        return ImportOutcome(
            ImportStatus.SUCCESS,
            ExamMarkImportResult(
                message=f"Successfully imported {result.processed} exam marks.",
                summary=summary,
                success_count=result.processed,
            ),
        )
