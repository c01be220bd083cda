"""Internal marks import into student grade cards.

The sheet is checked as a whole first; one bad row rejects the import. Clean
rows are committed in fixed-size chunks, one transaction per chunk, creating
each student's grade card on first use.
"""

import logging

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from college_portal.core.config import settings
from college_portal.core.exceptions import AppException, GradeCardNumberError, InternalError
from college_portal.models.batch import Batch, BatchSubject, Semester
from college_portal.models.grade_card import StudentGradeCard, SubjectGradeDetail
from college_portal.schemas.common import ImportOutcome, ImportStatus
from college_portal.schemas.grade_card import (
    ChunkFailure,
    InternalMarkImportRejection,
    InternalMarkImportResult,
    InternalMarkRow,
    ResolvedInternalMark,
    RowIssue,
)
from college_portal.services.grade_card_number import (
    CardNumberReservations,
    card_number_prefix,
    generate_card_number,
)
from college_portal.services.roster import batch_member_ids, get_batch_subject, students_by_enrollment
from college_portal.services.spreadsheet import (
    INTERNAL_MARK_COLUMNS,
    SheetRow,
    cell_text,
    describe_row_errors,
    read_sheet_rows,
)

logger = logging.getLogger(__name__)


class InternalMarkImportService:
    """Validates internal-marks sheets and writes subject grade details."""

    def __init__(self, db: Session, chunk_size: int | None = None):
        self.db = db
        self.chunk_size = chunk_size or settings.GRADE_CARD_CHUNK_SIZE

    def import_marks(
        self,
        college_id: int,
        batch_subject_id: int,
        file_content: bytes,
    ) -> ImportOutcome:
        """Import one internal-marks sheet for a batch subject."""
        logger.info(
            f"[INTERNAL MARK IMPORT] Starting import: college={college_id}, "
            f"batch_subject={batch_subject_id}, size={len(file_content)} bytes"
        )
        try:
            batch_subject = get_batch_subject(self.db, college_id, batch_subject_id)
            batch = batch_subject.batch
            rows = read_sheet_rows(file_content, INTERNAL_MARK_COLUMNS)
            rejection, clean = self.validate_rows(college_id, batch_subject, batch, rows)

            if rejection.has_rejects:
                logger.warning(
                    f"[INTERNAL MARK IMPORT] Rejected: errors={len(rejection.errors)}, "
                    f"missing={len(rejection.missing_students)}, "
                    f"existing={len(rejection.existing_records)}, "
                    f"not_assigned={len(rejection.not_assigned_students)}"
                )
                return ImportOutcome(ImportStatus.REJECTED, rejection)

            return self.commit_marks(batch_subject, batch, clean)

        except AppException:
            raise
        except Exception as e:
            logger.exception("[INTERNAL MARK IMPORT] Unexpected failure")
            self.db.rollback()
            raise InternalError(
                "An unexpected error occurred while importing internal marks.",
                details={"error": str(e)},
            )

    def validate_rows(
        self,
        college_id: int,
        batch_subject: BatchSubject,
        batch: Batch,
        rows: list[SheetRow],
    ) -> tuple[InternalMarkImportRejection, list[ResolvedInternalMark]]:
        """Run schema and domain checks; nothing is written."""
        rejection = InternalMarkImportRejection()
        parsed: list[tuple[int, InternalMarkRow]] = []

        for sheet_row in rows:
            enrollment_no = cell_text(sheet_row.values.get("enrollment_no"))
            if not enrollment_no:
                rejection.missing_students.append(RowIssue(
                    row=sheet_row.row_number,
                    error="Enrollment number is required",
                ))
                continue
            try:
                row = InternalMarkRow.model_validate({
                    "enrollment_no": enrollment_no,
                    "internal_marks": sheet_row.values.get("internal_marks"),
                })
            except PydanticValidationError as e:
                rejection.errors.append(RowIssue(
                    row=sheet_row.row_number,
                    enrollment_no=enrollment_no,
                    error=describe_row_errors(e),
                ))
                continue
            parsed.append((sheet_row.row_number, row))

        students = students_by_enrollment(self.db, college_id, (row.enrollment_no for _, row in parsed))
        members = batch_member_ids(self.db, batch.id)
        already_graded = self._students_with_details(batch_subject.id, batch.id, batch.semester_id)
        with_cards = self._students_with_cards(batch.id, batch.semester_id)

        clean: list[ResolvedInternalMark] = []
        seen: set[int] = set()
        for row_number, row in parsed:
            student = students.get(row.enrollment_no)
            if not student:
                rejection.missing_students.append(RowIssue(
                    row=row_number,
                    enrollment_no=row.enrollment_no,
                    error="Student not found",
                ))
                continue

            if student.id not in members:
                rejection.not_assigned_students.append(RowIssue(
                    row=row_number,
                    enrollment_no=row.enrollment_no,
                    error="Student is not assigned to this batch",
                ))
                continue

            if student.id in already_graded or student.id in seen:
                rejection.existing_records.append(RowIssue(
                    row=row_number,
                    enrollment_no=row.enrollment_no,
                    error="Internal marks already exist for this subject",
                ))
                continue

            if student.id not in with_cards:
                try:
                    card_number_prefix(row.enrollment_no, batch.semester.numerical)
                except GradeCardNumberError as e:
                    rejection.errors.append(RowIssue(
                        row=row_number,
                        enrollment_no=row.enrollment_no,
                        error=str(e),
                    ))
                    continue

            seen.add(student.id)
            clean.append(ResolvedInternalMark(
                row_number=row_number,
                enrollment_no=row.enrollment_no,
                student_id=student.id,
                internal_marks=row.internal_marks,
            ))

        logger.info(
            f"[INTERNAL MARK IMPORT] Validated {len(rows)} rows: {len(clean)} clean, "
            f"{len(rows) - len(clean)} rejected"
        )
        return rejection, clean

    def _students_with_cards(self, batch_id: int, semester_id: int) -> set[int]:
        result = self.db.execute(
            select(StudentGradeCard.student_id).where(
                StudentGradeCard.batch_id == batch_id,
                StudentGradeCard.semester_id == semester_id,
            )
        )
        return set(result.scalars().all())

    def _students_with_details(self, batch_subject_id: int, batch_id: int, semester_id: int) -> set[int]:
        result = self.db.execute(
            select(StudentGradeCard.student_id)
            .join(SubjectGradeDetail, SubjectGradeDetail.student_grade_card_id == StudentGradeCard.id)
            .where(
                StudentGradeCard.batch_id == batch_id,
                StudentGradeCard.semester_id == semester_id,
                SubjectGradeDetail.batch_subject_id == batch_subject_id,
            )
        )
        return set(result.scalars().all())

    def commit_marks(
        self,
        batch_subject: BatchSubject,
        batch: Batch,
        marks: list[ResolvedInternalMark],
    ) -> ImportOutcome:
        """Write validated rows chunk by chunk; a failing chunk is rolled back alone."""
        semester = batch.semester
        reservations = CardNumberReservations()
        failures: list[ChunkFailure] = []
        card_numbers: list[str] = []
        success_count = 0

        for start in range(0, len(marks), self.chunk_size):
            chunk = marks[start:start + self.chunk_size]
            chunk_number = start // self.chunk_size + 1
            generated: list[str] = []
            try:
                for mark in chunk:
                    card = self._get_or_create_grade_card(
                        mark, batch.id, semester, reservations, generated
                    )
                    card.subject_grades.append(SubjectGradeDetail(
                        batch_subject_id=batch_subject.id,
                        internal_marks=mark.internal_marks,
                        credit=batch_subject.credit_score,
                    ))
                self.db.flush()
                self.db.commit()
            except (IntegrityError, GradeCardNumberError) as e:
                self.db.rollback()
                for card_no in generated:
                    reservations.release(card_no)
                logger.error(f"[INTERNAL MARK IMPORT] Chunk {chunk_number} rolled back: {e}")
                failures.append(ChunkFailure(
                    chunk=chunk_number,
                    error=str(e),
                    affected_records=len(chunk),
                ))
                continue

            success_count += len(chunk)
            card_numbers.extend(generated)
            logger.info(
                f"[INTERNAL MARK IMPORT] Chunk {chunk_number} committed: {len(chunk)} rows, "
                f"{len(generated)} new grade cards"
            )

        if failures:
            return ImportOutcome(
                ImportStatus.PARTIAL,
                InternalMarkImportResult(
                    message=f"Partially completed. Imported internal marks for {success_count} students.",
                    success_count=success_count,
                    card_numbers=card_numbers,
                    errors=failures[:settings.IMPORT_ERROR_REPORT_LIMIT],
                ),
            )

        logger.info(f"[INTERNAL MARK IMPORT] Imported internal marks for {success_count} students")
        return ImportOutcome(
            ImportStatus.SUCCESS,
            InternalMarkImportResult(
                message=f"Successfully imported internal marks for {success_count} students.",
                success_count=success_count,
                card_numbers=card_numbers,
            ),
        )

    def _find_grade_card(self, student_id: int, batch_id: int, semester_id: int) -> StudentGradeCard | None:
        result = self.db.execute(
            select(StudentGradeCard).where(
                StudentGradeCard.student_id == student_id,
                StudentGradeCard.batch_id == batch_id,
                StudentGradeCard.semester_id == semester_id,
            )
        )
        return result.scalar_one_or_none()

    def _get_or_create_grade_card(
        self,
        mark: ResolvedInternalMark,
        batch_id: int,
        semester: Semester,
        reservations: CardNumberReservations,
        generated: list[str],
    ) -> StudentGradeCard:
        """Existing grade card of the student, or a new one with a fresh number.

        A unique-constraint conflict on insert means another request took the
        number (or created the card) first; the number is regenerated from a
        fresh read, a bounded number of times.
        """
        card = self._find_grade_card(mark.student_id, batch_id, semester.id)
        if card:
            return card

        attempts = settings.GRADE_CARD_NUMBER_MAX_RETRIES + 1
        for attempt in range(1, attempts + 1):
            card_no = generate_card_number(self.db, batch_id, semester, mark.enrollment_no, reservations)
            try:
                with self.db.begin_nested():
                    card = StudentGradeCard(
                        student_id=mark.student_id,
                        batch_id=batch_id,
                        semester_id=semester.id,
                        card_no=card_no,
                    )
                    self.db.add(card)
                    self.db.flush()
            except IntegrityError:
                if attempt == attempts:
                    raise
                logger.warning(
                    f"[INTERNAL MARK IMPORT] Grade card number {card_no} conflicted, "
                    f"regenerating (attempt {attempt}/{attempts})"
                )
                existing = self._find_grade_card(mark.student_id, batch_id, semester.id)
                if existing:
                    return existing
                continue

            generated.append(card_no)
            return card

        raise GradeCardNumberError(f"Could not create a grade card for enrollment {mark.enrollment_no}")
