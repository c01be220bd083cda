"""Grade card calculations and lookups."""

import logging
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from college_portal.core.config import settings
from college_portal.core.exceptions import NotFoundError
from college_portal.models.batch import Batch, ClassType, Semester
from college_portal.models.exam import ExamMark, ExamType
from college_portal.models.grade_card import StudentGradeCard, SubjectGradeDetail
from college_portal.schemas.grade_card import (
    GradeCalculationRejection,
    GradeCalculationResult,
    GradeCardResponse,
    SubjectGradeDetailResponse,
)
from college_portal.services.bulk_operation import bulk_update
from college_portal.services.roster import batch_member_ids, get_batch

logger = logging.getLogger(__name__)

# (minimum total, grade, grade point), highest band first
THEORY_GRADES = (
    (90, "S", 10),
    (80, "A", 9),
    (70, "B", 8),
    (60, "C", 7),
    (50, "D", 6),
    (40, "E", 5),
)
PRACTICAL_GRADES = (
    (90, "S", 10),
    (80, "A", 9),
    (70, "B", 8),
    (60, "C", 7),
    (55, "D", 6),
    (50, "E", 5),
)
FAIL_GRADE = ("F", 0)

TWO_PLACES = Decimal("0.01")


def grade_for_total(total: Decimal, class_type: ClassType) -> tuple[str, int]:
    """Letter grade and grade point for a subject total out of 100."""
    bands = PRACTICAL_GRADES if class_type == ClassType.PRACTICAL else THEORY_GRADES
    for minimum, grade, point in bands:
        if total >= minimum:
            return grade, point
    return FAIL_GRADE


def external_marks_for(achieved: Decimal, total: Decimal) -> Decimal:
    """Scale semester exam marks to the external weight, rounding half up."""
    if not total:
        return Decimal("0")
    scaled = Decimal(achieved) / Decimal(total) * settings.EXTERNAL_MARKS_WEIGHT
    return scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def grade_point_average(quality_points: int, credits: int) -> Decimal | None:
    if not credits:
        return None
    return (Decimal(quality_points) / Decimal(credits)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


class GradeCardService:
    """Batch-wide grade card calculations."""

    def __init__(self, db: Session):
        self.db = db

    def _grade_cards(self, batch: Batch) -> list[StudentGradeCard]:
        result = self.db.execute(
            select(StudentGradeCard)
            .where(
                StudentGradeCard.batch_id == batch.id,
                StudentGradeCard.semester_id == batch.semester_id,
            )
            .order_by(StudentGradeCard.card_no)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    def _latest_semester_exam_type(self, college_id: int) -> ExamType | None:
        result = self.db.execute(
            select(ExamType)
            .where(
                ExamType.college_id == college_id,
                ExamType.exam_name.ilike("%semester%"),
            )
            .order_by(ExamType.created_at.desc(), ExamType.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def calculate_external_marks(
        self,
        college_id: int,
        batch_id: int,
    ) -> GradeCalculationRejection | GradeCalculationResult:
        """Derive external marks of every subject line in a batch from semester exam marks.

        Every student of the batch needs semester exam marks, a grade card and
        internal marks for every subject; otherwise nothing is updated.
        """
        batch = get_batch(self.db, college_id, batch_id)
        exam_type = self._latest_semester_exam_type(college_id)
        if not exam_type:
            return GradeCalculationRejection(
                message="Cannot calculate external marks.",
                errors=["No semester exam type found for this college."],
            )

        members = batch_member_ids(self.db, batch.id)
        cards = {card.student_id: card for card in self._grade_cards(batch)}
        subject_ids = [bs.id for bs in batch.subjects]

        marks_result = self.db.execute(
            select(ExamMark).where(
                ExamMark.exam_type_id == exam_type.id,
                ExamMark.batch_subject_id.in_(subject_ids),
            )
        )
        marks = {(m.student_id, m.batch_subject_id): m for m in marks_result.scalars().all()}

        errors: list[str] = []
        updates: list[dict] = []
        for batch_subject in batch.subjects:
            code = batch_subject.subject.code
            for student_id in sorted(members):
                mark = marks.get((student_id, batch_subject.id))
                if not mark:
                    errors.append(f"Missing {exam_type.exam_name} marks for student {student_id} in subject {code}")
                    continue
                card = cards.get(student_id)
                if not card:
                    errors.append(f"Missing grade card for student {student_id}")
                    continue
                detail = next(
                    (d for d in card.subject_grades if d.batch_subject_id == batch_subject.id),
                    None,
                )
                if not detail or detail.internal_marks is None:
                    errors.append(f"Missing internal marks for card {card.card_no} in subject {code}")
                    continue
                updates.append({
                    "id": detail.id,
                    "external_marks": external_marks_for(mark.achieved_marks, exam_type.total_marks),
                })

        if errors:
            logger.warning(f"[GRADE CARD] External marks rejected for batch {batch.id}: {len(errors)} problems")
            return GradeCalculationRejection(message="Cannot calculate external marks.", errors=errors)

        async def apply_external(update: dict) -> dict:
            with self.db.begin_nested():
                detail = self.db.get(SubjectGradeDetail, update["id"])
                if detail is None:
                    raise LookupError(f"Subject grade detail {update['id']} no longer exists")
                detail.external_marks = update["external_marks"]
                self.db.flush()
            return update

        result = await bulk_update(updates, apply_external, validate_fields=("id", "external_marks"))
        self.db.commit()

        logger.info(
            f"[GRADE CARD] External marks for batch {batch.id}: "
            f"{result.processed} updated, {result.failed} failed"
        )
        return GradeCalculationResult(
            message=f"External marks calculated for {result.processed} subject entries.",
            updated=result.processed,
            failed=result.failed,
            errors=[d.error for d in result.details] or ([result.error] if result.error else []),
        )

    def generate_grade_details(
        self,
        college_id: int,
        batch_id: int,
    ) -> GradeCalculationRejection | GradeCalculationResult:
        """Grade every subject line of a batch and total each grade card."""
        batch = get_batch(self.db, college_id, batch_id)
        cards = self._grade_cards(batch)
        if not cards:
            return GradeCalculationRejection(
                message="Cannot generate grade details.",
                errors=["No grade cards found for this batch."],
            )

        errors = [
            f"Missing marks for card {card.card_no} in subject {detail.batch_subject.subject.code}"
            for card in cards
            for detail in card.subject_grades
            if detail.internal_marks is None or detail.external_marks is None
        ]
        if errors:
            return GradeCalculationRejection(message="Cannot generate grade details.", errors=errors)

        for card in cards:
            credits = 0
            quality = 0
            for detail in card.subject_grades:
                total = detail.internal_marks + detail.external_marks
                grade, point = grade_for_total(total, detail.batch_subject.class_type)
                detail.grade = grade
                detail.grade_point = point
                detail.quality_point = detail.credit * point
                credits += detail.credit
                quality += detail.quality_point
            card.total_graded_credit = credits
            card.total_quality_point = quality
            card.gpa = grade_point_average(quality, credits)
            card.cgpa = self._cumulative_gpa(card, batch.semester)

        self.db.commit()
        logger.info(f"[GRADE CARD] Graded {len(cards)} grade cards for batch {batch.id}")
        return GradeCalculationResult(
            message=f"Grade details generated for {len(cards)} grade cards.",
            updated=len(cards),
        )

    def _cumulative_gpa(self, card: StudentGradeCard, semester: Semester) -> Decimal | None:
        result = self.db.execute(
            select(StudentGradeCard)
            .join(Semester, Semester.id == StudentGradeCard.semester_id)
            .where(
                StudentGradeCard.student_id == card.student_id,
                Semester.numerical < semester.numerical,
                StudentGradeCard.total_graded_credit.is_not(None),
            )
        )
        earlier = result.scalars().all()
        credits = card.total_graded_credit + sum(c.total_graded_credit for c in earlier)
        quality = card.total_quality_point + sum(c.total_quality_point or 0 for c in earlier)
        return grade_point_average(quality, credits)

    def get_grade_card(self, college_id: int, grade_card_id: int) -> GradeCardResponse:
        result = self.db.execute(
            select(StudentGradeCard)
            .join(Batch, Batch.id == StudentGradeCard.batch_id)
            .where(
                StudentGradeCard.id == grade_card_id,
                Batch.college_id == college_id,
            )
        )
        card = result.scalar_one_or_none()
        if not card:
            raise NotFoundError("Grade card", str(grade_card_id))

        return GradeCardResponse(
            id=card.id,
            card_no=card.card_no,
            student_id=card.student_id,
            student_name=card.student.name,
            enrollment_no=card.student.enrollment_no,
            batch_id=card.batch_id,
            semester_id=card.semester_id,
            semester_name=card.semester.name,
            total_graded_credit=card.total_graded_credit,
            total_quality_point=card.total_quality_point,
            gpa=card.gpa,
            cgpa=card.cgpa,
            subject_grades=[
                SubjectGradeDetailResponse(
                    id=detail.id,
                    batch_subject_id=detail.batch_subject_id,
                    subject_name=detail.batch_subject.subject.name,
                    subject_code=detail.batch_subject.subject.code,
                    class_type=detail.batch_subject.class_type,
                    internal_marks=detail.internal_marks,
                    external_marks=detail.external_marks,
                    credit=detail.credit,
                    grade=detail.grade,
                    grade_point=detail.grade_point,
                    quality_point=detail.quality_point,
                )
                for detail in card.subject_grades
            ],
            created_at=card.created_at,
        )
