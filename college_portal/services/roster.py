"""College-scoped lookups shared by the import workflows."""

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from college_portal.core.exceptions import BadRequestError
from college_portal.models.batch import Batch, BatchSubject
from college_portal.models.exam import ExamType
from college_portal.models.student import Student, StudentBatch


def students_by_enrollment(
    db: Session,
    college_id: int,
    enrollment_nos: Iterable[str],
) -> dict[str, Student]:
    """Resolve enrollment numbers to students in one query."""
    wanted = {no for no in enrollment_nos if no}
    if not wanted:
        return {}
    result = db.execute(
        select(Student).where(
            Student.college_id == college_id,
            Student.enrollment_no.in_(wanted),
        )
    )
    return {s.enrollment_no: s for s in result.scalars().all()}


def batch_member_ids(db: Session, batch_id: int) -> set[int]:
    """IDs of all students assigned to a batch."""
    result = db.execute(
        select(StudentBatch.student_id).where(StudentBatch.batch_id == batch_id)
    )
    return set(result.scalars().all())


def get_batch_subject(db: Session, college_id: int, batch_subject_id: int) -> BatchSubject:
    """Batch subject of the caller's college, or a 400."""
    result = db.execute(
        select(BatchSubject)
        .join(Batch, Batch.id == BatchSubject.batch_id)
        .where(
            BatchSubject.id == batch_subject_id,
            Batch.college_id == college_id,
        )
    )
    batch_subject = result.scalar_one_or_none()
    if not batch_subject:
        raise BadRequestError("Invalid batch subject ID.", details={"batch_subject_id": batch_subject_id})
    return batch_subject


def get_exam_type(db: Session, college_id: int, exam_type_id: int) -> ExamType:
    """Exam type of the caller's college, or a 400."""
    result = db.execute(
        select(ExamType).where(
            ExamType.id == exam_type_id,
            ExamType.college_id == college_id,
        )
    )
    exam_type = result.scalar_one_or_none()
    if not exam_type:
        raise BadRequestError("Invalid exam type ID.", details={"exam_type_id": exam_type_id})
    return exam_type


def get_batch(db: Session, college_id: int, batch_id: int) -> Batch:
    """Batch of the caller's college, or a 400."""
    result = db.execute(
        select(Batch).where(
            Batch.id == batch_id,
            Batch.college_id == college_id,
        )
        .execution_options(populate_existing=True)
    )
    batch = result.scalar_one_or_none()
    if not batch:
        raise BadRequestError("Invalid batch ID.", details={"batch_id": batch_id})
    return batch
