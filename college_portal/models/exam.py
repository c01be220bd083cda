"""Exam type and exam mark models."""

from decimal import Decimal

from sqlalchemy import DECIMAL, Boolean, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from college_portal.core.database import Base
from college_portal.models.base import BigIntegerID, CollegeScopedMixin, IDMixin, TimestampMixin


class ExamType(Base, IDMixin, TimestampMixin, CollegeScopedMixin):
    """Named assessment category with total and passing marks."""

    __tablename__ = "exam_types"

    exam_name: Mapped[str] = mapped_column(String(255), nullable=False)
    total_marks: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), nullable=False)
    passing_marks: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), nullable=False)

    def __repr__(self) -> str:
        return f"<ExamType(id={self.id}, name={self.exam_name})>"


class ExamMark(Base, IDMixin, TimestampMixin):
    """Marks of one student in one exam of one batch subject."""

    __tablename__ = "exam_marks"

    exam_type_id: Mapped[int] = mapped_column(
        BigIntegerID,
        ForeignKey("exam_types.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_id: Mapped[int] = mapped_column(
        BigIntegerID,
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    batch_subject_id: Mapped[int] = mapped_column(
        BigIntegerID,
        ForeignKey("batch_subjects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    achieved_marks: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), nullable=False)
    was_absent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    debarred: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    malpractice: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    exam_type: Mapped["ExamType"] = relationship("ExamType", lazy="selectin")
    batch_subject: Mapped["BatchSubject"] = relationship("BatchSubject", lazy="selectin")

    __table_args__ = (
        UniqueConstraint(
            "exam_type_id", "student_id", "batch_subject_id",
            name="uq_exam_mark_student_subject",
        ),
    )

    def __repr__(self) -> str:
        return f"<ExamMark(student_id={self.student_id}, exam_type_id={self.exam_type_id})>"


from college_portal.models.batch import BatchSubject
