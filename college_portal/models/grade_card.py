"""Grade card models."""

from decimal import Decimal

from sqlalchemy import DECIMAL, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from college_portal.core.database import Base
from college_portal.models.base import BigIntegerID, IDMixin, TimestampMixin


class StudentGradeCard(Base, IDMixin, TimestampMixin):
    """Per-student, per-batch, per-semester grade card."""

    __tablename__ = "student_grade_cards"

    student_id: Mapped[int] = mapped_column(
        BigIntegerID,
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    batch_id: Mapped[int] = mapped_column(
        BigIntegerID,
        ForeignKey("batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    semester_id: Mapped[int] = mapped_column(
        BigIntegerID,
        ForeignKey("semesters.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    # Never regenerated once assigned
    card_no: Mapped[str] = mapped_column(String(20), nullable=False)
    total_graded_credit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_quality_point: Mapped[int | None] = mapped_column(Integer, nullable=True)
    gpa: Mapped[Decimal | None] = mapped_column(DECIMAL(4, 2), nullable=True)
    cgpa: Mapped[Decimal | None] = mapped_column(DECIMAL(4, 2), nullable=True)

    student: Mapped["Student"] = relationship("Student", lazy="selectin")
    semester: Mapped["Semester"] = relationship("Semester", lazy="selectin")
    subject_grades: Mapped[list["SubjectGradeDetail"]] = relationship(
        "SubjectGradeDetail",
        back_populates="grade_card",
        lazy="selectin",
        order_by="SubjectGradeDetail.id",
    )

    __table_args__ = (
        UniqueConstraint("batch_id", "semester_id", "card_no", name="uq_grade_card_number"),
        UniqueConstraint("student_id", "batch_id", "semester_id", name="uq_grade_card_student"),
    )

    def __repr__(self) -> str:
        return f"<StudentGradeCard(id={self.id}, card_no={self.card_no})>"


class SubjectGradeDetail(Base, IDMixin, TimestampMixin):
    """One subject's marks and grade on a grade card."""

    __tablename__ = "subject_grade_details"

    student_grade_card_id: Mapped[int] = mapped_column(
        BigIntegerID,
        ForeignKey("student_grade_cards.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    batch_subject_id: Mapped[int] = mapped_column(
        BigIntegerID,
        ForeignKey("batch_subjects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    internal_marks: Mapped[Decimal | None] = mapped_column(DECIMAL(5, 2), nullable=True)
    external_marks: Mapped[Decimal | None] = mapped_column(DECIMAL(5, 2), nullable=True)
    credit: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    grade: Mapped[str | None] = mapped_column(String(2), nullable=True)
    grade_point: Mapped[int | None] = mapped_column(Integer, nullable=True)
    quality_point: Mapped[int | None] = mapped_column(Integer, nullable=True)

    grade_card: Mapped["StudentGradeCard"] = relationship(
        "StudentGradeCard",
        back_populates="subject_grades",
    )
    batch_subject: Mapped["BatchSubject"] = relationship("BatchSubject", lazy="selectin")

    __table_args__ = (
        UniqueConstraint(
            "student_grade_card_id", "batch_subject_id",
            name="uq_subject_grade_detail",
        ),
    )

    def __repr__(self) -> str:
        return f"<SubjectGradeDetail(card_id={self.student_grade_card_id}, batch_subject_id={self.batch_subject_id})>"


from college_portal.models.batch import BatchSubject, Semester
from college_portal.models.student import Student
