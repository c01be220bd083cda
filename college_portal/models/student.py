"""Student and batch membership models."""

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from college_portal.core.database import Base
from college_portal.models.base import BigIntegerID, CollegeScopedMixin, IDMixin, TimestampMixin


class Student(Base, IDMixin, TimestampMixin, CollegeScopedMixin):
    """Student model."""

    __tablename__ = "students"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Positions 1-2 hold the admission year, 5-6 the branch code
    enrollment_no: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)

    batches: Mapped[list["StudentBatch"]] = relationship(
        "StudentBatch",
        back_populates="student",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Student(id={self.id}, enrollment_no={self.enrollment_no})>"


class StudentBatch(Base, IDMixin, TimestampMixin):
    """Assignment of a student to a batch."""

    __tablename__ = "student_batches"

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

    student: Mapped["Student"] = relationship("Student", back_populates="batches")

    __table_args__ = (
        UniqueConstraint("student_id", "batch_id", name="uq_student_batch"),
    )

    def __repr__(self) -> str:
        return f"<StudentBatch(student_id={self.student_id}, batch_id={self.batch_id})>"
