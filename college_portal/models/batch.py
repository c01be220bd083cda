"""Academic structure models: semesters, batches, subjects."""

import enum

from sqlalchemy import Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from college_portal.core.database import Base
from college_portal.models.base import BigIntegerID, CollegeScopedMixin, IDMixin, TimestampMixin


class ClassType(str, enum.Enum):
    """How a batch subject is taught and graded."""

    THEORY = "THEORY"
    PRACTICAL = "PRACTICAL"


class Semester(Base, IDMixin, TimestampMixin):
    """Semester (term) model."""

    __tablename__ = "semesters"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    numerical: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Semester(id={self.id}, numerical={self.numerical})>"


class Batch(Base, IDMixin, TimestampMixin, CollegeScopedMixin):
    """A cohort offering for one semester."""

    __tablename__ = "batches"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    semester_id: Mapped[int] = mapped_column(
        BigIntegerID,
        ForeignKey("semesters.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    semester: Mapped["Semester"] = relationship("Semester", lazy="selectin")
    subjects: Mapped[list["BatchSubject"]] = relationship(
        "BatchSubject",
        back_populates="batch",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Batch(id={self.id}, name={self.name})>"


class Subject(Base, IDMixin, TimestampMixin, CollegeScopedMixin):
    """Subject catalogue entry."""

    __tablename__ = "subjects"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)

    def __repr__(self) -> str:
        return f"<Subject(id={self.id}, code={self.code})>"


class BatchSubject(Base, IDMixin, TimestampMixin):
    """A subject taught in a batch, with its credit weight."""

    __tablename__ = "batch_subjects"

    batch_id: Mapped[int] = mapped_column(
        BigIntegerID,
        ForeignKey("batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subject_id: Mapped[int] = mapped_column(
        BigIntegerID,
        ForeignKey("subjects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    credit_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    class_type: Mapped[ClassType] = mapped_column(
        Enum(ClassType),
        default=ClassType.THEORY,
        nullable=False,
    )

    batch: Mapped["Batch"] = relationship("Batch", back_populates="subjects", lazy="selectin")
    subject: Mapped["Subject"] = relationship("Subject", lazy="selectin")

    def __repr__(self) -> str:
        return f"<BatchSubject(id={self.id}, batch_id={self.batch_id}, subject_id={self.subject_id})>"
