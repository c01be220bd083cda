"""College (tenant) model."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from college_portal.core.database import Base
from college_portal.models.base import IDMixin, TimestampMixin


class College(Base, IDMixin, TimestampMixin):
    """College (tenant) model."""

    __tablename__ = "colleges"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<College(id={self.id}, code={self.code})>"
