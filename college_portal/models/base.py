"""Base model utilities and mixins."""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, func
from sqlalchemy.orm import Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntegerID = BigInteger().with_variant(Integer, "sqlite")


class IDMixin:
    """Mixin providing BigInteger primary key with auto-increment."""

    id: Mapped[int] = mapped_column(
        BigIntegerID,
        primary_key=True,
        autoincrement=True,
    )


class TimestampMixin:
    """Mixin providing created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class CollegeScopedMixin:
    """Mixin for models that belong to a college (tenant)."""

    college_id: Mapped[int] = mapped_column(
        BigIntegerID,
        ForeignKey("colleges.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
