"""SQLAlchemy declarative base and common utilities."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from posengine.core.exceptions import ConcurrentModificationError


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class VersionMixin:
    """Optimistic locking via a version counter.

    Rows using this mixin gain a ``version`` column that starts at 1 and
    is incremented on every update. Call ``check_version()`` before
    writing to detect concurrent modifications.
    """

    version: Mapped[int] = mapped_column(Integer, default=1, server_default="1", nullable=False)

    def check_version(self, expected: Optional[int]) -> None:
        """Raise ConcurrentModificationError if *expected* doesn't match."""
        if expected is not None and expected != self.version:
            raise ConcurrentModificationError(
                getattr(self, "collection", self.__class__.__name__),
                getattr(self, "doc_id", 0),
                expected,
                self.version,
            )
