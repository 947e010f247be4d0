"""Document store tables: one generic documents table plus id sequences."""

from __future__ import annotations

from typing import Any, Dict

from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from posengine.db.base import Base, TimestampMixin, VersionMixin


class Document(Base, TimestampMixin, VersionMixin):
    """A JSON document stored under a collection name."""

    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(100), primary_key=True)
    doc_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)


class Sequence(Base):
    """Store-side counter used to hand out document ids.

    One row per collection. The row is updated in the same transaction as
    the insert that consumes the value, so ids are unique and strictly
    increasing across terminals.
    """

    __tablename__ = "sequences"

    name: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
