"""SQLAlchemy models."""

from posengine.models.document import Document, Sequence

__all__ = ["Document", "Sequence"]
