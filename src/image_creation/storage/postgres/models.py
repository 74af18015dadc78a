"""SQLAlchemy ORM models for the read-model database.

One table per projected entity, keyed by the entity id.  Rows are only
ever written by the projectors, always as a full upsert, so a row is a
byte-for-byte function of the last event applied to it.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# ImageRow
# ---------------------------------------------------------------------------

class ImageRow(Base):
    """Generated image.  Maps from :class:`ImageRecord`."""

    __tablename__ = "images"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    base64_data: Mapped[str] = mapped_column(Text, nullable=False)
    platform_used: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    __table_args__ = (
        Index("ix_images_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ImageRow(id={self.id!s}, platform_used={self.platform_used!r})>"
        )


# ---------------------------------------------------------------------------
# ClassifiedImageRow
# ---------------------------------------------------------------------------

class ClassifiedImageRow(Base):
    """Classified image.  Maps from :class:`ClassifiedImageRecord`."""

    __tablename__ = "classified_images"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    classified_image_base64: Mapped[str] = mapped_column(Text, nullable=False)
    classification_result: Mapped[str] = mapped_column(String(64), nullable=False)
    classified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    __table_args__ = (
        Index("ix_classified_images_classified_at", "classified_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ClassifiedImageRow(id={self.id!s}, "
            f"classification_result={self.classification_result!r})>"
        )
