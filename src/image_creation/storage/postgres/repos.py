"""Repository pattern for async database operations.

Each repository encapsulates query logic for a single table.  All
methods accept an :class:`AsyncSession` obtained from
:meth:`image_creation.storage.postgres.connection.Database.session`.

Conversion helpers translate between domain entities
(:mod:`image_creation.domain.entities`) and ORM rows.  Reading a row
back re-runs value-object validation.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from image_creation.core.ids import ensure_utc
from image_creation.domain.entities import ClassifiedImageRecord, ImageRecord
from image_creation.domain.value_objects import (
    Base64Data,
    ClassificationResult,
    ImageDescription,
    ImageUrl,
    Platform,
)

from .models import Base, ClassifiedImageRow, ImageRow

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Conversion helpers
# ---------------------------------------------------------------------------

def _image_to_values(record: ImageRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "description": record.description.value,
        "base64_data": record.base64_data.value,
        "platform_used": record.platform_used.value,
        "created_at": record.created_at,
    }


def _row_to_image(row: ImageRow) -> ImageRecord:
    return ImageRecord(
        id=row.id,
        description=ImageDescription(row.description),
        base64_data=Base64Data(row.base64_data),
        platform_used=Platform(row.platform_used),
        created_at=ensure_utc(row.created_at),
    )


def _classified_to_values(record: ClassifiedImageRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "original_url": record.original_url.value,
        "classified_image_base64": record.classified_image_base64.value,
        "classification_result": record.classification_result.value,
        "classified_at": record.classified_at,
    }


def _row_to_classified(row: ClassifiedImageRow) -> ClassifiedImageRecord:
    return ClassifiedImageRecord(
        id=row.id,
        original_url=ImageUrl(row.original_url),
        classified_image_base64=Base64Data(row.classified_image_base64),
        classification_result=ClassificationResult(row.classification_result),
        classified_at=ensure_utc(row.classified_at),
    )


def _upsert(session: AsyncSession, model: type[Base], values: dict[str, Any]):
    """``INSERT .. ON CONFLICT (id) DO UPDATE`` overwriting every column."""
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(model).values(**values)
    elif dialect == "sqlite":
        stmt = sqlite.insert(model).values(**values)
    else:
        raise NotImplementedError(f"No upsert support for dialect {dialect!r}")
    return stmt.on_conflict_do_update(
        index_elements=["id"],
        set_={name: stmt.excluded[name] for name in values if name != "id"},
    )


# ---------------------------------------------------------------------------
# ImageRepo
# ---------------------------------------------------------------------------

class ImageRepo:
    """Repository for :class:`ImageRow` persistence and retrieval."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert(self, record: ImageRecord) -> None:
        """Insert the record or replace every field of the existing row."""
        await self._session.execute(
            _upsert(self._session, ImageRow, _image_to_values(record))
        )

    async def get_by_id(self, image_id: uuid.UUID) -> ImageRecord | None:
        result = await self._session.execute(
            select(ImageRow).where(ImageRow.id == image_id)
        )
        row = result.scalar_one_or_none()
        return _row_to_image(row) if row is not None else None


# ---------------------------------------------------------------------------
# ClassifiedImageRepo
# ---------------------------------------------------------------------------

class ClassifiedImageRepo:
    """Repository for :class:`ClassifiedImageRow` persistence and retrieval."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert(self, record: ClassifiedImageRecord) -> None:
        """Insert the record or replace every field of the existing row."""
        await self._session.execute(
            _upsert(self._session, ClassifiedImageRow, _classified_to_values(record))
        )

    async def get_by_id(self, image_id: uuid.UUID) -> ClassifiedImageRecord | None:
        result = await self._session.execute(
            select(ClassifiedImageRow).where(ClassifiedImageRow.id == image_id)
        )
        row = result.scalar_one_or_none()
        return _row_to_classified(row) if row is not None else None
