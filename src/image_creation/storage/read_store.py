"""Relational read-model store seen by projectors and query handlers.

Every call opens its own session (pooled connection) and commits before
returning, so an upsert is either fully applied or not at all.

This module provides:

*  ``IReadModelStore``: the protocol.
*  ``SqlReadModelStore``: SQLAlchemy implementation over a ``Database``.
*  ``InMemoryReadModelStore``: dict-backed implementation for tests.
"""

from __future__ import annotations

import uuid
from typing import Protocol

from image_creation.domain.entities import ClassifiedImageRecord, ImageRecord

from .postgres.connection import Database
from .postgres.repos import ClassifiedImageRepo, ImageRepo


class IReadModelStore(Protocol):
    async def upsert_image(self, record: ImageRecord) -> None: ...

    async def get_image(self, image_id: uuid.UUID) -> ImageRecord | None: ...

    async def upsert_classified_image(self, record: ClassifiedImageRecord) -> None: ...

    async def get_classified_image(
        self, image_id: uuid.UUID,
    ) -> ClassifiedImageRecord | None: ...


class SqlReadModelStore:
    """Read models in PostgreSQL (or SQLite for tests)."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def upsert_image(self, record: ImageRecord) -> None:
        async with self._db.session() as session:
            await ImageRepo(session).upsert(record)

    async def get_image(self, image_id: uuid.UUID) -> ImageRecord | None:
        async with self._db.session() as session:
            return await ImageRepo(session).get_by_id(image_id)

    async def upsert_classified_image(self, record: ClassifiedImageRecord) -> None:
        async with self._db.session() as session:
            await ClassifiedImageRepo(session).upsert(record)

    async def get_classified_image(
        self, image_id: uuid.UUID,
    ) -> ClassifiedImageRecord | None:
        async with self._db.session() as session:
            return await ClassifiedImageRepo(session).get_by_id(image_id)


class InMemoryReadModelStore:
    """Dict-backed store.  Upsert replaces the whole record."""

    def __init__(self) -> None:
        self.images: dict[uuid.UUID, ImageRecord] = {}
        self.classified_images: dict[uuid.UUID, ClassifiedImageRecord] = {}

    async def upsert_image(self, record: ImageRecord) -> None:
        self.images[record.id] = record

    async def get_image(self, image_id: uuid.UUID) -> ImageRecord | None:
        return self.images.get(image_id)

    async def upsert_classified_image(self, record: ClassifiedImageRecord) -> None:
        self.classified_images[record.id] = record

    async def get_classified_image(
        self, image_id: uuid.UUID,
    ) -> ClassifiedImageRecord | None:
        return self.classified_images.get(image_id)
