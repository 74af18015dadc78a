"""Projectors: one per event type, materializing read models.

``apply(event)`` rebuilds the entity from the event (re-validating every
value object), upserts it into the relational store and then overwrites
the cached DTO.  Both writes replace whole records, so applying an event
any number of times leaves the same final state.

Errors never escape ``apply``: they are logged and reported by returning
``False``.  The log stays the source of truth and a replay from the
start repairs whatever a failed projection left behind.
"""

from __future__ import annotations

import logging

from image_creation.core.errors import ImageCreationError, ProjectionError
from image_creation.domain.entities import ClassifiedImageRecord, ImageRecord
from image_creation.domain.events import ImageClassifiedEvent, ImageCreatedEvent
from image_creation.storage.cache import (
    ICacheService,
    classified_image_key,
    image_key,
)
from image_creation.storage.read_store import IReadModelStore

from .dtos import ClassifiedImageDto, ImageDto

logger = logging.getLogger(__name__)


class ImageRecordProjector:
    """Projects ``ImageCreatedEvent`` into ``images`` and the cache."""

    def __init__(self, store: IReadModelStore, cache: ICacheService) -> None:
        self._store = store
        self._cache = cache

    async def apply(self, event: ImageCreatedEvent) -> bool:
        logger.info("Projecting ImageCreatedEvent %s", event.id)
        try:
            try:
                record = ImageRecord.from_event(event)
            except ImageCreationError as exc:
                raise ProjectionError(f"Malformed ImageCreatedEvent: {exc}") from exc

            await self._store.upsert_image(record)
            await self._cache.set(
                image_key(record.id), ImageDto.from_record(record).to_json(),
            )
        except Exception:
            logger.exception(
                "Projection of ImageCreatedEvent %s failed (description=%r)",
                event.id, event.description[:80],
            )
            return False
        logger.debug("Image %s projected to store and cache", event.id)
        return True


class ClassifiedImageRecordProjector:
    """Projects ``ImageClassifiedEvent`` into ``classified_images`` and the cache.

    The DTO is cached under both the bare id and ``classified_<id>``.
    """

    def __init__(self, store: IReadModelStore, cache: ICacheService) -> None:
        self._store = store
        self._cache = cache

    async def apply(self, event: ImageClassifiedEvent) -> bool:
        logger.info("Projecting ImageClassifiedEvent %s", event.id)
        try:
            try:
                record = ClassifiedImageRecord.from_event(event)
            except ImageCreationError as exc:
                raise ProjectionError(
                    f"Malformed ImageClassifiedEvent: {exc}"
                ) from exc

            await self._store.upsert_classified_image(record)
            payload = ClassifiedImageDto.from_record(record).to_json()
            await self._cache.set(image_key(record.id), payload)
            await self._cache.set(classified_image_key(record.id), payload)
        except Exception:
            logger.exception(
                "Projection of ImageClassifiedEvent %s failed (url=%s)",
                event.id, event.original_url,
            )
            return False
        logger.debug("Classified image %s projected to store and cache", event.id)
        return True
