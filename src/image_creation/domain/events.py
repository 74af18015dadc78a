"""Canonical domain events.

Design invariants
-----------------
1.  Every event is **immutable** (``frozen=True``).
2.  Every event is a **full snapshot** of its entity; a projector never
    needs prior state to rebuild the read model.
3.  Wire field names are fixed camelCase (``base64Data``,
    ``platformUsed`` ...).  The type discriminator is the class name and
    travels in the log entry's ``type`` field, not in the payload.
4.  ``DomainEvent`` is a **closed** union.  Adding an event type means
    extending the union, the registry and the dispatcher's ``match``.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Union

from pydantic import BaseModel, ConfigDict, Field


class _WireEvent(BaseModel):
    """Shared pydantic config: frozen, populated by field name or alias."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @classmethod
    def event_type_name(cls) -> str:
        return cls.__name__

    def to_json_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")


class ImageCreatedEvent(_WireEvent):
    """An image was generated from a description."""

    id: uuid.UUID
    description: str
    base64_data: str = Field(alias="base64Data")
    platform_used: str = Field(alias="platformUsed")
    timestamp: datetime


class ImageClassifiedEvent(_WireEvent):
    """An image fetched from a URL was classified."""

    id: uuid.UUID
    original_url: str = Field(alias="originalUrl")
    classified_image_base64: str = Field(alias="classifiedImageBase64")
    classification_result: str = Field(alias="classificationResult")
    timestamp: datetime


DomainEvent = Union[ImageCreatedEvent, ImageClassifiedEvent]

ALL_DOMAIN_EVENTS: tuple[type[ImageCreatedEvent] | type[ImageClassifiedEvent], ...] = (
    ImageCreatedEvent,
    ImageClassifiedEvent,
)
