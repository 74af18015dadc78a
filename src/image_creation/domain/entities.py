"""Write-side entities, reconstructible purely from their fields.

An entity only ever holds validated value objects, so a record that
exists is a record that may be logged and projected.  Rebuilding from an
event re-runs every value-object check: a malformed event fails here
instead of being silently coerced into the read model.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

from image_creation.core.ids import ensure_utc

from .events import ImageClassifiedEvent, ImageCreatedEvent
from .value_objects import (
    Base64Data,
    ClassificationResult,
    ImageDescription,
    ImageUrl,
    Platform,
)


@dataclass(frozen=True)
class ImageRecord:
    """A generated image."""

    id: uuid.UUID
    description: ImageDescription
    base64_data: Base64Data
    platform_used: Platform
    created_at: datetime

    def to_domain_event(self) -> ImageCreatedEvent:
        return ImageCreatedEvent(
            id=self.id,
            description=self.description.value,
            base64_data=self.base64_data.value,
            platform_used=self.platform_used.value,
            timestamp=self.created_at,
        )

    @classmethod
    def from_event(cls, event: ImageCreatedEvent) -> ImageRecord:
        return cls(
            id=event.id,
            description=ImageDescription(event.description),
            base64_data=Base64Data(event.base64_data),
            platform_used=Platform(event.platform_used),
            created_at=ensure_utc(event.timestamp),
        )


@dataclass(frozen=True)
class ClassifiedImageRecord:
    """An image downloaded from a URL and classified."""

    id: uuid.UUID
    original_url: ImageUrl
    classified_image_base64: Base64Data
    classification_result: ClassificationResult
    classified_at: datetime

    def to_domain_event(self) -> ImageClassifiedEvent:
        return ImageClassifiedEvent(
            id=self.id,
            original_url=self.original_url.value,
            classified_image_base64=self.classified_image_base64.value,
            classification_result=self.classification_result.value,
            timestamp=self.classified_at,
        )

    @classmethod
    def from_event(cls, event: ImageClassifiedEvent) -> ClassifiedImageRecord:
        return cls(
            id=event.id,
            original_url=ImageUrl(event.original_url),
            classified_image_base64=Base64Data(event.classified_image_base64),
            classification_result=ClassificationResult(event.classification_result),
            classified_at=ensure_utc(event.timestamp),
        )
