"""Command handlers: validate, call the provider, append one event.

A successful command appends **exactly one** event and returns a DTO
built from its own outputs.  Handlers never write to the read store or
the cache; materialization belongs to the projectors, so the write path
is bounded by one provider call plus one append.

Failure mapping
---------------
*  bad input                         -> ``ValidationError`` (nothing called)
*  provider raised / returned empty  -> ``ProviderError`` (nothing appended)
*  append failed / conflicted        -> ``LogAppendError`` (not retried)
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from image_creation.core.errors import (
    LogAppendError,
    ProviderError,
    ValidationError,
)
from image_creation.core.ids import new_id, utc_now
from image_creation.domain.entities import ClassifiedImageRecord, ImageRecord
from image_creation.domain.events import DomainEvent
from image_creation.domain.value_objects import (
    Base64Data,
    ClassificationResult,
    ImageDescription,
    ImageUrl,
    Platform,
)
from image_creation.infrastructure.event_log import (
    AppendResult,
    ExpectedState,
    IEventLog,
)
from image_creation.infrastructure.event_registry import encode_event
from image_creation.providers.base import IImageClassifier, IUrlConverter
from image_creation.providers.factory import ImageGeneratorFactory

from .dtos import ClassifiedImageDto, ImageDto

logger = logging.getLogger(__name__)

DEFAULT_STREAM = "images"
DEFAULT_PLATFORM = "public"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CreateImageCommand:
    description: str
    platform_requested: str | None = None


@dataclass(frozen=True)
class ClassifyImageCommand:
    image_url: str


# ---------------------------------------------------------------------------
# Shared append
# ---------------------------------------------------------------------------

async def append_event(
    event_log: IEventLog, stream: str, event: DomainEvent,
) -> AppendResult:
    """Append *event* once.  Failures propagate as ``LogAppendError``."""
    entry = encode_event(event)
    try:
        result = await event_log.append(stream, ExpectedState.ANY, [entry])
    except LogAppendError:
        logger.error("Append of %s %s to %s failed", entry.type, event.id, stream)
        raise
    logger.info(
        "%s appended for %s (stream=%s position=%s)",
        entry.type, event.id, stream, result.position,
    )
    return result


def _provider_payload(raw: str | None, what: str) -> Base64Data:
    if not raw:
        raise ProviderError(f"{what} returned no image data")
    try:
        return Base64Data(raw)
    except ValidationError as exc:
        raise ProviderError(f"{what} returned invalid image data: {exc.reason}") from exc


# ---------------------------------------------------------------------------
# CreateImage
# ---------------------------------------------------------------------------

class CreateImageHandler:
    """Generates an image and records an ``ImageCreatedEvent``."""

    def __init__(
        self,
        generators: ImageGeneratorFactory,
        event_log: IEventLog,
        *,
        stream: str = DEFAULT_STREAM,
        default_platform: str = DEFAULT_PLATFORM,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], uuid.UUID] = new_id,
    ) -> None:
        self._generators = generators
        self._event_log = event_log
        self._stream = stream
        self._default_platform = default_platform
        self._clock = clock
        self._id_factory = id_factory

    async def handle(self, command: CreateImageCommand) -> ImageDto:
        logger.info("Handling CreateImage for %r", command.description)

        description = ImageDescription(command.description)
        platform = Platform(
            (command.platform_requested or self._default_platform).lower()
        )

        try:
            generator = self._generators.get(platform.name)
            raw = await generator.generate_image(description.value)
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(
                f"Image generation on {platform.value} failed: {exc}"
            ) from exc
        payload = _provider_payload(raw, f"Image generation on {platform.value}")

        record = ImageRecord(
            id=self._id_factory(),
            description=description,
            base64_data=payload,
            platform_used=platform,
            created_at=self._clock(),
        )
        await append_event(self._event_log, self._stream, record.to_domain_event())
        return ImageDto.from_record(record)


# ---------------------------------------------------------------------------
# ClassifyImage
# ---------------------------------------------------------------------------

class ClassifyImageHandler:
    """Downloads and classifies an image, records an ``ImageClassifiedEvent``."""

    def __init__(
        self,
        converter: IUrlConverter,
        classifier: IImageClassifier,
        event_log: IEventLog,
        *,
        stream: str = DEFAULT_STREAM,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], uuid.UUID] = new_id,
    ) -> None:
        self._converter = converter
        self._classifier = classifier
        self._event_log = event_log
        self._stream = stream
        self._clock = clock
        self._id_factory = id_factory

    async def handle(self, command: ClassifyImageCommand) -> ClassifiedImageDto:
        logger.info("Handling ClassifyImage for %s", command.image_url)

        url = ImageUrl(command.image_url)

        try:
            raw = await self._converter.convert_url_to_base64(url.value)
        except Exception as exc:
            raise ProviderError(f"Download of {url.value} failed: {exc}") from exc
        payload = _provider_payload(raw, f"Download of {url.value}")

        try:
            _, label = await self._classifier.classify(url.value)
        except Exception as exc:
            raise ProviderError(f"Classification of {url.value} failed: {exc}") from exc
        try:
            result = ClassificationResult(label)
        except ValidationError as exc:
            raise ProviderError(
                f"Classifier returned an invalid label {label!r}: {exc.reason}"
            ) from exc

        record = ClassifiedImageRecord(
            id=self._id_factory(),
            original_url=url,
            classified_image_base64=payload,
            classification_result=result,
            classified_at=self._clock(),
        )
        await append_event(self._event_log, self._stream, record.to_domain_event())
        logger.info("Classified %s as %s", url.value, result.value)
        return ClassifiedImageDto.from_record(record)
