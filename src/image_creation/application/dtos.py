"""Read DTOs: the cache value format and the HTTP response body.

Serialized as camelCase JSON.  A DTO is always built from a validated
entity, never from raw input.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from image_creation.domain.entities import ClassifiedImageRecord, ImageRecord


class _Dto(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class ImageDto(_Dto):
    id: uuid.UUID
    description: str
    base64_data: str = Field(alias="base64Data")
    platform_used: str = Field(alias="platformUsed")
    created_at: datetime = Field(alias="createdAt")

    @classmethod
    def from_record(cls, record: ImageRecord) -> ImageDto:
        return cls(
            id=record.id,
            description=record.description.value,
            base64_data=record.base64_data.value,
            platform_used=record.platform_used.value,
            created_at=record.created_at,
        )


class ClassifiedImageDto(_Dto):
    id: uuid.UUID
    original_url: str = Field(alias="originalUrl")
    classified_image_base64: str = Field(alias="classifiedImageBase64")
    classification_result: str = Field(alias="classificationResult")
    classified_at: datetime = Field(alias="classifiedAt")

    @classmethod
    def from_record(cls, record: ClassifiedImageRecord) -> ClassifiedImageDto:
        return cls(
            id=record.id,
            original_url=record.original_url.value,
            classified_image_base64=record.classified_image_base64.value,
            classification_result=record.classification_result.value,
            classified_at=record.classified_at,
        )
