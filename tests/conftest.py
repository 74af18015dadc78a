"""Shared fixtures for the image-creation test suite."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import pytest

from image_creation.domain.entities import ClassifiedImageRecord, ImageRecord
from image_creation.domain.value_objects import (
    Base64Data,
    ClassificationResult,
    ImageDescription,
    ImageUrl,
    Platform,
)
from image_creation.infrastructure.event_log import InMemoryEventLog
from image_creation.providers.mock import PLACEHOLDER_PNG_BASE64
from image_creation.storage.cache import InMemoryCacheService
from image_creation.storage.postgres.connection import Database
from image_creation.storage.read_store import InMemoryReadModelStore

FIXED_TIME = datetime(2025, 3, 14, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_image_record() -> ImageRecord:
    """A generated image on the Azure platform."""
    return ImageRecord(
        id=uuid.UUID("11111111-1111-4111-8111-111111111111"),
        description=ImageDescription("a red bicycle leaning on a wall"),
        base64_data=Base64Data(PLACEHOLDER_PNG_BASE64),
        platform_used=Platform("azure"),
        created_at=FIXED_TIME,
    )


@pytest.fixture
def sample_classified_record() -> ClassifiedImageRecord:
    """A pizza photo classified as Food."""
    return ClassifiedImageRecord(
        id=uuid.UUID("22222222-2222-4222-8222-222222222222"),
        original_url=ImageUrl("https://images.example.com/pizza.png"),
        classified_image_base64=Base64Data(PLACEHOLDER_PNG_BASE64),
        classification_result=ClassificationResult("food"),
        classified_at=FIXED_TIME,
    )


# ---------------------------------------------------------------------------
# In-memory infrastructure
# ---------------------------------------------------------------------------

@pytest.fixture
def event_log() -> InMemoryEventLog:
    return InMemoryEventLog()


@pytest.fixture
def cache() -> InMemoryCacheService:
    return InMemoryCacheService()


@pytest.fixture
def store() -> InMemoryReadModelStore:
    return InMemoryReadModelStore()


# ---------------------------------------------------------------------------
# SQLite-backed relational store
# ---------------------------------------------------------------------------

@pytest.fixture
async def database(tmp_path):
    """A file-backed SQLite database with every table created."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'images.db'}")
    await db.connect(create_tables=True)
    yield db
    await db.dispose()
