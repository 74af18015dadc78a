"""Tests for the SQLAlchemy repositories and read-model store (SQLite)."""

from __future__ import annotations

import dataclasses
import uuid

import pytest
from sqlalchemy import func, select

from image_creation.domain.value_objects import ClassificationResult, Platform
from image_creation.storage.postgres.models import ClassifiedImageRow, ImageRow
from image_creation.storage.postgres.repos import ClassifiedImageRepo, ImageRepo
from image_creation.storage.read_store import SqlReadModelStore


async def _count(database, model) -> int:
    async with database.session() as session:
        result = await session.execute(select(func.count()).select_from(model))
        return result.scalar_one()


class TestImageRepo:
    @pytest.mark.asyncio
    async def test_upsert_then_get(self, database, sample_image_record):
        async with database.session() as session:
            await ImageRepo(session).upsert(sample_image_record)
        async with database.session() as session:
            loaded = await ImageRepo(session).get_by_id(sample_image_record.id)
        assert loaded == sample_image_record

    @pytest.mark.asyncio
    async def test_upsert_twice_keeps_one_row(self, database, sample_image_record):
        for _ in range(2):
            async with database.session() as session:
                await ImageRepo(session).upsert(sample_image_record)
        assert await _count(database, ImageRow) == 1

    @pytest.mark.asyncio
    async def test_upsert_overwrites_every_field(self, database, sample_image_record):
        changed = dataclasses.replace(
            sample_image_record, platform_used=Platform("google"),
        )
        async with database.session() as session:
            await ImageRepo(session).upsert(sample_image_record)
        async with database.session() as session:
            await ImageRepo(session).upsert(changed)
        async with database.session() as session:
            loaded = await ImageRepo(session).get_by_id(sample_image_record.id)
        assert loaded.platform_used.value == "Google"

    @pytest.mark.asyncio
    async def test_missing_id(self, database):
        async with database.session() as session:
            assert await ImageRepo(session).get_by_id(uuid.uuid4()) is None


class TestClassifiedImageRepo:
    @pytest.mark.asyncio
    async def test_upsert_then_get(self, database, sample_classified_record):
        async with database.session() as session:
            await ClassifiedImageRepo(session).upsert(sample_classified_record)
        async with database.session() as session:
            loaded = await ClassifiedImageRepo(session).get_by_id(
                sample_classified_record.id,
            )
        assert loaded == sample_classified_record

    @pytest.mark.asyncio
    async def test_upsert_replaces_result(self, database, sample_classified_record):
        relabelled = dataclasses.replace(
            sample_classified_record,
            classification_result=ClassificationResult("food, person"),
        )
        async with database.session() as session:
            await ClassifiedImageRepo(session).upsert(sample_classified_record)
            await ClassifiedImageRepo(session).upsert(relabelled)
        assert await _count(database, ClassifiedImageRow) == 1
        async with database.session() as session:
            loaded = await ClassifiedImageRepo(session).get_by_id(relabelled.id)
        assert loaded.classification_result.value == "Food, Person"


class TestSqlReadModelStore:
    @pytest.mark.asyncio
    async def test_round_trip(
        self, database, sample_image_record, sample_classified_record,
    ):
        store = SqlReadModelStore(database)
        await store.upsert_image(sample_image_record)
        await store.upsert_classified_image(sample_classified_record)
        assert await store.get_image(sample_image_record.id) == sample_image_record
        assert (
            await store.get_classified_image(sample_classified_record.id)
            == sample_classified_record
        )

    @pytest.mark.asyncio
    async def test_tables_are_separate(self, database, sample_image_record):
        store = SqlReadModelStore(database)
        await store.upsert_image(sample_image_record)
        assert await store.get_classified_image(sample_image_record.id) is None
