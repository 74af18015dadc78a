"""Tests for the subscription dispatcher: routing, failure isolation, restarts."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from image_creation.application.dispatcher import SubscriptionDispatcher
from image_creation.application.projectors import (
    ClassifiedImageRecordProjector,
    ImageRecordProjector,
)
from image_creation.core.enums import DispatcherState
from image_creation.infrastructure.event_log import EventData, ExpectedState
from image_creation.infrastructure.event_registry import (
    EventRegistry,
    default_registry,
    encode_event,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_dispatcher(event_log, store, cache, **kwargs) -> SubscriptionDispatcher:
    kwargs.setdefault("restart_delay", 0.01)
    kwargs.setdefault("max_restart_delay", 0.05)
    return SubscriptionDispatcher(
        event_log,
        default_registry(),
        ImageRecordProjector(store, cache),
        ClassifiedImageRecordProjector(store, cache),
        **kwargs,
    )


async def _append(event_log, *entries: EventData) -> None:
    await event_log.append("images", ExpectedState.ANY, list(entries))


async def _eventually(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


# ===========================================================================
# Routing
# ===========================================================================


class TestRouting:
    @pytest.mark.asyncio
    async def test_routes_each_type_to_its_projector(
        self, event_log, store, cache, sample_image_record, sample_classified_record,
    ):
        dispatcher = _make_dispatcher(event_log, store, cache)
        await dispatcher.start()
        assert dispatcher.state == DispatcherState.TAILING

        await _append(
            event_log,
            encode_event(sample_image_record.to_domain_event()),
            encode_event(sample_classified_record.to_domain_event()),
        )
        await _eventually(lambda: dispatcher.stats.processed == 2)

        assert store.images[sample_image_record.id] == sample_image_record
        assert (
            store.classified_images[sample_classified_record.id]
            == sample_classified_record
        )
        await dispatcher.stop()
        assert dispatcher.state == DispatcherState.STOPPED

    @pytest.mark.asyncio
    async def test_unknown_type_does_not_block_later_events(
        self, event_log, store, cache, sample_image_record,
    ):
        await _append(
            event_log,
            EventData(type="ImageDeletedEvent", data=b"{}"),
            encode_event(sample_image_record.to_domain_event()),
        )
        dispatcher = _make_dispatcher(event_log, store, cache)
        await dispatcher.start()
        await _eventually(lambda: dispatcher.stats.processed == 1)

        assert dispatcher.stats.unknown_types == 1
        assert sample_image_record.id in store.images
        assert dispatcher.state == DispatcherState.TAILING
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_undecodable_payload_is_skipped(
        self, event_log, store, cache, sample_image_record,
    ):
        await _append(
            event_log,
            EventData(type="ImageCreatedEvent", data=b"{broken"),
            encode_event(sample_image_record.to_domain_event()),
        )
        dispatcher = _make_dispatcher(event_log, store, cache)
        await dispatcher.start()
        await _eventually(lambda: dispatcher.stats.processed == 1)
        assert dispatcher.stats.decode_errors == 1
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_projector_failure_is_counted(
        self, event_log, cache, sample_image_record,
    ):
        store = AsyncMock()
        store.upsert_image.side_effect = RuntimeError("db down")
        await _append(event_log, encode_event(sample_image_record.to_domain_event()))
        dispatcher = _make_dispatcher(event_log, store, cache)
        await dispatcher.start()
        await _eventually(lambda: dispatcher.stats.projection_errors == 1)
        assert dispatcher.state == DispatcherState.TAILING
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_system_events_skipped_by_handle(self, event_log, store, cache):
        dispatcher = _make_dispatcher(event_log, store, cache)
        await _append(event_log, EventData(type="$settings", data=b"{}"))
        await dispatcher.replay()
        assert dispatcher.stats.skipped_system == 1
        assert dispatcher.stats.processed == 0

    @pytest.mark.asyncio
    async def test_system_events_counted_while_tailing(
        self, event_log, store, cache, sample_image_record,
    ):
        await _append(
            event_log,
            EventData(type="$settings", data=b"{}"),
            encode_event(sample_image_record.to_domain_event()),
        )
        dispatcher = _make_dispatcher(event_log, store, cache)
        await dispatcher.start()
        await _eventually(lambda: dispatcher.stats.processed == 1)
        assert dispatcher.stats.skipped_system == 1

        await dispatcher.stop()
        assert dispatcher.stats.skipped_system == 1

    @pytest.mark.asyncio
    async def test_event_outside_the_union_counts_as_projection_error(
        self, event_log, store, cache,
    ):
        registry = EventRegistry()
        registry.register("ImageResizedEvent", lambda data: object())
        dispatcher = SubscriptionDispatcher(
            event_log,
            registry,
            ImageRecordProjector(store, cache),
            ClassifiedImageRecordProjector(store, cache),
        )
        await _append(event_log, EventData(type="ImageResizedEvent", data=b"{}"))
        await dispatcher.replay()
        assert dispatcher.stats.processed == 1
        assert dispatcher.stats.projection_errors == 1


# ===========================================================================
# Lifecycle
# ===========================================================================


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_drop_triggers_restart_and_replay(
        self, event_log, store, cache, sample_image_record,
    ):
        await _append(event_log, encode_event(sample_image_record.to_domain_event()))
        dispatcher = _make_dispatcher(event_log, store, cache)
        await dispatcher.start()
        await _eventually(lambda: dispatcher.stats.processed == 1)
        before = dict(store.images)

        await event_log.drop_subscriptions()
        await _eventually(lambda: dispatcher.stats.restarts == 1)
        await _eventually(lambda: dispatcher.stats.processed == 2)

        assert dispatcher.state == DispatcherState.TAILING
        assert store.images == before
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_restart(self, event_log, store, cache):
        dispatcher = _make_dispatcher(
            event_log, store, cache, restart_delay=10.0, max_restart_delay=10.0,
        )
        await dispatcher.start()
        await asyncio.sleep(0.01)
        await event_log.drop_subscriptions()
        await _eventually(lambda: dispatcher.state == DispatcherState.DROPPED)

        await dispatcher.stop()
        assert dispatcher.state == DispatcherState.STOPPED
        assert dispatcher.stats.restarts == 0

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, event_log, store, cache):
        dispatcher = _make_dispatcher(event_log, store, cache)
        await dispatcher.start()
        await dispatcher.start()
        assert dispatcher.state == DispatcherState.TAILING
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_replay_rebuilds_from_log(
        self, event_log, store, cache, sample_image_record, sample_classified_record,
    ):
        await _append(
            event_log,
            encode_event(sample_image_record.to_domain_event()),
            encode_event(sample_classified_record.to_domain_event()),
        )
        dispatcher = _make_dispatcher(event_log, store, cache)
        assert await dispatcher.replay() == 2
        assert dispatcher.state == DispatcherState.STOPPED
        assert sample_image_record.id in store.images
        assert sample_classified_record.id in store.classified_images

    @pytest.mark.asyncio
    async def test_backoff_grows_across_repeated_drops(
        self, event_log, store, cache, sample_image_record,
    ):
        await _append(event_log, encode_event(sample_image_record.to_domain_event()))
        dispatcher = _make_dispatcher(
            event_log, store, cache, restart_delay=0.01, max_restart_delay=1.0,
        )
        await dispatcher.start()
        await _eventually(lambda: dispatcher.stats.processed == 1)

        drops = []
        for attempt in range(1, 5):
            await event_log.drop_subscriptions()
            await _eventually(lambda: dispatcher.state == DispatcherState.DROPPED)
            drops.append(dispatcher.consecutive_drops)
            await _eventually(
                lambda: dispatcher.stats.restarts == attempt
                and dispatcher.stats.processed == attempt + 1,
            )

        assert drops == [1, 2, 3, 4]
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_new_progress_resets_backoff(
        self, event_log, store, cache, sample_image_record, sample_classified_record,
    ):
        await _append(event_log, encode_event(sample_image_record.to_domain_event()))
        dispatcher = _make_dispatcher(event_log, store, cache)
        await dispatcher.start()
        await _eventually(lambda: dispatcher.stats.processed == 1)

        await event_log.drop_subscriptions()
        await _eventually(lambda: dispatcher.stats.processed == 2)
        assert dispatcher.consecutive_drops == 1

        await _append(event_log, encode_event(sample_classified_record.to_domain_event()))
        await _eventually(lambda: dispatcher.consecutive_drops == 0)
        assert dispatcher.stats.processed == 3
        await dispatcher.stop()
