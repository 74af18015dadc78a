"""Tests for the Redis Streams event log (no live Redis required)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import WatchError

from image_creation.core.errors import ConcurrencyConflictError, LogAppendError
from image_creation.infrastructure.event_log import EventData, ExpectedState
from image_creation.infrastructure.redis_event_log import RedisStreamEventLog


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class _FakePipeline:
    """Just enough of ``redis.asyncio.client.Pipeline`` for ``append``."""

    def __init__(self, current: bytes | None, error: Exception | None = None):
        self.current = current
        self.error = error
        self.added: list[tuple[str, dict]] = []
        self.written: list[tuple[str, int]] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def watch(self, key):
        pass

    async def get(self, key):
        return self.current

    def multi(self):
        pass

    def xadd(self, key, fields):
        self.added.append((key, fields))
        return self

    def set(self, key, value):
        self.written.append((key, value))
        return self

    async def execute(self):
        if self.error is not None:
            raise self.error
        ids = [f"{1700000000000 + i}-0".encode() for i in range(len(self.added))]
        return [*ids, True]


def _make_log(*pipelines: _FakePipeline, **kwargs) -> RedisStreamEventLog:
    log = RedisStreamEventLog("redis://test", prefix="t:", **kwargs)
    redis = MagicMock()
    redis.pipeline = MagicMock(side_effect=list(pipelines))
    redis.xread = AsyncMock()
    redis.xrange = AsyncMock()
    log._redis = redis
    return log


def _message(entry_id: str, n: int = 0) -> tuple[bytes, dict]:
    return entry_id.encode(), {
        b"stream": b"images",
        b"event_id": f"evt-{n}".encode(),
        b"type": b"ImageCreatedEvent",
        b"content_type": b"application/json",
        b"data": f'{{"n": {n}}}'.encode(),
    }


def _entry(n: int = 0) -> EventData:
    return EventData(type="ImageCreatedEvent", data=b"{}", event_id=f"evt-{n}")


# ===========================================================================
# Keys and lifecycle
# ===========================================================================


class TestKeys:
    def test_key_layout(self):
        log = RedisStreamEventLog(prefix="imagelog:")
        assert log.all_key == "imagelog:all"
        assert log.revision_key("images") == "imagelog:revision:images"

    def test_redis_requires_connect(self):
        with pytest.raises(RuntimeError, match="connect"):
            RedisStreamEventLog().redis


# ===========================================================================
# Append
# ===========================================================================


class TestAppend:
    @pytest.mark.asyncio
    async def test_first_append_creates_stream(self):
        pipe = _FakePipeline(current=None)
        log = _make_log(pipe)
        result = await log.append("images", ExpectedState.NO_STREAM, [_entry()])
        assert result.next_revision == 0
        assert result.position == "1700000000000-0"
        assert pipe.written == [("t:revision:images", 0)]
        key, fields = pipe.added[0]
        assert key == "t:all"
        assert fields["stream"] == "images"
        assert fields["type"] == "ImageCreatedEvent"

    @pytest.mark.asyncio
    async def test_multi_entry_append_is_one_transaction(self):
        pipe = _FakePipeline(current=b"4")
        log = _make_log(pipe)
        result = await log.append("images", 4, [_entry(0), _entry(1)])
        assert result.next_revision == 6
        assert result.position == "1700000000001-0"
        assert len(pipe.added) == 2

    @pytest.mark.asyncio
    async def test_expected_state_mismatch(self):
        log = _make_log(_FakePipeline(current=b"2"))
        with pytest.raises(ConcurrencyConflictError):
            await log.append("images", ExpectedState.NO_STREAM, [_entry()])

    @pytest.mark.asyncio
    async def test_watch_race_retried_for_any(self):
        log = _make_log(
            _FakePipeline(current=b"0", error=WatchError()),
            _FakePipeline(current=b"1"),
        )
        result = await log.append("images", ExpectedState.ANY, [_entry()])
        assert result.next_revision == 2

    @pytest.mark.asyncio
    async def test_watch_race_conflicts_for_exact_revision(self):
        log = _make_log(_FakePipeline(current=b"0", error=WatchError()))
        with pytest.raises(ConcurrencyConflictError):
            await log.append("images", 0, [_entry()])

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self):
        log = _make_log(_FakePipeline(current=None, error=RedisConnectionError("down")))
        with pytest.raises(LogAppendError, match="down"):
            await log.append("images", ExpectedState.ANY, [_entry()])


# ===========================================================================
# Reading
# ===========================================================================


class TestRead:
    @pytest.mark.asyncio
    async def test_tail_starts_at_zero_and_advances(self):
        log = _make_log()
        log.redis.xread.side_effect = [
            [],
            [(b"t:all", [_message("5-0", 0)])],
            [(b"t:all", [_message("6-0", 1)])],
        ]
        tail = log._tail(None)
        first = await tail.__anext__()
        second = await tail.__anext__()
        await tail.aclose()

        assert first.position == "5-0"
        assert first.type == "ImageCreatedEvent"
        assert first.data == b'{"n": 0}'
        assert second.event_id == "evt-1"
        calls = log.redis.xread.await_args_list
        assert calls[0].args[0] == {"t:all": "0-0"}
        assert calls[2].args[0] == {"t:all": "5-0"}

    @pytest.mark.asyncio
    async def test_read_all_pages_with_exclusive_bound(self):
        log = _make_log(batch_size=2)
        log.redis.xrange.side_effect = [
            [_message("1-0", 0), _message("2-0", 1)],
            [_message("3-0", 2)],
        ]
        positions = [r.position async for r in log.read_all()]
        assert positions == ["1-0", "2-0", "3-0"]
        calls = log.redis.xrange.await_args_list
        assert calls[0].kwargs["min"] == "-"
        assert calls[1].kwargs["min"] == "(2-0"

    @pytest.mark.asyncio
    async def test_read_all_from_position(self):
        log = _make_log()
        log.redis.xrange.return_value = []
        assert [r async for r in log.read_all("9-0")] == []
        assert log.redis.xrange.await_args.kwargs["min"] == "(9-0"

    def test_decode_entry_time_from_id(self):
        recorded = RedisStreamEventLog._decode(*_message("1700000000000-3"))
        assert recorded.created.year == 2023
        assert recorded.stream == "images"
