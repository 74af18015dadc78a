"""Redis Streams event log.

Every appended entry lands in a single stream key (``{prefix}all``) so
subscribers read one totally ordered sequence; the logical stream name
travels as a field.  Per-stream revisions live in
``{prefix}revision:{stream}`` and are checked with an optimistic
``WATCH``/``MULTI`` transaction, which makes a multi-entry append atomic.

Subscriptions tail with blocking ``XREAD`` from ``0-0``: there are no
consumer groups and no acks, every subscriber sees the whole log.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from datetime import datetime, timezone

import redis.asyncio as aioredis
from redis.exceptions import RedisError, WatchError

from image_creation.core.errors import ConcurrencyConflictError, LogAppendError

from .event_log import (
    AppendResult,
    EventData,
    Expected,
    ExpectedState,
    OnDropped,
    OnEvent,
    RecordedEvent,
    Subscription,
    check_expected_state,
)

logger = logging.getLogger(__name__)

_START_ID = "0-0"


def _text(raw: bytes | str) -> str:
    return raw.decode("utf-8") if isinstance(raw, bytes) else raw


def _entry_time(entry_id: str) -> datetime:
    """Stream IDs are ``<unix-ms>-<seq>``."""
    millis = int(entry_id.split("-", 1)[0])
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


class RedisStreamEventLog:
    """Production event log backed by a Redis Stream.

    Args:
        redis_url: Redis connection URL.
        prefix: Key namespace prefix.
        block_ms: ``XREAD`` block timeout while tailing.
        batch_size: Entries fetched per ``XREAD`` / ``XRANGE`` call.
        max_conflict_retries: Retries for ``ExpectedState.ANY`` appends
            that lose a ``WATCH`` race.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        *,
        prefix: str = "imagelog:",
        block_ms: int = 1000,
        batch_size: int = 50,
        max_conflict_retries: int = 5,
    ) -> None:
        self._url = redis_url
        self._prefix = prefix
        self._block_ms = block_ms
        self._batch_size = batch_size
        self._max_retries = max_conflict_retries
        self._redis: aioredis.Redis | None = None

    # -- lifecycle -----------------------------------------------------------

    async def connect(self) -> None:
        """Establish the Redis connection pool."""
        if self._redis is not None:
            return
        self._redis = aioredis.from_url(self._url, decode_responses=False)
        await self._redis.ping()
        logger.info("Event log connected: %s", self._url.split("@")[-1])

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("Event log connection closed.")

    @property
    def redis(self) -> aioredis.Redis:
        if self._redis is None:
            raise RuntimeError(
                "RedisStreamEventLog not connected. Call connect() first."
            )
        return self._redis

    @property
    def all_key(self) -> str:
        return f"{self._prefix}all"

    def revision_key(self, stream: str) -> str:
        return f"{self._prefix}revision:{stream}"

    # -- append --------------------------------------------------------------

    async def append(
        self,
        stream: str,
        expected_state: Expected,
        events: Sequence[EventData],
    ) -> AppendResult:
        if not events:
            raise ValueError("append() needs at least one event")

        rev_key = self.revision_key(stream)
        attempts = 0
        while True:
            attempts += 1
            try:
                async with self.redis.pipeline(transaction=True) as pipe:
                    await pipe.watch(rev_key)
                    raw = await pipe.get(rev_key)
                    current = int(raw) if raw is not None else None
                    check_expected_state(stream, expected_state, current)

                    revision = (current if current is not None else -1) + len(events)
                    pipe.multi()
                    for event in events:
                        pipe.xadd(self.all_key, self._encode(stream, event))
                    pipe.set(rev_key, revision)
                    results = await pipe.execute()
            except WatchError:
                if expected_state == ExpectedState.ANY and attempts <= self._max_retries:
                    continue
                raise ConcurrencyConflictError(
                    stream, expected_state, "modified concurrently",
                ) from None
            except ConcurrencyConflictError:
                raise
            except RedisError as exc:
                raise LogAppendError(
                    f"Append to {stream!r} failed: {exc}"
                ) from exc

            position = _text(results[len(events) - 1])
            return AppendResult(next_revision=revision, position=position)

    @staticmethod
    def _encode(stream: str, event: EventData) -> dict[str, bytes | str]:
        return {
            "stream": stream,
            "event_id": event.event_id,
            "type": event.type,
            "content_type": event.content_type,
            "data": event.data,
        }

    @staticmethod
    def _decode(entry_id: bytes | str, fields: dict) -> RecordedEvent:
        position = _text(entry_id)
        get = lambda name: fields.get(name.encode(), fields.get(name))  # noqa: E731
        return RecordedEvent(
            stream=_text(get("stream") or b""),
            event_id=_text(get("event_id") or b""),
            type=_text(get("type") or b""),
            data=get("data") or b"",
            content_type=_text(get("content_type") or b"application/json"),
            position=position,
            created=_entry_time(position),
        )

    # -- read ----------------------------------------------------------------

    def subscribe_all(
        self,
        on_event: OnEvent,
        on_dropped: OnDropped | None = None,
        *,
        from_position: str | None = None,
        exclude_system_events: bool = True,
    ) -> Subscription:
        return Subscription(
            self._tail(from_position),
            on_event,
            on_dropped,
            exclude_system_events=exclude_system_events,
            name=f"redis-log-subscription-{self.all_key}",
        ).start()

    async def _tail(self, from_position: str | None) -> AsyncIterator[RecordedEvent]:
        last_id = from_position or _START_ID
        while True:
            entries = await self.redis.xread(
                {self.all_key: last_id},
                count=self._batch_size,
                block=self._block_ms,
            )
            if not entries:
                continue
            for _stream, messages in entries:
                for entry_id, fields in messages:
                    recorded = self._decode(entry_id, fields)
                    last_id = recorded.position
                    yield recorded

    async def read_all(
        self, from_position: str | None = None,
    ) -> AsyncIterator[RecordedEvent]:
        lower = f"({from_position}" if from_position else "-"
        while True:
            messages = await self.redis.xrange(
                self.all_key, min=lower, max="+", count=self._batch_size,
            )
            if not messages:
                return
            for entry_id, fields in messages:
                recorded = self._decode(entry_id, fields)
                lower = f"({recorded.position}"
                yield recorded
            if len(messages) < self._batch_size:
                return
