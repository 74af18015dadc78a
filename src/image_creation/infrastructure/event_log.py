"""Append-only event log: contract, subscription driver, in-memory backend.

Design invariants
-----------------
1.  ``append()`` writes every entry of one call or none of them, and
    honours ``expected_state`` (optimistic concurrency per stream).
2.  Entries carry an opaque ``type`` name and raw JSON ``data`` bytes;
    the log never interprets payloads.
3.  ``subscribe_all()`` delivers entries in **append order**, one at a
    time: the next entry is not delivered until the previous ``on_event``
    call returned.
4.  ``Subscription.stop()`` is cooperative.  An in-flight ``on_event``
    finishes, nothing is delivered afterwards and ``on_dropped`` is not
    called.  Any other termination calls ``on_dropped`` exactly once.

This module provides:

*  ``IEventLog``: the protocol.
*  ``Subscription``: task-backed driver shared by every backend.
*  ``InMemoryEventLog``: list-backed implementation for tests and local
   development.  Supports dropping live subscriptions for fault tests.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol, Union

from image_creation.core.enums import DropReason
from image_creation.core.errors import (
    ConcurrencyConflictError,
    SubscriptionDroppedError,
)
from image_creation.core.ids import new_id, utc_now

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
SYSTEM_PREFIX = "$"


# ---------------------------------------------------------------------------
# Wire types
# ---------------------------------------------------------------------------

class ExpectedState(str, Enum):
    ANY = "any"
    NO_STREAM = "no_stream"
    STREAM_EXISTS = "stream_exists"


# An ExpectedState or the exact revision (0-based) of the stream's last entry.
Expected = Union[ExpectedState, int]


@dataclass(frozen=True)
class EventData:
    """An entry to append."""

    type: str
    data: bytes
    event_id: str = field(default_factory=lambda: str(new_id()))
    content_type: str = JSON_CONTENT_TYPE


@dataclass(frozen=True)
class RecordedEvent:
    """An entry as read back from the log."""

    stream: str
    event_id: str
    type: str
    data: bytes
    content_type: str
    position: str  # Opaque, backend-specific, totally ordered
    created: datetime

    @property
    def is_system(self) -> bool:
        return self.type.startswith(SYSTEM_PREFIX)


@dataclass(frozen=True)
class AppendResult:
    next_revision: int
    position: str


OnEvent = Callable[[RecordedEvent], Awaitable[None]]
OnDropped = Callable[[DropReason, Union[BaseException, None]], None]


def check_expected_state(
    stream: str, expected: Expected, current: int | None,
) -> None:
    """Raise ``ConcurrencyConflictError`` unless *current* satisfies *expected*.

    *current* is the revision of the stream's last entry, ``None`` when the
    stream does not exist yet.
    """
    if expected == ExpectedState.ANY:
        return
    if expected == ExpectedState.NO_STREAM:
        if current is not None:
            raise ConcurrencyConflictError(stream, expected, current)
        return
    if expected == ExpectedState.STREAM_EXISTS:
        if current is None:
            raise ConcurrencyConflictError(stream, expected, current)
        return
    if expected != current:
        raise ConcurrencyConflictError(stream, expected, current)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class IEventLog(Protocol):
    """Ordered, append-only, subscribable log of typed byte payloads."""

    async def append(
        self,
        stream: str,
        expected_state: Expected,
        events: Sequence[EventData],
    ) -> AppendResult:
        """Append *events* to *stream* atomically.

        Raises ``ConcurrencyConflictError`` on an expected-state mismatch
        and ``LogAppendError`` on transport failure.
        """
        ...

    def subscribe_all(
        self,
        on_event: OnEvent,
        on_dropped: OnDropped | None = None,
        *,
        from_position: str | None = None,
        exclude_system_events: bool = True,
    ) -> Subscription:
        """Start tailing every stream after *from_position* (``None`` = start)."""
        ...

    def read_all(self, from_position: str | None = None) -> AsyncIterator[RecordedEvent]:
        """Yield every entry currently in the log, in order, then stop."""
        ...


# ---------------------------------------------------------------------------
# Subscription driver
# ---------------------------------------------------------------------------

class Subscription:
    """Drives a tailing source in a background task.

    Parameters
    ----------
    source
        Async iterator of recorded events.  Blocks while the log is idle.
    on_event
        Awaited once per delivered entry.
    on_dropped
        Called once if the subscription ends for any reason other than
        :meth:`stop`.
    """

    def __init__(
        self,
        source: AsyncIterator[RecordedEvent],
        on_event: OnEvent,
        on_dropped: OnDropped | None = None,
        *,
        exclude_system_events: bool = True,
        name: str = "log-subscription",
    ) -> None:
        self._source = source
        self._on_event = on_event
        self._on_dropped = on_dropped
        self._exclude_system = exclude_system_events
        self._name = name
        self._task: asyncio.Task | None = None
        self._stopping = False
        self._in_callback = False
        self._last_position: str | None = None
        self._skipped_system = 0

    def start(self) -> Subscription:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=self._name)
        return self

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_position(self) -> str | None:
        """Position of the last entry handed to ``on_event``."""
        return self._last_position

    @property
    def skipped_system(self) -> int:
        """System entries filtered out instead of delivered."""
        return self._skipped_system

    async def stop(self) -> None:
        """Stop delivering.  Waits for an in-flight ``on_event`` to finish."""
        if self._task is None:
            return
        self._stopping = True
        if not self._in_callback:
            # Only interrupts the wait for the next entry
            self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)

    async def wait(self) -> None:
        """Block until the subscription ends (dropped or stopped)."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _run(self) -> None:
        reason = DropReason.DISPOSED
        error: BaseException | None = None
        try:
            async with aclosing(self._source) as source:
                async for recorded in source:
                    if self._stopping:
                        break
                    if self._exclude_system and recorded.is_system:
                        self._skipped_system += 1
                        continue
                    self._in_callback = True
                    try:
                        await self._on_event(recorded)
                    except Exception as exc:
                        reason, error = DropReason.SUBSCRIBER_ERROR, exc
                        break
                    finally:
                        self._in_callback = False
                    self._last_position = recorded.position
                    if self._stopping:
                        break
        except asyncio.CancelledError:
            if not self._stopping:
                raise
        except Exception as exc:
            reason, error = DropReason.SERVER_ERROR, exc

        if self._stopping:
            return
        logger.warning(
            "Subscription %s dropped: %s (%s)", self._name, reason.value, error,
        )
        if self._on_dropped is not None:
            try:
                self._on_dropped(reason, error)
            except Exception:
                logger.exception("on_dropped callback failed for %s", self._name)


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryEventLog:
    """List-backed event log.  No persistence across restarts.

    Good for: unit tests, local development, single-process demos.
    """

    def __init__(self) -> None:
        self._events: list[RecordedEvent] = []
        self._revisions: dict[str, int] = {}
        self._cond = asyncio.Condition()
        self._generation = 0

    async def append(
        self,
        stream: str,
        expected_state: Expected,
        events: Sequence[EventData],
    ) -> AppendResult:
        if not events:
            raise ValueError("append() needs at least one event")
        async with self._cond:
            current = self._revisions.get(stream)
            check_expected_state(stream, expected_state, current)
            now = utc_now()
            for event in events:
                self._events.append(RecordedEvent(
                    stream=stream,
                    event_id=event.event_id,
                    type=event.type,
                    data=event.data,
                    content_type=event.content_type,
                    position=str(len(self._events)),
                    created=now,
                ))
            revision = (current if current is not None else -1) + len(events)
            self._revisions[stream] = revision
            self._cond.notify_all()
            return AppendResult(
                next_revision=revision, position=self._events[-1].position,
            )

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
            name="memory-log-subscription",
        ).start()

    async def read_all(
        self, from_position: str | None = None,
    ) -> AsyncIterator[RecordedEvent]:
        start = _start_index(from_position)
        for recorded in list(self._events[start:]):
            yield recorded

    async def _tail(self, from_position: str | None) -> AsyncIterator[RecordedEvent]:
        index = _start_index(from_position)
        generation = self._generation
        while True:
            async with self._cond:
                await self._cond.wait_for(
                    lambda: index < len(self._events)
                    or self._generation != generation
                )
                if self._generation != generation:
                    raise SubscriptionDroppedError("in-memory log connection reset")
                batch = self._events[index:]
            for recorded in batch:
                index += 1
                yield recorded

    # -- Testing helpers ---------------------------------------------------

    async def drop_subscriptions(self) -> None:
        """Simulate a server-side drop of every live subscription."""
        async with self._cond:
            self._generation += 1
            self._cond.notify_all()

    def stream_revision(self, stream: str) -> int | None:
        return self._revisions.get(stream)

    def __len__(self) -> int:
        return len(self._events)


def _start_index(from_position: str | None) -> int:
    return 0 if from_position is None else int(from_position) + 1
