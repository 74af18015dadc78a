"""Subscription dispatcher: the log's single consumer in this process.

Tails every stream of the event log from the start and hands each
decoded domain event to exactly one projector.

State machine::

    STOPPED -> SUBSCRIBING -> TAILING -> DROPPED -> SUBSCRIBING ...
                                  \\________________ stop() -> STOPPED

Nothing an individual event does can end the subscription: system
entries are skipped, unknown types are logged and skipped, undecodable
payloads are logged and skipped and projector failures are logged and
counted.  A drop (connection loss, server-side disposal) schedules a
supervised restart with exponential backoff.  The restarted subscription
replays from the start; projectors are idempotent so the read model ends
up unchanged.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, replace
from typing import assert_never

from image_creation.core.enums import DispatcherState, DropReason
from image_creation.core.errors import EventDecodeError, UnknownEventTypeError
from image_creation.domain.events import (
    DomainEvent,
    ImageClassifiedEvent,
    ImageCreatedEvent,
)
from image_creation.infrastructure.event_log import (
    SYSTEM_PREFIX,
    IEventLog,
    RecordedEvent,
    Subscription,
)
from image_creation.infrastructure.event_registry import EventRegistry
from image_creation.observability.logger import set_trace_id

from .projectors import ClassifiedImageRecordProjector, ImageRecordProjector

logger = logging.getLogger(__name__)


@dataclass
class DispatcherStats:
    processed: int = 0
    skipped_system: int = 0
    unknown_types: int = 0
    decode_errors: int = 0
    projection_errors: int = 0
    restarts: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class SubscriptionDispatcher:
    """Routes log entries to projectors, restarting itself on drop.

    Parameters
    ----------
    event_log
        Log to tail.
    registry
        Type name -> decoder mapping.
    image_projector, classified_projector
        Targets for ``ImageCreatedEvent`` and ``ImageClassifiedEvent``.
    restart_delay
        Seconds before the first restart after a drop.
    max_restart_delay
        Cap for the doubling delay on consecutive drops.
    """

    def __init__(
        self,
        event_log: IEventLog,
        registry: EventRegistry,
        image_projector: ImageRecordProjector,
        classified_projector: ClassifiedImageRecordProjector,
        *,
        restart_delay: float = 1.0,
        max_restart_delay: float = 30.0,
    ) -> None:
        self._log = event_log
        self._registry = registry
        self._image_projector = image_projector
        self._classified_projector = classified_projector
        self._restart_delay = restart_delay
        self._max_restart_delay = max_restart_delay

        self._state = DispatcherState.STOPPED
        self._stats = DispatcherStats()
        self._subscription: Subscription | None = None
        self._restart_task: asyncio.Task | None = None
        self._consecutive_drops = 0
        # Entries delivered by the current subscription, and the most any
        # subscription has delivered. A restart only counts as recovered once
        # it gets past the furthest point reached before.
        self._delivered = 0
        self._high_water = 0
        self._stopping = False

    # -- Properties --------------------------------------------------------

    @property
    def state(self) -> DispatcherState:
        return self._state

    @property
    def stats(self) -> DispatcherStats:
        """Snapshot of the counters, including system entries the live
        subscription filtered out."""
        live = self._subscription.skipped_system if self._subscription else 0
        return replace(self._stats, skipped_system=self._stats.skipped_system + live)

    @property
    def consecutive_drops(self) -> int:
        return self._consecutive_drops

    @property
    def last_position(self) -> str | None:
        if self._subscription is None:
            return None
        return self._subscription.last_position

    # -- Lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        """Subscribe from the start of the log.  No-op when already running."""
        if self._state != DispatcherState.STOPPED:
            return
        self._stopping = False
        self._consecutive_drops = 0
        self._subscribe()
        logger.info("Dispatcher started")

    async def stop(self) -> None:
        """Cancel any pending restart and stop the subscription cooperatively."""
        self._stopping = True
        if self._restart_task is not None and not self._restart_task.done():
            self._restart_task.cancel()
            await asyncio.gather(self._restart_task, return_exceptions=True)
        self._restart_task = None
        if self._subscription is not None:
            await self._subscription.stop()
            self._retire_subscription()
        self._state = DispatcherState.STOPPED
        logger.info("Dispatcher stopped (stats=%s)", self._stats.to_dict())

    def _retire_subscription(self) -> None:
        if self._subscription is not None:
            self._stats.skipped_system += self._subscription.skipped_system
            self._subscription = None

    def _subscribe(self) -> None:
        self._retire_subscription()
        self._delivered = 0
        self._state = DispatcherState.SUBSCRIBING
        self._subscription = self._log.subscribe_all(
            self._on_event,
            self._on_dropped,
            from_position=None,
            exclude_system_events=True,
        )
        self._state = DispatcherState.TAILING

    def _on_dropped(self, reason: DropReason, error: BaseException | None) -> None:
        if self._stopping:
            return
        self._state = DispatcherState.DROPPED
        self._consecutive_drops += 1
        delay = min(
            self._restart_delay * (2 ** (self._consecutive_drops - 1)),
            self._max_restart_delay,
        )
        logger.warning(
            "Subscription dropped (%s: %s), restarting in %.1fs (attempt %d)",
            reason.value, error, delay, self._consecutive_drops,
        )
        self._restart_task = asyncio.create_task(
            self._restart_after(delay), name="dispatcher-restart",
        )

    async def _restart_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._stopping:
            return
        self._stats.restarts += 1
        logger.info("Resubscribing from the start of the log")
        self._subscribe()

    async def _on_event(self, recorded: RecordedEvent) -> None:
        await self.handle(recorded)
        self._delivered += 1
        if self._delivered > self._high_water:
            self._high_water = self._delivered
            self._consecutive_drops = 0

    # -- Routing -----------------------------------------------------------

    async def handle(self, recorded: RecordedEvent) -> None:
        """Decode and project one log entry.  Never raises."""
        if recorded.type.startswith(SYSTEM_PREFIX):
            self._stats.skipped_system += 1
            return

        set_trace_id(recorded.event_id)
        try:
            event = self._registry.decode(recorded.type, recorded.data)
        except UnknownEventTypeError:
            self._stats.unknown_types += 1
            logger.warning(
                "Skipping unknown event type %r at %s",
                recorded.type, recorded.position,
            )
            return
        except EventDecodeError as exc:
            self._stats.decode_errors += 1
            logger.error(
                "Skipping undecodable %s at %s: %s",
                recorded.type, recorded.position, exc,
            )
            return

        self._stats.processed += 1
        try:
            ok = await self._route(event)
        except Exception:
            logger.exception(
                "Projector raised for %s at %s", recorded.type, recorded.position,
            )
            ok = False
        if not ok:
            self._stats.projection_errors += 1

    async def _route(self, event: DomainEvent) -> bool:
        match event:
            case ImageCreatedEvent():
                return await self._image_projector.apply(event)
            case ImageClassifiedEvent():
                return await self._classified_projector.apply(event)
            case _:
                assert_never(event)

    # -- One-shot rebuild --------------------------------------------------

    async def replay(self) -> int:
        """Re-project every entry currently in the log.  Returns entries read."""
        count = 0
        async for recorded in self._log.read_all():
            await self.handle(recorded)
            count += 1
        logger.info("Replay finished: %d entries (stats=%s)", count, self._stats.to_dict())
        return count
