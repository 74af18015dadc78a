"""Event type name -> decoder registry.

Maps the ``type`` field of a log entry to a function that turns its JSON
payload into a domain event.  Resolution is a dictionary lookup: there
is no scanning of loaded classes, new event types are added with
:meth:`EventRegistry.register`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from pydantic import ValidationError as PydanticValidationError

from image_creation.core.errors import EventDecodeError, UnknownEventTypeError
from image_creation.domain.events import ALL_DOMAIN_EVENTS, DomainEvent

from .event_log import JSON_CONTENT_TYPE, EventData

logger = logging.getLogger(__name__)

Decoder = Callable[[bytes], DomainEvent]


def _json_decoder(cls: type[DomainEvent]) -> Decoder:
    def decode(data: bytes) -> DomainEvent:
        return cls.model_validate_json(data)
    decode.__name__ = f"decode_{cls.__name__}"
    return decode


class EventRegistry:
    """Static mapping from type name to decoder."""

    def __init__(self) -> None:
        self._decoders: dict[str, Decoder] = {}

    def register(self, type_name: str, decoder: Decoder) -> None:
        if type_name in self._decoders:
            raise ValueError(f"Decoder already registered for {type_name!r}")
        self._decoders[type_name] = decoder

    def resolve(self, type_name: str) -> Decoder | None:
        """Return the decoder for *type_name*, ``None`` if unknown."""
        return self._decoders.get(type_name)

    def decode(self, type_name: str, data: bytes) -> DomainEvent:
        """Decode *data* as *type_name*.

        Raises
        ------
        UnknownEventTypeError
            No decoder registered.
        EventDecodeError
            Payload is not valid JSON for the registered type.
        """
        decoder = self.resolve(type_name)
        if decoder is None:
            raise UnknownEventTypeError(type_name)
        try:
            return decoder(data)
        except (PydanticValidationError, ValueError) as exc:
            raise EventDecodeError(
                f"Cannot decode {type_name}: {exc}"
            ) from exc

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._decoders

    @property
    def type_names(self) -> list[str]:
        return sorted(self._decoders)


def default_registry() -> EventRegistry:
    """Registry pre-loaded with every known domain event."""
    registry = EventRegistry()
    for cls in ALL_DOMAIN_EVENTS:
        registry.register(cls.event_type_name(), _json_decoder(cls))
    return registry


def encode_event(event: DomainEvent) -> EventData:
    """Serialize *event* into a log entry named after its type."""
    return EventData(
        type=event.event_type_name(),
        data=event.to_json_bytes(),
        content_type=JSON_CONTENT_TYPE,
    )
