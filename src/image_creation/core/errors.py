"""Custom exception hierarchy for the image-creation service."""


class ImageCreationError(Exception):
    """Base exception for all image-creation errors."""


# --- Configuration ---
class ConfigError(ImageCreationError):
    """Invalid or missing configuration."""


# --- Domain ---
class ValidationError(ImageCreationError, ValueError):
    """A value object rejected its input.

    Surfaced to the caller as a rejected request.  Invalid data never
    reaches the event log or the read store.
    """

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


# --- Providers ---
class ProviderError(ImageCreationError):
    """External generation, download or classification failure."""


# --- Event log ---
class LogAppendError(ImageCreationError):
    """The event log refused or failed to append."""


class ConcurrencyConflictError(LogAppendError):
    """The stream was not in the state the writer expected."""

    def __init__(self, stream: str, expected: object, actual: object):
        self.stream = stream
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Stream {stream!r}: expected {expected!r}, actual {actual!r}"
        )


class SubscriptionDroppedError(ImageCreationError):
    """A log subscription ended without being asked to stop."""


# --- Projection ---
class ProjectionError(ImageCreationError):
    """Read-model materialization failed.  Logged, never surfaced."""


class EventDecodeError(ProjectionError):
    """An event payload could not be decoded into its registered type."""


class UnknownEventTypeError(ProjectionError):
    """No decoder is registered for an event type name."""

    def __init__(self, type_name: str):
        self.type_name = type_name
        super().__init__(f"Unknown event type: {type_name}")
