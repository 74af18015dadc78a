"""Enumerations used across the image-creation service."""

from enum import Enum


class LogBackend(str, Enum):
    REDIS = "redis"
    MEMORY = "memory"


class CacheBackend(str, Enum):
    REDIS = "redis"
    MEMORY = "memory"


class DispatcherState(str, Enum):
    STOPPED = "stopped"
    SUBSCRIBING = "subscribing"
    TAILING = "tailing"
    DROPPED = "dropped"


class DropReason(str, Enum):
    SERVER_ERROR = "server_error"
    SUBSCRIBER_ERROR = "subscriber_error"
    DISPOSED = "disposed"
