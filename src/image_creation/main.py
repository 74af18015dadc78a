"""Application bootstrap.

Builds every handle from :class:`Settings` by explicit construction and
exposes the entry points used by the CLI: ``serve`` (HTTP + dispatcher),
``project`` (dispatcher only), ``replay`` (one-shot rebuild) and
``init-db``.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Any

from aiohttp import web

from .api.server import create_app
from .application.commands import ClassifyImageHandler, CreateImageHandler
from .application.dispatcher import SubscriptionDispatcher
from .application.projectors import (
    ClassifiedImageRecordProjector,
    ImageRecordProjector,
)
from .application.queries import (
    GetClassifiedImageByIdHandler,
    GetImageBase64Handler,
    GetImageByIdHandler,
)
from .core.config import Settings, load_settings
from .core.enums import CacheBackend, LogBackend
from .infrastructure.event_log import IEventLog, InMemoryEventLog
from .infrastructure.event_registry import default_registry
from .infrastructure.redis_event_log import RedisStreamEventLog
from .observability.logger import setup_logging
from .providers.factory import FALLBACK_PLATFORM, ImageGeneratorFactory
from .providers.http_converter import HttpUrlConverter
from .providers.mock import KeywordImageClassifier, PlaceholderImageGenerator
from .storage.cache import ICacheService, InMemoryCacheService, RedisCacheService
from .storage.postgres.connection import Database
from .storage.read_store import SqlReadModelStore

logger = logging.getLogger(__name__)


class Container:
    """Owns every long-lived handle of one process.

    Nothing is connected until :meth:`start`; :meth:`stop` releases
    everything in reverse order and is safe to call twice.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

        # Infrastructure
        self.event_log: IEventLog = _build_event_log(settings)
        self.cache: ICacheService = _build_cache(settings)
        self.database = Database(settings.postgres_url)
        self.store = SqlReadModelStore(self.database)
        self.registry = default_registry()

        # Providers
        self.converter = HttpUrlConverter(
            timeout_seconds=settings.providers.http_timeout_seconds,
        )
        self.classifier = KeywordImageClassifier(self.converter)
        self.generators = ImageGeneratorFactory()
        self.generators.register(FALLBACK_PLATFORM, PlaceholderImageGenerator())

        # Write side
        stream = settings.event_log.stream_name
        self.create_image = CreateImageHandler(
            self.generators,
            self.event_log,
            stream=stream,
            default_platform=settings.providers.default_platform,
        )
        self.classify_image = ClassifyImageHandler(
            self.converter, self.classifier, self.event_log, stream=stream,
        )

        # Read side
        self.image_projector = ImageRecordProjector(self.store, self.cache)
        self.classified_projector = ClassifiedImageRecordProjector(
            self.store, self.cache,
        )
        self.dispatcher = SubscriptionDispatcher(
            self.event_log,
            self.registry,
            self.image_projector,
            self.classified_projector,
            restart_delay=settings.dispatcher.restart_delay_seconds,
            max_restart_delay=settings.dispatcher.max_restart_delay_seconds,
        )
        self.get_image = GetImageByIdHandler(self.store, self.cache)
        self.get_image_base64 = GetImageBase64Handler(self.store, self.cache)
        self.get_classified_image = GetClassifiedImageByIdHandler(
            self.store, self.cache,
        )

    def create_app(self) -> web.Application:
        return create_app(
            create_image=self.create_image,
            classify_image=self.classify_image,
            get_image=self.get_image,
            get_image_base64=self.get_image_base64,
            get_classified_image=self.get_classified_image,
            dispatcher=self.dispatcher,
        )

    async def start(self, *, dispatcher: bool | None = None) -> None:
        """Connect every handle, then start the dispatcher if enabled."""
        if isinstance(self.event_log, RedisStreamEventLog):
            await self.event_log.connect()
        if isinstance(self.cache, RedisCacheService):
            await self.cache.connect()
        await self.database.connect(create_tables=self.settings.create_tables)
        await self.converter.start()

        run_dispatcher = (
            self.settings.dispatcher.enabled if dispatcher is None else dispatcher
        )
        if run_dispatcher:
            await self.dispatcher.start()
        logger.info(
            "Container started (log=%s cache=%s dispatcher=%s)",
            self.settings.event_log.backend.value,
            self.settings.cache.backend.value,
            run_dispatcher,
        )

    async def stop(self) -> None:
        await self.dispatcher.stop()
        await self.converter.close()
        await self.database.dispose()
        if isinstance(self.cache, RedisCacheService):
            await self.cache.close()
        if isinstance(self.event_log, RedisStreamEventLog):
            await self.event_log.close()
        logger.info("Container stopped")


def _build_event_log(settings: Settings) -> IEventLog:
    cfg = settings.event_log
    if cfg.backend == LogBackend.MEMORY:
        return InMemoryEventLog()
    return RedisStreamEventLog(
        settings.redis_url,
        prefix=cfg.stream_prefix,
        block_ms=cfg.block_ms,
        batch_size=cfg.batch_size,
    )


def _build_cache(settings: Settings) -> ICacheService:
    cfg = settings.cache
    if cfg.backend == CacheBackend.MEMORY:
        return InMemoryCacheService()
    return RedisCacheService(
        settings.redis_url, prefix=cfg.key_prefix, ttl_seconds=cfg.ttl_seconds,
    )


def _bootstrap(
    config_path: str | None, overrides: dict[str, Any] | None,
) -> Settings:
    settings = load_settings(config_path=config_path, overrides=overrides)
    settings.validate_backends()
    setup_logging(
        level=settings.observability.log_level,
        format=settings.observability.log_format,
    )
    return settings


def _stop_on_signal() -> asyncio.Event:
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Received shutdown signal")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)
    return stop_event


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

async def serve(
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> None:
    """HTTP API plus dispatcher, until SIGINT/SIGTERM."""
    settings = _bootstrap(config_path, overrides)
    container = Container(settings)
    try:
        await container.start()
        runner = web.AppRunner(container.create_app())
        await runner.setup()
        try:
            site = web.TCPSite(runner, settings.api.host, settings.api.port)
            await site.start()
            logger.info("Serving on %s:%d", settings.api.host, settings.api.port)
            await _stop_on_signal().wait()
        finally:
            await runner.cleanup()
    finally:
        await container.stop()


async def project(
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> None:
    """Dispatcher only, tailing until SIGINT/SIGTERM."""
    settings = _bootstrap(config_path, overrides)
    container = Container(settings)
    try:
        await container.start(dispatcher=True)
        await _stop_on_signal().wait()
    finally:
        await container.stop()


async def replay(
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> dict[str, int]:
    """Rebuild the read models from the whole log once, then exit."""
    settings = _bootstrap(config_path, overrides)
    container = Container(settings)
    try:
        await container.start(dispatcher=False)
        await container.dispatcher.replay()
        return container.dispatcher.stats.to_dict()
    finally:
        await container.stop()


async def init_db(
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> None:
    """Create the read-model tables without running alembic."""
    settings = _bootstrap(config_path, overrides)
    database = Database(settings.postgres_url)
    try:
        await database.connect(create_tables=True)
    finally:
        await database.dispose()
