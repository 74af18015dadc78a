"""Platform name -> image generator registry."""

from __future__ import annotations

import logging

from .base import IImageGenerator

logger = logging.getLogger(__name__)

FALLBACK_PLATFORM = "public"


class ImageGeneratorFactory:
    """Resolves a lower-case platform name to a registered generator.

    Unregistered platforms fall back to the ``public`` generator.
    """

    def __init__(self) -> None:
        self._generators: dict[str, IImageGenerator] = {}

    def register(self, platform: str, generator: IImageGenerator) -> None:
        self._generators[platform.lower()] = generator

    def get(self, platform: str) -> IImageGenerator:
        name = platform.lower()
        generator = self._generators.get(name)
        if generator is not None:
            return generator
        fallback = self._generators.get(FALLBACK_PLATFORM)
        if fallback is None:
            raise LookupError(
                f"No generator for platform {name!r} and no "
                f"{FALLBACK_PLATFORM!r} fallback registered"
            )
        logger.warning(
            "No generator registered for %s, using %s", name, FALLBACK_PLATFORM,
        )
        return fallback

    @property
    def platforms(self) -> list[str]:
        return sorted(self._generators)
