"""Offline providers for local runs and tests.

``KeywordImageClassifier`` labels an image from words in its URL;
``PlaceholderImageGenerator`` answers every prompt with the same tiny PNG.
Neither calls a third-party service.
"""

from __future__ import annotations

import logging

from .base import IUrlConverter

logger = logging.getLogger(__name__)

# 1x1 transparent PNG
PLACEHOLDER_PNG_BASE64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA"
    "60e6kgAAAABJRU5ErkJggg=="
)

_FOOD_WORDS = ("food", "pizza", "burger")
_PERSON_WORDS = ("person", "human", "face")


class KeywordImageClassifier:
    """Mock classifier: ``Food`` / ``Person`` / ``None`` from URL keywords."""

    def __init__(self, converter: IUrlConverter) -> None:
        self._converter = converter

    async def classify(self, url: str) -> tuple[str | None, str]:
        base64_data = await self._converter.convert_url_to_base64(url)
        if not base64_data:
            logger.warning("No image data for %s, classifying as None", url)
            return None, "None"

        lowered = url.lower()
        if any(word in lowered for word in _FOOD_WORDS):
            label = "Food"
        elif any(word in lowered for word in _PERSON_WORDS):
            label = "Person"
        else:
            label = "None"
        logger.info("Keyword classification %s -> %s", url, label)
        return base64_data, label


class PlaceholderImageGenerator:
    """Returns a fixed 1x1 PNG for any description."""

    def __init__(self, payload: str = PLACEHOLDER_PNG_BASE64) -> None:
        self._payload = payload

    async def generate_image(self, description: str) -> str | None:
        return self._payload
