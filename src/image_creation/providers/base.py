"""Provider capability contracts.

Generation, download and classification are black boxes to the command
handlers: they only see these protocols.  ``None`` (or an empty string)
from a provider means "produced nothing" and is turned into a
``ProviderError`` by the caller.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class IImageGenerator(Protocol):
    async def generate_image(self, description: str) -> str | None:
        """Return base64 image data for *description*."""
        ...


@runtime_checkable
class IUrlConverter(Protocol):
    async def convert_url_to_base64(self, url: str) -> str | None:
        """Download *url* and return its bytes base64-encoded."""
        ...


@runtime_checkable
class IImageClassifier(Protocol):
    async def classify(self, url: str) -> tuple[str | None, str]:
        """Return ``(base64_data, label)`` for the image at *url*."""
        ...
