"""Self-validating scalar value objects.

Design invariants
-----------------
1.  Every value object is **immutable** (``frozen=True``) and compares by
    value.
2.  Construction validates.  Invalid input raises
    :class:`~image_creation.core.errors.ValidationError` with a readable
    reason, so an invalid value can never be held by an entity.
3.  ``value`` holds the canonical form and normalization is idempotent:
    ``type(vo)(vo.value) == vo``.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import ClassVar
from urllib.parse import urlsplit

from image_creation.core.errors import ValidationError

MAX_DESCRIPTION_LENGTH = 500


@dataclass(frozen=True)
class ImageDescription:
    """Prompt text used to generate an image."""

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not self.value.strip():
            raise ValidationError("description", "must not be empty")
        if len(self.value) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                "description",
                f"exceeds the {MAX_DESCRIPTION_LENGTH} character limit",
            )

    @classmethod
    def create(cls, value: str) -> ImageDescription:
        return cls(value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Base64Data:
    """Base64-encoded image payload."""

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not self.value.strip():
            raise ValidationError("base64_data", "must not be empty")
        # Line-wrapped (MIME) payloads are accepted and stored unwrapped
        compact = "".join(self.value.split())
        try:
            base64.b64decode(compact, validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError(
                "base64_data", "is not valid base64"
            ) from None
        object.__setattr__(self, "value", compact)

    @classmethod
    def create(cls, value: str) -> Base64Data:
        return cls(value)

    @classmethod
    def from_bytes(cls, raw: bytes) -> Base64Data:
        return cls(base64.b64encode(raw).decode("ascii"))

    def decode(self) -> bytes:
        return base64.b64decode(self.value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ImageUrl:
    """Absolute URL of a source image."""

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not self.value.strip():
            raise ValidationError("image_url", "must not be empty")
        try:
            parts = urlsplit(self.value)
        except ValueError:
            raise ValidationError(
                "image_url", f"{self.value!r} is not a valid URL"
            ) from None
        # scheme ":" hier-part, e.g. urn:isbn:123 or data:image/png;base64,...
        if not parts.scheme or not (parts.netloc or parts.path):
            raise ValidationError(
                "image_url", f"{self.value!r} is not an absolute URL"
            )

    @classmethod
    def create(cls, value: str) -> ImageUrl:
        return cls(value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Platform:
    """Image-generation platform, normalized to ``"Azure"``-style casing."""

    ALLOWED: ClassVar[frozenset[str]] = frozenset(
        {"public", "azure", "stability", "google", "huggingface", "gemini"}
    )

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not self.value.strip():
            raise ValidationError("platform", "must not be empty")
        name = self.value.strip().lower()
        if name not in self.ALLOWED:
            raise ValidationError(
                "platform",
                f"unrecognized platform {self.value!r}; allowed: "
                f"{', '.join(sorted(self.ALLOWED))}",
            )
        object.__setattr__(self, "value", name.capitalize())

    @classmethod
    def create(cls, value: str) -> Platform:
        return cls(value)

    @property
    def name(self) -> str:
        """Lower-case lookup key, e.g. ``"azure"``."""
        return self.value.lower()

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ClassificationResult:
    """Normalized classification label.

    Built from the tokens ``Food``, ``Person`` and ``None``.  Several labels
    are comma-joined in alphabetical order (``"Food, Person"``); ``None``
    cannot be combined with anything else.
    """

    ALLOWED: ClassVar[frozenset[str]] = frozenset({"food", "person", "none"})

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not self.value.strip():
            raise ValidationError("classification", "must not be empty")

        tokens = {t.strip().lower() for t in self.value.split(",")}
        tokens.discard("")
        if not tokens:
            raise ValidationError("classification", "must not be empty")

        unknown = tokens - self.ALLOWED
        if unknown:
            raise ValidationError(
                "classification",
                f"unrecognized categories {sorted(unknown)} in {self.value!r}; "
                "allowed: Food, Person, None (combine with ', ')",
            )
        if "none" in tokens and len(tokens) > 1:
            raise ValidationError(
                "classification", "'None' cannot be combined with other categories"
            )

        object.__setattr__(
            self, "value", ", ".join(t.capitalize() for t in sorted(tokens))
        )

    @classmethod
    def create(cls, value: str) -> ClassificationResult:
        return cls(value)

    @property
    def labels(self) -> tuple[str, ...]:
        return tuple(self.value.split(", "))

    def __str__(self) -> str:
        return self.value
