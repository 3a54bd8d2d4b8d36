"""Core interfaces and dataclasses for generator interactions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, MutableMapping


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class TextRequest:
    """Normalized request passed to text generators."""

    prompt: str
    system_prompt: str | None = None
    json_schema: Mapping[str, Any] | None = None
    temperature: float | None = None
    max_output_tokens: int | None = None
    metadata: MutableMapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class TextResponse:
    """Standard response returned by text generators."""

    text: str
    raw: Any
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    latency_ms: float | None = None
    received_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class ImageRequest:
    prompt: str
    aspect_ratio: str = "4:3"
    mime_type: str = "image/png"
    metadata: MutableMapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ImageResponse:
    data: bytes
    mime_type: str
    model: str
    latency_ms: float | None = None
    received_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class SpeechRequest:
    text: str
    voice_name: str
    metadata: MutableMapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class SpeechResponse:
    """Raw narration audio.

    ``pcm`` holds signed 16-bit little-endian mono samples at ``sample_rate``.
    """

    pcm: bytes
    sample_rate: int
    model: str
    latency_ms: float | None = None
    received_at: datetime = field(default_factory=_utcnow)


class TextGenerator(ABC):
    """Produces story text (usually JSON) from a prompt."""

    name: str

    @abstractmethod
    async def generate(self, request: TextRequest) -> TextResponse:
        """Generate text for the provided prompt."""


class ImageGenerator(ABC):
    """Produces a single illustration from a prompt."""

    name: str

    @abstractmethod
    async def generate(self, request: ImageRequest) -> ImageResponse:
        """Generate one image for the provided prompt."""


class SpeechGenerator(ABC):
    """Produces narration audio for a block of text."""

    name: str

    @abstractmethod
    async def generate(self, request: SpeechRequest) -> SpeechResponse:
        """Synthesize speech for the provided text."""
