"""Deterministic mock generators for tests and offline development."""

from __future__ import annotations

import hashlib
import json
import struct

from .base import (
    ImageGenerator,
    ImageRequest,
    ImageResponse,
    SpeechGenerator,
    SpeechRequest,
    SpeechResponse,
    TextGenerator,
    TextRequest,
    TextResponse,
)
from .config import Capability, ProviderConfig, mock_config

DEFAULT_PAGE_COUNT = 20

# Smallest valid PNG: 1x1 transparent pixel.
PLACEHOLDER_PNG = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c6360000002000154a24f5d0000000049454e44ae426082"
)


class MockTextGenerator(TextGenerator):
    """Returns a well-formed story with ``metadata["page_count"]`` pages."""

    name = "mock"

    def __init__(self, config: ProviderConfig | None = None, page_count: int = DEFAULT_PAGE_COUNT) -> None:
        self._config = config or mock_config(Capability.TEXT)
        self._page_count = page_count

    async def generate(self, request: TextRequest) -> TextResponse:
        page_count = int(request.metadata.get("page_count", self._page_count))
        theme = request.metadata.get("theme", "friendship")
        payload = {
            "title": f"The Mock Adventure of {theme.title()}",
            "author": "AI Storybook Creator",
            "synopsis": "A small hero learns something big. Everyone ends the day smiling.",
            "theme": theme,
            "moral_lesson": request.metadata.get("moral_lesson", "Helping others is wonderful"),
            "pages": [
                {
                    "page_number": number,
                    "text": f"Page {number} of the story about {theme}.",
                    "image_prompt": f"Colorful illustration of scene {number}",
                }
                for number in range(1, page_count + 1)
            ],
        }
        text = json.dumps(payload)
        return TextResponse(
            text=text,
            raw={"mock": True},
            model=self._config.model,
            prompt_tokens=len(request.prompt.split()),
            completion_tokens=len(text.split()),
            latency_ms=1.0,
        )


class MockImageGenerator(ImageGenerator):
    name = "mock"

    def __init__(self, config: ProviderConfig | None = None) -> None:
        self._config = config or mock_config(Capability.IMAGE)

    async def generate(self, request: ImageRequest) -> ImageResponse:
        return ImageResponse(
            data=PLACEHOLDER_PNG,
            mime_type=request.mime_type,
            model=self._config.model,
            latency_ms=1.0,
        )


class MockSpeechGenerator(SpeechGenerator):
    """Emits a short, text-dependent PCM signal so different inputs differ."""

    name = "mock"

    def __init__(self, config: ProviderConfig | None = None) -> None:
        self._config = config or mock_config(Capability.SPEECH)

    async def generate(self, request: SpeechRequest) -> SpeechResponse:
        digest = hashlib.sha256(f"{request.voice_name}:{request.text}".encode("utf-8")).digest()
        samples = [(byte - 128) * 64 for byte in digest] * 100
        pcm = struct.pack(f"<{len(samples)}h", *samples)
        return SpeechResponse(
            pcm=pcm,
            sample_rate=self._config.settings.sample_rate,
            model=self._config.model,
            latency_ms=1.0,
        )
