"""Google Gemini image and speech generator implementations."""

from __future__ import annotations

import time

from google import genai
from google.genai import errors, types

from .base import (
    ImageGenerator,
    ImageRequest,
    ImageResponse,
    SpeechGenerator,
    SpeechRequest,
    SpeechResponse,
)
from .config import ProviderConfig
from .exceptions import ProviderRateLimitError, ProviderResponseError, ProviderTransientError


def _build_client(config: ProviderConfig) -> genai.Client:
    http_options = None
    if config.settings.timeout_seconds:
        # google-genai expects the timeout in milliseconds.
        http_options = types.HttpOptions(timeout=int(config.settings.timeout_seconds * 1000))
    return genai.Client(api_key=config.api_key, http_options=http_options)


def _translate_api_error(err: errors.APIError) -> Exception:
    if err.code == 429:
        return ProviderRateLimitError(str(err), status_code=429)
    if isinstance(err, errors.ServerError):
        return ProviderTransientError(str(err))
    return err


class GeminiImageGenerator(ImageGenerator):
    name = "gemini"

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self._client = _build_client(config)

    async def generate(self, request: ImageRequest) -> ImageResponse:
        start = time.perf_counter()
        try:
            response = await self._client.aio.models.generate_images(
                model=self._config.model,
                prompt=request.prompt,
                config=types.GenerateImagesConfig(
                    number_of_images=1,
                    output_mime_type=request.mime_type,
                    aspect_ratio=request.aspect_ratio,
                ),
            )
        except errors.APIError as err:
            raise _translate_api_error(err) from err
        latency_ms = (time.perf_counter() - start) * 1000

        generated = response.generated_images or []
        if not generated:
            raise ProviderResponseError("No images generated")
        image = generated[0].image
        image_bytes = image.image_bytes if image else None
        if not image_bytes:
            raise ProviderResponseError("No image bytes in response")

        return ImageResponse(
            data=image_bytes,
            mime_type=request.mime_type,
            model=self._config.model,
            latency_ms=latency_ms,
        )


class GeminiSpeechGenerator(SpeechGenerator):
    name = "gemini"

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self._client = _build_client(config)

    async def generate(self, request: SpeechRequest) -> SpeechResponse:
        config = types.GenerateContentConfig(
            response_modalities=["AUDIO"],
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(
                        voice_name=request.voice_name
                    )
                )
            ),
        )
        start = time.perf_counter()
        try:
            response = await self._client.aio.models.generate_content(
                model=self._config.model,
                contents=request.text,
                config=config,
            )
        except errors.APIError as err:
            raise _translate_api_error(err) from err
        latency_ms = (time.perf_counter() - start) * 1000

        try:
            audio = response.candidates[0].content.parts[0].inline_data.data
        except (IndexError, AttributeError, TypeError) as err:
            raise ProviderResponseError("No audio data in response") from err
        if not audio:
            raise ProviderResponseError("No audio data in response")

        return SpeechResponse(
            pcm=audio,
            sample_rate=self._config.settings.sample_rate,
            model=self._config.model,
            latency_ms=latency_ms,
        )
