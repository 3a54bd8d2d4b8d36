"""Anthropic Claude text generator implementation."""

from __future__ import annotations

import time
from typing import Any, Dict

from anthropic import APIConnectionError, APIStatusError, AsyncAnthropic, RateLimitError

from .base import TextGenerator, TextRequest, TextResponse
from .config import ProviderConfig
from .exceptions import ProviderRateLimitError, ProviderResponseError, ProviderTransientError


class AnthropicTextGenerator(TextGenerator):
    name = "anthropic"

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        client_kwargs: Dict[str, Any] = {"api_key": config.api_key}
        if config.settings.timeout_seconds:
            client_kwargs["timeout"] = config.settings.timeout_seconds
        # Retries are owned by the orchestrator's RetryPolicy.
        self._client = AsyncAnthropic(max_retries=0, **client_kwargs)

    async def generate(self, request: TextRequest) -> TextResponse:
        params: Dict[str, Any] = {
            "model": self._config.model,
            "max_tokens": request.max_output_tokens or self._config.settings.max_output_tokens,
            "messages": [{"role": "user", "content": request.prompt}],
            "temperature": (
                request.temperature
                if request.temperature is not None
                else self._config.settings.temperature
            ),
        }
        if request.system_prompt:
            params["system"] = request.system_prompt

        start = time.perf_counter()
        try:
            response = await self._client.messages.create(**params)
        except RateLimitError as err:
            raise ProviderRateLimitError(str(err)) from err
        except APIConnectionError as err:
            raise ProviderTransientError(f"Anthropic connection failed: {err}") from err
        except APIStatusError as err:
            if err.status_code >= 500:
                raise ProviderTransientError(str(err)) from err
            raise
        latency_ms = (time.perf_counter() - start) * 1000

        text = next(
            (block.text for block in response.content if getattr(block, "type", None) == "text"),
            None,
        )
        if not text:
            raise ProviderResponseError("Anthropic response missing text content")

        usage = getattr(response, "usage", None)
        return TextResponse(
            text=text,
            raw=response,
            model=getattr(response, "model", self._config.model),
            prompt_tokens=getattr(usage, "input_tokens", 0) if usage else 0,
            completion_tokens=getattr(usage, "output_tokens", 0) if usage else 0,
            latency_ms=latency_ms,
        )
