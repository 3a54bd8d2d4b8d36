"""OpenAI ChatGPT text generator implementation."""

from __future__ import annotations

import time
from typing import Any, Dict, List

from openai import APIConnectionError, APIStatusError, AsyncOpenAI, RateLimitError

from .base import TextGenerator, TextRequest, TextResponse
from .config import ProviderConfig
from .exceptions import ProviderRateLimitError, ProviderResponseError, ProviderTransientError


class OpenAITextGenerator(TextGenerator):
    name = "openai"

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        client_kwargs: Dict[str, Any] = {"api_key": config.api_key}
        if config.settings.timeout_seconds:
            client_kwargs["timeout"] = config.settings.timeout_seconds
        self._client = AsyncOpenAI(max_retries=0, **client_kwargs)

    async def generate(self, request: TextRequest) -> TextResponse:
        messages: List[Dict[str, Any]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})

        params: Dict[str, Any] = {
            "model": self._config.model,
            "messages": messages,
            "max_completion_tokens": (
                request.max_output_tokens or self._config.settings.max_output_tokens
            ),
        }
        if request.json_schema:
            params["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "storybook", "schema": request.json_schema},
            }

        start = time.perf_counter()
        try:
            response = await self._client.chat.completions.create(**params)
        except RateLimitError as err:
            raise ProviderRateLimitError(str(err)) from err
        except APIConnectionError as err:
            raise ProviderTransientError(f"OpenAI connection failed: {err}") from err
        except APIStatusError as err:
            if err.status_code >= 500:
                raise ProviderTransientError(str(err)) from err
            raise
        latency_ms = (time.perf_counter() - start) * 1000

        try:
            text = response.choices[0].message.content or ""
        except (IndexError, AttributeError) as err:
            raise ProviderResponseError("OpenAI response missing content") from err
        if not text:
            raise ProviderResponseError("OpenAI response missing content")

        usage = getattr(response, "usage", None)
        return TextResponse(
            text=text,
            raw=response,
            model=response.model,
            prompt_tokens=getattr(usage, "prompt_tokens", 0) if usage else 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) if usage else 0,
            latency_ms=latency_ms,
        )
