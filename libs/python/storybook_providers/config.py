"""Configuration models and helpers for generator selection."""

from __future__ import annotations

import os
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import ProviderConfigError


class Capability(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    SPEECH = "speech"


PROVIDER_ENV_VARS: dict[Capability, str] = {
    Capability.TEXT: "TEXT_PROVIDER",
    Capability.IMAGE: "IMAGE_PROVIDER",
    Capability.SPEECH: "SPEECH_PROVIDER",
}

DEFAULT_PROVIDERS: dict[Capability, str] = {
    Capability.TEXT: "anthropic",
    Capability.IMAGE: "gemini",
    Capability.SPEECH: "gemini",
}

DEFAULT_MODELS: dict[tuple[str, Capability], str] = {
    ("anthropic", Capability.TEXT): "claude-sonnet-4-20250514",
    ("openai", Capability.TEXT): "gpt-5-mini",
    ("gemini", Capability.IMAGE): "imagen-3.0-generate-002",
    ("gemini", Capability.SPEECH): "gemini-2.5-flash-preview-tts",
}


class ProviderSettings(BaseModel):
    """Per-call default parameters."""

    temperature: float = Field(0.8, ge=0, le=2)
    max_output_tokens: int = Field(8000, ge=16)
    sample_rate: int = Field(24000, ge=8000, description="PCM sample rate of speech output")
    timeout_seconds: float | None = Field(
        None, gt=0, description="Per-request timeout forwarded to the vendor SDK"
    )


class ProviderConfig(BaseModel):
    """Configuration for a single generator instance."""

    model_config = ConfigDict(frozen=True)

    name: str
    capability: Capability
    api_key: str
    model: str
    settings: ProviderSettings = Field(default_factory=ProviderSettings)


def mock_config(capability: Capability) -> ProviderConfig:
    return ProviderConfig(name="mock", capability=capability, api_key="mock", model="mock")


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def load_provider_config(capability: Capability, prefix: str | None = None) -> ProviderConfig:
    """Load configuration for one capability from environment variables.

    Args:
        capability: Which generator the configuration is for.
        prefix: Optional provider name; defaults to ``TEXT_PROVIDER`` /
            ``IMAGE_PROVIDER`` / ``SPEECH_PROVIDER``.

    Environment variables used (assuming prefix "GEMINI" and the speech capability):
        GEMINI_API_KEY
        GEMINI_SPEECH_MODEL or GEMINI_MODEL (optional, has a per-vendor default)
        GEMINI_TEMPERATURE (optional)
        GEMINI_MAX_OUTPUT_TOKENS (optional)
        GEMINI_SAMPLE_RATE (optional)
        GEMINI_TIMEOUT_SECONDS (optional)

    Raises:
        ProviderConfigError: If the API key or model cannot be resolved or a numeric
            setting is malformed.
    """

    provider_name = (
        prefix or os.getenv(PROVIDER_ENV_VARS[capability], DEFAULT_PROVIDERS[capability])
    ).strip()
    if provider_name.lower() == "mock":
        return mock_config(capability)

    env_prefix = provider_name.upper()

    def read_env(key: str, default: Any | None = None) -> Any:
        return os.getenv(f"{env_prefix}_{key}", default)

    def read_number(key: str, cast, default):
        raw = read_env(key)
        if raw in (None, ""):
            return default
        try:
            return cast(str(raw).strip())
        except (TypeError, ValueError) as exc:
            raise ProviderConfigError(f"{env_prefix}_{key} must be numeric, got {raw!r}") from exc

    api_key = read_env("API_KEY")
    model = (
        read_env(f"{capability.value.upper()}_MODEL")
        or read_env("MODEL")
        or DEFAULT_MODELS.get((provider_name.lower(), capability))
    )
    if not api_key or not model:
        raise ProviderConfigError(
            f"{env_prefix}_API_KEY or model not configured for {capability.value} generation"
        )

    defaults = ProviderSettings()
    settings = ProviderSettings(
        temperature=read_number("TEMPERATURE", float, defaults.temperature),
        max_output_tokens=read_number("MAX_OUTPUT_TOKENS", int, defaults.max_output_tokens),
        sample_rate=read_number("SAMPLE_RATE", int, defaults.sample_rate),
        timeout_seconds=read_number("TIMEOUT_SECONDS", float, None),
    )
    return ProviderConfig(
        name=provider_name.lower(),
        capability=capability,
        api_key=api_key,
        model=model,
        settings=settings,
    )
