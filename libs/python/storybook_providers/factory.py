"""Factory utilities for instantiating generators."""

from __future__ import annotations

from typing import Dict, Type

from .anthropic import AnthropicTextGenerator
from .base import ImageGenerator, SpeechGenerator, TextGenerator
from .config import Capability, ProviderConfig, load_provider_config
from .exceptions import ProviderConfigError
from .gemini import GeminiImageGenerator, GeminiSpeechGenerator
from .mock import MockImageGenerator, MockSpeechGenerator, MockTextGenerator
from .openai import OpenAITextGenerator

TEXT_GENERATORS: Dict[str, Type[TextGenerator]] = {
    "anthropic": AnthropicTextGenerator,
    "openai": OpenAITextGenerator,
    "mock": MockTextGenerator,
}

IMAGE_GENERATORS: Dict[str, Type[ImageGenerator]] = {
    "gemini": GeminiImageGenerator,
    "mock": MockImageGenerator,
}

SPEECH_GENERATORS: Dict[str, Type[SpeechGenerator]] = {
    "gemini": GeminiSpeechGenerator,
    "mock": MockSpeechGenerator,
}


def _resolve(registry: Dict[str, type], config: ProviderConfig, capability: Capability) -> type:
    if config.capability != capability:
        raise ProviderConfigError(
            f"Config for {config.capability.value} cannot build a {capability.value} generator"
        )
    generator_cls = registry.get(config.name.lower())
    if generator_cls is None:
        raise ProviderConfigError(f"Unknown {capability.value} provider: {config.name}")
    return generator_cls


class GeneratorFactory:
    """Factory for creating generators based on configuration."""

    @staticmethod
    def create_text(config: ProviderConfig | None = None) -> TextGenerator:
        config = config or load_provider_config(Capability.TEXT)
        return _resolve(TEXT_GENERATORS, config, Capability.TEXT)(config)

    @staticmethod
    def create_image(config: ProviderConfig | None = None) -> ImageGenerator:
        config = config or load_provider_config(Capability.IMAGE)
        return _resolve(IMAGE_GENERATORS, config, Capability.IMAGE)(config)

    @staticmethod
    def create_speech(config: ProviderConfig | None = None) -> SpeechGenerator:
        config = config or load_provider_config(Capability.SPEECH)
        return _resolve(SPEECH_GENERATORS, config, Capability.SPEECH)(config)
