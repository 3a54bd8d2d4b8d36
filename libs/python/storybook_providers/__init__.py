"""Generator abstractions for story text, illustrations and narration."""

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
from .config import Capability, ProviderConfig, ProviderSettings, load_provider_config, parse_bool
from .exceptions import (
    ProviderConfigError,
    ProviderError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderTransientError,
    is_rate_limited,
)
from .factory import GeneratorFactory
from .mock import MockImageGenerator, MockSpeechGenerator, MockTextGenerator

__all__ = [
    "Capability",
    "GeneratorFactory",
    "ImageGenerator",
    "ImageRequest",
    "ImageResponse",
    "MockImageGenerator",
    "MockSpeechGenerator",
    "MockTextGenerator",
    "ProviderConfig",
    "ProviderConfigError",
    "ProviderError",
    "ProviderRateLimitError",
    "ProviderResponseError",
    "ProviderSettings",
    "ProviderTransientError",
    "SpeechGenerator",
    "SpeechRequest",
    "SpeechResponse",
    "TextGenerator",
    "TextRequest",
    "TextResponse",
    "is_rate_limited",
    "load_provider_config",
    "parse_bool",
]
