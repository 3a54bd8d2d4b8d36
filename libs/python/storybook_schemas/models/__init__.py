"""Pydantic models for books and batch progress."""

from .batch import BatchAudioResult, BatchConfig, BatchProgress, FailureRecord
from .book import (
    AudioMetadata,
    Book,
    BookGenerationRequest,
    GenerationResult,
    Page,
    tags_for,
    utcnow,
)

__all__ = [
    "AudioMetadata",
    "BatchAudioResult",
    "BatchConfig",
    "BatchProgress",
    "Book",
    "BookGenerationRequest",
    "FailureRecord",
    "GenerationResult",
    "Page",
    "tags_for",
    "utcnow",
]
