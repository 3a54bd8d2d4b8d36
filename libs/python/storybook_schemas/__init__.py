"""Shared domain schemas for the storybook pipeline."""

from .enums import (
    DEFAULT_VOICE,
    AgeBand,
    AudioStatus,
    BatchKind,
    BatchStatus,
    BookStatus,
    GenerationPhase,
    ReadingLevel,
    Voice,
    can_transition,
    reading_level_for,
)
from .models import (
    AudioMetadata,
    BatchAudioResult,
    BatchConfig,
    BatchProgress,
    Book,
    BookGenerationRequest,
    FailureRecord,
    GenerationResult,
    Page,
    tags_for,
    utcnow,
)
from .utils import compute_text_hash, count_words, generate_book_id

__all__ = [
    "DEFAULT_VOICE",
    "AgeBand",
    "AudioMetadata",
    "AudioStatus",
    "BatchAudioResult",
    "BatchConfig",
    "BatchKind",
    "BatchProgress",
    "BatchStatus",
    "Book",
    "BookGenerationRequest",
    "BookStatus",
    "FailureRecord",
    "GenerationPhase",
    "GenerationResult",
    "Page",
    "ReadingLevel",
    "Voice",
    "can_transition",
    "compute_text_hash",
    "count_words",
    "generate_book_id",
    "reading_level_for",
    "tags_for",
    "utcnow",
]
