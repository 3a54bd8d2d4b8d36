"""Enum definitions shared across the storybook pipeline."""

from __future__ import annotations

from enum import Enum


class AgeBand(str, Enum):
    PRESCHOOL = "3-5"
    EARLY_READER = "6-8"
    MIDDLE_GRADE = "9-12"


class ReadingLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class BookStatus(str, Enum):
    DRAFT = "draft"
    GENERATING_IMAGES = "generating_images"
    GENERATING_AUDIO = "generating_audio"
    PUBLISHED = "published"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BookStatus.PUBLISHED, BookStatus.FAILED)


class AudioStatus(str, Enum):
    MISSING = "missing"
    GENERATING = "generating"
    READY = "ready"
    FAILED = "failed"


class GenerationPhase(str, Enum):
    TEXT = "text"
    IMAGES = "images"
    AUDIO = "audio"


class BatchStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"


class BatchKind(str, Enum):
    BOOKS = "books"
    AUDIO = "audio"


class Voice(str, Enum):
    """Prebuilt narration voices offered by the speech provider."""

    AOEDE = "Aoede"
    CHARON = "Charon"
    FENRIR = "Fenrir"
    KORE = "Kore"
    PUCK = "Puck"
    ZEPHYR = "Zephyr"

    @classmethod
    def coerce(cls, value: str | "Voice" | None) -> "Voice":
        """Return the matching voice, falling back to :attr:`KORE` for unknown names."""

        if isinstance(value, Voice):
            return value
        for voice in cls:
            if voice.value == value:
                return voice
        return cls.KORE


DEFAULT_VOICE = Voice.KORE

_STATUS_ORDER: dict[BookStatus, int] = {
    BookStatus.DRAFT: 0,
    BookStatus.GENERATING_IMAGES: 1,
    BookStatus.GENERATING_AUDIO: 2,
    BookStatus.PUBLISHED: 3,
}


def can_transition(current: BookStatus, target: BookStatus, *, force: bool = False) -> bool:
    """Return whether a book may move from ``current`` to ``target``.

    Statuses only move forward along draft -> generating_images -> generating_audio ->
    published. ``failed`` is reachable from every non-terminal status. A forced
    regeneration may re-enter an earlier stage, including from ``failed`` or
    ``published``.
    """

    if current == target:
        return True
    if force:
        return True
    if target == BookStatus.FAILED:
        return not current.is_terminal
    if current == BookStatus.FAILED:
        return False
    return _STATUS_ORDER[target] > _STATUS_ORDER[current]


def reading_level_for(age_band: AgeBand) -> ReadingLevel:
    return {
        AgeBand.PRESCHOOL: ReadingLevel.BEGINNER,
        AgeBand.EARLY_READER: ReadingLevel.INTERMEDIATE,
        AgeBand.MIDDLE_GRADE: ReadingLevel.ADVANCED,
    }[age_band]
