"""Domain models describing storybooks, their pages and narration."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..enums import (
    AgeBand,
    AudioStatus,
    BookStatus,
    ReadingLevel,
    reading_level_for,
)
from ..utils.validators import count_words, ensure_contiguous_pages

DEFAULT_AUTHOR = "AI Storybook Creator"

_AGE_TAGS: dict[AgeBand, tuple[str, ...]] = {
    AgeBand.PRESCHOOL: ("preschool", "early-learning"),
    AgeBand.EARLY_READER: ("early-reader", "elementary"),
    AgeBand.MIDDLE_GRADE: ("middle-grade", "chapter-book"),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Page(BaseModel):
    """One illustrated page of a storybook."""

    page_number: int = Field(..., ge=1)
    text: str = Field(..., min_length=1)
    image_prompt: str = Field(..., min_length=1)
    image_url: str = ""
    image_storage_path: str = ""
    audio_url: Optional[str] = Field(
        None, description="Per-page narration; unused by whole-book narration"
    )

    @property
    def has_image(self) -> bool:
        return bool(self.image_url)


class AudioMetadata(BaseModel):
    """Narration state owned by a single book."""

    status: AudioStatus = AudioStatus.MISSING
    voice_provider: str = "gemini"
    voice_name: str = ""
    format: str = Field("wav", description="Actual container of the stored narration")
    duration_sec: Optional[int] = Field(None, ge=0, description="Estimated, not authoritative")
    storage_path: str = ""
    public_url: str = ""
    generated_at: Optional[datetime] = None
    hash: str = ""
    error_message: Optional[str] = None
    retry_count: Optional[int] = Field(None, ge=0)


class Book(BaseModel):
    """A generated storybook as persisted in the document store."""

    book_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    author: str = DEFAULT_AUTHOR
    cover_image_url: str = ""
    cover_image_storage_path: str = ""
    synopsis: str = ""
    age_band: AgeBand
    reading_level: Optional[ReadingLevel] = None
    tags: list[str] = Field(default_factory=list)
    theme: str = ""
    moral_lesson: str = ""
    pages: list[Page] = Field(default_factory=list)
    word_count: int = Field(0, ge=0)
    page_count: int = Field(0, ge=0)
    failed_pages: list[int] = Field(default_factory=list)
    audio: AudioMetadata = Field(default_factory=AudioMetadata)
    status: BookStatus = BookStatus.DRAFT
    version: int = Field(default=1, ge=1)
    text_hash: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("pages")
    @classmethod
    def validate_page_order(cls, pages: list[Page]) -> list[Page]:
        ensure_contiguous_pages(page.page_number for page in pages)
        return pages

    @model_validator(mode="after")
    def derive_counts(self) -> "Book":
        self.page_count = len(self.pages)
        if self.pages or not self.word_count:
            self.word_count = count_words(self.pages)
        if self.reading_level is None:
            self.reading_level = reading_level_for(self.age_band)
        return self

    @property
    def illustrated_pages(self) -> int:
        return sum(1 for page in self.pages if page.has_image)


class BookGenerationRequest(BaseModel):
    """Parameters for generating a brand new book."""

    age_band: AgeBand = AgeBand.EARLY_READER
    theme: Optional[str] = Field(None, max_length=120)
    character_name: Optional[str] = Field(None, max_length=120)
    setting: Optional[str] = Field(None, max_length=200)
    moral_lesson: Optional[str] = Field(None, max_length=300)


class GenerationResult(BaseModel):
    """Structured outcome returned by every pipeline entry point."""

    success: bool
    book_id: Optional[str] = None
    audio_generated: Optional[bool] = None
    audio_skipped: Optional[bool] = Field(
        None, description="Narration was already current and was not regenerated"
    )
    images_generated: Optional[int] = None
    failed_pages: list[int] = Field(default_factory=list)
    error: Optional[str] = None


def tags_for(theme: str, age_band: AgeBand) -> list[str]:
    tags = [theme, f"ages-{age_band.value}", "kids", "storybook", "illustrated", "audio"]
    tags.extend(_AGE_TAGS[age_band])
    return [tag for tag in tags if tag]
