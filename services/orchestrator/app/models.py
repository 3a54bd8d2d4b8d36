"""Pydantic models for the orchestrator API."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from storybook_schemas import DEFAULT_VOICE, Book, BookGenerationRequest, Voice


class VoiceChoice(BaseModel):
    voice_name: Voice = DEFAULT_VOICE

    @field_validator("voice_name", mode="before")
    @classmethod
    def coerce_voice(cls, value: object) -> Voice:
        return Voice.coerce(value)  # type: ignore[arg-type]


class GenerateBookRequest(BookGenerationRequest, VoiceChoice):
    generate_audio: bool = True


class GenerateAudioRequest(VoiceChoice):
    force: bool = False


class RegenerateImagesRequest(BaseModel):
    pages: Optional[List[int]] = Field(
        None, description="Pages to re-illustrate; defaults to failed or missing pages"
    )


class BatchAudioRequest(VoiceChoice):
    book_ids: List[str] = Field(..., min_length=1)
    max_concurrency: int = Field(2, ge=1, le=10)


class BookListResponse(BaseModel):
    books: List[Book]
    next_cursor: Optional[str] = Field(
        None, description="Pass as start_after to fetch the next page"
    )


class DeleteBookResponse(BaseModel):
    success: bool
    book_id: str
