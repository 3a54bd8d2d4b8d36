"""Batch progress bookkeeping models."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from ..enums import DEFAULT_VOICE, AgeBand, BatchKind, BatchStatus, GenerationPhase
from .book import utcnow


class FailureRecord(BaseModel):
    """A single unit of work that failed within a batch."""

    index: int = Field(..., ge=0)
    book_id: Optional[str] = None
    error: str
    phase: GenerationPhase = GenerationPhase.TEXT
    timestamp: datetime = Field(default_factory=utcnow)


class BatchConfig(BaseModel):
    """Settings a batch was started with; restored verbatim on resume."""

    kind: BatchKind = BatchKind.BOOKS
    count: int = Field(10, ge=0)
    start_index: int = Field(0, ge=0)
    age_band: AgeBand = AgeBand.EARLY_READER
    voice_name: str = DEFAULT_VOICE.value
    text_concurrency: int = Field(3, ge=1)
    image_concurrency: int = Field(2, ge=1)
    audio_concurrency: int = Field(2, ge=1)
    generate_audio: bool = True
    force_audio: bool = False
    book_ids: list[str] = Field(
        default_factory=list, description="Existing books targeted by an audio batch"
    )
    retry_of: Optional[str] = Field(None, description="Batch whose failures this batch replays")
    retry_units: list[FailureRecord] = Field(default_factory=list)

    @property
    def concurrency(self) -> int:
        if self.kind == BatchKind.AUDIO:
            return self.audio_concurrency
        return self.text_concurrency


class BatchProgress(BaseModel):
    """Resumable progress of a batch run.

    ``current_index`` is the resume cursor: every unit before it has been attempted
    and recorded. Units at or after it have not, except those listed in
    ``finished_ahead``, which completed while an earlier sibling was still running.
    """

    batch_id: str = Field(..., min_length=1)
    total_books: int = Field(..., ge=0)
    completed_books: int = Field(0, ge=0)
    failed_books: int = Field(0, ge=0)
    skipped_books: int = Field(0, ge=0)
    current_index: int = Field(0, ge=0)
    finished_ahead: list[int] = Field(default_factory=list)
    current_book_id: Optional[str] = None
    status: BatchStatus = BatchStatus.RUNNING
    started_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    config: BatchConfig = Field(default_factory=BatchConfig)
    failures: list[FailureRecord] = Field(default_factory=list)
    succeeded_ids: list[str] = Field(default_factory=list)
    skipped_ids: list[str] = Field(default_factory=list)
    failed_ids: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_counters(self) -> "BatchProgress":
        processed = self.completed_books + self.failed_books + self.skipped_books
        if processed > self.total_books:
            raise ValueError("Processed units cannot exceed total units")
        return self

    @property
    def remaining(self) -> int:
        return max(self.total_books - self.current_index - len(self.finished_ahead), 0)

    def advance_to(self, index: int) -> None:
        """Move the resume cursor forward; moving it backwards is a bug."""

        if index < self.current_index:
            raise ValueError(
                f"Resume cursor cannot move backwards ({self.current_index} -> {index})"
            )
        self.current_index = index
        self.updated_at = utcnow()

    def is_finished(self, position: int) -> bool:
        return position < self.current_index or position in self.finished_ahead

    def mark_finished(self, position: int) -> None:
        """Record ``position`` as done and move the cursor over the finished prefix."""

        if self.is_finished(position):
            raise ValueError(f"Unit {position} was already recorded")
        ahead = set(self.finished_ahead)
        ahead.add(position)
        index = self.current_index
        while index in ahead:
            ahead.discard(index)
            index += 1
        self.finished_ahead = sorted(ahead)
        self.advance_to(index)

    def record_success(self, book_id: str | None) -> None:
        self.completed_books += 1
        if book_id:
            self.succeeded_ids.append(book_id)
            self.current_book_id = book_id

    def record_skip(self, book_id: str) -> None:
        self.skipped_books += 1
        self.skipped_ids.append(book_id)
        self.current_book_id = book_id

    def record_failure(
        self,
        index: int,
        error: str,
        *,
        book_id: str | None = None,
        phase: GenerationPhase = GenerationPhase.TEXT,
    ) -> None:
        self.failed_books += 1
        if book_id:
            self.failed_ids.append(book_id)
            self.current_book_id = book_id
        self.failures.append(
            FailureRecord(index=index, book_id=book_id, error=error, phase=phase)
        )


class BatchAudioResult(BaseModel):
    """Outcome of an audio regeneration batch."""

    batch_id: Optional[str] = None
    succeeded: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
