"""Errors raised inside the generation pipeline."""

from __future__ import annotations

from storybook_providers import ProviderResponseError


class PipelineError(RuntimeError):
    """Base class for orchestrator failures."""


class StoryValidationError(ProviderResponseError, PipelineError):
    """The text generator returned a story that cannot be used as-is."""


class RetriesExhaustedError(PipelineError):
    """Every attempt allowed by a :class:`~.retry.RetryPolicy` failed."""

    def __init__(self, label: str, *, attempts: int, last_error: BaseException | None) -> None:
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(f"{label} failed after {attempts} attempts{detail}")
        self.label = label
        self.attempts = attempts
        self.last_error = last_error


class BookNotFoundError(PipelineError):
    def __init__(self, book_id: str) -> None:
        super().__init__(f"Book not found: {book_id}")
        self.book_id = book_id


class ProgressStateError(PipelineError):
    """A stored batch progress record is missing or inconsistent."""
