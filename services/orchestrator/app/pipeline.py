"""Sequencing of the text, image and audio stages for one book."""

from __future__ import annotations

import asyncio
import logging
import random
from contextlib import contextmanager
from time import perf_counter
from typing import Any, Awaitable, Callable, Iterator, Optional, Sequence

from storybook_observability import log_context, observe_stage_duration
from storybook_providers import ImageGenerator, SpeechGenerator, TextGenerator
from storybook_schemas import (
    DEFAULT_VOICE,
    Book,
    BookGenerationRequest,
    BookStatus,
    GenerationPhase,
    GenerationResult,
    Page,
    Voice,
    can_transition,
    compute_text_hash,
    generate_book_id,
    tags_for,
)

from .config import PipelineSettings
from .errors import PipelineError
from .illustration import IllustrationResult, Illustrator
from .narration.engine import NarrationOutcome, Narrator
from .repository import BookRepository
from .retry import RetryDefaults
from .storage import ArtifactStore, audio_prefix, image_prefix
from .story import generate_story_text

logger = logging.getLogger(__name__)

SERVICE_NAME = "orchestrator"


@contextmanager
def _stage_timer(stage: GenerationPhase) -> Iterator[None]:
    start = perf_counter()
    status = "success"
    try:
        yield
    except Exception:
        status = "failure"
        raise
    finally:
        observe_stage_duration(
            stage.value, perf_counter() - start, service_name=SERVICE_NAME, status=status
        )


class StageOrchestrator:
    """Runs the generation stages and keeps ``Book.status`` consistent on every exit path."""

    def __init__(
        self,
        *,
        text_generator: TextGenerator,
        image_generator: ImageGenerator,
        speech_generator: SpeechGenerator,
        repository: BookRepository,
        store: ArtifactStore,
        settings: Optional[PipelineSettings] = None,
        retries: Optional[RetryDefaults] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings or PipelineSettings()
        self.retries = retries or RetryDefaults.build(
            max_retries=self.settings.max_retries, sleep=sleep
        )
        self.repository = repository
        self.store = store
        self._text_generator = text_generator
        self._rng = rng or random.Random()
        self.illustrator = Illustrator(
            image_generator,
            store,
            self.retries.image,
            concurrency=self.settings.image_concurrency,
            chunk_delay=self.settings.image_chunk_delay_seconds,
            sleep=sleep,
        )
        self.narrator = Narrator(speech_generator, store, repository, self.retries.speech)

    async def run_text_stage(self, request: BookGenerationRequest) -> Book:
        """Generate, validate and persist the story as a ``draft`` book.

        Nothing is written when generation or validation fails.
        """

        with _stage_timer(GenerationPhase.TEXT):
            story = await generate_story_text(
                self._text_generator,
                request,
                self.retries.text,
                target_pages=self.settings.target_page_count,
                rng=self._rng,
            )
            pages = [
                Page(page_number=page.page_number, text=page.text, image_prompt=page.image_prompt)
                for page in story.draft.pages
            ]
            book = Book(
                book_id=generate_book_id(),
                title=story.draft.title,
                synopsis=story.draft.synopsis,
                age_band=request.age_band,
                tags=tags_for(story.theme, request.age_band),
                theme=story.theme,
                moral_lesson=story.moral_lesson,
                pages=pages,
                text_hash=compute_text_hash(pages),
                status=BookStatus.DRAFT,
            )
            await self.repository.create(book)
        logger.info("Book created", extra={"book_id": book.book_id, "title": book.title})
        return book

    async def run_image_stage(self, book: Book) -> tuple[Book, IllustrationResult]:
        book = await self._transition(book, BookStatus.GENERATING_IMAGES)
        with _stage_timer(GenerationPhase.IMAGES):
            result = await self.illustrator.illustrate_book(
                book_id=book.book_id,
                title=book.title,
                synopsis=book.synopsis,
                theme=book.theme,
                pages=book.pages,
            )
            fields: dict[str, Any] = {
                "pages": result.apply(book.pages),
                "failed_pages": sorted(result.failed_pages),
            }
            if result.cover is not None:
                fields["cover_image_url"] = result.cover.url
                fields["cover_image_storage_path"] = result.cover.storage_path
            book = await self.repository.update(book.book_id, fields)
        return book, result

    async def run_audio_stage(
        self, book: Book, voice: Voice | str = DEFAULT_VOICE, *, force: bool = False
    ) -> NarrationOutcome:
        with _stage_timer(GenerationPhase.AUDIO):
            return await self.narrator.narrate(book, voice, force=force)

    async def generate_complete_book(
        self,
        request: BookGenerationRequest,
        *,
        generate_audio: bool = True,
        voice: Voice | str = DEFAULT_VOICE,
    ) -> GenerationResult:
        """Run text, images and audio in order. Never raises.

        A failed narration leaves the book ``failed`` with its text and images intact;
        ``success`` stays true because the book can be completed by regenerating audio.
        """

        voice = Voice.coerce(voice)
        try:
            book = await self.run_text_stage(request)
        except Exception as exc:
            logger.error("Story generation failed", extra={"error": str(exc)})
            return GenerationResult(success=False, error=str(exc))

        with log_context(book_id=book.book_id):
            try:
                book, illustrations = await self.run_image_stage(book)
                outcome: Optional[NarrationOutcome] = None
                if generate_audio:
                    book = await self._transition(book, BookStatus.GENERATING_AUDIO)
                    outcome = await self.run_audio_stage(book, voice)
                    final = BookStatus.PUBLISHED if outcome.success else BookStatus.FAILED
                else:
                    final = BookStatus.PUBLISHED
                book = await self._transition(book, final)
            except Exception as exc:
                logger.exception("Book generation failed")
                await self._mark_failed(book.book_id)
                return GenerationResult(success=False, book_id=book.book_id, error=str(exc))

            logger.info(
                "Book generation complete",
                extra={"status": book.status.value, "images": illustrations.images_generated},
            )
            return GenerationResult(
                success=True,
                book_id=book.book_id,
                audio_generated=bool(outcome and outcome.success),
                audio_skipped=bool(outcome and outcome.skipped),
                images_generated=illustrations.images_generated,
                failed_pages=book.failed_pages,
                error=outcome.error if outcome else None,
            )

    async def regenerate_audio(
        self, book_id: str, voice: Voice | str = DEFAULT_VOICE, *, force: bool = False
    ) -> GenerationResult:
        """Run only the audio stage for an existing book. Never raises.

        A successful narration of a ``failed`` book publishes it.
        """

        with log_context(book_id=book_id):
            try:
                book = await self.repository.get(book_id)
                if book is None:
                    return GenerationResult(success=False, book_id=book_id, error="Book not found")
                outcome = await self.run_audio_stage(book, voice, force=force)
                if outcome.success and book.status in (
                    BookStatus.FAILED,
                    BookStatus.GENERATING_AUDIO,
                ):
                    await self._transition(book, BookStatus.PUBLISHED, force=True)
            except Exception as exc:
                logger.exception("Audio regeneration failed")
                return GenerationResult(success=False, book_id=book_id, error=str(exc))

        return GenerationResult(
            success=outcome.success,
            book_id=book_id,
            audio_generated=outcome.success,
            audio_skipped=outcome.skipped,
            error=outcome.error,
        )

    async def regenerate_images(
        self, book_id: str, pages: Optional[Sequence[int]] = None
    ) -> GenerationResult:
        """Re-illustrate missing artwork of an existing book in place. Never raises.

        Without ``pages`` the targets are the recorded ``failed_pages`` plus any page
        that has no image; the cover is re-rendered whenever it is missing. The book
        status is left as it is.
        """

        with log_context(book_id=book_id):
            try:
                book = await self.repository.get(book_id)
                if book is None:
                    return GenerationResult(success=False, book_id=book_id, error="Book not found")
                if pages is None:
                    targets = set(book.failed_pages)
                    targets.update(page.page_number for page in book.pages if not page.has_image)
                else:
                    targets = set(pages)
                unknown = targets - {page.page_number for page in book.pages}
                if unknown:
                    return GenerationResult(
                        success=False,
                        book_id=book_id,
                        error=f"Book has no pages {sorted(unknown)}",
                    )
                include_cover = not book.cover_image_url
                with _stage_timer(GenerationPhase.IMAGES):
                    result = await self.illustrator.illustrate_book(
                        book_id=book.book_id,
                        title=book.title,
                        synopsis=book.synopsis,
                        theme=book.theme,
                        pages=[page for page in book.pages if page.page_number in targets],
                        include_cover=include_cover,
                    )
                    failed = (set(book.failed_pages) - targets) | set(result.failed_pages)
                    fields: dict[str, Any] = {
                        "pages": result.apply(book.pages),
                        "failed_pages": sorted(failed),
                    }
                    if result.cover is not None:
                        fields["cover_image_url"] = result.cover.url
                        fields["cover_image_storage_path"] = result.cover.storage_path
                    book = await self.repository.update(book.book_id, fields)
            except Exception as exc:
                logger.exception("Image regeneration failed")
                return GenerationResult(success=False, book_id=book_id, error=str(exc))

        errors = []
        if result.failed_pages:
            errors.append(f"Pages still missing images: {sorted(result.failed_pages)}")
        if result.cover_error:
            errors.append(f"Cover failed: {result.cover_error}")
        logger.info(
            "Images regenerated",
            extra={
                "book_id": book_id,
                "images": result.images_generated,
                "failed": len(result.failed_pages),
                "cover": result.cover is not None,
            },
        )
        return GenerationResult(
            success=not errors,
            book_id=book_id,
            images_generated=result.images_generated,
            failed_pages=book.failed_pages,
            error="; ".join(errors) or None,
        )

    async def delete_book(self, book_id: str) -> bool:
        """Remove a book's images, narration and document. Returns False if it did not exist."""

        removed = 0
        for prefix in (image_prefix(book_id), audio_prefix(book_id)):
            removed += await self.store.delete_prefix(prefix)
        deleted = await self.repository.delete(book_id)
        logger.info(
            "Book deleted", extra={"book_id": book_id, "artifacts": removed, "found": deleted}
        )
        return deleted

    async def _transition(self, book: Book, target: BookStatus, *, force: bool = False) -> Book:
        if not can_transition(book.status, target, force=force):
            raise PipelineError(
                f"Illegal status transition {book.status.value} -> {target.value}"
            )
        return await self.repository.update(book.book_id, {"status": target})

    async def _mark_failed(self, book_id: str) -> None:
        try:
            await self.repository.update(book_id, {"status": BookStatus.FAILED})
        except Exception:
            logger.exception("Could not mark book as failed", extra={"book_id": book_id})
