"""End-to-end stage sequencing against in-memory storage."""

from __future__ import annotations

import pytest

from storybook_providers import MockTextGenerator
from storybook_schemas import AgeBand, AudioStatus, BookGenerationRequest, BookStatus, Voice

from services.orchestrator.app.config import PipelineSettings
from services.orchestrator.app.errors import PipelineError
from services.orchestrator.app.hashing import audio_fingerprint
from services.orchestrator.app.pipeline import StageOrchestrator
from tests.utils.fakes import (
    CountingSpeechGenerator,
    FailingTextGenerator,
    InMemoryArtifactStore,
    InMemoryBookRepository,
    RecordingSleep,
    SelectiveImageGenerator,
)


pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def repository():
    return InMemoryBookRepository()


@pytest.fixture
def store():
    return InMemoryArtifactStore()


def _orchestrator(
    repository,
    store,
    *,
    text_generator=None,
    image_generator=None,
    speech_generator=None,
) -> StageOrchestrator:
    return StageOrchestrator(
        text_generator=text_generator or MockTextGenerator(),
        image_generator=image_generator or SelectiveImageGenerator(),
        speech_generator=speech_generator or CountingSpeechGenerator(),
        repository=repository,
        store=store,
        settings=PipelineSettings(target_page_count=4, image_chunk_delay_seconds=0, max_retries=2),
        sleep=RecordingSleep(),
    )


def _request() -> BookGenerationRequest:
    return BookGenerationRequest(age_band=AgeBand.EARLY_READER, theme="adventure")


async def test_complete_book_is_published_with_matching_audio_hash(repository, store):
    orchestrator = _orchestrator(repository, store)

    result = await orchestrator.generate_complete_book(_request(), voice="Kore")

    assert result.success
    assert result.audio_generated is True
    assert result.images_generated == 4
    assert result.failed_pages == []
    book = await repository.get(result.book_id)
    assert book.status == BookStatus.PUBLISHED
    assert book.page_count == 4
    assert book.illustrated_pages == 4
    assert book.cover_image_url.endswith("/cover.png")
    assert book.theme == "adventure"
    assert "adventure" in book.tags
    assert book.audio.status == AudioStatus.READY
    assert book.audio.voice_name == "Kore"
    assert book.audio.hash == audio_fingerprint(book, Voice.KORE)
    assert repository.status_history(book.book_id) == [
        "generating_images",
        "generating_audio",
        "published",
    ]


async def test_text_failure_persists_nothing(repository, store):
    text_generator = FailingTextGenerator()
    orchestrator = _orchestrator(repository, store, text_generator=text_generator)

    result = await orchestrator.generate_complete_book(_request())

    assert not result.success
    assert result.book_id is None
    assert "text service unavailable" in result.error
    assert text_generator.calls == 3
    assert repository.documents == {}
    assert store.blobs == {}


async def test_failed_pages_are_recorded_on_the_book(repository, store):
    images = SelectiveImageGenerator(lambda request: "scene 2" in request.prompt)
    orchestrator = _orchestrator(repository, store, image_generator=images)

    result = await orchestrator.generate_complete_book(_request(), generate_audio=False)

    assert result.success
    assert result.failed_pages == [2]
    assert result.images_generated == 3
    book = await repository.get(result.book_id)
    assert book.failed_pages == [2]
    assert book.pages[1].image_url == ""
    assert book.status == BookStatus.PUBLISHED
    assert book.audio.status == AudioStatus.MISSING


def _fails_on(*needles: str) -> SelectiveImageGenerator:
    return SelectiveImageGenerator(lambda request: any(needle in request.prompt for needle in needles))


async def test_regenerate_images_fills_failed_pages_and_missing_cover(repository, store):
    broken = _orchestrator(repository, store, image_generator=_fails_on("scene 2", "book cover"))
    first = await broken.generate_complete_book(_request(), generate_audio=False)
    book = await repository.get(first.book_id)
    assert book.failed_pages == [2]
    assert book.cover_image_url == ""

    images = SelectiveImageGenerator()
    result = await _orchestrator(repository, store, image_generator=images).regenerate_images(
        first.book_id
    )

    assert result.success
    assert result.images_generated == 1
    assert result.failed_pages == []
    assert len(images.requests) == 2
    book = await repository.get(first.book_id)
    assert book.failed_pages == []
    assert book.illustrated_pages == 4
    assert book.cover_image_url.endswith("/cover.png")
    assert book.status == BookStatus.PUBLISHED


async def test_regenerate_images_keeps_pages_that_fail_again(repository, store):
    first = await _orchestrator(
        repository, store, image_generator=_fails_on("scene 2")
    ).generate_complete_book(_request(), generate_audio=False)
    images = _fails_on("scene 2")

    result = await _orchestrator(repository, store, image_generator=images).regenerate_images(
        first.book_id, pages=[2, 3]
    )

    assert not result.success
    assert result.failed_pages == [2]
    assert result.images_generated == 1
    assert "Pages still missing images: [2]" in result.error
    assert not any("book cover" in request.prompt for request in images.requests)
    book = await repository.get(first.book_id)
    assert book.failed_pages == [2]
    assert book.illustrated_pages == 3


async def test_regenerate_images_rejects_unknown_pages_and_books(repository, store):
    orchestrator = _orchestrator(repository, store)
    first = await orchestrator.generate_complete_book(_request(), generate_audio=False)

    unknown_page = await orchestrator.regenerate_images(first.book_id, pages=[9])
    missing_book = await orchestrator.regenerate_images("book_missing")

    assert not unknown_page.success
    assert unknown_page.error == "Book has no pages [9]"
    assert not missing_book.success
    assert missing_book.error == "Book not found"


async def test_narration_failure_keeps_text_and_images_and_can_be_recovered(repository, store):
    failing = _orchestrator(repository, store, speech_generator=CountingSpeechGenerator(fail=True))

    result = await failing.generate_complete_book(_request())

    assert result.success
    assert result.audio_generated is False
    assert "speech service unavailable" in result.error
    book = await repository.get(result.book_id)
    assert book.status == BookStatus.FAILED
    assert book.audio.status == AudioStatus.FAILED
    assert book.audio.retry_count == 3
    assert book.illustrated_pages == 4

    recovered = await _orchestrator(repository, store).regenerate_audio(result.book_id, "Kore")

    assert recovered.success and recovered.audio_generated
    book = await repository.get(result.book_id)
    assert book.status == BookStatus.PUBLISHED
    assert book.audio.status == AudioStatus.READY


async def test_regenerate_audio_skips_current_narration(repository, store):
    speech = CountingSpeechGenerator()
    orchestrator = _orchestrator(repository, store, speech_generator=speech)
    result = await orchestrator.generate_complete_book(_request(), voice=Voice.KORE)

    again = await orchestrator.regenerate_audio(result.book_id, Voice.KORE)

    assert again.success and again.audio_skipped
    assert len(speech.requests) == 1


async def test_regenerate_audio_for_unknown_book():
    orchestrator = _orchestrator(InMemoryBookRepository(), InMemoryArtifactStore())

    result = await orchestrator.regenerate_audio("book_missing")

    assert not result.success
    assert result.error == "Book not found"


async def test_delete_book_removes_artifacts_and_document(repository, store):
    orchestrator = _orchestrator(repository, store)
    result = await orchestrator.generate_complete_book(_request())
    assert store.blobs

    assert await orchestrator.delete_book(result.book_id) is True
    assert store.blobs == {}
    assert await repository.get(result.book_id) is None
    assert await orchestrator.delete_book(result.book_id) is False


async def test_published_book_cannot_reenter_image_stage(repository, store):
    orchestrator = _orchestrator(repository, store)
    result = await orchestrator.generate_complete_book(_request(), generate_audio=False)
    book = await repository.get(result.book_id)

    with pytest.raises(PipelineError):
        await orchestrator.run_image_stage(book)
