"""Fingerprint-gated narration."""

from __future__ import annotations

import pytest

from storybook_schemas import AgeBand, AudioStatus, Book, Page, Voice

from services.orchestrator.app.hashing import audio_fingerprint
from services.orchestrator.app.narration.audio import WAV_HEADER_SIZE
from services.orchestrator.app.narration.engine import Narrator
from services.orchestrator.app.retry import RetryPolicy
from services.orchestrator.app.storage import narration_path
from tests.utils.fakes import (
    CountingSpeechGenerator,
    InMemoryArtifactStore,
    InMemoryBookRepository,
    RecordingSleep,
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


async def _stored_book(repository: InMemoryBookRepository) -> Book:
    book = Book(
        book_id="book_1",
        title="The Sleepy Owl",
        age_band=AgeBand.PRESCHOOL,
        pages=[
            Page(page_number=1, text="Owl yawns.", image_prompt="owl"),
            Page(page_number=2, text="Owl sleeps.", image_prompt="owl"),
        ],
    )
    await repository.create(book)
    return book


def _narrator(generator, store, repository, sleep=None) -> Narrator:
    return Narrator(
        generator, store, repository, RetryPolicy(max_retries=2, sleep=sleep or RecordingSleep())
    )


async def test_second_narration_with_same_inputs_is_skipped(repository, store):
    generator = CountingSpeechGenerator()
    narrator = _narrator(generator, store, repository)
    book = await _stored_book(repository)

    first = await narrator.narrate(book, Voice.KORE)
    second = await narrator.narrate(await repository.get("book_1"), Voice.KORE)

    assert first.success and not first.skipped
    assert second.success and second.skipped
    assert len(generator.requests) == 1
    assert generator.requests[0].voice_name == "Kore"
    assert generator.requests[0].text.endswith("The End.")


async def test_stored_narration_is_a_wav_file_addressed_by_hash(repository, store):
    narrator = _narrator(CountingSpeechGenerator(), store, repository)
    book = await _stored_book(repository)

    outcome = await narrator.narrate(book, "Kore")

    expected_hash = audio_fingerprint(book, Voice.KORE)
    path = narration_path("book_1", expected_hash)
    data, content_type, metadata = store.blobs[path]
    assert data[:4] == b"RIFF" and len(data) > WAV_HEADER_SIZE
    assert content_type == "audio/wav"
    assert metadata["hash"] == expected_hash
    stored = await repository.get("book_1")
    assert stored.audio.status == AudioStatus.READY
    assert stored.audio.hash == expected_hash
    assert stored.audio.format == "wav"
    assert stored.audio.storage_path == path
    assert stored.audio.public_url == f"memory://{path}"
    assert stored.audio.generated_at is not None
    assert outcome.audio.hash == expected_hash


async def test_voice_change_or_force_regenerates(repository, store):
    generator = CountingSpeechGenerator()
    narrator = _narrator(generator, store, repository)
    await narrator.narrate(await _stored_book(repository), Voice.KORE)

    changed = await narrator.narrate(await repository.get("book_1"), Voice.PUCK)
    forced = await narrator.narrate(await repository.get("book_1"), Voice.PUCK, force=True)

    assert not changed.skipped and not forced.skipped
    assert len(generator.requests) == 3
    audio_files = [path for path in store.blobs if path.startswith("audio/books/book_1/")]
    assert len(audio_files) == 2


async def test_exhausted_retries_are_written_to_the_book(repository, store):
    generator = CountingSpeechGenerator(fail=True)
    sleep = RecordingSleep()
    narrator = _narrator(generator, store, repository, sleep)

    outcome = await narrator.narrate(await _stored_book(repository), Voice.KORE)

    assert not outcome.success
    assert "speech service unavailable" in outcome.error
    assert len(generator.requests) == 3
    assert sleep.delays == [1.0, 2.0]
    stored = await repository.get("book_1")
    assert stored.audio.status == AudioStatus.FAILED
    assert stored.audio.retry_count == 3
    assert stored.audio.error_message == outcome.error
    assert not store.blobs
