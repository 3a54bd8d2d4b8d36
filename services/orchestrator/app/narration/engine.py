"""Whole-book narration, gated by the narration content fingerprint."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from storybook_observability import observe_generator_call
from storybook_providers import SpeechGenerator, SpeechRequest
from storybook_schemas import AudioMetadata, AudioStatus, Book, Voice, utcnow

from ..errors import RetriesExhaustedError
from ..hashing import NARRATION_FORMAT_VERSION, audio_fingerprint
from ..repository import BookRepository
from ..retry import RetryPolicy
from ..storage import ArtifactStore, narration_path
from .audio import build_narration_text, estimate_duration_seconds, pcm_to_wav

logger = logging.getLogger(__name__)

SERVICE_NAME = "orchestrator"
WAV_CONTENT_TYPE = "audio/wav"


@dataclass
class NarrationOutcome:
    success: bool
    skipped: bool
    audio: AudioMetadata
    error: Optional[str] = None


@dataclass(frozen=True)
class _StoredNarration:
    storage_path: str
    public_url: str
    duration_sec: int


class Narrator:
    def __init__(
        self,
        generator: SpeechGenerator,
        store: ArtifactStore,
        repository: BookRepository,
        retry: RetryPolicy,
        *,
        format_version: str = NARRATION_FORMAT_VERSION,
    ) -> None:
        self._generator = generator
        self._store = store
        self._repository = repository
        self._retry = retry
        self._format_version = format_version

    async def narrate(
        self, book: Book, voice: Voice | str, *, force: bool = False
    ) -> NarrationOutcome:
        """Produce narration for ``book`` unless a matching artifact already exists.

        The stored audio is reused when its status is ready and its hash equals the
        fingerprint of the current script, voice and format version. Exhausted retries
        are written to ``audio.status``/``error_message``/``retry_count`` and returned,
        not raised.
        """

        voice = Voice.coerce(voice)
        audio_hash = audio_fingerprint(book, voice, format_version=self._format_version)
        if not force and book.audio.status == AudioStatus.READY and book.audio.hash == audio_hash:
            logger.info("Narration up to date, skipping", extra={"voice": voice.value})
            return NarrationOutcome(success=True, skipped=True, audio=book.audio)

        await self._repository.update(
            book.book_id,
            {"audio.status": AudioStatus.GENERATING, "audio.voice_name": voice.value},
        )
        script = build_narration_text(book)
        logger.info(
            "Generating narration",
            extra={"voice": voice.value, "script_chars": len(script)},
        )

        async def attempt() -> _StoredNarration:
            response = await self._generator.generate(
                SpeechRequest(text=script, voice_name=voice.value)
            )
            observe_generator_call(
                capability="speech",
                generator=self._generator.name,
                service_name=SERVICE_NAME,
                latency_ms=response.latency_ms,
            )
            duration = estimate_duration_seconds(response.pcm, response.sample_rate)
            path = narration_path(book.book_id, audio_hash)
            url = await self._store.put(
                pcm_to_wav(response.pcm, response.sample_rate),
                path,
                content_type=WAV_CONTENT_TYPE,
                metadata={
                    "book_id": book.book_id,
                    "voice_name": voice.value,
                    "duration_sec": str(duration),
                    "hash": audio_hash,
                },
            )
            return _StoredNarration(storage_path=path, public_url=url, duration_sec=duration)

        try:
            stored = await self._retry.run(attempt, label="narration")
        except RetriesExhaustedError as exc:
            error = str(exc.last_error or exc)
            updated = await self._repository.update(
                book.book_id,
                {
                    "audio.status": AudioStatus.FAILED,
                    "audio.error_message": error,
                    "audio.retry_count": exc.attempts,
                },
            )
            logger.error("Narration failed", extra={"error": error, "attempts": exc.attempts})
            return NarrationOutcome(success=False, skipped=False, audio=updated.audio, error=error)

        audio = AudioMetadata(
            status=AudioStatus.READY,
            voice_name=voice.value,
            format="wav",
            duration_sec=stored.duration_sec,
            storage_path=stored.storage_path,
            public_url=stored.public_url,
            generated_at=utcnow(),
            hash=audio_hash,
        )
        updated = await self._repository.update(book.book_id, {"audio": audio})
        logger.info(
            "Narration stored",
            extra={"path": stored.storage_path, "duration_sec": stored.duration_sec},
        )
        return NarrationOutcome(success=True, skipped=False, audio=updated.audio)
