"""Prefect flows for book generation, narration and batch runs."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from prefect import flow

from storybook_schemas import (
    DEFAULT_VOICE,
    BatchAudioResult,
    BatchConfig,
    BatchProgress,
    BookGenerationRequest,
    GenerationResult,
)

from .dependencies import Services, build_services

logger = logging.getLogger(__name__)


@contextmanager
def _services() -> Iterator[Services]:
    services = build_services()
    try:
        yield services
    finally:
        services.close()


@flow(name="storybook-generate-book", version="0.1.0")
async def generate_book_flow(
    request: BookGenerationRequest,
    generate_audio: bool = True,
    voice_name: str = DEFAULT_VOICE.value,
) -> GenerationResult:
    with _services() as services:
        return await services.orchestrator.generate_complete_book(
            request, generate_audio=generate_audio, voice=voice_name
        )


@flow(name="storybook-regenerate-audio", version="0.1.0")
async def regenerate_audio_flow(
    book_id: str, voice_name: str = DEFAULT_VOICE.value, force: bool = False
) -> GenerationResult:
    with _services() as services:
        return await services.orchestrator.regenerate_audio(book_id, voice_name, force=force)


@flow(name="storybook-regenerate-images", version="0.1.0")
async def regenerate_images_flow(
    book_id: str, pages: Optional[List[int]] = None
) -> GenerationResult:
    with _services() as services:
        return await services.orchestrator.regenerate_images(book_id, pages)


@flow(name="storybook-batch-audio", version="0.1.0")
async def batch_audio_flow(
    book_ids: List[str],
    voice_name: str = DEFAULT_VOICE.value,
    max_concurrency: int = 2,
    batch_id: Optional[str] = None,
    resume: bool = False,
    force: bool = False,
) -> BatchAudioResult:
    with _services() as services:
        return await services.batch_runner.run_audio_batch(
            book_ids,
            voice_name,
            max_concurrency,
            batch_id=batch_id,
            resume=resume,
            force=force,
        )


@flow(name="storybook-book-batch", version="0.1.0")
async def book_batch_flow(
    config: BatchConfig, batch_id: Optional[str] = None, resume: bool = False
) -> BatchProgress:
    with _services() as services:
        progress = await services.batch_runner.run_book_batch(
            config, batch_id=batch_id, resume=resume
        )
    logger.info(
        "Book batch flow finished",
        extra={"batch_id": progress.batch_id, "status": progress.status.value},
    )
    return progress


@flow(name="storybook-retry-failed", version="0.1.0")
async def retry_failed_flow(batch_id: Optional[str] = None) -> BatchProgress:
    with _services() as services:
        return await services.batch_runner.retry_failed(batch_id)
