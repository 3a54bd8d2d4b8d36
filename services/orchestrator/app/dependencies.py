"""Wiring of generators, storage and persistence, built once per process."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from storybook_providers import GeneratorFactory, ImageGenerator, SpeechGenerator, TextGenerator

from .batch import BatchRunner, LocalProgressStore, MirroredProgressStore, ProgressStore, RepositoryProgressStore
from .config import PipelineSettings
from .pipeline import StageOrchestrator
from .repository import BookRepository, PostgresBookRepository
from .storage import ArtifactStore, LocalArtifactStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: PipelineSettings
    repository: BookRepository
    store: ArtifactStore
    progress_store: ProgressStore
    orchestrator: StageOrchestrator
    batch_runner: BatchRunner

    def close(self) -> None:
        if isinstance(self.repository, PostgresBookRepository):
            self.repository.close()


def build_services(
    settings: Optional[PipelineSettings] = None,
    *,
    repository: Optional[BookRepository] = None,
    store: Optional[ArtifactStore] = None,
    progress_store: Optional[ProgressStore] = None,
    text_generator: Optional[TextGenerator] = None,
    image_generator: Optional[ImageGenerator] = None,
    speech_generator: Optional[SpeechGenerator] = None,
) -> Services:
    """Build every collaborator from the environment unless one is passed in."""

    settings = settings or PipelineSettings.from_env()
    if repository is None:
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL environment variable is required")
        postgres = PostgresBookRepository(settings.database_url)
        postgres.open()
        repository = postgres
    store = store or LocalArtifactStore(settings.storage_root, settings.public_base_url)
    if progress_store is None:
        progress_store = MirroredProgressStore(
            LocalProgressStore(settings.batch_progress_dir),
            RepositoryProgressStore(repository),
            remote_every=settings.progress_remote_every,
        )

    orchestrator = StageOrchestrator(
        text_generator=text_generator or GeneratorFactory.create_text(),
        image_generator=image_generator or GeneratorFactory.create_image(),
        speech_generator=speech_generator or GeneratorFactory.create_speech(),
        repository=repository,
        store=store,
        settings=settings,
    )
    logger.info(
        "Services ready",
        extra={"storage_root": str(settings.storage_root), "target_pages": settings.target_page_count},
    )
    return Services(
        settings=settings,
        repository=repository,
        store=store,
        progress_store=progress_store,
        orchestrator=orchestrator,
        batch_runner=BatchRunner(orchestrator, progress_store, settings=settings),
    )
