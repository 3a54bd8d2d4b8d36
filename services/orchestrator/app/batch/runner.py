"""Chunked, resumable batch processing over books."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional

from storybook_observability import log_context, record_batch_progress
from storybook_schemas import (
    DEFAULT_VOICE,
    BatchAudioResult,
    BatchConfig,
    BatchKind,
    BatchProgress,
    BatchStatus,
    BookGenerationRequest,
    FailureRecord,
    GenerationPhase,
    Voice,
)

from ..config import PipelineSettings
from ..errors import ProgressStateError
from ..pipeline import StageOrchestrator
from ..story import themes_for
from .progress import ProgressStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnitOutcome:
    status: str
    book_id: Optional[str] = None
    error: Optional[str] = None
    phase: GenerationPhase = GenerationPhase.TEXT


def new_batch_id() -> str:
    return f"batch_{int(time.time() * 1000)}"


def _unit_index(config: BatchConfig, position: int) -> int:
    """Index recorded for a unit; retried units keep their original index."""

    if config.retry_units:
        return config.retry_units[position].index
    return position


def _target_book_id(config: BatchConfig, position: int) -> Optional[str]:
    """Existing book a unit works on, if any."""

    if config.kind == BatchKind.AUDIO:
        return config.book_ids[position]
    if config.retry_units:
        return config.retry_units[position].book_id
    return None


class BatchRunner:
    """Processes units in fixed chunks and checkpoints after every unit.

    ``BatchProgress.current_index`` only moves forward, so a resumed batch never
    repeats a unit that was already recorded.
    """

    def __init__(
        self,
        orchestrator: StageOrchestrator,
        progress_store: ProgressStore,
        *,
        settings: Optional[PipelineSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._orchestrator = orchestrator
        self._progress = progress_store
        self._settings = settings or orchestrator.settings
        self._sleep = sleep

    async def run_audio_batch(
        self,
        book_ids: Iterable[str],
        voice: Voice | str = DEFAULT_VOICE,
        max_concurrency: int = 2,
        *,
        batch_id: Optional[str] = None,
        resume: bool = False,
        force: bool = False,
    ) -> BatchAudioResult:
        progress = await self._resume(batch_id, BatchKind.AUDIO) if resume else None
        if progress is None:
            ids = list(book_ids)
            config = BatchConfig(
                kind=BatchKind.AUDIO,
                count=len(ids),
                voice_name=Voice.coerce(voice).value,
                audio_concurrency=max(max_concurrency, 1),
                force_audio=force,
                book_ids=ids,
            )
            progress = BatchProgress(
                batch_id=batch_id or new_batch_id(), total_books=len(ids), config=config
            )
        progress = await self._process(progress)
        return BatchAudioResult(
            batch_id=progress.batch_id,
            succeeded=list(progress.succeeded_ids),
            failed=list(progress.failed_ids),
            skipped=list(progress.skipped_ids),
        )

    async def run_book_batch(
        self,
        config: BatchConfig,
        *,
        batch_id: Optional[str] = None,
        resume: bool = False,
    ) -> BatchProgress:
        """Generate books ``config.start_index`` to ``config.count - 1``.

        On resume the stored config (count, age band, voice, concurrency) replaces
        ``config`` and work continues from the stored cursor.
        """

        progress = await self._resume(batch_id, BatchKind.BOOKS) if resume else None
        if progress is None:
            if config.start_index > config.count:
                raise ProgressStateError(
                    f"start_index {config.start_index} is beyond count {config.count}"
                )
            progress = BatchProgress(
                batch_id=batch_id or new_batch_id(),
                total_books=config.count,
                current_index=config.start_index,
                config=config.model_copy(update={"kind": BatchKind.BOOKS}),
            )
        return await self._process(progress)

    async def retry_failed(self, batch_id: Optional[str] = None) -> BatchProgress:
        """Start a new batch that replays only the failures of a retained batch."""

        previous = await self._progress.load(batch_id)
        if previous is None:
            raise ProgressStateError(f"No batch progress found for {batch_id or 'latest batch'}")
        if not previous.failures:
            logger.info("Nothing to retry", extra={"batch_id": previous.batch_id})
            return previous

        source = previous.config
        if source.kind == BatchKind.AUDIO:
            ids = [failure.book_id for failure in previous.failures if failure.book_id]
            config = source.model_copy(
                update={"count": len(ids), "start_index": 0, "book_ids": ids, "retry_of": previous.batch_id}
            )
        else:
            config = source.model_copy(
                update={
                    "count": len(previous.failures),
                    "start_index": 0,
                    "retry_of": previous.batch_id,
                    "retry_units": list(previous.failures),
                }
            )
        progress = BatchProgress(
            batch_id=new_batch_id(), total_books=config.count, config=config
        )
        logger.info(
            "Retrying failed units",
            extra={"batch_id": progress.batch_id, "retry_of": previous.batch_id, "units": config.count},
        )
        return await self._process(progress)

    async def _resume(self, batch_id: Optional[str], kind: BatchKind) -> Optional[BatchProgress]:
        """Stored progress to continue: ``batch_id`` itself, or the latest ``kind`` batch if it has units left."""

        progress = await self._progress.load(batch_id, kind=None if batch_id else kind)
        if progress is not None and progress.config.kind != kind:
            raise ProgressStateError(
                f"Batch {progress.batch_id} has kind {progress.config.kind.value}, expected {kind.value}"
            )
        if progress is None or (batch_id is None and progress.remaining == 0):
            logger.info("No previous progress found, starting fresh")
            return None
        logger.info(
            "Resuming batch",
            extra={"batch_id": progress.batch_id, "index": progress.current_index},
        )
        return progress.model_copy(update={"status": BatchStatus.RUNNING})

    async def _process(self, progress: BatchProgress) -> BatchProgress:
        config = progress.config
        concurrency = max(config.concurrency, 1)
        delay = self._settings.batch_chunk_delay_seconds

        with log_context(batch_id=progress.batch_id):
            await self._progress.save(progress)
            logger.info(
                "Batch started",
                extra={
                    "kind": config.kind.value,
                    "total": progress.total_books,
                    "index": progress.current_index,
                },
            )
            index = progress.current_index
            while index < progress.total_books:
                stop = min(index + concurrency, progress.total_books)
                pending = [
                    position for position in range(index, stop) if not progress.is_finished(position)
                ]
                for finished in asyncio.as_completed(
                    [self._attempt(config, position) for position in pending]
                ):
                    position, outcome = await finished
                    self._record(
                        progress,
                        _unit_index(config, position),
                        outcome,
                        _target_book_id(config, position),
                    )
                    progress.mark_finished(position)
                    await self._progress.save(progress)
                record_batch_progress(
                    progress.batch_id,
                    completed=progress.completed_books,
                    failed=progress.failed_books,
                    skipped=progress.skipped_books,
                )
                logger.info(
                    "Batch progress",
                    extra={
                        "index": progress.current_index,
                        "completed": progress.completed_books,
                        "skipped": progress.skipped_books,
                        "failed": progress.failed_books,
                    },
                )
                index = stop
                if index < progress.total_books and delay:
                    await self._sleep(delay)

            all_failed = progress.failed_books > 0 and not (
                progress.completed_books or progress.skipped_books
            )
            progress.status = BatchStatus.FAILED if all_failed else BatchStatus.COMPLETED
            await self._progress.save(progress)
            if progress.failed_books == 0:
                await self._progress.clear(progress.batch_id)
            logger.info(
                "Batch finished",
                extra={
                    "status": progress.status.value,
                    "completed": progress.completed_books,
                    "skipped": progress.skipped_books,
                    "failed": progress.failed_books,
                },
            )
        return progress

    @staticmethod
    def _record(
        progress: BatchProgress,
        position: int,
        outcome: UnitOutcome | Exception,
        target: Optional[str],
    ) -> None:
        if isinstance(outcome, Exception):
            progress.record_failure(
                position,
                str(outcome) or type(outcome).__name__,
                book_id=target,
                phase=(
                    GenerationPhase.AUDIO
                    if progress.config.kind == BatchKind.AUDIO
                    else GenerationPhase.TEXT
                ),
            )
        elif outcome.status == "succeeded":
            progress.record_success(outcome.book_id)
        elif outcome.status == "skipped" and outcome.book_id:
            progress.record_skip(outcome.book_id)
        else:
            progress.record_failure(
                position,
                outcome.error or "Unknown error",
                book_id=outcome.book_id,
                phase=outcome.phase,
            )

    async def _attempt(
        self, config: BatchConfig, position: int
    ) -> tuple[int, UnitOutcome | Exception]:
        try:
            return position, await self._run_unit(config, position)
        except Exception as exc:
            return position, exc

    async def _run_unit(self, config: BatchConfig, position: int) -> UnitOutcome:
        if config.kind == BatchKind.AUDIO:
            return await self._narrate(config.book_ids[position], config)
        if config.retry_units:
            unit: FailureRecord = config.retry_units[position]
            if unit.phase == GenerationPhase.AUDIO and unit.book_id:
                return await self._narrate(unit.book_id, config)
            return await self._generate(unit.index, config)
        return await self._generate(position, config)

    async def _narrate(self, book_id: str, config: BatchConfig) -> UnitOutcome:
        result = await self._orchestrator.regenerate_audio(
            book_id, config.voice_name, force=config.force_audio
        )
        if not result.success:
            return UnitOutcome(
                "failed", book_id=book_id, error=result.error, phase=GenerationPhase.AUDIO
            )
        return UnitOutcome("skipped" if result.audio_skipped else "succeeded", book_id=book_id)

    async def _generate(self, index: int, config: BatchConfig) -> UnitOutcome:
        themes = themes_for(config.age_band)
        request = BookGenerationRequest(age_band=config.age_band, theme=themes[index % len(themes)])
        result = await self._orchestrator.generate_complete_book(
            request, generate_audio=config.generate_audio, voice=config.voice_name
        )
        if not result.success:
            phase = GenerationPhase.IMAGES if result.book_id else GenerationPhase.TEXT
            return UnitOutcome("failed", book_id=result.book_id, error=result.error, phase=phase)
        if config.generate_audio and not result.audio_generated:
            return UnitOutcome(
                "failed", book_id=result.book_id, error=result.error, phase=GenerationPhase.AUDIO
            )
        return UnitOutcome("succeeded", book_id=result.book_id)
