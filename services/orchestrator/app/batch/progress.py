"""Durable checkpoints for resumable batches."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from storybook_schemas import BatchKind, BatchProgress, BatchStatus

from ..errors import ProgressStateError
from ..repository import BookRepository

logger = logging.getLogger(__name__)


class ProgressStore(ABC):
    """Where a batch records its resume cursor and counters."""

    @abstractmethod
    async def load(
        self, batch_id: Optional[str] = None, *, kind: Optional[BatchKind] = None
    ) -> Optional[BatchProgress]:
        """Return the record for ``batch_id``, or the latest one (of ``kind``) when no id is given."""

    @abstractmethod
    async def save(self, progress: BatchProgress) -> None:
        ...

    @abstractmethod
    async def clear(self, batch_id: str) -> None:
        ...


class LocalProgressStore(ProgressStore):
    """One JSON checkpoint per batch under ``directory``, replaced atomically on every save."""

    suffix = ".json"

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def path_for(self, batch_id: str) -> Path:
        if not batch_id or "/" in batch_id or "\\" in batch_id or batch_id.startswith("."):
            raise ProgressStateError(f"Invalid batch id for a checkpoint file: {batch_id!r}")
        return self.directory / f"{batch_id}{self.suffix}"

    async def load(
        self, batch_id: Optional[str] = None, *, kind: Optional[BatchKind] = None
    ) -> Optional[BatchProgress]:
        if batch_id:
            progress = await run_in_threadpool(self._read, self.path_for(batch_id))
        else:
            progress = await run_in_threadpool(self._latest, kind)
        if progress is None or (kind is not None and progress.config.kind != kind):
            return None
        return progress

    async def save(self, progress: BatchProgress) -> None:
        await run_in_threadpool(self._write, progress)

    async def clear(self, batch_id: str) -> None:
        path = self.path_for(batch_id)
        if path.exists():
            await run_in_threadpool(path.unlink, missing_ok=True)
            logger.info("Cleared local batch progress", extra={"batch_id": batch_id})

    def _read(self, path: Path) -> Optional[BatchProgress]:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return BatchProgress.model_validate_json(raw)
        except (ValidationError, ValueError) as exc:
            raise ProgressStateError(f"Corrupt batch progress file {path}: {exc}") from exc

    def _latest(self, kind: Optional[BatchKind]) -> Optional[BatchProgress]:
        if not self.directory.is_dir():
            return None
        candidates = []
        for path in self.directory.glob(f"*{self.suffix}"):
            progress = self._read(path)
            if progress is not None and (kind is None or progress.config.kind == kind):
                candidates.append(progress)
        if not candidates:
            return None
        return max(candidates, key=lambda item: item.updated_at)

    def _write(self, progress: BatchProgress) -> None:
        path = self.path_for(progress.batch_id)
        self.directory.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self.directory,
            prefix=f".{progress.batch_id}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            json.dump(progress.model_dump(mode="json"), handle, indent=2, ensure_ascii=False)
            tmp = Path(handle.name)
        try:
            os.replace(tmp, path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise


class RepositoryProgressStore(ProgressStore):
    """Keeps progress beside the books, in the ``batch_progress`` collection."""

    def __init__(self, repository: BookRepository) -> None:
        self._repository = repository

    async def load(
        self, batch_id: Optional[str] = None, *, kind: Optional[BatchKind] = None
    ) -> Optional[BatchProgress]:
        return await self._repository.get_progress(batch_id, kind=kind)

    async def save(self, progress: BatchProgress) -> None:
        await self._repository.save_progress(progress)

    async def clear(self, batch_id: str) -> None:
        await self._repository.delete_progress(batch_id)


class MirroredProgressStore(ProgressStore):
    """Local checkpoint on every save, remote copy at least every ``remote_every`` units.

    The remote copy is also written on the first save of a run and whenever the batch
    leaves ``running``. :meth:`clear` only drops the local checkpoint; the remote
    record stays as history.
    """

    def __init__(self, local: ProgressStore, remote: ProgressStore, *, remote_every: int = 10) -> None:
        self.local = local
        self.remote = remote
        self._remote_every = max(remote_every, 1)
        self._mirrored: dict[str, int] = {}

    async def load(
        self, batch_id: Optional[str] = None, *, kind: Optional[BatchKind] = None
    ) -> Optional[BatchProgress]:
        progress = await self.local.load(batch_id, kind=kind)
        if progress is None:
            progress = await self.remote.load(batch_id, kind=kind)
        return progress

    async def save(self, progress: BatchProgress) -> None:
        await self.local.save(progress)
        processed = progress.completed_books + progress.failed_books + progress.skipped_books
        last = self._mirrored.get(progress.batch_id)
        if (
            last is None
            or progress.status != BatchStatus.RUNNING
            or processed - last >= self._remote_every
        ):
            await self.remote.save(progress)
            self._mirrored[progress.batch_id] = processed

    async def clear(self, batch_id: str) -> None:
        await self.local.clear(batch_id)
        self._mirrored.pop(batch_id, None)
