"""Blob storage for illustrations and narration files."""

from __future__ import annotations

import json
import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Mapping

from fastapi.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)

CACHE_CONTROL = "public, max-age=31536000"
SIDECAR_SUFFIX = ".meta.json"


def image_prefix(book_id: str) -> str:
    return f"images/books/{book_id}/"


def audio_prefix(book_id: str) -> str:
    return f"audio/books/{book_id}/"


def cover_image_path(book_id: str) -> str:
    return f"{image_prefix(book_id)}cover.png"


def page_image_path(book_id: str, page_number: int) -> str:
    return f"{image_prefix(book_id)}page_{page_number:02d}.png"


def narration_path(book_id: str, audio_hash: str) -> str:
    """Narration files are addressed by content hash, so new audio never overwrites old."""

    return f"{audio_prefix(book_id)}narration_{audio_hash[:12]}.wav"


class ArtifactStore(ABC):
    """Write-once public storage for generated binaries."""

    @abstractmethod
    async def put(
        self,
        data: bytes,
        path: str,
        *,
        content_type: str,
        metadata: Mapping[str, str] | None = None,
    ) -> str:
        """Store ``data`` at ``path`` with a long-lived cache header and return its public URL."""

    @abstractmethod
    async def exists(self, path: str) -> bool:
        ...

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Delete every artifact under ``prefix`` and return how many were removed."""

    @abstractmethod
    def public_url(self, path: str) -> str:
        ...


class LocalArtifactStore(ArtifactStore):
    """Stores artifacts under ``STORAGE_ROOT`` with a JSON sidecar per file.

    The sidecar keeps the content type, cache-control header and custom metadata
    that a cloud bucket would hold as object metadata.
    """

    def __init__(self, root: Path | str, public_base_url: str) -> None:
        self._root = Path(root).resolve()
        self._public_base_url = public_base_url.rstrip("/")

    @property
    def root(self) -> Path:
        return self._root

    def public_url(self, path: str) -> str:
        return f"{self._public_base_url}/{path.lstrip('/')}"

    async def put(
        self,
        data: bytes,
        path: str,
        *,
        content_type: str,
        metadata: Mapping[str, str] | None = None,
    ) -> str:
        await run_in_threadpool(self._write, data, path, content_type, dict(metadata or {}))
        logger.info("Stored artifact", extra={"path": path, "bytes": len(data)})
        return self.public_url(path)

    async def exists(self, path: str) -> bool:
        return await run_in_threadpool(self._resolve(path).is_file)

    async def delete_prefix(self, prefix: str) -> int:
        return await run_in_threadpool(self._delete_prefix, prefix)

    def read_metadata(self, path: str) -> dict[str, Any]:
        sidecar = self._sidecar(self._resolve(path))
        return json.loads(sidecar.read_text(encoding="utf-8"))

    def _resolve(self, path: str) -> Path:
        target = (self._root / path.lstrip("/")).resolve()
        if target != self._root and self._root not in target.parents:
            raise ValueError(f"Artifact path escapes storage root: {path}")
        return target

    @staticmethod
    def _sidecar(target: Path) -> Path:
        return target.with_name(target.name + SIDECAR_SUFFIX)

    def _write(self, data: bytes, path: str, content_type: str, metadata: dict[str, str]) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(target.name + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(target)
        self._sidecar(target).write_text(
            json.dumps(
                {"content_type": content_type, "cache_control": CACHE_CONTROL, "metadata": metadata},
                ensure_ascii=False,
            ),
            encoding="utf-8",
        )

    def _delete_prefix(self, prefix: str) -> int:
        base = self._resolve(prefix)
        if not base.exists():
            return 0
        if base.is_file():
            base.unlink()
            self._sidecar(base).unlink(missing_ok=True)
            return 1
        removed = sum(
            1 for item in base.rglob("*") if item.is_file() and not item.name.endswith(SIDECAR_SUFFIX)
        )
        shutil.rmtree(base)
        return removed
