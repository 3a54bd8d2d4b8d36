"""In-memory collaborators and scripted generators shared by the unit tests."""

from __future__ import annotations

import json
from typing import Any, Callable, Iterable, Mapping, Optional

from storybook_providers import (
    ImageGenerator,
    ImageRequest,
    ImageResponse,
    MockSpeechGenerator,
    ProviderTransientError,
    SpeechGenerator,
    SpeechRequest,
    SpeechResponse,
    TextGenerator,
    TextRequest,
    TextResponse,
)
from storybook_providers.mock import PLACEHOLDER_PNG
from storybook_schemas import AgeBand, BatchKind, BatchProgress, Book, BookStatus

from services.orchestrator.app.batch import ProgressStore
from services.orchestrator.app.errors import BookNotFoundError
from services.orchestrator.app.repository import BookRepository, apply_field_updates, clamp_limit
from services.orchestrator.app.storage import ArtifactStore


class RecordingSleep:
    """Stands in for ``asyncio.sleep`` and remembers every requested delay."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class InMemoryBookRepository(BookRepository):
    def __init__(self) -> None:
        self.documents: dict[str, dict[str, Any]] = {}
        self.progress: dict[str, BatchProgress] = {}
        self.updates: list[tuple[str, dict[str, Any]]] = []

    async def get(self, book_id: str) -> Optional[Book]:
        document = self.documents.get(book_id)
        return Book.model_validate(document) if document else None

    async def create(self, book: Book) -> None:
        self.documents[book.book_id] = book.model_dump(mode="json")

    async def update(self, book_id: str, fields: Mapping[str, Any]) -> Book:
        if book_id not in self.documents:
            raise BookNotFoundError(book_id)
        self.updates.append((book_id, dict(fields)))
        book = Book.model_validate(apply_field_updates(self.documents[book_id], fields))
        self.documents[book_id] = book.model_dump(mode="json")
        return book

    async def query(
        self,
        *,
        age_band: Optional[AgeBand] = None,
        status: Optional[BookStatus] = None,
        limit: Optional[int] = 20,
        start_after: Optional[str] = None,
    ) -> list[Book]:
        books = [Book.model_validate(document) for document in self.documents.values()]
        books.sort(key=lambda book: (book.created_at, book.book_id), reverse=True)
        if age_band is not None:
            books = [book for book in books if book.age_band == age_band]
        if status is not None:
            books = [book for book in books if book.status == status]
        if start_after:
            ids = [book.book_id for book in books]
            if start_after in ids:
                books = books[ids.index(start_after) + 1 :]
        return books[: clamp_limit(limit)]

    async def delete(self, book_id: str) -> bool:
        return self.documents.pop(book_id, None) is not None

    async def get_progress(
        self, batch_id: Optional[str] = None, *, kind: Optional[BatchKind] = None
    ) -> Optional[BatchProgress]:
        if batch_id:
            record = self.progress.get(batch_id)
            return record if record and (kind is None or record.config.kind == kind) else None
        records = [
            item for item in self.progress.values() if kind is None or item.config.kind == kind
        ]
        return max(records, key=lambda item: item.updated_at) if records else None

    async def save_progress(self, progress: BatchProgress) -> None:
        self.progress[progress.batch_id] = progress.model_copy(deep=True)

    async def delete_progress(self, batch_id: str) -> None:
        self.progress.pop(batch_id, None)

    def status_history(self, book_id: str) -> list[str]:
        return [
            fields["status"].value if hasattr(fields["status"], "value") else fields["status"]
            for target, fields in self.updates
            if target == book_id and "status" in fields
        ]


class InMemoryArtifactStore(ArtifactStore):
    def __init__(self) -> None:
        self.blobs: dict[str, tuple[bytes, str, dict[str, str]]] = {}

    def public_url(self, path: str) -> str:
        return f"memory://{path}"

    async def put(
        self,
        data: bytes,
        path: str,
        *,
        content_type: str,
        metadata: Mapping[str, str] | None = None,
    ) -> str:
        self.blobs[path] = (data, content_type, dict(metadata or {}))
        return self.public_url(path)

    async def exists(self, path: str) -> bool:
        return path in self.blobs

    async def delete_prefix(self, prefix: str) -> int:
        doomed = [path for path in self.blobs if path.startswith(prefix)]
        for path in doomed:
            del self.blobs[path]
        return len(doomed)


class InMemoryProgressStore(ProgressStore):
    def __init__(self) -> None:
        self.records: dict[str, BatchProgress] = {}
        self.saves: list[BatchProgress] = []
        self.cleared: list[str] = []

    async def load(
        self, batch_id: Optional[str] = None, *, kind: Optional[BatchKind] = None
    ) -> Optional[BatchProgress]:
        record = None
        if batch_id:
            record = self.records.get(batch_id)
        else:
            for saved in reversed(self.saves):
                if saved.batch_id in self.records and (kind is None or saved.config.kind == kind):
                    record = self.records[saved.batch_id]
                    break
        if record is None or (kind is not None and record.config.kind != kind):
            return None
        return record.model_copy(deep=True)

    async def save(self, progress: BatchProgress) -> None:
        snapshot = progress.model_copy(deep=True)
        self.records[progress.batch_id] = snapshot
        self.saves.append(snapshot)

    async def clear(self, batch_id: str) -> None:
        self.cleared.append(batch_id)
        self.records.pop(batch_id, None)


def story_payload(page_count: int, *, title: str = "Luna and the Lantern") -> str:
    return json.dumps(
        {
            "title": title,
            "synopsis": "Luna finds a lantern that only glows when she shares it.",
            "pages": [
                {
                    "pageNumber": number,
                    "text": f"Luna walks to place number {number}.",
                    "imagePrompt": f"Luna at place {number}",
                }
                for number in range(1, page_count + 1)
            ],
        }
    )


class ScriptedTextGenerator(TextGenerator):
    """Returns the queued payloads in order, repeating the last one."""

    name = "scripted"

    def __init__(self, payloads: Iterable[str]) -> None:
        self._payloads = list(payloads)
        self.requests: list[TextRequest] = []

    async def generate(self, request: TextRequest) -> TextResponse:
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self._payloads) - 1)
        return TextResponse(text=self._payloads[index], raw=None, model="scripted", latency_ms=1.0)


class FailingTextGenerator(TextGenerator):
    name = "failing"

    def __init__(self) -> None:
        self.calls = 0

    async def generate(self, request: TextRequest) -> TextResponse:
        self.calls += 1
        raise ProviderTransientError("text service unavailable")


class SelectiveImageGenerator(ImageGenerator):
    """Fails every request whose prompt matches ``should_fail``."""

    name = "selective"

    def __init__(self, should_fail: Callable[[ImageRequest], bool] = lambda request: False) -> None:
        self._should_fail = should_fail
        self.requests: list[ImageRequest] = []

    async def generate(self, request: ImageRequest) -> ImageResponse:
        self.requests.append(request)
        if self._should_fail(request):
            raise ProviderTransientError("image service unavailable")
        return ImageResponse(data=PLACEHOLDER_PNG, mime_type=request.mime_type, model="selective")


class CountingSpeechGenerator(SpeechGenerator):
    name = "counting"

    def __init__(self, *, fail: bool = False) -> None:
        self._delegate = MockSpeechGenerator()
        self._fail = fail
        self.requests: list[SpeechRequest] = []

    async def generate(self, request: SpeechRequest) -> SpeechResponse:
        self.requests.append(request)
        if self._fail:
            raise ProviderTransientError("speech service unavailable")
        return await self._delegate.generate(request)
