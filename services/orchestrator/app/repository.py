"""Document persistence for books and batch progress."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from fastapi.concurrency import run_in_threadpool
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool
from pydantic import BaseModel

from storybook_schemas import AgeBand, BatchKind, BatchProgress, Book, BookStatus, utcnow

from .errors import BookNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def clamp_limit(limit: Optional[int]) -> int:
    if not limit or limit < 1:
        return DEFAULT_PAGE_SIZE
    return min(limit, MAX_PAGE_SIZE)


def to_document_value(value: Any) -> Any:
    """Convert models, enums and datetimes into plain JSON values."""

    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: to_document_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_document_value(item) for item in value]
    return value


def apply_field_updates(document: dict[str, Any], fields: Mapping[str, Any]) -> dict[str, Any]:
    """Apply ``fields`` to a book document; keys may be dotted (``audio.status``).

    ``updated_at`` is always refreshed.
    """

    updated = json.loads(json.dumps(document))
    for key, value in fields.items():
        *parents, leaf = key.split(".")
        target = updated
        for part in parents:
            target = target.setdefault(part, {})
        target[leaf] = to_document_value(value)
    updated["updated_at"] = utcnow().isoformat()
    return updated


class BookRepository(ABC):
    """Document store holding books and batch progress records."""

    @abstractmethod
    async def get(self, book_id: str) -> Optional[Book]:
        ...

    @abstractmethod
    async def create(self, book: Book) -> None:
        ...

    @abstractmethod
    async def update(self, book_id: str, fields: Mapping[str, Any]) -> Book:
        """Apply a partial update and return the stored book.

        Raises:
            BookNotFoundError: If no book with ``book_id`` exists.
        """

    @abstractmethod
    async def query(
        self,
        *,
        age_band: Optional[AgeBand] = None,
        status: Optional[BookStatus] = None,
        limit: Optional[int] = DEFAULT_PAGE_SIZE,
        start_after: Optional[str] = None,
    ) -> list[Book]:
        """List books newest first; ``start_after`` is the id of the last book already seen."""

    @abstractmethod
    async def delete(self, book_id: str) -> bool:
        ...

    @abstractmethod
    async def get_progress(
        self, batch_id: Optional[str] = None, *, kind: Optional[BatchKind] = None
    ) -> Optional[BatchProgress]:
        """Return the progress for ``batch_id``, or the most recently updated one of ``kind``."""

    @abstractmethod
    async def save_progress(self, progress: BatchProgress) -> None:
        ...

    @abstractmethod
    async def delete_progress(self, batch_id: str) -> None:
        ...


SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS books (
    book_id TEXT PRIMARY KEY,
    age_band TEXT NOT NULL,
    status TEXT NOT NULL,
    document JSONB NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_books_created_at ON books(created_at DESC, book_id DESC);
CREATE INDEX IF NOT EXISTS idx_books_age_band_status ON books(age_band, status);

CREATE TABLE IF NOT EXISTS batch_progress (
    batch_id TEXT PRIMARY KEY,
    document JSONB NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""


class PostgresBookRepository(BookRepository):
    """Stores each book as a JSONB document with a few indexed columns.

    Writes to a single book are assumed to come from one pipeline at a time;
    :meth:`update` locks the row for the read-modify-write.
    """

    def __init__(self, database_url: str, *, min_size: int = 1, max_size: int = 10) -> None:
        # psycopg connection URLs do not use SQLAlchemy's driver suffix.
        conninfo = database_url.replace("+psycopg", "")
        self._pool = ConnectionPool(conninfo, min_size=min_size, max_size=max_size, open=False)

    def open(self) -> None:
        self._pool.open(wait=True)
        with self._pool.connection() as conn:
            conn.execute(SCHEMA_DDL)
        logger.info("Book repository ready")

    def close(self) -> None:
        self._pool.close()

    async def get(self, book_id: str) -> Optional[Book]:
        return await run_in_threadpool(self._get, book_id)

    async def create(self, book: Book) -> None:
        await run_in_threadpool(self._create, book)

    async def update(self, book_id: str, fields: Mapping[str, Any]) -> Book:
        return await run_in_threadpool(self._update, book_id, dict(fields))

    async def query(
        self,
        *,
        age_band: Optional[AgeBand] = None,
        status: Optional[BookStatus] = None,
        limit: Optional[int] = DEFAULT_PAGE_SIZE,
        start_after: Optional[str] = None,
    ) -> list[Book]:
        return await run_in_threadpool(self._query, age_band, status, clamp_limit(limit), start_after)

    async def delete(self, book_id: str) -> bool:
        return await run_in_threadpool(self._delete, book_id)

    async def get_progress(
        self, batch_id: Optional[str] = None, *, kind: Optional[BatchKind] = None
    ) -> Optional[BatchProgress]:
        return await run_in_threadpool(self._get_progress, batch_id, kind)

    async def save_progress(self, progress: BatchProgress) -> None:
        await run_in_threadpool(self._save_progress, progress)

    async def delete_progress(self, batch_id: str) -> None:
        await run_in_threadpool(self._delete_progress, batch_id)

    def _get(self, book_id: str) -> Optional[Book]:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute("SELECT document FROM books WHERE book_id = %s", (book_id,))
            row = cur.fetchone()
        return Book.model_validate(row["document"]) if row else None

    def _create(self, book: Book) -> None:
        with self._pool.connection() as conn:
            conn.execute(
                """
                INSERT INTO books (book_id, age_band, status, document, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s)
                """,
                (
                    book.book_id,
                    book.age_band.value,
                    book.status.value,
                    Jsonb(book.model_dump(mode="json")),
                    book.created_at,
                    book.updated_at,
                ),
            )

    def _update(self, book_id: str, fields: dict[str, Any]) -> Book:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                "SELECT document FROM books WHERE book_id = %s FOR UPDATE", (book_id,)
            )
            row = cur.fetchone()
            if row is None:
                raise BookNotFoundError(book_id)
            book = Book.model_validate(apply_field_updates(row["document"], fields))
            cur.execute(
                """
                UPDATE books
                SET document = %s, status = %s, age_band = %s, updated_at = NOW()
                WHERE book_id = %s
                """,
                (Jsonb(book.model_dump(mode="json")), book.status.value, book.age_band.value, book_id),
            )
        return book

    def _query(
        self,
        age_band: Optional[AgeBand],
        status: Optional[BookStatus],
        limit: int,
        start_after: Optional[str],
    ) -> list[Book]:
        clauses: list[str] = []
        params: list[Any] = []
        if age_band is not None:
            clauses.append("age_band = %s")
            params.append(age_band.value)
        if status is not None:
            clauses.append("status = %s")
            params.append(status.value)
        if start_after:
            clauses.append(
                "(created_at, book_id) < (SELECT created_at, book_id FROM books WHERE book_id = %s)"
            )
            params.append(start_after)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"SELECT document FROM books {where} ORDER BY created_at DESC, book_id DESC LIMIT %s",
                params,
            )
            return [Book.model_validate(row["document"]) for row in cur.fetchall()]

    def _delete(self, book_id: str) -> bool:
        with self._pool.connection() as conn:
            cursor = conn.execute("DELETE FROM books WHERE book_id = %s", (book_id,))
            return cursor.rowcount > 0

    def _get_progress(
        self, batch_id: Optional[str], kind: Optional[BatchKind]
    ) -> Optional[BatchProgress]:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            if batch_id:
                cur.execute("SELECT document FROM batch_progress WHERE batch_id = %s", (batch_id,))
            elif kind is not None:
                cur.execute(
                    """
                    SELECT document FROM batch_progress
                    WHERE document->'config'->>'kind' = %s
                    ORDER BY updated_at DESC LIMIT 1
                    """,
                    (kind.value,),
                )
            else:
                cur.execute("SELECT document FROM batch_progress ORDER BY updated_at DESC LIMIT 1")
            row = cur.fetchone()
        if not row:
            return None
        progress = BatchProgress.model_validate(row["document"])
        if kind is not None and progress.config.kind != kind:
            return None
        return progress

    def _save_progress(self, progress: BatchProgress) -> None:
        with self._pool.connection() as conn:
            conn.execute(
                """
                INSERT INTO batch_progress (batch_id, document, updated_at)
                VALUES (%s, %s, NOW())
                ON CONFLICT (batch_id)
                DO UPDATE SET document = EXCLUDED.document, updated_at = NOW()
                """,
                (progress.batch_id, Jsonb(progress.model_dump(mode="json"))),
            )

    def _delete_progress(self, batch_id: str) -> None:
        with self._pool.connection() as conn:
            conn.execute("DELETE FROM batch_progress WHERE batch_id = %s", (batch_id,))
