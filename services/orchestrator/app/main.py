"""FastAPI entrypoint for the storybook orchestrator."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.staticfiles import StaticFiles

from storybook_observability import log_context, setup_fastapi_metrics, setup_logging
from storybook_schemas import AgeBand, BatchAudioResult, BatchProgress, Book, BookStatus, GenerationResult

from .dependencies import Services, build_services
from .models import (
    BatchAudioRequest,
    BookListResponse,
    DeleteBookResponse,
    GenerateAudioRequest,
    GenerateBookRequest,
    RegenerateImagesRequest,
)
from .repository import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

SERVICE_NAME = "orchestrator"
setup_logging(SERVICE_NAME)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    services = build_services()
    app.state.services = services
    try:
        yield
    finally:
        services.close()


app = FastAPI(title="Storybook Orchestrator", version="0.1.0", lifespan=lifespan)
setup_fastapi_metrics(app, service_name=SERVICE_NAME)
app.mount(
    "/static",
    StaticFiles(directory=os.getenv("STORAGE_ROOT", "./storage"), check_dir=False),
    name="static",
)


def get_services(request: Request) -> Services:
    return request.app.state.services


@app.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/books/generate", response_model=GenerationResult, tags=["books"])
async def generate_book(
    payload: GenerateBookRequest, services: Services = Depends(get_services)
) -> GenerationResult:
    with log_context(stage="pipeline"):
        logger.info(
            "Dispatching book generation",
            extra={"age_band": payload.age_band.value, "theme": payload.theme},
        )
    return await services.orchestrator.generate_complete_book(
        payload, generate_audio=payload.generate_audio, voice=payload.voice_name
    )


@app.post("/books/{book_id}/audio", response_model=GenerationResult, tags=["audio"])
async def generate_audio(
    book_id: str,
    payload: GenerateAudioRequest,
    services: Services = Depends(get_services),
) -> GenerationResult:
    return await services.orchestrator.regenerate_audio(
        book_id, payload.voice_name, force=payload.force
    )


@app.post("/books/{book_id}/images", response_model=GenerationResult, tags=["books"])
async def regenerate_images(
    book_id: str,
    payload: RegenerateImagesRequest,
    services: Services = Depends(get_services),
) -> GenerationResult:
    return await services.orchestrator.regenerate_images(book_id, payload.pages)


@app.post("/audio/batch", response_model=BatchAudioResult, tags=["audio"])
async def batch_generate_audio(
    payload: BatchAudioRequest, services: Services = Depends(get_services)
) -> BatchAudioResult:
    return await services.batch_runner.run_audio_batch(
        payload.book_ids, payload.voice_name, payload.max_concurrency
    )


@app.get("/batches/{batch_id}", response_model=BatchProgress, tags=["batches"])
async def get_batch_progress(
    batch_id: str, services: Services = Depends(get_services)
) -> BatchProgress:
    progress = await services.progress_store.load(batch_id)
    if progress is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Batch not found")
    return progress


@app.get("/books/{book_id}", response_model=Book, tags=["books"])
async def fetch_book(book_id: str, services: Services = Depends(get_services)) -> Book:
    book = await services.repository.get(book_id)
    if book is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    return book


@app.get("/books", response_model=BookListResponse, tags=["books"])
async def fetch_books(
    age_band: Optional[AgeBand] = None,
    book_status: Optional[BookStatus] = Query(None, alias="status"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    start_after: Optional[str] = None,
    services: Services = Depends(get_services),
) -> BookListResponse:
    books = await services.repository.query(
        age_band=age_band, status=book_status, limit=limit, start_after=start_after
    )
    next_cursor = books[-1].book_id if len(books) == limit else None
    return BookListResponse(books=books, next_cursor=next_cursor)


@app.delete("/books/{book_id}", response_model=DeleteBookResponse, tags=["books"])
async def remove_book(
    book_id: str, services: Services = Depends(get_services)
) -> DeleteBookResponse:
    deleted = await services.orchestrator.delete_book(book_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    return DeleteBookResponse(success=True, book_id=book_id)
