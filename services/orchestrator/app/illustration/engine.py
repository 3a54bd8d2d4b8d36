"""Cover and page illustration with per-page failure isolation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Sequence

from storybook_observability import observe_generator_call
from storybook_providers import ImageGenerator, ImageRequest
from storybook_schemas import Page, utcnow

from ..retry import RetryPolicy
from ..storage import ArtifactStore, cover_image_path, page_image_path
from .prompts import cover_prompt, enhance_page_prompt

logger = logging.getLogger(__name__)

SERVICE_NAME = "orchestrator"
PAGE_ASPECT_RATIO = "4:3"
COVER_ASPECT_RATIO = "3:4"


@dataclass(frozen=True)
class ImageArtifact:
    url: str
    storage_path: str


@dataclass
class IllustrationResult:
    cover: Optional[ImageArtifact]
    page_images: dict[int, ImageArtifact] = field(default_factory=dict)
    failed_pages: list[int] = field(default_factory=list)
    cover_error: Optional[str] = None

    @property
    def images_generated(self) -> int:
        return len(self.page_images)

    def apply(self, pages: Sequence[Page]) -> list[Page]:
        """Return copies of ``pages`` carrying the generated image locations."""

        updated: list[Page] = []
        for page in pages:
            artifact = self.page_images.get(page.page_number)
            if artifact is None:
                updated.append(page)
                continue
            updated.append(
                page.model_copy(
                    update={"image_url": artifact.url, "image_storage_path": artifact.storage_path}
                )
            )
        return updated


class Illustrator:
    """Generates images through a retry policy and uploads each one as soon as it exists."""

    def __init__(
        self,
        generator: ImageGenerator,
        store: ArtifactStore,
        retry: RetryPolicy,
        *,
        concurrency: int = 2,
        chunk_delay: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._generator = generator
        self._store = store
        self._retry = retry
        self._concurrency = max(concurrency, 1)
        self._chunk_delay = chunk_delay
        self._sleep = sleep

    async def render(
        self,
        prompt: str,
        path: str,
        *,
        aspect_ratio: str,
        label: str,
        metadata: dict[str, str],
    ) -> ImageArtifact:
        request = ImageRequest(prompt=prompt, aspect_ratio=aspect_ratio)

        async def attempt() -> ImageArtifact:
            response = await self._generator.generate(request)
            observe_generator_call(
                capability="image",
                generator=self._generator.name,
                service_name=SERVICE_NAME,
                latency_ms=response.latency_ms,
            )
            url = await self._store.put(
                response.data,
                path,
                content_type=response.mime_type,
                metadata={**metadata, "generated_at": utcnow().isoformat()},
            )
            return ImageArtifact(url=url, storage_path=path)

        return await self._retry.run(attempt, label=label)

    async def illustrate_book(
        self,
        *,
        book_id: str,
        title: str,
        synopsis: str,
        theme: str,
        pages: Sequence[Page],
        include_cover: bool = True,
    ) -> IllustrationResult:
        """Render the cover, then pages in chunks of ``concurrency``.

        A failed cover or page is recorded on the result and never raised. With
        ``include_cover=False`` only ``pages`` are rendered.
        """

        result = IllustrationResult(cover=None)
        if include_cover:
            await self._illustrate_cover(result, book_id, title, synopsis, theme)

        ordered = sorted(pages, key=lambda page: page.page_number)
        chunks = [
            ordered[start : start + self._concurrency]
            for start in range(0, len(ordered), self._concurrency)
        ]
        for position, chunk in enumerate(chunks):
            outcomes = await asyncio.gather(
                *(
                    self.render(
                        enhance_page_prompt(page.image_prompt),
                        page_image_path(book_id, page.page_number),
                        aspect_ratio=PAGE_ASPECT_RATIO,
                        label="page_image",
                        metadata={"book_id": book_id, "page_number": str(page.page_number)},
                    )
                    for page in chunk
                ),
                return_exceptions=True,
            )
            for page, outcome in zip(chunk, outcomes):
                if isinstance(outcome, BaseException):
                    result.failed_pages.append(page.page_number)
                    logger.warning(
                        "Page illustration failed",
                        extra={"page_number": page.page_number, "error": str(outcome)},
                    )
                else:
                    result.page_images[page.page_number] = outcome
            if position < len(chunks) - 1 and self._chunk_delay:
                await self._sleep(self._chunk_delay)

        logger.info(
            "Illustrations complete",
            extra={
                "succeeded": result.images_generated,
                "failed": len(result.failed_pages),
                "cover": result.cover is not None,
            },
        )
        return result

    async def _illustrate_cover(
        self, result: IllustrationResult, book_id: str, title: str, synopsis: str, theme: str
    ) -> None:
        try:
            result.cover = await self.render(
                cover_prompt(title, synopsis, theme),
                cover_image_path(book_id),
                aspect_ratio=COVER_ASPECT_RATIO,
                label="cover_image",
                metadata={"book_id": book_id, "type": "cover"},
            )
        except Exception as exc:
            result.cover_error = str(exc)
            logger.warning("Cover illustration failed", extra={"error": str(exc)})
