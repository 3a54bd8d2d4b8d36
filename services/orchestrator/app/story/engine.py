"""Story text generation with strict validation of the returned draft."""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from storybook_observability import observe_generator_call
from storybook_providers import TextGenerator, TextRequest, TextResponse
from storybook_schemas import BookGenerationRequest
from storybook_schemas.utils import ensure_contiguous_pages

from ..errors import StoryValidationError
from ..retry import RetryPolicy
from .prompts import (
    AGE_DESCRIPTIONS,
    CHARACTER_TYPES,
    MORAL_LESSONS,
    SETTINGS,
    STORY_PROMPT,
    STORY_SYSTEM_PROMPT,
    themes_for,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "orchestrator"
_JSON_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


class StoryPageDraft(BaseModel):
    page_number: int = Field(
        ..., ge=1, validation_alias=AliasChoices("page_number", "pageNumber")
    )
    text: str = Field(..., min_length=1)
    image_prompt: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("image_prompt", "imagePrompt")
    )


class StoryDraft(BaseModel):
    """Story as returned by the text generator, before any artifact exists."""

    title: str = Field(..., min_length=1, max_length=200)
    synopsis: str = ""
    pages: list[StoryPageDraft] = Field(..., min_length=1)

    @field_validator("pages")
    @classmethod
    def order_pages(cls, pages: list[StoryPageDraft]) -> list[StoryPageDraft]:
        ordered = sorted(pages, key=lambda page: page.page_number)
        ensure_contiguous_pages(page.page_number for page in ordered)
        return ordered


STORY_SCHEMA = StoryDraft.model_json_schema()


@dataclass
class StoryGenerationResult:
    draft: StoryDraft
    theme: str
    moral_lesson: str
    character: str
    setting: str
    response: TextResponse


def parse_story(text: str, expected_pages: int) -> StoryDraft:
    """Parse and validate generator output.

    Raises:
        StoryValidationError: If the payload is not valid JSON, misses fields, or does
            not contain exactly ``expected_pages`` contiguous pages.
    """

    match = _JSON_FENCE.search(text)
    payload = match.group(1) if match else text.strip()
    try:
        draft = StoryDraft.model_validate_json(payload)
    except ValidationError as exc:
        raise StoryValidationError(f"Invalid story structure: {exc}") from exc
    if len(draft.pages) != expected_pages:
        raise StoryValidationError(
            f"Invalid story structure: expected {expected_pages} pages, got {len(draft.pages)}"
        )
    return draft


async def generate_story_text(
    generator: TextGenerator,
    request: BookGenerationRequest,
    retry: RetryPolicy,
    *,
    target_pages: int = 20,
    rng: Optional[random.Random] = None,
) -> StoryGenerationResult:
    """Generate and validate the story for one book.

    The generator call, parsing and validation form one retried unit, so a draft with
    the wrong page count is regenerated rather than returned.
    """

    rng = rng or random.Random()
    age_band = request.age_band
    theme = request.theme or rng.choice(themes_for(age_band))
    moral_lesson = request.moral_lesson or rng.choice(MORAL_LESSONS[age_band])
    setting = request.setting or rng.choice(SETTINGS)
    character_type = rng.choice(CHARACTER_TYPES)
    character = (
        f"{request.character_name}, a {character_type}" if request.character_name else character_type
    )

    text_request = TextRequest(
        prompt=STORY_PROMPT.format(
            page_count=target_pages,
            age_description=AGE_DESCRIPTIONS[age_band],
            theme=theme,
            character=character,
            setting=setting,
            moral_lesson=moral_lesson,
        ),
        system_prompt=STORY_SYSTEM_PROMPT,
        json_schema=STORY_SCHEMA,
        metadata={"page_count": target_pages, "theme": theme, "moral_lesson": moral_lesson},
    )

    async def attempt() -> tuple[TextResponse, StoryDraft]:
        response = await generator.generate(text_request)
        observe_generator_call(
            capability="text",
            generator=generator.name,
            service_name=SERVICE_NAME,
            latency_ms=response.latency_ms,
            prompt_tokens=response.prompt_tokens,
            completion_tokens=response.completion_tokens,
        )
        return response, parse_story(response.text, target_pages)

    response, draft = await retry.run(attempt, label="story_text")
    logger.info(
        "Story text generated",
        extra={"title": draft.title, "theme": theme, "page_count": len(draft.pages)},
    )
    return StoryGenerationResult(
        draft=draft,
        theme=theme,
        moral_lesson=moral_lesson,
        character=character,
        setting=setting,
        response=response,
    )
