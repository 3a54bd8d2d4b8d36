"""Story text generation and draft validation."""

from __future__ import annotations

import json
import random

import pytest

from storybook_schemas import AgeBand, BookGenerationRequest

from services.orchestrator.app.errors import RetriesExhaustedError, StoryValidationError
from services.orchestrator.app.retry import RetryPolicy
from services.orchestrator.app.story import generate_story_text, parse_story, themes_for
from tests.utils.fakes import RecordingSleep, ScriptedTextGenerator, story_payload


pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture
def anyio_backend():
    return "asyncio"


def test_parse_story_accepts_fenced_json_and_camel_case_fields():
    draft = parse_story(f"```json\n{story_payload(3)}\n```", expected_pages=3)

    assert draft.title == "Luna and the Lantern"
    assert [page.page_number for page in draft.pages] == [1, 2, 3]
    assert draft.pages[0].image_prompt == "Luna at place 1"


def test_parse_story_sorts_pages():
    payload = json.loads(story_payload(3))
    payload["pages"].reverse()

    draft = parse_story(json.dumps(payload), expected_pages=3)

    assert [page.page_number for page in draft.pages] == [1, 2, 3]


@pytest.mark.parametrize(
    "text",
    [
        "not json at all",
        json.dumps({"title": "No pages", "pages": []}),
        json.dumps({"title": "Gap", "pages": [
            {"page_number": 1, "text": "a", "image_prompt": "a"},
            {"page_number": 3, "text": "b", "image_prompt": "b"},
        ]}),
    ],
)
def test_parse_story_rejects_malformed_drafts(text):
    with pytest.raises(StoryValidationError):
        parse_story(text, expected_pages=2)


def test_parse_story_rejects_wrong_page_count():
    with pytest.raises(StoryValidationError, match="expected 4 pages, got 3"):
        parse_story(story_payload(3), expected_pages=4)


async def test_wrong_page_count_is_regenerated():
    generator = ScriptedTextGenerator([story_payload(3), story_payload(4)])
    sleep = RecordingSleep()

    result = await generate_story_text(
        generator,
        BookGenerationRequest(age_band=AgeBand.EARLY_READER, theme="adventure"),
        RetryPolicy(max_retries=3, sleep=sleep),
        target_pages=4,
        rng=random.Random(7),
    )

    assert len(generator.requests) == 2
    assert len(result.draft.pages) == 4
    assert result.theme == "adventure"
    assert sleep.delays == [1.0]
    request = generator.requests[0]
    assert request.metadata["page_count"] == 4
    assert "EXACTLY 4 pages" in request.prompt
    assert request.json_schema is not None


async def test_persistently_invalid_story_exhausts_retries():
    generator = ScriptedTextGenerator([story_payload(2)])

    with pytest.raises(RetriesExhaustedError) as excinfo:
        await generate_story_text(
            generator,
            BookGenerationRequest(age_band=AgeBand.PRESCHOOL),
            RetryPolicy(max_retries=2, sleep=RecordingSleep()),
            target_pages=4,
        )

    assert len(generator.requests) == 3
    assert isinstance(excinfo.value.last_error, StoryValidationError)


async def test_missing_request_fields_are_drawn_from_age_band_tables():
    generator = ScriptedTextGenerator([story_payload(2)])

    result = await generate_story_text(
        generator,
        BookGenerationRequest(age_band=AgeBand.MIDDLE_GRADE, character_name="Ada"),
        RetryPolicy(sleep=RecordingSleep()),
        target_pages=2,
        rng=random.Random(1),
    )

    assert result.theme in themes_for(AgeBand.MIDDLE_GRADE)
    assert result.character.startswith("Ada, a ")
    assert result.moral_lesson
