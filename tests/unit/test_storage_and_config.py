"""Local artifact storage, document field updates and environment settings."""

from __future__ import annotations

from datetime import datetime

import pytest

from storybook_providers import ProviderConfigError
from storybook_schemas import AudioStatus, BookStatus, Voice

from services.orchestrator.app.config import PipelineSettings
from services.orchestrator.app.repository import apply_field_updates, clamp_limit
from services.orchestrator.app.storage import (
    CACHE_CONTROL,
    LocalArtifactStore,
    audio_prefix,
    cover_image_path,
    image_prefix,
    narration_path,
    page_image_path,
)


pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture
def anyio_backend():
    return "asyncio"


def test_storage_layout():
    assert cover_image_path("b1") == "images/books/b1/cover.png"
    assert page_image_path("b1", 7) == "images/books/b1/page_07.png"
    assert narration_path("b1", "abcdef0123456789") == "audio/books/b1/narration_abcdef012345.wav"
    assert image_prefix("b1") == "images/books/b1/"
    assert audio_prefix("b1") == "audio/books/b1/"


async def test_local_store_writes_file_and_sidecar(tmp_path):
    store = LocalArtifactStore(tmp_path, "http://localhost:8000/static/")

    url = await store.put(
        b"png-bytes", "images/books/b1/cover.png", content_type="image/png", metadata={"type": "cover"}
    )

    assert url == "http://localhost:8000/static/images/books/b1/cover.png"
    assert (tmp_path / "images/books/b1/cover.png").read_bytes() == b"png-bytes"
    assert await store.exists("images/books/b1/cover.png")
    sidecar = store.read_metadata("images/books/b1/cover.png")
    assert sidecar == {
        "content_type": "image/png",
        "cache_control": CACHE_CONTROL,
        "metadata": {"type": "cover"},
    }


async def test_local_store_deletes_by_prefix(tmp_path):
    store = LocalArtifactStore(tmp_path, "http://localhost:8000/static")
    await store.put(b"a", "images/books/b1/cover.png", content_type="image/png")
    await store.put(b"b", "images/books/b1/page_01.png", content_type="image/png")
    await store.put(b"c", "images/books/b2/cover.png", content_type="image/png")

    assert await store.delete_prefix("images/books/b1/") == 2
    assert not await store.exists("images/books/b1/cover.png")
    assert await store.exists("images/books/b2/cover.png")
    assert await store.delete_prefix("audio/books/b1/") == 0


async def test_local_store_refuses_paths_outside_root(tmp_path):
    store = LocalArtifactStore(tmp_path / "root", "http://localhost:8000/static")

    with pytest.raises(ValueError):
        await store.put(b"x", "../escape.png", content_type="image/png")


def test_field_updates_support_dotted_keys_and_refresh_updated_at():
    document = {
        "status": "draft",
        "audio": {"status": "missing", "voice_name": ""},
        "updated_at": "2020-01-01T00:00:00+00:00",
    }

    updated = apply_field_updates(
        document, {"status": BookStatus.PUBLISHED, "audio.status": AudioStatus.READY}
    )

    assert updated["status"] == "published"
    assert updated["audio"] == {"status": "ready", "voice_name": ""}
    assert datetime.fromisoformat(updated["updated_at"]).year > 2020
    assert document["audio"]["status"] == "missing"


@pytest.mark.parametrize("limit, expected", [(None, 20), (0, 20), (5, 5), (500, 100)])
def test_query_limit_is_clamped(limit, expected):
    assert clamp_limit(limit) == expected


def test_settings_read_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("TARGET_PAGE_COUNT", "12")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path))
    monkeypatch.setenv("DEFAULT_VOICE", "Unknown")
    monkeypatch.setenv("GENERATE_AUDIO", "false")

    settings = PipelineSettings.from_env(max_retries=1)

    assert settings.target_page_count == 12
    assert settings.storage_root == tmp_path
    assert settings.default_voice is Voice.KORE
    assert settings.generate_audio is False
    assert settings.max_retries == 1


def test_invalid_settings_raise_config_error(monkeypatch):
    monkeypatch.setenv("TARGET_PAGE_COUNT", "many")

    with pytest.raises(ProviderConfigError):
        PipelineSettings.from_env()
