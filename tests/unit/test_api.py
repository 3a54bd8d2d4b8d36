"""HTTP surface of the orchestrator, backed by in-memory collaborators."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from storybook_providers import MockTextGenerator

from services.orchestrator.app.config import PipelineSettings
from services.orchestrator.app.dependencies import build_services
from services.orchestrator.app.main import app, get_services
from tests.utils.fakes import (
    CountingSpeechGenerator,
    InMemoryArtifactStore,
    InMemoryBookRepository,
    InMemoryProgressStore,
    SelectiveImageGenerator,
)


@pytest.fixture
def services(tmp_path):
    settings = PipelineSettings(
        target_page_count=2,
        storage_root=tmp_path,
        batch_progress_dir=tmp_path / "batch_progress",
        image_chunk_delay_seconds=0,
        batch_chunk_delay_seconds=0,
        max_retries=0,
    )
    return build_services(
        settings,
        repository=InMemoryBookRepository(),
        store=InMemoryArtifactStore(),
        progress_store=InMemoryProgressStore(),
        text_generator=MockTextGenerator(),
        image_generator=SelectiveImageGenerator(),
        speech_generator=CountingSpeechGenerator(),
    )


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _generate(client: TestClient, **payload) -> dict:
    response = client.post("/books/generate", json={"age_band": "6-8", **payload})
    assert response.status_code == 200
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_generate_and_fetch_book(client):
    result = _generate(client, theme="adventure", voice_name="Kore")

    assert result["success"] is True
    assert result["audio_generated"] is True
    book = client.get(f"/books/{result['book_id']}").json()
    assert book["status"] == "published"
    assert book["page_count"] == 2
    assert book["audio"]["status"] == "ready"
    assert book["audio"]["voice_name"] == "Kore"


def test_unknown_voice_falls_back_to_default(client):
    result = _generate(client, voice_name="Nobody")

    book = client.get(f"/books/{result['book_id']}").json()
    assert book["audio"]["voice_name"] == "Kore"


def test_generate_without_audio(client):
    result = _generate(client, generate_audio=False)

    assert result["audio_generated"] is False
    book = client.get(f"/books/{result['book_id']}").json()
    assert book["audio"]["status"] == "missing"


def test_invalid_age_band_is_rejected(client):
    response = client.post("/books/generate", json={"age_band": "13-16"})

    assert response.status_code == 422


def test_missing_book_returns_404(client):
    assert client.get("/books/book_missing").status_code == 404
    assert client.delete("/books/book_missing").status_code == 404


def test_list_books_paginates_with_cursor(client):
    ids = {_generate(client, generate_audio=False)["book_id"] for _ in range(2)}

    first = client.get("/books", params={"limit": 1}).json()
    second = client.get(
        "/books", params={"limit": 1, "start_after": first["next_cursor"]}
    ).json()

    assert len(first["books"]) == 1
    assert first["next_cursor"] == first["books"][0]["book_id"]
    assert {first["books"][0]["book_id"], second["books"][0]["book_id"]} == ids
    filtered = client.get("/books", params={"status": "failed"}).json()
    assert filtered == {"books": [], "next_cursor": None}
    assert client.get("/books", params={"limit": 500}).status_code == 422


def test_audio_regeneration_is_skipped_when_current(client):
    book_id = _generate(client, voice_name="Kore")["book_id"]

    response = client.post(f"/books/{book_id}/audio", json={"voice_name": "Kore"})

    assert response.status_code == 200
    assert response.json()["audio_skipped"] is True


def test_audio_batch_and_progress_lookup(client):
    book_id = _generate(client, generate_audio=False)["book_id"]

    response = client.post(
        "/audio/batch", json={"book_ids": [book_id, "book_missing"], "max_concurrency": 1}
    )

    body = response.json()
    assert body["succeeded"] == [book_id]
    assert body["failed"] == ["book_missing"]
    progress = client.get(f"/batches/{body['batch_id']}").json()
    assert progress["failed_books"] == 1
    assert client.get("/batches/batch_unknown").status_code == 404
    assert client.post("/audio/batch", json={"book_ids": []}).status_code == 422


def test_delete_book(client, services):
    book_id = _generate(client)["book_id"]

    response = client.delete(f"/books/{book_id}")

    assert response.json() == {"success": True, "book_id": book_id}
    assert client.get(f"/books/{book_id}").status_code == 404
    assert not [path for path in services.store.blobs if book_id in path]


def test_metrics_endpoint(client):
    client.get("/health")

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "storybook_http_requests_total" in response.text


def test_regenerate_images_endpoint(client):
    result = _generate(client, generate_audio=False)

    response = client.post(f"/books/{result['book_id']}/images", json={"pages": [1]})
    missing = client.post("/books/book_missing/images", json={})

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["images_generated"] == 1
    assert missing.json()["error"] == "Book not found"
