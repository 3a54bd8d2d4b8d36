"""Runtime settings for the generation pipeline."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from storybook_providers import ProviderConfigError, parse_bool
from storybook_schemas import Voice

_ENV_KEYS: dict[str, str] = {
    "target_page_count": "TARGET_PAGE_COUNT",
    "storage_root": "STORAGE_ROOT",
    "public_base_url": "PUBLIC_BASE_URL",
    "database_url": "DATABASE_URL",
    "batch_progress_dir": "BATCH_PROGRESS_DIR",
    "batch_chunk_delay_seconds": "BATCH_CHUNK_DELAY_SECONDS",
    "image_chunk_delay_seconds": "IMAGE_CHUNK_DELAY_SECONDS",
    "image_concurrency": "IMAGE_CONCURRENCY",
    "progress_remote_every": "PROGRESS_REMOTE_EVERY",
    "max_retries": "MAX_RETRIES",
    "default_voice": "DEFAULT_VOICE",
    "metrics_port": "METRICS_PORT",
}


class PipelineSettings(BaseModel):
    target_page_count: int = Field(20, ge=1, le=60)
    storage_root: Path = Path("./storage")
    public_base_url: str = "http://localhost:8000/static"
    database_url: Optional[str] = None
    batch_progress_dir: Path = Path("batch_progress")
    batch_chunk_delay_seconds: float = Field(1.0, ge=0)
    image_chunk_delay_seconds: float = Field(0.5, ge=0)
    image_concurrency: int = Field(2, ge=1)
    progress_remote_every: int = Field(10, ge=1)
    max_retries: int = Field(3, ge=0)
    default_voice: Voice = Voice.KORE
    metrics_port: Optional[int] = None
    generate_audio: bool = True

    @classmethod
    def from_env(cls, **overrides: Any) -> "PipelineSettings":
        """Build settings from environment variables, with keyword overrides on top.

        Unknown voice names fall back to the default voice.
        """

        values: dict[str, Any] = {}
        for field_name, env_key in _ENV_KEYS.items():
            raw = os.getenv(env_key)
            if raw not in (None, ""):
                values[field_name] = raw.strip()
        if "default_voice" in values:
            values["default_voice"] = Voice.coerce(values["default_voice"])
        raw_audio = os.getenv("GENERATE_AUDIO")
        if raw_audio not in (None, ""):
            values["generate_audio"] = parse_bool(raw_audio)
        values.update(overrides)
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ProviderConfigError(f"Invalid pipeline settings: {exc}") from exc
