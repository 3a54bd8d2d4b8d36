"""Content fingerprints that decide whether a generated artifact is reusable."""

from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping

from storybook_schemas import AudioStatus, Book, Voice

from .narration.audio import build_narration_text

# Bump whenever build_narration_text changes how the script is framed.
NARRATION_FORMAT_VERSION = "v2"


def fingerprint(text: str, parameters: Mapping[str, Any], format_version: str) -> str:
    """Return a sha256 hex digest over the text, parameters and format version.

    Parameters are encoded as canonical JSON (sorted keys) so mapping order does not
    affect the result.
    """

    canonical = json.dumps(
        {"format_version": format_version, "parameters": dict(parameters), "text": text},
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def audio_fingerprint(
    book: Book, voice: Voice | str, *, format_version: str = NARRATION_FORMAT_VERSION
) -> str:
    voice_name = voice.value if isinstance(voice, Voice) else str(voice)
    return fingerprint(build_narration_text(book), {"voice": voice_name}, format_version)


def needs_audio_regeneration(
    book: Book, voice: Voice | str, *, format_version: str = NARRATION_FORMAT_VERSION
) -> bool:
    """True unless the stored narration is ready and matches the current fingerprint."""

    if book.audio.status != AudioStatus.READY:
        return True
    return book.audio.hash != audio_fingerprint(book, voice, format_version=format_version)
