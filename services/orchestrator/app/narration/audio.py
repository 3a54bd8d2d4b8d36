"""Narration script assembly and PCM to WAV packaging."""

from __future__ import annotations

import io
import wave

from storybook_schemas import Book

SAMPLE_RATE = 24000
SAMPLE_WIDTH = 2
CHANNELS = 1
WAV_HEADER_SIZE = 44
CLOSING_LINE = "The End."
# An empty segment between paragraphs is read as a pause.
PAUSE = ""


def build_narration_text(book: Book) -> str:
    """Assemble the full script: title, every page in order, then the closing line."""

    parts: list[str] = [f"{book.title}.", PAUSE]
    ordered = sorted(book.pages, key=lambda page: page.page_number)
    for index, page in enumerate(ordered):
        parts.append(page.text)
        if index < len(ordered) - 1:
            parts.append(PAUSE)
    parts.extend([PAUSE, CLOSING_LINE])
    return "\n\n".join(parts)


def pcm_to_wav(pcm: bytes, sample_rate: int = SAMPLE_RATE) -> bytes:
    """Wrap raw mono 16-bit little-endian PCM in a 44-byte RIFF/WAVE header."""

    if len(pcm) % SAMPLE_WIDTH:
        pcm = pcm[:-1]
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(CHANNELS)
        wav_file.setsampwidth(SAMPLE_WIDTH)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm)
    return buffer.getvalue()


def estimate_duration_seconds(pcm: bytes, sample_rate: int = SAMPLE_RATE) -> int:
    return round(len(pcm) / (sample_rate * SAMPLE_WIDTH * CHANNELS))
