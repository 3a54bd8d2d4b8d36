"""Narration stage: script assembly, speech synthesis and WAV packaging."""
