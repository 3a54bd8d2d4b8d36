from .engine import StoryDraft, StoryGenerationResult, generate_story_text, parse_story
from .prompts import themes_for

__all__ = ["StoryDraft", "StoryGenerationResult", "generate_story_text", "parse_story", "themes_for"]
