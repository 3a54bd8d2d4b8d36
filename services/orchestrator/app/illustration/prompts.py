"""Prompt helpers for illustrations."""

from __future__ import annotations

STYLE_KEYWORDS = (
    "children's book illustration",
    "colorful",
    "child-friendly",
    "vibrant",
    "digital art",
)

PAGE_STYLE_SUFFIX = (
    ". Style: Colorful children's book illustration, digital art, vibrant colors, warm and "
    "friendly, whimsical, high quality, suitable for young children."
)

SAFETY_SUFFIX = " Safe for children, no scary elements, positive and joyful atmosphere."

COVER_PROMPT = """
Children's book cover illustration for "{title}". {synopsis}. Theme: {theme}.
Style: Vibrant, colorful, whimsical children's book cover art, professional quality,
eye-catching design, warm and inviting colors, suitable for young children,
digital illustration, high detail, magical atmosphere.
""".strip()


def enhance_page_prompt(prompt: str) -> str:
    """Add the house art style unless the prompt already names one, then the safety line."""

    lowered = prompt.lower()
    if not any(keyword in lowered for keyword in STYLE_KEYWORDS):
        prompt += PAGE_STYLE_SUFFIX
    return prompt + SAFETY_SUFFIX


def cover_prompt(title: str, synopsis: str, theme: str) -> str:
    return COVER_PROMPT.format(title=title, synopsis=synopsis.rstrip("."), theme=theme)
