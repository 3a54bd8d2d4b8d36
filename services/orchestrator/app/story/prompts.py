"""Prompt templates and content tables for story generation."""

from __future__ import annotations

from storybook_schemas import AgeBand

STORY_THEMES: dict[AgeBand, tuple[str, ...]] = {
    AgeBand.PRESCHOOL: (
        "friendship", "sharing", "colors", "animals", "family",
        "bedtime", "nature", "kindness", "counting", "seasons",
        "first day of school", "making friends", "helping at home",
        "learning letters", "bath time", "playground fun",
        "pet care", "healthy eating", "feelings", "imagination",
    ),
    AgeBand.EARLY_READER: (
        "adventure", "courage", "teamwork", "discovery", "helping others",
        "imagination", "problem solving", "science", "space", "ocean",
        "dinosaurs", "sports", "music", "art", "nature exploration",
        "friendship challenges", "new experiences", "fairy tales",
        "superheroes", "mystery solving",
    ),
    AgeBand.MIDDLE_GRADE: (
        "perseverance", "leadership", "empathy", "environment", "history",
        "technology", "creativity", "responsibility", "diversity", "dreams",
        "invention", "ancient civilizations", "space exploration", "coding",
        "entrepreneurship", "social justice", "world cultures",
        "scientific discovery", "time travel", "mythology",
    ),
}

CHARACTER_TYPES: tuple[str, ...] = (
    "child", "animal", "magical creature", "robot", "fairy",
    "dragon", "superhero", "princess", "explorer", "scientist",
)

SETTINGS: tuple[str, ...] = (
    "enchanted forest", "underwater kingdom", "space station", "magical garden",
    "cozy village", "jungle adventure", "arctic wonderland", "candy land",
    "dinosaur world", "cloud city", "treehouse", "pirate ship",
)

MORAL_LESSONS: dict[AgeBand, tuple[str, ...]] = {
    AgeBand.PRESCHOOL: (
        "Sharing makes everyone happy",
        "Being kind to others feels good",
        "Trying new things is fun",
        "Everyone is special in their own way",
        "Family and friends love you",
        "Saying please and thank you matters",
        "Helping others is wonderful",
        "It's okay to make mistakes",
    ),
    AgeBand.EARLY_READER: (
        "Courage means doing what's right even when scared",
        "True friends support each other",
        "Hard work leads to great things",
        "Everyone has unique talents",
        "Honesty builds trust",
        "Respecting differences makes the world better",
        "Never give up on your dreams",
        "Small acts of kindness make a big difference",
    ),
    AgeBand.MIDDLE_GRADE: (
        "Standing up for what you believe in matters",
        "Learning from failures leads to success",
        "Empathy helps us understand others",
        "Taking responsibility shows maturity",
        "Creativity can solve any problem",
        "Working together achieves more than working alone",
        "Your choices shape who you become",
        "Everyone deserves respect and dignity",
    ),
}

AGE_DESCRIPTIONS: dict[AgeBand, str] = {
    AgeBand.PRESCHOOL: (
        "very young children (ages 3-5). Use simple words, short sentences (5-8 words), "
        "and repetition. Each page should have 2-3 simple sentences."
    ),
    AgeBand.EARLY_READER: (
        "early readers (ages 6-8). Use clear vocabulary, medium-length sentences "
        "(8-12 words), and engaging descriptions. Each page should have 3-4 sentences."
    ),
    AgeBand.MIDDLE_GRADE: (
        "confident readers (ages 9-12). Use rich vocabulary, varied sentence structures, "
        "and descriptive language. Each page should have a short paragraph (4-5 sentences)."
    ),
}


def themes_for(age_band: AgeBand) -> tuple[str, ...]:
    return STORY_THEMES[age_band]


STORY_SYSTEM_PROMPT = """
You are a world-class children's book author. You write original, age-appropriate
picture books and always answer with a single JSON object and nothing else.
""".strip()


STORY_PROMPT = """
Create an ORIGINAL picture book with EXACTLY {page_count} pages.

TARGET AUDIENCE: {age_description}

STORY REQUIREMENTS:
- Theme: {theme}
- Main character: {character}
- Setting: {setting}
- Moral lesson: {moral_lesson}
- Do not copy or reference existing books or characters.
- Keep the content safe: no scary violence, death or sensitive topics.
- Include diverse characters and positive representation.
- Give the story a clear beginning, middle and satisfying end.

For each page also write an image prompt describing the scene, the characters'
appearance and expressions, and bright child-friendly colours, in the style of a
colorful children's book illustration.

OUTPUT FORMAT (JSON):
{{
  "title": "The Story Title",
  "synopsis": "A 2-3 sentence summary of the story",
  "pages": [
    {{"page_number": 1, "text": "Story text for page 1", "image_prompt": "Scene description"}}
  ]
}}

Return exactly {page_count} pages numbered 1 to {page_count}.
""".strip()
