STORY_WRITER_SYSTEM_PROMPT = """
You are a professional children's book author who creates engaging, age-appropriate stories with consistent characters and positive messages.

Every story you write:
- keeps each character's appearance, personality and way of speaking the same on every page,
- is wholesome and safe for young readers,
- ends with a positive resolution that teaches the moral lesson,
- is split into pages that each work well as a single illustrated scene.
"""

STORY_WRITER_USER_TEMPLATE = """Create a children's bedtime story with the following specifications:

Theme: {theme}
Characters:
{characters}
Moral Lesson: {moral_lesson}
Additional Details: {details}
Story Length: Exactly {page_count} pages

Requirements:
- Create exactly {page_count} pages of story content
- Each page should be 2-3 sentences suitable for children aged {age_range}
- Maintain character consistency throughout
- For each page, describe how every character on it appears and behaves, in a way that works well for Pixar-style illustrations
- Keep content wholesome and age-appropriate
- End with a positive resolution that teaches the moral lesson
"""

DEFAULT_MORAL_LESSON = "friendship and kindness"
DEFAULT_STORY_DETAILS = "A magical adventure"
DEFAULT_AGE_RANGE = "3-8"
