ILLUSTRATION_PROMPT_SYSTEM_PROMPT = """
You are an expert at writing image-generation prompts for Pixar-style children's book illustrations.

You receive a structured illustration brief and a character memory block. Rewrite them as ONE detailed
prompt paragraph for an image model. Keep every listed character trait exactly as given, do not invent
new features, and describe the scene, the action and the lighting.

Requirements:
- Pixar animation style (3D rendered, vibrant, warm lighting)
- Child-friendly, whimsical art style with bright colors and excellent contrast
- Safe, positive imagery suitable for ages 3-8
- Expressive character faces and rich environmental details
- Cinematic composition with a clear focal point

Return only the prompt text.
"""

IMAGE_PROMPT_PREFIX = "Pixar-style 3D rendered children's book illustration: "
IMAGE_PROMPT_SUFFIX = (
    ". Art style: Disney/Pixar animation quality, vibrant colors, warm lighting, expressive characters, "
    "cinematic composition, child-friendly, storybook art with rich environmental details"
)

PAGE_PROMPT_TEMPLATE = """{cleaned_prompt}

Story Context: {story_context}
Page: {page_number}
Consistency Note: Maintain the same character appearance as established in previous illustrations.

Style: Children's book illustration, magical and enchanting, high quality digital art."""
