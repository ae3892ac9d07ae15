import re
from dataclasses import dataclass, field

DEFAULT_ILLUSTRATION_STYLE = "Pixar 3D"
DEFAULT_LIGHTING = "Soft magical glow"
PROMPT_HEADER = "# IllustrationPrompt"

DEFAULT_AVATAR_STYLE = "storybook_soft"
STYLE_PREFIXES: dict[str, str] = {
    "storybook_soft": "gentle watercolor children's storybook style",
    "sora_cinema": "3-D animation film aesthetic, cinematic lighting",
    "pixel_quest": "16-bit RPG pixel art",
    "comic_bold": "bold ink comic style with dynamic shading",
}

THEME_LOCATIONS: dict[str, list[str]] = {
    "fantasy": ["forest", "castle", "mountain", "village", "cave", "tower"],
    "adventure": ["jungle", "island", "desert", "ocean", "valley", "cliff"],
    "modern": ["school", "park", "home", "city", "playground", "library"],
    "space": ["spaceship", "planet", "station", "galaxy", "moon", "asteroid"],
    "underwater": ["ocean", "coral reef", "deep sea", "underwater cave", "submarine"],
}

THEME_FALLBACK_LOCATIONS: dict[str, str] = {
    "fantasy": "Enchanted forest clearing",
    "adventure": "Mysterious jungle path",
    "modern": "Cozy neighborhood scene",
    "space": "Distant alien planet",
    "underwater": "Colorful coral reef",
}

DEFAULT_LOCATION = "Magical storybook scene"
DEFAULT_ACTION = "Standing peacefully in the scene"

ACTION_KEYWORDS = [
    "running", "jumping", "flying", "swimming", "climbing", "exploring",
    "discovering", "finding", "meeting", "helping", "playing", "dancing",
    "singing", "laughing", "sleeping", "dreaming", "walking", "riding",
]

_AUXILIARY_VERBS = {"was", "is", "had", "has"}


@dataclass
class PromptCharacter:
    name: str
    species: str
    traits: list[str] = field(default_factory=list)


@dataclass
class PromptScene:
    location: str
    action: str
    lighting: str | None = None


def generate_illustration_prompt(
    character: PromptCharacter,
    scene: PromptScene,
    style: str = DEFAULT_ILLUSTRATION_STYLE,
) -> str:
    """Render the structured YAML-like prompt handed to the image model."""
    traits = "\n    - ".join(character.traits)
    return (
        f"{PROMPT_HEADER}\n"
        "task: Generate illustration prompt\n"
        f"style: {style}\n"
        "character:\n"
        f"  name: {character.name}\n"
        f"  species: {character.species}\n"
        "  traits:\n"
        f"    - {traits}\n"
        "scene:\n"
        f'  location: "{scene.location}"\n'
        f'  action: "{scene.action}"\n'
        f'  lighting: "{scene.lighting or DEFAULT_LIGHTING}"\n'
        "instructions: >\n"
        f"  Match character traits exactly. Use {style} rendering."
    )


def clean_prompt(text: str) -> str:
    """Strip markdown fences and the template header from model-facing text."""
    cleaned = re.sub(r"```(yaml|json|ts|js|md)?", "", text or "").lstrip()
    cleaned = re.sub(rf"^{re.escape(PROMPT_HEADER)}\s*", "", cleaned)
    return cleaned.strip()


def build_character_memory(character: PromptCharacter, notes: str | None = None) -> str:
    traits = "\n  ".join(f"- {trait}" for trait in character.traits)
    notes_block = f"Additional Notes:\n- {notes}" if notes else ""
    return (
        "You are continuing a story or image involving this consistent character:\n\n"
        "Character Profile:\n"
        f"- Name: {character.name}\n"
        f"- Species: {character.species}\n"
        "- Traits:\n"
        f"  {traits}\n\n"
        f"{notes_block}\n\n"
        "Always match visual and narrative traits. Do not improvise new features."
    )


def extract_location(text: str, theme: str | None) -> str:
    theme_key = (theme or "").strip().lower()
    text_lower = (text or "").lower()
    for location in THEME_LOCATIONS.get(theme_key, []):
        if location in text_lower:
            return f"{location} ({theme} theme)"
    return THEME_FALLBACK_LOCATIONS.get(theme_key, DEFAULT_LOCATION)


def extract_action(text: str, character_name: str) -> str:
    text_lower = (text or "").lower()
    for action in ACTION_KEYWORDS:
        if action in text_lower:
            return f"{action} with joy and wonder"

    for sentence in (text or "").split(". "):
        if character_name not in sentence:
            continue
        words = sentence.split(" ")
        name_index = next((i for i, word in enumerate(words) if character_name in word), -1)
        if 0 <= name_index < len(words) - 1:
            next_word = words[name_index + 1]
            if next_word and next_word.lower() not in _AUXILIARY_VERBS:
                return f"{next_word} in the scene"
    return DEFAULT_ACTION


def style_prefix(style_name: str | None) -> str:
    return STYLE_PREFIXES.get(style_name or "", STYLE_PREFIXES[DEFAULT_AVATAR_STYLE])


def character_avatar_prompt(
    *,
    name: str,
    species: str,
    physical_features: str,
    style_name: str | None = None,
) -> str:
    return (
        f"{style_prefix(style_name)}, {name} full-body portrait, {species}, {physical_features}, "
        "character design, single character on white background, high quality digital art"
    )


def child_avatar_prompt(visual_description: str) -> str:
    return (
        "Create a cute, child-friendly avatar portrait in Pixar animation style. "
        f"{visual_description.strip()}. The character should look friendly and approachable, "
        "with soft lighting, centered composition, and highly detailed features suitable for "
        "a children's storybook application."
    )
