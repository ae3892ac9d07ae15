from app.prompt_utils import (
    DEFAULT_ACTION,
    DEFAULT_LOCATION,
    PromptCharacter,
    PromptScene,
    build_character_memory,
    character_avatar_prompt,
    clean_prompt,
    extract_action,
    extract_location,
    generate_illustration_prompt,
    style_prefix,
)


def test_generate_illustration_prompt_layout():
    prompt = generate_illustration_prompt(
        PromptCharacter(name="Luna", species="dragon", traits=["purple scales", "red scarf"]),
        PromptScene(location="Moonlit hill", action="flying"),
    )
    assert prompt.splitlines() == [
        "# IllustrationPrompt",
        "task: Generate illustration prompt",
        "style: Pixar 3D",
        "character:",
        "  name: Luna",
        "  species: dragon",
        "  traits:",
        "    - purple scales",
        "    - red scarf",
        "scene:",
        '  location: "Moonlit hill"',
        '  action: "flying"',
        '  lighting: "Soft magical glow"',
        "instructions: >",
        "  Match character traits exactly. Use Pixar 3D rendering.",
    ]


def test_clean_prompt_strips_fences_and_header():
    raw = "```yaml\n# IllustrationPrompt\nstyle: Pixar 3D\n```"
    assert clean_prompt(raw) == "style: Pixar 3D"
    assert clean_prompt("  plain text  ") == "plain text"
    assert clean_prompt("") == ""


def test_character_memory_includes_notes():
    character = PromptCharacter(name="Pip", species="fox", traits=["orange fur"])
    memory = build_character_memory(character, notes="Always wears a blue hat")
    assert "- Name: Pip" in memory
    assert "- orange fur" in memory
    assert "Additional Notes:\n- Always wears a blue hat" in memory
    assert "Additional Notes" not in build_character_memory(character)


def test_extract_location_uses_theme_keywords():
    assert extract_location("They reached the old castle gate.", "Fantasy") == "castle (Fantasy theme)"
    assert extract_location("Nothing to see here.", "space") == "Distant alien planet"
    assert extract_location("A walk.", "pirates") == DEFAULT_LOCATION


def test_extract_action():
    assert extract_action("Luna was flying over the hills.", "Luna") == "flying with joy and wonder"
    assert extract_action("Then Luna giggled at the moon.", "Luna") == "giggled in the scene"
    assert extract_action("Luna was happy.", "Luna") == DEFAULT_ACTION


def test_avatar_prompt_uses_style_prefix():
    prompt = character_avatar_prompt(
        name="Pip", species="fox", physical_features="orange fur", style_name="comic_bold"
    )
    assert prompt.startswith("bold ink comic style with dynamic shading, Pip full-body portrait, fox, orange fur")
    assert style_prefix("unknown") == style_prefix("storybook_soft")
