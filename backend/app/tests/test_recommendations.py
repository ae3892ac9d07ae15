import uuid
from datetime import date

import pytest

from app.recommendations import (
    CharacterPreference,
    RecommendationContext,
    RecommendationEngine,
    age_groups_for_age,
    current_season,
    determine_reading_level,
    estimate_read_time,
    story_title,
    upcoming_holidays,
)

LUNA = CharacterPreference(
    character_id=uuid.uuid4(),
    character_name="Luna",
    times_used=3,
    favorite_themes=["adventure", "magic"],
    personality_traits=["Brave", "kind"],
)
PIP = CharacterPreference(
    character_id=uuid.uuid4(),
    character_name="Pip",
    times_used=1,
    favorite_themes=["magic"],
    personality_traits=["silly"],
)


def make_context(**overrides) -> RecommendationContext:
    data = {
        "child_profile_id": uuid.uuid4(),
        "child_age": 6,
        "favorite_characters": [LUNA, PIP],
        "favorite_themes": ["adventure", "friendship", "bedtime"],
    }
    data.update(overrides)
    return RecommendationContext(**data)


@pytest.mark.parametrize(
    "age, stories, level",
    [(4, 30, "beginner"), (9, 2, "beginner"), (7, 30, "intermediate"), (10, 10, "intermediate"), (10, 25, "advanced")],
)
def test_reading_level(age, stories, level):
    assert determine_reading_level(age, stories) == level


def test_age_bands():
    assert [age_groups_for_age(a) for a in (2, 5, 9, 12)] == [["1-3"], ["3-6"], ["7-10"], ["11-12"]]
    assert [estimate_read_time(a) for a in (3, 6, 10, 11)] == [5, 8, 12, 15]


def test_seasons_and_holidays():
    assert current_season(date(2026, 4, 1)) == "Spring"
    assert current_season(date(2026, 12, 1)) == "Winter"
    assert upcoming_holidays(date(2026, 10, 19)) == ["Halloween"]
    assert upcoming_holidays(date(2026, 10, 31)) == []


def test_title_choice_is_stable_per_name():
    assert story_title("Luna", "adventure") == story_title("Luna", "adventure")
    assert story_title("Luna", "adventure") in {"Luna's Great Adventure", "Luna Explores the Unknown"}
    assert story_title("Luna", "unknown-theme") == "Luna's Story"


def test_character_continuations_only_suggest_new_liked_themes():
    engine = RecommendationEngine(make_context(), today=date(2026, 1, 20))
    continuations = engine.character_continuations()
    luna = [r for r in continuations if r.recommended_characters == [LUNA.character_id]]
    assert [r.themes for r in luna] == [["friendship"], ["bedtime"]]
    assert all(r.match_score == 96 for r in luna)


def test_theme_based_matches_personality_traits():
    engine = RecommendationEngine(make_context(), today=date(2026, 1, 20))
    by_theme = {r.themes[0]: r for r in engine.theme_based()}
    assert by_theme["adventure"].match_score == 85
    assert by_theme["adventure"].recommended_characters == [LUNA.character_id]
    assert by_theme["friendship"].match_score == 85
    assert by_theme["bedtime"].match_score == 75
    assert by_theme["bedtime"].id == "theme-new-bedtime"


def test_team_ups_need_a_shared_theme():
    engine = RecommendationEngine(make_context(), today=date(2026, 1, 20))
    team_ups = engine.team_ups()
    assert len(team_ups) == 1
    assert team_ups[0].themes == ["magic"]
    assert team_ups[0].match_score == 70


def test_generate_sorts_and_limits():
    engine = RecommendationEngine(make_context(), today=date(2026, 10, 19))
    recommendations = engine.generate()
    assert len(recommendations) == 8
    scores = [r.match_score for r in recommendations]
    assert scores == sorted(scores, reverse=True)
    assert any(r.id.startswith("holiday-Halloween") for r in RecommendationEngine(make_context(), today=date(2026, 10, 19)).seasonal())
    assert len(engine.generate(limit=3)) == 3
    assert all(r.age_groups == ["3-6"] and r.estimated_read_time == 8 for r in recommendations)


def test_new_child_gets_no_character_recommendations():
    engine = RecommendationEngine(make_context(favorite_characters=[], favorite_themes=[]))
    assert engine.generate() == []
