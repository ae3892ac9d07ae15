import uuid
from datetime import date, datetime, timedelta, timezone

from app.analytics import (
    ConsistencyFeedback,
    ConsistencyReport,
    analyze_real_time_feedback,
    build_suggestions,
    calculate_character_consistency,
    consistency_trend,
    engagement_score,
    reading_streak,
    split_features,
    top_themes,
    weighted_score,
)
from app.models import Character


def make_character(**overrides) -> Character:
    data = {
        "id": uuid.uuid4(),
        "name": "Luna",
        "species": "dragon",
        "age": "5",
        "physical_features": "purple scales, golden eyes",
        "clothing_accessories": "red scarf",
        "personality_traits": ["brave", "kind"],
        "personality_description": "A gentle dragon",
        "favorite_phrases": ["Let's fly!"],
        "owner_id": uuid.uuid4(),
        "child_profile_id": uuid.uuid4(),
    }
    data.update(overrides)
    return Character(**data)


def test_split_features_on_commas_and_semicolons():
    assert split_features("purple scales; golden eyes,  long tail ,") == ["purple scales", "golden eyes", "long tail"]
    assert split_features(None) == []


def test_feedback_matches_case_insensitively_with_synonyms():
    character = make_character()
    feedback = analyze_real_time_feedback(
        character, "PURPLE SCALES shimmered. The fearless dragon was gentle. LET'S FLY!"
    )
    assert feedback.visual_consistency == 33
    assert feedback.personality_consistency == 100
    assert feedback.speech_consistency == 80
    assert feedback.overall_score == 71
    assert feedback.warnings == []


def test_feedback_warnings_for_thin_text():
    feedback = analyze_real_time_feedback(make_character(), "Once upon a time.")
    assert feedback.visual_consistency == 0
    assert feedback.personality_consistency == 0
    assert feedback.speech_consistency == 20
    assert feedback.overall_score == 7
    assert feedback.warnings == [
        "Few visual features mentioned in current story",
        "Character personality not well reflected",
        "Character speech patterns not reflected",
    ]
    assert "Let's fly!" in feedback.suggestions[-1]


def test_nothing_declared_scores_full_marks():
    character = make_character(
        physical_features="", clothing_accessories=None, personality_traits=[], favorite_phrases=[]
    )
    feedback = analyze_real_time_feedback(character, "Anything at all.")
    assert (feedback.visual_consistency, feedback.personality_consistency, feedback.speech_consistency) == (100, 100, 100)
    assert feedback.warnings == []


def test_weighted_score():
    assert weighted_score(100, 50, 80) == 76
    assert weighted_score(0, 0, 20) == 4


def test_trend_needs_four_appearances():
    assert consistency_trend([10, 90, 90]) == "stable"
    assert consistency_trend([40, 40, 80, 80, 80]) == "improving"
    assert consistency_trend([90, 90, 50, 50, 50]) == "declining"
    assert consistency_trend([70, 72, 74, 73]) == "stable"


def test_history_without_appearances():
    character = make_character()
    report = calculate_character_consistency(character, [])
    assert report.total_appearances == 0
    assert report.consistency_score == 100
    assert report.consistency_trend == "stable"
    assert report.last_appearance is None
    assert report.inconsistent_elements == []


def test_history_averages_per_story_feedback():
    character = make_character()
    start = datetime(2026, 3, 1, tzinfo=timezone.utc)
    good = "purple scales, golden eyes and a red scarf. Brave and kind. Let's fly!"
    poor = "A dragon went for a walk."
    appearances = [
        (start + timedelta(days=4), good),
        (start, poor),
        (start + timedelta(days=1), poor),
        (start + timedelta(days=2), good),
        (start + timedelta(days=3), good),
    ]

    report = calculate_character_consistency(character, appearances)

    assert report.total_appearances == 5
    assert report.visual_consistency_score == 60
    assert report.personality_consistency_score == 60
    assert report.speech_consistency_score == 56
    assert report.consistency_score == weighted_score(60, 60, 56)
    assert report.consistency_trend == "improving"
    assert report.last_appearance == start + timedelta(days=4)
    assert report.inconsistent_elements == ["Speech patterns rarely used"]


def test_suggestions():
    historical = ConsistencyReport(
        character_id=uuid.uuid4(),
        character_name="Luna",
        total_appearances=3,
        consistency_score=60,
        visual_consistency_score=60,
        personality_consistency_score=60,
        speech_consistency_score=60,
    )
    weak = ConsistencyFeedback(
        visual_consistency=0, personality_consistency=0, speech_consistency=20, overall_score=7,
        suggestions=["Describe the scales"],
    )
    strong = ConsistencyFeedback(
        visual_consistency=100, personality_consistency=100, speech_consistency=80, overall_score=93
    )

    assert [(s.type, s.priority) for s in build_suggestions(historical, weak)] == [
        ("consistency", "high"),
        ("immediate", "high"),
    ]
    assert [(s.type, s.priority) for s in build_suggestions(historical, strong)] == [
        ("consistency", "high"),
        ("positive", "low"),
    ]


def test_reading_streak_counts_back_from_today():
    today = date(2026, 5, 10)
    stamps = [
        datetime(2026, 5, 10, 8, tzinfo=timezone.utc),
        datetime(2026, 5, 9, 20, tzinfo=timezone.utc),
        datetime(2026, 5, 9, 7, tzinfo=timezone.utc),
        datetime(2026, 5, 8, 7),
        datetime(2026, 5, 6, 7, tzinfo=timezone.utc),
    ]
    assert reading_streak(stamps, today=today) == 3
    assert reading_streak(stamps, today=date(2026, 5, 11)) == 0


def test_engagement_score_caps_each_component():
    assert engagement_score(stories=1, characters=1, recent_activity=1, streak=1) == 22
    assert engagement_score(stories=50, characters=9, recent_activity=9, streak=30) == 100


def test_top_themes():
    themes = ["space", "ocean", "space", None, "forest", "space", "ocean"]
    assert [(t.theme, t.count) for t in top_themes(themes, 2)] == [("space", 3), ("ocean", 2)]
