import logging
import re
import uuid
from collections import Counter
from collections.abc import Iterable, Sequence
from datetime import date, datetime, timedelta, timezone
from typing import Literal

from pydantic import BaseModel, Field
from sqlmodel import Session, col, func, select

from app.analytics_cache import analytics_cache
from app.models import Character, ChildProfile, Story, User, ensure_utc

logger = logging.getLogger(__name__)

Trend = Literal["improving", "stable", "declining"]

VISUAL_WEIGHT = 0.4
PERSONALITY_WEIGHT = 0.4
SPEECH_WEIGHT = 0.2

VISUAL_WARNING_THRESHOLD = 30
PERSONALITY_WARNING_THRESHOLD = 40
INCONSISTENCY_THRESHOLD = 60
SPEECH_MATCH_SCORE = 80
SPEECH_MISS_SCORE = 20

TRAIT_SYNONYMS: dict[str, list[str]] = {
    "brave": ["courageous", "fearless", "bold", "heroic"],
    "kind": ["gentle", "caring", "compassionate", "sweet"],
    "funny": ["humorous", "witty", "silly", "amusing"],
    "smart": ["intelligent", "clever", "wise", "brilliant"],
    "shy": ["timid", "quiet", "reserved", "bashful"],
}


class ConsistencyFeedback(BaseModel):
    """Scores for a single piece of text measured against one character."""
    visual_consistency: int = Field(description="Percent of declared visual features found in the text")
    personality_consistency: int = Field(description="Percent of declared traits (or synonyms) found in the text")
    speech_consistency: int = Field(description="80 when a favorite phrase is used, 20 otherwise")
    overall_score: int
    warnings: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class ConsistencyReport(BaseModel):
    character_id: uuid.UUID
    character_name: str
    total_appearances: int
    consistency_score: int
    visual_consistency_score: int
    personality_consistency_score: int
    speech_consistency_score: int
    last_appearance: datetime | None = None
    consistency_trend: Trend = "stable"
    inconsistent_elements: list[str] = Field(default_factory=list)


class Suggestion(BaseModel):
    type: Literal["consistency", "immediate", "positive"]
    priority: Literal["high", "medium", "low"]
    message: str
    details: str


class RealTimeAnalysis(BaseModel):
    character_id: uuid.UUID
    real_time_feedback: ConsistencyFeedback
    historical_consistency: ConsistencyReport
    suggestions: list[Suggestion]
    timestamp: datetime


class CharacterUsage(BaseModel):
    character_id: uuid.UUID
    name: str
    usage_count: int
    last_used: datetime | None = None


class EngagementReport(BaseModel):
    character_reuse_rate: float
    favorite_characters: list[CharacterUsage]
    character_diversity: float
    average_character_lifespan: float


class ThemeCount(BaseModel):
    theme: str
    count: int


class DashboardOverview(BaseModel):
    total_characters: int
    total_stories: int
    total_profiles: int
    recent_activity: int


class DashboardEngagement(BaseModel):
    character_reuse_rate: int
    average_stories_per_profile: int
    average_characters_per_profile: int
    reading_streak: int


class DashboardReport(BaseModel):
    overview: DashboardOverview
    engagement: DashboardEngagement
    favorite_themes: list[ThemeCount]
    character_usage: list[CharacterUsage]
    engagement_score: int
    last_updated: datetime


class CharacterOverviewItem(BaseModel):
    character_id: uuid.UUID
    name: str
    species: str
    child_profile: str | None = None
    appearances: int
    unique_themes: int
    favorite_themes: list[str]
    last_used: datetime | None = None
    consistency_score: int
    consistency_trend: Trend


class CharacterOverviewSummary(BaseModel):
    total_characters: int
    average_consistency: int
    most_used_character: str | None = None
    highest_consistency: int
    characters_needing_attention: int


class CharacterOverview(BaseModel):
    characters: list[CharacterOverviewItem]
    summary: CharacterOverviewSummary


class PlatformReport(BaseModel):
    total_users: int
    total_stories: int
    total_characters: int
    average_character_consistency: int
    top_themes: list[ThemeCount]
    stories_per_user: int
    characters_per_user: int


def split_features(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in re.split(r"[,;]", value) if part.strip()]


def visual_items(character: Character) -> list[str]:
    return split_features(character.physical_features) + split_features(character.clothing_accessories)


def trait_mentioned(trait: str, text_lower: str) -> bool:
    trait_lower = trait.strip().lower()
    if not trait_lower:
        return False
    candidates = [trait_lower, *TRAIT_SYNONYMS.get(trait_lower, [])]
    return any(candidate in text_lower for candidate in candidates)


def _percent(found: int, total: int) -> int:
    # Nothing declared means there is nothing to contradict.
    if total == 0:
        return 100
    return round(found / total * 100)


def analyze_real_time_feedback(character: Character, content: str) -> ConsistencyFeedback:
    text_lower = (content or "").lower()
    warnings: list[str] = []
    suggestions: list[str] = []

    features = visual_items(character)
    visual = _percent(sum(1 for f in features if f.lower() in text_lower), len(features))
    if features and visual < VISUAL_WARNING_THRESHOLD:
        warnings.append("Few visual features mentioned in current story")
        suggestions.append("Consider describing the character's appearance")

    traits = [t for t in character.personality_traits or [] if t.strip()]
    personality = _percent(sum(1 for t in traits if trait_mentioned(t, text_lower)), len(traits))
    if traits and personality < PERSONALITY_WARNING_THRESHOLD:
        warnings.append("Character personality not well reflected")
        suggestions.append("Show the character's personality through actions and dialogue")

    phrases = [p for p in character.favorite_phrases or [] if p.strip()]
    if not phrases:
        speech = 100
    elif any(p.lower() in text_lower for p in phrases):
        speech = SPEECH_MATCH_SCORE
    else:
        speech = SPEECH_MISS_SCORE
        warnings.append("Character speech patterns not reflected")
        suggestions.append(f"Use the character's speech patterns: {', '.join(phrases)}")

    return ConsistencyFeedback(
        visual_consistency=visual,
        personality_consistency=personality,
        speech_consistency=speech,
        overall_score=round((visual + personality + speech) / 3),
        warnings=warnings,
        suggestions=suggestions,
    )


def weighted_score(visual: float, personality: float, speech: float) -> int:
    return round(visual * VISUAL_WEIGHT + personality * PERSONALITY_WEIGHT + speech * SPEECH_WEIGHT)


def consistency_trend(scores: Sequence[int]) -> Trend:
    """Compare the last three appearances with everything before them."""
    if len(scores) < 4:
        return "stable"
    recent = scores[-3:]
    older = scores[:-3]
    recent_avg = sum(recent) / len(recent)
    older_avg = sum(older) / len(older)
    if recent_avg > older_avg + 5:
        return "improving"
    if recent_avg < older_avg - 5:
        return "declining"
    return "stable"


def calculate_character_consistency(
    character: Character, appearances: Sequence[tuple[datetime, str]]
) -> ConsistencyReport:
    """Score a character across its saved stories, given ``(created_at, text)`` pairs."""
    if not appearances:
        return ConsistencyReport(
            character_id=character.id,
            character_name=character.name,
            total_appearances=0,
            consistency_score=100,
            visual_consistency_score=100,
            personality_consistency_score=100,
            speech_consistency_score=100,
        )

    ordered = sorted(appearances, key=lambda item: ensure_utc(item[0]))
    per_story = [analyze_real_time_feedback(character, text) for _, text in ordered]

    visual = sum(f.visual_consistency for f in per_story) / len(per_story)
    personality = sum(f.personality_consistency for f in per_story) / len(per_story)
    speech = sum(f.speech_consistency for f in per_story) / len(per_story)

    inconsistent: list[str] = []
    if visual < INCONSISTENCY_THRESHOLD:
        inconsistent.append("Visual feature variations detected")
    if personality < INCONSISTENCY_THRESHOLD:
        inconsistent.append("Personality trait inconsistencies")
    if speech < INCONSISTENCY_THRESHOLD:
        inconsistent.append("Speech patterns rarely used")

    story_scores = [weighted_score(f.visual_consistency, f.personality_consistency, f.speech_consistency) for f in per_story]

    return ConsistencyReport(
        character_id=character.id,
        character_name=character.name,
        total_appearances=len(ordered),
        consistency_score=weighted_score(visual, personality, speech),
        visual_consistency_score=round(visual),
        personality_consistency_score=round(personality),
        speech_consistency_score=round(speech),
        last_appearance=ensure_utc(ordered[-1][0]),
        consistency_trend=consistency_trend(story_scores),
        inconsistent_elements=inconsistent,
    )


def build_suggestions(historical: ConsistencyReport, feedback: ConsistencyFeedback) -> list[Suggestion]:
    suggestions: list[Suggestion] = []
    if historical.consistency_score < 70:
        suggestions.append(
            Suggestion(
                type="consistency",
                priority="high",
                message="Character consistency could be improved",
                details="Focus on maintaining character traits and appearance descriptions",
            )
        )
    if feedback.overall_score < 50:
        suggestions.append(
            Suggestion(
                type="immediate",
                priority="high",
                message="Consider revising current content",
                details=". ".join(feedback.suggestions),
            )
        )
    if feedback.overall_score > 80:
        suggestions.append(
            Suggestion(
                type="positive",
                priority="low",
                message="Great character consistency!",
                details="The character is well-represented in this story",
            )
        )
    return suggestions


def reading_streak(timestamps: Iterable[datetime], today: date | None = None) -> int:
    """Consecutive days, ending today, with at least one story."""
    days = {ensure_utc(ts).date() for ts in timestamps if ts is not None}
    current = today or datetime.now(timezone.utc).date()
    streak = 0
    while current in days:
        streak += 1
        current -= timedelta(days=1)
    return streak


def engagement_score(*, stories: int, characters: int, recent_activity: int, streak: int) -> int:
    return (
        min(stories * 5, 50)
        + min(characters * 10, 30)
        + min(recent_activity * 5, 10)
        + min(streak * 2, 10)
    )


def top_themes(themes: Iterable[str | None], limit: int) -> list[ThemeCount]:
    counts = Counter(theme for theme in themes if theme)
    return [ThemeCount(theme=theme, count=count) for theme, count in counts.most_common(limit)]


def story_text(story: Story) -> str:
    return " ".join(page.content for page in story.pages)


def _story_dates(character: Character) -> list[datetime]:
    return [ensure_utc(story.created_at) for story in character.stories if story.created_at]


def character_last_used(character: Character) -> datetime | None:
    dates = _story_dates(character)
    return max(dates) if dates else None


def calculate_character_engagement(
    characters: Sequence[Character], now: datetime | None = None
) -> EngagementReport:
    if not characters:
        return EngagementReport(
            character_reuse_rate=0,
            favorite_characters=[],
            character_diversity=0,
            average_character_lifespan=0,
        )
    now = now or datetime.now(timezone.utc)

    reused = [c for c in characters if len(c.stories) > 1]
    usage = sorted(
        (
            CharacterUsage(
                character_id=c.id,
                name=c.name,
                usage_count=len(c.stories),
                last_used=character_last_used(c) or ensure_utc(c.created_at),
            )
            for c in characters
        ),
        key=lambda item: item.usage_count,
        reverse=True,
    )

    active = 0
    for c in characters:
        last_seen = character_last_used(c) or ensure_utc(c.created_at)
        if now - last_seen <= timedelta(days=30):
            active += 1

    lifespans = []
    for c in reused:
        dates = _story_dates(c)
        lifespans.append((max(dates) - min(dates)).total_seconds() / 86400)

    return EngagementReport(
        character_reuse_rate=round(len(reused) / len(characters) * 100, 2),
        favorite_characters=usage[:5],
        character_diversity=round(active / len(characters) * 100, 2),
        average_character_lifespan=round(sum(lifespans) / len(lifespans), 2) if lifespans else 0,
    )


# Session-backed builders

def get_character_consistency(character: Character) -> ConsistencyReport:
    cached = analytics_cache.get("character", str(character.id), {"report": "consistency"})
    if cached is not None:
        return cached
    appearances = [(story.created_at, story_text(story)) for story in character.stories]
    report = calculate_character_consistency(character, appearances)
    analytics_cache.set("character", str(character.id), report, {"report": "consistency"})
    return report


def analyze_real_time(character: Character, content: str) -> RealTimeAnalysis:
    params = {"content": content}
    cached = analytics_cache.get("realtime", str(character.id), params)
    if cached is not None:
        return cached
    feedback = analyze_real_time_feedback(character, content)
    historical = get_character_consistency(character)
    analysis = RealTimeAnalysis(
        character_id=character.id,
        real_time_feedback=feedback,
        historical_consistency=historical,
        suggestions=build_suggestions(historical, feedback),
        timestamp=datetime.now(timezone.utc),
    )
    analytics_cache.set("realtime", str(character.id), analysis, params)
    return analysis


def _owned_characters(
    session: Session, user_id: uuid.UUID, child_profile_id: uuid.UUID | None
) -> list[Character]:
    statement = select(Character).where(Character.owner_id == user_id)
    if child_profile_id:
        statement = statement.where(Character.child_profile_id == child_profile_id)
    return list(session.exec(statement).all())


def _owned_stories(
    session: Session, user_id: uuid.UUID, child_profile_id: uuid.UUID | None
) -> list[Story]:
    statement = select(Story).where(Story.owner_id == user_id)
    if child_profile_id:
        statement = statement.where(Story.child_profile_id == child_profile_id)
    return list(session.exec(statement).all())


def build_character_engagement(
    *, session: Session, user_id: uuid.UUID, child_profile_id: uuid.UUID | None = None
) -> EngagementReport:
    return calculate_character_engagement(_owned_characters(session, user_id, child_profile_id))


def build_dashboard(
    *, session: Session, user_id: uuid.UUID, child_profile_id: uuid.UUID | None = None
) -> DashboardReport:
    profiles_statement = select(ChildProfile).where(ChildProfile.owner_id == user_id)
    if child_profile_id:
        profiles_statement = profiles_statement.where(ChildProfile.id == child_profile_id)
    total_profiles = len(session.exec(profiles_statement).all())

    characters = _owned_characters(session, user_id, child_profile_id)
    stories = _owned_stories(session, user_id, child_profile_id)
    now = datetime.now(timezone.utc)
    week_ago = now - timedelta(days=7)
    recent = sum(1 for s in stories if s.created_at and ensure_utc(s.created_at) > week_ago)

    used_characters = sum(1 for c in characters if c.stories)
    streak = reading_streak((s.created_at for s in stories), today=now.date())

    usage = sorted(
        (
            CharacterUsage(
                character_id=c.id,
                name=c.name,
                usage_count=len(c.stories),
                last_used=character_last_used(c),
            )
            for c in characters
        ),
        key=lambda item: item.usage_count,
        reverse=True,
    )

    return DashboardReport(
        overview=DashboardOverview(
            total_characters=len(characters),
            total_stories=len(stories),
            total_profiles=total_profiles,
            recent_activity=recent,
        ),
        engagement=DashboardEngagement(
            character_reuse_rate=round(used_characters / len(characters) * 100) if characters else 0,
            average_stories_per_profile=round(len(stories) / total_profiles) if total_profiles else 0,
            average_characters_per_profile=round(len(characters) / total_profiles) if total_profiles else 0,
            reading_streak=streak,
        ),
        favorite_themes=top_themes((s.theme for s in stories), 3),
        character_usage=usage[:5],
        engagement_score=engagement_score(
            stories=len(stories),
            characters=len(characters),
            recent_activity=recent,
            streak=streak,
        ),
        last_updated=now,
    )


def build_character_overview(
    *, session: Session, user_id: uuid.UUID, child_profile_id: uuid.UUID | None = None
) -> CharacterOverview:
    items: list[CharacterOverviewItem] = []
    for character in _owned_characters(session, user_id, child_profile_id):
        report = get_character_consistency(character)
        themes = [story.theme for story in character.stories if story.theme]
        items.append(
            CharacterOverviewItem(
                character_id=character.id,
                name=character.name,
                species=character.species,
                child_profile=character.child_profile.name if character.child_profile else None,
                appearances=len(character.stories),
                unique_themes=len(set(themes)),
                favorite_themes=[t.theme for t in top_themes(themes, 3)],
                last_used=character_last_used(character),
                consistency_score=report.consistency_score,
                consistency_trend=report.consistency_trend,
            )
        )

    items.sort(key=lambda item: (item.appearances, item.consistency_score), reverse=True)
    scores = [item.consistency_score for item in items]
    return CharacterOverview(
        characters=items,
        summary=CharacterOverviewSummary(
            total_characters=len(items),
            average_consistency=round(sum(scores) / len(scores)) if scores else 0,
            most_used_character=items[0].name if items else None,
            highest_consistency=max(scores, default=0),
            characters_needing_attention=sum(1 for score in scores if score < 80),
        ),
    )


def build_platform_report(*, session: Session) -> PlatformReport:
    total_users = session.exec(select(func.count()).select_from(User)).one()
    total_stories = session.exec(select(func.count()).select_from(Story)).one()
    characters = list(session.exec(select(Character)).all())
    themes = session.exec(select(Story.theme).where(col(Story.theme).is_not(None))).all()

    scores = [get_character_consistency(c).consistency_score for c in characters]
    return PlatformReport(
        total_users=total_users,
        total_stories=total_stories,
        total_characters=len(characters),
        average_character_consistency=round(sum(scores) / len(scores)) if scores else 0,
        top_themes=top_themes(themes, 10),
        stories_per_user=round(total_stories / total_users) if total_users else 0,
        characters_per_user=round(len(characters) / total_users) if total_users else 0,
    )
