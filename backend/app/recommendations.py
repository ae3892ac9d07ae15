import logging
import uuid
from collections import Counter
from datetime import date, datetime, timezone
from itertools import combinations
from typing import Literal

from pydantic import BaseModel, Field
from sqlmodel import Session, col, select

from app.models import Character, ChildProfile, Story, ensure_utc

logger = logging.getLogger(__name__)

ReadingLevel = Literal["beginner", "intermediate", "advanced"]

MAX_RECOMMENDATIONS = 8
QUICK_RECOMMENDATIONS = 3
HISTORY_WINDOW = 20

THEME_CHARACTER_COMPATIBILITY: dict[str, list[str]] = {
    "adventure": ["brave", "curious", "adventurous", "clever"],
    "friendship": ["kind", "helpful", "gentle", "loyal"],
    "learning": ["wise", "curious", "clever", "patient"],
    "magic": ["magical", "wise", "mysterious", "powerful"],
    "nature": ["gentle", "curious", "adventurous", "caring"],
    "problem-solving": ["clever", "brave", "helpful", "creative"],
    "bedtime": ["gentle", "calm", "wise", "comforting"],
    "family": ["kind", "loving", "helpful", "caring"],
    "seasonal": ["cheerful", "adventurous", "curious", "festive"],
    "moral-lesson": ["wise", "kind", "honest", "brave"],
}

STORY_TITLES: dict[str, list[str]] = {
    "adventure": ["{name}'s Great Adventure", "{name} Explores the Unknown"],
    "friendship": ["{name} Makes a New Friend", "{name}'s Friendship Journey"],
    "learning": ["{name} Learns Something New", "{name}'s Discovery"],
    "magic": ["{name}'s Magical Quest", "{name} and the Magic Secret"],
    "nature": ["{name} in the Enchanted Forest", "{name}'s Nature Walk"],
    "problem-solving": ["{name} Solves the Mystery", "{name}'s Clever Solution"],
    "bedtime": ["{name}'s Peaceful Night", "{name}'s Sleepy Adventure"],
    "family": ["{name}'s Family Time", "{name} Helps at Home"],
    "seasonal": ["{name}'s Seasonal Journey", "{name} and the Changing Seasons"],
    "moral-lesson": ["{name} Learns About Kindness", "{name}'s Important Lesson"],
}

STORY_SUMMARIES: dict[str, str] = {
    "adventure": "Join {name} on an exciting adventure full of surprises and discoveries!",
    "friendship": "{name} learns the value of friendship in this heartwarming tale.",
    "learning": "Follow {name} as they discover something amazing and new.",
    "magic": "{name} encounters magical wonders in this enchanting story.",
    "nature": "{name} explores the beauty of nature and meets woodland friends.",
    "problem-solving": "Watch {name} use cleverness and creativity to solve an important problem.",
    "bedtime": "A gentle, soothing story with {name} perfect for bedtime.",
    "family": "{name} enjoys special time with family and learns about love and togetherness.",
    "seasonal": "{name} experiences the magic and wonder of the changing seasons.",
    "moral-lesson": "{name} learns an important life lesson about being kind and good.",
}

GENERIC_TITLES: dict[str, str] = {
    "adventure": "The Great Adventure Awaits",
    "friendship": "A New Friendship Begins",
    "learning": "The Amazing Discovery",
    "magic": "The Magical Quest",
    "nature": "Into the Enchanted Forest",
    "problem-solving": "The Mystery Solution",
    "bedtime": "A Peaceful Night Story",
    "family": "Family Love and Joy",
    "seasonal": "Seasonal Magic",
    "moral-lesson": "An Important Lesson",
}

GENERIC_SUMMARIES: dict[str, str] = {
    "adventure": "An exciting adventure story full of surprises and fun discoveries!",
    "friendship": "A heartwarming tale about the magic of friendship and caring for others.",
    "learning": "A story about curiosity, discovery, and the joy of learning new things.",
    "magic": "An enchanting tale filled with magical wonders and amazing surprises.",
    "nature": "A beautiful story about exploring nature and meeting wonderful creatures.",
    "problem-solving": "A clever story about using creativity and thinking to solve problems.",
    "bedtime": "A gentle, peaceful story perfect for drifting off to dreamland.",
    "family": "A loving story about family bonds, togetherness, and caring for each other.",
    "seasonal": "A delightful story celebrating the beauty and magic of the seasons.",
    "moral-lesson": "An inspiring story that teaches important lessons about being good and kind.",
}

# (month, day before which the holiday is still upcoming, holiday)
UPCOMING_HOLIDAYS: list[tuple[int, int, str]] = [
    (10, 31, "Halloween"),
    (11, 25, "Thanksgiving"),
    (12, 25, "Christmas"),
    (2, 14, "Valentine's Day"),
    (3, 17, "St. Patrick's Day"),
    (4, 22, "Easter"),
    (7, 4, "Fourth of July"),
]


class CharacterPreference(BaseModel):
    character_id: uuid.UUID
    character_name: str
    times_used: int
    favorite_themes: list[str] = Field(default_factory=list)
    personality_traits: list[str] = Field(default_factory=list)
    last_used: datetime | None = None


class RecommendationContext(BaseModel):
    child_profile_id: uuid.UUID
    child_age: int
    reading_history: list[uuid.UUID] = Field(default_factory=list)
    favorite_characters: list[CharacterPreference] = Field(default_factory=list)
    favorite_themes: list[str] = Field(default_factory=list)
    reading_level: ReadingLevel = "beginner"
    last_session_time: datetime | None = None


class StoryRecommendation(BaseModel):
    id: str
    title: str
    summary: str
    recommendation_reason: str
    match_score: int
    recommended_characters: list[uuid.UUID] = Field(default_factory=list)
    themes: list[str]
    age_groups: list[str]
    estimated_read_time: int


def determine_reading_level(age: int, story_count: int) -> ReadingLevel:
    if age <= 4 or story_count < 5:
        return "beginner"
    if age <= 8 or story_count < 20:
        return "intermediate"
    return "advanced"


def age_groups_for_age(age: int) -> list[str]:
    if age <= 3:
        return ["1-3"]
    if age <= 6:
        return ["3-6"]
    if age <= 10:
        return ["7-10"]
    return ["11-12"]


def estimate_read_time(age: int) -> int:
    if age <= 3:
        return 5
    if age <= 6:
        return 8
    if age <= 10:
        return 12
    return 15


def current_season(today: date) -> str:
    if 3 <= today.month <= 5:
        return "Spring"
    if 6 <= today.month <= 8:
        return "Summer"
    if 9 <= today.month <= 11:
        return "Fall"
    return "Winter"


def upcoming_holidays(today: date) -> list[str]:
    return [name for month, day, name in UPCOMING_HOLIDAYS if today.month == month and today.day < day]


def story_title(character_name: str, theme: str) -> str:
    variants = STORY_TITLES.get(theme, ["{name}'s Story"])
    # Stable per name so repeated requests show the same title.
    index = sum(ord(ch) for ch in character_name) % len(variants)
    return variants[index].format(name=character_name)


def story_summary(character_name: str, theme: str) -> str:
    template = STORY_SUMMARIES.get(theme, "A wonderful story featuring {name}.")
    return template.format(name=character_name)


class RecommendationEngine:
    """Ranks story ideas for one child from their characters and reading history."""

    def __init__(self, context: RecommendationContext, today: date | None = None):
        self.context = context
        self.today = today or datetime.now(timezone.utc).date()
        self.age_groups = age_groups_for_age(context.child_age)
        self.read_time = estimate_read_time(context.child_age)

    def _recommendation(self, **kwargs) -> StoryRecommendation:
        return StoryRecommendation(
            age_groups=self.age_groups,
            estimated_read_time=self.read_time,
            **kwargs,
        )

    def character_continuations(self) -> list[StoryRecommendation]:
        results = []
        top_characters = sorted(
            self.context.favorite_characters, key=lambda c: c.times_used, reverse=True
        )[:3]
        for character in top_characters:
            unexplored = [
                theme
                for theme in THEME_CHARACTER_COMPATIBILITY
                if theme not in character.favorite_themes and theme in self.context.favorite_themes
            ]
            for theme in unexplored[:2]:
                results.append(
                    self._recommendation(
                        id=f"char-{character.character_id}-{theme}",
                        title=story_title(character.character_name, theme),
                        summary=story_summary(character.character_name, theme),
                        recommendation_reason=(
                            f"Continue {character.character_name}'s adventures with a new {theme} story!"
                        ),
                        match_score=90 + character.times_used * 2,
                        recommended_characters=[character.character_id],
                        themes=[theme],
                    )
                )
        return results

    def theme_based(self) -> list[StoryRecommendation]:
        results = []
        for theme in self.context.favorite_themes[:3]:
            compatible_traits = set(THEME_CHARACTER_COMPATIBILITY.get(theme, []))
            compatible = [
                c
                for c in self.context.favorite_characters
                if compatible_traits.intersection(t.lower() for t in c.personality_traits)
            ]
            if compatible:
                best = compatible[0]
                results.append(
                    self._recommendation(
                        id=f"theme-{theme}-{best.character_id}",
                        title=story_title(best.character_name, theme),
                        summary=story_summary(best.character_name, theme),
                        recommendation_reason=f"Perfect {theme} adventure for {best.character_name}!",
                        match_score=85,
                        recommended_characters=[best.character_id],
                        themes=[theme],
                    )
                )
            else:
                results.append(
                    self._recommendation(
                        id=f"theme-new-{theme}",
                        title=GENERIC_TITLES.get(theme, "A Wonderful Story"),
                        summary=GENERIC_SUMMARIES.get(theme, "A wonderful story perfect for young readers."),
                        recommendation_reason=f"Create a new character perfect for {theme} stories!",
                        match_score=75,
                        themes=[theme],
                    )
                )
        return results

    def team_ups(self) -> list[StoryRecommendation]:
        results = []
        pairs = list(combinations(self.context.favorite_characters, 2))[:2]
        for first, second in pairs:
            shared = [t for t in first.favorite_themes if t in second.favorite_themes]
            if not shared:
                continue
            theme = shared[0]
            results.append(
                self._recommendation(
                    id=f"discovery-{first.character_id}-{second.character_id}-{theme}",
                    title=f"{first.character_name} and {second.character_name}'s {theme} Adventure",
                    summary=(
                        f"Watch {first.character_name} and {second.character_name} work together "
                        f"in an exciting {theme} story!"
                    ),
                    recommendation_reason="Try a team adventure with your favorite characters!",
                    match_score=70,
                    recommended_characters=[first.character_id, second.character_id],
                    themes=[theme],
                )
            )
        return results

    def seasonal(self) -> list[StoryRecommendation]:
        if not self.context.favorite_characters:
            return []
        character = self.context.favorite_characters[0]
        season = current_season(self.today)
        results = [
            self._recommendation(
                id=f"seasonal-{season}-{character.character_id}",
                title=f"{character.character_name}'s {season} Adventure",
                summary=f"Join {character.character_name} in a special {season} story full of seasonal magic!",
                recommendation_reason=f"Perfect for {season} season!",
                match_score=65,
                recommended_characters=[character.character_id],
                themes=["seasonal", "nature"],
            )
        ]
        for holiday in upcoming_holidays(self.today)[:1]:
            results.append(
                self._recommendation(
                    id=f"holiday-{holiday}-{character.character_id}",
                    title=f"{character.character_name}'s {holiday} Celebration",
                    summary=f"Celebrate {holiday} with {character.character_name} in this festive story!",
                    recommendation_reason=f"Get ready for {holiday}!",
                    match_score=80,
                    recommended_characters=[character.character_id],
                    themes=["seasonal", "family"],
                )
            )
        return results

    def generate(self, limit: int = MAX_RECOMMENDATIONS) -> list[StoryRecommendation]:
        recommendations = [
            *self.character_continuations(),
            *self.theme_based(),
            *self.team_ups(),
            *self.seasonal(),
        ]
        # sorted() is stable, so equal scores keep their source order.
        recommendations = sorted(recommendations, key=lambda r: r.match_score, reverse=True)
        return recommendations[:limit]


def build_recommendation_context(*, session: Session, child_profile: ChildProfile) -> RecommendationContext:
    characters = session.exec(
        select(Character).where(Character.child_profile_id == child_profile.id)
    ).all()
    stories = session.exec(
        select(Story)
        .where(Story.child_profile_id == child_profile.id)
        .order_by(col(Story.created_at).desc())
        .limit(HISTORY_WINDOW)
    ).all()

    preferences = []
    for character in characters:
        used_in = [s for s in character.stories if s.created_at]
        themes = list(dict.fromkeys(s.theme for s in used_in if s.theme))
        preferences.append(
            CharacterPreference(
                character_id=character.id,
                character_name=character.name,
                times_used=len(character.stories),
                favorite_themes=themes,
                personality_traits=list(character.personality_traits or []),
                last_used=max((ensure_utc(s.created_at) for s in used_in), default=None),
            )
        )
    preferences.sort(key=lambda p: p.times_used, reverse=True)

    theme_counts = Counter(s.theme for s in stories if s.theme)
    return RecommendationContext(
        child_profile_id=child_profile.id,
        child_age=child_profile.age,
        reading_history=[s.id for s in stories],
        favorite_characters=preferences,
        favorite_themes=[theme for theme, _ in theme_counts.most_common(5)],
        reading_level=determine_reading_level(child_profile.age, len(stories)),
        last_session_time=ensure_utc(stories[0].created_at) if stories and stories[0].created_at else None,
    )


def recommend_for_child(
    *, session: Session, child_profile: ChildProfile, quick: bool = False
) -> tuple[RecommendationContext, list[StoryRecommendation]]:
    context = build_recommendation_context(session=session, child_profile=child_profile)
    limit = QUICK_RECOMMENDATIONS if quick else MAX_RECOMMENDATIONS
    recommendations = RecommendationEngine(context).generate(limit=limit)
    logger.info(
        "Built %s recommendations for child profile %s (level=%s)",
        len(recommendations),
        child_profile.id,
        context.reading_level,
    )
    return context, recommendations
