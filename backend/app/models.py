import uuid
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import EmailStr, field_validator
from sqlalchemy import DateTime, JSON, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


def get_datetime_utc() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


PlanName = Literal["free", "starter", "premium", "lifetime"]


# Shared properties
class UserBase(SQLModel):
    email: EmailStr = Field(unique=True, index=True, max_length=255)
    is_active: bool = True
    is_superuser: bool = False
    full_name: str | None = Field(default=None, max_length=255)


# Properties to receive via API on creation
class UserCreate(UserBase):
    password: str = Field(min_length=8, max_length=128)


class UserRegister(SQLModel):
    email: EmailStr = Field(max_length=255)
    password: str = Field(min_length=8, max_length=128)
    full_name: str | None = Field(default=None, max_length=255)


# Properties to receive via API on update, all are optional
class UserUpdate(UserBase):
    email: EmailStr | None = Field(default=None, max_length=255)  # type: ignore
    password: str | None = Field(default=None, min_length=8, max_length=128)


class UserUpdateMe(SQLModel):
    full_name: str | None = Field(default=None, max_length=255)
    email: EmailStr | None = Field(default=None, max_length=255)


# Database model, database table inferred from class name
class User(UserBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    hashed_password: str
    credits: int = Field(default=0, ge=0)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    child_profiles: list["ChildProfile"] = Relationship(back_populates="owner", cascade_delete=True)
    subscription: Optional["Subscription"] = Relationship(
        back_populates="user",
        cascade_delete=True,
        sa_relationship_kwargs={"uselist": False},
    )


# Properties to return via API, id is always required
class UserPublic(UserBase):
    id: uuid.UUID
    credits: int = 0
    created_at: datetime | None = None


# Generic message
class Message(SQLModel):
    message: str


# JSON payload containing access token
class Token(SQLModel):
    access_token: str
    token_type: str = "bearer"


# Contents of JWT token
class TokenPayload(SQLModel):
    sub: str | None = None


# Child profiles

class ChildProfileBase(SQLModel):
    name: str = Field(min_length=1, max_length=100)
    age: int = Field(ge=0, le=18)
    interests: list[str] = Field(default_factory=list, sa_type=JSON)
    avatar_url: str | None = Field(default=None)


class ChildProfileCreate(ChildProfileBase):
    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name is required")
        return value


class ChildProfileAICreate(ChildProfileCreate):
    visual_description: str = Field(min_length=1, max_length=1000)


class ChildProfileUpdate(SQLModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    age: int | None = Field(default=None, ge=0, le=18)
    interests: list[str] | None = None
    avatar_url: str | None = None


class ChildProfile(ChildProfileBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    owner_id: uuid.UUID = Field(
        foreign_key="user.id", nullable=False, ondelete="CASCADE"
    )
    owner: User | None = Relationship(back_populates="child_profiles")
    characters: list["Character"] = Relationship(back_populates="child_profile", cascade_delete=True)
    stories: list["Story"] = Relationship(back_populates="child_profile", cascade_delete=True)
    progress_records: list["ReadingProgress"] = Relationship(back_populates="child_profile", cascade_delete=True)


class ChildProfilePublic(ChildProfileBase):
    id: uuid.UUID
    owner_id: uuid.UUID
    created_at: datetime | None = None


class ChildProfileCreated(ChildProfilePublic):
    warning: str | None = None


# Characters

class StoryCharacterLink(SQLModel, table=True):
    story_id: uuid.UUID = Field(
        foreign_key="story.id", primary_key=True, ondelete="CASCADE"
    )
    character_id: uuid.UUID = Field(
        foreign_key="character.id", primary_key=True, ondelete="CASCADE"
    )


class CharacterBase(SQLModel):
    name: str = Field(min_length=1, max_length=100)
    species: str = Field(min_length=1, max_length=100)
    age: str = Field(min_length=1, max_length=50)
    physical_features: str = Field(min_length=1, max_length=2000)
    clothing_accessories: str | None = Field(default=None, max_length=2000)
    personality_traits: list[str] = Field(default_factory=list, sa_type=JSON)
    personality_description: str = Field(min_length=1, max_length=2000)
    special_abilities: str | None = Field(default=None, max_length=2000)
    favorite_things: str | None = Field(default=None, max_length=2000)
    speaking_style: str | None = Field(default=None, max_length=1000)
    favorite_phrases: list[str] = Field(default_factory=list, sa_type=JSON)
    age_groups: list[str] = Field(default_factory=lambda: ["3-6", "7-10"], sa_type=JSON)
    style_name: str = Field(default="storybook_soft", max_length=50)
    image_url: str | None = Field(default=None)


class CharacterCreate(CharacterBase):
    child_profile_id: uuid.UUID


# PUT replaces the editable fields; omitted fields keep their stored value.
class CharacterUpdate(SQLModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    species: str | None = Field(default=None, min_length=1, max_length=100)
    age: str | None = Field(default=None, min_length=1, max_length=50)
    physical_features: str | None = Field(default=None, min_length=1, max_length=2000)
    clothing_accessories: str | None = Field(default=None, max_length=2000)
    personality_traits: list[str] | None = None
    personality_description: str | None = Field(default=None, min_length=1, max_length=2000)
    special_abilities: str | None = Field(default=None, max_length=2000)
    favorite_things: str | None = Field(default=None, max_length=2000)
    speaking_style: str | None = Field(default=None, max_length=1000)
    favorite_phrases: list[str] | None = None
    age_groups: list[str] | None = None
    style_name: str | None = Field(default=None, max_length=50)
    image_url: str | None = None


class Character(CharacterBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    owner_id: uuid.UUID = Field(
        foreign_key="user.id", nullable=False, ondelete="CASCADE"
    )
    child_profile_id: uuid.UUID = Field(
        foreign_key="childprofile.id", nullable=False, ondelete="CASCADE"
    )
    child_profile: ChildProfile | None = Relationship(back_populates="characters")
    stories: list["Story"] = Relationship(back_populates="characters", link_model=StoryCharacterLink)


class CharacterPublic(CharacterBase):
    id: uuid.UUID
    owner_id: uuid.UUID
    child_profile_id: uuid.UUID
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CharacterAvatarRequest(SQLModel):
    style_name: str | None = None


# Stories

class StoryBase(SQLModel):
    title: str = Field(min_length=1, max_length=255)
    theme: str = Field(min_length=1, max_length=100)
    summary: str | None = Field(default=None)
    moral_lesson: str | None = Field(default=None, max_length=500)
    current_page: int = Field(default=0, ge=0)
    is_completed: bool = False
    progress_percent: int = Field(default=0, ge=0, le=100)


class Story(StoryBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    owner_id: uuid.UUID = Field(
        foreign_key="user.id", nullable=False, ondelete="CASCADE"
    )
    child_profile_id: uuid.UUID = Field(
        foreign_key="childprofile.id", nullable=False, ondelete="CASCADE"
    )
    child_profile: ChildProfile | None = Relationship(back_populates="stories")
    pages: list["StoryPage"] = Relationship(
        back_populates="story",
        cascade_delete=True,
        sa_relationship_kwargs={"order_by": "StoryPage.page_number"},
    )
    characters: list[Character] = Relationship(back_populates="stories", link_model=StoryCharacterLink)
    progress_records: list["ReadingProgress"] = Relationship(back_populates="story", cascade_delete=True)


class StoryPage(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("story_id", "page_number"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    page_number: int = Field(ge=1)
    content: str
    character_descriptions: dict[str, str] = Field(default_factory=dict, sa_type=JSON)
    story_id: uuid.UUID = Field(
        foreign_key="story.id", nullable=False, ondelete="CASCADE"
    )
    story: Story | None = Relationship(back_populates="pages")
    illustration: Optional["Illustration"] = Relationship(
        back_populates="page",
        cascade_delete=True,
        sa_relationship_kwargs={"uselist": False},
    )


class Illustration(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    url: str
    prompt: str
    storage: str = Field(default="original", max_length=20)  # local, original
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    story_id: uuid.UUID = Field(
        foreign_key="story.id", nullable=False, ondelete="CASCADE", index=True
    )
    story_page_id: uuid.UUID = Field(
        foreign_key="storypage.id", nullable=False, ondelete="CASCADE", unique=True
    )
    page: StoryPage | None = Relationship(back_populates="illustration")


class IllustrationPublic(SQLModel):
    id: uuid.UUID
    url: str
    prompt: str
    storage: str
    created_at: datetime | None = None


class StoryPagePublic(SQLModel):
    id: uuid.UUID
    page_number: int
    content: str
    character_descriptions: dict[str, str] = {}
    illustration: IllustrationPublic | None = None


class StoryPublic(StoryBase):
    id: uuid.UUID
    owner_id: uuid.UUID
    child_profile_id: uuid.UUID
    created_at: datetime | None = None
    updated_at: datetime | None = None
    pages: list[StoryPagePublic] = []
    character_ids: list[uuid.UUID] = []


class StoryDetailPublic(StoryPublic):
    reading_progress: int = 0
    characters: list[CharacterPublic] = []
    child_profile: ChildProfilePublic | None = None


class StoryUpdate(SQLModel):
    current_page: int | None = Field(default=None, ge=0)
    is_completed: bool | None = None
    reading_progress: int | None = Field(default=None, ge=0, le=100)


class StorySave(SQLModel):
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)
    theme: str = Field(min_length=1, max_length=100)
    character_ids: list[uuid.UUID] = Field(min_length=1)
    child_profile_id: uuid.UUID
    moral_lesson: str | None = Field(default=None, max_length=500)


class StoryGenerateRequest(SQLModel):
    child_profile_id: uuid.UUID | None = None
    theme: str = ""
    character_ids: list[uuid.UUID] = []
    moral_lesson: str | None = Field(default=None, max_length=500)
    details: str | None = Field(default=None, max_length=2000)
    page_count: int = Field(default=5, ge=1, le=12)


# Reading progress

class ReadingProgress(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "child_profile_id", "story_id"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    current_page_number: int = Field(default=0, ge=0)
    total_pages: int = Field(default=1, ge=1)
    progress_percent: int = Field(default=0, ge=0, le=100)
    time_spent: int = Field(default=0, ge=0)  # seconds
    is_completed: bool = False
    device_type: str | None = Field(default=None, max_length=50)
    session_id: str | None = Field(default=None, max_length=255)
    started_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    last_read_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    completed_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    user_id: uuid.UUID = Field(
        foreign_key="user.id", nullable=False, ondelete="CASCADE"
    )
    child_profile_id: uuid.UUID = Field(
        foreign_key="childprofile.id", nullable=False, ondelete="CASCADE"
    )
    story_id: uuid.UUID = Field(
        foreign_key="story.id", nullable=False, ondelete="CASCADE"
    )
    story: Story | None = Relationship(back_populates="progress_records")
    child_profile: ChildProfile | None = Relationship(back_populates="progress_records")


class ReadingProgressUpdate(SQLModel):
    child_profile_id: uuid.UUID
    story_id: uuid.UUID
    current_page_number: int = Field(ge=0)
    total_pages: int = Field(ge=1)
    time_spent: int = Field(default=0, ge=0)
    device_type: str | None = Field(default=None, max_length=50)
    session_id: str | None = Field(default=None, max_length=255)


class ReadingProgressPublic(SQLModel):
    id: uuid.UUID
    user_id: uuid.UUID
    child_profile_id: uuid.UUID
    story_id: uuid.UUID
    current_page_number: int
    total_pages: int
    progress_percent: int
    time_spent: int
    is_completed: bool
    device_type: str | None = None
    session_id: str | None = None
    started_at: datetime | None = None
    last_read_at: datetime | None = None
    completed_at: datetime | None = None


class ReadingSummary(SQLModel):
    total_stories_read: int
    total_time_spent: int
    average_completion_rate: int
    favorite_genres: list[str]
    reading_streak: int
    stories_in_progress: int
    completed_stories: int


class ReadingProgressList(SQLModel):
    data: list[ReadingProgressPublic]
    summary: ReadingSummary


# Subscription

class Subscription(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    plan: str = Field(default="free", max_length=20)
    status: str = Field(default="active", max_length=20)
    expires_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    user_id: uuid.UUID = Field(
        foreign_key="user.id", nullable=False, ondelete="CASCADE", unique=True
    )
    user: User | None = Relationship(back_populates="subscription")


class SubscriptionUpdate(SQLModel):
    plan: PlanName | None = None
    status: Literal["active", "canceled", "past_due"] | None = None
    expires_at: datetime | None = None
    credits_delta: int = 0


class SubscriptionUsage(SQLModel):
    stories_this_month: int
    stories_limit: int
    credits: int
    images_per_story: int
    child_profiles_count: int
    child_profiles_limit: int
    characters_count: int
    characters_limit: int


class SubscriptionPublic(SQLModel):
    plan: str
    status: str
    usage: SubscriptionUsage
    plan_expires_at: datetime | None = None
    features: list[str]


# Illustration endpoints

class PromptCharacter(SQLModel):
    name: str = Field(min_length=1)
    species: str = Field(min_length=1)
    traits: list[str] = []


class PromptScene(SQLModel):
    location: str = Field(min_length=1)
    action: str = Field(min_length=1)
    lighting: str | None = None


class IllustrationPromptRequest(SQLModel):
    character: PromptCharacter
    scene: PromptScene
    style: str | None = None
    notes: str | None = None


class IllustrationPromptPublic(SQLModel):
    prompt: str
    cleaned_prompt: str
    character_memory: str


class ImageGenerateRequest(SQLModel):
    prompt: str


class ImageGeneratePublic(SQLModel):
    image_url: str
    prompt: str
    metadata: dict[str, Any]


# Analytics and recommendations

class RealTimeAnalysisRequest(SQLModel):
    character_id: uuid.UUID
    story_content: str = Field(min_length=1)
    story_context: str | None = None


class AnalyticsEvent(SQLModel):
    type: str
    data: dict[str, Any] = {}


class RecommendationInteraction(SQLModel):
    recommendation_id: str = Field(min_length=1)
    action: Literal["viewed", "clicked", "created", "dismissed"]
    child_profile_id: uuid.UUID
