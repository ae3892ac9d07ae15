import uuid
from datetime import datetime
from typing import Any

from sqlmodel import Session, SQLModel, col, func, select

from app.core.security import get_password_hash, verify_password
from app.models import (
    Character,
    CharacterCreate,
    CharacterUpdate,
    ChildProfile,
    ChildProfileCreate,
    ChildProfileUpdate,
    Illustration,
    ReadingProgress,
    ReadingProgressUpdate,
    Story,
    StoryPage,
    Subscription,
    User,
    UserCreate,
    UserUpdate,
    UserUpdateMe,
    get_datetime_utc,
)


def drop_required_nulls(data: dict[str, Any], table: type[SQLModel]) -> dict[str, Any]:
    """Leave NOT NULL columns untouched when an update sends an explicit null."""
    columns = table.__table__.columns  # type: ignore[attr-defined]
    return {
        key: value
        for key, value in data.items()
        if value is not None or key not in columns or columns[key].nullable
    }


def create_user(*, session: Session, user_create: UserCreate) -> User:
    db_obj = User.model_validate(
        user_create, update={"hashed_password": get_password_hash(user_create.password)}
    )
    session.add(db_obj)
    session.commit()
    session.refresh(db_obj)
    return db_obj


def update_user(*, session: Session, db_user: User, user_in: UserUpdate | UserUpdateMe) -> Any:
    user_data = drop_required_nulls(user_in.model_dump(exclude_unset=True), User)
    extra_data = {}
    password = user_data.pop("password", None)
    if password:
        extra_data["hashed_password"] = get_password_hash(password)
    db_user.sqlmodel_update(user_data, update=extra_data)
    session.add(db_user)
    session.commit()
    session.refresh(db_user)
    return db_user


def get_user_by_email(*, session: Session, email: str) -> User | None:
    statement = select(User).where(User.email == email)
    session_user = session.exec(statement).first()
    return session_user


# Argon2 hash of a random password, verified when the email is unknown so that
# lookups for missing users take as long as real ones.
DUMMY_HASH = "$argon2id$v=19$m=65536,t=3,p=4$MjQyZWE1MzBjYjJlZTI0Yw$YTU4NGM5ZTZmYjE2NzZlZjY0ZWY3ZGRkY2U2OWFjNjk"


def authenticate(*, session: Session, email: str, password: str) -> User | None:
    db_user = get_user_by_email(session=session, email=email)
    if not db_user:
        verify_password(password, DUMMY_HASH)
        return None
    verified, updated_password_hash = verify_password(password, db_user.hashed_password)
    if not verified:
        return None
    if updated_password_hash:
        db_user.hashed_password = updated_password_hash
        session.add(db_user)
        session.commit()
        session.refresh(db_user)
    return db_user


# Child profiles

def create_child_profile(
    *, session: Session, profile_in: ChildProfileCreate, owner_id: uuid.UUID
) -> ChildProfile:
    db_profile = ChildProfile.model_validate(
        profile_in, update={"owner_id": owner_id, "name": profile_in.name.strip()}
    )
    session.add(db_profile)
    session.commit()
    session.refresh(db_profile)
    return db_profile


def get_owned_child_profile(
    *, session: Session, child_profile_id: uuid.UUID, owner_id: uuid.UUID
) -> ChildProfile | None:
    profile = session.get(ChildProfile, child_profile_id)
    if not profile or profile.owner_id != owner_id:
        return None
    return profile


def list_child_profiles(*, session: Session, owner_id: uuid.UUID) -> list[ChildProfile]:
    statement = (
        select(ChildProfile)
        .where(ChildProfile.owner_id == owner_id)
        .order_by(col(ChildProfile.created_at).asc())
    )
    return list(session.exec(statement).all())


def count_child_profiles(*, session: Session, owner_id: uuid.UUID) -> int:
    statement = select(func.count()).select_from(ChildProfile).where(ChildProfile.owner_id == owner_id)
    return session.exec(statement).one()


def update_child_profile(
    *, session: Session, db_profile: ChildProfile, profile_in: ChildProfileUpdate
) -> ChildProfile:
    profile_data = drop_required_nulls(profile_in.model_dump(exclude_unset=True), ChildProfile)
    if profile_data.get("name"):
        profile_data["name"] = profile_data["name"].strip()
    db_profile.sqlmodel_update(profile_data)
    session.add(db_profile)
    session.commit()
    session.refresh(db_profile)
    return db_profile


# Characters

def create_character(
    *, session: Session, character_in: CharacterCreate, owner_id: uuid.UUID
) -> Character:
    db_character = Character.model_validate(character_in, update={"owner_id": owner_id})
    session.add(db_character)
    session.commit()
    session.refresh(db_character)
    return db_character


def get_owned_character(
    *, session: Session, character_id: uuid.UUID, owner_id: uuid.UUID
) -> Character | None:
    character = session.get(Character, character_id)
    if not character or character.owner_id != owner_id:
        return None
    return character


def list_characters(
    *, session: Session, owner_id: uuid.UUID, child_profile_id: uuid.UUID | None = None
) -> list[Character]:
    statement = select(Character).where(Character.owner_id == owner_id)
    if child_profile_id:
        statement = statement.where(Character.child_profile_id == child_profile_id)
    statement = statement.order_by(col(Character.created_at).desc())
    return list(session.exec(statement).all())


def count_characters(*, session: Session, owner_id: uuid.UUID) -> int:
    statement = select(func.count()).select_from(Character).where(Character.owner_id == owner_id)
    return session.exec(statement).one()


def update_character(
    *, session: Session, db_character: Character, character_in: CharacterUpdate
) -> Character:
    character_data = drop_required_nulls(character_in.model_dump(exclude_unset=True), Character)
    db_character.sqlmodel_update(character_data, update={"updated_at": get_datetime_utc()})
    session.add(db_character)
    session.commit()
    session.refresh(db_character)
    return db_character


# Stories

def create_story_with_pages(
    *,
    session: Session,
    owner_id: uuid.UUID,
    child_profile_id: uuid.UUID,
    title: str,
    theme: str,
    summary: str | None,
    moral_lesson: str | None,
    pages: list[tuple[str, dict[str, str]]],
    characters: list[Character],
) -> Story:
    """Persist a story together with its numbered pages and character links in one commit."""
    db_story = Story(
        title=title,
        theme=theme,
        summary=summary,
        moral_lesson=moral_lesson,
        owner_id=owner_id,
        child_profile_id=child_profile_id,
    )
    db_story.characters = list(characters)
    for page_number, (content, character_descriptions) in enumerate(pages, start=1):
        db_story.pages.append(
            StoryPage(
                page_number=page_number,
                content=content,
                character_descriptions=character_descriptions,
            )
        )
    session.add(db_story)
    session.commit()
    session.refresh(db_story)
    return db_story


def get_owned_story(
    *, session: Session, story_id: uuid.UUID, owner_id: uuid.UUID
) -> Story | None:
    story = session.get(Story, story_id)
    if not story or story.owner_id != owner_id:
        return None
    return story


def list_stories(
    *, session: Session, owner_id: uuid.UUID, child_profile_id: uuid.UUID | None = None
) -> list[Story]:
    statement = select(Story).where(Story.owner_id == owner_id)
    if child_profile_id:
        statement = statement.where(Story.child_profile_id == child_profile_id)
    statement = statement.order_by(col(Story.created_at).desc())
    return list(session.exec(statement).all())


def count_stories_since(*, session: Session, owner_id: uuid.UUID, since: datetime) -> int:
    statement = (
        select(func.count())
        .select_from(Story)
        .where(Story.owner_id == owner_id, col(Story.created_at) >= since)
    )
    return session.exec(statement).one()


def get_story_page(*, session: Session, story_id: uuid.UUID, page_number: int) -> StoryPage | None:
    statement = select(StoryPage).where(
        StoryPage.story_id == story_id, StoryPage.page_number == page_number
    )
    return session.exec(statement).first()


def save_illustration(
    *, session: Session, page: StoryPage, url: str, prompt: str, storage: str
) -> Illustration:
    """Attach an illustration to a page, replacing any previous one."""
    db_illustration = session.exec(
        select(Illustration).where(Illustration.story_page_id == page.id)
    ).first()
    if db_illustration:
        db_illustration.url = url
        db_illustration.prompt = prompt
        db_illustration.storage = storage
        db_illustration.created_at = get_datetime_utc()
    else:
        db_illustration = Illustration(
            url=url,
            prompt=prompt,
            storage=storage,
            story_id=page.story_id,
            story_page_id=page.id,
        )
    session.add(db_illustration)
    session.commit()
    session.refresh(db_illustration)
    return db_illustration


# Reading progress

def upsert_reading_progress(
    *, session: Session, user_id: uuid.UUID, progress_in: ReadingProgressUpdate, story: Story
) -> ReadingProgress:
    now = get_datetime_utc()
    progress_percent = min(100, round(progress_in.current_page_number / progress_in.total_pages * 100))
    is_completed = progress_in.current_page_number >= progress_in.total_pages

    db_progress = session.exec(
        select(ReadingProgress).where(
            ReadingProgress.user_id == user_id,
            ReadingProgress.child_profile_id == progress_in.child_profile_id,
            ReadingProgress.story_id == progress_in.story_id,
        )
    ).first()
    if not db_progress:
        db_progress = ReadingProgress(
            user_id=user_id,
            child_profile_id=progress_in.child_profile_id,
            story_id=progress_in.story_id,
        )

    db_progress.current_page_number = progress_in.current_page_number
    db_progress.total_pages = progress_in.total_pages
    db_progress.progress_percent = progress_percent
    db_progress.time_spent = (db_progress.time_spent or 0) + progress_in.time_spent
    db_progress.is_completed = is_completed
    db_progress.device_type = progress_in.device_type or db_progress.device_type
    db_progress.session_id = progress_in.session_id or db_progress.session_id
    db_progress.last_read_at = now
    if is_completed and not db_progress.completed_at:
        db_progress.completed_at = now

    story.current_page = progress_in.current_page_number
    story.progress_percent = progress_percent
    story.is_completed = is_completed
    story.updated_at = now

    session.add(db_progress)
    session.add(story)
    session.commit()
    session.refresh(db_progress)
    return db_progress


def list_reading_progress(
    *,
    session: Session,
    user_id: uuid.UUID,
    child_profile_id: uuid.UUID | None = None,
    limit: int = 50,
) -> list[ReadingProgress]:
    statement = select(ReadingProgress).where(ReadingProgress.user_id == user_id)
    if child_profile_id:
        statement = statement.where(ReadingProgress.child_profile_id == child_profile_id)
    statement = statement.order_by(col(ReadingProgress.last_read_at).desc()).limit(limit)
    return list(session.exec(statement).all())


# Subscription

def get_or_create_subscription(*, session: Session, user_id: uuid.UUID) -> Subscription:
    subscription = session.exec(
        select(Subscription).where(Subscription.user_id == user_id)
    ).first()
    if subscription:
        return subscription
    subscription = Subscription(user_id=user_id)
    session.add(subscription)
    session.commit()
    session.refresh(subscription)
    return subscription


def get_profile_characters(
    *,
    session: Session,
    character_ids: list[uuid.UUID],
    owner_id: uuid.UUID,
    child_profile_id: uuid.UUID,
) -> list[Character]:
    """Characters with the given ids that belong to both the user and the child profile, in request order."""
    statement = select(Character).where(
        col(Character.id).in_(character_ids),
        Character.owner_id == owner_id,
        Character.child_profile_id == child_profile_id,
    )
    found = {character.id: character for character in session.exec(statement).all()}
    return [found[character_id] for character_id in dict.fromkeys(character_ids) if character_id in found]
