from collections.abc import Callable, Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app import crud
from app.analytics_cache import analytics_cache
from app.api.deps import get_db
from app.main import app
from app.models import (
    Character,
    CharacterCreate,
    ChildProfile,
    ChildProfileCreate,
    Subscription,
    User,
    UserCreate,
)
from app.tests.utils import auth_headers_for


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_db] = lambda: session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def clear_analytics_cache():
    analytics_cache.clear()
    yield
    analytics_cache.clear()


@pytest.fixture
def user(session: Session) -> User:
    return crud.create_user(
        session=session,
        user_create=UserCreate(email="parent@example.com", password="storytime123"),
    )


@pytest.fixture
def auth_headers(user: User) -> dict[str, str]:
    return auth_headers_for(user)


@pytest.fixture
def superuser(session: Session) -> User:
    return crud.create_user(
        session=session,
        user_create=UserCreate(email="admin@example.com", password="adminpass123", is_superuser=True),
    )


@pytest.fixture
def superuser_headers(superuser: User) -> dict[str, str]:
    return auth_headers_for(superuser)


@pytest.fixture
def make_profile(session: Session) -> Callable[..., ChildProfile]:
    def _make(owner: User, **overrides: Any) -> ChildProfile:
        data = {"name": "Mia", "age": 6, "interests": ["dragons", "space"]}
        data.update(overrides)
        return crud.create_child_profile(
            session=session, profile_in=ChildProfileCreate(**data), owner_id=owner.id
        )

    return _make


@pytest.fixture
def make_character(session: Session) -> Callable[..., Character]:
    def _make(owner: User, profile: ChildProfile, **overrides: Any) -> Character:
        data = {
            "name": "Luna",
            "species": "dragon",
            "age": "5",
            "physical_features": "purple scales, golden eyes",
            "clothing_accessories": "red scarf",
            "personality_traits": ["brave", "kind"],
            "personality_description": "A gentle dragon who loves to help",
            "favorite_phrases": ["Let's fly!"],
            "child_profile_id": profile.id,
        }
        data.update(overrides)
        return crud.create_character(
            session=session, character_in=CharacterCreate(**data), owner_id=owner.id
        )

    return _make


@pytest.fixture
def set_plan(session: Session) -> Callable[..., Subscription]:
    def _set(user: User, plan: str) -> Subscription:
        subscription = crud.get_or_create_subscription(session=session, user_id=user.id)
        subscription.plan = plan
        session.add(subscription)
        session.commit()
        session.refresh(subscription)
        return subscription

    return _set
