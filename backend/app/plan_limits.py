import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field
from sqlmodel import Session

from app import crud
from app.models import Subscription, ensure_utc

UNLIMITED = -1


class PlanLimits(BaseModel):
    stories_per_month: int = Field(description="Stories the plan allows per calendar month")
    images_per_story: int = Field(description="Pages illustrated per generated story")
    child_profiles: int = Field(description="Child profiles the account may hold")
    characters_limit: int = Field(description="Characters the account may hold")
    features: list[str] = Field(default_factory=list)


PLAN_LIMITS: dict[str, PlanLimits] = {
    "free": PlanLimits(
        stories_per_month=3,
        images_per_story=1,
        child_profiles=1,
        characters_limit=3,
        features=["basic-stories", "reading-progress", "low-res-images"],
    ),
    "starter": PlanLimits(
        stories_per_month=30,
        images_per_story=3,
        child_profiles=3,
        characters_limit=UNLIMITED,
        features=["character-creation", "character-consistency", "hd-images", "priority-queue"],
    ),
    "premium": PlanLimits(
        stories_per_month=100,
        images_per_story=5,
        child_profiles=UNLIMITED,
        characters_limit=UNLIMITED,
        features=["advanced-customization", "audio-narration", "offline-reading", "early-access"],
    ),
    "lifetime": PlanLimits(
        stories_per_month=100,
        images_per_story=5,
        child_profiles=UNLIMITED,
        characters_limit=UNLIMITED,
        features=["all-premium-features", "annual-printed-book"],
    ),
}


def get_plan_limits(plan: str | None) -> PlanLimits:
    """Unknown plan names fall back to the free tier."""
    return PLAN_LIMITS.get((plan or "").lower(), PLAN_LIMITS["free"])


def is_within_limit(current_count: int, limit: int) -> bool:
    return limit == UNLIMITED or current_count < limit


def effective_plan(subscription: Subscription | None, now: datetime | None = None) -> str:
    if not subscription or subscription.plan not in PLAN_LIMITS:
        return "free"
    if subscription.status != "active":
        return "free"
    if subscription.expires_at is not None:
        now = now or datetime.now(timezone.utc)
        if ensure_utc(subscription.expires_at) < now:
            return "free"
    return subscription.plan


def start_of_month(now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def resolve_user_plan(*, session: Session, user_id: uuid.UUID) -> tuple[str, PlanLimits, Subscription]:
    subscription = crud.get_or_create_subscription(session=session, user_id=user_id)
    plan = effective_plan(subscription)
    return plan, get_plan_limits(plan), subscription
