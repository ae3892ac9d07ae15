import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from app import crud
from app.api.deps import CurrentUser, SessionDep, get_current_active_superuser
from app.models import (
    Subscription,
    SubscriptionPublic,
    SubscriptionUpdate,
    SubscriptionUsage,
    User,
    get_datetime_utc,
)
from app.plan_limits import resolve_user_plan, start_of_month

router = APIRouter(prefix="/subscription", tags=["subscription"])
logger = logging.getLogger(__name__)


def subscription_overview(*, session: Session, user: User) -> SubscriptionPublic:
    plan, limits, subscription = resolve_user_plan(session=session, user_id=user.id)
    return SubscriptionPublic(
        plan=plan,
        status=subscription.status,
        usage=SubscriptionUsage(
            stories_this_month=crud.count_stories_since(
                session=session, owner_id=user.id, since=start_of_month()
            ),
            stories_limit=limits.stories_per_month,
            credits=user.credits,
            images_per_story=limits.images_per_story,
            child_profiles_count=crud.count_child_profiles(session=session, owner_id=user.id),
            child_profiles_limit=limits.child_profiles,
            characters_count=crud.count_characters(session=session, owner_id=user.id),
            characters_limit=limits.characters_limit,
        ),
        plan_expires_at=subscription.expires_at,
        features=limits.features,
    )


@router.get("/", response_model=SubscriptionPublic)
def read_subscription(session: SessionDep, current_user: CurrentUser) -> Any:
    return subscription_overview(session=session, user=current_user)


@router.put(
    "/{user_id}",
    dependencies=[Depends(get_current_active_superuser)],
    response_model=SubscriptionPublic,
)
def update_subscription(
    *, user_id: uuid.UUID, session: SessionDep, subscription_in: SubscriptionUpdate
) -> Any:
    """Set a user's plan and adjust their credits."""
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    subscription = crud.get_or_create_subscription(session=session, user_id=user.id)
    subscription_data = crud.drop_required_nulls(
        subscription_in.model_dump(exclude_unset=True, exclude={"credits_delta"}), Subscription
    )
    subscription.sqlmodel_update(subscription_data, update={"updated_at": get_datetime_utc()})
    if subscription_in.credits_delta:
        user.credits = max(0, user.credits + subscription_in.credits_delta)
        session.add(user)
    session.add(subscription)
    session.commit()
    session.refresh(user)
    logger.info("Updated subscription for user %s to plan %s", user.id, subscription.plan)
    return subscription_overview(session=session, user=user)
