import logging
import uuid
from collections.abc import Sequence
from typing import Any

from fastapi import APIRouter, HTTPException
from sqlmodel import select

from app import crud
from app.analytics import reading_streak, top_themes
from app.api.deps import CurrentUser, SessionDep
from app.models import (
    ReadingProgress,
    ReadingProgressList,
    ReadingProgressPublic,
    ReadingProgressUpdate,
    ReadingSummary,
)

router = APIRouter(prefix="/reading-progress", tags=["reading-progress"])
logger = logging.getLogger(__name__)


def build_reading_summary(records: Sequence[ReadingProgress]) -> ReadingSummary:
    if not records:
        return ReadingSummary(
            total_stories_read=0,
            total_time_spent=0,
            average_completion_rate=0,
            favorite_genres=[],
            reading_streak=0,
            stories_in_progress=0,
            completed_stories=0,
        )
    completed = sum(1 for record in records if record.is_completed)
    return ReadingSummary(
        total_stories_read=len(records),
        total_time_spent=sum(record.time_spent for record in records),
        average_completion_rate=round(sum(record.progress_percent for record in records) / len(records)),
        favorite_genres=[
            item.theme for item in top_themes((r.story.theme for r in records if r.story), 3)
        ],
        reading_streak=reading_streak(
            stamp
            for record in records
            for stamp in (record.started_at, record.completed_at, record.last_read_at)
        ),
        stories_in_progress=len(records) - completed,
        completed_stories=completed,
    )


@router.post("/", response_model=ReadingProgressPublic)
def update_reading_progress(
    *, session: SessionDep, current_user: CurrentUser, progress_in: ReadingProgressUpdate
) -> Any:
    story = crud.get_owned_story(session=session, story_id=progress_in.story_id, owner_id=current_user.id)
    if not story or story.child_profile_id != progress_in.child_profile_id:
        raise HTTPException(status_code=404, detail="Story not found")
    progress = crud.upsert_reading_progress(
        session=session, user_id=current_user.id, progress_in=progress_in, story=story
    )
    if progress.is_completed:
        logger.info("Story %s completed by child profile %s", story.id, progress.child_profile_id)
    return progress


@router.get("/", response_model=ReadingProgressPublic | ReadingProgressList)
def read_reading_progress(
    session: SessionDep,
    current_user: CurrentUser,
    child_profile_id: uuid.UUID | None = None,
    story_id: uuid.UUID | None = None,
) -> Any:
    """A single record when both ids are given, otherwise recent records with a summary."""
    if child_profile_id and story_id:
        progress = session.exec(
            select(ReadingProgress).where(
                ReadingProgress.user_id == current_user.id,
                ReadingProgress.child_profile_id == child_profile_id,
                ReadingProgress.story_id == story_id,
            )
        ).first()
        if not progress:
            raise HTTPException(status_code=404, detail="Reading progress not found")
        return ReadingProgressPublic.model_validate(progress)

    records = crud.list_reading_progress(
        session=session, user_id=current_user.id, child_profile_id=child_profile_id
    )
    return ReadingProgressList(
        data=[ReadingProgressPublic.model_validate(record) for record in records],
        summary=build_reading_summary(records),
    )
