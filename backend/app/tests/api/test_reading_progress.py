from datetime import datetime, timedelta, timezone

from app import crud
from app.api.routes.reading_progress import build_reading_summary
from app.models import ReadingProgress
from app.tests.utils import API


def make_story(session, user, profile, characters, theme="space", pages=4):
    return crud.create_story_with_pages(
        session=session,
        owner_id=user.id,
        child_profile_id=profile.id,
        title=f"A {theme} story",
        theme=theme,
        summary=None,
        moral_lesson=None,
        pages=[(f"Page {i}", {}) for i in range(1, pages + 1)],
        characters=characters,
    )


def post_progress(client, headers, profile, story, current, total, time_spent=0):
    return client.post(
        f"{API}/reading-progress/",
        json={
            "child_profile_id": str(profile.id),
            "story_id": str(story.id),
            "current_page_number": current,
            "total_pages": total,
            "time_spent": time_spent,
            "device_type": "tablet",
        },
        headers=headers,
    )


def test_progress_is_upserted_and_mirrored_on_the_story(client, session, user, auth_headers, make_profile, make_character):
    profile = make_profile(user)
    story = make_story(session, user, profile, [make_character(user, profile)])

    response = post_progress(client, auth_headers, profile, story, current=1, total=3, time_spent=40)
    assert response.status_code == 200
    body = response.json()
    assert body["progress_percent"] == 33
    assert body["is_completed"] is False
    assert body["completed_at"] is None

    response = post_progress(client, auth_headers, profile, story, current=3, total=3, time_spent=20)
    assert response.status_code == 200
    body = response.json()
    assert body["progress_percent"] == 100
    assert body["is_completed"] is True
    assert body["time_spent"] == 60
    assert body["completed_at"] is not None

    story_body = client.get(f"{API}/stories/{story.id}", headers=auth_headers).json()
    assert story_body["current_page"] == 3
    assert story_body["reading_progress"] == 100
    assert story_body["is_completed"] is True


def test_progress_for_unknown_story(client, user, auth_headers, make_profile):
    profile = make_profile(user)
    response = client.post(
        f"{API}/reading-progress/",
        json={
            "child_profile_id": str(profile.id),
            "story_id": "00000000-0000-0000-0000-000000000000",
            "current_page_number": 1,
            "total_pages": 2,
        },
        headers=auth_headers,
    )
    assert response.status_code == 404


def test_zero_total_pages_is_invalid(client, session, user, auth_headers, make_profile, make_character):
    profile = make_profile(user)
    story = make_story(session, user, profile, [make_character(user, profile)])
    response = post_progress(client, auth_headers, profile, story, current=1, total=0)
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request"


def test_single_record_lookup(client, session, user, auth_headers, make_profile, make_character):
    profile = make_profile(user)
    story = make_story(session, user, profile, [make_character(user, profile)])

    params = {"child_profile_id": str(profile.id), "story_id": str(story.id)}
    response = client.get(f"{API}/reading-progress/", params=params, headers=auth_headers)
    assert response.status_code == 404

    post_progress(client, auth_headers, profile, story, current=2, total=4)
    response = client.get(f"{API}/reading-progress/", params=params, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["progress_percent"] == 50


def test_list_with_summary(client, session, user, auth_headers, make_profile, make_character):
    profile = make_profile(user)
    character = make_character(user, profile)
    space = make_story(session, user, profile, [character], theme="space")
    ocean = make_story(session, user, profile, [character], theme="ocean")
    post_progress(client, auth_headers, profile, space, current=4, total=4, time_spent=120)
    post_progress(client, auth_headers, profile, ocean, current=1, total=4, time_spent=30)

    response = client.get(f"{API}/reading-progress/", headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert [record["story_id"] for record in body["data"]] == [str(ocean.id), str(space.id)]
    summary = body["summary"]
    assert summary["total_stories_read"] == 2
    assert summary["total_time_spent"] == 150
    assert summary["average_completion_rate"] == 62
    assert summary["completed_stories"] == 1
    assert summary["stories_in_progress"] == 1
    assert summary["reading_streak"] == 1
    assert set(summary["favorite_genres"]) == {"space", "ocean"}


def test_empty_list(client, auth_headers):
    response = client.get(f"{API}/reading-progress/", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["data"] == []
    assert response.json()["summary"]["total_stories_read"] == 0


def test_deleting_a_story_removes_its_progress(client, session, user, auth_headers, make_profile, make_character):
    profile = make_profile(user)
    character = make_character(user, profile)
    kept = make_story(session, user, profile, [character], theme="ocean")
    removed = make_story(session, user, profile, [character], theme="space")
    post_progress(client, auth_headers, profile, kept, current=1, total=4, time_spent=30)
    post_progress(client, auth_headers, profile, removed, current=4, total=4, time_spent=120)

    assert client.delete(f"{API}/stories/{removed.id}", headers=auth_headers).status_code == 200

    body = client.get(f"{API}/reading-progress/", headers=auth_headers).json()
    assert [record["story_id"] for record in body["data"]] == [str(kept.id)]
    assert body["summary"]["total_stories_read"] == 1
    assert body["summary"]["total_time_spent"] == 30
    assert body["summary"]["average_completion_rate"] == 25


def test_deleting_a_profile_removes_its_progress(client, session, user, auth_headers, make_profile, make_character):
    profile = make_profile(user)
    story = make_story(session, user, profile, [make_character(user, profile)])
    post_progress(client, auth_headers, profile, story, current=2, total=4)

    assert client.delete(f"{API}/child-profiles/{profile.id}", headers=auth_headers).status_code == 200

    body = client.get(f"{API}/reading-progress/", headers=auth_headers).json()
    assert body["data"] == []
    assert body["summary"]["total_stories_read"] == 0


def test_streak_uses_start_and_completion_days():
    now = datetime.now(timezone.utc)
    # One story started two days ago, finished yesterday and reread today.
    record = ReadingProgress(
        current_page_number=4,
        total_pages=4,
        progress_percent=100,
        is_completed=True,
        started_at=now - timedelta(days=2),
        completed_at=now - timedelta(days=1),
        last_read_at=now,
    )
    assert build_reading_summary([record]).reading_streak == 3
