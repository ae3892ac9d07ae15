from app import crud
from app.analytics_cache import analytics_cache
from app.tests.utils import API

CONSISTENT_PAGE = "Luna the brave dragon with purple scales and golden eyes wore her red scarf. Let's fly!"


def make_story(session, user, profile, characters, content=CONSISTENT_PAGE, theme="space"):
    return crud.create_story_with_pages(
        session=session,
        owner_id=user.id,
        child_profile_id=profile.id,
        title="Night flight",
        theme=theme,
        summary=None,
        moral_lesson=None,
        pages=[(content, {})],
        characters=characters,
    )


def test_consistency_without_appearances(client, user, auth_headers, make_profile, make_character):
    character = make_character(user, make_profile(user))
    response = client.get(f"{API}/analytics/characters/{character.id}/consistency", headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["total_appearances"] == 0
    assert body["consistency_score"] == 100
    assert body["consistency_trend"] == "stable"
    assert body["last_appearance"] is None


def test_consistency_over_saved_stories_is_cached(client, session, user, auth_headers, make_profile, make_character):
    profile = make_profile(user)
    character = make_character(user, profile)
    make_story(session, user, profile, [character])

    response = client.get(f"{API}/analytics/characters/{character.id}/consistency", headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["total_appearances"] == 1
    assert body["visual_consistency_score"] == 100
    assert body["personality_consistency_score"] == 50
    assert body["speech_consistency_score"] == 80
    assert body["consistency_score"] == 76
    assert body["inconsistent_elements"] == ["Personality trait inconsistencies"]
    assert analytics_cache.stats()["character"]["size"] == 1


def test_real_time_analysis(client, user, auth_headers, make_profile, make_character):
    character = make_character(user, make_profile(user))
    response = client.post(
        f"{API}/analytics/real-time",
        json={
            "character_id": str(character.id),
            "story_content": "Luna spread her purple scales and fixed her red scarf. The courageous dragon shouted Let's fly!",
        },
        headers=auth_headers,
    )
    assert response.status_code == 200
    body = response.json()
    feedback = body["real_time_feedback"]
    assert feedback["visual_consistency"] == 67
    assert feedback["personality_consistency"] == 50
    assert feedback["speech_consistency"] == 80
    assert feedback["overall_score"] == 66
    assert feedback["warnings"] == []
    assert body["historical_consistency"]["consistency_score"] == 100
    assert body["suggestions"] == []
    assert analytics_cache.stats()["realtime"]["size"] == 1


def test_real_time_analysis_for_unknown_character(client, auth_headers):
    response = client.post(
        f"{API}/analytics/real-time",
        json={"character_id": "00000000-0000-0000-0000-000000000000", "story_content": "text"},
        headers=auth_headers,
    )
    assert response.status_code == 404


def test_dashboard(client, session, user, auth_headers, make_profile, make_character):
    profile = make_profile(user)
    character = make_character(user, profile)
    make_story(session, user, profile, [character])

    response = client.get(f"{API}/analytics/dashboard", headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["overview"] == {
        "total_characters": 1,
        "total_stories": 1,
        "total_profiles": 1,
        "recent_activity": 1,
    }
    assert body["engagement"]["character_reuse_rate"] == 100
    assert body["engagement"]["reading_streak"] == 1
    assert body["favorite_themes"] == [{"theme": "space", "count": 1}]
    assert body["character_usage"][0]["name"] == "Luna"
    assert body["engagement_score"] == 22


def test_character_overview_and_engagement(client, session, user, auth_headers, make_profile, make_character):
    profile = make_profile(user)
    character = make_character(user, profile)
    make_story(session, user, profile, [character], theme="space")
    make_story(session, user, profile, [character], theme="ocean")

    response = client.get(f"{API}/analytics/characters", headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    item = body["characters"][0]
    assert item["appearances"] == 2
    assert item["unique_themes"] == 2
    assert item["child_profile"] == "Mia"
    assert body["summary"]["most_used_character"] == "Luna"

    response = client.get(f"{API}/analytics/engagement", headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["character_reuse_rate"] == 100
    assert body["character_diversity"] == 100
    assert body["favorite_characters"][0]["usage_count"] == 2


def test_events(client, auth_headers):
    response = client.post(
        f"{API}/analytics/events",
        json={"type": "story-generation", "data": {"theme": "space"}},
        headers=auth_headers,
    )
    assert response.status_code == 200

    response = client.post(f"{API}/analytics/events", json={"type": "page-view"}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid analytics event type"}


def test_platform_report_requires_superuser(client, auth_headers, superuser_headers, user):
    response = client.get(f"{API}/analytics/platform", headers=auth_headers)
    assert response.status_code == 403

    response = client.get(f"{API}/analytics/platform", headers=superuser_headers)
    assert response.status_code == 200
    assert response.json()["total_users"] == 2


def test_cache_stats(client, superuser_headers):
    response = client.get(f"{API}/analytics/cache", headers=superuser_headers)
    assert response.status_code == 200
    assert response.json() == {
        "character": {"size": 0, "max_size": 500},
        "analytics": {"size": 0, "max_size": 1000},
        "realtime": {"size": 0, "max_size": 100},
    }
