from unittest.mock import AsyncMock, patch

from app import crud
from app.models import UserCreate
from app.tests.utils import API, auth_headers_for


def test_requests_without_token_are_rejected(client):
    response = client.get(f"{API}/child-profiles/")
    assert response.status_code == 401
    assert response.json()["error"] == "Not authenticated"


def test_invalid_token_is_rejected(client):
    response = client.get(f"{API}/users/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json() == {"error": "Could not validate credentials"}


def test_signup_login_and_read_me(client):
    response = client.post(
        f"{API}/users/signup",
        json={"email": "new@example.com", "password": "bedtime-stories", "full_name": "New Parent"},
    )
    assert response.status_code == 200
    assert response.json()["credits"] == 0

    response = client.post(
        f"{API}/login/access-token",
        data={"username": "new@example.com", "password": "bedtime-stories"},
    )
    assert response.status_code == 200
    token = response.json()["access_token"]

    response = client.get(f"{API}/users/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json()["email"] == "new@example.com"


def test_login_with_wrong_password(client, user):
    response = client.post(
        f"{API}/login/access-token",
        data={"username": user.email, "password": "wrong-password"},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Incorrect email or password"}


def test_create_and_list_child_profiles(client, auth_headers):
    response = client.post(
        f"{API}/child-profiles/",
        json={"name": "  Mia  ", "age": 6, "interests": ["dragons"]},
        headers=auth_headers,
    )
    assert response.status_code == 200
    created = response.json()
    assert created["name"] == "Mia"
    assert created["interests"] == ["dragons"]

    response = client.get(f"{API}/child-profiles/", headers=auth_headers)
    assert response.status_code == 200
    assert [p["id"] for p in response.json()] == [created["id"]]


def test_blank_profile_name_is_a_bad_request(client, auth_headers):
    response = client.post(f"{API}/child-profiles/", json={"name": "   ", "age": 5}, headers=auth_headers)
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid request"
    assert body["details"]


def test_free_plan_allows_one_child_profile(client, user, auth_headers, make_profile):
    make_profile(user)
    response = client.post(f"{API}/child-profiles/", json={"name": "Leo", "age": 4}, headers=auth_headers)
    assert response.status_code == 403
    body = response.json()
    assert body["error"] == "Child profile limit reached"
    assert body["current_count"] == 1
    assert body["limit"] == 1


def test_starter_plan_allows_more_profiles(client, user, auth_headers, make_profile, set_plan):
    set_plan(user, "starter")
    make_profile(user)
    response = client.post(f"{API}/child-profiles/", json={"name": "Leo", "age": 4}, headers=auth_headers)
    assert response.status_code == 200


def test_profiles_of_other_users_are_not_visible(client, session, auth_headers, make_profile):
    other = crud.create_user(
        session=session, user_create=UserCreate(email="other@example.com", password="otherpass123")
    )
    profile = make_profile(other)

    response = client.get(f"{API}/child-profiles/{profile.id}", headers=auth_headers)
    assert response.status_code == 404
    assert response.json() == {"error": "Child profile not found"}

    response = client.get(f"{API}/child-profiles/{profile.id}", headers=auth_headers_for(other))
    assert response.status_code == 200


def test_update_and_delete_child_profile(client, user, auth_headers, make_profile):
    profile = make_profile(user)
    response = client.patch(
        f"{API}/child-profiles/{profile.id}", json={"age": 7, "interests": ["ocean"]}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["age"] == 7
    assert response.json()["interests"] == ["ocean"]

    response = client.delete(f"{API}/child-profiles/{profile.id}", headers=auth_headers)
    assert response.status_code == 200
    assert client.get(f"{API}/child-profiles/{profile.id}", headers=auth_headers).status_code == 404


def test_update_with_null_name_keeps_profile_name(client, user, auth_headers, make_profile):
    profile = make_profile(user)
    response = client.patch(
        f"{API}/child-profiles/{profile.id}",
        json={"name": None, "interests": None, "age": 8},
        headers=auth_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Mia"
    assert body["interests"] == ["dragons", "space"]
    assert body["age"] == 8


def test_update_me_with_null_email_keeps_email(client, user, auth_headers):
    response = client.patch(
        f"{API}/users/me", json={"email": None, "full_name": "Sam Parent"}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["email"] == "parent@example.com"
    assert response.json()["full_name"] == "Sam Parent"


def test_ai_profile_uses_generated_avatar(client, auth_headers):
    with patch("app.api.routes.child_profiles.ImageClient") as image_cls, \
         patch("app.api.routes.child_profiles.store_remote_image", new=AsyncMock(return_value=("/uploads/avatars/a.png", "local"))):
        image_cls.return_value.generate_image = AsyncMock(return_value="https://images.example.com/a.png")
        response = client.post(
            f"{API}/child-profiles/ai",
            json={"name": "Mia", "age": 6, "visual_description": "curly red hair and freckles"},
            headers=auth_headers,
        )

    assert response.status_code == 200
    body = response.json()
    assert body["avatar_url"] == "/uploads/avatars/a.png"
    assert body["warning"] is None
    prompt = image_cls.return_value.generate_image.call_args.args[0]
    assert "curly red hair and freckles" in prompt


def test_ai_profile_is_kept_when_avatar_fails(client, auth_headers):
    with patch("app.api.routes.child_profiles.ImageClient") as image_cls:
        image_cls.return_value.generate_image = AsyncMock(side_effect=RuntimeError("image service down"))
        response = client.post(
            f"{API}/child-profiles/ai",
            json={"name": "Mia", "age": 6, "visual_description": "curly red hair"},
            headers=auth_headers,
        )

    assert response.status_code == 200
    body = response.json()
    assert body["avatar_url"] is None
    assert body["warning"]
