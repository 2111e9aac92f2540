import json

import httpx
import pytest

from conftest import make_entry, make_profile, make_project, utc
from timeflow.crud.profiles import get_profile
from timeflow.services.admin_users import create_user, delete_user, reset_password, toggle_capture, update_user
from timeflow.services.analytics import admin_analytics, range_start

NOW = utc(2025, 3, 12, 12, 0)


def test_create_user_provisions_auth_account_and_profile(db_session, auth_client, auth_handler, auth_transport):
    auth_handler.handler = lambda request: httpx.Response(200, json={"id": "new-user", "email": "new@example.com"})

    result = create_user(
        db_session,
        auth_client,
        {"email": "new@example.com", "password": "secret1", "full_name": "New Person", "role": "Manager", "team": " "},
    )

    request = auth_transport.requests[-1]
    assert request.url.path == "/auth/v1/admin/users"
    assert json.loads(request.content) == {"email": "new@example.com", "password": "secret1", "email_confirm": True}
    assert result.message == "User created successfully!"
    profile = get_profile(db_session, "new-user")
    assert profile.role == "manager"
    assert profile.team is None
    assert profile.force_password_change is True
    assert profile.enable_camera_capture is True


@pytest.mark.parametrize(
    "payload",
    [
        {"email": "a@b.c", "password": "short", "full_name": "A"},
        {"email": "", "password": "secret1", "full_name": "A"},
        {"email": "a@b.c", "password": "secret1", "full_name": "A", "role": "owner"},
    ],
)
def test_create_user_validation(db_session, auth_client, auth_transport, payload):
    with pytest.raises(ValueError):
        create_user(db_session, auth_client, payload)
    assert auth_transport.requests == []


def test_update_user_reports_auth_refusal_as_warning(db_session, auth_client, auth_handler):
    manager = make_profile(db_session, role="manager")
    alice = make_profile(db_session, email="alice@example.com", full_name="Alice")
    auth_handler.handler = lambda request: httpx.Response(403, json={"msg": "User not allowed"})

    result = update_user(
        db_session,
        auth_client,
        alice,
        {"email": "alice@new.example.com", "role": "hr", "team": "People", "manager_id": manager.id},
    )

    assert result.profile.email == "alice@new.example.com"
    assert result.profile.role == "hr"
    assert result.profile.manager_id == manager.id
    assert result.message == "User saved successfully!"
    assert result.warning.startswith("Profile updated, but email could not be changed")


def test_update_user_password_change(db_session, auth_client, auth_handler, auth_transport):
    alice = make_profile(db_session, email="alice@example.com")
    auth_handler.handler = lambda request: httpx.Response(200, json={"id": alice.id})

    with pytest.raises(ValueError):
        update_user(db_session, auth_client, alice, {"password": "123"})
    result = update_user(db_session, auth_client, alice, {"password": "longer-secret"})

    assert json.loads(auth_transport.requests[-1].content) == {"password": "longer-secret"}
    assert result.warning is None
    assert result.message.endswith("Password has been changed.")


def test_delete_user_removes_profile_even_if_auth_delete_fails(db_session, auth_client):
    alice = make_profile(db_session)

    with pytest.raises(LookupError):
        delete_user(db_session, auth_client, "missing")
    result = delete_user(db_session, auth_client, alice.id)

    assert result.message == "User deleted successfully!"
    assert get_profile(db_session, alice.id) is None


def test_reset_password_falls_back_to_forced_change(db_session, auth_client, auth_handler, auth_transport):
    alice = make_profile(db_session, email="alice@example.com")
    auth_handler.handler = lambda request: httpx.Response(200, json={"action_link": "https://x"})

    sent = reset_password(db_session, auth_client, alice)
    assert sent.message == "Password reset email sent to user."
    assert json.loads(auth_transport.requests[-1].content) == {"type": "recovery", "email": "alice@example.com"}
    assert alice.force_password_change is False

    auth_handler.handler = lambda request: httpx.Response(500, json={"msg": "boom"})
    forced = reset_password(db_session, auth_client, alice)
    assert forced.message.startswith("Password reset initiated")
    assert forced.profile.force_password_change is True


def test_toggle_capture_flips_flag(db_session):
    alice = make_profile(db_session)

    result = toggle_capture(db_session, alice, "camera")
    assert result.profile.enable_camera_capture is False
    assert result.message == "Camera capture disabled for user"
    assert toggle_capture(db_session, alice, "camera").message == "Camera capture enabled for user"
    with pytest.raises(ValueError):
        toggle_capture(db_session, alice, "microphone")


def test_range_start_validation():
    assert range_start("all", NOW) is None
    assert range_start("7d", NOW) == utc(2025, 3, 5, 12, 0)
    with pytest.raises(ValueError):
        range_start("1y", NOW)


def test_admin_analytics_numbers(db_session):
    admin = make_profile(db_session, role="admin", full_name="Ada")
    alice = make_profile(db_session, full_name="Alice")
    bob = make_profile(db_session, full_name="Bob")
    website = make_project(db_session, admin, name="Website")
    make_project(db_session, admin, name="Archive")
    make_entry(db_session, alice, utc(2025, 3, 12, 9, 0), hours=5, project=website)
    make_entry(db_session, alice, utc(2025, 3, 11, 9, 0), hours=2)
    make_entry(db_session, bob, utc(2025, 3, 12, 9, 0), hours=1)
    make_entry(db_session, bob, utc(2025, 2, 1, 9, 0), hours=8, project=website)

    week = admin_analytics(db_session, "7d", "UTC", now=NOW)

    assert week["total_users"] == 3
    assert week["active_users"] == 2
    assert week["total_hours"] == 8.0
    assert week["attendance"] == {"present": 1, "absent": 2}
    assert week["attendance_rate"] == 33.3
    assert [(u["name"], u["hours"]) for u in week["top_users"]] == [("Alice", 7.0), ("Bob", 1.0)]
    assert week["user_activity"]["labels"][-1] == "Mar 12"
    assert week["user_activity"]["data"] == [0, 0, 0, 0, 0, 1, 2]
    assert week["hours_trend"]["data"][-2:] == [2.0, 6.0]
    assert dict(zip(week["role_distribution"]["labels"], week["role_distribution"]["data"])) == {
        "admin": 1,
        "employee": 2,
    }
    assert week["project_hours"] == {"labels": ["Archive", "Website"], "data": [0.0, 5.0]}

    everything = admin_analytics(db_session, "all", "UTC", now=NOW)
    assert everything["total_hours"] == 16.0
    assert everything["project_hours"]["data"] == [0.0, 13.0]
