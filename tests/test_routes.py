"""End-to-end checks through the ASGI app: auth, envelopes, pages and redirects."""

import httpx
import pytest

from conftest import bearer_for, make_entry, make_profile, make_project, utc
from timeflow.crud.notifications import notify_system
from timeflow.core.errors import BackendError
from timeflow.crud.projects import get_task, list_projects
from timeflow.models import Task
from timeflow.routers.auth_ui import friendly_sso_error

HTML = {"accept": "text/html"}


def session_payload(user_id, email="jane@example.com"):
    return {
        "access_token": "access-1",
        "refresh_token": "refresh-1",
        "expires_in": 3600,
        "user": {"id": user_id, "email": email, "user_metadata": {"full_name": "Jane Doe"}},
    }


def test_health_and_security_headers(client):
    response = client.get("/health", headers={"X-Request-ID": "req-1"})
    assert response.json() == {"ok": True}
    assert response.headers["X-Request-ID"] == "req-1"
    assert "default-src 'self'" in response.headers["Content-Security-Policy"]


def test_api_requires_auth_with_error_envelope(client):
    response = client.get("/api/v1/me")
    assert response.status_code == 401
    assert response.json() == {"code": "http_error", "message": "Login required"}


def test_browsers_are_sent_to_login(client):
    response = client.get("/reports", headers=HTML, follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "/login?next=%2Freports"

    with_query = client.get(
        "/reports", params={"start": "2025-03-01", "users": "a b"}, headers=HTML, follow_redirects=False
    )
    assert with_query.headers["location"] == "/login?next=%2Freports%3Fstart%3D2025-03-01%26users%3Da%2Bb"


def test_bearer_token_resolves_profile(client, db_session):
    alice = make_profile(db_session, full_name="Alice", email="alice@example.com")

    assert client.get("/api/v1/me", headers=bearer_for(alice)).json()["full_name"] == "Alice"

    ghost = make_profile(db_session)
    headers = bearer_for(ghost)
    db_session.delete(ghost)
    db_session.commit()
    assert client.get("/api/v1/me", headers=headers).status_code == 403
    assert client.get("/api/v1/me", headers=bearer_for(alice, secret="wrong")).status_code == 401


def test_admin_api_is_admin_only(client, db_session):
    employee = make_profile(db_session)
    admin = make_profile(db_session, role="admin")

    forbidden = client.get("/api/v1/admin/users", headers=bearer_for(employee))
    assert forbidden.status_code == 403
    assert forbidden.json()["message"] == "Admin access required"

    users = client.get("/api/v1/admin/users", headers=bearer_for(admin)).json()
    assert {user["id"] for user in users} == {employee.id, admin.id}


def test_project_api_permissions_and_validation(client, db_session):
    employee = make_profile(db_session)
    manager = make_profile(db_session, role="manager")

    denied = client.post("/api/v1/projects", json={"name": "Nope"}, headers=bearer_for(employee))
    assert denied.status_code == 403
    assert denied.json()["message"] == "Employees cannot create projects"

    invalid = client.post("/api/v1/projects", json={"description": "no name"}, headers=bearer_for(manager))
    assert invalid.status_code == 422
    assert invalid.json()["code"] == "validation_error"

    created = client.post(
        "/api/v1/projects", json={"name": "Website", "member_ids": [employee.id]}, headers=bearer_for(manager)
    )
    assert created.status_code == 201
    body = created.json()
    assert body["project_managers"] == [manager.id]
    assert body["can_manage"] is True
    assert [member["user_id"] for member in body["members"]] == [employee.id]

    # Members can read the project but not change it.
    assert client.get(f"/api/v1/projects/{body['id']}", headers=bearer_for(employee)).status_code == 200
    patched = client.patch(f"/api/v1/projects/{body['id']}", json={"name": "Mine"}, headers=bearer_for(employee))
    assert patched.status_code == 403


def test_reports_export_is_csv(client, db_session):
    alice = make_profile(db_session, full_name="Alice")
    make_entry(db_session, alice, utc(2025, 3, 10, 9, 0), hours=2)

    response = client.get(
        "/api/v1/reports/export", params={"start": "2025-03-01", "end": "2025-03-31"}, headers=bearer_for(alice)
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="time-report_2025-03-01_2025-03-31.csv"' in response.headers["content-disposition"]
    assert '"Alice"' in response.text


def test_attendance_rejects_inverted_range(client, db_session):
    alice = make_profile(db_session)
    response = client.get(
        "/api/v1/attendance", params={"start": "2025-03-10", "end": "2025-03-01"}, headers=bearer_for(alice)
    )
    assert response.status_code == 422


def test_tracker_version_check(client, db_session):
    alice = make_profile(db_session)

    response = client.get(
        "/api/v1/tracker/version", params={"current_version": "v1.6.0", "device_info": "macOS"}, headers=bearer_for(alice)
    )

    assert response.json()["is_compatible"] is True
    assert response.json()["required_version"] == "1.6.0"
    assert client.get("/api/v1/tracker/version", headers=bearer_for(alice)).status_code == 422


def test_notification_endpoints(client, db_session):
    alice = make_profile(db_session)
    note = notify_system(db_session, alice.id, "Hello", "World")
    notify_system(db_session, alice.id, "Again", "World")
    headers = bearer_for(alice)

    assert client.get("/api/v1/notifications/unread-count", headers=headers).json() == {"unread": 2}
    assert client.post(f"/api/v1/notifications/{note.id}/read", headers=headers).status_code == 200
    assert client.post("/api/v1/notifications/missing/read", headers=headers).status_code == 404
    assert client.post("/api/v1/notifications/read-all", headers=headers).json()["updated"] == 1
    assert client.get("/api/v1/notifications/unread-count", headers=headers).json() == {"unread": 0}


def test_password_login_sets_session_and_forwards_to_desktop(client, db_session, auth_handler):
    auth_handler.handler = lambda request: httpx.Response(200, json=session_payload("sso-user"))

    response = client.post(
        "/login/direct", data={"email": "jane@example.com", "password": "pw", "next": "/projects"}, follow_redirects=False
    )
    assert response.status_code == 302
    assert response.headers["location"] == "/projects"
    assert client.get("/api/v1/me").json()["full_name"] == "Jane Doe"

    forwarded = client.get("/login", params={"callback": "tracker://callback"}, follow_redirects=False)
    assert forwarded.headers["location"] == "tracker://callback?access_token=access-1&refresh_token=refresh-1"

    # Any page opened with ?callback= hands the session over as well.
    page = client.get("/projects", params={"callback": "http://127.0.0.1:5174/cb"}, follow_redirects=False)
    assert page.headers["location"] == "http://127.0.0.1:5174/cb?access_token=access-1&refresh_token=refresh-1"


def test_failed_password_login_rerenders_form(client, auth_handler):
    auth_handler.handler = lambda request: httpx.Response(400, json={"error_description": "Invalid login credentials"})

    response = client.post("/login/direct", data={"email": "jane@example.com", "password": "bad"})

    assert response.status_code == 401
    assert "Invalid login credentials" in response.text


def test_token_endpoint_maps_auth_errors(client, auth_handler):
    auth_handler.handler = lambda request: httpx.Response(400, json={"error_description": "Invalid login credentials"})
    response = client.post("/api/v1/auth/token", json={"email": "jane@example.com", "password": "bad"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid login credentials"

    auth_handler.handler = lambda request: httpx.Response(200, json=session_payload("api-user"))
    tokens = client.post("/api/v1/auth/token", json={"email": "jane@example.com", "password": "ok"}).json()
    assert tokens["access_token"] == "access-1"


def test_sso_start_redirects_to_provider_with_pkce(client):
    response = client.get("/auth/sso", params={"callback": "tracker://callback"}, follow_redirects=False)

    location = response.headers["location"]
    assert location.startswith("https://hosted.test/auth/v1/authorize?")
    assert "code_challenge_method=s256" in location
    assert "callback%3Dtracker" in location


def test_form_post_creates_project_and_redirects(client, db_session):
    manager = make_profile(db_session, role="manager")

    response = client.post(
        "/projects", data={"name": "From form", "status": "active"}, headers=bearer_for(manager), follow_redirects=False
    )

    assert response.status_code == 303
    assert response.headers["location"] == "/projects"
    assert [p.name for p in list_projects(db_session, manager)] == ["From form"]


def test_unknown_paths(client, db_session):
    alice = make_profile(db_session)
    headers = bearer_for(alice)

    assert client.get("/api/v1/nothing-here", headers=headers).status_code == 404
    response = client.get("/some/old/page", headers=headers, follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "/"


@pytest.mark.parametrize(
    "path",
    ["/", "/attendance", "/reports", "/projects", "/team", "/screenshots", "/download", "/profile", "/admin"],
)
def test_pages_render_for_admin(client, db_session, path):
    admin = make_profile(db_session, role="admin", full_name="Ada", team="Ops")
    alice = make_profile(db_session, full_name="Alice", manager_id=admin.id)
    project = make_project(db_session, admin, members=[alice])
    make_entry(db_session, alice, utc(2025, 3, 10, 9, 0), hours=3, project=project, description="Layout")

    response = client.get(path, headers={**HTML, **bearer_for(admin)})

    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert "Ada" in response.text


def test_project_detail_page(client, db_session):
    admin = make_profile(db_session, role="admin")
    project = make_project(db_session, admin, name="Website")

    response = client.get(f"/projects/{project.id}", headers={**HTML, **bearer_for(admin)})

    assert response.status_code == 200
    assert "Website" in response.text


def test_fragment_error_reaches_stashed_desktop_callback(client):
    assert client.get("/login", params={"callback": "tracker://callback"}).status_code == 200

    # The provider put its error in the fragment, so the server sees a bare callback.
    first = client.get("/auth/callback", follow_redirects=False)
    assert first.status_code == 200
    assert 'id="auth-pending"' in first.text
    assert "/static/js/auth_callback.js" in first.text

    second = client.get(
        "/auth/callback",
        params={"_fragment": "1", "error": "access_denied", "error_description": "Consent was declined"},
        follow_redirects=False,
    )
    assert second.status_code == 302
    assert second.headers["location"] == "tracker://callback?error=Consent+was+declined"


def test_bare_callback_hands_over_session_only_after_fragment_check(client, auth_handler):
    auth_handler.handler = lambda request: httpx.Response(200, json=session_payload("sso-user"))
    client.post("/login/direct", data={"email": "jane@example.com", "password": "pw"}, follow_redirects=False)

    pending = client.get("/auth/callback", params={"callback": "tracker://callback"}, follow_redirects=False)
    assert pending.status_code == 200

    forwarded = client.get(
        "/auth/callback", params={"callback": "tracker://callback", "_fragment": "1"}, follow_redirects=False
    )
    assert forwarded.headers["location"] == "tracker://callback?access_token=access-1&refresh_token=refresh-1"


@pytest.mark.parametrize(
    "message, expected",
    [
        ("AADSTS50194: Application is not configured as a multi-tenant application", "Azure authentication is not"),
        ("AADSTS9002325: Proof Key for Code Exchange is required", "PKCE is required"),
        ("Provider is disabled", "Provider is disabled"),
        (None, "Failed to initiate Microsoft login"),
    ],
)
def test_friendly_sso_error(message, expected):
    assert friendly_sso_error(message).startswith(expected)


def test_sso_start_failure_returns_to_login_with_toast(client, auth_client, monkeypatch):
    def refuse(**kwargs):
        raise BackendError("AADSTS9002325: Proof Key for Code Exchange is required")

    monkeypatch.setattr(auth_client, "build_authorize_url", refuse)

    response = client.get("/auth/sso", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "/login"
    assert "PKCE is required for Azure authentication" in client.get("/login").text


def test_manager_report_selection_is_limited_to_their_team(client, db_session):
    manager = make_profile(db_session, role="manager")
    stranger = make_profile(db_session, full_name="Stranger")
    make_entry(db_session, stranger, utc(2025, 3, 10, 9, 0), hours=5)

    response = client.get(
        "/api/v1/reports",
        params={"start": "2025-03-01", "end": "2025-03-31", "users": [stranger.id]},
        headers=bearer_for(manager),
    )

    assert response.status_code == 200
    assert response.json()["total_hours"] == 0
    assert response.json()["entries"] == []


def test_task_changes_need_admin_or_manager(client, db_session):
    employee = make_profile(db_session)
    manager = make_profile(db_session, role="manager")
    task = Task(name="Design", category="custom")
    db_session.add(task)
    db_session.commit()

    assert client.post("/api/v1/tasks", json={"name": "Mine"}, headers=bearer_for(employee)).status_code == 403
    renamed = client.patch(f"/api/v1/tasks/{task.id}", json={"name": "Mine"}, headers=bearer_for(employee))
    assert renamed.status_code == 403
    assert client.delete(f"/api/v1/tasks/{task.id}", headers=bearer_for(employee)).status_code == 403

    form = client.post(f"/tasks/{task.id}/delete", headers=bearer_for(employee), follow_redirects=False)
    assert form.status_code == 303
    assert get_task(db_session, task.id) is not None

    assert client.delete(f"/api/v1/tasks/{task.id}", headers=bearer_for(manager)).json() == {"status": "deleted"}
