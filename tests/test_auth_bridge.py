"""Hosted auth client, token verification and profile bootstrap."""

import json
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from jose import jwt

from conftest import JWT_SECRET, make_profile
from timeflow.core.errors import BackendError, BackendNotConfigured
from timeflow.core.security import code_challenge_for, decode_access_token, generate_code_verifier
from timeflow.crud.profiles import ensure_profile
from timeflow.services.auth_bridge import AuthClient, AuthUser


def session_payload(user_id="user-1", email="jane@example.com"):
    return {
        "access_token": "access-1",
        "refresh_token": "refresh-1",
        "expires_in": 3600,
        "user": {"id": user_id, "email": email, "user_metadata": {"full_name": "Jane Doe"}},
    }


def test_authorize_url_carries_pkce_challenge(auth_client):
    url = auth_client.build_authorize_url(
        provider="azure",
        redirect_to="http://testserver/auth/callback",
        code_challenge="challenge",
        scopes="email",
        query_params={"domain_hint": "contoso.com", "prompt": ""},
    )
    parts = urlsplit(url)
    query = parse_qs(parts.query)
    assert parts.path == "/auth/v1/authorize"
    assert query["provider"] == ["azure"]
    assert query["code_challenge"] == ["challenge"]
    assert query["code_challenge_method"] == ["s256"]
    assert query["domain_hint"] == ["contoso.com"]
    assert "prompt" not in query


def test_exchange_code_posts_pkce_grant(auth_client, auth_handler, auth_transport):
    auth_handler.handler = lambda request: httpx.Response(200, json=session_payload())

    auth_session = auth_client.exchange_code_for_session("code-1", "verifier-1")

    request = auth_transport.requests[-1]
    assert request.url.path == "/auth/v1/token"
    assert request.url.params["grant_type"] == "pkce"
    assert json.loads(request.content) == {"auth_code": "code-1", "code_verifier": "verifier-1"}
    assert request.headers["apikey"] == "anon-key"
    assert auth_session.access_token == "access-1"
    assert auth_session.user.email == "jane@example.com"


def test_error_body_becomes_backend_error(auth_client, auth_handler):
    auth_handler.handler = lambda request: httpx.Response(400, json={"error_description": "Invalid login credentials"})

    with pytest.raises(BackendError) as excinfo:
        auth_client.sign_in_with_password("jane@example.com", "nope")
    assert excinfo.value.message == "Invalid login credentials"
    assert excinfo.value.status_code == 400


def test_transport_failure_is_reported_as_unreachable(auth_client, auth_handler):
    def boom(request):
        raise httpx.ConnectError("refused", request=request)

    auth_handler.handler = boom
    with pytest.raises(BackendError) as excinfo:
        auth_client.get_user("token")
    assert excinfo.value.status_code == 502


def test_admin_calls_use_service_role_key(auth_client, auth_handler, auth_transport):
    auth_handler.handler = lambda request: httpx.Response(200, json={"id": "new-user", "email": "a@b.c"})

    user = auth_client.admin_update_user("new-user", {"password": "secret123"})

    request = auth_transport.requests[-1]
    assert request.method == "PUT"
    assert request.url.path == "/auth/v1/admin/users/new-user"
    assert request.headers["Authorization"] == "Bearer service-key"
    assert user.id == "new-user"


def test_admin_calls_require_service_role_key():
    client = AuthClient("https://hosted.test/auth/v1", "anon-key")
    with pytest.raises(BackendNotConfigured):
        client.admin_delete_user("someone")


def test_code_challenge_is_s256_of_verifier():
    verifier = generate_code_verifier()
    assert 43 <= len(verifier) <= 128
    # Known vector from RFC 7636 appendix B.
    assert (
        code_challenge_for("dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk")
        == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"
    )


def test_decode_access_token_checks_audience_and_secret():
    claims = {"sub": "user-1", "aud": "authenticated", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)}
    payload = decode_access_token(jwt.encode(claims, JWT_SECRET, algorithm="HS256"))
    assert payload.sub == "user-1"

    with pytest.raises(ValueError):
        decode_access_token(jwt.encode({**claims, "aud": "anon"}, JWT_SECRET, algorithm="HS256"))
    with pytest.raises(ValueError):
        decode_access_token(jwt.encode(claims, "other-secret", algorithm="HS256"))


def test_expired_token_is_rejected():
    claims = {"sub": "user-1", "aud": "authenticated", "exp": datetime.now(timezone.utc) - timedelta(minutes=5)}
    with pytest.raises(ValueError):
        decode_access_token(jwt.encode(claims, JWT_SECRET, algorithm="HS256"))


def test_ensure_profile_creates_employee_on_first_login(db_session):
    user = AuthUser(id="sso-user", email="sam@example.com", user_metadata={"full_name": "Sam Smith"})

    profile = ensure_profile(db_session, user)

    assert profile.id == "sso-user"
    assert profile.full_name == "Sam Smith"
    assert profile.role == "employee"
    assert profile.force_password_change is False


def test_ensure_profile_keeps_existing_role_and_syncs_email(db_session):
    existing = make_profile(db_session, role="manager", email="old@example.com")

    profile = ensure_profile(db_session, AuthUser(id=existing.id, email="new@example.com"))

    assert profile.role == "manager"
    assert profile.email == "new@example.com"
