"""Thin client for the hosted auth server (``/auth/v1``).

Only the calls the dashboard makes are wrapped: the PKCE authorize/exchange
pair used by SSO, password sign-in, session refresh/sign-out and the admin
user endpoints that need the service-role key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any
from urllib.parse import urlencode

import httpx

from ..core.config import settings
from ..core.errors import BackendError, BackendNotConfigured

logger = logging.getLogger(__name__)


@dataclass
class AuthUser:
    id: str
    email: str | None = None
    user_metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "AuthUser":
        return cls(
            id=str(payload["id"]),
            email=payload.get("email") or None,
            user_metadata=dict(payload.get("user_metadata") or {}),
        )


@dataclass
class AuthSession:
    access_token: str
    refresh_token: str = ""
    expires_in: int | None = None
    user: AuthUser | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "AuthSession":
        user_payload = payload.get("user")
        return cls(
            access_token=str(payload.get("access_token") or ""),
            refresh_token=str(payload.get("refresh_token") or ""),
            expires_in=payload.get("expires_in"),
            user=AuthUser.from_payload(user_payload) if isinstance(user_payload, dict) and user_payload.get("id") else None,
        )


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("error_description", "msg", "message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return f"HTTP {response.status_code}"


class AuthClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        service_role_key: str = "",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.service_role_key = service_role_key
        self.timeout = timeout
        self._transport = transport

    def _ensure_configured(self, *, admin: bool = False) -> None:
        if not self.base_url or not self.api_key:
            raise BackendNotConfigured("Authentication server is not configured")
        if admin and not self.service_role_key:
            raise BackendNotConfigured("Admin API access requires the service role key")

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        token: str | None = None,
        admin: bool = False,
    ) -> dict[str, Any]:
        self._ensure_configured(admin=admin)
        key = self.service_role_key if admin else self.api_key
        headers = {"apikey": key, "Authorization": f"Bearer {token or key}"}
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.request(
                    method,
                    f"{self.base_url}{path}",
                    json=json,
                    params=params,
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            logger.warning("auth.request_failed", extra={"extra_data": {"path": path, "error": str(exc)}})
            raise BackendError("Authentication server is unreachable") from exc
        if response.status_code >= 400:
            raise BackendError(_error_message(response), status_code=response.status_code, code="auth_error")
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise BackendError("Authentication server returned invalid JSON") from exc
        return body if isinstance(body, dict) else {"data": body}

    # ---- end-user flows

    def build_authorize_url(
        self,
        *,
        provider: str,
        redirect_to: str,
        code_challenge: str,
        scopes: str | None = None,
        query_params: dict[str, str] | None = None,
    ) -> str:
        self._ensure_configured()
        params: dict[str, str] = {"provider": provider, "redirect_to": redirect_to}
        if scopes:
            params["scopes"] = scopes
        params["code_challenge"] = code_challenge
        params["code_challenge_method"] = "s256"
        for key, value in (query_params or {}).items():
            if value:
                params[key] = value
        return f"{self.base_url}/authorize?{urlencode(params)}"

    def exchange_code_for_session(self, auth_code: str, code_verifier: str) -> AuthSession:
        payload = self._request(
            "POST",
            "/token",
            params={"grant_type": "pkce"},
            json={"auth_code": auth_code, "code_verifier": code_verifier},
        )
        return AuthSession.from_payload(payload)

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        payload = self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return AuthSession.from_payload(payload)

    def refresh_session(self, refresh_token: str) -> AuthSession:
        payload = self._request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return AuthSession.from_payload(payload)

    def get_user(self, access_token: str) -> AuthUser:
        return AuthUser.from_payload(self._request("GET", "/user", token=access_token))

    def sign_out(self, access_token: str) -> None:
        self._request("POST", "/logout", token=access_token)

    # ---- admin (service role)

    def admin_create_user(self, email: str, password: str, *, email_confirm: bool = True) -> AuthUser:
        payload = self._request(
            "POST",
            "/admin/users",
            json={"email": email, "password": password, "email_confirm": email_confirm},
            admin=True,
        )
        return AuthUser.from_payload(payload)

    def admin_update_user(self, user_id: str, attributes: dict[str, Any]) -> AuthUser:
        payload = self._request("PUT", f"/admin/users/{user_id}", json=attributes, admin=True)
        return AuthUser.from_payload(payload)

    def admin_delete_user(self, user_id: str) -> None:
        self._request("DELETE", f"/admin/users/{user_id}", admin=True)

    def admin_generate_recovery_link(self, email: str) -> dict[str, Any]:
        return self._request(
            "POST",
            "/admin/generate_link",
            json={"type": "recovery", "email": email},
            admin=True,
        )


@lru_cache(maxsize=1)
def get_auth_client() -> AuthClient:
    """FastAPI dependency; tests override it with a client on a mock transport."""

    return AuthClient(
        settings.auth_url if settings.SUPABASE_URL else "",
        settings.SUPABASE_ANON_KEY,
        service_role_key=settings.SUPABASE_SERVICE_ROLE_KEY,
        timeout=settings.HTTP_TIMEOUT,
    )


__all__ = ["AuthClient", "AuthSession", "AuthUser", "get_auth_client"]
