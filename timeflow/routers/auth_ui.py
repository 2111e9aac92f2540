from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from ..core import toasts
from ..core.config import settings
from ..core.errors import BackendError
from ..core.jinja import render
from ..core.security import code_challenge_for, generate_code_verifier
from ..crud.profiles import ensure_profile
from ..db.session import get_db
from ..deps.auth import log_in, log_out, session_user_id
from ..services.auth_bridge import AuthClient, get_auth_client
from ..services.callback import (
    VERIFIER_SESSION_KEY,
    build_callback_redirect_url,
    forward_to_callback,
    pick_callback_url,
    resolve_auth_callback,
    session_tokens,
    stash_callback_url,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def friendly_sso_error(message: str | None) -> str:
    """Explain the Azure misconfigurations people actually hit."""
    text = message or ""
    if "AADSTS50194" in text or "multi-tenant" in text:
        return (
            "Azure authentication is not properly configured. Please configure the Azure Tenant URL "
            "under Authentication > Providers > Azure."
        )
    if "AADSTS9002325" in text or "PKCE" in text:
        return (
            "PKCE is required for Azure authentication. This should be handled automatically. "
            "Please check your authentication provider configuration."
        )
    return text or "Failed to initiate Microsoft login"


def _domain_hint() -> str | None:
    tenant_url = settings.AZURE_TENANT_URL
    if tenant_url and "tenant" in tenant_url:
        return tenant_url.rstrip("/").split("/")[-1] or None
    return None


def _safe_next(value: str | None) -> str:
    target = (value or "/").strip()
    if not target.startswith("/") or target.startswith("//"):
        return "/"
    return target


def _after_login(request: Request, next_url: str) -> RedirectResponse:
    callback_url = pick_callback_url(None, request.session)
    tokens = session_tokens(request.session)
    if callback_url and tokens:
        return RedirectResponse(url=forward_to_callback(request.session, callback_url, tokens), status_code=302)
    return RedirectResponse(url=_safe_next(next_url), status_code=302)


@router.get("/login", response_class=HTMLResponse)
def login_page(request: Request, next: str = "/", callback: str | None = None):
    if callback and session_user_id(request):
        tokens = session_tokens(request.session)
        if tokens:
            return RedirectResponse(url=forward_to_callback(request.session, callback, tokens), status_code=302)
    if session_user_id(request):
        return RedirectResponse(url=_safe_next(next), status_code=302)
    stash_callback_url(request.session, callback)
    return render(
        request,
        "login.html",
        {"next": _safe_next(next), "callback": pick_callback_url(callback, request.session) or ""},
    )


@router.get("/auth/sso")
def start_sso(
    request: Request,
    callback: str | None = None,
    client: AuthClient = Depends(get_auth_client),
):
    """Begin the PKCE authorization-code flow against the SSO provider."""

    callback_url = pick_callback_url(callback, request.session)
    stash_callback_url(request.session, callback_url)
    redirect_to = settings.callback_redirect_base
    if callback_url:
        redirect_to = build_callback_redirect_url(redirect_to, {"callback": callback_url})

    verifier = generate_code_verifier()
    request.session[VERIFIER_SESSION_KEY] = verifier
    try:
        url = client.build_authorize_url(
            provider=settings.OAUTH_PROVIDER,
            redirect_to=redirect_to,
            code_challenge=code_challenge_for(verifier),
            scopes=settings.OAUTH_SCOPES,
            query_params={"domain_hint": _domain_hint() or ""},
        )
    except BackendError as exc:
        request.session.pop(VERIFIER_SESSION_KEY, None)
        toasts.error(request, friendly_sso_error(exc.message))
        return RedirectResponse(url="/login", status_code=302)
    return RedirectResponse(url=url, status_code=302)


@router.get("/login/direct", response_class=HTMLResponse)
def direct_login_page(request: Request, next: str = "/"):
    if session_user_id(request):
        return RedirectResponse(url=_safe_next(next), status_code=302)
    return render(request, "login_direct.html", {"next": _safe_next(next), "error": "", "email": ""})


@router.post("/login/direct", response_class=HTMLResponse)
def direct_login_submit(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    next: str = Form("/"),
    db: Session = Depends(get_db),
    client: AuthClient = Depends(get_auth_client),
):
    try:
        auth_session = client.sign_in_with_password(email.strip(), password)
    except BackendError as exc:
        return render(
            request,
            "login_direct.html",
            {"next": _safe_next(next), "error": exc.message or "Failed to login", "email": email},
            status_code=401,
        )
    if auth_session.user is None:
        return render(
            request,
            "login_direct.html",
            {"next": _safe_next(next), "error": "Failed to login", "email": email},
            status_code=401,
        )
    profile = ensure_profile(db, auth_session.user)
    log_in(request, profile.id, access_token=auth_session.access_token, refresh_token=auth_session.refresh_token)
    logger.info("auth.password_login", extra={"extra_data": {"user_id": profile.id}})
    return _after_login(request, next)


@router.get("/auth/callback", response_class=HTMLResponse)
def auth_callback(
    request: Request,
    db: Session = Depends(get_db),
    client: AuthClient = Depends(get_auth_client),
):
    outcome = resolve_auth_callback(dict(request.query_params), request.session, client)
    if outcome.pending:
        return render(request, "auth_callback.html", {"pending": True, "error": None, "return_after": 0})
    if outcome.signed_in is not None:
        profile = ensure_profile(db, outcome.signed_in.user)
        log_in(
            request,
            profile.id,
            access_token=outcome.signed_in.access_token,
            refresh_token=outcome.signed_in.refresh_token,
        )
        logger.info("auth.sso_login", extra={"extra_data": {"user_id": profile.id}})
    if outcome.redirect_url:
        return RedirectResponse(url=outcome.redirect_url, status_code=302)
    return render(
        request,
        "auth_callback.html",
        {"error": outcome.error, "return_after": outcome.return_after},
        status_code=400,
    )


@router.get("/logout")
def logout(request: Request, client: AuthClient = Depends(get_auth_client)):
    tokens = session_tokens(request.session)
    if tokens:
        try:
            client.sign_out(tokens["access_token"])
        except BackendError as exc:
            logger.info("auth.sign_out_failed", extra={"extra_data": {"error": exc.message}})
    log_out(request)
    return RedirectResponse(url="/login", status_code=302)
