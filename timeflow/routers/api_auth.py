"""Token endpoints for API clients that do not carry the UI session cookie."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.orm import Session

from ..core.errors import BackendError
from ..crud.profiles import ensure_profile
from ..db.session import get_db
from ..schemas.auth import PasswordLogin, SessionTokens
from ..services.auth_bridge import AuthClient, AuthSession, get_auth_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def _tokens(auth_session: AuthSession) -> SessionTokens:
    return SessionTokens(
        access_token=auth_session.access_token,
        refresh_token=auth_session.refresh_token,
        expires_in=auth_session.expires_in,
    )


@router.post("/token", response_model=SessionTokens)
def api_password_login(
    payload: PasswordLogin,
    db: Session = Depends(get_db),
    client: AuthClient = Depends(get_auth_client),
):
    try:
        auth_session = client.sign_in_with_password(payload.email.strip(), payload.password)
    except BackendError as exc:
        if exc.status_code >= 500:
            raise
        raise HTTPException(status_code=401, detail=exc.message or "Failed to login") from exc
    if auth_session.user is None or not auth_session.access_token:
        raise HTTPException(status_code=401, detail="Failed to login")
    profile = ensure_profile(db, auth_session.user)
    logger.info("auth.token_issued", extra={"extra_data": {"user_id": profile.id}})
    return _tokens(auth_session)


@router.post("/refresh", response_model=SessionTokens)
def api_refresh(refresh_token: str = Body(..., embed=True), client: AuthClient = Depends(get_auth_client)):
    try:
        auth_session = client.refresh_session(refresh_token)
    except BackendError as exc:
        if exc.status_code >= 500:
            raise
        raise HTTPException(status_code=401, detail=exc.message or "Session expired") from exc
    return _tokens(auth_session)
