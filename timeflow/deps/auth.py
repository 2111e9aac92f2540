from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security.utils import get_authorization_scheme_param
from sqlalchemy.orm import Session

from ..core.roles import can_manage_groups, can_view_team, is_admin
from ..core.security import decode_access_token
from ..crud.profiles import get_profile
from ..db.session import get_db
from ..middlewares import principal_ctx_var
from ..models.profile import Profile
from ..services.callback import TOKENS_SESSION_KEY

SESSION_USER_KEY = "user_id"


class AuthContext:
    def __init__(self, *, profile: Profile, scheme: str, access_token: str | None = None) -> None:
        self.profile = profile
        self.scheme = scheme
        self.access_token = access_token

    @property
    def subject(self) -> str:
        return f"{self.scheme}:{self.profile.id}"


def session_user_id(request: Request) -> str | None:
    try:
        return request.session.get(SESSION_USER_KEY)
    except AssertionError:
        # SessionMiddleware not installed.
        return None


def log_in(request: Request, user_id: str, *, access_token: str | None, refresh_token: str | None) -> None:
    request.session[SESSION_USER_KEY] = user_id
    request.session[TOKENS_SESSION_KEY] = {
        "access_token": access_token or "",
        "refresh_token": refresh_token or "",
    }


def log_out(request: Request) -> None:
    request.session.clear()


def _unauthorized(detail: str = "Login required") -> None:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _bind(request: Request, context: AuthContext) -> AuthContext:
    principal_ctx_var.set(context.subject)
    request.state.principal = context.subject
    request.state.profile = context.profile
    return context


async def get_auth_context(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> AuthContext:
    """Resolve the caller from the UI session cookie or a bearer access token."""

    user_id = session_user_id(request)
    if user_id:
        profile = get_profile(db, user_id)
        if profile is not None:
            tokens = request.session.get(TOKENS_SESSION_KEY) or {}
            return _bind(request, AuthContext(profile=profile, scheme="session", access_token=tokens.get("access_token")))
        # Profile removed by an admin while the cookie was still valid.
        log_out(request)

    if authorization:
        scheme, credentials = get_authorization_scheme_param(authorization)
        if scheme.lower() == "bearer" and credentials:
            try:
                payload = decode_access_token(credentials)
            except ValueError as exc:
                raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
            profile = get_profile(db, payload.sub)
            if profile is None:
                raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Profile not found")
            return _bind(request, AuthContext(profile=profile, scheme="jwt", access_token=credentials))

    _unauthorized()


async def current_profile(context: AuthContext = Depends(get_auth_context)) -> Profile:
    return context.profile


async def require_admin(profile: Profile = Depends(current_profile)) -> Profile:
    if not is_admin(profile.role):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return profile


async def require_team_viewer(profile: Profile = Depends(current_profile)) -> Profile:
    if not can_view_team(profile.role):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Team access required")
    return profile


async def require_group_manager(profile: Profile = Depends(current_profile)) -> Profile:
    if not can_manage_groups(profile.role):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Group management requires manager, HR or admin")
    return profile


__all__ = [
    "AuthContext",
    "SESSION_USER_KEY",
    "current_profile",
    "get_auth_context",
    "log_in",
    "log_out",
    "require_admin",
    "require_group_manager",
    "require_team_viewer",
    "session_user_id",
]
