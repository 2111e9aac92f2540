from __future__ import annotations

import base64
import hashlib
import secrets
from datetime import datetime
from typing import Any

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from .config import settings

ALGORITHM = "HS256"
# RFC 7636 allows 43-128 characters; 64 random bytes encode to 86.
CODE_VERIFIER_BYTES = 64


class TokenPayload(BaseModel):
    """Claims of an access token issued by the hosted auth server."""

    sub: str
    exp: datetime
    aud: str | list[str] | None = None
    email: str | None = None
    role: str | None = None
    session_id: str | None = None
    user_metadata: dict[str, Any] = {}


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_code_verifier() -> str:
    return _b64url(secrets.token_bytes(CODE_VERIFIER_BYTES))


def code_challenge_for(verifier: str) -> str:
    """S256 challenge: base64url(sha256(verifier)) without padding."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def decode_access_token(token: str) -> TokenPayload:
    secret = settings.SUPABASE_JWT_SECRET
    if not secret:
        raise ValueError("Bearer authentication is not configured")
    try:
        decoded = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            audience=settings.SUPABASE_JWT_AUDIENCE,
        )
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    try:
        return TokenPayload.model_validate(decoded)
    except ValidationError as exc:
        raise ValueError("Invalid token payload") from exc
