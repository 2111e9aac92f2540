"""Forwarding OAuth results to the desktop tracker's callback URL.

The tracker opens ``/login?callback=<url>`` in the browser. Once the hosted
auth server redirects back to ``/auth/callback`` with an authorization code,
the code is exchanged for a session and the tokens are handed to the tracker
by redirecting to its callback URL, either a custom protocol
(``tracker://callback``) or a loopback HTTP server
(``http://localhost:5174/callback``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, MutableMapping
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit, urlunsplit

from .auth_bridge import AuthClient, AuthSession

logger = logging.getLogger(__name__)

CALLBACK_SESSION_KEY = "oauth_callback_url"
VERIFIER_SESSION_KEY = "pkce_code_verifier"
TOKENS_SESSION_KEY = "auth_tokens"

ERROR_REDIRECT_DELAY = 5
MISSING_SESSION_REDIRECT_DELAY = 3

NO_SESSION_AFTER_EXCHANGE = "No session found after code exchange"
NO_CODE_OR_SESSION = "No authorization code or session found"
GENERIC_FAILURE = "Authentication failed"

# Set by the interstitial page once the browser has merged the URL fragment into the query.
FRAGMENT_MARKER = "_fragment"


def _is_http(url: str) -> bool:
    return url.startswith("http://") or url.startswith("https://")


def build_callback_redirect_url(callback_url: str, params: Mapping[str, str]) -> str:
    """Attach ``params`` to ``callback_url`` as query parameters.

    Custom protocols get the parameters appended verbatim; HTTP(S) URLs have
    them merged into any existing query string, replacing keys already present
    while keeping the path and fragment. Anything that cannot be parsed as an
    absolute URL falls back to plain concatenation.
    """
    query = urlencode(dict(params))
    if "://" in callback_url and not _is_http(callback_url):
        return f"{callback_url}?{query}"
    try:
        parts = urlsplit(callback_url)
    except ValueError:
        return f"{callback_url}?{query}"
    if not parts.scheme or not parts.netloc:
        return f"{callback_url}?{query}"

    merged: list[tuple[str, str]] = [
        (key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key not in params
    ]
    merged.extend((key, value) for key, value in params.items())
    path = parts.path or "/"
    return urlunsplit((parts.scheme, parts.netloc, path, urlencode(merged), parts.fragment))


def pick_callback_url(query_value: str | None, session: Mapping[str, Any]) -> str | None:
    """The ``callback`` query parameter wins over a URL stashed before login."""
    return (query_value or "").strip() or session.get(CALLBACK_SESSION_KEY) or None


def stash_callback_url(session: MutableMapping[str, Any], callback_url: str | None) -> None:
    if callback_url:
        session[CALLBACK_SESSION_KEY] = callback_url


def session_tokens(session: Mapping[str, Any]) -> dict[str, str] | None:
    tokens = session.get(TOKENS_SESSION_KEY)
    if isinstance(tokens, dict) and tokens.get("access_token"):
        return {
            "access_token": str(tokens["access_token"]),
            "refresh_token": str(tokens.get("refresh_token") or ""),
        }
    return None


def forward_to_callback(session: MutableMapping[str, Any], callback_url: str, params: Mapping[str, str]) -> str:
    """Build the redirect and drop the stash, so a callback is used at most once."""
    session.pop(CALLBACK_SESSION_KEY, None)
    return build_callback_redirect_url(callback_url, params)


@dataclass
class CallbackOutcome:
    """What ``/auth/callback`` should do next.

    Exactly one of ``redirect_url``, ``error`` and ``pending`` is set.
    ``pending`` asks the browser to resend the request with its URL fragment,
    since providers may report errors there. ``signed_in`` carries a freshly
    exchanged session that still has to be attached to the browser (profile
    check and local login) before going to ``/``.
    """

    redirect_url: str | None = None
    error: str | None = None
    return_after: int = 0
    signed_in: AuthSession | None = None
    pending: bool = False


def _failure(session: MutableMapping[str, Any], callback_url: str | None, message: str, delay: int) -> CallbackOutcome:
    if callback_url:
        return CallbackOutcome(redirect_url=forward_to_callback(session, callback_url, {"error": message}))
    return CallbackOutcome(error=message, return_after=delay)


def resolve_auth_callback(
    params: Mapping[str, str],
    session: MutableMapping[str, Any],
    client: AuthClient,
) -> CallbackOutcome:
    """Decide the response to the hosted auth server's redirect back to us.

    ``params`` holds the query string merged with any fragment parameters the
    browser forwarded; ``session`` is the signed cookie session.
    """
    callback_url = pick_callback_url(params.get("callback"), session)

    error_code = params.get("error")
    if error_code:
        message = unquote(params.get("error_description") or error_code)
        logger.warning("auth.callback_error", extra={"extra_data": {"error": message}})
        return _failure(session, callback_url, message, ERROR_REDIRECT_DELAY)

    if not params.get("code") and FRAGMENT_MARKER not in params:
        # Nothing decided yet: the fragment may still hold the provider's error.
        return CallbackOutcome(pending=True)

    try:
        code = params.get("code")
        if code:
            verifier = session.pop(VERIFIER_SESSION_KEY, None)
            if not verifier:
                raise ValueError("Sign-in session expired; start the sign-in again")
            auth_session = client.exchange_code_for_session(code, verifier)
            if auth_session.user is None:
                return _failure(session, callback_url, NO_SESSION_AFTER_EXCHANGE, MISSING_SESSION_REDIRECT_DELAY)
            if callback_url:
                return CallbackOutcome(
                    redirect_url=forward_to_callback(
                        session,
                        callback_url,
                        {
                            "access_token": auth_session.access_token,
                            "refresh_token": auth_session.refresh_token or "",
                        },
                    )
                )
            return CallbackOutcome(redirect_url="/", signed_in=auth_session)

        existing = session_tokens(session)
        if existing is None:
            return _failure(session, callback_url, NO_CODE_OR_SESSION, MISSING_SESSION_REDIRECT_DELAY)
        if callback_url:
            return CallbackOutcome(redirect_url=forward_to_callback(session, callback_url, existing))
        return CallbackOutcome(redirect_url="/")
    except Exception as exc:  # every failure is reported to the caller, never raised
        logger.exception("auth.callback_failed")
        message = getattr(exc, "message", None) or str(exc) or GENERIC_FAILURE
        return _failure(session, callback_url, message, ERROR_REDIRECT_DELAY)


__all__ = [
    "CALLBACK_SESSION_KEY",
    "FRAGMENT_MARKER",
    "TOKENS_SESSION_KEY",
    "VERIFIER_SESSION_KEY",
    "CallbackOutcome",
    "build_callback_redirect_url",
    "forward_to_callback",
    "pick_callback_url",
    "resolve_auth_callback",
    "session_tokens",
    "stash_callback_url",
]
