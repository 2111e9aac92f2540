from __future__ import annotations

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from ..services.callback import forward_to_callback, session_tokens, stash_callback_url

logger = logging.getLogger(__name__)

# These handle ``callback`` themselves.
SKIP_PREFIXES = ("/api", "/auth/", "/login", "/static", "/health", "/metrics")


class CallbackForwardMiddleware(BaseHTTPMiddleware):
    """Hand an existing session to the desktop tracker on any page opened with ``?callback=``.

    Without a session the URL is stashed so the login flow can forward to it
    afterwards. Must run inside ``SessionMiddleware``.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        callback_url = (request.query_params.get("callback") or "").strip()
        if request.method != "GET" or not callback_url or request.url.path.startswith(SKIP_PREFIXES):
            return await call_next(request)

        tokens = session_tokens(request.session)
        if tokens:
            logger.info("auth.callback_forwarded", extra={"extra_data": {"path": request.url.path}})
            return RedirectResponse(url=forward_to_callback(request.session, callback_url, tokens), status_code=302)
        stash_callback_url(request.session, callback_url)
        return await call_next(request)
