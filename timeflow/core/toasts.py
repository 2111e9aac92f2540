"""Session-backed flash messages rendered as toasts on the next page."""

from __future__ import annotations

from starlette.requests import Request

TOAST_SESSION_KEY = "toasts"
TOAST_KINDS = ("success", "error", "info", "warning")


def push_toast(request: Request, kind: str, message: str) -> None:
    if kind not in TOAST_KINDS:
        kind = "info"
    queue = list(request.session.get(TOAST_SESSION_KEY) or [])
    queue.append({"kind": kind, "message": message})
    request.session[TOAST_SESSION_KEY] = queue


def success(request: Request, message: str) -> None:
    push_toast(request, "success", message)


def error(request: Request, message: str) -> None:
    push_toast(request, "error", message)


def pop_toasts(request: Request) -> list[dict[str, str]]:
    return list(request.session.pop(TOAST_SESSION_KEY, None) or [])
