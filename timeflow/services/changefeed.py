"""In-process change feed and the SSE stream built on top of it.

Writes made through this application publish a ``ChangeEvent``; open
``/api/v1/notifications/stream`` connections watch the feed and push the
user's unread count whenever it moves. Rows written by other clients (the
desktop tracker, the hosted dashboard) are picked up by a periodic recheck.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable

from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 30.0
POLL_INTERVAL = 0.5
RECHECK_INTERVAL = 15.0


@dataclass(frozen=True)
class ChangeEvent:
    version: int
    table: str
    action: str
    record_id: str | None = None
    user_id: str | None = None
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Subscriber = Callable[[ChangeEvent], None]


class ChangeFeed:
    def __init__(self, history: int = 512) -> None:
        self._lock = threading.Lock()
        self._version = 0
        self._recent: deque[ChangeEvent] = deque(maxlen=history)
        self._subscribers: list[Subscriber] = []

    @property
    def version(self) -> int:
        return self._version

    def publish(self, table: str, action: str, record_id: str | None = None, user_id: str | None = None) -> ChangeEvent:
        with self._lock:
            self._version += 1
            event = ChangeEvent(self._version, table, action, record_id, user_id)
            self._recent.append(event)
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("changefeed.subscriber_failed", extra={"extra_data": {"table": table}})
        return event

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def events_since(self, version: int, table: str | None = None) -> list[ChangeEvent]:
        with self._lock:
            events = [event for event in self._recent if event.version > version]
        if table is not None:
            events = [event for event in events if event.table == table]
        return events


feed = ChangeFeed()


def sse_message(payload: dict[str, Any], event: str | None = None) -> str:
    prefix = f"event: {event}\n" if event else ""
    return f"{prefix}data: {json.dumps(payload)}\n\n"


async def unread_count_stream(
    user_id: str,
    count_unread: Callable[[str], int],
    *,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    change_feed: ChangeFeed | None = None,
    poll_interval: float = POLL_INTERVAL,
    heartbeat_interval: float = HEARTBEAT_INTERVAL,
    recheck_interval: float = RECHECK_INTERVAL,
    max_iterations: int | None = None,
) -> AsyncIterator[str]:
    """Yield SSE frames carrying ``{"unread": n}`` whenever the count changes."""

    source = change_feed or feed
    seen_version = source.version
    last_count: int | None = None
    last_heartbeat = last_check = time.monotonic()
    iterations = 0
    force_check = True

    while True:
        if is_disconnected is not None and await is_disconnected():
            break

        pending = source.events_since(seen_version, table="notifications")
        seen_version = source.version
        now = time.monotonic()
        if any(event.user_id in (None, user_id) for event in pending):
            force_check = True
        if now - last_check >= recheck_interval:
            force_check = True

        if force_check:
            force_check = False
            last_check = now
            count = await run_in_threadpool(count_unread, user_id)
            if count != last_count:
                last_count = count
                yield sse_message({"unread": count}, event="unread")

        if now - last_heartbeat >= heartbeat_interval:
            last_heartbeat = now
            yield ": heartbeat\n\n"

        iterations += 1
        if max_iterations is not None and iterations >= max_iterations:
            break
        await asyncio.sleep(poll_interval)


__all__ = ["ChangeEvent", "ChangeFeed", "feed", "sse_message", "unread_count_stream"]
