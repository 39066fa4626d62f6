"""
Matchbox — Live Event Streams (server-sent events)

Two long-lived streams per user:

* ``GET /events/messages``      – chat messages only
* ``GET /events/notifications`` – every event type (matches and messages)

Frames are ``data: <json>\\n\\n``.  The first frame is a ``connected``
event; an ``event: ping`` frame is written whenever the stream has been
idle for ``SSE_PING_INTERVAL_SECONDS``.  Dropped live events are not
replayed; clients reconcile through ``/notifications``.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import AsyncIterator, Awaitable, Callable

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from matchbox.api.deps import get_current_user_id, get_notification_hub
from matchbox.config import get_settings
from matchbox.services.notification_hub import NotificationHub, Subscription

logger = structlog.get_logger("matchbox.api.events")

router = APIRouter()

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _data_frame(data: str) -> str:
    return f"data: {data}\n\n"


def _ping_frame() -> str:
    now = datetime.now(timezone.utc).isoformat()
    return f"event: ping\ndata: {json.dumps({'time': now})}\n\n"


async def event_stream(
    subscription: Subscription,
    ping_interval: float,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncIterator[str]:
    """Render a subscription as SSE frames until it closes or the client
    goes away.  The subscription is always closed on exit."""
    async with subscription:
        yield _data_frame(
            json.dumps({"type": "connected", "user_id": subscription.user_id})
        )
        while True:
            if is_disconnected is not None and await is_disconnected():
                logger.info("stream_client_disconnected", user_id=subscription.user_id)
                break
            try:
                data = await subscription.next_event(timeout=ping_interval)
            except asyncio.TimeoutError:
                yield _ping_frame()
                continue
            if data is None:
                break
            yield _data_frame(data)


async def _open_stream(
    request: Request,
    hub: NotificationHub,
    user_id: str,
    event_types: frozenset[str] | None,
) -> StreamingResponse:
    subscription = await hub.subscribe(user_id, event_types=event_types)
    logger.info(
        "stream_opened",
        user_id=user_id,
        event_types=sorted(event_types) if event_types else "all",
    )
    return StreamingResponse(
        event_stream(
            subscription,
            get_settings().SSE_PING_INTERVAL_SECONDS,
            request.is_disconnected,
        ),
        media_type="text/event-stream",
        headers=_SSE_HEADERS,
    )


@router.get("/messages", summary="Live stream of chat messages")
async def stream_messages(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    hub: NotificationHub = Depends(get_notification_hub),
) -> StreamingResponse:
    return await _open_stream(request, hub, user_id, frozenset({"message"}))


@router.get("/notifications", summary="Live stream of all notifications")
async def stream_notifications(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    hub: NotificationHub = Depends(get_notification_hub),
) -> StreamingResponse:
    return await _open_stream(request, hub, user_id, None)
