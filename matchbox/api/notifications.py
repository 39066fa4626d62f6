"""
Matchbox — Notifications API

The durable notification log.  Clients reconcile here after reconnecting
to a live stream.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from matchbox.api.deps import get_current_user_id, get_notification_hub
from matchbox.schemas.notification import (
    NotificationResponse,
    StatusResponse,
    UnreadCountResponse,
)
from matchbox.services.notification_hub import NotificationHub

router = APIRouter()


@router.get(
    "",
    response_model=list[NotificationResponse],
    summary="List notifications, newest first",
)
async def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    hub: NotificationHub = Depends(get_notification_hub),
) -> list[NotificationResponse]:
    notifications = await hub.get_notifications(user_id, limit=limit, offset=offset)
    return [
        NotificationResponse(
            id=n.id,
            type=n.type,
            target_id=n.target_id,
            message=n.body,
            is_read=n.is_read,
            created_at=n.created_at,
        )
        for n in notifications
    ]


@router.get(
    "/unread-count",
    response_model=UnreadCountResponse,
    summary="Count unread notifications",
)
async def unread_count(
    user_id: str = Depends(get_current_user_id),
    hub: NotificationHub = Depends(get_notification_hub),
) -> UnreadCountResponse:
    return UnreadCountResponse(unread_count=await hub.get_unread_count(user_id))


@router.post("/read-all", response_model=StatusResponse)
async def mark_all_read(
    user_id: str = Depends(get_current_user_id),
    hub: NotificationHub = Depends(get_notification_hub),
) -> StatusResponse:
    await hub.mark_all_read(user_id)
    return StatusResponse(status="read")


@router.post("/{notification_id}/read", response_model=StatusResponse)
async def mark_read(
    notification_id: int,
    user_id: str = Depends(get_current_user_id),
    hub: NotificationHub = Depends(get_notification_hub),
) -> StatusResponse:
    await hub.mark_notification_read(user_id, notification_id)
    return StatusResponse(status="read")
