"""
Matchbox — Request-scoped dependencies.

The acting user's id comes from the upstream auth layer as the
``X-User-ID`` header (``?user_id=`` is accepted for EventSource clients,
which cannot set headers).  Services are owned by the application lifespan
and read from ``app.state``.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, Query, Request, status

from matchbox.services.conversation_store import ConversationStore
from matchbox.services.match_engine import MatchEngine
from matchbox.services.notification_hub import NotificationHub
from matchbox.services.profile_directory import ProfileDirectory


def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
    user_id: Optional[str] = Query(None, description="Fallback for streaming clients"),
) -> str:
    resolved = (x_user_id or user_id or "").strip()
    if not resolved:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User ID is required",
        )
    return resolved


def get_match_engine(request: Request) -> MatchEngine:
    return request.app.state.match_engine


def get_conversation_store(request: Request) -> ConversationStore:
    return request.app.state.conversation_store


def get_notification_hub(request: Request) -> NotificationHub:
    return request.app.state.notification_hub


def get_profile_directory(request: Request) -> ProfileDirectory:
    return request.app.state.profile_directory
