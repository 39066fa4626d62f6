"""
Matchbox — Conversations API

Match list, conversation view, read receipts and messaging.
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, status

from matchbox.api.deps import get_conversation_store, get_current_user_id
from matchbox.schemas.match import ConversationResponse, MatchListItem, MatchResponse
from matchbox.schemas.message import MessageCreate, MessageResponse
from matchbox.schemas.notification import StatusResponse
from matchbox.schemas.profile import ProfileResponse
from matchbox.services.conversation_store import ConversationStore

logger = structlog.get_logger("matchbox.api.matches")

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# GET / — Matches of the caller, most recent activity first
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "",
    response_model=list[MatchListItem],
    summary="List the caller's matches",
)
async def list_matches(
    user_id: str = Depends(get_current_user_id),
    store: ConversationStore = Depends(get_conversation_store),
) -> list[MatchListItem]:
    """Each item carries the partner's profile, the newest message and the
    number of the partner's messages the caller has not read yet."""
    overviews = await store.list_matches_for_user(user_id)
    return [
        MatchListItem(
            match=MatchResponse.model_validate(o.match),
            profile=ProfileResponse.model_validate(o.profile),
            last_message=(
                MessageResponse.model_validate(o.last_message)
                if o.last_message is not None
                else None
            ),
            unread_count=o.unread_count,
        )
        for o in overviews
    ]


# ──────────────────────────────────────────────────────────────────────────────
# GET /{match_id} — Conversation (marks it read)
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{match_id}",
    response_model=ConversationResponse,
    summary="Open a conversation",
)
async def get_conversation(
    match_id: int,
    user_id: str = Depends(get_current_user_id),
    store: ConversationStore = Depends(get_conversation_store),
) -> ConversationResponse:
    conversation = await store.get_conversation(user_id, match_id)
    return ConversationResponse(
        match=MatchResponse.model_validate(conversation.match),
        profile=(
            ProfileResponse.model_validate(conversation.profile)
            if conversation.profile is not None
            else None
        ),
        messages=[MessageResponse.model_validate(m) for m in conversation.messages],
    )


@router.post(
    "/{match_id}/read",
    response_model=StatusResponse,
    summary="Mark a conversation as read",
)
async def mark_read(
    match_id: int,
    user_id: str = Depends(get_current_user_id),
    store: ConversationStore = Depends(get_conversation_store),
) -> StatusResponse:
    await store.mark_read(user_id, match_id)
    return StatusResponse(status="read")


# ──────────────────────────────────────────────────────────────────────────────
# GET /{match_id}/messages, GET /{match_id}/preview, POST /{match_id}/messages
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{match_id}/messages",
    response_model=list[MessageResponse],
    summary="List messages, oldest first",
)
async def list_messages(
    match_id: int,
    limit: Optional[int] = Query(None, ge=1, description="Page size"),
    offset: int = Query(0, ge=0, description="Messages to skip"),
    user_id: str = Depends(get_current_user_id),
    store: ConversationStore = Depends(get_conversation_store),
) -> list[MessageResponse]:
    messages = await store.list_messages(user_id, match_id, limit=limit, offset=offset)
    return [MessageResponse.model_validate(m) for m in messages]


@router.get(
    "/{match_id}/preview",
    response_model=list[MessageResponse],
    summary="Newest messages, newest first",
)
async def preview_messages(
    match_id: int,
    limit: int = Query(3, ge=1, description="Messages to return"),
    user_id: str = Depends(get_current_user_id),
    store: ConversationStore = Depends(get_conversation_store),
) -> list[MessageResponse]:
    """A short tail of the conversation for summary views; does not mark
    anything read."""
    messages = await store.preview_messages(user_id, match_id, limit=limit)
    return [MessageResponse.model_validate(m) for m in messages]


@router.post(
    "/{match_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
)
async def send_message(
    match_id: int,
    payload: MessageCreate,
    user_id: str = Depends(get_current_user_id),
    store: ConversationStore = Depends(get_conversation_store),
) -> MessageResponse:
    message = await store.send_message(user_id, match_id, payload.message)
    logger.info("send_message", match_id=match_id, message_id=message.id)
    return MessageResponse.model_validate(message)
