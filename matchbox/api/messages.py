"""
Matchbox — Messages API

Read receipts for individual messages.  Whole-conversation reads live
under ``/matches/{match_id}/read``.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from matchbox.api.deps import get_conversation_store, get_current_user_id
from matchbox.schemas.notification import StatusResponse
from matchbox.services.conversation_store import ConversationStore

router = APIRouter()


@router.post(
    "/{message_id}/read",
    response_model=StatusResponse,
    summary="Mark one message from the partner as read",
)
async def mark_message_read(
    message_id: int,
    user_id: str = Depends(get_current_user_id),
    store: ConversationStore = Depends(get_conversation_store),
) -> StatusResponse:
    await store.mark_message_read(user_id, message_id)
    return StatusResponse(status="read")
