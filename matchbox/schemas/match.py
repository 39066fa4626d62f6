from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

from matchbox.schemas.message import MessageResponse
from matchbox.schemas.profile import ProfileResponse

class SwipeCreate(BaseModel):
    profile_id: str = Field(min_length=1)
    is_like: bool = True
    message: Optional[str] = Field(None, max_length=500)

class LikeCreate(BaseModel):
    message: Optional[str] = Field(None, max_length=500)

class MatchResponse(BaseModel):
    id: int
    user_a_id: str
    user_b_id: str
    created_at: datetime
    last_message_at: datetime
    user_a_last_read: datetime
    user_b_last_read: datetime

    model_config = {"from_attributes": True}

class SwipeResponse(BaseModel):
    status: str
    is_mutual_match: bool
    match: Optional[MatchResponse] = None

class MatchListItem(BaseModel):
    match: MatchResponse
    profile: ProfileResponse
    last_message: Optional[MessageResponse] = None
    unread_count: int = 0

class ConversationResponse(BaseModel):
    match: MatchResponse
    profile: Optional[ProfileResponse] = None
    messages: list[MessageResponse] = []
