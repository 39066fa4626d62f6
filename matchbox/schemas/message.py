from pydantic import AliasChoices, BaseModel, Field
from datetime import datetime

class MessageCreate(BaseModel):
    # Older clients post the text as ``content``.
    message: str = Field(validation_alias=AliasChoices("message", "content", "body"))

class MessageResponse(BaseModel):
    id: int
    match_id: int
    sender_id: str
    message: str = Field(validation_alias=AliasChoices("body", "message"))
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}
