from pydantic import BaseModel
from datetime import datetime
from typing import Optional

class NotificationResponse(BaseModel):
    id: int
    type: str
    target_id: Optional[int] = None
    message: str
    is_read: bool
    created_at: datetime

class UnreadCountResponse(BaseModel):
    unread_count: int

class StatusResponse(BaseModel):
    status: str
