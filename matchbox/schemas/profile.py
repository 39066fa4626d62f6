from pydantic import BaseModel
from datetime import datetime
from typing import Optional

class ProfileResponse(BaseModel):
    id: str
    user_id: str
    name: str
    bio: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    location: Optional[str] = None
    occupation: Optional[str] = None
    photos: Optional[list[str]] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
