import uuid
from typing import Literal, Optional

from pydantic import BaseModel, Field


class NotificationCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1)
    user_id: Optional[uuid.UUID] = None
    user_type: Literal["citizen", "official", "admin", "all"] = "all"
    type: Literal["info", "success", "warning", "error"] = "info"
    related_id: Optional[int] = None


class MarkReadRequest(BaseModel):
    notification_id: int
