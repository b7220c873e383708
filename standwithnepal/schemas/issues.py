from typing import Any, Optional
from pydantic import BaseModel, field_validator


def _as_text(v: Any) -> Any:
    # Old clients send province/ward as numbers or strings interchangeably
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


class IssueCreate(BaseModel):
    # Required fields are checked by the service so the error names the field
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    province: Optional[str] = None
    district: Optional[str] = None
    municipality: Optional[str] = None
    ward: Optional[str] = None
    severity: Optional[str] = None
    anonymous: bool = False
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    image_path: Optional[str] = None
    video_path: Optional[str] = None

    @field_validator("title", "description", "category", "province", "district", "municipality", "ward", "severity", mode="before")
    @classmethod
    def _coerce_text(cls, v):
        return _as_text(v)

    @field_validator("anonymous", mode="before")
    @classmethod
    def _coerce_flag(cls, v):
        return False if v is None else v


class StatusUpdate(BaseModel):
    status: str
    update_text: Optional[str] = None


class OfficialResponse(BaseModel):
    update_text: str
    attachment_path: Optional[str] = None


class CommentCreate(BaseModel):
    comment: str
    anonymous: bool = False

    @field_validator("anonymous", mode="before")
    @classmethod
    def _coerce_flag(cls, v):
        return False if v is None else v
