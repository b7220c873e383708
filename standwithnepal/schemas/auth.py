from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Literal, Optional


class LoginRequest(BaseModel):
    user_type: Literal["citizen", "official", "admin"] = "citizen"
    email: Optional[str] = None  # citizen
    official_id: Optional[str] = None  # official
    username: Optional[str] = None  # admin, without the organisation domain
    password: str
    admin_code: Optional[str] = None


class RegisterRequest(BaseModel):
    full_name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=6)
    phone: Optional[str] = Field(default=None, max_length=20)
    province: Optional[int] = None

    @field_validator("full_name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("full_name must not be blank")
        return v


class SessionUser(BaseModel):
    id: str
    name: str
    type: str
    jurisdiction: Optional[str] = None
    area: Optional[str] = None
