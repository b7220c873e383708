from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class AdminUserCreate(BaseModel):
    full_name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=6)
    user_type: Literal["citizen", "official", "admin"] = "citizen"
    phone: Optional[str] = Field(default=None, max_length=20)
    province_id: Optional[int] = None
    district: Optional[str] = None
    municipality: Optional[str] = None
    ward_no: Optional[int] = Field(default=None, ge=1)
    # Officials only
    official_id: Optional[str] = Field(default=None, max_length=50)
    jurisdiction: Optional[Literal["ward", "municipality", "district", "province"]] = None
    verified: bool = False

    @field_validator("full_name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("full_name must not be blank")
        return v


class VerifyRequest(BaseModel):
    verified: bool = True


class ActiveRequest(BaseModel):
    is_active: bool
