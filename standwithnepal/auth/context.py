"""
Request-scoped caller identity.

Built once per request from the session token and passed explicitly into the
service layer, which never reads session state on its own.
"""
import uuid
from dataclasses import dataclass
from typing import Optional

from ..models.models import User


@dataclass(frozen=True)
class RequestContext:
    user_id: Optional[uuid.UUID] = None
    user_type: Optional[str] = None  # citizen|official|admin, None when anonymous
    name: Optional[str] = None
    jurisdiction: Optional[str] = None
    district: Optional[str] = None
    municipality: Optional[str] = None
    ward_no: Optional[int] = None
    ip_address: Optional[str] = None
    session_jti: Optional[str] = None

    @classmethod
    def anonymous(cls, ip_address: Optional[str] = None) -> "RequestContext":
        return cls(ip_address=ip_address)

    @classmethod
    def from_user(cls, user: User, ip_address: Optional[str] = None, session_jti: Optional[str] = None) -> "RequestContext":
        return cls(
            user_id=user.id,
            user_type=user.user_type,
            name=user.full_name,
            jurisdiction=user.jurisdiction if user.user_type == "official" else None,
            district=user.district,
            municipality=user.municipality,
            ward_no=user.ward_no,
            ip_address=ip_address,
            session_jti=session_jti,
        )

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_official(self) -> bool:
        return self.user_type == "official"

    @property
    def is_admin(self) -> bool:
        return self.user_type == "admin"

    @property
    def actor_role(self) -> str:
        return self.user_type or "anonymous"

    @property
    def area(self) -> Optional[str]:
        if not self.district:
            return None
        return self.district + (f" Ward-{self.ward_no}" if self.ward_no else "")
