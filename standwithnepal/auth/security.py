import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import User, UserSession, utcnow
from .context import RequestContext


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
http_bearer = HTTPBearer(auto_error=False)

_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    # Accounts migrated from the previous deployment carry bcrypt hashes
    if hashed.startswith(_BCRYPT_PREFIXES):
        pb = plain.encode("utf-8")[:72]
        # $2y$ is the same algorithm the bcrypt module calls $2b$
        hb = ("$2b$" + hashed[4:]).encode("utf-8") if hashed.startswith("$2y$") else hashed.encode("utf-8")
        try:
            return bcrypt.checkpw(pb, hb)
        except ValueError:
            return False
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        return False


def create_session_token(user: User, jti: str, expires_at: datetime) -> str:
    now = datetime.now(tz=timezone.utc)
    payload = {
        "sub": str(user.id),
        "user_type": user.user_type,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.replace(tzinfo=timezone.utc).timestamp()),
        "jti": jti,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.InvalidTokenError:
        return None


def open_session(db: Session, user: User, ip_address: Optional[str] = None) -> str:
    """Record a server-side session for user and return the signed token. Caller commits."""
    jti = str(uuid.uuid4())
    expires_at = utcnow() + timedelta(seconds=settings.session_ttl_seconds)
    db.add(UserSession(user_id=user.id, jti=jti, ip_address=ip_address, expires_at=expires_at))
    return create_session_token(user, jti, expires_at)


def revoke_session(db: Session, jti: Optional[str]) -> bool:
    if not jti:
        return False
    row = db.query(UserSession).filter(UserSession.jti == jti, UserSession.revoked_at.is_(None)).first()
    if row is None:
        return False
    row.revoked_at = utcnow()
    db.commit()
    return True


def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def resolve_session(db: Session, token: str) -> Optional[tuple]:
    """Return (user, jti) for a live session token, otherwise None."""
    payload = decode_token(token)
    if not payload:
        return None
    jti = payload.get("jti")
    if not jti:
        return None
    row = db.query(UserSession).filter(UserSession.jti == jti).first()
    if row is None or row.revoked_at is not None or _naive_utc(row.expires_at) <= utcnow():
        return None
    if str(row.user_id) != str(payload.get("sub")):
        return None
    user = db.query(User).filter(User.id == row.user_id).first()
    if user is None or not user.is_active:
        return None
    if user.user_type == "official" and not user.verified:
        return None
    return user, jti


def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def get_request_context(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
) -> RequestContext:
    """Caller identity for this request; anonymous when there is no live session."""
    ip = client_ip(request)
    token = creds.credentials if creds else request.cookies.get(settings.session_cookie_name)
    if not token:
        return RequestContext.anonymous(ip)
    resolved = resolve_session(db, token)
    if resolved is None:
        return RequestContext.anonymous(ip)
    user, jti = resolved
    return RequestContext.from_user(user, ip_address=ip, session_jti=jti)


def require_session(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
    if not ctx.is_authenticated:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return ctx


def require_user_type(*user_types: str):
    def _dep(ctx: RequestContext = Depends(require_session)) -> RequestContext:
        if ctx.user_type not in user_types:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized")
        return ctx

    return _dep
