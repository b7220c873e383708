from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..errors import Conflict, InvalidInput, NotAuthenticated, missing_field
from ..logging import structlog
from ..models.models import Province, User, utcnow
from ..schemas.auth import LoginRequest, RegisterRequest, SessionUser
from .context import RequestContext
from .security import (
    client_ip,
    get_password_hash,
    get_request_context,
    open_session,
    revoke_session,
    verify_password,
)


router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = structlog.get_logger(__name__)


def _lookup(db: Session, req: LoginRequest) -> Optional[User]:
    if req.user_type == "citizen":
        if not (req.email or "").strip():
            raise missing_field("email")
        return db.query(User).filter(
            User.email == req.email.strip().lower(), User.user_type == "citizen"
        ).first()
    if req.user_type == "official":
        if not (req.official_id or "").strip():
            raise missing_field("official_id")
        return db.query(User).filter(
            User.official_id == req.official_id.strip(),
            User.user_type == "official",
            User.verified.is_(True),
        ).first()
    if not (req.username or "").strip():
        raise missing_field("username")
    email = f"{req.username.strip().lower()}@{settings.admin_email_domain}"
    return db.query(User).filter(User.email == email, User.user_type == "admin").first()


def authenticate(db: Session, req: LoginRequest) -> User:
    user = _lookup(db, req)
    if user is None or not user.is_active or not verify_password(req.password, user.password_hash):
        logger.info("login_failed", user_type=req.user_type)
        raise NotAuthenticated("Invalid credentials")
    # The shared code is only checked once the password matched
    if req.user_type == "admin" and req.admin_code != settings.admin_code:
        logger.info("login_failed", user_type="admin", reason="admin_code")
        raise NotAuthenticated("Invalid admin code")
    return user


def session_user(ctx: RequestContext) -> dict:
    return SessionUser(
        id=str(ctx.user_id),
        name=ctx.name or "",
        type=ctx.user_type,
        jurisdiction=ctx.jurisdiction,
        area=ctx.area,
    ).model_dump()


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )


def login_payload(db: Session, req: LoginRequest, ip_address: Optional[str], response: Response) -> dict:
    user = authenticate(db, req)
    token = open_session(db, user, ip_address)
    user.last_login_at = utcnow()
    db.commit()
    set_session_cookie(response, token)
    logger.info("login_succeeded", user_id=str(user.id), user_type=user.user_type)
    ctx = RequestContext.from_user(user, ip_address=ip_address)
    return {
        "success": True,
        "message": "Login successful",
        "user": session_user(ctx),
        "token": token,
    }


def register_payload(db: Session, req: RegisterRequest) -> dict:
    email = str(req.email).strip().lower()
    if db.query(User.id).filter(User.email == email).first() is not None:
        raise Conflict("Email already registered")
    if req.province is not None and db.query(Province.id).filter(Province.id == req.province).first() is None:
        raise InvalidInput("Invalid province")
    user = User(
        full_name=req.full_name,
        email=email,
        phone=req.phone,
        password_hash=get_password_hash(req.password),
        province_id=req.province,
        user_type="citizen",
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Email already registered")
    logger.info("user_registered", user_id=str(user.id))
    return {"success": True, "message": "Registration successful", "user_id": str(user.id)}


def logout_payload(db: Session, ctx: RequestContext, response: Response) -> dict:
    revoke_session(db, ctx.session_jti)
    response.delete_cookie(settings.session_cookie_name)
    return {"success": True, "message": "Logged out successfully"}


def session_payload(ctx: RequestContext) -> dict:
    if not ctx.is_authenticated:
        raise NotAuthenticated("Not authenticated")
    return {"success": True, "user": session_user(ctx)}


@router.post("/login")
def login(req: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    return login_payload(db, req, client_ip(request), response)


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(req: RegisterRequest, db: Session = Depends(get_db)):
    return register_payload(db, req)


@router.post("/logout")
def logout(
    response: Response,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return logout_payload(db, ctx, response)


@router.get("/session")
def check_session(ctx: RequestContext = Depends(get_request_context)):
    return session_payload(ctx)
