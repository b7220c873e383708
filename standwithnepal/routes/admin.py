import uuid
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth.context import RequestContext
from ..auth.security import get_password_hash, require_user_type
from ..db import get_db
from ..errors import Conflict, InvalidInput, NotFound, missing_field
from ..logging import structlog
from ..models.models import USER_TYPES, IssueComment, Province, User, UserSession, utcnow
from ..schemas.admin import ActiveRequest, AdminUserCreate, VerifyRequest
from ..services.audit import audit_to_dict, compute_diff, create_audit_log, get_audit_logs
from ..services.issue_cache import issue_list_cache
from ..services.issue_query import clamp_page, comment_to_dict


router = APIRouter(prefix="/api/admin", tags=["admin"])
logger = structlog.get_logger(__name__)

require_admin = require_user_type("admin")


def user_to_dict(u: User) -> dict:
    return {
        "id": str(u.id),
        "full_name": u.full_name,
        "email": u.email,
        "phone": u.phone,
        "user_type": u.user_type,
        "province_id": u.province_id,
        "district": u.district,
        "municipality": u.municipality,
        "ward_no": u.ward_no,
        "official_id": u.official_id,
        "jurisdiction": u.jurisdiction,
        "verified": bool(u.verified),
        "is_active": bool(u.is_active),
        "created_at": u.created_at.isoformat() if u.created_at else None,
        "last_login_at": u.last_login_at.isoformat() if u.last_login_at else None,
    }


def _get_user(db: Session, user_id: uuid.UUID) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFound("User not found")
    return user


def _revoke_sessions(db: Session, user: User) -> None:
    db.query(UserSession).filter(
        UserSession.user_id == user.id, UserSession.revoked_at.is_(None)
    ).update({UserSession.revoked_at: utcnow()}, synchronize_session=False)


# ----- Users -----

@router.get("/users")
def list_users(
    user_type: Optional[str] = None,
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(require_admin),
):
    limit, offset = clamp_page(limit, offset)
    query = db.query(User)
    if user_type:
        if user_type not in USER_TYPES:
            raise InvalidInput("Invalid user_type")
        query = query.filter(User.user_type == user_type)
    total = query.count()
    rows = query.order_by(User.created_at.desc()).limit(limit).offset(offset).all()
    return {
        "success": True,
        "users": [user_to_dict(u) for u in rows],
        "pagination": {"total": total, "limit": limit, "offset": offset, "has_more": offset + limit < total},
    }


@router.post("/users", status_code=status.HTTP_201_CREATED)
def create_user(
    body: AdminUserCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(require_admin),
):
    if body.user_type == "official":
        for name in ("official_id", "jurisdiction", "district"):
            value = getattr(body, name)
            if value is None or not str(value).strip():
                raise missing_field(name)
        if body.jurisdiction == "ward" and body.ward_no is None:
            raise missing_field("ward_no")

    province_id = body.province_id
    if province_id is not None and db.query(Province.id).filter(Province.id == province_id).first() is None:
        raise InvalidInput("Invalid province")

    email = str(body.email).strip().lower()
    if db.query(User.id).filter(User.email == email).first() is not None:
        raise Conflict("Email already registered")
    official_id = body.official_id.strip() if body.official_id and body.user_type == "official" else None
    if official_id and db.query(User.id).filter(User.official_id == official_id).first() is not None:
        raise Conflict("Official ID already registered")

    user = User(
        full_name=body.full_name,
        email=email,
        phone=body.phone,
        password_hash=get_password_hash(body.password),
        user_type=body.user_type,
        province_id=body.province_id,
        district=body.district,
        municipality=body.municipality,
        ward_no=body.ward_no,
        official_id=official_id,
        jurisdiction=body.jurisdiction if body.user_type == "official" else None,
        verified=body.verified,
    )
    try:
        db.add(user)
        db.flush()
        create_audit_log(
            db,
            entity_type="user",
            entity_id=user.id,
            action="user_created",
            ctx=ctx,
            changes_json={"after": {"user_type": user.user_type, "email": email}},
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("User already exists")
    logger.info("user_created", user_id=str(user.id), user_type=user.user_type)
    return {"success": True, "user": user_to_dict(user)}


@router.post("/users/{user_id}/verify")
def verify_user(
    user_id: uuid.UUID,
    body: VerifyRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(require_admin),
):
    user = _get_user(db, user_id)
    if user.user_type != "official":
        raise InvalidInput("Only officials can be verified")
    before = bool(user.verified)
    user.verified = body.verified
    user.updated_at = utcnow()
    if not body.verified:
        _revoke_sessions(db, user)
    create_audit_log(
        db,
        entity_type="user",
        entity_id=user.id,
        action="user_verified" if body.verified else "user_unverified",
        ctx=ctx,
        changes_json=compute_diff({"verified": before}, {"verified": body.verified}),
    )
    db.commit()
    return {"success": True, "user": user_to_dict(user)}


@router.post("/users/{user_id}/active")
def set_user_active(
    user_id: uuid.UUID,
    body: ActiveRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(require_admin),
):
    user = _get_user(db, user_id)
    if user.id == ctx.user_id and not body.is_active:
        raise InvalidInput("You cannot deactivate your own account")
    before = bool(user.is_active)
    user.is_active = body.is_active
    user.updated_at = utcnow()
    if not body.is_active:
        _revoke_sessions(db, user)
    create_audit_log(
        db,
        entity_type="user",
        entity_id=user.id,
        action="user_reactivated" if body.is_active else "user_deactivated",
        ctx=ctx,
        changes_json=compute_diff({"is_active": before}, {"is_active": body.is_active}),
    )
    db.commit()
    return {"success": True, "user": user_to_dict(user)}


# ----- Comment moderation -----

@router.get("/comments/pending")
def pending_comments(
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(require_admin),
):
    limit, offset = clamp_page(limit, offset)
    rows = (
        db.query(IssueComment, User.full_name)
        .outerjoin(User, IssueComment.user_id == User.id)
        .filter(IssueComment.moderated.is_(False))
        .order_by(IssueComment.created_at.asc(), IssueComment.id.asc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return {"success": True, "comments": [comment_to_dict(c, author) for c, author in rows]}


def _get_comment(db: Session, comment_id: int) -> IssueComment:
    comment = db.query(IssueComment).filter(IssueComment.id == comment_id).first()
    if comment is None:
        raise NotFound("Comment not found")
    return comment


@router.post("/comments/{comment_id}/approve")
def approve_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(require_admin),
):
    comment = _get_comment(db, comment_id)
    if not comment.moderated:
        comment.moderated = True
        create_audit_log(db, entity_type="comment", entity_id=comment.id, action="comment_approved", ctx=ctx)
        db.commit()
        issue_list_cache.invalidate()
    return {"success": True, "message": "Comment approved"}


@router.delete("/comments/{comment_id}")
def reject_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(require_admin),
):
    comment = _get_comment(db, comment_id)
    was_visible = bool(comment.moderated)
    create_audit_log(
        db,
        entity_type="comment",
        entity_id=comment.id,
        action="comment_rejected",
        ctx=ctx,
        context={"issue_id": comment.issue_id},
    )
    db.delete(comment)
    db.commit()
    if was_visible:
        issue_list_cache.invalidate()
    return {"success": True, "message": "Comment removed"}


# ----- Activity -----

@router.get("/activity")
def activity(
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(require_admin),
):
    limit, offset = clamp_page(limit, offset)
    rows = get_audit_logs(db, entity_type=entity_type, entity_id=entity_id, limit=limit, offset=offset)
    return {"success": True, "activity": [audit_to_dict(r) for r in rows]}
