from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth.context import RequestContext
from ..auth.security import require_session, require_user_type
from ..db import get_db
from ..errors import NotFound
from ..schemas.notifications import MarkReadRequest, NotificationCreate
from ..services import notifications as notification_service


router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def list_payload(db: Session, ctx: RequestContext, unread_only: bool = False) -> dict:
    rows = notification_service.list_notifications(db, ctx, unread_only=unread_only)
    return {"success": True, "notifications": [notification_service.notification_to_dict(n) for n in rows]}


def unread_count_payload(db: Session, ctx: RequestContext) -> dict:
    return {"success": True, "count": notification_service.unread_count(db, ctx)}


def mark_read_payload(db: Session, ctx: RequestContext, notification_id: int) -> dict:
    if not notification_service.mark_read(db, notification_id, ctx):
        raise NotFound("Notification not found")
    return {"success": True, "message": "Notification marked as read"}


def create_payload(db: Session, body: NotificationCreate) -> dict:
    notif = notification_service.create_notification(
        db,
        title=body.title.strip(),
        message=body.message.strip(),
        user_id=body.user_id,
        user_type=body.user_type,
        notification_type=body.type,
        related_id=body.related_id,
    )
    db.commit()
    return {"success": True, "message": "Notification created successfully", "notification_id": notif.id}


@router.get("")
def list_notifications(
    unread_only: Optional[bool] = False,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(require_session),
):
    return list_payload(db, ctx, unread_only=bool(unread_only))


@router.get("/unread-count")
def unread_count(
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(require_session),
):
    return unread_count_payload(db, ctx)


@router.post("/{notification_id}/read")
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(require_session),
):
    return mark_read_payload(db, ctx, notification_id)


@router.post("/read")
def mark_read_body(
    body: MarkReadRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(require_session),
):
    return mark_read_payload(db, ctx, body.notification_id)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_notification(
    body: NotificationCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(require_user_type("official", "admin")),
):
    return create_payload(db, body)
