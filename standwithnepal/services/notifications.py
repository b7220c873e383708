"""
In-app notification service.

A notification is addressed either to one user (user_id set) or broadcast to
a user type or to everyone (user_id NULL, user_type = citizen|official|admin|all).
"""
import uuid
from typing import List, Optional

import structlog
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ..auth.context import RequestContext
from ..errors import InvalidInput
from ..models.models import Issue, Notification, NOTIFICATION_AUDIENCES, NOTIFICATION_TYPES, User


logger = structlog.get_logger(__name__)

MAX_LISTED = 50


def human_status(status: str) -> str:
    return status.replace("-", " ").capitalize()


def create_notification(
    db: Session,
    title: str,
    message: str,
    user_id: Optional[uuid.UUID] = None,
    user_type: str = "all",
    notification_type: str = "info",
    related_id: Optional[int] = None,
) -> Notification:
    """
    Add a notification to the session. Flushed, not committed.

    Args:
        db: Database session
        title: Short heading
        message: Body text
        user_id: Recipient; None for a broadcast
        user_type: Audience for broadcasts (citizen|official|admin|all)
        notification_type: info|success|warning|error
        related_id: Issue the notification refers to, if any
    """
    if user_type not in NOTIFICATION_AUDIENCES:
        raise InvalidInput("Invalid user_type")
    if notification_type not in NOTIFICATION_TYPES:
        raise InvalidInput("Invalid notification type")

    notif = Notification(
        user_id=user_id,
        user_type=user_type,
        title=title,
        message=message,
        notification_type=notification_type,
        related_id=related_id,
        read_status=False,
    )
    db.add(notif)
    db.flush()
    logger.info("notification_created", notification_id=notif.id, user_type=user_type, related_id=related_id)
    return notif


def notify_status_change(db: Session, issue: Issue, old_status: str, new_status: str) -> Optional[Notification]:
    # Anonymous reporters are not reachable
    if issue.anonymous or issue.user_id is None:
        return None
    reporter = db.query(User).filter(User.id == issue.user_id).first()
    if reporter is None:
        return None
    notification_type = "success" if new_status == "resolved" else "info"
    return create_notification(
        db,
        title="Issue status updated",
        message=f'Your issue "{issue.title}" changed from {human_status(old_status)} to {human_status(new_status)}.',
        user_id=reporter.id,
        user_type=reporter.user_type,
        notification_type=notification_type,
        related_id=issue.id,
    )


def _addressed_to(ctx: RequestContext):
    return or_(
        Notification.user_id == ctx.user_id,
        and_(
            Notification.user_id.is_(None),
            Notification.user_type.in_([ctx.user_type, "all"]),
        ),
    )


def list_notifications(db: Session, ctx: RequestContext, unread_only: bool = False) -> List[Notification]:
    query = db.query(Notification).filter(_addressed_to(ctx))
    if unread_only:
        query = query.filter(Notification.read_status.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(MAX_LISTED).all()


def unread_count(db: Session, ctx: RequestContext) -> int:
    return db.query(Notification).filter(_addressed_to(ctx), Notification.read_status.is_(False)).count()


def mark_read(db: Session, notification_id: int, ctx: RequestContext) -> bool:
    """Mark one of the caller's own notifications read. Broadcasts are left alone."""
    notif = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == ctx.user_id)
        .first()
    )
    if notif is None:
        return False
    if not notif.read_status:
        notif.read_status = True
        db.commit()
    return True


def notification_to_dict(n: Notification) -> dict:
    return {
        "id": n.id,
        "user_id": str(n.user_id) if n.user_id else None,
        "user_type": n.user_type,
        "title": n.title,
        "message": n.message,
        "type": n.notification_type,
        "related_id": n.related_id,
        "read_status": bool(n.read_status),
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }
