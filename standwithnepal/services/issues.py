"""
Issue writes: create, status change, official response, upvote, comment.

Each write commits once; a multi-table write (issue row plus its trail,
audit and notification rows) goes in a single transaction and is rolled back
as a whole on failure. Every successful write clears the list cache.
"""
import html
import re
from typing import Any, Optional, Tuple

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth.context import RequestContext
from ..errors import Forbidden, InvalidInput, NotFound, missing_field
from ..models.models import (
    ISSUE_CATEGORIES,
    ISSUE_SEVERITIES,
    ISSUE_STATUSES,
    Issue,
    IssueComment,
    IssueUpdate,
    IssueUpvote,
    utcnow,
)
from ..schemas.issues import IssueCreate
from .audit import create_audit_log
from .issue_cache import IssueListCache, issue_list_cache
from .issue_query import coerce_int
from .notifications import human_status, notify_status_change


logger = structlog.get_logger(__name__)

_TAG_RE = re.compile(r"<[^>]*>")

REQUIRED_ISSUE_FIELDS = ("title", "description", "category", "province", "district", "municipality", "ward")


def sanitize_text(value: Optional[str]) -> str:
    """Trim, drop markup tags and HTML-escape user text."""
    if value is None:
        return ""
    return html.escape(_TAG_RE.sub("", value.strip()).strip(), quote=True)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _positive_int(value: Any, name: str) -> int:
    number = coerce_int(value, 0)
    if number < 1:
        raise InvalidInput(f"Invalid {name}")
    return number


def create_issue(
    db: Session,
    payload: IssueCreate,
    ctx: RequestContext,
    source: str = "api",
    cache: IssueListCache = issue_list_cache,
) -> int:
    """
    Validate and store a new issue, with its audit row, in one transaction.

    Returns:
        The new issue id
    """
    for name in REQUIRED_ISSUE_FIELDS:
        if _blank(getattr(payload, name)):
            raise missing_field(name)

    category = payload.category.strip()
    if category not in ISSUE_CATEGORIES:
        raise InvalidInput("Invalid category")
    severity = (payload.severity or "").strip() or "medium"
    if severity not in ISSUE_SEVERITIES:
        raise InvalidInput("Invalid severity")

    title = sanitize_text(payload.title)
    description = sanitize_text(payload.description)
    # Markup-only input is blank once sanitized
    if not title:
        raise missing_field("title")
    if not description:
        raise missing_field("description")
    if len(title) > 255:
        raise InvalidInput("Title is too long")

    user_id = None if payload.anonymous else ctx.user_id
    issue = Issue(
        title=title,
        description=description,
        category=category,
        severity=severity,
        status="new",
        province_id=_positive_int(payload.province, "province"),
        district=payload.district.strip(),
        municipality=payload.municipality.strip(),
        ward_no=_positive_int(payload.ward, "ward"),
        latitude=payload.latitude,
        longitude=payload.longitude,
        image_path=payload.image_path or None,
        video_path=payload.video_path or None,
        anonymous=bool(payload.anonymous),
        user_id=user_id,
    )

    # An anonymous report must not be traceable through the activity log either
    actor = RequestContext.anonymous(ctx.ip_address) if payload.anonymous else ctx
    try:
        db.add(issue)
        db.flush()
        create_audit_log(
            db,
            entity_type="issue",
            entity_id=issue.id,
            action="issue_created",
            ctx=actor,
            source=source,
            changes_json={"after": {"category": category, "severity": severity, "district": issue.district}},
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    cache.invalidate()
    logger.info("issue_created", issue_id=issue.id, category=category, anonymous=issue.anonymous)
    return issue.id


def _require_official(ctx: RequestContext) -> None:
    if not ctx.is_official:
        raise Forbidden("Unauthorized")


def update_status(
    db: Session,
    issue_id: int,
    new_status: str,
    ctx: RequestContext,
    update_text: Optional[str] = None,
    source: str = "api",
    cache: IssueListCache = issue_list_cache,
) -> IssueUpdate:
    """
    Change an issue's status and record the transition.

    Any move between valid statuses is accepted, including backwards ones.
    The issue row, its IssueUpdate, the audit row and the reporter's
    notification are committed together.
    """
    _require_official(ctx)
    new_status = (new_status or "").strip()
    if not new_status:
        raise missing_field("status")
    if new_status not in ISSUE_STATUSES:
        raise InvalidInput("Invalid status")

    issue = db.query(Issue).filter(Issue.id == issue_id).first()
    if issue is None:
        raise NotFound("Issue not found")

    old_status = issue.status
    text = sanitize_text(update_text) or f"Status changed to {human_status(new_status)}"
    try:
        issue.status = new_status
        issue.updated_at = utcnow()
        update = IssueUpdate(
            issue_id=issue.id,
            user_id=ctx.user_id,
            update_text=text,
            update_type="status_change",
            old_status=old_status,
            new_status=new_status,
        )
        db.add(update)
        db.flush()
        create_audit_log(
            db,
            entity_type="issue",
            entity_id=issue.id,
            action="status_changed",
            ctx=ctx,
            source=source,
            changes_json={"status": {"before": old_status, "after": new_status}},
        )
        notify_status_change(db, issue, old_status, new_status)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    cache.invalidate()
    logger.info("issue_status_changed", issue_id=issue.id, old_status=old_status, new_status=new_status)
    return update


def add_official_response(
    db: Session,
    issue_id: int,
    ctx: RequestContext,
    update_text: Optional[str],
    attachment_path: Optional[str] = None,
    source: str = "api",
    cache: IssueListCache = issue_list_cache,
) -> IssueUpdate:
    _require_official(ctx)
    text = sanitize_text(update_text)
    if not text:
        raise missing_field("update_text")
    issue = db.query(Issue).filter(Issue.id == issue_id).first()
    if issue is None:
        raise NotFound("Issue not found")

    try:
        update = IssueUpdate(
            issue_id=issue.id,
            user_id=ctx.user_id,
            update_text=text,
            update_type="official_response",
            attachment_path=attachment_path or None,
        )
        issue.updated_at = utcnow()
        db.add(update)
        db.flush()
        create_audit_log(db, entity_type="issue", entity_id=issue.id, action="official_response", ctx=ctx, source=source)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    cache.invalidate()
    logger.info("official_response_added", issue_id=issue.id, update_id=update.id)
    return update


def _count_upvotes(db: Session, issue_id: int) -> int:
    return db.query(IssueUpvote).filter(IssueUpvote.issue_id == issue_id).count()


def upvote_issue(
    db: Session,
    issue_id: int,
    ctx: RequestContext,
    cache: IssueListCache = issue_list_cache,
) -> Tuple[bool, int]:
    """
    Record one upvote per identity: the user when signed in, else the client IP.

    Returns:
        Tuple of (recorded, upvote_count); recorded is False for a repeat
    """
    if db.query(Issue.id).filter(Issue.id == issue_id).first() is None:
        raise NotFound("Issue not found")

    if ctx.is_authenticated:
        existing = db.query(IssueUpvote.id).filter(IssueUpvote.issue_id == issue_id, IssueUpvote.user_id == ctx.user_id)
        vote = IssueUpvote(issue_id=issue_id, user_id=ctx.user_id)
    else:
        if not ctx.ip_address:
            raise InvalidInput("Cannot identify client")
        existing = db.query(IssueUpvote.id).filter(
            IssueUpvote.issue_id == issue_id,
            IssueUpvote.user_id.is_(None),
            IssueUpvote.ip_address == ctx.ip_address,
        )
        vote = IssueUpvote(issue_id=issue_id, ip_address=ctx.ip_address)

    if existing.first() is not None:
        return False, _count_upvotes(db, issue_id)

    try:
        db.add(vote)
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent upvote from the same identity
        db.rollback()
        return False, _count_upvotes(db, issue_id)

    cache.invalidate()
    return True, _count_upvotes(db, issue_id)


def add_comment(
    db: Session,
    issue_id: int,
    ctx: RequestContext,
    comment: Optional[str],
    anonymous: bool = False,
    cache: IssueListCache = issue_list_cache,
) -> IssueComment:
    """Store a comment awaiting moderation; it is not readable until approved."""
    text = sanitize_text(comment)
    if not text:
        raise missing_field("comment")
    if db.query(Issue.id).filter(Issue.id == issue_id).first() is None:
        raise NotFound("Issue not found")

    row = IssueComment(
        issue_id=issue_id,
        user_id=None if anonymous else ctx.user_id,
        comment_text=text,
        anonymous=bool(anonymous),
        moderated=False,
    )
    try:
        db.add(row)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    cache.invalidate()
    logger.info("comment_added", issue_id=issue_id, comment_id=row.id)
    return row
