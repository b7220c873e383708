from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from ..auth.context import RequestContext
from ..auth.security import get_request_context, require_user_type
from ..config import settings
from ..db import get_db
from ..errors import Forbidden, InvalidInput, NotAuthenticated, NotFound, missing_field
from ..schemas.issues import CommentCreate, IssueCreate, OfficialResponse, StatusUpdate
from ..services import issues as issue_writes
from ..services.issue_cache import issue_list_cache
from ..services.issue_query import (
    IssueFilters,
    coerce_float,
    coerce_int,
    get_issue,
    list_comments,
    list_issues,
    nearby_issues,
    trending_issues,
)


router = APIRouter(prefix="/api/issues", tags=["issues"])


def parse_issue_id(value: Any) -> int:
    issue_id = coerce_int(value, 0)
    if issue_id < 1:
        raise missing_field("issue_id")
    return issue_id


def ensure_official(ctx: RequestContext) -> None:
    if not ctx.is_authenticated:
        raise NotAuthenticated("Not authenticated")
    if not ctx.is_official:
        raise Forbidden("Unauthorized")


# ----- Payload builders shared with the action-style endpoints -----

def list_payload(
    db: Session,
    ctx: RequestContext,
    response: Response,
    category: Any = None,
    status_filter: Any = None,
    district: Any = None,
    limit: Any = None,
    offset: Any = None,
) -> dict:
    filters = IssueFilters.from_params(category, status_filter, district)
    page, hit = list_issues(db, filters, ctx, limit, offset, cache=issue_list_cache)
    if issue_list_cache.enabled:
        response.headers["X-Cache"] = "HIT" if hit else "MISS"
    return {"success": True, "issues": page.issues, "pagination": page.pagination()}


def nearby_payload(db: Session, lat: Any, lng: Any, radius: Any) -> dict:
    lat = coerce_float(lat, 0.0)
    lng = coerce_float(lng, 0.0)
    # 0,0 is what an unset position looks like
    if lat == 0 and lng == 0:
        raise InvalidInput("Invalid coordinates")
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise InvalidInput("Invalid coordinates")

    radius_km = coerce_float(radius, settings.nearby_default_radius_km)
    if radius_km <= 0:
        radius_km = settings.nearby_default_radius_km
    radius_km = min(radius_km, settings.nearby_max_radius_km)

    issues = nearby_issues(db, lat, lng, radius_km)
    return {
        "success": True,
        "issues": issues,
        "center": {"latitude": lat, "longitude": lng},
        "radius": radius_km,
    }


def trending_payload(db: Session) -> dict:
    return {"success": True, "issues": trending_issues(db)}


def detail_payload(db: Session, issue_id: Any) -> dict:
    issue = get_issue(db, parse_issue_id(issue_id))
    if issue is None:
        raise NotFound("Issue not found")
    return {"success": True, "issue": issue}


def create_payload(db: Session, ctx: RequestContext, body: IssueCreate, source: str = "api") -> dict:
    issue_id = issue_writes.create_issue(db, body, ctx, source=source)
    return {"success": True, "message": "Issue created successfully", "issue_id": issue_id}


def status_payload(db: Session, ctx: RequestContext, issue_id: Any, body: StatusUpdate, source: str = "api") -> dict:
    ensure_official(ctx)
    update = issue_writes.update_status(
        db, parse_issue_id(issue_id), body.status, ctx, update_text=body.update_text, source=source
    )
    return {
        "success": True,
        "message": "Status updated successfully",
        "old_status": update.old_status,
        "new_status": update.new_status,
    }


def response_payload(db: Session, ctx: RequestContext, issue_id: Any, body: OfficialResponse, source: str = "api") -> dict:
    ensure_official(ctx)
    update = issue_writes.add_official_response(
        db, parse_issue_id(issue_id), ctx, body.update_text, attachment_path=body.attachment_path, source=source
    )
    return {"success": True, "message": "Response added", "update_id": update.id}


def upvote_payload(db: Session, ctx: RequestContext, issue_id: Any) -> dict:
    recorded, count = issue_writes.upvote_issue(db, parse_issue_id(issue_id), ctx)
    if not recorded:
        return {"success": False, "message": "Already upvoted", "upvotes": count}
    return {"success": True, "upvotes": count}


def add_comment_payload(db: Session, ctx: RequestContext, issue_id: Any, body: CommentCreate) -> dict:
    comment = issue_writes.add_comment(db, parse_issue_id(issue_id), ctx, body.comment, anonymous=body.anonymous)
    return {"success": True, "message": "Comment submitted for moderation", "comment_id": comment.id}


def comments_payload(db: Session, issue_id: Any) -> dict:
    return {"success": True, "comments": list_comments(db, parse_issue_id(issue_id))}


# ----- REST routes -----

@router.get("")
def list_issues_route(
    response: Response,
    category: Optional[str] = None,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    district: Optional[str] = None,
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return list_payload(db, ctx, response, category, status_filter, district, limit, offset)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_issue_route(
    body: IssueCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return create_payload(db, ctx, body)


@router.get("/nearby")
def nearby_route(
    lat: Optional[str] = None,
    lng: Optional[str] = None,
    radius: Optional[str] = None,
    db: Session = Depends(get_db),
):
    return nearby_payload(db, lat, lng, radius)


@router.get("/trending")
def trending_route(db: Session = Depends(get_db)):
    return trending_payload(db)


@router.get("/{issue_id}")
def detail_route(issue_id: int, db: Session = Depends(get_db)):
    return detail_payload(db, issue_id)


@router.post("/{issue_id}/status")
def status_route(
    issue_id: int,
    body: StatusUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(require_user_type("official")),
):
    return status_payload(db, ctx, issue_id, body)


@router.post("/{issue_id}/responses", status_code=status.HTTP_201_CREATED)
def official_response_route(
    issue_id: int,
    body: OfficialResponse,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(require_user_type("official")),
):
    return response_payload(db, ctx, issue_id, body)


@router.post("/{issue_id}/upvote")
def upvote_route(
    issue_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return upvote_payload(db, ctx, issue_id)


@router.get("/{issue_id}/comments")
def comments_route(issue_id: int, db: Session = Depends(get_db)):
    return comments_payload(db, issue_id)


@router.post("/{issue_id}/comments", status_code=status.HTTP_201_CREATED)
def add_comment_route(
    issue_id: int,
    body: CommentCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return add_comment_payload(db, ctx, issue_id, body)
