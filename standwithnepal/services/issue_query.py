"""
Issue listing queries: filtered pages, nearby search, trending ranking and
single-issue detail.

Filters are kept as a list of typed predicates and folded into one
parameterized query. For officials, jurisdiction predicates are appended to
whatever the client asked for; every predicate is ANDed, so a client filter
can narrow the official's area but never widen it.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Tuple, Union

from sqlalchemy import false, func, select
from sqlalchemy.orm import Session

from ..auth.context import RequestContext
from ..config import settings
from ..models.models import Issue, IssueComment, IssueUpdate, IssueUpvote, User, utcnow
from .geo import latitude_band, within_radius
from .issue_cache import IssueListCache


ANONYMOUS_NAME = "Anonymous"


# ----- Predicates -----

@dataclass(frozen=True)
class Equals:
    field: str
    value: Any
    forced: bool = False


@dataclass(frozen=True)
class Contains:
    field: str
    value: str
    forced: bool = False


Predicate = Union[Equals, Contains]

_FILTERABLE_COLUMNS = {
    "category": Issue.category,
    "status": Issue.status,
    "district": Issue.district,
    "ward_no": Issue.ward_no,
}


@dataclass(frozen=True)
class IssueFilters:
    category: Optional[str] = None
    status: Optional[str] = None
    district: Optional[str] = None

    @classmethod
    def from_params(cls, category: Any = None, status: Any = None, district: Any = None) -> "IssueFilters":
        def _clean(v: Any) -> Optional[str]:
            if v is None:
                return None
            v = str(v).strip()
            return v or None

        return cls(category=_clean(category), status=_clean(status), district=_clean(district))


def client_predicates(filters: IssueFilters) -> List[Predicate]:
    preds: List[Predicate] = []
    if filters.category:
        preds.append(Equals("category", filters.category))
    if filters.status:
        preds.append(Equals("status", filters.status))
    if filters.district:
        preds.append(Contains("district", filters.district))
    return preds


def jurisdiction_predicates(ctx: RequestContext) -> List[Predicate]:
    """
    Area restriction for officials.

    An official without a district (or a ward-level official without a ward)
    gets a predicate on NULL, which matches no issue.
    """
    if not ctx.is_official:
        return []
    preds: List[Predicate] = [Equals("district", ctx.district, forced=True)]
    if ctx.jurisdiction == "ward":
        preds.append(Equals("ward_no", ctx.ward_no, forced=True))
    return preds


def build_predicates(filters: IssueFilters, ctx: RequestContext) -> Tuple[Predicate, ...]:
    return tuple(client_predicates(filters) + jurisdiction_predicates(ctx))


def to_clause(pred: Predicate):
    column = _FILTERABLE_COLUMNS[pred.field]
    if pred.value is None:
        # "= NULL" would become IS NULL; an unset area matches nothing
        return false()
    if isinstance(pred, Contains):
        return column.contains(pred.value, autoescape=True)
    return column == pred.value


# ----- Parameter coercion -----

def coerce_int(value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            return default


def coerce_float(value: Any, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    return result if math.isfinite(result) else default


def clamp_page(limit: Any, offset: Any) -> Tuple[int, int]:
    limit = coerce_int(limit, settings.issue_list_default_limit)
    limit = min(max(limit, 1), settings.issue_list_max_limit)
    offset = max(coerce_int(offset, 0), 0)
    return limit, offset


# ----- Row shaping -----

def _upvote_count():
    return (
        select(func.count(IssueUpvote.id))
        .where(IssueUpvote.issue_id == Issue.id)
        .correlate(Issue)
        .scalar_subquery()
    )


def _comment_count():
    return (
        select(func.count(IssueComment.id))
        .where(IssueComment.issue_id == Issue.id, IssueComment.moderated.is_(True))
        .correlate(Issue)
        .scalar_subquery()
    )


def _listing_query(db: Session):
    # Always join the reporter so every variant returns the same row shape
    return (
        db.query(
            Issue,
            User.full_name.label("reporter_name"),
            _upvote_count().label("upvotes"),
            _comment_count().label("comments"),
        )
        .outerjoin(User, Issue.user_id == User.id)
    )


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def serialize_issue(
    issue: Issue,
    reporter_name: Optional[str],
    upvotes: Optional[int],
    comments: Optional[int],
    distance: Optional[float] = None,
) -> dict:
    data = {
        "id": issue.id,
        "title": issue.title,
        "description": issue.description,
        "category": issue.category,
        "severity": issue.severity,
        "status": issue.status,
        "province_id": issue.province_id,
        "district": issue.district,
        "municipality": issue.municipality,
        "ward_no": issue.ward_no,
        "latitude": issue.latitude,
        "longitude": issue.longitude,
        "image_path": issue.image_path,
        "video_path": issue.video_path,
        "anonymous": bool(issue.anonymous),
        "user_id": None if issue.anonymous or issue.user_id is None else str(issue.user_id),
        "reporter_name": ANONYMOUS_NAME if issue.anonymous else reporter_name,
        "upvotes": int(upvotes or 0),
        "comments": int(comments or 0),
        "created_at": _iso(issue.created_at),
        "updated_at": _iso(issue.updated_at),
    }
    if distance is not None:
        data["distance"] = distance
    return data


# ----- Listing -----

@dataclass
class IssuePage:
    issues: List[dict]
    total: int
    limit: int
    offset: int
    predicates: Tuple[Predicate, ...] = field(default=(), repr=False)

    @property
    def has_more(self) -> bool:
        return (self.offset + self.limit) < self.total

    def pagination(self) -> dict:
        return {
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
            "has_more": self.has_more,
        }


def _load_page(db: Session, predicates: Tuple[Predicate, ...], limit: int, offset: int) -> IssuePage:
    clauses = [to_clause(p) for p in predicates]

    total = db.query(func.count(Issue.id)).filter(*clauses).scalar() or 0

    rows = (
        _listing_query(db)
        .filter(*clauses)
        .order_by(Issue.created_at.desc(), Issue.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    issues = [serialize_issue(issue, name, up, cm) for issue, name, up, cm in rows]
    return IssuePage(issues=issues, total=int(total), limit=limit, offset=offset, predicates=predicates)


def list_issues(
    db: Session,
    filters: IssueFilters,
    ctx: RequestContext,
    limit: Any = None,
    offset: Any = None,
    cache: Optional[IssueListCache] = None,
) -> Tuple[IssuePage, bool]:
    """
    One page of issues, newest first, with the total for the same predicates.

    Returns:
        Tuple of (page, cache_hit)
    """
    limit, offset = clamp_page(limit, offset)
    predicates = build_predicates(filters, ctx)

    if cache is None or not cache.enabled:
        return _load_page(db, predicates, limit, offset), False

    key = ("list", predicates, limit, offset)
    return cache.get_or_load(key, lambda: _load_page(db, predicates, limit, offset))


def nearby_issues(
    db: Session,
    lat: float,
    lng: float,
    radius_km: float,
    max_results: Optional[int] = None,
) -> List[dict]:
    """Issues strictly within radius_km of (lat, lng), nearest first."""
    if max_results is None:
        max_results = settings.nearby_max_results

    query = _listing_query(db).filter(Issue.latitude.isnot(None), Issue.longitude.isnot(None))
    band = latitude_band(lat, radius_km)
    if band is not None:
        query = query.filter(Issue.latitude.between(band[0], band[1]))

    found = []
    for issue, name, up, cm in query.all():
        inside, distance = within_radius(issue.latitude, issue.longitude, lat, lng, radius_km)
        if inside:
            found.append(serialize_issue(issue, name, up, cm, distance=distance))

    found.sort(key=lambda item: (item["distance"], -item["id"]))
    return found[:max_results]


def trending_score(upvotes: int, comments: int, hours_old: int) -> float:
    return (2 * upvotes + comments) / (hours_old + 1)


def hours_since(created_at: datetime, now: datetime) -> int:
    """Whole hours elapsed, truncated; never negative."""
    seconds = (_naive_utc(now) - _naive_utc(created_at)).total_seconds()
    return max(0, int(seconds // 3600))


def trending_issues(
    db: Session,
    now: Optional[datetime] = None,
    limit: Optional[int] = None,
    window_days: Optional[int] = None,
) -> List[dict]:
    now = _naive_utc(now) if now else utcnow()
    limit = limit if limit is not None else settings.trending_limit
    window_days = window_days if window_days is not None else settings.trending_window_days
    since = now - timedelta(days=window_days)

    rows = _listing_query(db).filter(Issue.created_at >= since).all()

    scored = []
    for issue, name, up, cm in rows:
        hours = hours_since(issue.created_at, now)
        score = trending_score(int(up or 0), int(cm or 0), hours)
        item = serialize_issue(issue, name, up, cm)
        item["hours_old"] = hours
        item["trending_score"] = score
        scored.append((score, _naive_utc(issue.created_at), issue.id, item))

    scored.sort(key=lambda entry: entry[:3], reverse=True)
    return [entry[3] for entry in scored[:limit]]


# ----- Detail -----

def _update_to_dict(update: IssueUpdate, author_name: Optional[str]) -> dict:
    return {
        "id": update.id,
        "issue_id": update.issue_id,
        "user_id": str(update.user_id) if update.user_id else None,
        "author_name": author_name if update.user_id else "System",
        "update_text": update.update_text,
        "update_type": update.update_type,
        "old_status": update.old_status,
        "new_status": update.new_status,
        "attachment_path": update.attachment_path,
        "created_at": _iso(update.created_at),
    }


def get_issue(db: Session, issue_id: int) -> Optional[dict]:
    row = _listing_query(db).filter(Issue.id == issue_id).first()
    if row is None:
        return None
    issue, name, up, cm = row
    data = serialize_issue(issue, name, up, cm)

    updates = (
        db.query(IssueUpdate, User.full_name)
        .outerjoin(User, IssueUpdate.user_id == User.id)
        .filter(IssueUpdate.issue_id == issue_id)
        .order_by(IssueUpdate.created_at.asc(), IssueUpdate.id.asc())
        .all()
    )
    data["updates"] = [_update_to_dict(u, author) for u, author in updates]
    return data


def comment_to_dict(comment: IssueComment, author_name: Optional[str]) -> dict:
    return {
        "id": comment.id,
        "issue_id": comment.issue_id,
        "user_id": None if comment.anonymous or comment.user_id is None else str(comment.user_id),
        "author_name": ANONYMOUS_NAME if comment.anonymous else author_name,
        "comment_text": comment.comment_text,
        "anonymous": bool(comment.anonymous),
        "moderated": bool(comment.moderated),
        "created_at": _iso(comment.created_at),
    }


def list_comments(db: Session, issue_id: int) -> List[dict]:
    """Approved comments only, oldest first."""
    rows = (
        db.query(IssueComment, User.full_name)
        .outerjoin(User, IssueComment.user_id == User.id)
        .filter(IssueComment.issue_id == issue_id, IssueComment.moderated.is_(True))
        .order_by(IssueComment.created_at.asc(), IssueComment.id.asc())
        .all()
    )
    return [comment_to_dict(c, author) for c, author in rows]
