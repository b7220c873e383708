"""
Dashboard analytics over the issues table.
Month buckets are computed in the configured local timezone (Asia/Kathmandu).
"""
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytz
from sqlalchemy import case, func
from sqlalchemy.orm import Session

from ..auth.context import RequestContext
from ..config import settings
from ..models.models import ISSUE_STATUSES, Issue
from .issue_query import jurisdiction_predicates, to_clause


TREND_MONTHS = 6
REGIONAL_LIMIT = 10


def _stat_key(status: str) -> str:
    return status.replace("-", "_")


def dashboard_stats(db: Session, ctx: RequestContext) -> Dict[str, int]:
    """Total and per-status counts, restricted to the caller's area for officials."""
    clauses = [to_clause(p) for p in jurisdiction_predicates(ctx)]
    rows = (
        db.query(Issue.status, func.count(Issue.id))
        .filter(*clauses)
        .group_by(Issue.status)
        .all()
    )
    stats = {"total": 0}
    stats.update({_stat_key(s): 0 for s in ISSUE_STATUSES})
    for status, count in rows:
        stats[_stat_key(status)] = stats.get(_stat_key(status), 0) + int(count)
        stats["total"] += int(count)
    return stats


def category_distribution(db: Session) -> List[dict]:
    count = func.count(Issue.id)
    rows = (
        db.query(Issue.category, count.label("count"))
        .group_by(Issue.category)
        .order_by(count.desc(), Issue.category.asc())
        .all()
    )
    return [{"category": category, "count": int(n)} for category, n in rows]


def _local(dt: datetime, tz) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz)


def _month_starts(now_local: datetime, months: int) -> List[str]:
    year, month = now_local.year, now_local.month
    keys = []
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def resolution_trends(db: Session, now: Optional[datetime] = None, months: int = TREND_MONTHS) -> List[dict]:
    """
    Reported and resolved counts for each of the last `months` calendar months,
    oldest first. Months without issues are included with zeros.
    """
    tz = pytz.timezone(settings.tz_default)
    now_local = _local(now, tz) if now else datetime.now(tz)
    keys = _month_starts(now_local, months)

    first_year, first_month = (int(part) for part in keys[0].split("-"))
    window_start = tz.localize(datetime(first_year, first_month, 1))
    since_utc = window_start.astimezone(timezone.utc).replace(tzinfo=None)

    buckets = {key: {"month": key, "reported": 0, "resolved": 0} for key in keys}
    rows = db.query(Issue.created_at, Issue.status).filter(Issue.created_at >= since_utc).all()
    for created_at, status in rows:
        key = _local(created_at, tz).strftime("%Y-%m")
        bucket = buckets.get(key)
        if bucket is None:
            continue
        bucket["reported"] += 1
        if status == "resolved":
            bucket["resolved"] += 1
    return [buckets[key] for key in keys]


def regional_stats(db: Session, limit: int = REGIONAL_LIMIT) -> List[dict]:
    """Top districts by issue count, with resolved count and mean days to resolve."""
    total = func.count(Issue.id)
    resolved = func.sum(case((Issue.status == "resolved", 1), else_=0))
    top = (
        db.query(Issue.district, total.label("total_issues"), resolved.label("resolved_issues"))
        .group_by(Issue.district)
        .order_by(total.desc(), Issue.district.asc())
        .limit(limit)
        .all()
    )
    districts = [row[0] for row in top]

    # Day difference by calendar date, as DATEDIFF does
    days: Dict[str, List[int]] = defaultdict(list)
    if districts:
        resolved_rows = (
            db.query(Issue.district, Issue.created_at, Issue.updated_at)
            .filter(Issue.status == "resolved", Issue.district.in_(districts))
            .all()
        )
        for district, created_at, updated_at in resolved_rows:
            if created_at is None or updated_at is None:
                continue
            days[district].append((updated_at.date() - created_at.date()).days)

    result = []
    for district, total_issues, resolved_issues in top:
        spans = days.get(district)
        result.append({
            "district": district,
            "total_issues": int(total_issues),
            "resolved_issues": int(resolved_issues or 0),
            "avg_resolution_days": round(sum(spans) / len(spans), 1) if spans else None,
        })
    return result
