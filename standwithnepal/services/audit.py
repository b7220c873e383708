"""
Audit logging service.

Append-only activity log. Each row carries a keyed SHA-256 over its own
fields, so an edited row no longer verifies against the server secret.
"""
import hashlib
import hmac
import json
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..auth.context import RequestContext
from ..config import settings
from ..models.models import AuditLog, utcnow


def _canonical(entry: AuditLog) -> str:
    fields = {
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "action": entry.action,
        "actor_id": str(entry.actor_id) if entry.actor_id else None,
        "actor_role": entry.actor_role,
        "source": entry.source,
        "timestamp_utc": _iso(entry.timestamp_utc),
        "changes": entry.changes_json,
        "context": entry.context,
    }
    return json.dumps({k: v for k, v in fields.items() if v is not None}, sort_keys=True, default=str)


def _iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    # Compare on the naive UTC form; some backends hand tzinfo back, SQLite does not
    return dt.replace(tzinfo=None).isoformat()


def _digest(entry: AuditLog, secret: str) -> str:
    return hashlib.sha256(f"{_canonical(entry)}:{secret}".encode()).hexdigest()


def create_audit_log(
    db: Session,
    entity_type: str,
    entity_id,
    action: str,
    ctx: Optional[RequestContext] = None,
    source: Optional[str] = None,
    changes_json: Optional[Dict] = None,
    context: Optional[Dict] = None,
) -> AuditLog:
    """
    Add an audit entry to the session; flushed, not committed, so it lands in
    the same transaction as the write it describes.

    Args:
        db: Database session
        entity_type: issue|comment|user|notification
        entity_id: Id of the affected row
        action: issue_created|status_changed|comment_approved|...
        ctx: Caller; actor id, role and IP come from it. None means the system
        source: api|legacy|script|system
        changes_json: Before/after diff
        context: Extra detail stored alongside
    """
    context = dict(context or {})
    if ctx and ctx.ip_address:
        context.setdefault("ip_address", ctx.ip_address)

    entry = AuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor_id=ctx.user_id if ctx else None,
        actor_role=ctx.actor_role if ctx else "system",
        source=source or ("api" if ctx else "system"),
        changes_json=changes_json,
        timestamp_utc=utcnow(),
        context=context or None,
    )
    if settings.jwt_secret:
        entry.integrity_hash = _digest(entry, settings.jwt_secret)

    db.add(entry)
    db.flush()
    return entry


def verify_audit_entry(entry: AuditLog, secret: Optional[str] = None) -> bool:
    """True when the stored hash still matches the row's fields."""
    secret = secret if secret is not None else settings.jwt_secret
    if not entry.integrity_hash or not secret:
        return False
    return hmac.compare_digest(entry.integrity_hash, _digest(entry, secret))


def get_audit_logs(
    db: Session,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[AuditLog]:
    query = db.query(AuditLog)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(AuditLog.entity_id == str(entity_id))
    return query.order_by(AuditLog.timestamp_utc.desc()).limit(limit).offset(offset).all()


def compute_diff(before: Dict, after: Dict) -> Dict:
    """{field: {"before": ..., "after": ...}} for every field whose value changed."""
    return {
        key: {"before": before.get(key), "after": after.get(key)}
        for key in sorted(set(before) | set(after))
        if before.get(key) != after.get(key)
    }


def audit_to_dict(entry: AuditLog) -> dict:
    return {
        "id": str(entry.id),
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "action": entry.action,
        "actor_id": str(entry.actor_id) if entry.actor_id else None,
        "actor_role": entry.actor_role,
        "source": entry.source,
        "changes": entry.changes_json,
        "timestamp_utc": entry.timestamp_utc.isoformat() if entry.timestamp_utc else None,
        "integrity_ok": verify_audit_entry(entry),
    }
