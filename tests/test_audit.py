"""Audit entries: actor capture, integrity hashes and diffs."""

from __future__ import annotations

from standwithnepal.auth.context import RequestContext
from standwithnepal.models.models import AuditLog
from standwithnepal.services.audit import compute_diff, create_audit_log, get_audit_logs, verify_audit_entry


def test_entry_records_actor_and_ip(db, citizen):
    ctx = RequestContext.from_user(citizen, ip_address="10.1.2.3")
    entry = create_audit_log(db, entity_type="issue", entity_id=42, action="issue_created", ctx=ctx)
    db.commit()

    assert entry.entity_id == "42"
    assert entry.actor_id == citizen.id
    assert entry.actor_role == "citizen"
    assert entry.source == "api"
    assert entry.context == {"ip_address": "10.1.2.3"}


def test_system_entry_without_caller(db):
    entry = create_audit_log(db, entity_type="user", entity_id="x", action="seeded")
    assert (entry.actor_id, entry.actor_role, entry.source) == (None, "system", "system")


def test_integrity_survives_reload_and_catches_edits(db):
    entry = create_audit_log(
        db,
        entity_type="issue",
        entity_id=7,
        action="status_changed",
        ctx=RequestContext.anonymous("10.0.0.9"),
        source="legacy",
        changes_json={"status": {"before": "new", "after": "resolved"}},
    )
    db.commit()
    entry_id = entry.id
    db.expunge_all()

    stored = db.get(AuditLog, entry_id)
    assert verify_audit_entry(stored) is True
    assert verify_audit_entry(stored, secret="another-secret") is False

    stored.changes_json = {"status": {"before": "new", "after": "acknowledged"}}
    assert verify_audit_entry(stored) is False


def test_filtering_newest_first(db):
    for n in range(3):
        create_audit_log(db, entity_type="issue", entity_id=1, action=f"step_{n}")
    create_audit_log(db, entity_type="comment", entity_id=1, action="comment_approved")
    db.commit()

    rows = get_audit_logs(db, entity_type="issue", entity_id=1)
    assert sorted(r.action for r in rows) == ["step_0", "step_1", "step_2"]
    stamps = [r.timestamp_utc for r in rows]
    assert stamps == sorted(stamps, reverse=True)


def test_compute_diff():
    before = {"verified": False, "district": "Kathmandu"}
    after = {"verified": True, "district": "Kathmandu", "ward_no": 4}
    assert compute_diff(before, after) == {
        "verified": {"before": False, "after": True},
        "ward_no": {"before": None, "after": 4},
    }
