"""Tests for audit trail writes"""

from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.models.audit import AuditLog
from app.services.audit import SYSTEM_ACTOR, Actor, write_audit_log


async def test_entry_is_committed(test_db, ctx):
    resource_id = uuid4()
    actor = Actor(actor_type="admin", actor_id="owner-1", name="Owner")

    await write_audit_log(test_db, ctx, actor, "cancel", "reservation", resource_id, after={"status": "canceled"})

    entry = (await test_db.execute(select(AuditLog))).scalar_one()
    assert entry.resource_id == resource_id
    assert entry.actor_name == "Owner"
    assert entry.data_json == {"before": None, "after": {"status": "canceled"}}


async def test_commit_failure_does_not_reach_caller(test_db, ctx, monkeypatch):
    async def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("connection lost"))

    monkeypatch.setattr(test_db, "commit", failing_commit)
    await write_audit_log(test_db, ctx, SYSTEM_ACTOR, "create", "reservation", uuid4())
    monkeypatch.undo()

    # The session is usable again
    resource_id = uuid4()
    await write_audit_log(test_db, ctx, SYSTEM_ACTOR, "create", "reservation", resource_id)
    result = await test_db.execute(select(func.count(AuditLog.id)).where(AuditLog.resource_id == resource_id))
    assert result.scalar() == 1
