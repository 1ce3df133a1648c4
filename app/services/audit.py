"""Best-effort audit trail writes"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import AuditLog
from app.services.context import TenantContext

logger = structlog.get_logger()


@dataclass(frozen=True)
class Actor:
    """Who performed a change"""
    actor_type: str  # admin, customer, system
    actor_id: Optional[str] = None
    name: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


SYSTEM_ACTOR = Actor(actor_type="system")


async def write_audit_log(
    db: AsyncSession,
    ctx: TenantContext,
    actor: Actor,
    action: str,
    resource_type: str,
    resource_id: Optional[UUID],
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
) -> None:
    """Record an audit entry; failures are logged and never reach the caller"""
    entry = AuditLog(
        tenant_id=ctx.tenant_id,
        actor_id=actor.actor_id,
        actor_type=actor.actor_type,
        actor_name=actor.name,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        data_json={"before": before, "after": after},
        ip_address=actor.ip_address,
        user_agent=actor.user_agent,
    )
    log = logger.bind(
        tenant_id=str(ctx.tenant_id),
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id else None,
    )

    # Savepoint keeps a failed insert from expiring the caller's objects
    try:
        async with db.begin_nested():
            db.add(entry)
    except SQLAlchemyError as e:
        log.warning("audit_log.write_failed", error=str(e))
        return

    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        log.warning("audit_log.commit_failed", error=str(e))
