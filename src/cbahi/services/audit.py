"""Audit trail recording."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from cbahi.db.models.audit import AuditLogRow
from cbahi.services.common import generate_id, utcnow

logger = logging.getLogger(__name__)


async def record_audit(
    session: AsyncSession,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    actor_id: str | None = None,
    old_values: dict | None = None,
    new_values: dict | None = None,
) -> AuditLogRow:
    """Add an audit record to the caller's transaction."""
    row = AuditLogRow(
        audit_id=generate_id("aud_"),
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        old_values=old_values,
        new_values=new_values,
        created_at=utcnow(),
    )
    session.add(row)
    await session.flush()
    logger.debug("audit %s %s/%s by %s", action, entity_type, entity_id, actor_id or "system")
    return row
