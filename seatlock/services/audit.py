import logging
from typing import List, Optional

from sqlalchemy import select as sa_select
from sqlalchemy.ext.asyncio import AsyncSession

from seatlock.models.models import AuditLog

logger = logging.getLogger(__name__)


async def log_audit(
    db: AsyncSession,
    actor_id: Optional[int],
    action: str,
    object_type: str = None,
    object_id: str = None,
    detail: dict = None,
) -> AuditLog:
    """Stage an audit row; it commits or rolls back with the caller's transaction."""
    entry = AuditLog(
        actor_id=actor_id,
        action=action,
        object_type=object_type,
        object_id=object_id,
        detail=detail,
    )
    db.add(entry)
    logger.debug("audit %s", action, extra={"actor_id": actor_id, "object_type": object_type, "object_id": object_id})
    return entry


async def audit_trail(db: AsyncSession, object_type: str, object_id: str) -> List[AuditLog]:
    stmt = (
        sa_select(AuditLog)
        .where(AuditLog.object_type == object_type, AuditLog.object_id == object_id)
        .order_by(AuditLog.id)
    )
    res = await db.execute(stmt)
    return list(res.scalars().all())
