"""
Audit trail writer.

A write-only sink: entries are appended in their own short session, after
the ballot transaction has committed. Failures are logged locally and
never propagate to the caller, so an audit outage cannot fail a cast.
"""

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models.audit_log import AuditAction, AuditLog

logger = structlog.get_logger(__name__)


class AuditTrail:
    """Best-effort appender for audit log entries."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def record(
        self,
        actor_id: Optional[int],
        action: AuditAction,
        resource_type: Optional[str] = None,
        resource_id: Optional[int] = None,
        details: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> bool:
        """
        Append one entry.

        Returns:
            True if the entry was written, False if it was dropped.
        """
        try:
            async with self._session_factory() as session, session.begin():
                session.add(
                    AuditLog(
                        actor_id=actor_id,
                        action=action.value,
                        resource_type=resource_type,
                        resource_id=resource_id,
                        details=details,
                        ip_address=ip_address,
                    )
                )
        except Exception as e:
            logger.warning(
                "audit_write_failed",
                action=action.value,
                actor_id=actor_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        return True
