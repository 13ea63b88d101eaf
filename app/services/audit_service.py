from typing import Optional, List
from datetime import datetime

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.actor import ActorContext
from app.models.audit_log import AuditAction, AuditLog


class AuditService:
    """
    Audit service for logging every ledger operation.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: AuditAction,
        module: str,
        description: str,
        entity_id: Optional[int] = None,
        actor: Optional[ActorContext] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        """
        Create an audit log entry.

        Args:
            action: The action performed (create, update, delete, error, warning, read)
            module: Ledger area the entity belongs to (batches, funds, sales, ...)
            description: Human-readable description
            entity_id: ID of the affected entity
            actor: The user performing the action, None for unauthenticated callers
            ip_address: Client IP address, defaults to the actor's
            user_agent: Client user agent, defaults to the actor's

        Returns:
            The created AuditLog entry
        """
        audit_log = AuditLog(
            action=action.value,
            module=module,
            entity_id=entity_id,
            user_id=actor.user_id if actor else None,
            description=description,
            ip_address=ip_address or (actor.ip_address if actor else None),
            user_agent=user_agent or (actor.user_agent if actor else None),
        )
        self.db.add(audit_log)
        await self.db.flush()
        return audit_log

    async def get_audit_logs(
        self,
        module: Optional[str] = None,
        entity_id: Optional[int] = None,
        user_id: Optional[int] = None,
        action: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> tuple[List[AuditLog], int]:
        """
        Get audit logs with filtering.
        """
        stmt = select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())

        if module:
            stmt = stmt.where(AuditLog.module == module)
        if entity_id:
            stmt = stmt.where(AuditLog.entity_id == entity_id)
        if user_id:
            stmt = stmt.where(AuditLog.user_id == user_id)
        if action:
            stmt = stmt.where(AuditLog.action == action)
        if start_date:
            stmt = stmt.where(AuditLog.created_at >= start_date)
        if end_date:
            stmt = stmt.where(AuditLog.created_at <= end_date)

        # Count total
        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await self.db.execute(count_stmt)).scalar()

        # Get paginated results
        stmt = stmt.offset(skip).limit(limit)
        result = await self.db.execute(stmt)
        logs = result.scalars().all()

        return list(logs), total
