"""Audit Logs API endpoints."""
from typing import Optional
from datetime import datetime, date

from fastapi import APIRouter, Query

from app.api.deps import DB, Actor
from app.core.permissions import PermissionChecker
from app.models.audit_log import AuditAction
from app.models.user import UserRole
from app.schemas.audit_log import AuditLogResponse
from app.schemas.base import ListResponse
from app.services.audit_service import AuditService

router = APIRouter()


@router.get("", response_model=ListResponse[AuditLogResponse])
async def list_audit_logs(
    db: DB,
    actor: Actor,
    module: Optional[str] = None,
    entity_id: Optional[int] = None,
    user_id: Optional[int] = None,
    action: Optional[AuditAction] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    """
    List audit logs with filtering and pagination.

    Filters:
    - module: Ledger area (batches, funds, sales, ...)
    - entity_id: Filter by specific entity ID
    - user_id: Filter by user who performed action
    - action: create, update, delete, error, warning, read
    - start_date/end_date: Date range filter
    """
    PermissionChecker(actor).require_role(UserRole.OWNER, action="view audit logs")

    logs, total = await AuditService(db).get_audit_logs(
        module=module,
        entity_id=entity_id,
        user_id=user_id,
        action=action.value if action else None,
        start_date=datetime.combine(start_date, datetime.min.time()) if start_date else None,
        end_date=datetime.combine(end_date, datetime.max.time()) if end_date else None,
        skip=skip,
        limit=limit,
    )
    return ListResponse[AuditLogResponse](
        items=[AuditLogResponse.model_validate(log) for log in logs],
        total=total,
    )
