"""Administration routes --- audit log."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.access import PermissionContext
from crm_access.database import get_db
from crm_access.middleware.auth import require_module

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _entry_out(e) -> dict:
    return {
        "id": str(e.id),
        "user_id": str(e.user_id) if e.user_id else None,
        "username": e.username,
        "action": e.action,
        "resource_type": e.resource_type,
        "resource_id": e.resource_id,
        "details": e.details,
        "ip_address": e.ip_address,
        "event_category": e.event_category,
        "created_at": e.created_at.isoformat() if e.created_at else None,
    }


@router.get("/audit-log")
async def list_audit_log(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    action: str | None = Query(None),
    username: str | None = Query(None),
    resource_type: str | None = Query(None),
    category: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _ctx: PermissionContext = Depends(require_module("settings")),
):
    """Paginated audit trail, newest first."""
    from crm_access.models.audit import AuditLog

    filters = [
        column == value
        for column, value in (
            (AuditLog.action, action),
            (AuditLog.username, username),
            (AuditLog.resource_type, resource_type),
            (AuditLog.event_category, category),
        )
        if value
    ]

    total = (
        await db.execute(select(func.count()).select_from(AuditLog).where(*filters))
    ).scalar()

    stmt = (
        select(AuditLog)
        .where(*filters)
        .order_by(AuditLog.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(stmt)

    return {
        "items": [_entry_out(e) for e in result.scalars().all()],
        "total": total,
        "page": page,
        "page_size": page_size,
    }
