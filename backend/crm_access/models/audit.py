"""Audit log model."""
from __future__ import annotations

import datetime
import uuid

from sqlalchemy import JSON, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from crm_access.database import Base
from crm_access.models.base import UUIDPrimaryKeyMixin, utcnow


class AuditLog(UUIDPrimaryKeyMixin, Base):
    """Immutable audit trail of role, user and record changes."""
    __tablename__ = "audit_log"

    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    username: Mapped[str | None] = mapped_column(String(100))
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    resource_type: Mapped[str | None] = mapped_column(String(100))
    resource_id: Mapped[str | None] = mapped_column(String(200))
    details: Mapped[dict | None] = mapped_column(JSON)
    ip_address: Mapped[str | None] = mapped_column(String(45))
    event_category: Mapped[str] = mapped_column(
        String(20), nullable=False, default="mutation"
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.action!r} by {self.username!r}>"
