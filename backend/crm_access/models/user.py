"""User model for CRM authentication and authorization."""
from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, ForeignKey, String, Uuid, true
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crm_access.database import Base
from crm_access.models.base import TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from crm_access.models.role import Role


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A CRM user. ``role`` is the legacy coarse marker, ``role_id`` the
    permission profile."""
    __tablename__ = "users"

    username: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False
    )
    email: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="user",
    )
    role_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("roles.id", ondelete="SET NULL"),
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=true()
    )
    assigned_countries: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list
    )

    # ------ relationships ------
    assigned_role: Mapped[Role | None] = relationship(
        "Role",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<User {self.username!r} role={self.role!r}>"
