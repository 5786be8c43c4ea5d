"""Roles and their module/field permission overrides."""
from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crm_access.database import Base
from crm_access.models.base import TimestampMixin, UUIDPrimaryKeyMixin


class Role(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A named permission profile."""
    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    # Optional link to the legacy coarse role string (e.g. "admin")
    legacy_role: Mapped[str | None] = mapped_column(String(50))

    # ------ relationships ------
    module_permissions: Mapped[list[RoleModulePermission]] = relationship(
        back_populates="role",
        cascade="all, delete-orphan",
        order_by="RoleModulePermission.module_key",
        lazy="selectin",
    )
    field_permissions: Mapped[list[RoleFieldPermission]] = relationship(
        back_populates="role",
        cascade="all, delete-orphan",
        order_by="RoleFieldPermission.field_key",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Role {self.name!r}>"


class RoleModulePermission(UUIDPrimaryKeyMixin, Base):
    """Module visibility override (visible | hidden)."""
    __tablename__ = "role_module_permissions"
    __table_args__ = (UniqueConstraint("role_id", "module_key"),)

    role_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
    )
    module_key: Mapped[str] = mapped_column(String(100), nullable=False)
    access: Mapped[str] = mapped_column(String(20), nullable=False)

    role: Mapped[Role] = relationship(back_populates="module_permissions")

    def __repr__(self) -> str:
        return f"<ModulePermission {self.module_key}={self.access}>"


class RoleFieldPermission(UUIDPrimaryKeyMixin, Base):
    """Field access override (editable | readonly | hidden).

    Keyed by field key alone; fields sharing a key across modules share
    the override.
    """
    __tablename__ = "role_field_permissions"
    __table_args__ = (UniqueConstraint("role_id", "field_key"),)

    role_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
    )
    field_key: Mapped[str] = mapped_column(String(100), nullable=False)
    access: Mapped[str] = mapped_column(String(20), nullable=False)

    role: Mapped[Role] = relationship(back_populates="field_permissions")

    def __repr__(self) -> str:
        return f"<FieldPermission {self.field_key}={self.access}>"
