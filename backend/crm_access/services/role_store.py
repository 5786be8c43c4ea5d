"""Role store: persisted roles and their overrides.

Roles are read into immutable ``RoleSnapshot`` objects so the resolver never
touches ORM state. Writes keep at most one override per (role, key).
"""
from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.access import FieldPermission, ModulePermission, RoleSnapshot
from crm_access.catalog import (
    CRM_MODULES,
    FieldAccess,
    ModuleAccess,
    catalog_field_defaults,
)
from crm_access.models.role import Role, RoleFieldPermission, RoleModulePermission

logger = logging.getLogger(__name__)


def snapshot_from_role(role: Role) -> RoleSnapshot:
    """Freeze a loaded ``Role`` into a ``RoleSnapshot``."""
    return RoleSnapshot(
        id=role.id,
        name=role.name,
        legacy_role=role.legacy_role,
        module_permissions=tuple(
            ModulePermission(p.module_key, ModuleAccess(p.access))
            for p in role.module_permissions
        ),
        field_permissions=tuple(
            FieldPermission(p.field_key, FieldAccess(p.access))
            for p in role.field_permissions
        ),
    )


async def get_role(db: AsyncSession, role_id: uuid.UUID) -> Role | None:
    """Fetch a role with its overrides, bypassing stale identity-map state."""
    stmt = (
        select(Role)
        .where(Role.id == role_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_role_by_name(db: AsyncSession, name: str) -> Role | None:
    result = await db.execute(select(Role).where(Role.name == name))
    return result.scalar_one_or_none()


async def list_roles(db: AsyncSession) -> list[Role]:
    result = await db.execute(select(Role).order_by(Role.name))
    return list(result.scalars().all())


async def load_role_snapshot(
    db: AsyncSession,
    role_id: uuid.UUID | None,
) -> RoleSnapshot | None:
    """Return the role's snapshot, or ``None`` if unassigned or missing."""
    if role_id is None:
        return None
    role = await get_role(db, role_id)
    if role is None:
        logger.warning("Role %s referenced but not found", role_id)
        return None
    return snapshot_from_role(role)


# ---------------------------------------------------------------------------
# Override writes
# ---------------------------------------------------------------------------


def set_module_permission(role: Role, module_key: str, access: ModuleAccess) -> RoleModulePermission:
    for p in role.module_permissions:
        if p.module_key == module_key:
            p.access = access.value
            return p
    perm = RoleModulePermission(module_key=module_key, access=access.value)
    role.module_permissions.append(perm)
    return perm


def set_field_permission(role: Role, field_key: str, access: FieldAccess) -> RoleFieldPermission:
    for p in role.field_permissions:
        if p.field_key == field_key:
            p.access = access.value
            return p
    perm = RoleFieldPermission(field_key=field_key, access=access.value)
    role.field_permissions.append(perm)
    return perm


def remove_module_permission(role: Role, module_key: str) -> bool:
    for p in role.module_permissions:
        if p.module_key == module_key:
            role.module_permissions.remove(p)
            return True
    return False


def remove_field_permission(role: Role, field_key: str) -> bool:
    for p in role.field_permissions:
        if p.field_key == field_key:
            role.field_permissions.remove(p)
            return True
    return False


def seed_role_from_catalog(role: Role) -> None:
    """Write an override for every catalog module and field key.

    Existing overrides are left untouched.
    """
    existing_modules = {p.module_key for p in role.module_permissions}
    for module in CRM_MODULES:
        if module.key not in existing_modules:
            set_module_permission(role, module.key, module.default_access)

    existing_fields = {p.field_key for p in role.field_permissions}
    for field_key, access in catalog_field_defaults().items():
        if field_key not in existing_fields:
            set_field_permission(role, field_key, access)
