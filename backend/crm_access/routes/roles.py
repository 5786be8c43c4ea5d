"""Role management routes --- roles and their module/field overrides.

Reading roles needs the ``configurator`` module; changing them also needs
the ``permissions_roles`` field to be editable.
"""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.access import PermissionContext
from crm_access.catalog import FieldAccess, ModuleAccess, get_module_by_key, is_known_field_key
from crm_access.database import get_db
from crm_access.middleware.auth import require_field, require_module
from crm_access.services import role_store
from crm_access.services.audit_service import write_audit_log

router = APIRouter(prefix="/api/roles", tags=["roles"])

_can_view_roles = require_module("configurator")
_can_edit_roles = require_field("configurator", "permissions_roles")


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------


class ModulePermissionIn(BaseModel):
    module_key: str
    access: ModuleAccess


class FieldPermissionIn(BaseModel):
    field_key: str
    access: FieldAccess


class RoleCreate(BaseModel):
    name: str
    description: str | None = None
    legacy_role: str | None = None
    seed_from_catalog: bool = False
    module_permissions: list[ModulePermissionIn] = []
    field_permissions: list[FieldPermissionIn] = []


class RoleUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    legacy_role: str | None = None


class AccessIn(BaseModel):
    access: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _actor(ctx: PermissionContext) -> dict:
    return {"user_id": ctx.user.user_id, "username": ctx.user.username}


def _role_out(role) -> dict:
    out = role_store.snapshot_from_role(role).to_dict()
    out["description"] = role.description
    out["created_at"] = role.created_at.isoformat() if role.created_at else None
    out["updated_at"] = role.updated_at.isoformat() if role.updated_at else None
    return out


def _validate_module_key(module_key: str) -> None:
    if get_module_by_key(module_key) is None:
        raise HTTPException(status_code=422, detail=f"Unknown module '{module_key}'.")


def _validate_field_key(field_key: str) -> None:
    if not is_known_field_key(field_key):
        raise HTTPException(status_code=422, detail=f"Unknown field '{field_key}'.")


def _parse_access(enum_cls, value: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise HTTPException(
            status_code=422,
            detail=f"Invalid access '{value}'. Allowed: {allowed}",
        )


async def _get_role_or_404(db: AsyncSession, role_id: uuid.UUID):
    role = await role_store.get_role(db, role_id)
    if role is None:
        raise HTTPException(status_code=404, detail="Role not found")
    return role


# ---------------------------------------------------------------------------
# ROLES
# ---------------------------------------------------------------------------


@router.get("")
async def list_roles(
    db: AsyncSession = Depends(get_db),
    _ctx: PermissionContext = Depends(_can_view_roles),
):
    """List all roles with their overrides."""
    roles = await role_store.list_roles(db)
    items = [_role_out(r) for r in roles]
    return {"items": items, "total": len(items)}


@router.get("/{role_id}")
async def get_role(
    role_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _ctx: PermissionContext = Depends(_can_view_roles),
):
    """A single role with its module and field overrides."""
    role = await _get_role_or_404(db, role_id)
    return _role_out(role)


@router.post("", status_code=201)
async def create_role(
    body: RoleCreate,
    db: AsyncSession = Depends(get_db),
    ctx: PermissionContext = Depends(_can_edit_roles),
):
    from crm_access.models.role import Role

    if await role_store.get_role_by_name(db, body.name):
        raise HTTPException(status_code=409, detail="Role name already exists")

    for mp in body.module_permissions:
        _validate_module_key(mp.module_key)
    for fp in body.field_permissions:
        _validate_field_key(fp.field_key)

    role = Role(
        name=body.name,
        description=body.description,
        legacy_role=body.legacy_role,
    )
    for mp in body.module_permissions:
        role_store.set_module_permission(role, mp.module_key, mp.access)
    for fp in body.field_permissions:
        role_store.set_field_permission(role, fp.field_key, fp.access)
    if body.seed_from_catalog:
        role_store.seed_role_from_catalog(role)

    db.add(role)
    await db.flush()

    await write_audit_log(
        db,
        _actor(ctx),
        action="role.create",
        resource_type="role",
        resource_id=str(role.id),
        details={"name": body.name, "seeded": body.seed_from_catalog},
    )
    await db.commit()

    role = await _get_role_or_404(db, role.id)
    return _role_out(role)


@router.put("/{role_id}")
async def update_role(
    role_id: uuid.UUID,
    body: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: PermissionContext = Depends(_can_edit_roles),
):
    role = await _get_role_or_404(db, role_id)
    changes = body.model_dump(exclude_unset=True)

    if "name" in changes and changes["name"] is None:
        raise HTTPException(status_code=422, detail="Fields cannot be null: name")

    if "name" in changes and changes["name"] != role.name:
        if await role_store.get_role_by_name(db, changes["name"]):
            raise HTTPException(status_code=409, detail="Role name already exists")

    for attr, value in changes.items():
        setattr(role, attr, value)

    await write_audit_log(
        db,
        _actor(ctx),
        action="role.update",
        resource_type="role",
        resource_id=str(role_id),
        details=changes,
    )
    await db.commit()

    role = await _get_role_or_404(db, role_id)
    return _role_out(role)


@router.delete("/{role_id}")
async def delete_role(
    role_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: PermissionContext = Depends(_can_edit_roles),
):
    """Delete a role; users holding it fall back to their legacy role."""
    from crm_access.models.user import User

    role = await _get_role_or_404(db, role_id)
    name = role.name

    await db.execute(update(User).where(User.role_id == role_id).values(role_id=None))
    await db.delete(role)

    await write_audit_log(
        db,
        _actor(ctx),
        action="role.delete",
        resource_type="role",
        resource_id=str(role_id),
        details={"name": name},
    )
    await db.commit()
    return {"status": "deleted"}


@router.post("/{role_id}/seed")
async def seed_role(
    role_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: PermissionContext = Depends(_can_edit_roles),
):
    """Fill every missing override from the catalog defaults."""
    role = await _get_role_or_404(db, role_id)
    role_store.seed_role_from_catalog(role)

    await write_audit_log(
        db,
        _actor(ctx),
        action="role.seed",
        resource_type="role",
        resource_id=str(role_id),
    )
    await db.commit()

    role = await _get_role_or_404(db, role_id)
    return _role_out(role)


# ---------------------------------------------------------------------------
# MODULE OVERRIDES
# ---------------------------------------------------------------------------


@router.put("/{role_id}/modules/{module_key}")
async def set_module_permission(
    role_id: uuid.UUID,
    module_key: str,
    body: AccessIn,
    db: AsyncSession = Depends(get_db),
    ctx: PermissionContext = Depends(_can_edit_roles),
):
    _validate_module_key(module_key)
    access = _parse_access(ModuleAccess, body.access)
    role = await _get_role_or_404(db, role_id)

    role_store.set_module_permission(role, module_key, access)

    await write_audit_log(
        db,
        _actor(ctx),
        action="role.module.set",
        resource_type="role",
        resource_id=str(role_id),
        details={"module_key": module_key, "access": access.value},
    )
    await db.commit()

    role = await _get_role_or_404(db, role_id)
    return _role_out(role)


@router.delete("/{role_id}/modules/{module_key}")
async def remove_module_permission(
    role_id: uuid.UUID,
    module_key: str,
    db: AsyncSession = Depends(get_db),
    ctx: PermissionContext = Depends(_can_edit_roles),
):
    role = await _get_role_or_404(db, role_id)
    if not role_store.remove_module_permission(role, module_key):
        raise HTTPException(status_code=404, detail="Module override not found")

    await write_audit_log(
        db,
        _actor(ctx),
        action="role.module.remove",
        resource_type="role",
        resource_id=str(role_id),
        details={"module_key": module_key},
    )
    await db.commit()
    return {"status": "deleted"}


# ---------------------------------------------------------------------------
# FIELD OVERRIDES
# ---------------------------------------------------------------------------


@router.put("/{role_id}/fields/{field_key}")
async def set_field_permission(
    role_id: uuid.UUID,
    field_key: str,
    body: AccessIn,
    db: AsyncSession = Depends(get_db),
    ctx: PermissionContext = Depends(_can_edit_roles),
):
    _validate_field_key(field_key)
    access = _parse_access(FieldAccess, body.access)
    role = await _get_role_or_404(db, role_id)

    role_store.set_field_permission(role, field_key, access)

    await write_audit_log(
        db,
        _actor(ctx),
        action="role.field.set",
        resource_type="role",
        resource_id=str(role_id),
        details={"field_key": field_key, "access": access.value},
    )
    await db.commit()

    role = await _get_role_or_404(db, role_id)
    return _role_out(role)


@router.delete("/{role_id}/fields/{field_key}")
async def remove_field_permission(
    role_id: uuid.UUID,
    field_key: str,
    db: AsyncSession = Depends(get_db),
    ctx: PermissionContext = Depends(_can_edit_roles),
):
    role = await _get_role_or_404(db, role_id)
    if not role_store.remove_field_permission(role, field_key):
        raise HTTPException(status_code=404, detail="Field override not found")

    await write_audit_log(
        db,
        _actor(ctx),
        action="role.field.remove",
        resource_type="role",
        resource_id=str(role_id),
        details={"field_key": field_key},
    )
    await db.commit()
    return {"status": "deleted"}
