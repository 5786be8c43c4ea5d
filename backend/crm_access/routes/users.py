"""User management routes --- accounts and role assignment."""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.access import PermissionContext
from crm_access.binding import redact
from crm_access.database import get_db
from crm_access.middleware.auth import check_field_writes, hash_password, require_module
from crm_access.services import role_store
from crm_access.services.audit_service import write_audit_log

router = APIRouter(prefix="/api/users", tags=["users"])

MODULE_KEY = "users"

FIELD_KEYS: dict[str, str | None] = {
    "id": None,
    "created_at": None,
    "role_id": "role",
    "role_name": "role",
}

# Legacy coarse roles accepted in ``User.role``
VALID_LEGACY_ROLES = ("admin", "manager", "user")


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    username: str
    email: str
    full_name: str
    password: str
    role: str = "user"
    role_id: uuid.UUID | None = None
    is_active: bool = True
    assigned_countries: list[str] = []


class UserUpdate(BaseModel):
    email: str | None = None
    full_name: str | None = None
    password: str | None = None
    role: str | None = None
    is_active: bool | None = None
    assigned_countries: list[str] | None = None


class RoleAssignment(BaseModel):
    role_id: uuid.UUID | None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _user_out(u) -> dict:
    return {
        "id": str(u.id),
        "username": u.username,
        "email": u.email,
        "full_name": u.full_name,
        "role": u.role,
        "role_id": str(u.role_id) if u.role_id else None,
        "role_name": u.assigned_role.name if u.assigned_role else None,
        "is_active": u.is_active,
        "assigned_countries": list(u.assigned_countries or []),
        "created_at": u.created_at.isoformat() if u.created_at else None,
    }


def _field_keys(attrs) -> list[str]:
    keys = []
    for attr in attrs:
        key = FIELD_KEYS.get(attr, attr)
        if key is not None and key not in keys:
            keys.append(key)
    return keys


def _actor(ctx: PermissionContext) -> dict:
    return {"user_id": ctx.user.user_id, "username": ctx.user.username}


def _validate_legacy_role(role: str) -> None:
    if role not in VALID_LEGACY_ROLES:
        raise HTTPException(
            status_code=422,
            detail=f"Invalid role '{role}'. Valid roles: {', '.join(VALID_LEGACY_ROLES)}",
        )


REQUIRED_FIELDS = ("email", "full_name", "password", "role", "is_active", "assigned_countries")


def _reject_nulls(changes: dict) -> None:
    cleared = sorted(k for k in REQUIRED_FIELDS if k in changes and changes[k] is None)
    if cleared:
        raise HTTPException(
            status_code=422,
            detail=f"Fields cannot be null: {', '.join(cleared)}",
        )


async def _get_user_or_404(db: AsyncSession, user_id: uuid.UUID):
    from crm_access.models.user import User

    result = await db.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    u = result.scalar_one_or_none()
    if not u:
        raise HTTPException(status_code=404, detail="User not found")
    return u


async def _ensure_role_exists(db: AsyncSession, role_id: uuid.UUID | None) -> None:
    if role_id is not None and await role_store.get_role(db, role_id) is None:
        raise HTTPException(status_code=422, detail=f"Unknown role id '{role_id}'.")


# ---------------------------------------------------------------------------
# USER MANAGEMENT
# ---------------------------------------------------------------------------


@router.get("")
async def list_users(
    db: AsyncSession = Depends(get_db),
    ctx: PermissionContext = Depends(require_module(MODULE_KEY)),
):
    """List all users."""
    from crm_access.models.user import User

    result = await db.execute(select(User).order_by(User.username))
    items = [redact(ctx, MODULE_KEY, _user_out(u), FIELD_KEYS) for u in result.scalars().all()]
    return {"items": items, "total": len(items)}


@router.get("/{user_id}")
async def get_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: PermissionContext = Depends(require_module(MODULE_KEY)),
):
    u = await _get_user_or_404(db, user_id)
    return redact(ctx, MODULE_KEY, _user_out(u), FIELD_KEYS)


@router.post("", status_code=201)
async def create_user(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    ctx: PermissionContext = Depends(require_module(MODULE_KEY)),
):
    """Create a new user."""
    from crm_access.models.user import User

    check_field_writes(ctx, MODULE_KEY, _field_keys(body.model_dump(exclude_unset=True)))
    _validate_legacy_role(body.role)
    await _ensure_role_exists(db, body.role_id)

    existing = await db.execute(
        select(User).where(or_(User.username == body.username, User.email == body.email))
    )
    if existing.scalars().first():
        raise HTTPException(status_code=409, detail="Username or email already exists")

    new_user = User(
        username=body.username,
        email=body.email,
        full_name=body.full_name,
        password_hash=hash_password(body.password),
        role=body.role,
        role_id=body.role_id,
        is_active=body.is_active,
        assigned_countries=body.assigned_countries,
    )
    db.add(new_user)
    await db.flush()

    await write_audit_log(
        db,
        _actor(ctx),
        action="user.create",
        resource_type="user",
        resource_id=str(new_user.id),
        details={"username": body.username, "role": body.role},
    )
    await db.commit()

    u = await _get_user_or_404(db, new_user.id)
    return redact(ctx, MODULE_KEY, _user_out(u), FIELD_KEYS)


@router.put("/{user_id}")
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: PermissionContext = Depends(require_module(MODULE_KEY)),
):
    """Update an existing user; every submitted field must be editable."""
    from crm_access.models.user import User

    changes = body.model_dump(exclude_unset=True)
    check_field_writes(ctx, MODULE_KEY, _field_keys(changes))
    _reject_nulls(changes)

    target = await _get_user_or_404(db, user_id)

    if "email" in changes and changes["email"] != target.email:
        taken = await db.execute(
            select(User.id).where(User.email == changes["email"], User.id != user_id)
        )
        if taken.first():
            raise HTTPException(status_code=409, detail="Email already exists")

    if "role" in changes:
        _validate_legacy_role(changes["role"])

    audited = {}
    for attr, value in changes.items():
        if attr == "password":
            target.password_hash = hash_password(value)
            audited["password"] = "changed"
            continue
        setattr(target, attr, value)
        audited[attr] = value

    await write_audit_log(
        db,
        _actor(ctx),
        action="user.update",
        resource_type="user",
        resource_id=str(user_id),
        details=audited,
    )
    await db.commit()

    u = await _get_user_or_404(db, user_id)
    return redact(ctx, MODULE_KEY, _user_out(u), FIELD_KEYS)


@router.put("/{user_id}/role")
async def assign_role(
    user_id: uuid.UUID,
    body: RoleAssignment,
    db: AsyncSession = Depends(get_db),
    ctx: PermissionContext = Depends(require_module(MODULE_KEY)),
):
    """Assign a permission role to a user, or clear it with ``null``."""
    check_field_writes(ctx, MODULE_KEY, ["role"])
    await _ensure_role_exists(db, body.role_id)

    target = await _get_user_or_404(db, user_id)
    target.role_id = body.role_id

    await write_audit_log(
        db,
        _actor(ctx),
        action="user.role.assign",
        resource_type="user",
        resource_id=str(user_id),
        details={"role_id": str(body.role_id) if body.role_id else None},
    )
    await db.commit()

    u = await _get_user_or_404(db, user_id)
    return redact(ctx, MODULE_KEY, _user_out(u), FIELD_KEYS)
