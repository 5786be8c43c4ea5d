"""Authentication routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.access import PermissionContext
from crm_access.database import get_db
from crm_access.middleware.auth import (
    build_permission_context,
    create_access_token,
    get_current_user,
    user_to_dict,
    verify_password,
)
from crm_access.services.audit_service import write_audit_log

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: dict


def _token_for(user_row) -> str:
    return create_access_token({
        "sub": user_row.username,
        "role": user_row.role,
        "user_id": user_row.id,
    })


def _permissions(ctx: PermissionContext) -> dict:
    out = ctx.summary()
    out["visible_modules"] = ctx.visible_modules()
    return out


def _user_out(user: dict, permissions: dict) -> dict:
    return {
        "id": str(user["user_id"]),
        "username": user["username"],
        "full_name": user.get("full_name"),
        "email": user.get("email"),
        "role": user["role"],
        "role_id": str(user["role_id"]) if user.get("role_id") else None,
        "assigned_countries": user.get("assigned_countries", []),
        "permissions": permissions,
    }


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, request: Request, db: AsyncSession = Depends(get_db)):
    from crm_access.models.user import User

    stmt = select(User).where(User.username == body.username, User.is_active.is_(True))
    result = await db.execute(stmt)
    user = result.scalar_one_or_none()
    ip_address = request.client.host if request.client else None

    if not user or not verify_password(body.password, user.password_hash):
        await write_audit_log(
            db,
            None,
            "auth.failed",
            resource_type="auth",
            details={"username": body.username, "reason": "invalid_credentials"},
            ip_address=ip_address,
        )
        await db.commit()
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    user_dict = user_to_dict(user)
    ctx = await build_permission_context(user_dict, db)

    await write_audit_log(
        db,
        user_dict,
        "auth.login",
        resource_type="user",
        resource_id=str(user.id),
        details={"username": user.username},
        ip_address=ip_address,
    )
    await db.commit()

    return TokenResponse(
        access_token=_token_for(user),
        user=_user_out(user_dict, _permissions(ctx)),
    )


@router.get("/me")
async def get_me(
    user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    ctx = await build_permission_context(user, db)
    return _user_out(user, _permissions(ctx))


@router.post("/refresh")
async def refresh_token(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    from crm_access.models.user import User

    stmt = select(User).where(User.username == user["username"], User.is_active.is_(True))
    result = await db.execute(stmt)
    user_row = result.scalar_one_or_none()
    if not user_row:
        raise HTTPException(status_code=401, detail="User not found")

    return {"access_token": _token_for(user_row), "token_type": "bearer"}
