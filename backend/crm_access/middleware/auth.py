"""Authentication and authorization middleware for the CRM.

Provides:
- Password hashing (bcrypt)
- JWT creation / validation
- ``get_current_user()`` dependency
- ``get_permission_context()``: the caller's user + role snapshot, fetched
  fresh for every request
- ``require_module()`` / ``require_field()`` dependency factories
- ``check_field_writes()`` for per-field write enforcement
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.access import PermissionContext, UserContext
from crm_access.binding import (
    FieldAccessDenied,
    ModuleAccessDenied,
    enforce_field_writes,
    require_module_access,
)
from crm_access.catalog import FieldAccess
from crm_access.config import settings
from crm_access.database import get_db
from crm_access.services.role_store import load_role_snapshot

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain: str, hashed: str) -> bool:
    """Compare a plain-text password against a bcrypt hash."""
    return _pwd_context.verify(plain, hashed)


def hash_password(plain: str) -> str:
    """Return the bcrypt hash of a plain-text password."""
    return _pwd_context.hash(plain)


# ---------------------------------------------------------------------------
# JWT helpers
# ---------------------------------------------------------------------------


def create_access_token(data: dict[str, Any]) -> str:
    """Create a signed JWT containing *sub* (username), *role*, and *exp*."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_EXPIRY_MINUTES)
    to_encode.update({"exp": expire})

    for key in ("user_id", "role_id"):
        if to_encode.get(key) is not None and not isinstance(to_encode[key], str):
            to_encode[key] = str(to_encode[key])

    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


# ---------------------------------------------------------------------------
# OAuth2 scheme (tells Swagger UI where the login endpoint is)
# ---------------------------------------------------------------------------

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

# ---------------------------------------------------------------------------
# Current-user dependency
# ---------------------------------------------------------------------------


def user_to_dict(user) -> dict[str, Any]:
    return {
        "user_id": user.id,
        "username": user.username,
        "role": user.role,
        "role_id": user.role_id,
        "full_name": user.full_name,
        "email": user.email,
        "assigned_countries": list(user.assigned_countries or []),
    }


async def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Decode the JWT, look up the user in the ``users`` table, and return a
    dict describing the authenticated user.

    The role is always read from the database, never from the token, so role
    reassignments apply to the next request.
    """
    from crm_access.models.user import User

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
        username: str | None = payload.get("sub")
        if username is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    stmt = select(User).where(User.username == username)
    result = await db.execute(stmt)
    user: User | None = result.scalar_one_or_none()

    if user is None:
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    user_dict = user_to_dict(user)
    request.state.current_user = user_dict
    return user_dict


# ---------------------------------------------------------------------------
# Permission context (one resolution cycle per request)
# ---------------------------------------------------------------------------


async def build_permission_context(
    user: dict[str, Any],
    db: AsyncSession,
) -> PermissionContext:
    """Load the user's role overrides and bind them with the user."""
    user_ctx = UserContext.from_dict(user)
    role_id = user_ctx.role_id
    if role_id is not None and not isinstance(role_id, uuid.UUID):
        role_id = uuid.UUID(str(role_id))
    role_data = await load_role_snapshot(db, role_id)
    return PermissionContext(user=user_ctx, role_data=role_data)


async def get_permission_context(
    current_user: dict[str, Any] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> PermissionContext:
    return await build_permission_context(current_user, db)


# ---------------------------------------------------------------------------
# Dependency factories
# ---------------------------------------------------------------------------


def require_module(module_key: str):
    """Return a FastAPI dependency that ensures the caller can see
    *module_key*, and yields their ``PermissionContext``.

    Usage::

        @router.get("/customers")
        async def list_customers(
            ctx: PermissionContext = Depends(require_module("customers")),
        ):
            ...
    """

    async def _check_module(
        ctx: PermissionContext = Depends(get_permission_context),
    ) -> PermissionContext:
        try:
            require_module_access(ctx, module_key)
        except ModuleAccessDenied as exc:
            logger.info(
                "Module denied: user=%s module=%s",
                ctx.user.username if ctx.user else None, module_key,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=str(exc),
            )
        return ctx

    return _check_module


def require_field(module_key: str, field_key: str, access: FieldAccess = FieldAccess.EDITABLE):
    """Return a dependency that needs *module_key* visible and *field_key*
    resolved to *access* (editable by default)."""

    async def _check_field(
        ctx: PermissionContext = Depends(require_module(module_key)),
    ) -> PermissionContext:
        resolved = ctx.get_field_access(module_key, field_key)
        if resolved != access:
            logger.info(
                "Field denied: user=%s field=%s.%s resolved=%s",
                ctx.user.username if ctx.user else None,
                module_key, field_key, resolved.value,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Field '{field_key}' in '{module_key}' is {resolved.value}.",
            )
        return ctx

    return _check_field


def check_field_writes(
    ctx: PermissionContext,
    module_key: str,
    field_keys: Iterable[str],
) -> None:
    """Translate ``FieldAccessDenied`` into an HTTP 403."""
    try:
        enforce_field_writes(ctx, module_key, field_keys)
    except FieldAccessDenied as exc:
        logger.info(
            "Write denied: user=%s module=%s fields=%s",
            ctx.user.username if ctx.user else None,
            module_key, sorted(exc.fields),
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "message": str(exc),
                "fields": {k: v.value for k, v in exc.fields.items()},
            },
        )
