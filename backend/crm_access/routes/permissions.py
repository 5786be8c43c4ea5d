"""Permission catalog and effective-decision routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from crm_access.access import PermissionContext
from crm_access.binding import field_permission
from crm_access.catalog import DEPARTMENTS, catalog_as_dict, get_module_by_key
from crm_access.middleware.auth import get_current_user, get_permission_context

router = APIRouter(prefix="/api/permissions", tags=["permissions"])


@router.get("/catalog")
async def get_catalog(_user: dict = Depends(get_current_user)):
    """Modules, fields and their default access levels."""
    return catalog_as_dict()


@router.get("/departments")
async def get_departments(_user: dict = Depends(get_current_user)):
    return {"items": list(DEPARTMENTS)}


@router.get("/me")
async def my_permissions(ctx: PermissionContext = Depends(get_permission_context)):
    """Effective module and field decisions for the caller."""
    out = ctx.summary()
    out["visible_modules"] = ctx.visible_modules()
    out["role_data"] = ctx.role_data.to_dict() if ctx.role_data else None
    return out


@router.get("/check")
async def check_permission(
    module_key: str = Query(...),
    field_key: str | None = Query(None),
    ctx: PermissionContext = Depends(get_permission_context),
):
    """One decision: module visibility, plus a field decision if asked.

    Unknown keys are not an error; they resolve like any key without an
    override.
    """
    out = {
        "module_key": module_key,
        "known_module": get_module_by_key(module_key) is not None,
        "can_access_module": ctx.can_access_module(module_key),
    }
    if field_key is not None:
        decision = field_permission(ctx, module_key, field_key)
        out.update({
            "field_key": field_key,
            "field_access": decision.field_access.value,
            "is_hidden": decision.is_hidden,
            "is_readonly": decision.is_readonly,
        })
    return out
