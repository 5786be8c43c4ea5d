"""Customer routes -- field-level permissions enforced on reads and writes."""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.access import PermissionContext
from crm_access.binding import redact
from crm_access.database import get_db
from crm_access.middleware.auth import check_field_writes, require_module
from crm_access.services.audit_service import write_audit_log

router = APIRouter(prefix="/api/customers", tags=["customers"])

MODULE_KEY = "customers"

# Record attribute -> catalog field key, where they differ. ``None`` means
# the attribute is not permission-controlled.
FIELD_KEYS: dict[str, str | None] = {
    "id": None,
    "created_at": None,
    "updated_at": None,
    "assigned_user_id": "assigned_user",
}


def _field_keys(attrs) -> list[str]:
    keys = []
    for attr in attrs:
        key = FIELD_KEYS.get(attr, attr)
        if key is not None:
            keys.append(key)
    return keys


class CustomerCreate(BaseModel):
    internal_id: str | None = None
    first_name: str
    last_name: str
    email: str
    phone: str | None = None
    mobile: str | None = None
    country: str
    city: str | None = None
    address: str | None = None
    postal_code: str | None = None
    client_status: str | None = None
    lead_score: int | None = None
    notes: str | None = None
    assigned_user_id: uuid.UUID | None = None


class CustomerUpdate(BaseModel):
    internal_id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    mobile: str | None = None
    country: str | None = None
    city: str | None = None
    address: str | None = None
    postal_code: str | None = None
    client_status: str | None = None
    lead_score: int | None = None
    notes: str | None = None
    assigned_user_id: uuid.UUID | None = None


def _customer_out(c) -> dict:
    return {
        "id": str(c.id),
        "internal_id": c.internal_id,
        "first_name": c.first_name,
        "last_name": c.last_name,
        "email": c.email,
        "phone": c.phone,
        "mobile": c.mobile,
        "country": c.country,
        "city": c.city,
        "address": c.address,
        "postal_code": c.postal_code,
        "client_status": c.client_status,
        "lead_score": c.lead_score,
        "notes": c.notes,
        "assigned_user_id": str(c.assigned_user_id) if c.assigned_user_id else None,
        "created_at": c.created_at.isoformat() if c.created_at else None,
    }


# Columns an update may change but never clear
REQUIRED_FIELDS = ("first_name", "last_name", "email", "country", "client_status", "lead_score")


def _reject_nulls(changes: dict) -> None:
    cleared = sorted(k for k in REQUIRED_FIELDS if k in changes and changes[k] is None)
    if cleared:
        raise HTTPException(
            status_code=422,
            detail=f"Fields cannot be null: {', '.join(cleared)}",
        )


def _visible(ctx: PermissionContext, c) -> dict:
    return redact(ctx, MODULE_KEY, _customer_out(c), FIELD_KEYS)


def _actor(ctx: PermissionContext) -> dict:
    return {"user_id": ctx.user.user_id, "username": ctx.user.username}


@router.get("")
async def list_customers(
    country: str | None = Query(None),
    search: str | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    ctx: PermissionContext = Depends(require_module(MODULE_KEY)),
):
    from crm_access.models.customer import Customer

    count_stmt = select(func.count(Customer.id))
    data_stmt = select(Customer)

    if country:
        count_stmt = count_stmt.where(Customer.country == country)
        data_stmt = data_stmt.where(Customer.country == country)

    if search:
        like = f"%{search}%"
        search_filter = or_(
            Customer.first_name.ilike(like),
            Customer.last_name.ilike(like),
            Customer.email.ilike(like),
        )
        count_stmt = count_stmt.where(search_filter)
        data_stmt = data_stmt.where(search_filter)

    total = (await db.execute(count_stmt)).scalar_one()
    data_stmt = (
        data_stmt.order_by(Customer.last_name, Customer.first_name)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(data_stmt)
    items = [_visible(ctx, c) for c in result.scalars().all()]

    return {"items": items, "total": total, "page": page, "page_size": page_size}


@router.get("/{customer_id}")
async def get_customer(
    customer_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: PermissionContext = Depends(require_module(MODULE_KEY)),
):
    from crm_access.models.customer import Customer

    result = await db.execute(select(Customer).where(Customer.id == customer_id))
    c = result.scalar_one_or_none()
    if not c:
        raise HTTPException(status_code=404, detail="Customer not found")

    return _visible(ctx, c)


@router.post("", status_code=201)
async def create_customer(
    body: CustomerCreate,
    db: AsyncSession = Depends(get_db),
    ctx: PermissionContext = Depends(require_module(MODULE_KEY)),
):
    from crm_access.models.customer import Customer

    values = body.model_dump(exclude_unset=True)
    check_field_writes(ctx, MODULE_KEY, _field_keys(values))

    customer = Customer(**{k: v for k, v in values.items() if v is not None})
    db.add(customer)
    await db.flush()

    await write_audit_log(
        db,
        _actor(ctx),
        "customer.create",
        "customer",
        str(customer.id),
        {"fields": sorted(values)},
    )
    await db.commit()
    return _visible(ctx, customer)


@router.put("/{customer_id}")
async def update_customer(
    customer_id: uuid.UUID,
    body: CustomerUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: PermissionContext = Depends(require_module(MODULE_KEY)),
):
    from crm_access.models.customer import Customer

    result = await db.execute(select(Customer).where(Customer.id == customer_id))
    customer = result.scalar_one_or_none()
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")

    changes = body.model_dump(exclude_unset=True)
    check_field_writes(ctx, MODULE_KEY, _field_keys(changes))
    _reject_nulls(changes)

    for attr, value in changes.items():
        setattr(customer, attr, value)

    await write_audit_log(
        db,
        _actor(ctx),
        "customer.update",
        "customer",
        str(customer_id),
        {"fields": sorted(changes)},
    )
    await db.commit()
    return _visible(ctx, customer)
