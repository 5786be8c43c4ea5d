"""Permission-aware view binding.

Turns field decisions into the three flags a view renders from, and gives
request handlers the same decisions for server-side enforcement.

Two ways to get at a ``PermissionContext``:

* pass it explicitly (preferred), or
* open a scope with ``provide_permissions(ctx)`` and call
  ``use_permissions()`` inside it. Calling ``use_permissions()`` outside a
  scope is a wiring bug and raises ``PermissionsScopeError``.
"""
from __future__ import annotations

import contextvars
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any, NamedTuple, TypeVar

from crm_access.access import PermissionContext
from crm_access.catalog import FieldAccess

T = TypeVar("T")


class PermissionsScopeError(RuntimeError):
    """Permission API used outside ``provide_permissions()``."""


class AccessDenied(Exception):
    """Base class for server-side permission denials."""


class ModuleAccessDenied(AccessDenied):
    def __init__(self, module_key: str) -> None:
        self.module_key = module_key
        super().__init__(f"Module '{module_key}' is not accessible.")


class FieldAccessDenied(AccessDenied):
    def __init__(self, module_key: str, fields: dict[str, FieldAccess]) -> None:
        self.module_key = module_key
        self.fields = fields
        listed = ", ".join(f"{k} ({v.value})" for k, v in sorted(fields.items()))
        super().__init__(f"Fields not editable in '{module_key}': {listed}.")


# ---------------------------------------------------------------------------
# Scope
# ---------------------------------------------------------------------------

_current_permissions: contextvars.ContextVar[PermissionContext | None] = (
    contextvars.ContextVar("current_permissions", default=None)
)


@contextmanager
def provide_permissions(ctx: PermissionContext) -> Iterator[PermissionContext]:
    token = _current_permissions.set(ctx)
    try:
        yield ctx
    finally:
        _current_permissions.reset(token)


def use_permissions() -> PermissionContext:
    ctx = _current_permissions.get()
    if ctx is None:
        raise PermissionsScopeError(
            "use_permissions must be used within provide_permissions"
        )
    return ctx


# ---------------------------------------------------------------------------
# Field decisions
# ---------------------------------------------------------------------------


class FieldDecision(NamedTuple):
    is_hidden: bool
    is_readonly: bool
    field_access: FieldAccess


def field_permission(ctx: PermissionContext, module_key: str, field_key: str) -> FieldDecision:
    access = ctx.get_field_access(module_key, field_key)
    return FieldDecision(
        is_hidden=access == FieldAccess.HIDDEN,
        is_readonly=access == FieldAccess.READONLY,
        field_access=access,
    )


def permission_field(
    ctx: PermissionContext,
    module_key: str,
    field_key: str,
    render: Callable[[FieldDecision], T],
) -> T | None:
    """Call *render* with the field's decision; render nothing if hidden."""
    decision = field_permission(ctx, module_key, field_key)
    if decision.is_hidden:
        return None
    return render(decision)


class ModuleFieldPermissions:
    """Field queries scoped to one module.

    Every query resolves again against the current context, so a changed
    role snapshot shows up on the next call.
    """

    def __init__(self, module_key: str, ctx: PermissionContext | None = None) -> None:
        self.module_key = module_key
        self._ctx = ctx if ctx is not None else use_permissions()

    def get_access(self, field_key: str) -> FieldAccess:
        return self._ctx.get_field_access(self.module_key, field_key)

    def is_hidden(self, field_key: str) -> bool:
        return self.get_access(field_key) == FieldAccess.HIDDEN

    def is_readonly(self, field_key: str) -> bool:
        return self.get_access(field_key) == FieldAccess.READONLY

    def is_editable(self, field_key: str) -> bool:
        return self.get_access(field_key) == FieldAccess.EDITABLE


# ---------------------------------------------------------------------------
# Server-side enforcement
# ---------------------------------------------------------------------------


def require_module_access(ctx: PermissionContext, module_key: str) -> None:
    if not ctx.can_access_module(module_key):
        raise ModuleAccessDenied(module_key)


def enforce_field_writes(
    ctx: PermissionContext,
    module_key: str,
    field_keys: Iterable[str],
) -> None:
    """Raise ``FieldAccessDenied`` if any of *field_keys* is not editable."""
    denied = {}
    for key in field_keys:
        access = ctx.get_field_access(module_key, key)
        if access != FieldAccess.EDITABLE:
            denied[key] = access
    if denied:
        raise FieldAccessDenied(module_key, denied)


def redact(
    ctx: PermissionContext,
    module_key: str,
    record: Mapping[str, Any],
    field_keys: Mapping[str, str | None] | None = None,
) -> dict[str, Any]:
    """Drop hidden fields from *record*.

    *field_keys* maps record attributes to catalog field keys where they
    differ; attributes without an entry are checked under their own name.
    Attributes mapped to ``None`` are always kept.
    """
    field_keys = field_keys or {}
    out = {}
    for attr, value in record.items():
        key = field_keys.get(attr, attr)
        if key is not None and ctx.get_field_access(module_key, key) == FieldAccess.HIDDEN:
            continue
        out[attr] = value
    return out
