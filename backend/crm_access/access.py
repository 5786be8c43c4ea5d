"""Access resolution: catalog defaults + role overrides + the admin marker.

Everything here is a pure function of its arguments. The caller passes the
user and the role data it fetched; nothing is looked up globally and nothing
is cached between calls.

Fallback rules (kept as the CRM has always behaved):

* no user                          -> module ``False`` / field ``hidden``
* no role assigned, or role data
  not loaded yet                   -> admin marker decides
* override present                 -> override value
* override missing                 -> admin marker decides (the catalog
                                      default is NOT consulted)

Field overrides are matched by field key only, without the module key.
An explicit override on an admin's assigned role wins over the admin marker.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

from crm_access.catalog import CRM_MODULES, FieldAccess, ModuleAccess, get_module_by_key
from crm_access.config import settings


# ---------------------------------------------------------------------------
# Resolver inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UserContext:
    """The parts of a user record the resolver reads."""
    user_id: uuid.UUID | None
    username: str
    role: str | None = None
    role_id: uuid.UUID | None = None

    @classmethod
    def from_dict(cls, user: dict[str, Any]) -> UserContext:
        return cls(
            user_id=user.get("user_id"),
            username=user.get("username", ""),
            role=user.get("role"),
            role_id=user.get("role_id"),
        )


@dataclass(frozen=True)
class ModulePermission:
    module_key: str
    access: ModuleAccess


@dataclass(frozen=True)
class FieldPermission:
    field_key: str
    access: FieldAccess


@dataclass(frozen=True)
class RoleSnapshot:
    """Immutable copy of a role and its overrides, taken once per fetch."""
    id: uuid.UUID | None
    name: str
    legacy_role: str | None = None
    module_permissions: tuple[ModulePermission, ...] = field(default_factory=tuple)
    field_permissions: tuple[FieldPermission, ...] = field(default_factory=tuple)

    def find_module_permission(self, module_key: str) -> ModulePermission | None:
        for p in self.module_permissions:
            if p.module_key == module_key:
                return p
        return None

    def find_field_permission(self, field_key: str) -> FieldPermission | None:
        for p in self.field_permissions:
            if p.field_key == field_key:
                return p
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id) if self.id else None,
            "name": self.name,
            "legacy_role": self.legacy_role,
            "module_permissions": [
                {"module_key": p.module_key, "access": p.access.value}
                for p in self.module_permissions
            ],
            "field_permissions": [
                {"field_key": p.field_key, "access": p.access.value}
                for p in self.field_permissions
            ],
        }


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def is_admin(user: UserContext | None) -> bool:
    """True if the user carries the legacy administrative marker."""
    return user is not None and user.role == settings.ADMIN_ROLE_MARKER


def _fallback_field_access(user: UserContext) -> FieldAccess:
    return FieldAccess.EDITABLE if is_admin(user) else FieldAccess.READONLY


def can_access_module(
    user: UserContext | None,
    role_data: RoleSnapshot | None,
    module_key: str,
) -> bool:
    """Return whether *user* may see module *module_key*."""
    if user is None:
        return False

    if user.role_id is None or role_data is None:
        return is_admin(user)

    override = role_data.find_module_permission(module_key)
    if override is None:
        return is_admin(user)

    return override.access == ModuleAccess.VISIBLE


def get_field_access(
    user: UserContext | None,
    role_data: RoleSnapshot | None,
    module_key: str,
    field_key: str,
) -> FieldAccess:
    """Return the effective access level of *field_key* for *user*.

    *module_key* is accepted for symmetry with the catalog but does not take
    part in the override lookup.
    """
    if user is None:
        return FieldAccess.HIDDEN

    if user.role_id is None or role_data is None:
        return _fallback_field_access(user)

    override = role_data.find_field_permission(field_key)
    if override is None:
        return _fallback_field_access(user)

    return override.access


# ---------------------------------------------------------------------------
# Bound context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PermissionContext:
    """A (user, role data) pair with the resolver bound to it."""
    user: UserContext | None
    role_data: RoleSnapshot | None = None

    def can_access_module(self, module_key: str) -> bool:
        return can_access_module(self.user, self.role_data, module_key)

    def get_field_access(self, module_key: str, field_key: str) -> FieldAccess:
        return get_field_access(self.user, self.role_data, module_key, field_key)

    def visible_modules(self) -> list[str]:
        return [m.key for m in CRM_MODULES if self.can_access_module(m.key)]

    def field_map(self, module_key: str) -> dict[str, str]:
        """Decision for every catalog field of *module_key*."""
        module = get_module_by_key(module_key)
        if module is None:
            return {}
        return {
            f.key: self.get_field_access(module_key, f.key).value
            for f in module.fields
        }

    def summary(self) -> dict[str, Any]:
        return {
            "is_admin": is_admin(self.user),
            "role": self.role_data.name if self.role_data else None,
            "modules": {
                m.key: {
                    "visible": self.can_access_module(m.key),
                    "fields": self.field_map(m.key),
                }
                for m in CRM_MODULES
            },
        }
