"""
Unit tests for the access resolver -- module visibility and field access.

Pure functions, no database: users and role snapshots are built in memory.
"""
import uuid

import pytest

from crm_access.access import (
    FieldPermission,
    ModulePermission,
    PermissionContext,
    RoleSnapshot,
    UserContext,
    can_access_module,
    get_field_access,
    is_admin,
)
from crm_access.catalog import (
    CRM_MODULES,
    FieldAccess,
    ModuleAccess,
    get_field_by_key,
    get_module_by_key,
)

SALES_ROLE_ID = uuid.uuid4()


# ── Helpers ──────────────────────────────────────────────────────────

def make_user(role="user", role_id=None, username="jana"):
    return UserContext(user_id=uuid.uuid4(), username=username, role=role, role_id=role_id)


def make_role(modules=(), fields=(), name="sales-rep"):
    return RoleSnapshot(
        id=SALES_ROLE_ID,
        name=name,
        module_permissions=tuple(ModulePermission(k, ModuleAccess(v)) for k, v in modules),
        field_permissions=tuple(FieldPermission(k, FieldAccess(v)) for k, v in fields),
    )


ALL_KEYS = [(m.key, f.key) for m in CRM_MODULES for f in m.fields]


# ── Absent user ──────────────────────────────────────────────────────

class TestAbsentUser:
    """No user context resolves to the most restrictive decision."""

    @pytest.mark.parametrize("module_key", [m.key for m in CRM_MODULES] + ["unknown"])
    def test_module_denied(self, module_key):
        assert can_access_module(None, make_role(modules=[(module_key, "visible")]), module_key) is False

    def test_field_hidden_for_every_catalog_field(self):
        role = make_role(fields=[("email", "editable")])
        for module_key, field_key in ALL_KEYS:
            assert get_field_access(None, role, module_key, field_key) == FieldAccess.HIDDEN

    def test_field_hidden_without_role_data(self):
        assert get_field_access(None, None, "customers", "email") == FieldAccess.HIDDEN


# ── Administrative marker ────────────────────────────────────────────

class TestAdministrator:

    def test_is_admin_marker(self):
        assert is_admin(make_user(role="admin"))
        assert not is_admin(make_user(role="manager"))
        assert not is_admin(None)

    def test_admin_without_role_sees_everything(self):
        admin = make_user(role="admin")
        for module in CRM_MODULES:
            assert can_access_module(admin, None, module.key) is True
        for module_key, field_key in ALL_KEYS:
            assert get_field_access(admin, None, module_key, field_key) == FieldAccess.EDITABLE

    def test_admin_with_role_not_loaded_yet(self):
        admin = make_user(role="admin", role_id=SALES_ROLE_ID)
        assert can_access_module(admin, None, "settings") is True
        assert get_field_access(admin, None, "customers", "lead_score") == FieldAccess.EDITABLE

    def test_admin_with_role_lacking_overrides(self):
        admin = make_user(role="admin", role_id=SALES_ROLE_ID)
        role = make_role(modules=[("customers", "visible")], fields=[("email", "readonly")])
        assert can_access_module(admin, role, "configurator") is True
        assert get_field_access(admin, role, "customers", "notes") == FieldAccess.EDITABLE

    def test_explicit_override_applies_to_admin_too(self):
        """An override on the admin's own role is honoured as written."""
        admin = make_user(role="admin", role_id=SALES_ROLE_ID)
        role = make_role(modules=[("settings", "hidden")], fields=[("email", "readonly")])
        assert can_access_module(admin, role, "settings") is False
        assert get_field_access(admin, role, "customers", "email") == FieldAccess.READONLY


# ── Non-admin fallbacks ──────────────────────────────────────────────

class TestNonAdminFallback:

    def test_no_role_assignment(self):
        user = make_user()
        assert can_access_module(user, make_role(modules=[("customers", "visible")]), "customers") is False
        assert get_field_access(user, None, "customers", "email") == FieldAccess.READONLY

    def test_role_data_not_loaded(self):
        user = make_user(role_id=SALES_ROLE_ID)
        assert can_access_module(user, None, "dashboard") is False
        assert get_field_access(user, None, "customers", "email") == FieldAccess.READONLY

    def test_module_miss_ignores_catalog_default(self):
        """Dashboard defaults to visible in the catalog, but without an
        override a non-admin falls back to the admin check."""
        assert get_module_by_key("dashboard").default_access == ModuleAccess.VISIBLE
        user = make_user(role_id=SALES_ROLE_ID)
        assert can_access_module(user, make_role(), "dashboard") is False

    def test_field_miss_is_readonly_not_catalog_default(self):
        assert get_field_by_key("customers", "notes").default_permission == FieldAccess.EDITABLE
        user = make_user(role_id=SALES_ROLE_ID)
        assert get_field_access(user, make_role(), "customers", "notes") == FieldAccess.READONLY

    def test_unknown_keys_fall_back(self):
        user = make_user(role_id=SALES_ROLE_ID)
        role = make_role()
        assert can_access_module(user, role, "no_such_module") is False
        assert get_field_access(user, role, "no_such_module", "nope") == FieldAccess.READONLY


# ── Overrides ────────────────────────────────────────────────────────

class TestOverrides:

    def test_field_override_beats_catalog_default(self):
        assert get_field_by_key("customers", "email").default_permission == FieldAccess.EDITABLE
        user = make_user(role_id=SALES_ROLE_ID)
        role = make_role(fields=[("email", "readonly")])
        assert get_field_access(user, role, "customers", "email") == FieldAccess.READONLY

    @pytest.mark.parametrize("access", ["editable", "readonly", "hidden"])
    def test_field_override_value_returned(self, access):
        user = make_user(role_id=SALES_ROLE_ID)
        role = make_role(fields=[("national_id", access)])
        assert get_field_access(user, role, "customers", "national_id") == FieldAccess(access)

    def test_settings_scenario(self):
        """Hidden-by-default module becomes visible once overridden."""
        assert get_module_by_key("settings").default_access == ModuleAccess.HIDDEN
        user = make_user(role_id=SALES_ROLE_ID)

        assert can_access_module(user, make_role(), "settings") is False
        role = make_role(modules=[("settings", "visible")])
        assert can_access_module(user, role, "settings") is True

    def test_hidden_module_override(self):
        user = make_user(role_id=SALES_ROLE_ID)
        role = make_role(modules=[("customers", "hidden")])
        assert can_access_module(user, role, "customers") is False

    def test_field_override_shared_across_modules(self):
        """Overrides are keyed by field key only: 'notes' in customers and
        invoices resolve to the same override."""
        user = make_user(role_id=SALES_ROLE_ID)
        role = make_role(fields=[("notes", "hidden")])
        assert get_field_access(user, role, "customers", "notes") == FieldAccess.HIDDEN
        assert get_field_access(user, role, "invoices", "notes") == FieldAccess.HIDDEN

    def test_first_override_wins(self):
        user = make_user(role_id=SALES_ROLE_ID)
        role = make_role(fields=[("email", "hidden"), ("email", "editable")])
        assert get_field_access(user, role, "customers", "email") == FieldAccess.HIDDEN


# ── Purity ───────────────────────────────────────────────────────────

class TestDeterminism:

    def test_same_inputs_same_decisions(self):
        user = make_user(role_id=SALES_ROLE_ID)
        role = make_role(modules=[("customers", "visible")], fields=[("email", "readonly")])
        first = [
            (can_access_module(user, role, m), get_field_access(user, role, m, f))
            for m, f in ALL_KEYS
        ]
        second = [
            (can_access_module(user, role, m), get_field_access(user, role, m, f))
            for m, f in ALL_KEYS
        ]
        assert first == second

    def test_resolution_does_not_mutate_role(self):
        role = make_role(fields=[("email", "readonly")])
        before = role.to_dict()
        get_field_access(make_user(role_id=SALES_ROLE_ID), role, "customers", "email")
        assert role.to_dict() == before


# ── PermissionContext ────────────────────────────────────────────────

class TestPermissionContext:

    def test_bound_methods_match_functions(self):
        user = make_user(role_id=SALES_ROLE_ID)
        role = make_role(modules=[("customers", "visible")], fields=[("email", "readonly")])
        ctx = PermissionContext(user, role)
        assert ctx.can_access_module("customers") is can_access_module(user, role, "customers")
        assert ctx.get_field_access("customers", "email") == FieldAccess.READONLY

    def test_visible_modules(self):
        user = make_user(role_id=SALES_ROLE_ID)
        role = make_role(modules=[("customers", "visible"), ("dashboard", "visible"), ("users", "hidden")])
        assert PermissionContext(user, role).visible_modules() == ["dashboard", "customers"]

    def test_field_map_and_summary(self):
        user = make_user(role_id=SALES_ROLE_ID)
        role = make_role(modules=[("customers", "visible")], fields=[("email", "hidden")])
        ctx = PermissionContext(user, role)

        fields = ctx.field_map("customers")
        assert fields["email"] == "hidden"
        assert fields["first_name"] == "readonly"
        assert ctx.field_map("no_such_module") == {}

        summary = ctx.summary()
        assert summary["is_admin"] is False
        assert summary["role"] == "sales-rep"
        assert summary["modules"]["customers"]["visible"] is True
        assert summary["modules"]["settings"]["visible"] is False

    def test_user_context_from_dict(self):
        role_id = uuid.uuid4()
        user = UserContext.from_dict({"user_id": None, "username": "x", "role": "admin", "role_id": role_id})
        assert user.role_id == role_id
        assert is_admin(user)
