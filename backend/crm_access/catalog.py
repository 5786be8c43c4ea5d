"""
Permission catalog: CRM modules and fields

Defines every module of the CRM and the fields inside it, each with a
default access level. The catalog is loaded once at import and never
mutated; it is the seed data for new roles and the reference that override
keys are validated against.

Module access: visible | hidden
Field access:  editable | readonly | hidden
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

CATALOG_VERSION = "2024.1"


class CatalogError(ValueError):
    """Raised when the static catalog is malformed."""


class ModuleAccess(str, enum.Enum):
    VISIBLE = "visible"
    HIDDEN = "hidden"


class FieldAccess(str, enum.Enum):
    EDITABLE = "editable"
    READONLY = "readonly"
    HIDDEN = "hidden"


@dataclass(frozen=True)
class ModuleField:
    key: str
    label: str
    default_permission: FieldAccess


@dataclass(frozen=True)
class ModuleDefinition:
    key: str
    label: str
    icon: str
    default_access: ModuleAccess
    fields: tuple[ModuleField, ...]

    def get_field(self, field_key: str) -> ModuleField | None:
        for f in self.fields:
            if f.key == field_key:
                return f
        return None


def _fields(*specs: tuple[str, str, str]) -> tuple[ModuleField, ...]:
    return tuple(ModuleField(key, label, FieldAccess(access)) for key, label, access in specs)


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------

DEPARTMENTS: tuple[dict[str, str], ...] = (
    {"id": "management", "name": "Management"},
    {"id": "sales", "name": "Sales"},
    {"id": "operations", "name": "Operations"},
    {"id": "finance", "name": "Finance"},
    {"id": "customer_service", "name": "Customer Service"},
    {"id": "it", "name": "IT"},
    {"id": "medical", "name": "Medical"},
)


# ---------------------------------------------------------------------------
# Module catalog (source of truth for defaults)
# ---------------------------------------------------------------------------

CRM_MODULES: tuple[ModuleDefinition, ...] = (
    ModuleDefinition(
        key="dashboard",
        label="Dashboard",
        icon="LayoutDashboard",
        default_access=ModuleAccess.VISIBLE,
        fields=_fields(
            ("stats_overview", "Statistics Overview", "readonly"),
            ("recent_customers", "Recent Customers", "readonly"),
            ("activity_feed", "Activity Feed", "readonly"),
        ),
    ),
    ModuleDefinition(
        key="customers",
        label="Customers",
        icon="Users",
        default_access=ModuleAccess.VISIBLE,
        fields=_fields(
            ("internal_id", "Internal ID", "editable"),
            ("title_before", "Title Before", "editable"),
            ("first_name", "First Name", "editable"),
            ("last_name", "Last Name", "editable"),
            ("maiden_name", "Maiden Name", "editable"),
            ("title_after", "Title After", "editable"),
            ("phone", "Phone", "editable"),
            ("mobile", "Mobile", "editable"),
            ("mobile_2", "Mobile 2", "editable"),
            ("email", "Email", "editable"),
            ("email_2", "Email 2", "editable"),
            ("national_id", "National ID", "editable"),
            ("id_card_number", "ID Card Number", "editable"),
            ("date_of_birth", "Date of Birth", "editable"),
            ("newsletter", "Newsletter", "editable"),
            ("complaint_type", "Complaint Type", "editable"),
            ("cooperation_type", "Cooperation Type", "editable"),
            ("vip_status", "VIP Status", "editable"),
            ("country", "Country", "editable"),
            ("city", "City", "editable"),
            ("address", "Address", "editable"),
            ("postal_code", "Postal Code", "editable"),
            ("region", "Region", "editable"),
            ("correspondence_address", "Correspondence Address", "editable"),
            ("bank_account", "Bank Account", "editable"),
            ("health_insurance", "Health Insurance", "editable"),
            ("client_status", "Client Status", "editable"),
            ("lead_score", "Lead Score", "readonly"),
            ("notes", "Notes", "editable"),
            ("assigned_user", "Assigned User", "editable"),
        ),
    ),
    ModuleDefinition(
        key="hospitals",
        label="Hospitals",
        icon="Building2",
        default_access=ModuleAccess.VISIBLE,
        fields=_fields(
            ("name", "Name", "editable"),
            ("full_name", "Full Name", "editable"),
            ("street_number", "Street Number", "editable"),
            ("city", "City", "editable"),
            ("postal_code", "Postal Code", "editable"),
            ("region", "Region", "editable"),
            ("country_code", "Country", "editable"),
            ("representative", "Representative", "editable"),
            ("laboratory", "Laboratory", "editable"),
            ("auto_recruiting", "Auto Recruiting", "editable"),
            ("responsible_person", "Responsible Person", "editable"),
            ("contact_person", "Contact Person", "editable"),
            ("svet_zdravia", "Svet Zdravia", "editable"),
            ("is_active", "Is Active", "editable"),
        ),
    ),
    ModuleDefinition(
        key="collaborators",
        label="Collaborators",
        icon="Handshake",
        default_access=ModuleAccess.VISIBLE,
        fields=_fields(
            ("title_before", "Title Before", "editable"),
            ("first_name", "First Name", "editable"),
            ("last_name", "Last Name", "editable"),
            ("title_after", "Title After", "editable"),
            ("email", "Email", "editable"),
            ("phone", "Phone", "editable"),
            ("mobile", "Mobile", "editable"),
            ("date_of_birth", "Date of Birth", "editable"),
            ("national_id", "National ID", "editable"),
            ("id_card_number", "ID Card Number", "editable"),
            ("company_name", "Company Name", "editable"),
            ("company_ico", "Company ICO", "editable"),
            ("company_dic", "Company DIC", "editable"),
            ("company_ic_dph", "Company IC DPH", "editable"),
            ("bank_account", "Bank Account", "editable"),
            ("addresses", "Addresses", "editable"),
            ("agreements", "Agreements", "editable"),
            ("pension_dates", "Pension Dates", "editable"),
            ("is_active", "Is Active", "editable"),
        ),
    ),
    ModuleDefinition(
        key="invoices",
        label="Invoices",
        icon="FileText",
        default_access=ModuleAccess.VISIBLE,
        fields=_fields(
            ("invoice_number", "Invoice Number", "readonly"),
            ("customer", "Customer", "editable"),
            ("billing_company", "Billing Company", "editable"),
            ("issue_date", "Issue Date", "editable"),
            ("due_date", "Due Date", "editable"),
            ("items", "Items", "editable"),
            ("subtotal", "Subtotal", "readonly"),
            ("vat_amount", "VAT Amount", "readonly"),
            ("total_amount", "Total Amount", "readonly"),
            ("status", "Status", "editable"),
            ("notes", "Notes", "editable"),
        ),
    ),
    ModuleDefinition(
        key="users",
        label="Users",
        icon="UserCog",
        default_access=ModuleAccess.HIDDEN,
        fields=_fields(
            ("username", "Username", "editable"),
            ("email", "Email", "editable"),
            ("full_name", "Full Name", "editable"),
            ("role", "Role", "editable"),
            ("assigned_countries", "Assigned Countries", "editable"),
            ("is_active", "Is Active", "editable"),
            ("password", "Password", "editable"),
        ),
    ),
    ModuleDefinition(
        key="settings",
        label="Settings",
        icon="Settings",
        default_access=ModuleAccess.HIDDEN,
        fields=_fields(
            ("complaint_types", "Complaint Types", "editable"),
            ("cooperation_types", "Cooperation Types", "editable"),
            ("vip_statuses", "VIP Statuses", "editable"),
            ("health_insurance", "Health Insurance Companies", "editable"),
            ("laboratories", "Laboratories", "editable"),
        ),
    ),
    ModuleDefinition(
        key="configurator",
        label="Configurator",
        icon="Cog",
        default_access=ModuleAccess.HIDDEN,
        fields=_fields(
            ("services", "Services Configuration", "editable"),
            ("products", "Products", "editable"),
            ("invoice_templates", "Invoice Templates", "editable"),
            ("invoice_editor", "Invoice Editor", "editable"),
            ("permissions_roles", "Permissions & Roles", "editable"),
        ),
    ),
)


# ---------------------------------------------------------------------------
# Index and validation
# ---------------------------------------------------------------------------


def build_index(modules: tuple[ModuleDefinition, ...]) -> dict[str, ModuleDefinition]:
    """Index modules by key, rejecting duplicate module or field keys."""
    index: dict[str, ModuleDefinition] = {}
    for module in modules:
        if module.key in index:
            raise CatalogError(f"Duplicate module key '{module.key}'.")
        seen: set[str] = set()
        for f in module.fields:
            if f.key in seen:
                raise CatalogError(
                    f"Duplicate field key '{f.key}' in module '{module.key}'."
                )
            seen.add(f.key)
        index[module.key] = module
    logger.debug("Loaded permission catalog %s (%d modules)", CATALOG_VERSION, len(index))
    return index


_MODULE_INDEX: dict[str, ModuleDefinition] = build_index(CRM_MODULES)

MODULE_KEYS: list[str] = [m.key for m in CRM_MODULES]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def get_module_by_key(key: str) -> ModuleDefinition | None:
    """Return the module definition for *key*, or ``None`` if unknown."""
    return _MODULE_INDEX.get(key)


def get_field_by_key(module_key: str, field_key: str) -> ModuleField | None:
    """Return the field *field_key* of module *module_key*, or ``None``."""
    module = get_module_by_key(module_key)
    if module is None:
        return None
    return module.get_field(field_key)


def default_module_access(module_key: str) -> ModuleAccess:
    """Catalog default for a module; unknown modules are hidden."""
    module = get_module_by_key(module_key)
    if module is None:
        return ModuleAccess.HIDDEN
    return module.default_access


def default_field_access(module_key: str, field_key: str) -> FieldAccess:
    """Catalog default for a field; unknown fields are readonly."""
    field = get_field_by_key(module_key, field_key)
    if field is None:
        return FieldAccess.READONLY
    return field.default_permission


def is_known_field_key(field_key: str) -> bool:
    """True if any module declares a field named *field_key*."""
    return any(m.get_field(field_key) is not None for m in CRM_MODULES)


def catalog_field_defaults() -> dict[str, FieldAccess]:
    """One default per unqualified field key, first declaring module wins.

    Role field overrides are keyed by field key alone, so fields that share
    a key across modules share one override.
    """
    defaults: dict[str, FieldAccess] = {}
    owners: dict[str, str] = {}
    for module in CRM_MODULES:
        for f in module.fields:
            if f.key not in defaults:
                defaults[f.key] = f.default_permission
                owners[f.key] = module.key
            elif defaults[f.key] != f.default_permission:
                logger.warning(
                    "Field key %r has default %s in %r but %s in %r; using %s",
                    f.key, defaults[f.key].value, owners[f.key],
                    f.default_permission.value, module.key, defaults[f.key].value,
                )
    return defaults


def catalog_as_dict() -> dict:
    """Serialisable view of the whole catalog."""
    return {
        "version": CATALOG_VERSION,
        "modules": [
            {
                "key": m.key,
                "label": m.label,
                "icon": m.icon,
                "default_access": m.default_access.value,
                "fields": [
                    {
                        "key": f.key,
                        "label": f.label,
                        "default_permission": f.default_permission.value,
                    }
                    for f in m.fields
                ],
            }
            for m in CRM_MODULES
        ],
    }
