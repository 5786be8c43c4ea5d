"""Audit logging service.

Every audited action is stored in the ``audit_log`` table with a category
that tells retention tooling how long to keep it:

* **MUTATION** -- role, override, user and record changes, logins
* **READ_ACCESS** -- views of sensitive data
* **SYSTEM** -- startup, shutdown, failed authentication
"""

from __future__ import annotations

import enum
import logging
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event category enum (drives retention policy)
# ---------------------------------------------------------------------------


class AuditEventCategory(str, enum.Enum):
    MUTATION = "mutation"
    READ_ACCESS = "read_access"
    SYSTEM = "system"


# ---------------------------------------------------------------------------
# Action -> category classifier
# ---------------------------------------------------------------------------

_MUTATION_KEYWORDS = {
    "create",
    "update",
    "delete",
    "set",
    "assign",
    "seed",
    "login",
    "grant",
    "revoke",
    "remove",
}

_SYSTEM_PREFIXES = (
    "system.",
    "auth.failed",
)


def classify_action(action: str) -> AuditEventCategory:
    """Map an action string to a retention category."""
    action_lower = action.lower()

    for prefix in _SYSTEM_PREFIXES:
        if action_lower.startswith(prefix):
            return AuditEventCategory.SYSTEM

    # Mutations: any segment that is a mutation keyword
    parts = action_lower.replace(".", "_").split("_")
    for part in parts:
        if part in _MUTATION_KEYWORDS:
            return AuditEventCategory.MUTATION

    read_keywords = ("view", "read", "list", "export", "download")
    if any(kw in action_lower for kw in read_keywords):
        return AuditEventCategory.READ_ACCESS

    # Unknown actions are kept forever
    return AuditEventCategory.MUTATION


# ---------------------------------------------------------------------------
# Audit-log helper
# ---------------------------------------------------------------------------


async def write_audit_log(
    db: AsyncSession,
    user: dict[str, Any] | None,
    action: str,
    resource_type: str | None = None,
    resource_id: str | None = None,
    details: dict | None = None,
    ip_address: str | None = None,
) -> None:
    """Add an ``AuditLog`` row to the session; the caller commits."""
    from crm_access.models.audit import AuditLog

    category = classify_action(action)

    user_id = None
    username = None
    if user:
        uid = user.get("user_id")
        if uid:
            user_id = uid if isinstance(uid, uuid.UUID) else uuid.UUID(str(uid))
        username = user.get("username")

    entry = AuditLog(
        user_id=user_id,
        username=username,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
        ip_address=ip_address,
        event_category=category.value,
    )
    db.add(entry)
    await db.flush()
    logger.debug("Audit %s (%s) by %s", action, category.value, username)
