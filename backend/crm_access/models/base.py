"""Base model utilities for the CRM access service.

Provides a UUID primary-key mixin so every model automatically gets
an ``id`` column of type ``UUID``, and a timestamp mixin.
"""
from __future__ import annotations

import datetime
import uuid

from sqlalchemy import Uuid
from sqlalchemy.orm import Mapped, mapped_column


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class UUIDPrimaryKeyMixin:
    """Mixin that adds a UUID primary key column named ``id``."""

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )


class TimestampMixin:
    """Mixin that adds ``created_at`` / ``updated_at``, set client-side."""

    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
