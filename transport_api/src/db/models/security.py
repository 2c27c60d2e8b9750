from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, true
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import TENANT_ID_LENGTH, Base, IntPkMixin, TimestampMixin


class Tenant(TimestampMixin, Base):
    """
    Control-plane tenant record.

    Lives in the shared schema only. `provisioned_at` is null while the
    tenant's storage does not exist (unprovisioned).
    """
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(TENANT_ID_LENGTH), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    storage_mode: Mapped[str] = mapped_column(String(32), nullable=False, default="dedicated_schema")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active", server_default="active")
    trial_ends_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # schema name or external project label
    provisioned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class User(IntPkMixin, TimestampMixin, Base):
    """Application user; the owning tenant is absent for main-tenant users."""
    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    hashed_password: Mapped[str] = mapped_column(Text, nullable=False)
    tenant_id: Mapped[Optional[str]] = mapped_column(
        String(TENANT_ID_LENGTH),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="user", server_default="user")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
