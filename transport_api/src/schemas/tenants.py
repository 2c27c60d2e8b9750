from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from src.tenancy.constants import StorageMode, TenantStatus


class TenantCreate(BaseModel):
    """Register a tenant together with its first admin user."""
    id: str = Field(..., pattern=r"^[a-z0-9][a-z0-9_]{1,48}$", description="Tenant identifier (lower-case)")
    name: str = Field(..., min_length=1, max_length=200, description="Display name")
    storage_mode: Optional[StorageMode] = Field(None, description="Defaults to the configured storage mode")
    status: TenantStatus = Field(TenantStatus.ACTIVE)
    trial_ends_at: Optional[datetime] = Field(None)
    admin_username: str = Field(..., min_length=3, max_length=100)
    admin_password: str = Field(..., min_length=6)


class TenantUpdate(BaseModel):
    """Change a tenant's name or lifecycle status."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    status: Optional[TenantStatus] = Field(None)
    trial_ends_at: Optional[datetime] = Field(None)


class TenantRead(BaseModel):
    """Tenant read model."""
    id: str = Field(..., description="Tenant identifier")
    name: str = Field(..., description="Display name")
    storage_mode: str = Field(..., description="shared, dedicated_schema or dedicated_external")
    status: str = Field(..., description="active, trial or suspended")
    trial_ends_at: Optional[datetime] = Field(None)
    location: Optional[str] = Field(None, description="Schema or external project holding the data")
    provisioned_at: Optional[datetime] = Field(None)
    created_at: datetime = Field(..., description="Created timestamp")

    class Config:
        from_attributes = True


class CachedTenant(BaseModel):
    tenant_id: str
    mode: str
    location: Optional[str] = None


class RouterStats(BaseModel):
    """Storage router cache statistics."""
    main_tenant_id: str
    default_mode: str
    cached: int = Field(..., description="Number of cached tenant providers (excluding main)")
    tenants: List[CachedTenant] = Field(default_factory=list)
