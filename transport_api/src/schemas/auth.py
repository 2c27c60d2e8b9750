from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Username/password login payload."""
    username: str = Field(..., min_length=1, description="Username")
    password: str = Field(..., min_length=1, description="Password")


class UserRead(BaseModel):
    """User read model."""
    id: int = Field(..., description="User ID")
    username: str = Field(..., description="Username")
    tenant_id: Optional[str] = Field(None, description="Tenant the user belongs to (None means main)")
    role: str = Field(..., description="Role: user, admin or superadmin")
    is_active: bool = Field(..., description="Active flag")
    created_at: datetime = Field(..., description="Created timestamp")

    class Config:
        from_attributes = True


class SessionInfo(BaseModel):
    """Current session as seen by the isolation layer."""
    user: UserRead
    tenant_id: str = Field(..., description="Resolved tenant")
    storage_mode: str = Field(..., description="Storage mode serving the tenant")
