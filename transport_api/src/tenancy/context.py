"""
Lightweight request-scoped context for tenancy-aware operations.
"""

from dataclasses import dataclass
from typing import Optional

from src.tenancy.constants import Role, StorageMode


@dataclass(frozen=True)
class Principal:
    """
    The authenticated caller as seen by the isolation layer.
    """

    user_id: int
    username: str
    tenant_id: Optional[str]
    role: Role = Role.USER

    @property
    def is_superadmin(self) -> bool:
        return self.role == Role.SUPERADMIN


@dataclass(frozen=True)
class TenantContext:
    """
    Captures the caller, the resolved tenant and the storage mode routed to.
    """

    principal: Principal
    tenant_id: str
    storage_mode: StorageMode
    request_id: Optional[str] = None
