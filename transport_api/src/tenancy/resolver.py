"""
Map an authenticated principal to the tenant whose storage serves it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from src.tenancy.constants import MAIN_TENANT_ID, Role, TenantStatus
from src.tenancy.context import Principal
from src.tenancy.errors import TenantSuspended, TrialExpired, Unauthenticated


def check_tenant_status(tenant, now: Optional[datetime] = None) -> None:
    """
    Reject suspended tenants and trials past their end date.

    Unknown tenants (no directory record) pass; they are registered lazily
    on first routing.

    Raises:
        TenantSuspended, TrialExpired
    """
    if tenant is None:
        return
    if tenant.status == TenantStatus.SUSPENDED.value:
        raise TenantSuspended("Tenant is suspended", tenant_id=tenant.id)
    if tenant.status == TenantStatus.TRIAL.value and tenant.trial_ends_at is not None:
        ends = tenant.trial_ends_at
        if ends.tzinfo is None:
            ends = ends.replace(tzinfo=timezone.utc)
        if ends <= (now or datetime.now(tz=timezone.utc)):
            raise TrialExpired("Trial period has ended", tenant_id=tenant.id)


def normalize_tenant_id(value: Optional[str], default: str = MAIN_TENANT_ID) -> str:
    """Strip and lower-case a tenant identifier; blank values fall back to `default`."""
    if value is None:
        return default
    value = str(value).strip().lower()
    return value or default


class TenantResolver:
    """
    Resolve principals to tenant identifiers.

    Resolution is a pure lookup of the principal's stored tenant field; there
    is no header or subdomain override, so a caller can never select another
    tenant's data.
    """

    def __init__(self, main_tenant_id: str = MAIN_TENANT_ID) -> None:
        self.main_tenant_id = main_tenant_id

    # PUBLIC_INTERFACE
    def resolve(self, principal: Optional[Principal]) -> str:
        """
        Return the tenant identifier for `principal`.

        Raises:
            Unauthenticated: when there is no principal.
        """
        if principal is None:
            raise Unauthenticated("Authentication required")
        return normalize_tenant_id(principal.tenant_id, self.main_tenant_id)

    # PUBLIC_INTERFACE
    def principal_from_user(self, user) -> Principal:
        """Build a Principal from a persisted user row; inactive or missing users are rejected."""
        if user is None:
            raise Unauthenticated("User not found")
        if not user.is_active:
            raise Unauthenticated("User is inactive")
        try:
            role = Role(user.role)
        except ValueError:
            role = Role.USER
        return Principal(
            user_id=user.id,
            username=user.username,
            tenant_id=user.tenant_id,
            role=role,
        )
