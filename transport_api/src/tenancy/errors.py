"""
Error taxonomy for tenant resolution, routing and storage access.

Every error carries the HTTP status and machine-readable type used by the API
exception handler, plus the tenant it was raised for when known.
"""

from __future__ import annotations

from typing import Iterable, Optional


class TenancyError(Exception):
    """Base class for isolation-layer errors."""

    status_code = 500
    error_type = "tenancy_error"

    def __init__(self, message: str, *, tenant_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.tenant_id = tenant_id

    def with_tenant(self, tenant_id: str) -> "TenancyError":
        """Attach tenant context unless the error already names a tenant."""
        if self.tenant_id is None:
            self.tenant_id = tenant_id
        return self

    def __str__(self) -> str:
        if self.tenant_id is None:
            return self.message
        return f"{self.message} (tenant={self.tenant_id})"


class Unauthenticated(TenancyError):
    """Raised when no authenticated principal is available."""

    status_code = 401
    error_type = "unauthenticated"


class TrialExpired(TenancyError):
    """Raised when a trial tenant is used after its trial period."""

    status_code = 402
    error_type = "trial_expired"


class TenantSuspended(TenancyError):
    """Raised when the resolved tenant is not allowed to operate."""

    status_code = 403
    error_type = "tenant_suspended"


class Forbidden(TenancyError):
    """Raised when the principal lacks the role an operation requires."""

    status_code = 403
    error_type = "forbidden"


class NotFound(TenancyError):
    """Raised when a record does not exist for the current tenant."""

    status_code = 404
    error_type = "not_found"


class ConstraintViolation(TenancyError):
    """Raised on unique or foreign-key violations."""

    status_code = 409
    error_type = "constraint_violation"


class TenantProvisioningError(TenancyError):
    """Provisioning of tenant storage failed; the next request retries it."""

    status_code = 503
    error_type = "tenant_provisioning_failed"


class StorageConnectionError(TenancyError):
    """Transient failure talking to a storage backend; reads may be retried."""

    status_code = 503
    error_type = "storage_unavailable"


class StorageTimeout(StorageConnectionError):
    """A storage call exceeded its time budget."""

    status_code = 504
    error_type = "storage_timeout"


class LeakageError(TenancyError):
    """Records belonging to another tenant reached a response for this tenant."""

    status_code = 500
    error_type = "tenant_leakage"

    def __init__(
        self,
        tenant_id: str,
        offending_count: int,
        source_tenants: Iterable[Optional[str]],
        *,
        operation: Optional[str] = None,
    ) -> None:
        self.offending_count = offending_count
        self.source_tenants = sorted({"<missing>" if t is None else str(t) for t in source_tenants})
        self.operation = operation
        where = f" in {operation}" if operation else ""
        super().__init__(
            f"{offending_count} record(s) from tenant(s) {', '.join(self.source_tenants)} "
            f"returned{where}",
            tenant_id=tenant_id,
        )
