"""
Constants for tenancy concerns.
"""

from enum import Enum

# Sentinel tenant served from the shared schema.
MAIN_TENANT_ID = "main"

# Column carrying the tenant marker on every tenant-owned record.
TENANT_MARKER_FIELD = "tenant_id"


class StorageMode(str, Enum):
    """Where a tenant's data lives."""

    SHARED = "shared"
    DEDICATED_SCHEMA = "dedicated_schema"
    DEDICATED_EXTERNAL = "dedicated_external"


class TenantStatus(str, Enum):
    ACTIVE = "active"
    TRIAL = "trial"
    SUSPENDED = "suspended"


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"
