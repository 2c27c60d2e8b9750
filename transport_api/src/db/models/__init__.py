"""
ORM models for the control plane (tenants, users) and the tenant-owned
transport billing entities.

Importing this package ensures model classes are registered with the Base
metadata for Alembic and runtime usage.
"""

from .security import (  # noqa: F401
    Tenant,
    User,
)
from .transport import (  # noqa: F401
    TENANT_MODELS,
    Company,
    CompanyBalance,
    Driver,
    HistoricalTrip,
    OrderSequence,
    Payment,
    PaymentHistory,
    TransportOrder,
    WeeklyProcessing,
)
