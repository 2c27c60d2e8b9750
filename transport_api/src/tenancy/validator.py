"""
Post-query check that every returned record belongs to the resolved tenant.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from src.tenancy.constants import TENANT_MARKER_FIELD, StorageMode
from src.tenancy.errors import LeakageError

security_logger = logging.getLogger("security.isolation")

_MISSING = object()


def _marker(record: Any) -> Any:
    if isinstance(record, Mapping):
        return record.get(TENANT_MARKER_FIELD, _MISSING)
    return getattr(record, TENANT_MARKER_FIELD, _MISSING)


# Results that are values, not records.
_SCALARS = (str, bytes, int, float, bool, Decimal)


def collect_records(result: Any) -> List[Any]:
    """
    Normalise a storage result into the list of records it carries.

    Scalars (counts, order numbers, None) and unmarked mappings (aggregates)
    carry no records. Any other object is a record and gets checked, whether
    or not it has a marker.
    """
    if result is None or isinstance(result, _SCALARS):
        return []
    if isinstance(result, (list, tuple)):
        return [r for r in result if r is not None]
    if isinstance(result, Mapping) and TENANT_MARKER_FIELD not in result:
        return []
    return [result]


class LeakageValidator:
    """
    Fail-closed tenant marker check.

    For shared-schema storage every record must carry the tenant's marker.
    Dedicated storage is isolated structurally and may omit the marker, but a
    present marker must still match.
    """

    # PUBLIC_INTERFACE
    def validate(
        self,
        tenant_id: str,
        records: Iterable[Any],
        mode: StorageMode = StorageMode.SHARED,
        *,
        operation: Optional[str] = None,
    ) -> List[Any]:
        """
        Return `records` unchanged when they all belong to `tenant_id`.

        Raises:
            LeakageError: naming the offending count and source tenants; never
            returns a filtered subset.
        """
        records = list(records)
        offenders = []
        for record in records:
            marker = _marker(record)
            if marker is _MISSING or marker is None:
                if mode == StorageMode.SHARED:
                    offenders.append(None)
                continue
            if str(marker) != tenant_id:
                offenders.append(marker)

        if offenders:
            error = LeakageError(tenant_id, len(offenders), offenders, operation=operation)
            security_logger.critical(
                "Tenant leakage blocked: %s",
                error,
                extra={
                    "event": "tenant.leakage",
                    "tenant": tenant_id,
                    "operation": operation,
                    "offending_count": error.offending_count,
                    "source_tenants": error.source_tenants,
                },
            )
            raise error
        return records
