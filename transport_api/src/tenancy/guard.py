"""
Per-request isolation guard around a routed storage provider.

Every coroutine operation called through IsolatedStorage is bounded by a
timeout, retried on transient errors when it only reads, checked by the
leakage validator, and written to the audit log.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from functools import wraps
from typing import Any, Optional

from src.core.settings import AppSettings, get_app_settings
from src.storage.base import StorageProvider
from src.tenancy.context import TenantContext
from src.tenancy.errors import StorageConnectionError, StorageTimeout, TenancyError
from src.tenancy.validator import LeakageValidator, collect_records

audit_logger = logging.getLogger("security.audit")
logger = logging.getLogger(__name__)

# Operations with these prefixes never write and are safe to retry.
READ_PREFIXES = ("get_", "list_", "find_", "next_")


def is_read_operation(name: str) -> bool:
    return name.startswith(READ_PREFIXES)


class IsolatedStorage:
    """
    Proxy exposing the provider's operations under isolation checks.

    Example:
        storage = IsolatedStorage(provider, ctx)
        companies = await storage.list_companies()
    """

    def __init__(
        self,
        provider: StorageProvider,
        context: TenantContext,
        *,
        settings: Optional[AppSettings] = None,
        validator: Optional[LeakageValidator] = None,
    ) -> None:
        self._provider = provider
        self.context = context
        self._validator = validator or LeakageValidator()
        settings = settings or get_app_settings()
        self._timeout = settings.STORAGE_TIMEOUT_SECONDS
        self._attempts = settings.STORAGE_RETRY_ATTEMPTS
        self._backoff = settings.STORAGE_RETRY_BACKOFF_SECONDS
        self._max_backoff = settings.STORAGE_RETRY_MAX_BACKOFF_SECONDS

    @property
    def tenant_id(self) -> str:
        return self.context.tenant_id

    @property
    def provider(self) -> StorageProvider:
        return self._provider

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        attr = getattr(self._provider, name)
        if name in ("provision", "drop", "close") or not inspect.iscoroutinefunction(attr):
            return attr

        @wraps(attr)
        async def guarded(*args, **kwargs):
            return await self._call(name, attr, args, kwargs)

        return guarded

    async def _attempt(self, name: str, method, args, kwargs) -> Any:
        try:
            return await asyncio.wait_for(method(*args, **kwargs), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise StorageTimeout(
                f"{name} exceeded {self._timeout:g}s", tenant_id=self.tenant_id
            ) from exc

    async def _call(self, name: str, method, args, kwargs) -> Any:
        ctx = self.context
        attempts = self._attempts if is_read_operation(name) else 1
        delay = self._backoff
        started = time.perf_counter()

        attempt = 1
        while True:
            try:
                result = await self._attempt(name, method, args, kwargs)
                break
            except StorageConnectionError as exc:
                if attempt >= attempts:
                    self._audit(name, "error", started, error=exc)
                    raise exc.with_tenant(ctx.tenant_id)
                logger.warning(
                    "Retrying %s for tenant %s after %s (attempt %d/%d)",
                    name,
                    ctx.tenant_id,
                    exc.error_type,
                    attempt,
                    attempts,
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, self._max_backoff)
                attempt += 1
            except TenancyError as exc:
                self._audit(name, "error", started, error=exc)
                raise exc.with_tenant(ctx.tenant_id)
            except Exception as exc:
                self._audit(name, "error", started, error=exc)
                raise

        records = collect_records(result)
        try:
            self._validator.validate(ctx.tenant_id, records, ctx.storage_mode, operation=name)
        except TenancyError as exc:
            self._audit(name, "blocked", started, error=exc, count=len(records))
            raise
        self._audit(name, "ok", started, count=len(records))
        return result

    def _audit(
        self,
        operation: str,
        outcome: str,
        started: float,
        *,
        count: int = 0,
        error: Optional[BaseException] = None,
    ) -> None:
        ctx = self.context
        elapsed_ms = (time.perf_counter() - started) * 1000
        level = logging.INFO if error is None else logging.WARNING
        audit_logger.log(
            level,
            "storage op=%s outcome=%s principal=%s tenant=%s mode=%s records=%d elapsed_ms=%.1f%s",
            operation,
            outcome,
            ctx.principal.username,
            ctx.tenant_id,
            ctx.storage_mode.value,
            count,
            elapsed_ms,
            f" error={getattr(error, 'error_type', type(error).__name__)}" if error is not None else "",
            extra={
                "event": "storage.operation",
                "operation": operation,
                "outcome": outcome,
                "storage_mode": ctx.storage_mode.value,
                "record_count": count,
            },
        )
