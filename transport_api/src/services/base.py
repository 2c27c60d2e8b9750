from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession


class BaseService:
    """
    Base class for control-plane services. Holds a session on the shared
    database for use across multiple repositories.

    Services own the transaction boundary: repositories flush, services commit.
    Tenant data is never reached through this session, only through the
    storage router.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
