"""Unit of Work implementations."""
from __future__ import annotations

from typing import Optional, Callable
import inspect

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.invoice_repository import SQLAlchemyInvoiceRepository
from infrastructure.repositories.memory_invoice_repository import (
    InMemoryInvoiceRepository,
    InMemoryInvoiceStore,
)


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """Unit of Work over one SQLAlchemy session and transaction."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.invoice_repository = SQLAlchemyInvoiceRepository(self.session)
        # Open a transaction explicitly only for writers
        if not self._readonly:
            self._transaction = await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            # commit/rollback normally ends the transaction; close it if still active
            tx = getattr(self, "_transaction", None)
            if tx is not None and getattr(tx, "is_active", False):
                close = getattr(tx, "close", None)
                if callable(close):
                    res = close()
                    if inspect.isawaitable(res):
                        await res
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None
            self.invoice_repository = None  # type: ignore[assignment]

    async def commit(self) -> None:
        if self._readonly:
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False


class InMemoryUnitOfWork(AbstractUnitOfWork):
    """Every write is applied immediately; commit and rollback are bookkeeping only."""

    def __init__(self, store: InMemoryInvoiceStore, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self._store = store

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        self.invoice_repository = InMemoryInvoiceRepository(self._store)
        return self

    async def commit(self) -> None:
        self._committed = True

    async def rollback(self) -> None:
        self._committed = False
