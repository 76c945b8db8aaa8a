"""Unit of Work abstraction."""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.invoice.repository import InvoiceRepository


class AbstractUnitOfWork(ABC):
    """Transaction boundary used by the application layer."""

    invoice_repository: InvoiceRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.invoice_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # Auto-commit only when writable and not committed explicitly
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """Commit the transaction."""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """Roll back the transaction."""
